from sqlalchemy import Column, Text, Integer, ForeignKey, Index
from socialcore.db.base import BaseModel


class Post(BaseModel):
    """Content-store row; only the owner and the counters matter here"""
    __tablename__ = "posts"

    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    content = Column(Text, nullable=False)

    # Denormalized counts, reconciled against the ledger periodically
    like_count = Column(Integer, default=0, nullable=False)
    retweet_count = Column(Integer, default=0, nullable=False)
    comment_count = Column(Integer, default=0, nullable=False)

    __table_args__ = (
        Index('ix_posts_user_id', 'user_id'),
        Index('ix_posts_created_at', 'created_at'),
    )
