from sqlalchemy import Column, Integer, ForeignKey, UniqueConstraint, Index
from socialcore.db.base import BaseModel


class Retweet(BaseModel):
    """View row over the original post; the content body is never copied"""
    __tablename__ = "retweets"

    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    post_id = Column(Integer, ForeignKey("posts.id", ondelete="CASCADE"), nullable=False)
    original_user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    notification_id = Column(Integer, ForeignKey("notifications.id", ondelete="SET NULL"), nullable=True)

    __table_args__ = (
        UniqueConstraint('user_id', 'post_id', name='unique_retweet'),
        Index('ix_retweets_post_id', 'post_id'),
        Index('ix_retweets_user_id', 'user_id'),
    )
