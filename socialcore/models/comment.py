from sqlalchemy import Column, Text, Integer, ForeignKey, Index
from socialcore.db.base import BaseModel


class Comment(BaseModel):
    __tablename__ = "comments"

    post_id = Column(Integer, ForeignKey("posts.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    content = Column(Text, nullable=False)
    notification_id = Column(Integer, ForeignKey("notifications.id", ondelete="SET NULL"), nullable=True)

    __table_args__ = (
        Index('ix_comments_post_id', 'post_id'),
        Index('ix_comments_user_id', 'user_id'),
        Index('ix_comments_created_at', 'created_at'),
    )
