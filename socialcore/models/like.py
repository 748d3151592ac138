from sqlalchemy import Column, Integer, ForeignKey, UniqueConstraint, Index
from socialcore.db.base import BaseModel


class Like(BaseModel):
    __tablename__ = "likes"

    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    post_id = Column(Integer, ForeignKey("posts.id", ondelete="CASCADE"), nullable=False)
    notification_id = Column(Integer, ForeignKey("notifications.id", ondelete="SET NULL"), nullable=True)

    __table_args__ = (
        UniqueConstraint('user_id', 'post_id', name='unique_like'),
        Index('ix_likes_post_id', 'post_id'),
        Index('ix_likes_user_id', 'user_id'),
        Index('ix_likes_created_at', 'created_at'),
    )
