from enum import Enum
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint, CheckConstraint, Index
from socialcore.db.base import BaseModel


class FollowRequestStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DENIED = "denied"


class Follow(BaseModel):
    __tablename__ = "follows"

    follower_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    following_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    notification_id = Column(Integer, ForeignKey("notifications.id", ondelete="SET NULL"), nullable=True)

    # Ensure unique follow relationships
    __table_args__ = (
        UniqueConstraint('follower_id', 'following_id', name='unique_follow'),
        CheckConstraint('follower_id <> following_id', name='check_no_self_follow'),
        Index('ix_follows_follower_id', 'follower_id'),
        Index('ix_follows_following_id', 'following_id'),
        Index('ix_follows_created_at', 'created_at'),
    )


class FollowRequest(BaseModel):
    __tablename__ = "follow_requests"

    requester_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    target_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    status = Column(String(10), default=FollowRequestStatus.PENDING.value, nullable=False)
    responded_at = Column(DateTime, nullable=True)
    notification_id = Column(Integer, ForeignKey("notifications.id", ondelete="SET NULL"), nullable=True)

    # One row per pair; a re-request resets the row to pending
    __table_args__ = (
        UniqueConstraint('requester_id', 'target_id', name='unique_follow_request'),
        CheckConstraint('requester_id <> target_id', name='check_no_self_follow_request'),
        Index('ix_follow_requests_target_status', 'target_id', 'status'),
    )

    @property
    def is_pending(self) -> bool:
        return self.status == FollowRequestStatus.PENDING.value
