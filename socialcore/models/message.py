from enum import Enum
from sqlalchemy import Column, Text, Integer, String, Boolean, DateTime, ForeignKey, UniqueConstraint, CheckConstraint, Index
from socialcore.db.base import BaseModel


class MessageRequestStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class Message(BaseModel):
    __tablename__ = "messages"

    sender_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    recipient_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    content = Column(Text, nullable=False)
    is_read = Column(Boolean, default=False, nullable=False)
    read_at = Column(DateTime, nullable=True)
    notification_id = Column(Integer, ForeignKey("notifications.id", ondelete="SET NULL"), nullable=True)

    __table_args__ = (
        Index('ix_messages_recipient_created', 'recipient_id', 'created_at'),
        Index('ix_messages_sender_id', 'sender_id'),
    )


class MessageRequest(BaseModel):
    __tablename__ = "message_requests"

    sender_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    recipient_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    message = Column(Text, nullable=False)
    status = Column(String(10), default=MessageRequestStatus.PENDING.value, nullable=False)
    responded_at = Column(DateTime, nullable=True)
    notification_id = Column(Integer, ForeignKey("notifications.id", ondelete="SET NULL"), nullable=True)

    __table_args__ = (
        UniqueConstraint('sender_id', 'recipient_id', name='unique_message_request'),
        CheckConstraint('sender_id <> recipient_id', name='check_no_self_message_request'),
        Index('ix_message_requests_recipient_status', 'recipient_id', 'status'),
    )

    @property
    def is_pending(self) -> bool:
        return self.status == MessageRequestStatus.PENDING.value
