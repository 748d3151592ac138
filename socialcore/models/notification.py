from sqlalchemy import Column, String, Text, Integer, ForeignKey, Boolean, DateTime, Index
from socialcore.db.base import BaseModel


class Notification(BaseModel):
    __tablename__ = "notifications"

    recipient_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    actor_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    type = Column(String(30), nullable=False)  # like, comment, follow, follow-request, ...
    entity_id = Column(String(64), nullable=True)  # id of the typed target, see NotificationTarget
    content = Column(Text)
    is_read = Column(Boolean, default=False, nullable=False)
    read_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index('ix_notifications_recipient_id', 'recipient_id'),
        Index('ix_notifications_actor_id', 'actor_id'),
        Index('ix_notifications_type', 'type'),
        Index('ix_notifications_created_at', 'created_at'),
        Index('ix_notifications_is_read', 'is_read'),
        Index('ix_notifications_dedupe', 'recipient_id', 'actor_id', 'type', 'entity_id'),
    )
