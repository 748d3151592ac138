from sqlalchemy import Column, Integer, String, Numeric, ForeignKey, CheckConstraint, Index
from socialcore.db.base import BaseModel


class Tip(BaseModel):
    """Ledger entry only; settlement happens elsewhere"""
    __tablename__ = "tips"

    from_user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    to_user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    post_id = Column(Integer, ForeignKey("posts.id", ondelete="SET NULL"), nullable=True)
    amount = Column(Numeric(18, 9), nullable=False)
    message = Column(String(255), nullable=True)
    notification_id = Column(Integer, ForeignKey("notifications.id", ondelete="SET NULL"), nullable=True)

    __table_args__ = (
        CheckConstraint('amount > 0', name='check_tip_amount_positive'),
        Index('ix_tips_to_user_id', 'to_user_id'),
        Index('ix_tips_from_user_id', 'from_user_id'),
    )
