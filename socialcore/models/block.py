from sqlalchemy import Column, Integer, ForeignKey, UniqueConstraint, CheckConstraint, Index
from socialcore.db.base import BaseModel


class Block(BaseModel):
    """Stored one way; enforced both ways"""
    __tablename__ = "blocks"

    blocker_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    blocked_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    __table_args__ = (
        UniqueConstraint('blocker_id', 'blocked_id', name='unique_block'),
        CheckConstraint('blocker_id <> blocked_id', name='check_no_self_block'),
        Index('ix_blocks_blocked_blocker', 'blocked_id', 'blocker_id'),
    )


class Mute(BaseModel):
    __tablename__ = "mutes"

    muter_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    muted_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    __table_args__ = (
        UniqueConstraint('muter_id', 'muted_id', name='unique_mute'),
        CheckConstraint('muter_id <> muted_id', name='check_no_self_mute'),
        Index('ix_mutes_muter_id', 'muter_id'),
    )
