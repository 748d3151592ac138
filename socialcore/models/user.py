from enum import Enum
from sqlalchemy import Column, String, Boolean, Index
from socialcore.db.base import BaseModel


class UserPrivacy(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"


class User(BaseModel):
    __tablename__ = "users"

    username = Column(String(50), unique=True, index=True, nullable=False)
    privacy = Column(String(10), default=UserPrivacy.PUBLIC.value, nullable=False)  # public, private
    is_active = Column(Boolean, default=True, nullable=False)

    __table_args__ = (
        Index('ix_users_created_at', 'created_at'),
    )

    @property
    def is_private(self) -> bool:
        return self.privacy == UserPrivacy.PRIVATE.value
