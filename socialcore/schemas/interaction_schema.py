from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from datetime import datetime
from decimal import Decimal


class LikeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    post_id: int
    created_at: datetime


class LikeToggleResponse(BaseModel):
    liked: bool
    like_count: int


class RetweetResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    post_id: int
    original_user_id: int
    created_at: datetime


class CommentCreate(BaseModel):
    content: str
    mentioned_user_ids: List[int] = Field(default_factory=list)


class CommentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    post_id: int
    user_id: int
    content: str
    created_at: datetime


class TipCreate(BaseModel):
    to_user_id: int
    amount: Decimal
    message: Optional[str] = Field(None, max_length=255)
    post_id: Optional[int] = None


class TipResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    from_user_id: int
    to_user_id: int
    amount: Decimal
    message: Optional[str] = None
    post_id: Optional[int] = None
    created_at: datetime
