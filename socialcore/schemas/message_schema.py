from pydantic import BaseModel, ConfigDict
from typing import List, Optional
from datetime import datetime
from enum import Enum


class MessageStatus(str, Enum):
    SENT = "sent"
    REQUESTED = "requested"


class MessageRequestDecision(str, Enum):
    ACCEPT = "accept"
    REJECT = "reject"


class MessageCreate(BaseModel):
    recipient_id: int
    content: str


class MessageResult(BaseModel):
    status: MessageStatus
    message_id: Optional[int] = None
    request_id: Optional[int] = None


class MessageRequestRespond(BaseModel):
    decision: MessageRequestDecision


class MessageRequestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    sender_id: int
    recipient_id: int
    message: str
    status: str
    created_at: datetime
    responded_at: Optional[datetime] = None


class MessageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    sender_id: int
    recipient_id: int
    content: str
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: datetime


class MessageListResponse(BaseModel):
    messages: List[MessageResponse]
    total: int
    skip: int
    limit: int
