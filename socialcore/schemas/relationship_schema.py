from pydantic import BaseModel, ConfigDict
from typing import List, Optional
from datetime import datetime
from enum import Enum


class FollowStatus(str, Enum):
    FOLLOWING = "following"
    REQUESTED = "requested"
    ALREADY_FOLLOWING = "already_following"
    ALREADY_REQUESTED = "already_requested"


class FollowRequestDecision(str, Enum):
    ACCEPT = "accept"
    DENY = "deny"


class FollowResult(BaseModel):
    status: FollowStatus
    follow_id: Optional[int] = None
    request_id: Optional[int] = None


class FollowRequestRespond(BaseModel):
    decision: FollowRequestDecision


class FollowRequestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    requester_id: int
    target_id: int
    status: str
    created_at: datetime
    responded_at: Optional[datetime] = None


class UserSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str


class UserListResponse(BaseModel):
    users: List[UserSummary]
    total: int
    skip: int
    limit: int


class RelationshipStatus(BaseModel):
    is_following: bool = False
    is_followed_by: bool = False
    follow_request_status: Optional[str] = None
    is_blocked: bool = False
    is_blocked_by: bool = False
    is_muted: bool = False
