from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel
from typing import Annotated, ClassVar, Dict, List, Literal, Optional, Union
from datetime import datetime
from enum import Enum


class NotificationType(str, Enum):
    LIKE = "like"
    COMMENT = "comment"
    FOLLOW = "follow"
    FOLLOW_REQUEST = "follow-request"
    MESSAGE = "message"
    MESSAGE_REQUEST = "message-request"
    MENTION = "mention"
    RETWEET = "retweet"
    TRANSACTION = "transaction"


DEFAULT_CONTENT: Dict[str, str] = {
    NotificationType.LIKE.value: "liked your post",
    NotificationType.COMMENT.value: "commented on your post",
    NotificationType.FOLLOW.value: "started following you",
    NotificationType.FOLLOW_REQUEST.value: "requested to follow you",
    NotificationType.MESSAGE.value: "sent you a message",
    NotificationType.MESSAGE_REQUEST.value: "sent you a message request",
    NotificationType.MENTION.value: "mentioned you in a post",
    NotificationType.RETWEET.value: "retweeted your post",
    NotificationType.TRANSACTION.value: "sent you a tip",
}


class _Target(BaseModel):
    model_config = ConfigDict(frozen=True)

    entity_field: ClassVar[str]

    @property
    def entity_id(self) -> str:
        return str(getattr(self, self.entity_field))


class LikeTarget(_Target):
    entity_field: ClassVar[str] = "post_id"
    type: Literal["like"] = "like"
    post_id: int


class RetweetTarget(_Target):
    entity_field: ClassVar[str] = "post_id"
    type: Literal["retweet"] = "retweet"
    post_id: int


class CommentTarget(_Target):
    entity_field: ClassVar[str] = "comment_id"
    type: Literal["comment"] = "comment"
    comment_id: int


class MentionTarget(_Target):
    entity_field: ClassVar[str] = "post_id"
    type: Literal["mention"] = "mention"
    post_id: int


class FollowTarget(_Target):
    entity_field: ClassVar[str] = "follow_id"
    type: Literal["follow"] = "follow"
    follow_id: int


class FollowRequestTarget(_Target):
    entity_field: ClassVar[str] = "follow_request_id"
    type: Literal["follow-request"] = "follow-request"
    follow_request_id: int


class MessageTarget(_Target):
    entity_field: ClassVar[str] = "message_id"
    type: Literal["message"] = "message"
    message_id: int


class MessageRequestTarget(_Target):
    entity_field: ClassVar[str] = "message_request_id"
    type: Literal["message-request"] = "message-request"
    message_request_id: int


class TransactionTarget(_Target):
    entity_field: ClassVar[str] = "tip_id"
    type: Literal["transaction"] = "transaction"
    tip_id: int


NotificationTarget = Annotated[
    Union[
        LikeTarget,
        RetweetTarget,
        CommentTarget,
        MentionTarget,
        FollowTarget,
        FollowRequestTarget,
        MessageTarget,
        MessageRequestTarget,
        TransactionTarget,
    ],
    Field(discriminator="type"),
]

_target_adapter = TypeAdapter(NotificationTarget)

_TARGET_TYPES = (
    LikeTarget,
    RetweetTarget,
    CommentTarget,
    MentionTarget,
    FollowTarget,
    FollowRequestTarget,
    MessageTarget,
    MessageRequestTarget,
    TransactionTarget,
)

_ENTITY_FIELDS: Dict[str, str] = {
    cls.model_fields["type"].default: cls.entity_field for cls in _TARGET_TYPES
}


def target_from_row(notification_type: str, entity_id: Optional[str]) -> NotificationTarget:
    """Re-hydrate a stored (type, entity_id) pair into its typed target"""
    field = _ENTITY_FIELDS[notification_type]
    return _target_adapter.validate_python({"type": notification_type, field: entity_id})


class NotificationPayload(BaseModel):
    """Wire payload pushed over the realtime transport"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: int
    type: str
    actor_id: int
    recipient_id: int
    entity_id: Optional[str] = None
    content: Optional[str] = None
    created_at: datetime

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    type: str
    actor_id: int
    recipient_id: int
    entity_id: Optional[str] = None
    content: Optional[str] = None
    is_read: bool
    created_at: datetime
    read_at: Optional[datetime] = None


class NotificationListResponse(BaseModel):
    notifications: List[NotificationResponse]
    total: int
    skip: int
    limit: int
    unread_count: int


class UnreadCountResponse(BaseModel):
    unread_count: int
