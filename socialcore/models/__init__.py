"""
Models package for the social core
"""
from socialcore.db.base import Base, BaseModel
from socialcore.models.user import User, UserPrivacy
from socialcore.models.post import Post
from socialcore.models.notification import Notification
from socialcore.models.follow import Follow, FollowRequest, FollowRequestStatus
from socialcore.models.block import Block, Mute
from socialcore.models.like import Like
from socialcore.models.retweet import Retweet
from socialcore.models.comment import Comment
from socialcore.models.tip import Tip
from socialcore.models.message import Message, MessageRequest, MessageRequestStatus

__all__ = [
    'Base',
    'BaseModel',
    'User',
    'UserPrivacy',
    'Post',
    'Notification',
    'Follow',
    'FollowRequest',
    'FollowRequestStatus',
    'Block',
    'Mute',
    'Like',
    'Retweet',
    'Comment',
    'Tip',
    'Message',
    'MessageRequest',
    'MessageRequestStatus',
]
