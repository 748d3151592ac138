from typing import Any, Iterable, List, Optional, Tuple
from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete, desc, func
from sqlalchemy.exc import SQLAlchemyError
import logging

from socialcore.config import settings
from socialcore.exceptions import NotFoundError, NotAuthorizedError, store_errors
from socialcore.models.user import User
from socialcore.models.post import Post
from socialcore.models.comment import Comment
from socialcore.models.follow import Follow, FollowRequest
from socialcore.models.message import Message, MessageRequest
from socialcore.models.tip import Tip
from socialcore.models.notification import Notification
from socialcore.schemas.notification_schema import (
    DEFAULT_CONTENT,
    NotificationTarget,
    NotificationPayload,
    NotificationResponse,
    NotificationListResponse,
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
from socialcore.services.redis_service import RedisService
from socialcore.services.visibility_service import VisibilityGuard
from socialcore.websocket.broadcaster import Broadcaster, NOTIFICATION_RETRACTED_EVENT

logger = logging.getLogger(__name__)

Retracted = List[Tuple[int, int]]


class NotificationService:
    def __init__(
        self,
        db: AsyncSession,
        broadcaster: Optional[Broadcaster] = None,
        cache: Optional[RedisService] = None,
    ):
        self.db = db
        self.broadcaster = broadcaster
        self.cache = cache
        self.guard = VisibilityGuard(db)

    async def resolve_recipient(self, target: NotificationTarget) -> Optional[int]:
        """Find who a typed target notifies; mentions always need an explicit recipient"""
        if isinstance(target, (LikeTarget, RetweetTarget)):
            stmt = select(Post.user_id).where(Post.id == target.post_id)
        elif isinstance(target, CommentTarget):
            stmt = (
                select(Post.user_id)
                .join(Comment, Comment.post_id == Post.id)
                .where(Comment.id == target.comment_id)
            )
        elif isinstance(target, FollowTarget):
            stmt = select(Follow.following_id).where(Follow.id == target.follow_id)
        elif isinstance(target, FollowRequestTarget):
            stmt = select(FollowRequest.target_id).where(FollowRequest.id == target.follow_request_id)
        elif isinstance(target, MessageTarget):
            stmt = select(Message.recipient_id).where(Message.id == target.message_id)
        elif isinstance(target, MessageRequestTarget):
            stmt = select(MessageRequest.recipient_id).where(MessageRequest.id == target.message_request_id)
        elif isinstance(target, TransactionTarget):
            stmt = select(Tip.to_user_id).where(Tip.id == target.tip_id)
        else:
            # MentionTarget
            return None

        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def notify(
        self,
        actor_id: int,
        target: NotificationTarget,
        content: Optional[str] = None,
        recipient_id: Optional[int] = None,
        source: Optional[Any] = None,
    ) -> Optional[Notification]:
        """Persist a notification for an action and push it to the recipient.

        Returns None when the notification is suppressed: self-notification,
        an unresolvable recipient, or a block/mute between the parties.
        """
        async with store_errors(self.db, "creating notification"):
            notification = await self.stage(
                actor_id,
                target,
                content=content,
                recipient_id=recipient_id,
                source=source,
            )
            if notification is None:
                return None
            await self.db.commit()

        await self.publish([notification])
        return notification

    async def stage(
        self,
        actor_id: int,
        target: NotificationTarget,
        content: Optional[str] = None,
        recipient_id: Optional[int] = None,
        source: Optional[Any] = None,
    ) -> Optional[Notification]:
        """Write a notification inside the caller's transaction; publish after commit.

        An existing notification for the same (recipient, actor, type, entity)
        is refreshed instead of duplicated. When ``source`` is given its
        ``notification_id`` is pointed at the notification; a failed back-link
        is logged and the notification still stands.
        """
        if recipient_id is None:
            recipient_id = await self.resolve_recipient(target)

        if recipient_id is None:
            logger.warning(f"Could not resolve recipient for {target.type} notification {target.entity_id}")
            return None

        if recipient_id == actor_id:
            logger.debug(f"Suppressed self-notification for user {actor_id}")
            return None

        if await self.guard.should_hide(recipient_id, actor_id):
            logger.info(f"Suppressed {target.type} notification {actor_id} -> {recipient_id}")
            return None

        notification = await self._find_existing(recipient_id, actor_id, target)
        if notification:
            notification.is_read = False
            notification.read_at = None
            notification.created_at = datetime.utcnow()
            if content:
                notification.content = content
        else:
            notification = Notification(
                recipient_id=recipient_id,
                actor_id=actor_id,
                type=target.type,
                entity_id=target.entity_id,
                content=content or DEFAULT_CONTENT[target.type],
                is_read=False,
            )
            self.db.add(notification)

        await self.db.flush()

        if source is not None:
            await self._back_link(source, notification.id)

        return notification

    async def publish(
        self,
        notifications: Iterable[Optional[Notification]],
        stale_recipients: Iterable[Optional[int]] = (),
    ) -> None:
        """Invalidate unread counters and push staged notifications once they are committed"""
        notifications = [n for n in notifications if n is not None]

        recipients = {n.recipient_id for n in notifications}
        recipients.update(uid for uid in stale_recipients if uid is not None)
        for recipient_id in recipients:
            await self._invalidate_unread_count(recipient_id)

        for notification in notifications:
            if self.broadcaster is not None:
                self.broadcaster.dispatch_notification(self.to_payload(notification))
            logger.info(
                f"Created {notification.type} notification {notification.id} "
                f"for user {notification.recipient_id}"
            )

    async def notify_mentions(
        self,
        actor_id: int,
        post_id: int,
        user_ids: Iterable[int],
        content: Optional[str] = None,
    ) -> List[Notification]:
        """Send one mention notification per distinct, existing user"""
        async with store_errors(self.db, "creating mention notifications"):
            created = await self.stage_mentions(actor_id, post_id, user_ids, content=content)
            if not created:
                return []
            await self.db.commit()

        await self.publish(created)
        return created

    async def stage_mentions(
        self,
        actor_id: int,
        post_id: int,
        user_ids: Iterable[int],
        content: Optional[str] = None,
    ) -> List[Notification]:
        candidates = [uid for uid in dict.fromkeys(user_ids) if uid != actor_id]
        if not candidates:
            return []

        result = await self.db.execute(select(User.id).where(User.id.in_(candidates)))
        existing = set(result.scalars().all())

        created = []
        for user_id in candidates:
            if user_id not in existing:
                logger.warning(f"Skipping mention of unknown user {user_id}")
                continue
            notification = await self.stage(
                actor_id,
                MentionTarget(post_id=post_id),
                content=content,
                recipient_id=user_id,
            )
            if notification:
                created.append(notification)

        return created

    async def stage_retraction(self, notification_ids: Iterable[Optional[int]]) -> Retracted:
        """Delete notifications inside the caller's transaction; publish after commit"""
        ids = [nid for nid in notification_ids if nid is not None]
        if not ids:
            return []

        result = await self.db.execute(
            select(Notification.id, Notification.recipient_id).where(Notification.id.in_(ids))
        )
        retracted = [(row.id, row.recipient_id) for row in result.all()]

        if retracted:
            await self.db.execute(
                delete(Notification).where(Notification.id.in_([nid for nid, _ in retracted]))
            )

        return retracted

    async def publish_retractions(self, retracted: Retracted) -> None:
        for recipient_id in {recipient_id for _, recipient_id in retracted}:
            await self._invalidate_unread_count(recipient_id)

        if self.broadcaster is None:
            return

        for notification_id, recipient_id in retracted:
            self.broadcaster.dispatch(recipient_id, NOTIFICATION_RETRACTED_EVENT, {"id": notification_id})

    async def retract(self, notification_id: Optional[int]) -> bool:
        """Delete a notification whose source action was undone"""
        async with store_errors(self.db, "retracting notification"):
            retracted = await self.stage_retraction([notification_id])
            if not retracted:
                return False
            await self.db.commit()

        await self.publish_retractions(retracted)
        logger.info(f"Retracted notification {notification_id}")
        return True

    async def mark_read(self, notification_id: Optional[int]) -> bool:
        """Mark read without an ownership check; used for non-actionable transitions"""
        async with store_errors(self.db, "marking notification read"):
            recipient_id = await self.stage_mark_read(notification_id)
            if recipient_id is None:
                return False
            await self.db.commit()

        await self._invalidate_unread_count(recipient_id)
        return True

    async def stage_mark_read(self, notification_id: Optional[int]) -> Optional[int]:
        """Mark read inside the caller's transaction; returns the recipient whose counter went stale"""
        if notification_id is None:
            return None

        notification = await self.db.get(Notification, notification_id)
        if not notification:
            return None
        if not notification.is_read:
            notification.is_read = True
            notification.read_at = datetime.utcnow()
        return notification.recipient_id

    async def list_notifications(
        self,
        user_id: int,
        skip: int = 0,
        limit: int = settings.NOTIFICATION_PAGE_SIZE,
        unread_only: bool = False,
        notification_type: Optional[str] = None,
    ) -> NotificationListResponse:
        """Get a user's notifications, newest first, without hidden actors"""
        conditions = [
            Notification.recipient_id == user_id,
            Notification.actor_id.not_in(self.guard.hidden_user_ids(user_id)),
        ]
        if unread_only:
            conditions.append(Notification.is_read.is_(False))
        if notification_type:
            conditions.append(Notification.type == notification_type)

        stmt = (
            select(Notification)
            .where(*conditions)
            .order_by(desc(Notification.created_at), desc(Notification.id))
            .offset(skip)
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        notifications = result.scalars().all()

        count_stmt = select(func.count(Notification.id)).where(*conditions)
        total = (await self.db.execute(count_stmt)).scalar() or 0

        unread_count = await self.get_unread_count(user_id)

        return NotificationListResponse(
            notifications=[NotificationResponse.model_validate(n) for n in notifications],
            total=total,
            skip=skip,
            limit=limit,
            unread_count=unread_count,
        )

    async def get_unread_count(self, user_id: int) -> int:
        cache_key = self._unread_key(user_id)
        if self.cache is not None:
            cached = await self.cache.get(cache_key)
            if cached is not None:
                return int(cached)

        stmt = select(func.count(Notification.id)).where(
            Notification.recipient_id == user_id,
            Notification.is_read.is_(False),
            Notification.actor_id.not_in(self.guard.hidden_user_ids(user_id)),
        )
        count = (await self.db.execute(stmt)).scalar() or 0

        if self.cache is not None:
            await self.cache.setex(cache_key, settings.UNREAD_COUNT_CACHE_TTL, str(count))

        return count

    async def mark_as_read(self, notification_id: int, user_id: int) -> Notification:
        """Mark one of the user's notifications as read"""
        async with store_errors(self.db, "marking notification as read"):
            notification = await self._get_owned(notification_id, user_id)
            if not notification.is_read:
                notification.is_read = True
                notification.read_at = datetime.utcnow()
            await self.db.commit()

        await self._invalidate_unread_count(user_id)
        return notification

    async def mark_all_as_read(self, user_id: int) -> int:
        async with store_errors(self.db, "marking all notifications as read"):
            stmt = (
                update(Notification)
                .where(Notification.recipient_id == user_id, Notification.is_read.is_(False))
                .values(is_read=True, read_at=datetime.utcnow())
                .execution_options(synchronize_session=False)
            )
            result = await self.db.execute(stmt)
            await self.db.commit()

        await self._invalidate_unread_count(user_id)
        logger.info(f"Marked {result.rowcount} notifications as read for user {user_id}")
        return result.rowcount

    async def delete_notification(self, notification_id: int, user_id: int) -> bool:
        async with store_errors(self.db, "deleting notification"):
            notification = await self._get_owned(notification_id, user_id)
            await self.db.delete(notification)
            await self.db.commit()

        await self._invalidate_unread_count(user_id)
        return True

    @staticmethod
    def to_payload(notification: Notification) -> NotificationPayload:
        return NotificationPayload(
            id=notification.id,
            type=notification.type,
            actor_id=notification.actor_id,
            recipient_id=notification.recipient_id,
            entity_id=notification.entity_id,
            content=notification.content,
            created_at=notification.created_at,
        )

    async def _find_existing(
        self,
        recipient_id: int,
        actor_id: int,
        target: NotificationTarget,
    ) -> Optional[Notification]:
        stmt = (
            select(Notification)
            .where(
                Notification.recipient_id == recipient_id,
                Notification.actor_id == actor_id,
                Notification.type == target.type,
                Notification.entity_id == target.entity_id,
            )
            .limit(1)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def _back_link(self, source: Any, notification_id: int) -> None:
        # A failed savepoint expires source; read what the log needs first
        source_name = type(source).__name__
        source_id = source.id
        try:
            async with self.db.begin_nested():
                source.notification_id = notification_id
        except SQLAlchemyError as e:
            logger.error(f"Failed to link notification {notification_id} to {source_name} {source_id}: {e}")

    async def _get_owned(self, notification_id: int, user_id: int) -> Notification:
        notification = await self.db.get(Notification, notification_id)
        if not notification:
            raise NotFoundError("Notification not found")
        if notification.recipient_id != user_id:
            raise NotAuthorizedError("Not your notification")
        return notification

    @staticmethod
    def _unread_key(user_id: int) -> str:
        return f"user:{user_id}:unread_count"

    async def _invalidate_unread_count(self, user_id: int) -> None:
        if self.cache is not None:
            await self.cache.delete(self._unread_key(user_id))
