from typing import List, Optional
from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete, and_, or_, desc, func
import logging

from socialcore.exceptions import (
    SelfFollowError,
    ValidationError,
    NotFoundError,
    NotAuthorizedError,
    InvalidStateError,
    store_errors,
)
from socialcore.models.user import User
from socialcore.models.follow import Follow, FollowRequest, FollowRequestStatus
from socialcore.models.block import Block, Mute
from socialcore.models.message import MessageRequest, MessageRequestStatus
from socialcore.models.notification import Notification
from socialcore.schemas.notification_schema import FollowTarget, FollowRequestTarget
from socialcore.schemas.relationship_schema import (
    FollowStatus,
    FollowResult,
    FollowRequestDecision,
    UserSummary,
    UserListResponse,
    RelationshipStatus,
)
from socialcore.services.notification_service import NotificationService
from socialcore.services.visibility_service import VisibilityGuard

logger = logging.getLogger(__name__)


def _between(left, right, a: int, b: int):
    return or_(
        and_(left == a, right == b),
        and_(left == b, right == a),
    )


class RelationshipService:
    def __init__(self, db: AsyncSession, notifications: Optional[NotificationService] = None):
        self.db = db
        self.guard = VisibilityGuard(db)
        self.notifications = notifications or NotificationService(db)

    async def follow(self, actor_id: int, target_id: int) -> FollowResult:
        """Follow a user, or ask to when the target account is private"""
        if actor_id == target_id:
            raise SelfFollowError()

        target = await self._get_user(target_id)
        await self.guard.ensure_can_interact(actor_id, target_id)

        async with store_errors(self.db, "following user"):
            existing = await self.get_follow(actor_id, target_id)
            if existing:
                return FollowResult(status=FollowStatus.ALREADY_FOLLOWING, follow_id=existing.id)

            request = await self.get_follow_request(actor_id, target_id)

            if target.is_private:
                if request and request.is_pending:
                    return FollowResult(status=FollowStatus.ALREADY_REQUESTED, request_id=request.id)

                if request:
                    # Re-request after a denial or an old acceptance reuses the row
                    request.status = FollowRequestStatus.PENDING.value
                    request.responded_at = None
                    request.created_at = datetime.utcnow()
                else:
                    request = FollowRequest(requester_id=actor_id, target_id=target_id)
                    self.db.add(request)

                await self.db.flush()
                notification = await self.notifications.stage(
                    actor_id,
                    FollowRequestTarget(follow_request_id=request.id),
                    recipient_id=target_id,
                    source=request,
                )
                await self.db.commit()
                created_request = request
            else:
                created_request = None
                follow = Follow(follower_id=actor_id, following_id=target_id)
                self.db.add(follow)

                retracted = []
                if request and request.is_pending:
                    # Target went public while the request was waiting
                    request.status = FollowRequestStatus.ACCEPTED.value
                    request.responded_at = datetime.utcnow()
                    retracted = await self.notifications.stage_retraction([request.notification_id])
                    request.notification_id = None

                await self.db.flush()
                notification = await self.notifications.stage(
                    actor_id,
                    FollowTarget(follow_id=follow.id),
                    recipient_id=target_id,
                    source=follow,
                )
                await self.db.commit()

        if created_request is not None:
            await self.notifications.publish([notification])
            logger.info(f"Follow request: {actor_id} -> {target_id}")
            return FollowResult(status=FollowStatus.REQUESTED, request_id=created_request.id)

        await self.notifications.publish_retractions(retracted)
        await self.notifications.publish([notification])
        logger.info(f"Created follow: {actor_id} -> {target_id}")
        return FollowResult(status=FollowStatus.FOLLOWING, follow_id=follow.id)

    async def unfollow(self, actor_id: int, target_id: int) -> bool:
        async with store_errors(self.db, "unfollowing user"):
            follow = await self.get_follow(actor_id, target_id)
            if not follow:
                return False

            retracted = await self.notifications.stage_retraction([follow.notification_id])
            await self.db.delete(follow)
            await self.db.commit()

        await self.notifications.publish_retractions(retracted)
        logger.info(f"Deleted follow: {actor_id} -> {target_id}")
        return True

    async def respond_to_follow_request(
        self,
        request_id: int,
        responder_id: int,
        decision: FollowRequestDecision,
    ) -> FollowRequest:
        """Accept or deny a pending follow request addressed to the responder"""
        try:
            decision = FollowRequestDecision(decision)
        except ValueError:
            raise ValidationError(f"Invalid decision: {decision}")

        notification = None
        stale_recipient = None
        retracted = []
        # A concurrent accept that slips past the pending check trips unique_follow
        async with store_errors(self.db, "responding to follow request", duplicate_error=InvalidStateError):
            request = await self.db.get(
                FollowRequest,
                request_id,
                with_for_update=True,
                populate_existing=True,
            )
            if not request:
                raise NotFoundError("Follow request not found")
            if request.target_id != responder_id:
                raise NotAuthorizedError("Not your follow request")
            if not request.is_pending:
                raise InvalidStateError(f"Follow request already {request.status}")

            request.responded_at = datetime.utcnow()

            if decision == FollowRequestDecision.ACCEPT:
                request.status = FollowRequestStatus.ACCEPTED.value
                follow = await self.get_follow(request.requester_id, request.target_id)
                if not follow:
                    follow = Follow(follower_id=request.requester_id, following_id=request.target_id)
                    self.db.add(follow)
                    await self.db.flush()

                stale_recipient = await self.notifications.stage_mark_read(request.notification_id)
                notification = await self.notifications.stage(
                    request.requester_id,
                    FollowTarget(follow_id=follow.id),
                    recipient_id=request.target_id,
                    source=follow,
                )
            else:
                request.status = FollowRequestStatus.DENIED.value
                retracted = await self.notifications.stage_retraction([request.notification_id])
                request.notification_id = None

            await self.db.commit()

        if decision == FollowRequestDecision.ACCEPT:
            await self.notifications.publish([notification], stale_recipients=[stale_recipient])
            logger.info(f"Accepted follow request {request_id}: {request.requester_id} -> {request.target_id}")
        else:
            await self.notifications.publish_retractions(retracted)
            logger.info(f"Denied follow request {request_id}")

        return request

    async def cancel_follow_request(self, requester_id: int, target_id: int) -> bool:
        async with store_errors(self.db, "cancelling follow request"):
            request = await self.get_follow_request(requester_id, target_id)
            if not request or not request.is_pending:
                return False

            retracted = await self.notifications.stage_retraction([request.notification_id])
            await self.db.delete(request)
            await self.db.commit()

        await self.notifications.publish_retractions(retracted)
        logger.info(f"Cancelled follow request: {requester_id} -> {target_id}")
        return True

    async def list_incoming_follow_requests(
        self,
        user_id: int,
        skip: int = 0,
        limit: int = 20,
    ) -> List[FollowRequest]:
        stmt = (
            select(FollowRequest)
            .where(
                FollowRequest.target_id == user_id,
                FollowRequest.status == FollowRequestStatus.PENDING.value,
                FollowRequest.requester_id.not_in(self.guard.hidden_user_ids(user_id)),
            )
            .order_by(desc(FollowRequest.created_at), desc(FollowRequest.id))
            .offset(skip)
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def block(self, actor_id: int, target_id: int) -> Block:
        """Block a user and sever every edge and pending request between the pair"""
        if actor_id == target_id:
            raise ValidationError("You cannot block yourself")

        await self._get_user(target_id)

        async with store_errors(self.db, "blocking user"):
            existing = await self._get_block(actor_id, target_id)
            if existing:
                return existing

            block = Block(blocker_id=actor_id, blocked_id=target_id)
            self.db.add(block)

            severed = []
            for stmt in (
                select(Follow).where(_between(Follow.follower_id, Follow.following_id, actor_id, target_id)),
                select(FollowRequest).where(
                    _between(FollowRequest.requester_id, FollowRequest.target_id, actor_id, target_id),
                    FollowRequest.status == FollowRequestStatus.PENDING.value,
                ),
                select(MessageRequest).where(
                    _between(MessageRequest.sender_id, MessageRequest.recipient_id, actor_id, target_id),
                    MessageRequest.status == MessageRequestStatus.PENDING.value,
                ),
            ):
                result = await self.db.execute(stmt)
                severed.extend(result.scalars().all())

            retracted = await self.notifications.stage_retraction(row.notification_id for row in severed)
            for row in severed:
                await self.db.delete(row)

            await self.db.commit()

        await self.notifications.publish_retractions(retracted)
        logger.info(f"User {actor_id} blocked {target_id}, severed {len(severed)} rows")
        return block

    async def unblock(self, actor_id: int, target_id: int) -> bool:
        async with store_errors(self.db, "unblocking user"):
            block = await self._get_block(actor_id, target_id)
            if not block:
                return False
            await self.db.delete(block)
            await self.db.commit()

        logger.info(f"User {actor_id} unblocked {target_id}")
        return True

    async def mute(self, actor_id: int, target_id: int) -> Mute:
        """Mute a user; follow edges stay untouched"""
        if actor_id == target_id:
            raise ValidationError("You cannot mute yourself")

        await self._get_user(target_id)

        async with store_errors(self.db, "muting user"):
            existing = await self._get_mute(actor_id, target_id)
            if existing:
                return existing

            mute = Mute(muter_id=actor_id, muted_id=target_id)
            self.db.add(mute)
            await self.db.commit()

        logger.info(f"User {actor_id} muted {target_id}")
        return mute

    async def unmute(self, actor_id: int, target_id: int) -> bool:
        async with store_errors(self.db, "unmuting user"):
            mute = await self._get_mute(actor_id, target_id)
            if not mute:
                return False
            await self.db.delete(mute)
            await self.db.commit()

        logger.info(f"User {actor_id} unmuted {target_id}")
        return True

    async def is_blocked(self, user_a: int, user_b: int) -> bool:
        return await self.guard.is_blocked(user_a, user_b)

    async def is_muted(self, muter_id: int, muted_id: int) -> bool:
        return await self.guard.is_muted(muter_id, muted_id)

    async def is_following(self, follower_id: int, following_id: int) -> bool:
        return await self.get_follow(follower_id, following_id) is not None

    async def get_follow(self, follower_id: int, following_id: int) -> Optional[Follow]:
        stmt = select(Follow).where(
            Follow.follower_id == follower_id,
            Follow.following_id == following_id,
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_follow_request(self, requester_id: int, target_id: int) -> Optional[FollowRequest]:
        stmt = select(FollowRequest).where(
            FollowRequest.requester_id == requester_id,
            FollowRequest.target_id == target_id,
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_followers(
        self,
        user_id: int,
        viewer_id: int,
        skip: int = 0,
        limit: int = 20,
    ) -> UserListResponse:
        """Users following user_id, minus anyone hidden from the viewer"""
        await self._get_user(user_id)
        return await self._list_users(
            Follow.follower_id,
            Follow.following_id == user_id,
            viewer_id,
            skip,
            limit,
        )

    async def get_following(
        self,
        user_id: int,
        viewer_id: int,
        skip: int = 0,
        limit: int = 20,
    ) -> UserListResponse:
        """Users that user_id follows, minus anyone hidden from the viewer"""
        await self._get_user(user_id)
        return await self._list_users(
            Follow.following_id,
            Follow.follower_id == user_id,
            viewer_id,
            skip,
            limit,
        )

    async def list_blocked(self, user_id: int) -> List[User]:
        stmt = (
            select(User)
            .join(Block, Block.blocked_id == User.id)
            .where(Block.blocker_id == user_id)
            .order_by(desc(Block.created_at))
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def list_muted(self, user_id: int) -> List[User]:
        stmt = (
            select(User)
            .join(Mute, Mute.muted_id == User.id)
            .where(Mute.muter_id == user_id)
            .order_by(desc(Mute.created_at))
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_relationship_status(self, viewer_id: int, target_id: int) -> RelationshipStatus:
        await self._get_user(target_id)

        request = await self.get_follow_request(viewer_id, target_id)

        return RelationshipStatus(
            is_following=await self.is_following(viewer_id, target_id),
            is_followed_by=await self.is_following(target_id, viewer_id),
            follow_request_status=request.status if request else None,
            is_blocked=await self.guard.has_blocked(viewer_id, target_id),
            is_blocked_by=await self.guard.has_blocked(target_id, viewer_id),
            is_muted=await self.is_muted(viewer_id, target_id),
        )

    async def purge_user(self, user_id: int) -> int:
        """Remove every relationship edge, request and notification touching a user"""
        async with store_errors(self.db, "purging user"):
            # Notifications the user caused in other inboxes get retracted live
            result = await self.db.execute(
                select(Notification.id).where(
                    Notification.actor_id == user_id,
                    Notification.recipient_id != user_id,
                )
            )
            retracted = await self.notifications.stage_retraction(result.scalars().all())
            removed = len(retracted)

            for stmt in (
                delete(Notification).where(Notification.recipient_id == user_id),
                delete(Follow).where(or_(Follow.follower_id == user_id, Follow.following_id == user_id)),
                delete(FollowRequest).where(
                    or_(FollowRequest.requester_id == user_id, FollowRequest.target_id == user_id)
                ),
                delete(Block).where(or_(Block.blocker_id == user_id, Block.blocked_id == user_id)),
                delete(Mute).where(or_(Mute.muter_id == user_id, Mute.muted_id == user_id)),
                delete(MessageRequest).where(
                    or_(MessageRequest.sender_id == user_id, MessageRequest.recipient_id == user_id)
                ),
            ):
                result = await self.db.execute(stmt.execution_options(synchronize_session=False))
                removed += result.rowcount

            await self.db.commit()

        await self.notifications.publish_retractions(retracted)
        logger.info(f"Purged {removed} rows for user {user_id}")
        return removed

    async def _list_users(self, user_column, condition, viewer_id: int, skip: int, limit: int) -> UserListResponse:
        conditions = [condition, User.id.not_in(self.guard.hidden_user_ids(viewer_id))]

        stmt = (
            select(User)
            .join(Follow, user_column == User.id)
            .where(*conditions)
            .order_by(desc(Follow.created_at), desc(Follow.id))
            .offset(skip)
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        users = result.scalars().all()

        count_stmt = select(func.count(Follow.id)).join(User, user_column == User.id).where(*conditions)
        total = (await self.db.execute(count_stmt)).scalar() or 0

        return UserListResponse(
            users=[UserSummary.model_validate(user) for user in users],
            total=total,
            skip=skip,
            limit=limit,
        )

    async def _get_user(self, user_id: int) -> User:
        user = await self.db.get(User, user_id)
        if not user:
            raise NotFoundError("User not found")
        return user

    async def _get_block(self, blocker_id: int, blocked_id: int) -> Optional[Block]:
        stmt = select(Block).where(Block.blocker_id == blocker_id, Block.blocked_id == blocked_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def _get_mute(self, muter_id: int, muted_id: int) -> Optional[Mute]:
        stmt = select(Mute).where(Mute.muter_id == muter_id, Mute.muted_id == muted_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()
