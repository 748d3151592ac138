from typing import Iterable, List, Optional, Union
from decimal import Decimal, InvalidOperation
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, desc, func, case
import logging

from socialcore.exceptions import (
    ValidationError,
    NotFoundError,
    DuplicateActionError,
    AlreadyRetweetedError,
    store_errors,
)
from socialcore.models.user import User
from socialcore.models.post import Post
from socialcore.models.like import Like
from socialcore.models.retweet import Retweet
from socialcore.models.comment import Comment
from socialcore.models.tip import Tip
from socialcore.schemas.interaction_schema import LikeToggleResponse
from socialcore.schemas.notification_schema import (
    LikeTarget,
    RetweetTarget,
    CommentTarget,
    TransactionTarget,
)
from socialcore.schemas.relationship_schema import UserSummary, UserListResponse
from socialcore.services.notification_service import NotificationService
from socialcore.services.visibility_service import VisibilityGuard

logger = logging.getLogger(__name__)


def _increment(column):
    return column + 1


def _decrement(column):
    # Never below zero
    return case((column > 0, column - 1), else_=0)


class InteractionService:
    def __init__(self, db: AsyncSession, notifications: Optional[NotificationService] = None):
        self.db = db
        self.guard = VisibilityGuard(db)
        self.notifications = notifications or NotificationService(db)

    async def like(self, user_id: int, post_id: int) -> Like:
        """Like a post; liking twice is a DuplicateActionError"""
        post = await self._get_post(post_id)
        await self.guard.ensure_can_interact(user_id, post.user_id)

        async with store_errors(self.db, "liking post"):
            if await self._get_like(user_id, post_id):
                raise DuplicateActionError("Post already liked")

            like = Like(user_id=user_id, post_id=post_id)
            self.db.add(like)
            await self.db.flush()
            await self._bump(post_id, like_count=_increment(Post.like_count))
            notification = await self.notifications.stage(
                user_id,
                LikeTarget(post_id=post_id),
                recipient_id=post.user_id,
                source=like,
            )
            await self.db.commit()

        await self.notifications.publish([notification])
        logger.info(f"User {user_id} liked post {post_id}")
        return like

    async def unlike(self, user_id: int, post_id: int) -> bool:
        async with store_errors(self.db, "unliking post"):
            like = await self._get_like(user_id, post_id)
            if not like:
                return False

            retracted = await self.notifications.stage_retraction([like.notification_id])
            await self.db.delete(like)
            await self._bump(post_id, like_count=_decrement(Post.like_count))
            await self.db.commit()

        await self.notifications.publish_retractions(retracted)
        logger.info(f"User {user_id} unliked post {post_id}")
        return True

    async def toggle_like(self, user_id: int, post_id: int) -> LikeToggleResponse:
        await self._get_post(post_id)

        if await self._get_like(user_id, post_id):
            await self.unlike(user_id, post_id)
            liked = False
        else:
            await self.like(user_id, post_id)
            liked = True

        like_count = (await self.db.execute(select(Post.like_count).where(Post.id == post_id))).scalar_one()
        return LikeToggleResponse(liked=liked, like_count=like_count)

    async def retweet(self, user_id: int, post_id: int) -> Retweet:
        """Create a retweet view row pointing at the original post and author"""
        post = await self._get_post(post_id)
        await self.guard.ensure_can_interact(user_id, post.user_id)

        async with store_errors(self.db, "retweeting post", duplicate_error=AlreadyRetweetedError):
            if await self._get_retweet(user_id, post_id):
                raise AlreadyRetweetedError()

            retweet = Retweet(user_id=user_id, post_id=post_id, original_user_id=post.user_id)
            self.db.add(retweet)
            await self.db.flush()
            await self._bump(post_id, retweet_count=_increment(Post.retweet_count))
            notification = await self.notifications.stage(
                user_id,
                RetweetTarget(post_id=post_id),
                recipient_id=post.user_id,
                source=retweet,
            )
            await self.db.commit()

        await self.notifications.publish([notification])
        logger.info(f"User {user_id} retweeted post {post_id}")
        return retweet

    async def unretweet(self, user_id: int, post_id: int) -> bool:
        async with store_errors(self.db, "removing retweet"):
            retweet = await self._get_retweet(user_id, post_id)
            if not retweet:
                return False

            retracted = await self.notifications.stage_retraction([retweet.notification_id])
            await self.db.delete(retweet)
            await self._bump(post_id, retweet_count=_decrement(Post.retweet_count))
            await self.db.commit()

        await self.notifications.publish_retractions(retracted)
        logger.info(f"User {user_id} removed retweet of post {post_id}")
        return True

    async def comment(
        self,
        user_id: int,
        post_id: int,
        content: str,
        mentioned_user_ids: Iterable[int] = (),
    ) -> Comment:
        if not content or not content.strip():
            raise ValidationError("Comment content cannot be empty")

        post = await self._get_post(post_id)
        await self.guard.ensure_can_interact(user_id, post.user_id)

        async with store_errors(self.db, "creating comment"):
            comment = Comment(post_id=post_id, user_id=user_id, content=content.strip())
            self.db.add(comment)
            await self.db.flush()
            await self._bump(post_id, comment_count=_increment(Post.comment_count))
            notification = await self.notifications.stage(
                user_id,
                CommentTarget(comment_id=comment.id),
                recipient_id=post.user_id,
                source=comment,
            )
            mentions = await self.notifications.stage_mentions(user_id, post_id, mentioned_user_ids)
            await self.db.commit()

        await self.notifications.publish([notification, *mentions])

        logger.info(f"User {user_id} commented on post {post_id}")
        return comment

    async def tip(
        self,
        from_user_id: int,
        to_user_id: int,
        amount: Union[Decimal, int, float, str],
        message: Optional[str] = None,
        post_id: Optional[int] = None,
    ) -> Tip:
        """Record a tip in the ledger; settlement happens elsewhere"""
        try:
            amount = Decimal(str(amount))
        except InvalidOperation:
            raise ValidationError(f"Invalid tip amount: {amount}")

        if not amount.is_finite() or amount <= 0:
            raise ValidationError("Tip amount must be greater than zero")

        if from_user_id == to_user_id:
            raise ValidationError("You cannot tip yourself")

        if not await self.db.get(User, to_user_id):
            raise NotFoundError("User not found")

        if post_id is not None:
            await self._get_post(post_id)

        await self.guard.ensure_can_interact(from_user_id, to_user_id)

        async with store_errors(self.db, "recording tip"):
            tip = Tip(
                from_user_id=from_user_id,
                to_user_id=to_user_id,
                amount=amount,
                message=message,
                post_id=post_id,
            )
            self.db.add(tip)
            await self.db.flush()
            notification = await self.notifications.stage(
                from_user_id,
                TransactionTarget(tip_id=tip.id),
                content=message,
                recipient_id=to_user_id,
                source=tip,
            )
            await self.db.commit()

        await self.notifications.publish([notification])
        logger.info(f"User {from_user_id} tipped {amount} to user {to_user_id}")
        return tip

    async def list_likers(self, post_id: int, viewer_id: int, skip: int = 0, limit: int = 20) -> UserListResponse:
        await self._get_post(post_id)
        return await self._list_actors(Like, post_id, viewer_id, skip, limit)

    async def list_retweeters(self, post_id: int, viewer_id: int, skip: int = 0, limit: int = 20) -> UserListResponse:
        await self._get_post(post_id)
        return await self._list_actors(Retweet, post_id, viewer_id, skip, limit)

    async def _list_actors(self, model, post_id: int, viewer_id: int, skip: int, limit: int) -> UserListResponse:
        conditions = [
            model.post_id == post_id,
            User.id.not_in(self.guard.hidden_user_ids(viewer_id)),
        ]

        stmt = (
            select(User)
            .join(model, model.user_id == User.id)
            .where(*conditions)
            .order_by(desc(model.created_at), desc(model.id))
            .offset(skip)
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        users = result.scalars().all()

        count_stmt = select(func.count(model.id)).join(User, model.user_id == User.id).where(*conditions)
        total = (await self.db.execute(count_stmt)).scalar() or 0

        return UserListResponse(
            users=[UserSummary.model_validate(user) for user in users],
            total=total,
            skip=skip,
            limit=limit,
        )

    async def _get_post(self, post_id: int) -> Post:
        post = await self.db.get(Post, post_id)
        if not post:
            raise NotFoundError("Post not found")
        return post

    async def _get_like(self, user_id: int, post_id: int) -> Optional[Like]:
        stmt = select(Like).where(Like.user_id == user_id, Like.post_id == post_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def _get_retweet(self, user_id: int, post_id: int) -> Optional[Retweet]:
        stmt = select(Retweet).where(Retweet.user_id == user_id, Retweet.post_id == post_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def _bump(self, post_id: int, **values) -> None:
        stmt = (
            update(Post)
            .where(Post.id == post_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await self.db.execute(stmt)


async def reconcile_post_counters(db: AsyncSession, post_ids: Optional[List[int]] = None) -> int:
    """Recompute denormalized post counters from the ledger; returns how many posts drifted"""
    like_total = (
        select(func.count(Like.id)).where(Like.post_id == Post.id).correlate(Post).scalar_subquery()
    )
    retweet_total = (
        select(func.count(Retweet.id)).where(Retweet.post_id == Post.id).correlate(Post).scalar_subquery()
    )
    comment_total = (
        select(func.count(Comment.id)).where(Comment.post_id == Post.id).correlate(Post).scalar_subquery()
    )

    stmt = select(
        Post.id,
        Post.like_count,
        Post.retweet_count,
        Post.comment_count,
        like_total.label("like_total"),
        retweet_total.label("retweet_total"),
        comment_total.label("comment_total"),
    )
    if post_ids:
        stmt = stmt.where(Post.id.in_(post_ids))

    drifted = 0
    async with store_errors(db, "reconciling post counters"):
        rows = (await db.execute(stmt)).all()
        for row in rows:
            if (row.like_count, row.retweet_count, row.comment_count) == (
                row.like_total,
                row.retweet_total,
                row.comment_total,
            ):
                continue

            logger.warning(
                f"Post {row.id} counters drifted: likes {row.like_count}->{row.like_total}, "
                f"retweets {row.retweet_count}->{row.retweet_total}, "
                f"comments {row.comment_count}->{row.comment_total}"
            )
            await db.execute(
                update(Post)
                .where(Post.id == row.id)
                .values(
                    like_count=row.like_total,
                    retweet_count=row.retweet_total,
                    comment_count=row.comment_total,
                )
                .execution_options(synchronize_session=False)
            )
            drifted += 1

        await db.commit()

    logger.info(f"Reconciled post counters, {drifted} of {len(rows)} posts drifted")
    return drifted
