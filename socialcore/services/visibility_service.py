from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_, or_, union, exists
from sqlalchemy.sql.selectable import CompoundSelect
import logging

from socialcore.models.block import Block, Mute
from socialcore.exceptions import BlockedError

logger = logging.getLogger(__name__)


class VisibilityGuard:
    """Side-effect-free block and mute predicates shared by write and read paths"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def is_blocked(self, user_a: int, user_b: int) -> bool:
        """True when either user has blocked the other"""
        stmt = select(
            exists().where(
                or_(
                    and_(Block.blocker_id == user_a, Block.blocked_id == user_b),
                    and_(Block.blocker_id == user_b, Block.blocked_id == user_a),
                )
            )
        )
        result = await self.db.execute(stmt)
        return bool(result.scalar())

    async def has_blocked(self, blocker_id: int, blocked_id: int) -> bool:
        stmt = select(
            exists().where(
                and_(Block.blocker_id == blocker_id, Block.blocked_id == blocked_id)
            )
        )
        result = await self.db.execute(stmt)
        return bool(result.scalar())

    async def is_muted(self, muter_id: int, muted_id: int) -> bool:
        stmt = select(
            exists().where(
                and_(Mute.muter_id == muter_id, Mute.muted_id == muted_id)
            )
        )
        result = await self.db.execute(stmt)
        return bool(result.scalar())

    async def can_interact(self, actor_id: int, target_id: int) -> bool:
        return not await self.is_blocked(actor_id, target_id)

    async def should_hide(self, viewer_id: int, author_id: int) -> bool:
        """Content from author is hidden from viewer when blocked either way or muted by viewer"""
        if await self.is_blocked(viewer_id, author_id):
            return True
        return await self.is_muted(viewer_id, author_id)

    async def ensure_can_interact(self, actor_id: int, target_id: int) -> None:
        if not await self.can_interact(actor_id, target_id):
            logger.warning(f"Blocked interaction: {actor_id} -> {target_id}")
            raise BlockedError()

    def hidden_user_ids(self, viewer_id: int) -> CompoundSelect:
        """Select of every user id hidden from viewer, for use with not_in() in read queries"""
        return union(
            select(Block.blocked_id).where(Block.blocker_id == viewer_id),
            select(Block.blocker_id).where(Block.blocked_id == viewer_id),
            select(Mute.muted_id).where(Mute.muter_id == viewer_id),
        )
