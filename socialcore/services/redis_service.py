from typing import Optional
import logging

from redis.asyncio import Redis
from redis.exceptions import RedisError
from socialcore.config import settings

logger = logging.getLogger(__name__)


class RedisService:
    """Thin cache wrapper; a cache failure is logged and treated as a miss"""

    def __init__(self, client: Optional[Redis] = None):
        self.redis: Redis = client or Redis.from_url(settings.redis_url, decode_responses=True)

    async def get(self, key: str) -> Optional[str]:
        """Get the value of a key"""
        try:
            return await self.redis.get(key)
        except RedisError as e:
            logger.warning(f"Redis get failed for {key}: {e}")
            return None

    async def setex(self, key: str, seconds: int, value: str) -> None:
        """Set a key with an expiration in seconds"""
        try:
            await self.redis.setex(key, seconds, value)
        except RedisError as e:
            logger.warning(f"Redis setex failed for {key}: {e}")

    async def delete(self, key: str) -> None:
        """Delete a key"""
        try:
            await self.redis.delete(key)
        except RedisError as e:
            logger.warning(f"Redis delete failed for {key}: {e}")

    async def close(self) -> None:
        """Close the Redis connection"""
        await self.redis.aclose()
