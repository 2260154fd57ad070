import logging
from typing import Optional

import redis.asyncio as redis

from ..models.redis_models import UserSessionRedis

logger = logging.getLogger(__name__)


class RedisClient:
    """
    Redis client for login sessions.
    """

    def __init__(self, pool: redis.ConnectionPool):
        self._redis = redis.Redis(connection_pool=pool, decode_responses=True)

    @staticmethod
    def _session_key(user_id: str) -> str:
        return f"users:{user_id}"

    async def save_user_session(self, user: UserSessionRedis, ttl: int):
        """Stores the user's login session with a TTL."""
        await self._redis.set(self._session_key(user.user_data.user_id), user.model_dump_json(), ex=ttl)

    async def get_user_session(self, user_id: str) -> Optional[UserSessionRedis]:
        user_json = await self._redis.get(self._session_key(user_id))
        return UserSessionRedis.model_validate_json(user_json) if user_json else None

    async def delete_user_session(self, user_id: str) -> int:
        return await self._redis.delete(self._session_key(user_id))
