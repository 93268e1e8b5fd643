"""Redis infrastructure with graceful degradation."""

from uuid import uuid4

import redis.asyncio as aioredis
import structlog

from restock_service.config import get_settings

logger = structlog.get_logger()

_redis_client: aioredis.Redis | None = None

# Delete the key only if we still own it
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


async def get_redis_client() -> aioredis.Redis | None:
    """Get or create the global async Redis client."""
    global _redis_client
    if _redis_client is None:
        settings = get_settings()
        try:
            _redis_client = aioredis.from_url(
                settings.redis_url,
                decode_responses=False,
                socket_connect_timeout=2,
                socket_timeout=2,
                retry_on_timeout=True,
            )
            await _redis_client.ping()
            logger.info("Redis connection established")
        except Exception as e:
            logger.warning("Redis unavailable, distributed locking disabled", error=str(e))
            _redis_client = None
    return _redis_client


async def close_redis() -> None:
    """Close the Redis connection on shutdown."""
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


class RedisRunLock:
    """
    Cross-process "processor is running" flag (SET NX EX).

    No-ops (always acquires) if Redis is unavailable, leaving only the
    in-process lock in force.
    """

    def __init__(self, client: aioredis.Redis | None, key: str, ttl_seconds: int = 300):
        self.client = client
        self.key = key
        self.ttl_seconds = ttl_seconds
        self._token: bytes | None = None

    async def acquire(self) -> bool:
        if not self.client:
            return True
        token = uuid4().hex.encode()
        try:
            acquired = await self.client.set(self.key, token, nx=True, ex=self.ttl_seconds)
        except Exception as e:
            logger.warning("Run lock acquire failed, continuing without it", key=self.key, error=str(e))
            return True
        if acquired:
            self._token = token
            return True
        return False

    async def release(self) -> None:
        if not self.client or self._token is None:
            return
        try:
            await self.client.eval(_RELEASE_SCRIPT, 1, self.key, self._token)
        except Exception as e:
            logger.warning("Run lock release failed", key=self.key, error=str(e))
        finally:
            self._token = None

    async def health_check(self) -> bool:
        if not self.client:
            return False
        try:
            return await self.client.ping()
        except Exception:
            return False
