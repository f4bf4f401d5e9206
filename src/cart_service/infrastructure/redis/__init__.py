"""Redis infrastructure with graceful degradation."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator
from uuid import uuid4

import redis.asyncio as aioredis
import structlog

from cart_service.config import get_settings

logger = structlog.get_logger()

_redis_client: aioredis.Redis | None = None

# Delete the key only if this holder still owns it
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
            logger.warning("Redis unavailable, scan locking disabled", error=str(e))
            _redis_client = None
    return _redis_client


async def close_redis() -> None:
    """Close the Redis connection on shutdown."""
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


class ScanLock:
    """Per-shop mutual exclusion for abandonment scans.

    Without a Redis client every acquisition succeeds; the conditional writes
    in the repository still keep a scan from double-counting.
    """

    KEY_PREFIX = "cart_tracker:scan_lock:"

    def __init__(self, client: aioredis.Redis | None, ttl_seconds: int = 300):
        self.client = client
        self.ttl_seconds = ttl_seconds

    @asynccontextmanager
    async def hold(self, shop: str) -> AsyncGenerator[bool, None]:
        """Yield True when this caller may scan ``shop``."""
        if not self.client:
            yield True
            return

        key = f"{self.KEY_PREFIX}{shop}"
        token = uuid4().hex
        try:
            acquired = bool(
                await self.client.set(key, token, nx=True, ex=self.ttl_seconds)
            )
        except Exception as e:
            logger.warning("Scan lock unavailable, scanning unlocked", shop=shop, error=str(e))
            yield True
            return

        try:
            yield acquired
        finally:
            if acquired:
                try:
                    await self.client.eval(_RELEASE_SCRIPT, 1, key, token)
                except Exception as e:
                    logger.warning("Scan lock release failed", shop=shop, error=str(e))

    async def health_check(self) -> bool:
        if not self.client:
            return False
        try:
            return await self.client.ping()
        except Exception:
            return False
