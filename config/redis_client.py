"""
config/redis_client.py
Redis holds two kinds of short-lived state for the API: the deny-list of
logged-out admin tokens and the per-IP request counters for anonymous
traffic. Nothing in Redis is authoritative; the database is.
"""

from typing import Optional
import redis.asyncio as aioredis

from config.settings import settings

DENIED_TOKEN_PREFIX = "auth:denied:"
RATE_LIMIT_PREFIX = "rate:anon:"


# ── Global client (initialized on startup) ───────────────────
redis_client: Optional[aioredis.Redis] = None


async def init_redis() -> None:
    global redis_client
    redis_client = aioredis.from_url(
        settings.REDIS_URL,
        encoding="utf-8",
        decode_responses=True,
        max_connections=50,
    )
    await redis_client.ping()


async def close_redis() -> None:
    global redis_client
    if redis_client:
        await redis_client.aclose()
        redis_client = None


def get_redis() -> aioredis.Redis:
    """FastAPI dependency. Overridden with an in-memory fake in tests."""
    if not redis_client:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return redis_client


class RedisCache:
    """Token deny-list and rate-limit counters over one Redis client."""

    def __init__(self, client: aioredis.Redis):
        self.client = client

    # ── Token Deny-List ───────────────────────────────────────
    async def revoke_token(self, jti: str, ttl_seconds: int) -> None:
        """Deny the token until it would have expired anyway."""
        await self.client.setex(f"{DENIED_TOKEN_PREFIX}{jti}", ttl_seconds, "1")

    async def is_token_revoked(self, jti: str) -> bool:
        return await self.client.exists(f"{DENIED_TOKEN_PREFIX}{jti}") == 1

    # ── Anonymous Rate Limit ──────────────────────────────────
    async def check_rate_limit(self, client_ip: str, limit: int, window_seconds: int = 60) -> bool:
        """
        Fixed window counter per client IP. The window starts with the
        first request. Returns False once the limit is exceeded.
        """
        key = f"{RATE_LIMIT_PREFIX}{client_ip}"
        count = await self.client.incr(key)
        if count == 1:
            await self.client.expire(key, window_seconds)
        return count <= limit
