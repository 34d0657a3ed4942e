from __future__ import annotations

import logging

from redis.asyncio import Redis

from couponhub.core.config import settings

logger = logging.getLogger(__name__)

# Shared by the claim and login rate limiters when several API workers run.
_client: Redis | None = None


def get_redis() -> Redis | None:
    """Return the shared Redis client, or None when REDIS_URL is not configured."""
    global _client
    url = (settings.redis_url or "").strip()
    if not url:
        return None
    if _client is None:
        _client = Redis.from_url(url, encoding="utf-8", decode_responses=True)
    return _client


async def redis_ready() -> bool:
    """True when Redis answers a PING, or when no Redis is configured."""
    client = get_redis()
    if client is None:
        return True
    try:
        return bool(await client.ping())
    except Exception as exc:
        logger.warning("redis_ping_failed", extra={"error": str(exc)})
        return False


async def close_redis() -> None:
    global _client
    client, _client = _client, None
    if client is not None:
        try:
            await client.aclose()
        except Exception:
            logger.exception("redis_close_failed")
