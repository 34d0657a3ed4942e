from __future__ import annotations

import logging
import math
import time
from collections import defaultdict, deque
from typing import Awaitable, Callable, DefaultDict, Deque, Hashable, Iterable

from fastapi import HTTPException, Request, status

from couponhub.core.redis_client import get_redis

WindowBucket = Deque[float]

DEFAULT_DETAIL = "Too many requests, please wait before trying again."

logger = logging.getLogger(__name__)


def _too_many_requests(detail: str, retry_after_seconds: int) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail=detail,
        headers={"Retry-After": str(max(1, retry_after_seconds))},
    )


def _prune(bucket: WindowBucket, now: float, window_seconds: int) -> None:
    while bucket and now - bucket[0] >= window_seconds:
        bucket.popleft()


def _enforce_limit(bucket: WindowBucket, limit: int, window_seconds: int, now: float, detail: str) -> None:
    _prune(bucket, now, window_seconds)
    if len(bucket) >= limit:
        retry_after = int(math.ceil(bucket[0] + window_seconds - now)) if bucket else 1
        raise _too_many_requests(detail, retry_after)
    bucket.append(now)


async def _enforce_limit_redis(
    *,
    key: Hashable,
    identifier: Hashable,
    limit: int,
    window_seconds: int,
    now: float,
    detail: str,
) -> bool:
    """Fixed-window counter shared between processes; False means Redis was not used."""
    client = get_redis()
    if client is None:
        return False
    try:
        now_int = int(now)
        window = now_int // max(1, window_seconds)
        redis_key = f"rate_limit:{key}:{identifier}:{window}"
        count = await client.incr(redis_key)
        if count == 1:
            await client.expire(redis_key, window_seconds)
    except Exception as exc:
        logger.warning("redis_rate_limit_failed", extra={"error": str(exc)})
        return False
    if int(count) > limit:
        raise _too_many_requests(detail, window_seconds - (now_int % max(1, window_seconds)))
    return True


def per_identifier_limiter(
    identifier_fn: Callable[[Request], Hashable],
    limit: int,
    window_seconds: int,
    key: Hashable,
    detail: str = DEFAULT_DETAIL,
) -> Callable[[Request], Awaitable[None]]:
    """
    Sliding-window rate limiter keyed on a per-request identifier.

    Args:
        identifier_fn: maps the request to an identifier (client address, requester identity).
        limit: max requests allowed in the window.
        window_seconds: rolling window length in seconds.
        key: namespace for the buckets (e.g. "coupons:claim").
        detail: message returned with the 429 response.
    """
    buckets: DefaultDict[Hashable, WindowBucket] = defaultdict(deque)

    async def dependency(request: Request) -> None:
        if limit <= 0:
            return
        ident = identifier_fn(request)
        now = time.time()
        enforced = await _enforce_limit_redis(
            key=key, identifier=ident, limit=limit, window_seconds=window_seconds, now=now, detail=detail
        )
        if not enforced:
            _enforce_limit(buckets[ident], limit, window_seconds, now, detail)

    dependency.buckets = buckets  # type: ignore[attr-defined]
    return dependency


def reset_buckets(buckets: Iterable[DefaultDict[Hashable, WindowBucket]]) -> None:
    """Helper for tests to clear limiter state."""
    for bucket in buckets:
        bucket.clear()
