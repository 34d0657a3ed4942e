"""Decides whether a requester may attempt a coupon claim.

The policy is a plain object so that the window or the whole rule can be
swapped through ``get_claim_guard`` without touching the allocator.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta, timezone
from functools import lru_cache

from fastapi import HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from couponhub.core import metrics
from couponhub.core.config import settings
from couponhub.models.coupon import Coupon, CouponStatus

logger = logging.getLogger(__name__)

WAIT_MESSAGE = "Wait before claiming again!"
BROWSER_LIMIT_MESSAGE = "Wait before claiming again! (Browser limit)"


def as_utc(value: datetime) -> datetime:
    # SQLite hands timestamps back naive; they are stored in UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def client_identity(request: Request) -> str:
    """Requester identity used for abuse tracking and claim assignment."""
    if settings.trust_forwarded_for:
        forwarded = request.headers.get("x-forwarded-for", "")
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
    if request.client and request.client.host:
        return request.client.host
    return "anonymous"


class ClaimWindowGuard:
    """Rejects a claim when the requester holds a coupon claimed within ``window``."""

    def __init__(self, window: timedelta, *, enforce_cookie: bool = False, cookie_name: str = "claimed") -> None:
        if window <= timedelta(0):
            raise ValueError("Claim window must be positive")
        self.window = window
        self.enforce_cookie = enforce_cookie
        self.cookie_name = cookie_name

    def has_cookie(self, request: Request) -> bool:
        return bool(request.cookies.get(self.cookie_name))

    async def recent_claim(self, session: AsyncSession, identity: str, *, now: datetime) -> Coupon | None:
        cutoff = now - self.window
        result = await session.execute(
            select(Coupon)
            .where(
                Coupon.assigned_to == identity,
                Coupon.status == CouponStatus.claimed,
                Coupon.updated_at >= cutoff,
            )
            .order_by(Coupon.updated_at.desc())
            .limit(1)
        )
        return result.scalars().first()

    async def check(
        self,
        session: AsyncSession,
        identity: str,
        *,
        now: datetime | None = None,
        has_cookie: bool = False,
    ) -> None:
        now = now or datetime.now(timezone.utc)
        if self.enforce_cookie and has_cookie:
            metrics.record_claim_rejected("cookie")
            logger.info("claim_rejected", extra={"identity": identity, "reason": "cookie"})
            raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail=BROWSER_LIMIT_MESSAGE)

        recent = await self.recent_claim(session, identity, now=now)
        if recent is None:
            return

        remaining = as_utc(recent.updated_at) + self.window - now
        retry_after = max(1, math.ceil(remaining.total_seconds()))
        metrics.record_claim_rejected("window")
        logger.info("claim_rejected", extra={"identity": identity, "reason": "window", "retry_after": retry_after})
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=WAIT_MESSAGE,
            headers={"Retry-After": str(retry_after)},
        )


@lru_cache
def get_claim_guard() -> ClaimWindowGuard:
    return ClaimWindowGuard(
        timedelta(minutes=settings.claim_window_minutes),
        enforce_cookie=settings.claim_cookie_enforced,
        cookie_name=settings.claim_cookie_name,
    )
