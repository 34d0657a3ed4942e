import asyncio
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from fastapi import HTTPException
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from couponhub.core.config import settings
from couponhub.db.base import Base
from couponhub.models.coupon import Coupon
from couponhub.services import coupons as coupons_service
from couponhub.services.abuse_guard import ClaimWindowGuard, client_identity

CLAIMED_AT = datetime(2026, 5, 1, 10, 0, tzinfo=timezone.utc)


def test_window_blocks_until_it_elapses() -> None:
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)
    SessionLocal = async_sessionmaker(engine, expire_on_commit=False)
    guard = ClaimWindowGuard(timedelta(minutes=10))

    async def run_flow() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        async with SessionLocal() as session:
            session.add(Coupon(code="W-1"))
            await session.commit()
            await coupons_service.claim_next(session, "1.2.3.4", now=CLAIMED_AT)

            with pytest.raises(HTTPException) as exc:
                await guard.check(session, "1.2.3.4", now=CLAIMED_AT + timedelta(minutes=9))
            assert exc.value.status_code == 429
            assert exc.value.headers == {"Retry-After": "60"}

            # Exactly at the boundary the claim is still inside the window.
            with pytest.raises(HTTPException):
                await guard.check(session, "1.2.3.4", now=CLAIMED_AT + timedelta(minutes=10))

            await guard.check(session, "1.2.3.4", now=CLAIMED_AT + timedelta(minutes=10, seconds=1))
            await guard.check(session, "5.6.7.8", now=CLAIMED_AT)
        await engine.dispose()

    asyncio.run(run_flow())


def test_only_claimed_records_count() -> None:
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)
    SessionLocal = async_sessionmaker(engine, expire_on_commit=False)
    guard = ClaimWindowGuard(timedelta(minutes=10))

    async def run_flow() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        async with SessionLocal() as session:
            # Admin-reopened coupon still names the identity but is no longer claimed.
            session.add(Coupon(code="REOPENED", assigned_to="1.2.3.4", updated_at=CLAIMED_AT))
            await session.commit()
            assert await guard.recent_claim(session, "1.2.3.4", now=CLAIMED_AT) is None
            await guard.check(session, "1.2.3.4", now=CLAIMED_AT)
        await engine.dispose()

    asyncio.run(run_flow())


def test_cookie_only_counts_when_enforced() -> None:
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)
    SessionLocal = async_sessionmaker(engine, expire_on_commit=False)

    async def run_flow() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        async with SessionLocal() as session:
            await ClaimWindowGuard(timedelta(minutes=10)).check(session, "1.2.3.4", has_cookie=True)
            with pytest.raises(HTTPException) as exc:
                await ClaimWindowGuard(timedelta(minutes=10), enforce_cookie=True).check(
                    session, "1.2.3.4", has_cookie=True
                )
            assert exc.value.status_code == 429
        await engine.dispose()

    asyncio.run(run_flow())


def test_window_must_be_positive() -> None:
    with pytest.raises(ValueError):
        ClaimWindowGuard(timedelta(0))


def _request(host: str | None, forwarded: str | None = None) -> SimpleNamespace:
    headers = {"x-forwarded-for": forwarded} if forwarded is not None else {}
    client = SimpleNamespace(host=host) if host else None
    return SimpleNamespace(headers=headers, client=client)


def test_client_identity_ignores_forwarded_header_by_default(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "trust_forwarded_for", False)
    assert client_identity(_request("10.0.0.1", "1.2.3.4")) == "10.0.0.1"  # type: ignore[arg-type]
    assert client_identity(_request(None)) == "anonymous"  # type: ignore[arg-type]


def test_client_identity_uses_first_forwarded_hop_when_trusted(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "trust_forwarded_for", True)
    assert client_identity(_request("10.0.0.1", "1.2.3.4, 10.0.0.1")) == "1.2.3.4"  # type: ignore[arg-type]
    assert client_identity(_request("10.0.0.1", " ")) == "10.0.0.1"  # type: ignore[arg-type]
