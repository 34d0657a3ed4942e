import asyncio
import os
from collections.abc import Callable, Generator
from datetime import datetime, timedelta, timezone
from uuid import UUID

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

# Keep pytest output high-signal by disabling outbound Sentry capture in tests.
os.environ["SENTRY_DSN"] = ""

from couponhub.api import admin as admin_api
from couponhub.api import coupons as coupons_api
from couponhub.core import metrics, security
from couponhub.db.base import Base
from couponhub.db.session import get_session
from couponhub.main import app
from couponhub.models.admin import Admin
from couponhub.models.coupon import Coupon, CouponStatus

SEED_START = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def _clear_rate_limits_and_metrics() -> Generator[None, None, None]:
    # The in-memory rate-limit buckets are process-global and can leak across tests.
    for dep in (coupons_api.claim_rate_limit, admin_api.login_rate_limit):
        dep.buckets.clear()
    metrics.reset()
    yield
    for dep in (coupons_api.claim_rate_limit, admin_api.login_rate_limit):
        dep.buckets.clear()
    app.dependency_overrides.clear()


@pytest.fixture
def test_app() -> Generator[dict[str, object], None, None]:
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)
    SessionLocal = async_sessionmaker(engine, expire_on_commit=False)

    async def init_models() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(init_models())

    async def override_get_session():
        async with SessionLocal() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    client = TestClient(app)
    yield {"client": client, "session_factory": SessionLocal}
    client.close()
    app.dependency_overrides.clear()
    asyncio.run(engine.dispose())


@pytest.fixture
def seed_coupons(test_app: dict[str, object]) -> Callable[..., list[UUID]]:
    """Insert available coupons with strictly increasing creation times."""
    SessionLocal: async_sessionmaker = test_app["session_factory"]  # type: ignore[assignment]

    def _seed(*codes: str, start: datetime = SEED_START) -> list[UUID]:
        async def _insert() -> list[UUID]:
            async with SessionLocal() as session:
                coupons = [
                    Coupon(
                        code=code,
                        status=CouponStatus.available,
                        created_at=start + timedelta(seconds=idx),
                        updated_at=start + timedelta(seconds=idx),
                    )
                    for idx, code in enumerate(codes)
                ]
                session.add_all(coupons)
                await session.commit()
                return [coupon.id for coupon in coupons]

        return asyncio.run(_insert())

    return _seed


@pytest.fixture
def admin_token(test_app: dict[str, object]) -> Callable[..., tuple[str, UUID]]:
    SessionLocal: async_sessionmaker = test_app["session_factory"]  # type: ignore[assignment]

    def _create(username: str = "admin", password: str = "adminpass") -> tuple[str, UUID]:
        async def _insert() -> UUID:
            async with SessionLocal() as session:
                admin = Admin(username=username, password_hash=password)
                session.add(admin)
                await session.commit()
                return admin.id

        admin_id = asyncio.run(_insert())
        return security.create_access_token(str(admin_id)), admin_id

    return _create
