import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Sequence

from fastapi import HTTPException, status
from sqlalchemy import ColumnElement, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from couponhub.core import metrics
from couponhub.db.locks import transaction_lock
from couponhub.models.coupon import Coupon, CouponStatus
from couponhub.schemas.coupon import CouponUpdate
from couponhub.services.abuse_guard import ClaimWindowGuard

logger = logging.getLogger(__name__)

NO_COUPONS_AVAILABLE = "No coupons available"
COUPON_NOT_AVAILABLE = "Coupon not available"
COUPON_NOT_FOUND = "Coupon not found"
DUPLICATE_CODE = "Coupon code already exists"


async def _claim_matching(
    session: AsyncSession,
    criterion: ColumnElement[bool],
    identity: str,
    now: datetime | None,
) -> Coupon | None:
    # Match and set in one statement; the status predicate makes a lost race update zero rows.
    stmt = (
        update(Coupon)
        .where(criterion, Coupon.status == CouponStatus.available)
        .values(
            status=CouponStatus.claimed,
            assigned_to=identity,
            updated_at=now or datetime.now(timezone.utc),
        )
        .returning(Coupon)
        .execution_options(synchronize_session="fetch")
    )
    coupon = (await session.scalars(stmt)).first()
    await session.commit()
    return coupon


def _record_claim(coupon: Coupon | None, identity: str, message: str) -> Coupon:
    if coupon is None:
        metrics.record_claim_not_found()
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=message)
    metrics.record_claim_success()
    logger.info("coupon_claimed", extra={"coupon_id": str(coupon.id), "identity": identity})
    return coupon


async def claim_next(session: AsyncSession, identity: str, *, now: datetime | None = None) -> Coupon:
    """Assign the oldest available coupon to ``identity``."""
    candidate = aliased(Coupon)
    oldest_available = (
        select(candidate.id)
        .where(candidate.status == CouponStatus.available)
        .order_by(candidate.created_at, candidate.id)
        .limit(1)
        .with_for_update(skip_locked=True)
        .scalar_subquery()
    )
    coupon = await _claim_matching(session, Coupon.id == oldest_available, identity, now)
    return _record_claim(coupon, identity, NO_COUPONS_AVAILABLE)


async def claim_by_id(
    session: AsyncSession, coupon_id: uuid.UUID, identity: str, *, now: datetime | None = None
) -> Coupon:
    coupon = await _claim_matching(session, Coupon.id == coupon_id, identity, now)
    return _record_claim(coupon, identity, COUPON_NOT_AVAILABLE)


async def claim_for_identity(
    session: AsyncSession,
    identity: str,
    guard: ClaimWindowGuard,
    *,
    coupon_id: uuid.UUID | None = None,
    has_cookie: bool = False,
    now: datetime | None = None,
) -> Coupon:
    """
    Run the abuse check and the claim as one step per identity.

    Parallel requests from the same requester queue on the identity lock, so
    the second one sees the first claim and is rejected by the guard.
    """
    async with transaction_lock(session, f"claim:{identity}"):
        await guard.check(session, identity, now=now, has_cookie=has_cookie)
        if coupon_id is None:
            return await claim_next(session, identity, now=now)
        return await claim_by_id(session, coupon_id, identity, now=now)


async def list_available(session: AsyncSession) -> Sequence[Coupon]:
    result = await session.execute(
        select(Coupon).where(Coupon.status == CouponStatus.available).order_by(Coupon.created_at, Coupon.id)
    )
    return result.scalars().all()


async def list_coupons(session: AsyncSession) -> Sequence[Coupon]:
    result = await session.execute(select(Coupon).order_by(Coupon.created_at, Coupon.id))
    return result.scalars().all()


async def claim_history(session: AsyncSession) -> Sequence[Coupon]:
    result = await session.execute(
        select(Coupon).where(Coupon.status == CouponStatus.claimed).order_by(Coupon.updated_at.desc())
    )
    return result.scalars().all()


async def get_coupon_by_code(session: AsyncSession, code: str) -> Coupon | None:
    result = await session.execute(select(Coupon).where(Coupon.code == code))
    return result.scalar_one_or_none()


async def _commit_or_duplicate(session: AsyncSession) -> None:
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=DUPLICATE_CODE)


async def create_coupon(session: AsyncSession, code: str) -> Coupon:
    if await get_coupon_by_code(session, code):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=DUPLICATE_CODE)
    coupon = Coupon(code=code, status=CouponStatus.available)
    session.add(coupon)
    await _commit_or_duplicate(session)
    await session.refresh(coupon)
    logger.info("coupon_created", extra={"coupon_id": str(coupon.id)})
    return coupon


def _changes(payload: CouponUpdate) -> dict[str, Any]:
    data = payload.model_dump(exclude_unset=True)
    # An explicit null only makes sense for the assignee.
    return {key: value for key, value in data.items() if value is not None or key == "assigned_to"}


async def update_coupon(session: AsyncSession, coupon_id: uuid.UUID, payload: CouponUpdate) -> Coupon:
    """Apply an admin edit. Claim invariants are not enforced for admins."""
    coupon = await session.get(Coupon, coupon_id)
    if coupon is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=COUPON_NOT_FOUND)
    changes = _changes(payload)
    if not changes:
        return coupon
    for field, value in changes.items():
        setattr(coupon, field, value)
    session.add(coupon)
    await _commit_or_duplicate(session)
    await session.refresh(coupon)
    logger.info("coupon_updated", extra={"coupon_id": str(coupon.id), "fields": sorted(changes)})
    return coupon


async def delete_coupon(session: AsyncSession, coupon_id: uuid.UUID) -> None:
    coupon = await session.get(Coupon, coupon_id)
    if coupon is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=COUPON_NOT_FOUND)
    await session.delete(coupon)
    await session.commit()
    logger.info("coupon_deleted", extra={"coupon_id": str(coupon_id)})
