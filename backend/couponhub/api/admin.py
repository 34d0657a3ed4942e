from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from couponhub.core.config import settings
from couponhub.core.dependencies import require_admin
from couponhub.core.rate_limit import per_identifier_limiter
from couponhub.db.session import get_session
from couponhub.models.admin import Admin
from couponhub.schemas.auth import AdminLoginRequest, TokenResponse
from couponhub.schemas.coupon import ClaimHistoryEntry, CouponRead, CouponUpdate, MessageResponse
from couponhub.services import auth as auth_service
from couponhub.services import coupons as coupons_service
from couponhub.services.abuse_guard import client_identity

router = APIRouter(prefix="/admin", tags=["admin"])

login_rate_limit = per_identifier_limiter(client_identity, settings.admin_login_rate_limit, 60, key="admin:login")


@router.post("/login", response_model=TokenResponse)
async def login(
    payload: AdminLoginRequest,
    _: None = Depends(login_rate_limit),
    session: AsyncSession = Depends(get_session),
) -> TokenResponse:
    token = await auth_service.login(session, payload.username, payload.password)
    return TokenResponse(token=token)


@router.get("/coupons", response_model=list[CouponRead])
async def list_coupons(
    session: AsyncSession = Depends(get_session),
    _: Admin = Depends(require_admin),
) -> list[CouponRead]:
    coupons = await coupons_service.list_coupons(session)
    return [CouponRead.model_validate(coupon) for coupon in coupons]


@router.get("/claim-history", response_model=list[ClaimHistoryEntry])
async def claim_history(
    session: AsyncSession = Depends(get_session),
    _: Admin = Depends(require_admin),
) -> list[ClaimHistoryEntry]:
    coupons = await coupons_service.claim_history(session)
    return [ClaimHistoryEntry.model_validate(coupon) for coupon in coupons]


@router.put("/coupon/update/{coupon_id}", response_model=CouponRead)
async def update_coupon(
    coupon_id: UUID,
    payload: CouponUpdate,
    session: AsyncSession = Depends(get_session),
    _: Admin = Depends(require_admin),
) -> CouponRead:
    coupon = await coupons_service.update_coupon(session, coupon_id, payload)
    return CouponRead.model_validate(coupon)


@router.delete("/coupon/delete/{coupon_id}", response_model=MessageResponse)
async def delete_coupon(
    coupon_id: UUID,
    session: AsyncSession = Depends(get_session),
    _: Admin = Depends(require_admin),
) -> MessageResponse:
    await coupons_service.delete_coupon(session, coupon_id)
    return MessageResponse(message="Coupon deleted successfully")
