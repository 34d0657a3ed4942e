from uuid import UUID

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from couponhub.core.config import settings
from couponhub.core.dependencies import require_admin
from couponhub.core.rate_limit import per_identifier_limiter
from couponhub.db.session import get_session
from couponhub.models.admin import Admin
from couponhub.schemas.coupon import ClaimResponse, CouponCreate, CouponRead, MessageResponse
from couponhub.services import coupons as coupons_service
from couponhub.services.abuse_guard import ClaimWindowGuard, client_identity, get_claim_guard

router = APIRouter(prefix="/coupons", tags=["coupons"])

claim_rate_limit = per_identifier_limiter(
    client_identity,
    settings.claim_rate_limit,
    settings.claim_rate_window_seconds,
    key="coupons:claim",
)

CLAIMED_MESSAGE = "Coupon claimed successfully"


def set_claimed_cookie(response: Response) -> None:
    response.set_cookie(
        settings.claim_cookie_name,
        "true",
        httponly=True,
        secure=settings.secure_cookies,
        samesite=settings.cookie_samesite.lower(),
        max_age=settings.claim_cookie_max_age_seconds,
        path="/",
    )


@router.get("/available", response_model=list[CouponRead])
async def available_coupons(session: AsyncSession = Depends(get_session)) -> list[CouponRead]:
    coupons = await coupons_service.list_available(session)
    return [CouponRead.model_validate(coupon) for coupon in coupons]


@router.get("/claim", response_model=ClaimResponse)
async def claim_coupon(
    request: Request,
    response: Response,
    _: None = Depends(claim_rate_limit),
    session: AsyncSession = Depends(get_session),
    guard: ClaimWindowGuard = Depends(get_claim_guard),
) -> ClaimResponse:
    identity = client_identity(request)
    coupon = await coupons_service.claim_for_identity(
        session, identity, guard, has_cookie=guard.has_cookie(request)
    )
    set_claimed_cookie(response)
    return ClaimResponse(message=CLAIMED_MESSAGE, coupon=coupon.code)


@router.put("/claim/{coupon_id}", response_model=ClaimResponse)
async def claim_coupon_by_id(
    coupon_id: UUID,
    request: Request,
    response: Response,
    _: None = Depends(claim_rate_limit),
    session: AsyncSession = Depends(get_session),
    guard: ClaimWindowGuard = Depends(get_claim_guard),
) -> ClaimResponse:
    identity = client_identity(request)
    coupon = await coupons_service.claim_for_identity(
        session, identity, guard, coupon_id=coupon_id, has_cookie=guard.has_cookie(request)
    )
    set_claimed_cookie(response)
    return ClaimResponse(message=CLAIMED_MESSAGE, coupon=coupon.code)


@router.post("/admin/add", status_code=status.HTTP_201_CREATED, response_model=MessageResponse)
async def add_coupon(
    payload: CouponCreate,
    session: AsyncSession = Depends(get_session),
    _: Admin = Depends(require_admin),
) -> MessageResponse:
    await coupons_service.create_coupon(session, payload.code)
    return MessageResponse(message="Coupon added successfully")
