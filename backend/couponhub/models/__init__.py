from couponhub.db.base import Base  # noqa: F401
from couponhub.models.admin import Admin  # noqa: F401
from couponhub.models.coupon import Coupon, CouponStatus  # noqa: F401

__all__ = [
    "Base",
    "Admin",
    "Coupon",
    "CouponStatus",
]
