import enum
import threading
import uuid
from datetime import datetime, timedelta, timezone

from sqlalchemy import DateTime, Enum, Index, String, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from couponhub.db.base import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


_last_created_at: datetime | None = None
_created_at_lock = threading.Lock()


def next_created_at() -> datetime:
    """Strictly increasing creation timestamp within this process.

    Two coupons created in the same microsecond would otherwise tie on
    ``created_at`` and fall back to random uuid order when claimed.
    """
    global _last_created_at
    with _created_at_lock:
        now = utcnow()
        if _last_created_at is not None and now <= _last_created_at:
            now = _last_created_at + timedelta(microseconds=1)
        _last_created_at = now
        return now


class CouponStatus(str, enum.Enum):
    available = "available"
    claimed = "claimed"


class Coupon(Base):
    __tablename__ = "coupons"
    __table_args__ = (Index("ix_coupons_status_created_at", "status", "created_at"),)

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    code: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    status: Mapped[CouponStatus] = mapped_column(
        Enum(CouponStatus, name="coupon_status"),
        nullable=False,
        default=CouponStatus.available,
        server_default=CouponStatus.available.value,
    )
    assigned_to: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    # Application-side defaults keep microsecond ordering for oldest-first selection.
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=next_created_at, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False,
    )
