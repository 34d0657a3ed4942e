from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from couponhub.models.coupon import CouponStatus


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _clean_code(value: str | None) -> str | None:
    if value is None:
        return value
    cleaned = value.strip()
    if not cleaned:
        raise ValueError("Coupon code must not be empty")
    return cleaned


class CouponCreate(_CamelModel):
    code: str = Field(max_length=64)

    @field_validator("code")
    @classmethod
    def validate_code(cls, value: str) -> str:
        return _clean_code(value)


class CouponUpdate(_CamelModel):
    status: CouponStatus | None = None
    code: str | None = Field(default=None, max_length=64)
    assigned_to: str | None = Field(default=None, max_length=255)

    @field_validator("code")
    @classmethod
    def validate_code(cls, value: str | None) -> str | None:
        return _clean_code(value)


class CouponRead(_CamelModel):
    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)

    id: UUID
    code: str
    status: CouponStatus
    assigned_to: str | None = None
    created_at: datetime
    updated_at: datetime


class ClaimHistoryEntry(_CamelModel):
    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)

    code: str
    assigned_to: str | None = None
    updated_at: datetime


class ClaimResponse(BaseModel):
    message: str
    coupon: str


class MessageResponse(BaseModel):
    message: str
