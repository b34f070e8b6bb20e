"""Voucher request and response schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Self
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from app.models.shared import as_utc
from app.models.user import CustomerLevel
from app.models.voucher import DiscountType

MAX_PERCENTAGE = Decimal("100")


class VoucherCreate(BaseModel):
    code: str = Field(..., min_length=1, max_length=64)
    description: str | None = None
    discount_type: DiscountType
    discount_value: Decimal = Field(..., gt=0)
    minimum_order_value: Decimal = Field(default=Decimal("0"), ge=0)
    valid_from: datetime
    valid_until: datetime
    usage_limit: int = Field(..., ge=1)
    product_ids: list[UUID] = Field(default_factory=list)
    all_users: bool = True
    customer_levels: list[CustomerLevel] = Field(default_factory=list)
    is_enabled: bool = True

    @field_validator("valid_from", "valid_until")
    @classmethod
    def normalize_timezone(cls, value: datetime) -> datetime:
        return as_utc(value)

    @model_validator(mode="after")
    def validate_window(self) -> Self:
        """Validate the voucher is valid for a non-empty period."""
        if self.valid_from > self.valid_until:
            raise ValueError("valid_from must not be after valid_until")
        return self

    @model_validator(mode="after")
    def validate_percentage(self) -> Self:
        """Validate percentage discounts stay within (0, 100]."""
        if self.discount_type == DiscountType.PERCENTAGE and self.discount_value > MAX_PERCENTAGE:
            raise ValueError("percentage discount_value must be at most 100")
        return self


class VoucherUpdate(BaseModel):
    code: str | None = Field(default=None, min_length=1, max_length=64)
    description: str | None = None
    discount_type: DiscountType | None = None
    discount_value: Decimal | None = Field(default=None, gt=0)
    minimum_order_value: Decimal | None = Field(default=None, ge=0)
    valid_from: datetime | None = None
    valid_until: datetime | None = None
    usage_limit: int | None = Field(default=None, ge=1)
    product_ids: list[UUID] | None = None
    all_users: bool | None = None
    customer_levels: list[CustomerLevel] | None = None
    is_enabled: bool | None = None

    @field_validator("valid_from", "valid_until")
    @classmethod
    def normalize_timezone(cls, value: datetime | None) -> datetime | None:
        return as_utc(value) if value is not None else None


class VoucherResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    code: str
    description: str | None = None
    discount_type: str
    discount_value: Decimal
    minimum_order_value: Decimal
    valid_from: datetime
    valid_until: datetime
    usage_limit: int
    used_count: int
    product_ids: list[UUID]
    all_users: bool
    customer_levels: list[str]
    is_enabled: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None


class PublicVoucherResponse(BaseModel):
    """Voucher fields safe to show to anonymous shoppers."""

    model_config = ConfigDict(from_attributes=True)

    code: str
    description: str | None = None
    discount_type: str
    discount_value: Decimal
    minimum_order_value: Decimal
    valid_from: datetime
    valid_until: datetime


class ApplyVoucherRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=64)
    order_value: Decimal = Field(..., ge=0)
    product_ids: list[UUID] = Field(default_factory=list)


class VoucherApplyResponse(BaseModel):
    voucher_id: UUID
    code: str
    discount_amount: Decimal
    final_amount: Decimal
    message: str = "Voucher applied"


class VoucherRejectionResponse(BaseModel):
    reason: str
    message: str
    cause: str | None = None


class RedemptionRequest(BaseModel):
    user_id: UUID


class RedemptionResponse(BaseModel):
    voucher_id: UUID
    user_id: UUID
    used_count: int
