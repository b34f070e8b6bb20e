"""Voucher models: discount definitions, their scopes and redemptions."""

from enum import Enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import relationship

from app.core.database import Base
from app.models.shared import UUIDType, generate_uuid, utc_now


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED_AMOUNT = "fixed"


class Voucher(Base):
    """A discount code with its usage counters.

    ``used_count`` and the ``redemptions`` rows change only through
    ``VoucherRepository.redeem``.
    """

    __tablename__ = "vouchers"
    __table_args__ = (
        CheckConstraint(
            "used_count >= 0 AND used_count <= usage_limit", name="ck_vouchers_used_count"
        ),
        CheckConstraint("usage_limit >= 1", name="ck_vouchers_usage_limit"),
        CheckConstraint("valid_from <= valid_until", name="ck_vouchers_window"),
    )

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    code = Column(String(64), unique=True, index=True, nullable=False)
    description = Column(Text, nullable=True)

    discount_type = Column(String(20), nullable=False)
    discount_value = Column(Numeric(12, 4), nullable=False)
    minimum_order_value = Column(Numeric(12, 4), nullable=False, default=0)

    valid_from = Column(DateTime(timezone=True), nullable=False)
    valid_until = Column(DateTime(timezone=True), nullable=False, index=True)

    usage_limit = Column(Integer, nullable=False)
    used_count = Column(Integer, nullable=False, default=0)

    all_users = Column(Boolean, nullable=False, default=True)
    is_enabled = Column(Boolean, nullable=False, default=True, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    product_scope = relationship(
        "VoucherProduct", cascade="all, delete-orphan", lazy="selectin"
    )
    audience_levels = relationship(
        "VoucherCustomerLevel", cascade="all, delete-orphan", lazy="selectin"
    )
    redemptions = relationship("VoucherRedemption", cascade="all, delete-orphan")

    @property
    def product_ids(self) -> list:
        return [row.product_id for row in self.product_scope]

    @property
    def customer_levels(self) -> list[str]:
        return [row.level for row in self.audience_levels]

    @property
    def redeemed_user_ids(self) -> set:
        return {row.user_id for row in self.redemptions}


class VoucherProduct(Base):
    """A product a voucher is restricted to. No rows means every product."""

    __tablename__ = "voucher_products"
    __table_args__ = (
        UniqueConstraint("voucher_id", "product_id", name="uq_voucher_products_voucher_product"),
    )

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    voucher_id = Column(
        UUIDType, ForeignKey("vouchers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id = Column(
        UUIDType, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )


class VoucherCustomerLevel(Base):
    """A customer level allowed to use a voucher when ``all_users`` is off."""

    __tablename__ = "voucher_customer_levels"
    __table_args__ = (
        UniqueConstraint("voucher_id", "level", name="uq_voucher_customer_levels_voucher_level"),
    )

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    voucher_id = Column(
        UUIDType, ForeignKey("vouchers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    level = Column(String(20), nullable=False)


class VoucherRedemption(Base):
    """One user's consumption of a voucher. At most one row per pair."""

    __tablename__ = "voucher_redemptions"
    __table_args__ = (
        UniqueConstraint("voucher_id", "user_id", name="uq_voucher_redemptions_voucher_user"),
    )

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    voucher_id = Column(
        UUIDType, ForeignKey("vouchers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id = Column(
        UUIDType, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    redeemed_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
