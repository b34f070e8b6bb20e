"""Discount arithmetic for vouchers: percentage or fixed, clamped to the order subtotal."""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any
from uuid import UUID

from app.models.voucher import DiscountType

AMOUNT_QUANTUM = Decimal("0.0001")


@dataclass
class DiscountOutcome:
    """Result of pricing an order with a voucher."""

    voucher_id: UUID | None
    code: str | None
    discount_amount: Decimal
    final_amount: Decimal


def calculate_discount(voucher: Any, subtotal: Decimal) -> DiscountOutcome:
    """Price ``subtotal`` with ``voucher``.

    The discount is clamped to ``[0, subtotal]`` whatever the configured value,
    so the payable amount is never negative.
    """
    subtotal = Decimal(str(subtotal))
    value = Decimal(str(voucher.discount_value))

    if voucher.discount_type == DiscountType.PERCENTAGE.value:
        raw = subtotal * (value / Decimal(100))
    else:
        raw = value

    discount = min(raw, subtotal)
    discount = max(discount, Decimal("0"))
    discount = discount.quantize(AMOUNT_QUANTUM, rounding=ROUND_HALF_UP)
    # Rounding half up can push a clamped discount past the subtotal
    if discount > subtotal:
        discount = max(subtotal, Decimal("0"))

    return DiscountOutcome(
        voucher_id=voucher.id,
        code=voucher.code,
        discount_amount=discount,
        final_amount=subtotal - discount,
    )
