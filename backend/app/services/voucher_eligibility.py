"""Stateless voucher eligibility rules.

Nothing here touches the database: the evaluator works on whatever voucher
state the caller loaded, which may already be stale by the time an order is
confirmed. Redemption re-checks the cap and the per-user rule atomically.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from app.models.shared import as_utc, utc_now


class RejectionReason(str, Enum):
    NOT_FOUND = "not_found"
    DISABLED = "disabled"
    OUTSIDE_WINDOW = "outside_window"
    EXHAUSTED_LIMIT = "exhausted_limit"
    BELOW_MINIMUM = "below_minimum"
    ALREADY_REDEEMED_BY_USER = "already_redeemed_by_user"
    AUDIENCE_MISMATCH = "audience_mismatch"
    NO_ELIGIBLE_PRODUCT_IN_ORDER = "no_eligible_product_in_order"
    COMMIT_CONFLICT = "commit_conflict"


REJECTION_MESSAGES: dict[RejectionReason, str] = {
    RejectionReason.NOT_FOUND: "Voucher not found",
    RejectionReason.DISABLED: "Voucher has been disabled",
    RejectionReason.OUTSIDE_WINDOW: "Voucher is not yet valid or has expired",
    RejectionReason.EXHAUSTED_LIMIT: "Voucher has reached its usage limit",
    RejectionReason.BELOW_MINIMUM: "Order value is below the voucher minimum",
    RejectionReason.ALREADY_REDEEMED_BY_USER: "You have already used this voucher",
    RejectionReason.AUDIENCE_MISMATCH: "Voucher is not available for your customer level",
    RejectionReason.NO_ELIGIBLE_PRODUCT_IN_ORDER: (
        "Voucher does not apply to any product in this order"
    ),
    RejectionReason.COMMIT_CONFLICT: "Voucher could not be redeemed for this order",
}


@dataclass
class OrderContext:
    """The part of a cart or order that voucher rules look at."""

    user_id: UUID
    subtotal: Decimal
    product_ids: list[UUID] = field(default_factory=list)
    customer_level: str | None = None


@dataclass
class EligibilityResult:
    reason: RejectionReason | None = None

    @property
    def passed(self) -> bool:
        return self.reason is None


def evaluate_eligibility(
    voucher: Any,
    customer_level: str | None,
    order: OrderContext,
    now: datetime | None = None,
    redeemed_by_user: bool | None = None,
) -> EligibilityResult:
    """Decide whether ``voucher`` may be applied to ``order``.

    Checks run cheapest first and the first failure is reported:
    enabled, validity window, usage cap, minimum order value, previous
    redemption by this user, customer level, product scope.

    Args:
        voucher: A ``Voucher`` (or any object exposing the same attributes).
        customer_level: The ordering user's level, or None if unknown.
        order: The order being priced.
        now: Evaluation instant; defaults to the current UTC time.
        redeemed_by_user: Whether the ordering user already redeemed the
            voucher, when the caller looked it up. None falls back to the
            voucher's loaded redemptions.

    Returns:
        EligibilityResult whose ``reason`` is None on success.
    """
    now = as_utc(now) if now is not None else utc_now()

    if not voucher.is_enabled:
        return EligibilityResult(RejectionReason.DISABLED)

    if not as_utc(voucher.valid_from) <= now <= as_utc(voucher.valid_until):
        return EligibilityResult(RejectionReason.OUTSIDE_WINDOW)

    if voucher.used_count >= voucher.usage_limit:
        return EligibilityResult(RejectionReason.EXHAUSTED_LIMIT)

    if Decimal(str(order.subtotal)) < Decimal(str(voucher.minimum_order_value or 0)):
        return EligibilityResult(RejectionReason.BELOW_MINIMUM)

    if redeemed_by_user is None:
        redeemed_by_user = order.user_id in voucher.redeemed_user_ids
    if redeemed_by_user:
        return EligibilityResult(RejectionReason.ALREADY_REDEEMED_BY_USER)

    if not voucher.all_users and (
        customer_level is None or customer_level not in voucher.customer_levels
    ):
        return EligibilityResult(RejectionReason.AUDIENCE_MISMATCH)

    scope = set(voucher.product_ids)
    if scope and scope.isdisjoint(order.product_ids):
        return EligibilityResult(RejectionReason.NO_ELIGIBLE_PRODUCT_IN_ORDER)

    return EligibilityResult()
