"""Voucher service: preview, discovery, redemption and administration."""

import logging
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.shared import as_utc, utc_now
from app.models.voucher import DiscountType, Voucher
from app.repositories.product_repository import ProductRepository
from app.repositories.user_repository import UserRepository
from app.repositories.voucher_repository import VoucherRepository
from app.schemas.voucher import MAX_PERCENTAGE, VoucherCreate, VoucherUpdate
from app.services.voucher_discount import DiscountOutcome, calculate_discount
from app.services.voucher_eligibility import (
    REJECTION_MESSAGES,
    OrderContext,
    RejectionReason,
    evaluate_eligibility,
)

logger = logging.getLogger(__name__)


class VoucherConflictError(ValueError):
    """Raised when a voucher code is already taken by another voucher."""


@dataclass
class Rejection:
    """A routine business refusal, returned rather than raised."""

    reason: RejectionReason
    message: str
    cause: RejectionReason | None = None

    @classmethod
    def of(cls, reason: RejectionReason, cause: RejectionReason | None = None) -> "Rejection":
        return cls(reason=reason, message=REJECTION_MESSAGES[reason], cause=cause)


@dataclass
class RedemptionSuccess:
    voucher_id: UUID
    user_id: UUID
    used_count: int


class VoucherService:
    """Service for voucher business logic."""

    def __init__(self, db: Session):
        self.db = db
        self.voucher_repo = VoucherRepository(db)
        self.user_repo = UserRepository(db)
        self.product_repo = ProductRepository(db)

    def preview_apply(
        self,
        code: str,
        order: OrderContext,
        now: datetime | None = None,
    ) -> DiscountOutcome | Rejection:
        """Show what ``code`` would take off ``order`` without consuming it.

        Raises:
            ValueError: If the ordering user does not exist.
        """
        voucher = self.voucher_repo.get_by_code(code)
        if not voucher:
            return Rejection.of(RejectionReason.NOT_FOUND)

        customer_level = self._resolve_customer_level(order)
        result = evaluate_eligibility(
            voucher,
            customer_level,
            order,
            now=now,
            redeemed_by_user=self.voucher_repo.has_redeemed(voucher.id, order.user_id),
        )
        if not result.passed:
            logger.debug("Voucher %s rejected for user %s: %s", code, order.user_id, result.reason)
            return Rejection.of(result.reason)  # type: ignore[arg-type]

        return calculate_discount(voucher, order.subtotal)

    def find_applicable(
        self,
        order: OrderContext,
        check_minimum: bool = True,
        now: datetime | None = None,
    ) -> list[Voucher]:
        """Vouchers the user could apply to ``order``, biggest discount value first.

        Raises:
            ValueError: If the ordering user does not exist.
        """
        customer_level = self._resolve_customer_level(order)
        return self.voucher_repo.find_applicable(
            user_id=order.user_id,
            customer_level=customer_level,
            product_ids=order.product_ids,
            subtotal=order.subtotal if check_minimum else None,
            now=now,
        )

    def commit_redemption(self, voucher_id: UUID, user_id: UUID) -> RedemptionSuccess | Rejection:
        """Record that ``user_id`` consumed ``voucher_id``.

        Call once, when the order is irrevocably confirmed. A second call for
        the same pair is rejected; retries are the caller's decision.

        Store failures propagate as SQLAlchemy exceptions.
        """
        try:
            redeemed = self.voucher_repo.redeem(voucher_id, user_id)
        except SQLAlchemyError:
            logger.exception("Voucher store failed redeeming %s for user %s", voucher_id, user_id)
            raise

        if redeemed:
            used_count = self.voucher_repo.get_used_count(voucher_id) or 0
            logger.info(
                "Voucher %s redeemed by user %s (%d used)", voucher_id, user_id, used_count
            )
            return RedemptionSuccess(voucher_id=voucher_id, user_id=user_id, used_count=used_count)

        cause = self._conflict_cause(voucher_id, user_id)
        logger.warning(
            "Voucher %s redemption conflict for user %s: %s",
            voucher_id,
            user_id,
            cause.value if cause else "unknown",
        )
        return Rejection.of(RejectionReason.COMMIT_CONFLICT, cause=cause)

    def _conflict_cause(self, voucher_id: UUID, user_id: UUID) -> RejectionReason | None:
        """Best-effort explanation of a failed redemption, read after the fact."""
        voucher = self.voucher_repo.get_by_id(voucher_id)
        if voucher is None:
            return RejectionReason.NOT_FOUND
        if self.voucher_repo.has_redeemed(voucher_id, user_id):
            return RejectionReason.ALREADY_REDEEMED_BY_USER
        if voucher.used_count >= voucher.usage_limit:
            return RejectionReason.EXHAUSTED_LIMIT
        if self.user_repo.get_by_id(user_id) is None:
            return RejectionReason.NOT_FOUND
        return None

    def _resolve_customer_level(self, order: OrderContext) -> str | None:
        if order.customer_level is not None:
            return order.customer_level
        user = self.user_repo.get_by_id(order.user_id)
        if not user:
            raise ValueError(f"User {order.user_id} not found")
        return user.customer_level  # type: ignore[return-value]

    def get_voucher(self, voucher_id: UUID) -> Voucher | None:
        return self.voucher_repo.get_by_id(voucher_id)

    def get_valid_by_code(self, code: str, now: datetime | None = None) -> Voucher | None:
        """Voucher for ``code`` if it is enabled, in its window and not used up."""
        voucher = self.voucher_repo.get_by_code(code)
        if not voucher or not voucher.is_enabled:
            return None
        now = as_utc(now) if now is not None else utc_now()
        if not as_utc(voucher.valid_from) <= now <= as_utc(voucher.valid_until):  # type: ignore[arg-type]
            return None
        if voucher.used_count >= voucher.usage_limit:
            return None
        return voucher

    def list_vouchers(
        self,
        skip: int = 0,
        limit: int = 100,
        code: str | None = None,
        is_enabled: bool | None = None,
    ) -> tuple[list[Voucher], int]:
        vouchers = self.voucher_repo.get_all(skip=skip, limit=limit, code=code, is_enabled=is_enabled)
        return vouchers, self.voucher_repo.count(code=code, is_enabled=is_enabled)

    def list_public_active(self, skip: int = 0, limit: int = 100) -> list[Voucher]:
        return self.voucher_repo.list_public_active(skip=skip, limit=limit)

    def create_voucher(self, data: VoucherCreate) -> Voucher:
        """Create a voucher after checking its code and product scope.

        Raises:
            VoucherConflictError: If the code is already used.
            ValueError: If a scoped product does not exist.
        """
        if self.voucher_repo.code_exists(data.code):
            raise VoucherConflictError(f"Voucher code '{data.code}' already exists")
        self._check_products(data.product_ids)

        voucher = self.voucher_repo.create(data)
        logger.info("Created voucher %s (%s)", voucher.code, voucher.id)
        return voucher

    def update_voucher(self, voucher_id: UUID, data: VoucherUpdate) -> Voucher | None:
        """Partially update a voucher. Returns None if it does not exist.

        Raises:
            VoucherConflictError: If the new code belongs to another voucher.
            ValueError: If the merged voucher would be invalid.
        """
        voucher = self.voucher_repo.get_by_id(voucher_id)
        if not voucher:
            return None

        if data.code is not None and self.voucher_repo.code_exists(data.code, exclude_id=voucher_id):
            raise VoucherConflictError(f"Voucher code '{data.code}' is already used by another voucher")
        if data.product_ids is not None:
            self._check_products(data.product_ids)

        valid_from = data.valid_from or as_utc(voucher.valid_from)  # type: ignore[arg-type]
        valid_until = data.valid_until or as_utc(voucher.valid_until)  # type: ignore[arg-type]
        if valid_from > valid_until:
            raise ValueError("valid_from must not be after valid_until")

        discount_type = data.discount_type or voucher.discount_type
        discount_value = data.discount_value or voucher.discount_value
        if discount_type == DiscountType.PERCENTAGE.value and discount_value > MAX_PERCENTAGE:
            raise ValueError("percentage discount_value must be at most 100")

        if data.usage_limit is not None and data.usage_limit < voucher.used_count:
            raise ValueError(
                f"usage_limit cannot be lower than the {voucher.used_count} redemptions already made"
            )

        updated = self.voucher_repo.update(voucher_id, data)
        logger.info("Updated voucher %s", voucher_id)
        return updated

    def delete_voucher(self, voucher_id: UUID) -> bool:
        deleted = self.voucher_repo.delete(voucher_id)
        if deleted:
            logger.info("Deleted voucher %s", voucher_id)
        return deleted

    def _check_products(self, product_ids: list[UUID]) -> None:
        missing = self.product_repo.missing_ids(product_ids)
        if missing:
            raise ValueError(f"Products not found: {', '.join(str(p) for p in missing)}")
