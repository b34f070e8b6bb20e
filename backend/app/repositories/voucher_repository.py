"""Voucher repository for data access."""

from collections.abc import Iterable
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Query, Session

from app.models.shared import as_utc, utc_now
from app.models.voucher import Voucher, VoucherCustomerLevel, VoucherProduct, VoucherRedemption
from app.schemas.voucher import VoucherCreate, VoucherUpdate


class VoucherRepository:
    """Repository for Voucher model."""

    def __init__(self, db: Session):
        self.db = db

    def _filtered(self, code: str | None = None, is_enabled: bool | None = None) -> Query:  # type: ignore[type-arg]
        query = self.db.query(Voucher)
        if code:
            query = query.filter(Voucher.code.icontains(code, autoescape=True))
        if is_enabled is not None:
            query = query.filter(Voucher.is_enabled.is_(is_enabled))
        return query

    def get_all(
        self,
        skip: int = 0,
        limit: int = 100,
        code: str | None = None,
        is_enabled: bool | None = None,
    ) -> list[Voucher]:
        """Get vouchers, newest first, optionally filtered by code substring and state."""
        return (
            self._filtered(code, is_enabled)
            .order_by(Voucher.created_at.desc(), Voucher.code.asc())
            .offset(skip)
            .limit(limit)
            .all()
        )

    def count(self, code: str | None = None, is_enabled: bool | None = None) -> int:
        return self._filtered(code, is_enabled).count()

    def get_by_id(self, voucher_id: UUID) -> Voucher | None:
        return self.db.query(Voucher).filter(Voucher.id == voucher_id).first()

    def get_by_code(self, code: str) -> Voucher | None:
        """Get a voucher by its exact, case-sensitive code."""
        return self.db.query(Voucher).filter(Voucher.code == code).first()

    def code_exists(self, code: str, exclude_id: UUID | None = None) -> bool:
        query = self.db.query(Voucher.id).filter(Voucher.code == code)
        if exclude_id is not None:
            query = query.filter(Voucher.id != exclude_id)
        return query.first() is not None

    def has_redeemed(self, voucher_id: UUID, user_id: UUID) -> bool:
        return (
            self.db.query(VoucherRedemption.id)
            .filter(
                VoucherRedemption.voucher_id == voucher_id,
                VoucherRedemption.user_id == user_id,
            )
            .first()
            is not None
        )

    def create(self, data: VoucherCreate) -> Voucher:
        voucher = Voucher(
            code=data.code,
            description=data.description,
            discount_type=data.discount_type.value,
            discount_value=data.discount_value,
            minimum_order_value=data.minimum_order_value,
            valid_from=data.valid_from,
            valid_until=data.valid_until,
            usage_limit=data.usage_limit,
            used_count=0,
            all_users=data.all_users,
            is_enabled=data.is_enabled,
        )
        self._set_product_scope(voucher, data.product_ids)
        self._set_audience_levels(voucher, [level.value for level in data.customer_levels])
        self.db.add(voucher)
        self.db.commit()
        self.db.refresh(voucher)
        return voucher

    def update(self, voucher_id: UUID, data: VoucherUpdate) -> Voucher | None:
        """Apply a partial update. Counters and redemptions are never touched.

        Raises:
            ValueError: If the database rejects the result, e.g. ``usage_limit``
                below a ``used_count`` that grew after the caller checked it.
        """
        voucher = self.get_by_id(voucher_id)
        if not voucher:
            return None

        update_data = data.model_dump(exclude_unset=True)
        product_ids = update_data.pop("product_ids", None)
        levels = update_data.pop("customer_levels", None)

        if update_data.get("discount_type") is not None:
            update_data["discount_type"] = update_data["discount_type"].value

        for key, value in update_data.items():
            if value is None and key != "description":
                continue
            setattr(voucher, key, value)

        if product_ids is not None:
            self._set_product_scope(voucher, product_ids)
        if levels is not None:
            self._set_audience_levels(voucher, [level.value for level in levels])

        try:
            self.db.commit()
        except IntegrityError:
            # Redemptions or another voucher's code changed since the caller checked
            self.db.rollback()
            raise ValueError(
                "Voucher update conflicts with its current redemptions or another voucher's code"
            ) from None
        self.db.refresh(voucher)
        return voucher

    def delete(self, voucher_id: UUID) -> bool:
        voucher = self.get_by_id(voucher_id)
        if not voucher:
            return False

        self.db.delete(voucher)
        self.db.commit()
        return True

    def redeem(self, voucher_id: UUID, user_id: UUID) -> bool:
        """Atomically consume one use of a voucher for a user.

        The counter increment is conditional on the cap and on the user having
        no redemption row, evaluated by the database when the UPDATE runs. The
        redemption row is inserted in the same transaction, and its unique
        constraint rejects a same-user race that slipped past the NOT EXISTS.

        Returns False, with nothing written, when either condition fails.
        """
        already_redeemed = (
            select(VoucherRedemption.id)
            .where(
                VoucherRedemption.voucher_id == voucher_id,
                VoucherRedemption.user_id == user_id,
            )
            .exists()
        )
        stmt = (
            update(Voucher)
            .where(
                Voucher.id == voucher_id,
                Voucher.used_count < Voucher.usage_limit,
                ~already_redeemed,
            )
            .values(used_count=Voucher.used_count + 1)
            .execution_options(synchronize_session=False)
        )

        try:
            result = self.db.execute(stmt)
            if result.rowcount != 1:  # type: ignore[attr-defined]
                self.db.rollback()
                return False
            self.db.add(
                VoucherRedemption(voucher_id=voucher_id, user_id=user_id, redeemed_at=utc_now())
            )
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            return False
        return True

    def get_used_count(self, voucher_id: UUID) -> int | None:
        row = self.db.query(Voucher.used_count).filter(Voucher.id == voucher_id).first()
        return row[0] if row else None

    def find_applicable(
        self,
        user_id: UUID,
        customer_level: str | None,
        product_ids: Iterable[UUID],
        subtotal: Decimal | None = None,
        now: datetime | None = None,
    ) -> list[Voucher]:
        """Candidate vouchers for a user's order, biggest discount value first.

        Every predicate runs in the database. ``subtotal=None`` skips the
        minimum order check for callers that do not know the order value yet.
        """
        now = as_utc(now) if now is not None else utc_now()
        product_ids = list(product_ids)

        redeemed_by_user = (
            select(VoucherRedemption.id)
            .where(
                VoucherRedemption.voucher_id == Voucher.id,
                VoucherRedemption.user_id == user_id,
            )
            .exists()
        )
        has_product_scope = (
            select(VoucherProduct.id).where(VoucherProduct.voucher_id == Voucher.id).exists()
        )
        scope_matches_order = (
            select(VoucherProduct.id)
            .where(
                VoucherProduct.voucher_id == Voucher.id,
                VoucherProduct.product_id.in_(product_ids),
            )
            .exists()
        )
        level_allowed = (
            select(VoucherCustomerLevel.id)
            .where(
                VoucherCustomerLevel.voucher_id == Voucher.id,
                VoucherCustomerLevel.level == customer_level,
            )
            .exists()
        )

        query = self.db.query(Voucher).filter(
            Voucher.is_enabled.is_(True),
            Voucher.valid_from <= now,
            Voucher.valid_until >= now,
            Voucher.used_count < Voucher.usage_limit,
            ~redeemed_by_user,
            or_(~has_product_scope, scope_matches_order),
        )
        if customer_level is None:
            query = query.filter(Voucher.all_users.is_(True))
        else:
            query = query.filter(or_(Voucher.all_users.is_(True), level_allowed))
        if subtotal is not None:
            query = query.filter(Voucher.minimum_order_value <= subtotal)

        return query.order_by(Voucher.discount_value.desc(), Voucher.code.asc()).all()

    def list_public_active(
        self, skip: int = 0, limit: int = 100, now: datetime | None = None
    ) -> list[Voucher]:
        """Enabled, in-window, not exhausted vouchers, newest first."""
        now = as_utc(now) if now is not None else utc_now()
        return (
            self.db.query(Voucher)
            .filter(
                Voucher.is_enabled.is_(True),
                Voucher.valid_from <= now,
                Voucher.valid_until >= now,
                Voucher.used_count < Voucher.usage_limit,
            )
            .order_by(Voucher.created_at.desc(), Voucher.code.asc())
            .offset(skip)
            .limit(limit)
            .all()
        )

    @staticmethod
    def _set_product_scope(voucher: Voucher, product_ids: Iterable[UUID]) -> None:
        wanted = list(dict.fromkeys(product_ids))
        kept = [row for row in voucher.product_scope if row.product_id in wanted]
        present = {row.product_id for row in kept}
        voucher.product_scope = kept + [
            VoucherProduct(product_id=product_id)
            for product_id in wanted
            if product_id not in present
        ]

    @staticmethod
    def _set_audience_levels(voucher: Voucher, levels: Iterable[str]) -> None:
        wanted = list(dict.fromkeys(levels))
        kept = [row for row in voucher.audience_levels if row.level in wanted]
        present = {row.level for row in kept}
        voucher.audience_levels = kept + [
            VoucherCustomerLevel(level=level) for level in wanted if level not in present
        ]
