"""Tests for VoucherService preview, discovery, redemption and administration."""

import logging
from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch
from uuid import uuid4

import pytest
from sqlalchemy import inspect
from sqlalchemy.exc import OperationalError

from app.models.user import CustomerLevel
from app.models.voucher import DiscountType
from app.schemas.voucher import VoucherCreate, VoucherUpdate
from app.services.voucher_discount import DiscountOutcome
from app.services.voucher_eligibility import OrderContext, RejectionReason
from app.services.voucher_service import (
    RedemptionSuccess,
    Rejection,
    VoucherConflictError,
    VoucherService,
)


@pytest.fixture
def service(db_session):
    return VoucherService(db_session)


@pytest.fixture
def user(create_user):
    return create_user(CustomerLevel.SILVER)


class TestPreviewApply:
    def test_percentage_voucher(self, service, user, create_voucher):
        voucher = create_voucher(code="SUMMER10")
        order = OrderContext(user_id=user.id, subtotal=Decimal("500000"))

        outcome = service.preview_apply("SUMMER10", order)

        assert isinstance(outcome, DiscountOutcome)
        assert outcome.voucher_id == voucher.id
        assert outcome.code == "SUMMER10"
        assert outcome.discount_amount == Decimal("50000")
        assert outcome.final_amount == Decimal("450000")

    def test_fixed_voucher_larger_than_order(self, service, user, create_voucher):
        create_voucher(
            code="BIGFIX",
            discount_type=DiscountType.FIXED_AMOUNT,
            discount_value=Decimal("1000000"),
            minimum_order_value=Decimal("0"),
        )
        order = OrderContext(user_id=user.id, subtotal=Decimal("300000"))

        outcome = service.preview_apply("BIGFIX", order)

        assert outcome.discount_amount == Decimal("300000")
        assert outcome.final_amount == Decimal("0")

    def test_below_minimum(self, service, user, create_voucher):
        create_voucher(code="SUMMER10")
        order = OrderContext(user_id=user.id, subtotal=Decimal("100000"))

        outcome = service.preview_apply("SUMMER10", order)

        assert isinstance(outcome, Rejection)
        assert outcome.reason == RejectionReason.BELOW_MINIMUM
        assert outcome.message
        assert outcome.cause is None

    def test_product_scope_mismatch(self, service, user, create_voucher, create_product):
        p1, p2, p3 = create_product(), create_product(), create_product()
        create_voucher(code="P1ONLY", product_ids=[p1.id])
        order = OrderContext(
            user_id=user.id, subtotal=Decimal("500000"), product_ids=[p2.id, p3.id]
        )

        outcome = service.preview_apply("P1ONLY", order)

        assert outcome.reason == RejectionReason.NO_ELIGIBLE_PRODUCT_IN_ORDER

    def test_unknown_code(self, service, user):
        order = OrderContext(user_id=user.id, subtotal=Decimal("500000"))
        outcome = service.preview_apply("NOPE", order)
        assert outcome.reason == RejectionReason.NOT_FOUND

    def test_code_lookup_is_case_sensitive(self, service, user, create_voucher):
        create_voucher(code="SUMMER10")
        order = OrderContext(user_id=user.id, subtotal=Decimal("500000"))
        assert service.preview_apply("summer10", order).reason == RejectionReason.NOT_FOUND

    def test_unknown_user_raises(self, service, create_voucher):
        create_voucher(code="SUMMER10")
        order = OrderContext(user_id=uuid4(), subtotal=Decimal("500000"))
        with pytest.raises(ValueError, match="not found"):
            service.preview_apply("SUMMER10", order)

    def test_level_from_order_skips_user_lookup(self, service, create_voucher):
        create_voucher(code="GOLDONLY", all_users=False, customer_levels=[CustomerLevel.GOLD])
        order = OrderContext(
            user_id=uuid4(),
            subtotal=Decimal("500000"),
            customer_level=CustomerLevel.GOLD.value,
        )
        assert isinstance(service.preview_apply("GOLDONLY", order), DiscountOutcome)

    def test_audience_from_stored_level(self, service, user, create_voucher):
        create_voucher(code="GOLDONLY", all_users=False, customer_levels=[CustomerLevel.GOLD])
        order = OrderContext(user_id=user.id, subtotal=Decimal("500000"))
        assert service.preview_apply("GOLDONLY", order).reason == RejectionReason.AUDIENCE_MISMATCH

    def test_preview_does_not_consume(self, service, user, create_voucher):
        voucher = create_voucher(code="SUMMER10")
        order = OrderContext(user_id=user.id, subtotal=Decimal("500000"))

        for _ in range(3):
            assert isinstance(service.preview_apply("SUMMER10", order), DiscountOutcome)
        assert service.voucher_repo.get_used_count(voucher.id) == 0

    def test_preview_after_redemption(self, service, user, create_voucher):
        voucher = create_voucher(code="SUMMER10", usage_limit=5)
        service.commit_redemption(voucher.id, user.id)
        order = OrderContext(user_id=user.id, subtotal=Decimal("500000"))

        outcome = service.preview_apply("SUMMER10", order)

        assert outcome.reason == RejectionReason.ALREADY_REDEEMED_BY_USER

    def test_preview_leaves_redemptions_unloaded(
        self, db_session, service, user, create_user, create_voucher
    ):
        voucher = create_voucher(code="SUMMER10", usage_limit=5)
        service.commit_redemption(voucher.id, create_user().id)
        db_session.expire_all()
        order = OrderContext(user_id=user.id, subtotal=Decimal("500000"))

        outcome = service.preview_apply("SUMMER10", order)

        assert isinstance(outcome, DiscountOutcome)
        # The per-user check is a single indexed lookup, not the whole collection
        assert "redemptions" in inspect(voucher).unloaded


class TestCommitRedemption:
    def test_success(self, service, user, create_voucher):
        voucher = create_voucher(usage_limit=3)

        outcome = service.commit_redemption(voucher.id, user.id)

        assert outcome == RedemptionSuccess(voucher_id=voucher.id, user_id=user.id, used_count=1)

    def test_second_commit_same_user(self, service, user, create_voucher):
        voucher = create_voucher(usage_limit=3)

        assert isinstance(service.commit_redemption(voucher.id, user.id), RedemptionSuccess)
        outcome = service.commit_redemption(voucher.id, user.id)

        assert isinstance(outcome, Rejection)
        assert outcome.reason == RejectionReason.COMMIT_CONFLICT
        assert outcome.cause == RejectionReason.ALREADY_REDEEMED_BY_USER
        assert service.voucher_repo.get_used_count(voucher.id) == 1

    def test_limit_reached_by_another_user(self, service, create_user, create_voucher):
        user_a, user_b = create_user(), create_user()
        voucher = create_voucher(usage_limit=1)

        assert isinstance(service.commit_redemption(voucher.id, user_a.id), RedemptionSuccess)
        outcome = service.commit_redemption(voucher.id, user_b.id)

        assert outcome.reason == RejectionReason.COMMIT_CONFLICT
        assert outcome.cause == RejectionReason.EXHAUSTED_LIMIT
        assert service.voucher_repo.get_used_count(voucher.id) == 1

    def test_unknown_voucher(self, service, user):
        outcome = service.commit_redemption(uuid4(), user.id)
        assert outcome.reason == RejectionReason.COMMIT_CONFLICT
        assert outcome.cause == RejectionReason.NOT_FOUND

    def test_conflict_is_logged(self, service, user, create_voucher, caplog):
        voucher = create_voucher(usage_limit=1)
        service.commit_redemption(voucher.id, user.id)

        with caplog.at_level(logging.WARNING, logger="app.services.voucher_service"):
            service.commit_redemption(voucher.id, user.id)

        assert "redemption conflict" in caplog.text

    def test_store_failure_propagates(self, service, user, create_voucher, caplog):
        voucher = create_voucher()
        error = OperationalError("UPDATE vouchers", {}, Exception("database is locked"))

        with (
            patch.object(service.voucher_repo, "redeem", side_effect=error),
            caplog.at_level(logging.ERROR, logger="app.services.voucher_service"),
            pytest.raises(OperationalError),
        ):
            service.commit_redemption(voucher.id, user.id)

        assert "Voucher store failed" in caplog.text

    def test_used_count_never_exceeds_limit(self, service, create_user, create_voucher):
        voucher = create_voucher(usage_limit=3)
        results = [service.commit_redemption(voucher.id, create_user().id) for _ in range(5)]

        assert sum(isinstance(r, RedemptionSuccess) for r in results) == 3
        assert [r.used_count for r in results if isinstance(r, RedemptionSuccess)] == [1, 2, 3]
        assert service.voucher_repo.get_used_count(voucher.id) == 3


class TestFindApplicable:
    def test_uses_stored_level(self, service, user, create_voucher):
        create_voucher(code="SILVER", all_users=False, customer_levels=[CustomerLevel.SILVER])
        create_voucher(code="GOLD", all_users=False, customer_levels=[CustomerLevel.GOLD])
        order = OrderContext(user_id=user.id, subtotal=Decimal("500000"))

        assert [v.code for v in service.find_applicable(order)] == ["SILVER"]

    def test_check_minimum_flag(self, service, user, create_voucher):
        create_voucher(code="BIGMIN", minimum_order_value=Decimal("900000"))
        order = OrderContext(user_id=user.id, subtotal=Decimal("0"))

        assert service.find_applicable(order) == []
        assert [v.code for v in service.find_applicable(order, check_minimum=False)] == ["BIGMIN"]

    def test_excludes_redeemed(self, service, user, create_voucher):
        voucher = create_voucher(code="ONCE", usage_limit=10)
        service.commit_redemption(voucher.id, user.id)
        order = OrderContext(user_id=user.id, subtotal=Decimal("500000"))

        assert service.find_applicable(order) == []

    def test_unknown_user(self, service):
        with pytest.raises(ValueError):
            service.find_applicable(OrderContext(user_id=uuid4(), subtotal=Decimal("1")))


class TestGetValidByCode:
    def test_valid(self, service, create_voucher):
        voucher = create_voucher(code="LIVE")
        assert service.get_valid_by_code("LIVE").id == voucher.id

    def test_disabled_expired_or_used_up(self, service, user, create_voucher, now):
        create_voucher(code="OFF", is_enabled=False)
        create_voucher(
            code="PAST", valid_from=now - timedelta(days=2), valid_until=now - timedelta(days=1)
        )
        used_up = create_voucher(code="USED")
        service.commit_redemption(used_up.id, user.id)

        assert service.get_valid_by_code("OFF") is None
        assert service.get_valid_by_code("PAST") is None
        assert service.get_valid_by_code("USED") is None
        assert service.get_valid_by_code("MISSING") is None


class TestAdministration:
    def _payload(self, now, **overrides) -> VoucherCreate:
        fields = {
            "code": "NEW10",
            "discount_type": DiscountType.PERCENTAGE,
            "discount_value": Decimal("10"),
            "valid_from": now - timedelta(days=1),
            "valid_until": now + timedelta(days=30),
            "usage_limit": 100,
        }
        fields.update(overrides)
        return VoucherCreate(**fields)

    def test_create(self, service, now, caplog):
        with caplog.at_level(logging.INFO, logger="app.services.voucher_service"):
            voucher = service.create_voucher(self._payload(now))
        assert voucher.code == "NEW10"
        assert voucher.used_count == 0
        assert "Created voucher NEW10" in caplog.text

    def test_create_duplicate_code(self, service, now):
        service.create_voucher(self._payload(now))
        with pytest.raises(VoucherConflictError, match="already exists"):
            service.create_voucher(self._payload(now))

    def test_create_unknown_product(self, service, now):
        ghost = uuid4()
        with pytest.raises(ValueError, match=str(ghost)):
            service.create_voucher(self._payload(now, product_ids=[ghost]))

    def test_update(self, service, now, create_product):
        voucher = service.create_voucher(self._payload(now))
        product = create_product()

        updated = service.update_voucher(
            voucher.id,
            VoucherUpdate(code="NEW20", discount_value=Decimal("20"), product_ids=[product.id]),
        )

        assert updated.code == "NEW20"
        assert updated.discount_value == Decimal("20")
        assert updated.product_ids == [product.id]

    def test_update_missing(self, service):
        assert service.update_voucher(uuid4(), VoucherUpdate(is_enabled=False)) is None

    def test_update_code_conflict(self, service, now):
        service.create_voucher(self._payload(now, code="FIRST"))
        second = service.create_voucher(self._payload(now, code="SECOND"))
        with pytest.raises(VoucherConflictError):
            service.update_voucher(second.id, VoucherUpdate(code="FIRST"))

    def test_update_same_code_is_allowed(self, service, now):
        voucher = service.create_voucher(self._payload(now))
        assert service.update_voucher(voucher.id, VoucherUpdate(code="NEW10")).code == "NEW10"

    def test_update_window_checked_against_stored_bounds(self, service, now):
        voucher = service.create_voucher(self._payload(now))
        with pytest.raises(ValueError, match="valid_from"):
            service.update_voucher(voucher.id, VoucherUpdate(valid_from=now + timedelta(days=60)))

    def test_update_percentage_above_hundred(self, service, now):
        voucher = service.create_voucher(self._payload(now))
        with pytest.raises(ValueError, match="at most 100"):
            service.update_voucher(voucher.id, VoucherUpdate(discount_value=Decimal("120")))

    def test_switch_to_fixed_allows_large_value(self, service, now):
        voucher = service.create_voucher(self._payload(now))
        updated = service.update_voucher(
            voucher.id,
            VoucherUpdate(discount_type=DiscountType.FIXED_AMOUNT, discount_value=Decimal("50000")),
        )
        assert updated.discount_type == "fixed"

    def test_usage_limit_below_used_count(self, service, now, create_user):
        voucher = service.create_voucher(self._payload(now, usage_limit=5))
        for _ in range(2):
            service.commit_redemption(voucher.id, create_user().id)

        with pytest.raises(ValueError, match="usage_limit"):
            service.update_voucher(voucher.id, VoucherUpdate(usage_limit=1))
        assert service.update_voucher(voucher.id, VoucherUpdate(usage_limit=2)).usage_limit == 2

    def test_update_cannot_touch_counters(self):
        assert "used_count" not in VoucherUpdate.model_fields

    def test_delete(self, service, now):
        voucher = service.create_voucher(self._payload(now))
        assert service.delete_voucher(voucher.id)
        assert service.get_voucher(voucher.id) is None
        assert not service.delete_voucher(voucher.id)

    def test_list_vouchers_returns_total(self, service, now):
        for code in ("A1", "A2", "B1"):
            service.create_voucher(self._payload(now, code=code))

        vouchers, total = service.list_vouchers(limit=1, code="A")
        assert len(vouchers) == 1
        assert total == 2

    def test_list_public_active(self, service, now):
        service.create_voucher(self._payload(now, code="LIVE"))
        service.create_voucher(self._payload(now, code="OFF", is_enabled=False))
        assert [v.code for v in service.list_public_active()] == ["LIVE"]


class TestSchemaValidation:
    def test_percentage_over_hundred_rejected(self, now):
        with pytest.raises(ValueError, match="at most 100"):
            VoucherCreate(
                code="X",
                discount_type=DiscountType.PERCENTAGE,
                discount_value=Decimal("101"),
                valid_from=now,
                valid_until=now,
                usage_limit=1,
            )

    def test_inverted_window_rejected(self, now):
        with pytest.raises(ValueError, match="valid_from"):
            VoucherCreate(
                code="X",
                discount_type=DiscountType.FIXED_AMOUNT,
                discount_value=Decimal("1"),
                valid_from=now,
                valid_until=now - timedelta(seconds=1),
                usage_limit=1,
            )

    @pytest.mark.parametrize(
        "field,value",
        [
            ("discount_value", Decimal("0")),
            ("usage_limit", 0),
            ("minimum_order_value", Decimal("-1")),
        ],
    )
    def test_bounds(self, now, field, value):
        fields = {
            "code": "X",
            "discount_type": DiscountType.FIXED_AMOUNT,
            "discount_value": Decimal("1"),
            "valid_from": now,
            "valid_until": now,
            "usage_limit": 1,
        }
        fields[field] = value
        with pytest.raises(ValueError):
            VoucherCreate(**fields)

    def test_naive_datetimes_become_utc(self, now):
        data = VoucherCreate(
            code="X",
            discount_type=DiscountType.FIXED_AMOUNT,
            discount_value=Decimal("1"),
            valid_from=now.replace(tzinfo=None),
            valid_until=now.replace(tzinfo=None),
            usage_limit=1,
        )
        assert data.valid_from.utcoffset() == timedelta(0)
