"""Tests for the coupon engine and coupon administration."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from commerce_common.errors import (
    CouponExhausted,
    CouponExpired,
    CouponMinimumNotMet,
    DeletionBlocked,
    EntityConflict,
    EntityInactive,
    EntityNotFound,
    InvalidCouponConfiguration,
)
from order_service.coupons import validate_coupon, validate_coupon_config
from order_service.schemas import Coupon, CouponCreate, CouponType, CouponUpdate

NOW = datetime(2025, 4, 24, 10, 0, tzinfo=timezone.utc)


def make_coupon(**kwargs):
    defaults = {"code": "SAVE", "type": CouponType.PERCENTAGE, "value": Decimal("10")}
    return Coupon(**{**defaults, **kwargs})


@pytest.mark.parametrize(
    "kwargs, message",
    [
        ({"type": "BOGO", "value": 10}, "Invalid coupon type"),
        ({"type": "PERCENTAGE", "value": 0}, "Coupon value must be positive"),
        ({"type": "FIXED_AMOUNT", "value": -5}, "Coupon value must be positive"),
        ({"type": "PERCENTAGE", "value": "100.01"}, "Percentage coupon value cannot exceed 100"),
        ({"type": "FIXED_AMOUNT", "value": 5, "minimum_amount": -1}, "Minimum amount cannot be negative"),
        ({"type": "FIXED_AMOUNT", "value": 5, "usage_limit": 0}, "Usage limit must be positive"),
    ],
)
def test_invalid_configuration(kwargs, message):
    with pytest.raises(InvalidCouponConfiguration, match=message):
        validate_coupon_config(**kwargs)


def test_valid_configuration():
    assert validate_coupon_config("PERCENTAGE", 100) is CouponType.PERCENTAGE
    assert validate_coupon_config("FIXED_AMOUNT", "250", minimum_amount=0, usage_limit=1) is CouponType.FIXED_AMOUNT


def test_percentage_discount_rounds_to_cents():
    assert validate_coupon(make_coupon(value=Decimal("15")), Decimal("33.33"), now=NOW) == Decimal("5.00")


def test_fixed_discount_never_exceeds_subtotal():
    coupon = make_coupon(type=CouponType.FIXED_AMOUNT, value=Decimal("100"))
    assert validate_coupon(coupon, Decimal("60.00"), now=NOW) == Decimal("60.00")
    assert validate_coupon(coupon, Decimal("0"), now=NOW) == Decimal("0.00")


def test_missing_coupon():
    with pytest.raises(EntityNotFound, match="Invalid coupon code") as exc_info:
        validate_coupon(None, Decimal("10"), now=NOW, code="GHOST")
    assert exc_info.value.context == {"code": "GHOST"}


def test_checks_run_in_order():
    """An inactive, expired, exhausted coupon reports inactive first, then expiry, then usage."""
    coupon = make_coupon(
        active=False,
        expires_at=NOW - timedelta(days=1),
        usage_limit=1,
        usage_count=1,
        minimum_amount=Decimal("500"),
    )
    with pytest.raises(EntityInactive):
        validate_coupon(coupon, Decimal("10"), now=NOW)

    coupon = coupon.model_copy(update={"active": True})
    with pytest.raises(CouponExpired):
        validate_coupon(coupon, Decimal("10"), now=NOW)

    coupon = coupon.model_copy(update={"expires_at": None})
    with pytest.raises(CouponExhausted):
        validate_coupon(coupon, Decimal("10"), now=NOW)

    coupon = coupon.model_copy(update={"usage_limit": None})
    with pytest.raises(CouponMinimumNotMet, match="Minimum order amount of 500.00 required"):
        validate_coupon(coupon, Decimal("10"), now=NOW)


def test_naive_expiry_treated_as_utc():
    coupon = make_coupon(expires_at=datetime(2025, 4, 24, 11, 0))
    assert coupon.expires_at.tzinfo is timezone.utc
    assert validate_coupon(coupon, Decimal("10"), now=NOW) == Decimal("1.00")


def test_expiry_boundary_is_inclusive():
    coupon = make_coupon(expires_at=NOW)
    assert validate_coupon(coupon, Decimal("10"), now=NOW) == Decimal("1.00")


def test_create_normalizes_code_and_audits(coupon_service):
    coupon = coupon_service.create(CouponCreate(code=" welcome ", type="PERCENTAGE", value=Decimal("10")), "user-1")

    assert coupon.code == "WELCOME"
    assert coupon_service.get_by_code("Welcome").id == coupon.id
    assert coupon_service.audit.find_by_entity("coupons", coupon.id)[0].action == "CREATE"


def test_create_rejects_bad_config_and_duplicates(coupon_service):
    with pytest.raises(InvalidCouponConfiguration):
        coupon_service.create(CouponCreate(code="BAD", type="PERCENTAGE", value=Decimal("150")))

    coupon_service.create(CouponCreate(code="ONCE", type="FIXED_AMOUNT", value=Decimal("5")))
    with pytest.raises(EntityConflict):
        coupon_service.create(CouponCreate(code="once", type="FIXED_AMOUNT", value=Decimal("7")))


def test_update_merges_and_revalidates(coupon_service):
    coupon_service.create(CouponCreate(code="FLEX", type="FIXED_AMOUNT", value=Decimal("150")))

    with pytest.raises(InvalidCouponConfiguration, match="cannot exceed 100"):
        coupon_service.update("FLEX", CouponUpdate(type="PERCENTAGE"))

    updated = coupon_service.update("flex", CouponUpdate(value=Decimal("20"), usage_limit=3))
    assert updated.type is CouponType.FIXED_AMOUNT
    assert updated.value == Decimal("20")
    assert updated.usage_limit == 3


def test_update_null_keeps_required_fields(coupon_service):
    """Explicit nulls from a JSON body must not wipe required coupon fields."""
    coupon_service.create(CouponCreate(code="SAVE10", type="PERCENTAGE", value=Decimal("10")))

    updated = coupon_service.update(
        "SAVE10", CouponUpdate.model_validate({"code": None, "type": None, "value": None, "active": None})
    )

    assert updated.code == "SAVE10"
    assert updated.type is CouponType.PERCENTAGE
    assert updated.value == Decimal("10")
    assert updated.active is True


def test_update_null_clears_optional_limits(coupon_service):
    coupon_service.create(
        CouponCreate(
            code="LIMITED",
            type="FIXED_AMOUNT",
            value=Decimal("5"),
            minimum_amount=Decimal("20"),
            usage_limit=2,
            expires_at=NOW,
        )
    )

    updated = coupon_service.update(
        "LIMITED", CouponUpdate.model_validate({"minimum_amount": None, "usage_limit": None, "expires_at": None})
    )

    assert updated.minimum_amount is None
    assert updated.usage_limit is None
    assert updated.expires_at is None


def test_update_to_taken_code_conflicts(coupon_service):
    coupon_service.create(CouponCreate(code="A", type="FIXED_AMOUNT", value=Decimal("1")))
    coupon_service.create(CouponCreate(code="B", type="FIXED_AMOUNT", value=Decimal("1")))

    with pytest.raises(EntityConflict):
        coupon_service.update("A", CouponUpdate(code="b"))


def test_toggle_flips_active(coupon_service):
    coupon_service.create(CouponCreate(code="FLIP", type="FIXED_AMOUNT", value=Decimal("1")))

    assert coupon_service.toggle("FLIP").active is False
    assert coupon_service.toggle("FLIP").active is True


def test_quote_does_not_consume(coupon_service):
    coupon_service.create(CouponCreate(code="PEEK", type="PERCENTAGE", value=Decimal("25"), usage_limit=1))

    quote = coupon_service.quote("peek", Decimal("80"))

    assert quote.discount_amount == Decimal("20.00")
    assert coupon_service.get_by_code("PEEK").usage_count == 0


def test_remove_blocked_once_used(coupon_service, engine):
    coupon_service.create(CouponCreate(code="USED", type="FIXED_AMOUNT", value=Decimal("1")))
    coupon_service.create(CouponCreate(code="UNUSED", type="FIXED_AMOUNT", value=Decimal("1")))
    engine.price_and_commit([{"variant_id": "var-a", "quantity": 1}], coupon_code="USED")

    with pytest.raises(DeletionBlocked, match="used in 1 orders"):
        coupon_service.remove("USED")

    coupon_service.remove("UNUSED")
    with pytest.raises(EntityNotFound):
        coupon_service.get_by_code("UNUSED")
