"""Test fixtures for the order service tests."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from order_service.coupons import CouponService
from order_service.orders import OrderService
from order_service.pricing import OrderPricingEngine
from order_service.schemas import Coupon, CouponType, Variant
from order_service.store import InMemoryOrderStore

NOW = datetime(2025, 4, 24, 10, 0, tzinfo=timezone.utc)


@pytest.fixture
def variant_a():
    """Variant A: priced 20.00 with five units in stock."""
    return Variant(id="var-a", product_id="prod-1", sku="TEE-A", base_price=Decimal("20.00"), inventory_qty=5)


@pytest.fixture
def variant_b():
    """Variant B: base 15.00 overridden to 12.50, two units in stock."""
    return Variant(
        id="var-b",
        product_id="prod-2",
        sku="MUG-B",
        base_price=Decimal("15.00"),
        price_override=Decimal("12.50"),
        inventory_qty=2,
    )


@pytest.fixture
def store(variant_a, variant_b):
    """In-memory store seeded with variants A and B."""
    store = InMemoryOrderStore()
    store.add_variant(variant_a)
    store.add_variant(variant_b)
    return store


@pytest.fixture
def engine(store):
    """Pricing engine with the default 10% tax and 10.00 shipping and a fixed clock."""
    return OrderPricingEngine(store, clock=lambda: NOW)


@pytest.fixture
def coupon_service(store):
    return CouponService(store, clock=lambda: NOW)


@pytest.fixture
def order_service(engine):
    return OrderService(engine)


@pytest.fixture
def add_coupon(store):
    """Factory storing a coupon directly in the store."""

    def _add(code="SAVE10", type=CouponType.PERCENTAGE, value="10", **kwargs):
        coupon = Coupon(code=code, type=type, value=Decimal(value), **kwargs)
        with store.transaction() as tx:
            tx.add_coupon(coupon)
        return coupon

    return _add


@pytest.fixture
def inventory(store):
    """Read a variant's current stock."""

    def _read(variant_id):
        with store.transaction() as tx:
            return tx.get_variant(variant_id).inventory_qty

    return _read


@pytest.fixture
def coupon_usage(store):
    """Read a coupon's current usage count."""

    def _read(code):
        with store.transaction() as tx:
            return tx.get_coupon_by_code(code).usage_count

    return _read
