"""Storage boundary for the pricing engine.

The engine only talks to an ``OrderStore``: it opens one ``transaction()`` per
order submission and performs every read and write through the yielded
``OrderTransaction``. Leaving the context normally commits; an exception
rolls every write back.

``InMemoryOrderStore`` serializes whole transactions behind a lock and
restores a snapshot on failure. ``sql_store.SqlOrderStore`` relies on the
database transaction and row locks.
"""

import threading
from contextlib import AbstractContextManager, contextmanager
from typing import Iterator, Optional, Protocol

from commerce_common.errors import CouponExhausted, EntityConflict, EntityNotFound, InsufficientInventory

from .schemas import Coupon, OrderRecord, Variant, normalize_code


class OrderTransaction(Protocol):
    def get_variant(self, variant_id: str) -> Optional[Variant]: ...

    def get_coupon(self, coupon_id: str) -> Optional[Coupon]: ...

    def get_coupon_by_code(self, code: str) -> Optional[Coupon]: ...

    def add_coupon(self, coupon: Coupon) -> None: ...

    def save_coupon(self, coupon: Coupon) -> None: ...

    def delete_coupon(self, coupon_id: str) -> None: ...

    def count_orders_with_coupon(self, coupon_id: str) -> int: ...

    def order_number_exists(self, order_number: str) -> bool: ...

    def insert_order(self, record: OrderRecord) -> None: ...

    def get_order(self, order_number: str) -> Optional[OrderRecord]: ...

    def update_order(self, record: OrderRecord) -> None: ...

    def decrement_inventory(self, variant_id: str, quantity: int) -> None:
        """Remove stock, failing with InsufficientInventory rather than going negative."""
        ...

    def increment_coupon_usage(self, coupon_id: str) -> None:
        """Count one use, failing with CouponExhausted once the usage limit is reached."""
        ...


class OrderStore(Protocol):
    def transaction(self) -> AbstractContextManager[OrderTransaction]: ...


class InMemoryOrderStore:
    """Process-local store used by default and in tests.

    Stored models are never mutated in place, so a shallow copy of each dict
    is enough to roll a failed transaction back.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self.variants: dict[str, Variant] = {}
        self.coupons: dict[str, Coupon] = {}
        self.orders: dict[str, OrderRecord] = {}

    def add_variant(self, variant: Variant) -> Variant:
        with self._lock:
            self.variants[variant.id] = variant
        return variant

    @contextmanager
    def transaction(self) -> Iterator["InMemoryTransaction"]:
        with self._lock:
            snapshot = (dict(self.variants), dict(self.coupons), dict(self.orders))
            try:
                yield InMemoryTransaction(self)
            except BaseException:
                self.variants, self.coupons, self.orders = snapshot
                raise


class InMemoryTransaction:
    def __init__(self, store: InMemoryOrderStore):
        self._store = store

    def get_variant(self, variant_id: str) -> Optional[Variant]:
        variant = self._store.variants.get(variant_id)
        return variant.model_copy() if variant else None

    def get_coupon(self, coupon_id: str) -> Optional[Coupon]:
        coupon = self._store.coupons.get(coupon_id)
        return coupon.model_copy() if coupon else None

    def get_coupon_by_code(self, code: str) -> Optional[Coupon]:
        code = normalize_code(code)
        for coupon in self._store.coupons.values():
            if coupon.code == code:
                return coupon.model_copy()
        return None

    def add_coupon(self, coupon: Coupon) -> None:
        if self.get_coupon_by_code(coupon.code):
            raise EntityConflict("Coupon code already exists", code=coupon.code)
        self._store.coupons[coupon.id] = coupon.model_copy()

    def save_coupon(self, coupon: Coupon) -> None:
        if coupon.id not in self._store.coupons:
            raise EntityNotFound("Coupon not found", coupon_id=coupon.id)
        existing = self.get_coupon_by_code(coupon.code)
        if existing and existing.id != coupon.id:
            raise EntityConflict("Coupon code already exists", code=coupon.code)
        self._store.coupons[coupon.id] = coupon.model_copy()

    def delete_coupon(self, coupon_id: str) -> None:
        self._store.coupons.pop(coupon_id, None)

    def count_orders_with_coupon(self, coupon_id: str) -> int:
        return sum(1 for order in self._store.orders.values() if order.coupon_id == coupon_id)

    def order_number_exists(self, order_number: str) -> bool:
        return order_number in self._store.orders

    def insert_order(self, record: OrderRecord) -> None:
        if record.order_number in self._store.orders:
            raise EntityConflict("Order number already exists", order_number=record.order_number)
        self._store.orders[record.order_number] = record.model_copy()

    def get_order(self, order_number: str) -> Optional[OrderRecord]:
        record = self._store.orders.get(order_number)
        return record.model_copy() if record else None

    def update_order(self, record: OrderRecord) -> None:
        if record.order_number not in self._store.orders:
            raise EntityNotFound(f"Order {record.order_number} not found", order_number=record.order_number)
        self._store.orders[record.order_number] = record.model_copy()

    def decrement_inventory(self, variant_id: str, quantity: int) -> None:
        variant = self._store.variants.get(variant_id)
        if variant is None:
            raise EntityNotFound(f"Product variant {variant_id} not found", variant_id=variant_id)
        if variant.inventory_qty < quantity:
            raise InsufficientInventory(
                f"Insufficient inventory for variant {variant.sku}. "
                f"Available: {variant.inventory_qty}, Requested: {quantity}",
                variant_id=variant_id,
                sku=variant.sku,
                available=variant.inventory_qty,
                requested=quantity,
            )
        self._store.variants[variant_id] = variant.model_copy(update={"inventory_qty": variant.inventory_qty - quantity})

    def increment_coupon_usage(self, coupon_id: str) -> None:
        coupon = self._store.coupons.get(coupon_id)
        if coupon is None:
            raise EntityNotFound("Coupon not found", coupon_id=coupon_id)
        if coupon.usage_limit is not None and coupon.usage_count >= coupon.usage_limit:
            raise CouponExhausted("Coupon usage limit exceeded", code=coupon.code)
        self._store.coupons[coupon_id] = coupon.model_copy(update={"usage_count": coupon.usage_count + 1})
