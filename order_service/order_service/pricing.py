"""Transactional order pricing.

``OrderPricingEngine.price_and_commit`` is the only way an order comes into
existence. Within a single store transaction it resolves every variant,
checks stock, prices the lines, applies the coupon, persists the order and
its items, decrements inventory and counts the coupon use. Any failure
leaves the store exactly as it was.
"""

import secrets
import string
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Iterable, Mapping, Optional, Union

from commerce_common.errors import (
    CommerceError,
    EntityConflict,
    EntityInactive,
    EntityNotFound,
    InsufficientInventory,
    InvalidOrderRequest,
)
from commerce_common.money import ZERO, to_money

from .config import OrderSettings
from .coupons import validate_coupon
from .logger import logger
from .schemas import OrderLineRequest, OrderRecord, PricedLineItem, PricedOrder, normalize_code, utcnow
from .store import OrderStore, OrderTransaction

ORDER_NUMBER_ALPHABET = string.ascii_uppercase + string.digits
ORDER_NUMBER_SUFFIX_LENGTH = 8
ORDER_NUMBER_ATTEMPTS = 5


def generate_order_number(today: Optional[date] = None) -> str:
    """Build an order number of the form ``ORD-YYMMDD-XXXXXXXX``.

    Args:
        today (date | None): Date encoded in the number, defaults to today (UTC).

    Returns:
        str: The order number.
    """
    today = today or utcnow().date()
    suffix = "".join(secrets.choice(ORDER_NUMBER_ALPHABET) for _ in range(ORDER_NUMBER_SUFFIX_LENGTH))
    return f"ORD-{today:%y%m%d}-{suffix}"


def _as_line(item: Union[OrderLineRequest, Mapping[str, Any]]) -> OrderLineRequest:
    if isinstance(item, OrderLineRequest):
        return item
    return OrderLineRequest.model_validate(item)


class OrderPricingEngine:
    """Prices and commits orders against an ``OrderStore``.

    Args:
        store (OrderStore): Transactional storage.
        tax_rate (Decimal): Fraction of the subtotal charged as tax.
        flat_shipping (Decimal): Shipping added to every order.
        currency (str): Currency used when the request names none.
        clock (Callable | None): Returns the current time; injectable for tests.
    """

    def __init__(
        self,
        store: OrderStore,
        tax_rate: Union[Decimal, str] = Decimal("0.10"),
        flat_shipping: Union[Decimal, str] = Decimal("10.00"),
        currency: str = "USD",
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.tax_rate = Decimal(str(tax_rate))
        self.flat_shipping = to_money(flat_shipping)
        self.currency = currency
        self.clock = clock or utcnow

    @classmethod
    def from_settings(cls, store: OrderStore, settings: OrderSettings) -> "OrderPricingEngine":
        return cls(store, tax_rate=settings.tax_rate, flat_shipping=settings.flat_shipping, currency=settings.currency)

    def _unique_order_number(self, tx: OrderTransaction, today: date) -> str:
        for _ in range(ORDER_NUMBER_ATTEMPTS):
            order_number = generate_order_number(today)
            if not tx.order_number_exists(order_number):
                return order_number
        raise EntityConflict("Could not allocate a unique order number")

    def price_and_commit(
        self,
        items: Iterable[Union[OrderLineRequest, Mapping[str, Any]]],
        coupon_code: Optional[str] = None,
        *,
        user_id: Optional[str] = None,
        currency: Optional[str] = None,
        notes: Optional[str] = None,
        shipping_address: Optional[dict[str, Any]] = None,
        billing_address: Optional[dict[str, Any]] = None,
    ) -> PricedOrder:
        """Price an order and persist it atomically.

        Args:
            items: Requested lines, as ``OrderLineRequest`` or plain dicts.
            coupon_code (str | None): Optional coupon, matched case-insensitively.
            user_id (str | None): Ordering user, None for guest checkout.
            currency (str | None): Overrides the engine's default currency.
            notes (str | None): Free-text order notes.

        Returns:
            PricedOrder: The committed order's amounts and line items.

        Raises:
            InvalidOrderRequest: If no items are given.
            EntityNotFound: Unknown variant or coupon code.
            EntityInactive: Inactive variant or coupon.
            InsufficientInventory: A variant lacks the requested stock.
            CouponExpired, CouponExhausted, CouponMinimumNotMet: Coupon does not apply.
        """
        lines = [_as_line(item) for item in items]
        if not lines:
            raise InvalidOrderRequest("At least one item is required")

        now = self.clock()
        try:
            with self.store.transaction() as tx:
                requested: dict[str, int] = {}
                priced_items = []
                subtotal = ZERO
                for line in lines:
                    variant = tx.get_variant(line.variant_id)
                    if variant is None:
                        raise EntityNotFound(f"Product variant {line.variant_id} not found", variant_id=line.variant_id)
                    if not variant.active:
                        raise EntityInactive(f"Product variant {line.variant_id} is not active", variant_id=line.variant_id)

                    # Stock is checked against the total requested across all lines for the variant.
                    requested[variant.id] = requested.get(variant.id, 0) + line.quantity
                    if variant.inventory_qty < requested[variant.id]:
                        raise InsufficientInventory(
                            f"Insufficient inventory for variant {variant.sku}. "
                            f"Available: {variant.inventory_qty}, Requested: {requested[variant.id]}",
                            variant_id=variant.id,
                            sku=variant.sku,
                            available=variant.inventory_qty,
                            requested=requested[variant.id],
                        )

                    unit_price = to_money(variant.unit_price)
                    total_price = to_money(unit_price * line.quantity)
                    priced_items.append(
                        PricedLineItem(
                            variant_id=variant.id,
                            quantity=line.quantity,
                            unit_price=unit_price,
                            total_price=total_price,
                        )
                    )
                    subtotal += total_price

                tax_amount = to_money(subtotal * self.tax_rate)
                shipping_amount = self.flat_shipping

                coupon = None
                discount_amount = ZERO
                if coupon_code:
                    coupon = tx.get_coupon_by_code(coupon_code)
                    discount_amount = validate_coupon(coupon, subtotal, now=now, code=normalize_code(coupon_code))

                priced = PricedOrder(
                    order_number=self._unique_order_number(tx, now.date()),
                    subtotal=subtotal,
                    tax_amount=tax_amount,
                    shipping_amount=shipping_amount,
                    discount_amount=discount_amount,
                    total_amount=subtotal + tax_amount + shipping_amount - discount_amount,
                    currency=currency or self.currency,
                    coupon_code=coupon.code if coupon else None,
                    line_items=tuple(priced_items),
                )
                tx.insert_order(
                    OrderRecord(
                        order_number=priced.order_number,
                        pricing=priced,
                        user_id=user_id,
                        coupon_id=coupon.id if coupon else None,
                        notes=notes,
                        shipping_address=shipping_address,
                        billing_address=billing_address,
                        created_at=now,
                    )
                )
                for line in lines:
                    tx.decrement_inventory(line.variant_id, line.quantity)
                if coupon:
                    tx.increment_coupon_usage(coupon.id)
        except CommerceError as e:
            logger.warning(f"Order rejected: {e.message}")
            raise

        logger.info(f"Order {priced.order_number} committed: total {priced.total_amount} {priced.currency}")
        return priced
