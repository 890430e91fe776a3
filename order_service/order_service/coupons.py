"""Coupon engine: configuration rules, eligibility and discount computation."""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Optional, Union

from commerce_common.audit import AuditTrail
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
from commerce_common.money import ZERO, clamp, to_money

from .logger import logger
from .schemas import Coupon, CouponCreate, CouponQuote, CouponType, CouponUpdate, normalize_code, utcnow
from .store import OrderStore, OrderTransaction

Number = Union[Decimal, int, float, str]

CLEARABLE_COUPON_FIELDS = frozenset({"minimum_amount", "usage_limit", "expires_at"})


def validate_coupon_config(
    type: str,
    value: Number,
    minimum_amount: Optional[Number] = None,
    usage_limit: Optional[int] = None,
) -> CouponType:
    """Check a coupon definition before it is stored.

    Args:
        type (str): Coupon type name.
        value (Number): Percentage or fixed amount.
        minimum_amount (Number | None): Optional minimum order subtotal.
        usage_limit (int | None): Optional maximum number of uses.

    Returns:
        CouponType: The parsed coupon type.

    Raises:
        InvalidCouponConfiguration: On the first rule the definition breaks.
    """
    try:
        coupon_type = CouponType(type)
    except ValueError:
        raise InvalidCouponConfiguration("Invalid coupon type", type=type) from None

    value = Decimal(str(value))
    if value <= 0:
        raise InvalidCouponConfiguration("Coupon value must be positive", value=value)
    if coupon_type is CouponType.PERCENTAGE and value > 100:
        raise InvalidCouponConfiguration("Percentage coupon value cannot exceed 100", value=value)
    if minimum_amount is not None and Decimal(str(minimum_amount)) < 0:
        raise InvalidCouponConfiguration("Minimum amount cannot be negative", minimum_amount=minimum_amount)
    if usage_limit is not None and usage_limit <= 0:
        raise InvalidCouponConfiguration("Usage limit must be positive", usage_limit=usage_limit)
    return coupon_type


def validate_coupon(
    coupon: Optional[Coupon],
    order_subtotal: Number,
    now: Optional[datetime] = None,
    code: Optional[str] = None,
) -> Decimal:
    """Check that a coupon applies to an order and compute its discount.

    Checks run in a fixed order and the first failure is raised:
    existence, active flag, expiry, usage limit, minimum subtotal.

    Args:
        coupon (Coupon | None): The looked-up coupon, None when the code matched nothing.
        order_subtotal (Number): Sum of the order's line totals.
        now (datetime | None): Evaluation instant, defaults to the current UTC time.
        code (str | None): The code the caller supplied, for error context.

    Returns:
        Decimal: The discount, clamped to ``[0, order_subtotal]``.
    """
    if coupon is None:
        raise EntityNotFound("Invalid coupon code", code=code)
    if not coupon.active:
        raise EntityInactive("Coupon is not active", code=coupon.code)

    now = now or utcnow()
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    if coupon.expires_at is not None and coupon.expires_at < now:
        raise CouponExpired("Coupon has expired", code=coupon.code, expires_at=coupon.expires_at)

    if coupon.usage_limit is not None and coupon.usage_count >= coupon.usage_limit:
        raise CouponExhausted("Coupon usage limit exceeded", code=coupon.code, usage_limit=coupon.usage_limit)

    subtotal = to_money(order_subtotal)
    if coupon.minimum_amount is not None and subtotal < coupon.minimum_amount:
        raise CouponMinimumNotMet(
            f"Minimum order amount of {to_money(coupon.minimum_amount)} required",
            code=coupon.code,
            minimum_amount=to_money(coupon.minimum_amount),
        )

    if coupon.type is CouponType.PERCENTAGE:
        discount = subtotal * coupon.value / 100
    else:
        discount = coupon.value
    return to_money(clamp(discount, ZERO, subtotal))


class CouponService:
    """Coupon administration on top of an ``OrderStore``.

    Args:
        store (OrderStore): Where coupons live.
        audit (AuditTrail | None): Receives CREATE/UPDATE/DELETE entries.
        clock (Callable | None): Returns the current time; injectable for tests.
    """

    def __init__(
        self,
        store: OrderStore,
        audit: Optional[AuditTrail] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.audit = audit or AuditTrail()
        self.clock = clock or utcnow

    @staticmethod
    def _require(tx: OrderTransaction, code: str) -> Coupon:
        coupon = tx.get_coupon_by_code(code)
        if coupon is None:
            raise EntityNotFound("Coupon not found", code=normalize_code(code))
        return coupon

    def create(self, data: CouponCreate, user_id: Optional[str] = None) -> Coupon:
        coupon_type = validate_coupon_config(data.type, data.value, data.minimum_amount, data.usage_limit)
        coupon = Coupon(
            code=data.code,
            type=coupon_type,
            value=data.value,
            minimum_amount=data.minimum_amount,
            usage_limit=data.usage_limit,
            expires_at=data.expires_at,
            active=data.active,
        )
        with self.store.transaction() as tx:
            if tx.get_coupon_by_code(coupon.code):
                raise EntityConflict("Coupon code already exists", code=coupon.code)
            tx.add_coupon(coupon)
        logger.info(f"Coupon {coupon.code} created")
        self.audit.log("CREATE", "coupons", coupon.id, user_id, new_values=coupon.model_dump(mode="json"))
        return coupon

    def get_by_code(self, code: str) -> Coupon:
        with self.store.transaction() as tx:
            return self._require(tx, code)

    def update(self, code: str, data: CouponUpdate, user_id: Optional[str] = None) -> Coupon:
        """Merge a partial update over the stored coupon and re-validate it.

        An explicit null clears ``minimum_amount``, ``usage_limit`` or
        ``expires_at``; on any other field it leaves the stored value alone.
        """
        changes = {
            key: value
            for key, value in data.model_dump(exclude_unset=True).items()
            if value is not None or key in CLEARABLE_COUPON_FIELDS
        }
        with self.store.transaction() as tx:
            existing = self._require(tx, code)
            merged = existing.model_dump() | changes
            coupon_type = validate_coupon_config(
                merged["type"], merged["value"], merged["minimum_amount"], merged["usage_limit"]
            )
            merged["type"] = coupon_type
            updated = Coupon.model_validate(merged)
            if updated.code != existing.code and tx.get_coupon_by_code(updated.code):
                raise EntityConflict("Coupon code already exists", code=updated.code)
            tx.save_coupon(updated)
        logger.info(f"Coupon {updated.code} updated")
        self.audit.log(
            "UPDATE",
            "coupons",
            updated.id,
            user_id,
            old_values=existing.model_dump(mode="json"),
            new_values=updated.model_dump(mode="json"),
        )
        return updated

    def toggle(self, code: str, user_id: Optional[str] = None) -> Coupon:
        with self.store.transaction() as tx:
            existing = self._require(tx, code)
            updated = existing.model_copy(update={"active": not existing.active})
            tx.save_coupon(updated)
        self.audit.log(
            "UPDATE", "coupons", updated.id, user_id, old_values={"active": existing.active}, new_values={"active": updated.active}
        )
        return updated

    def remove(self, code: str, user_id: Optional[str] = None) -> Coupon:
        with self.store.transaction() as tx:
            existing = self._require(tx, code)
            orders = tx.count_orders_with_coupon(existing.id)
            if orders:
                raise DeletionBlocked(
                    f"Cannot delete coupon that has been used in {orders} orders", code=existing.code, orders=orders
                )
            tx.delete_coupon(existing.id)
        logger.info(f"Coupon {existing.code} deleted")
        self.audit.log("DELETE", "coupons", existing.id, user_id, old_values=existing.model_dump(mode="json"))
        return existing

    def quote(self, code: str, subtotal: Number) -> CouponQuote:
        """Preview the discount a code gives on a subtotal without consuming it."""
        with self.store.transaction() as tx:
            coupon = tx.get_coupon_by_code(code)
        discount = validate_coupon(coupon, subtotal, now=self.clock(), code=code)
        return CouponQuote(code=coupon.code, type=coupon.type, discount_amount=discount)
