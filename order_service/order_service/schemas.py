"""Pydantic models for orders, variants and coupons."""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_code(code: str) -> str:
    """Coupon codes are stored upper-case and matched case-insensitively."""
    return code.strip().upper()


class CouponType(str, Enum):
    PERCENTAGE = "PERCENTAGE"
    FIXED_AMOUNT = "FIXED_AMOUNT"


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


class OrderLineRequest(BaseModel):
    """One requested line of an order.

    Attributes:
        variant_id (str): Identifier of the purchasable variant.
        quantity (int): Units requested, must be positive.
    """

    variant_id: str = Field(..., min_length=1)
    quantity: int = Field(..., gt=0)


class CreateOrderRequest(BaseModel):
    """An order submission from the storefront or admin."""

    items: list[OrderLineRequest] = Field(..., min_length=1, description="At least one item required")
    coupon_code: Optional[str] = None
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    notes: Optional[str] = None
    shipping_address: Optional[dict[str, Any]] = None
    billing_address: Optional[dict[str, Any]] = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "items": [{"variant_id": "var-001", "quantity": 2}],
                "coupon_code": "WELCOME10",
            }
        }
    )


class Variant(BaseModel):
    """A purchasable SKU with its parent product's base price."""

    id: str
    product_id: str
    sku: str
    base_price: Decimal = Field(..., ge=0)
    price_override: Optional[Decimal] = Field(default=None, ge=0)
    inventory_qty: int = Field(default=0, ge=0)
    active: bool = True

    @property
    def unit_price(self) -> Decimal:
        return self.price_override if self.price_override is not None else self.base_price


class Coupon(BaseModel):
    """A discount code.

    Attributes:
        code (str): Unique code, stored upper-case.
        type (CouponType): PERCENTAGE or FIXED_AMOUNT.
        value (Decimal): Percent (0-100] or fixed amount (> 0).
        minimum_amount (Decimal | None): Smallest subtotal the coupon applies to.
        usage_limit (int | None): Maximum successful uses, None for unlimited.
        usage_count (int): Successful uses so far.
        active (bool): Explicit on/off toggle.
        expires_at (datetime | None): After this instant the coupon is expired.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    code: str = Field(..., min_length=1)
    type: CouponType
    value: Decimal
    minimum_amount: Optional[Decimal] = None
    usage_limit: Optional[int] = None
    usage_count: int = Field(default=0, ge=0)
    active: bool = True
    expires_at: Optional[datetime] = None

    @field_validator("code")
    def validate_code(cls, v):
        return normalize_code(v)

    @field_validator("expires_at")
    def validate_expires_at(cls, v):
        # Naive timestamps are treated as UTC.
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


class CouponCreate(BaseModel):
    """Request body for a new coupon; configuration rules are checked by the coupon engine."""

    code: str = Field(..., min_length=1)
    type: str
    value: Decimal
    minimum_amount: Optional[Decimal] = None
    usage_limit: Optional[int] = None
    expires_at: Optional[datetime] = None
    active: bool = True


class CouponUpdate(BaseModel):
    code: Optional[str] = Field(default=None, min_length=1)
    type: Optional[str] = None
    value: Optional[Decimal] = None
    minimum_amount: Optional[Decimal] = None
    usage_limit: Optional[int] = None
    expires_at: Optional[datetime] = None
    active: Optional[bool] = None


class CouponQuoteRequest(BaseModel):
    code: str = Field(..., min_length=1)
    subtotal: Decimal = Field(..., ge=0)


class CouponQuote(BaseModel):
    code: str
    type: CouponType
    discount_amount: Decimal


class PricedLineItem(BaseModel):
    variant_id: str
    quantity: int
    unit_price: Decimal
    total_price: Decimal

    model_config = ConfigDict(frozen=True)


class PricedOrder(BaseModel):
    """Amounts computed once per order submission; never changed afterwards."""

    order_number: str
    subtotal: Decimal
    tax_amount: Decimal
    shipping_amount: Decimal
    discount_amount: Decimal
    total_amount: Decimal
    currency: str
    coupon_code: Optional[str] = None
    line_items: tuple[PricedLineItem, ...]

    model_config = ConfigDict(frozen=True)


class OrderRecord(BaseModel):
    """A persisted order: its pricing plus the status lifecycle."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    order_number: str
    pricing: PricedOrder
    user_id: Optional[str] = None
    coupon_id: Optional[str] = None
    status: OrderStatus = OrderStatus.PENDING
    notes: Optional[str] = None
    shipping_address: Optional[dict[str, Any]] = None
    billing_address: Optional[dict[str, Any]] = None
    created_at: datetime = Field(default_factory=utcnow)
    paid_at: Optional[datetime] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None


class StatusUpdate(BaseModel):
    status: OrderStatus
