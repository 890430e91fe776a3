"""SQLAlchemy-backed order store.

Every engine transaction maps onto one database transaction. Variant and
coupon reads take row locks (``SELECT ... FOR UPDATE`` where the dialect
supports it) and the inventory and coupon-usage writes are conditional
``UPDATE`` statements whose row count is checked, so two concurrent orders
can never oversell a variant or overuse a coupon.
"""

import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterator, Optional, Union

from commerce_common.errors import CouponExhausted, EntityConflict, EntityNotFound, InsufficientInventory
from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Engine,
    ForeignKey,
    JSON,
    Integer,
    Numeric,
    String,
    Text,
    create_engine,
    func,
    or_,
    select,
    update,
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, relationship, sessionmaker

from .schemas import Coupon, OrderRecord, OrderStatus, PricedLineItem, PricedOrder, Variant, normalize_code, utcnow


class Base(DeclarativeBase):
    pass


class ProductRow(Base):
    __tablename__ = "products"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    base_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="USD")

    variants = relationship("VariantRow", back_populates="product")


class VariantRow(Base):
    __tablename__ = "product_variants"
    __table_args__ = (CheckConstraint("inventory_qty >= 0", name="ck_variant_inventory_non_negative"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    product_id: Mapped[str] = mapped_column(String(36), ForeignKey("products.id"), nullable=False)
    sku: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    price_override: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    inventory_qty: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True)

    product = relationship("ProductRow", back_populates="variants")


class CouponRow(Base):
    __tablename__ = "coupons"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    value: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    minimum_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    usage_limit: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    usage_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class OrderRow(Base):
    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    order_number: Mapped[str] = mapped_column(String(32), unique=True, nullable=False, index=True)
    user_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    coupon_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("coupons.id"), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=OrderStatus.PENDING.value)
    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    shipping_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    shipping_address: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    billing_address: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    shipped_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    delivered_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    coupon = relationship("CouponRow")
    items = relationship("OrderItemRow", back_populates="order", cascade="all, delete-orphan", order_by="OrderItemRow.id")


class OrderItemRow(Base):
    __tablename__ = "order_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[str] = mapped_column(String(36), ForeignKey("orders.id"), nullable=False)
    variant_id: Mapped[str] = mapped_column(String(36), ForeignKey("product_variants.id"), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    total_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    order = relationship("OrderRow", back_populates="items")


_TIMESTAMP_COLUMNS = ("paid_at", "shipped_at", "delivered_at", "cancelled_at")


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # Some backends (sqlite) drop tzinfo on the way back.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _coupon_columns(coupon: Coupon) -> dict:
    columns = coupon.model_dump(exclude={"id"})
    columns["type"] = coupon.type.value
    return columns


def _to_variant(row: VariantRow) -> Variant:
    return Variant(
        id=row.id,
        product_id=row.product_id,
        sku=row.sku,
        base_price=row.product.base_price,
        price_override=row.price_override,
        inventory_qty=row.inventory_qty,
        active=row.active,
    )


def _to_coupon(row: CouponRow) -> Coupon:
    return Coupon(
        id=row.id,
        code=row.code,
        type=row.type,
        value=row.value,
        minimum_amount=row.minimum_amount,
        usage_limit=row.usage_limit,
        usage_count=row.usage_count,
        active=row.active,
        expires_at=_as_utc(row.expires_at),
    )


def _to_record(row: OrderRow) -> OrderRecord:
    pricing = PricedOrder(
        order_number=row.order_number,
        subtotal=row.subtotal,
        tax_amount=row.tax_amount,
        shipping_amount=row.shipping_amount,
        discount_amount=row.discount_amount,
        total_amount=row.total_amount,
        currency=row.currency,
        coupon_code=row.coupon.code if row.coupon else None,
        line_items=tuple(
            PricedLineItem(
                variant_id=item.variant_id,
                quantity=item.quantity,
                unit_price=item.unit_price,
                total_price=item.total_price,
            )
            for item in row.items
        ),
    )
    return OrderRecord(
        id=row.id,
        order_number=row.order_number,
        pricing=pricing,
        user_id=row.user_id,
        coupon_id=row.coupon_id,
        status=row.status,
        notes=row.notes,
        shipping_address=row.shipping_address,
        billing_address=row.billing_address,
        created_at=_as_utc(row.created_at),
        **{column: _as_utc(getattr(row, column)) for column in _TIMESTAMP_COLUMNS},
    )


class SqlOrderTransaction:
    """OrderTransaction over one SQLAlchemy session."""

    def __init__(self, session: Session):
        self.session = session

    def get_variant(self, variant_id: str) -> Optional[Variant]:
        row = self.session.execute(
            select(VariantRow).where(VariantRow.id == variant_id).with_for_update()
        ).scalar_one_or_none()
        return _to_variant(row) if row else None

    def get_coupon(self, coupon_id: str) -> Optional[Coupon]:
        row = self.session.get(CouponRow, coupon_id)
        return _to_coupon(row) if row else None

    def get_coupon_by_code(self, code: str) -> Optional[Coupon]:
        row = self.session.execute(
            select(CouponRow).where(CouponRow.code == normalize_code(code)).with_for_update()
        ).scalar_one_or_none()
        return _to_coupon(row) if row else None

    def add_coupon(self, coupon: Coupon) -> None:
        if self.session.execute(select(CouponRow.id).where(CouponRow.code == coupon.code)).first():
            raise EntityConflict("Coupon code already exists", code=coupon.code)
        self.session.add(CouponRow(id=coupon.id, **_coupon_columns(coupon)))
        self.session.flush()

    def save_coupon(self, coupon: Coupon) -> None:
        row = self.session.get(CouponRow, coupon.id)
        if row is None:
            raise EntityNotFound("Coupon not found", coupon_id=coupon.id)
        clash = self.session.execute(
            select(CouponRow.id).where(CouponRow.code == coupon.code, CouponRow.id != coupon.id)
        ).first()
        if clash:
            raise EntityConflict("Coupon code already exists", code=coupon.code)
        for key, value in _coupon_columns(coupon).items():
            setattr(row, key, value)
        self.session.flush()

    def delete_coupon(self, coupon_id: str) -> None:
        row = self.session.get(CouponRow, coupon_id)
        if row is not None:
            self.session.delete(row)
            self.session.flush()

    def count_orders_with_coupon(self, coupon_id: str) -> int:
        return self.session.execute(
            select(func.count()).select_from(OrderRow).where(OrderRow.coupon_id == coupon_id)
        ).scalar_one()

    def order_number_exists(self, order_number: str) -> bool:
        return self.session.execute(select(OrderRow.id).where(OrderRow.order_number == order_number)).first() is not None

    def insert_order(self, record: OrderRecord) -> None:
        pricing = record.pricing
        row = OrderRow(
            id=record.id,
            order_number=record.order_number,
            user_id=record.user_id,
            coupon_id=record.coupon_id,
            status=record.status.value,
            subtotal=pricing.subtotal,
            tax_amount=pricing.tax_amount,
            shipping_amount=pricing.shipping_amount,
            discount_amount=pricing.discount_amount,
            total_amount=pricing.total_amount,
            currency=pricing.currency,
            notes=record.notes,
            shipping_address=record.shipping_address,
            billing_address=record.billing_address,
            created_at=record.created_at,
            items=[
                OrderItemRow(
                    variant_id=item.variant_id,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    total_price=item.total_price,
                )
                for item in pricing.line_items
            ],
        )
        self.session.add(row)
        try:
            self.session.flush()
        except IntegrityError as e:
            raise EntityConflict("Order number already exists", order_number=record.order_number) from e

    def get_order(self, order_number: str) -> Optional[OrderRecord]:
        row = self.session.execute(select(OrderRow).where(OrderRow.order_number == order_number)).scalar_one_or_none()
        return _to_record(row) if row else None

    def update_order(self, record: OrderRecord) -> None:
        row = self.session.execute(
            select(OrderRow).where(OrderRow.order_number == record.order_number).with_for_update()
        ).scalar_one_or_none()
        if row is None:
            raise EntityNotFound(f"Order {record.order_number} not found", order_number=record.order_number)
        row.status = record.status.value
        row.notes = record.notes
        for column in _TIMESTAMP_COLUMNS:
            setattr(row, column, getattr(record, column))
        self.session.flush()

    def decrement_inventory(self, variant_id: str, quantity: int) -> None:
        result = self.session.execute(
            update(VariantRow)
            .where(VariantRow.id == variant_id, VariantRow.inventory_qty >= quantity)
            .values(inventory_qty=VariantRow.inventory_qty - quantity)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            available = self.session.execute(
                select(VariantRow.inventory_qty).where(VariantRow.id == variant_id)
            ).scalar_one_or_none()
            if available is None:
                raise EntityNotFound(f"Product variant {variant_id} not found", variant_id=variant_id)
            raise InsufficientInventory(
                f"Insufficient inventory for variant {variant_id}. Available: {available}, Requested: {quantity}",
                variant_id=variant_id,
                available=available,
                requested=quantity,
            )

    def increment_coupon_usage(self, coupon_id: str) -> None:
        result = self.session.execute(
            update(CouponRow)
            .where(
                CouponRow.id == coupon_id,
                or_(CouponRow.usage_limit.is_(None), CouponRow.usage_count < CouponRow.usage_limit),
            )
            .values(usage_count=CouponRow.usage_count + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise CouponExhausted("Coupon usage limit exceeded", coupon_id=coupon_id)


class SqlOrderStore:
    """OrderStore over a SQLAlchemy engine.

    Args:
        engine (Engine | str): An engine or a database URL.
    """

    def __init__(self, engine: Union[Engine, str]):
        if isinstance(engine, str):
            engine = create_engine(engine)
        self.engine = engine
        self._sessions = sessionmaker(engine, expire_on_commit=False)

    def create_all(self) -> None:
        Base.metadata.create_all(self.engine)

    @contextmanager
    def transaction(self) -> Iterator[SqlOrderTransaction]:
        with self._sessions.begin() as session:
            yield SqlOrderTransaction(session)

    def add_variant(self, variant: Variant, title: Optional[str] = None) -> Variant:
        """Seed a variant, creating its parent product row when missing."""
        with self._sessions.begin() as session:
            if session.get(ProductRow, variant.product_id) is None:
                session.add(ProductRow(id=variant.product_id, title=title or variant.sku, base_price=variant.base_price))
                session.flush()
            session.add(
                VariantRow(
                    id=variant.id,
                    product_id=variant.product_id,
                    sku=variant.sku,
                    price_override=variant.price_override,
                    inventory_qty=variant.inventory_qty,
                    active=variant.active,
                )
            )
        return variant
