"""Order lifecycle: creation through the pricing engine, lookup and status updates."""

from typing import Optional

from commerce_common.audit import AuditTrail, best_effort
from commerce_common.errors import EntityNotFound, InvalidStateTransition

from .logger import logger
from .pricing import OrderPricingEngine
from .producer import OrderProducer
from .schemas import CreateOrderRequest, OrderRecord, OrderStatus, utcnow

STATUS_TIMESTAMPS = {
    OrderStatus.PAID: "paid_at",
    OrderStatus.SHIPPED: "shipped_at",
    OrderStatus.DELIVERED: "delivered_at",
    OrderStatus.CANCELLED: "cancelled_at",
}

TERMINAL_STATUSES = frozenset({OrderStatus.CANCELLED, OrderStatus.REFUNDED})


class OrderService:
    """Wraps the pricing engine with audit, analytics and event publishing.

    Audit entries and the ``orders.created`` event are sent after the order
    transaction commits; their failures are logged and never undo the order.
    """

    def __init__(
        self,
        engine: OrderPricingEngine,
        audit: Optional[AuditTrail] = None,
        producer: Optional[OrderProducer] = None,
    ):
        self.engine = engine
        self.audit = audit or AuditTrail()
        self.producer = producer

    def create_order(self, request: CreateOrderRequest, user_id: Optional[str] = None) -> OrderRecord:
        priced = self.engine.price_and_commit(
            request.items,
            request.coupon_code,
            user_id=user_id,
            currency=request.currency,
            notes=request.notes,
            shipping_address=request.shipping_address,
            billing_address=request.billing_address,
        )
        record = self.get_order(priced.order_number)

        self.audit.log(
            "CREATE",
            "orders",
            record.id,
            user_id,
            new_values={
                "order_number": priced.order_number,
                "total_amount": str(priced.total_amount),
                "currency": priced.currency,
                "coupon_code": priced.coupon_code,
            },
        )
        self.audit.track(
            "order_created",
            user_id,
            order_number=priced.order_number,
            total_amount=str(priced.total_amount),
            items=len(priced.line_items),
        )
        if self.producer:
            best_effort(f"publish order {priced.order_number}", self.producer.publish_order, priced)
        return record

    def get_order(self, order_number: str) -> OrderRecord:
        with self.engine.store.transaction() as tx:
            record = tx.get_order(order_number)
        if record is None:
            raise EntityNotFound(f"Order {order_number} not found", order_number=order_number)
        return record

    def update_status(self, order_number: str, status: OrderStatus, user_id: Optional[str] = None) -> OrderRecord:
        """Move an order to a new status, stamping the matching timestamp.

        Raises:
            EntityNotFound: Unknown order number.
            InvalidStateTransition: The order is already cancelled or refunded.
        """
        with self.engine.store.transaction() as tx:
            existing = tx.get_order(order_number)
            if existing is None:
                raise EntityNotFound(f"Order {order_number} not found", order_number=order_number)
            if existing.status in TERMINAL_STATUSES and status != existing.status:
                raise InvalidStateTransition(
                    f"Order {order_number} is {existing.status.value} and cannot become {status.value}",
                    order_number=order_number,
                    current=existing.status.value,
                    requested=status.value,
                )
            changes = {"status": status}
            if status in STATUS_TIMESTAMPS:
                changes[STATUS_TIMESTAMPS[status]] = utcnow()
            updated = existing.model_copy(update=changes)
            tx.update_order(updated)

        logger.info(f"Order {order_number} status {existing.status.value} -> {status.value}")
        self.audit.log(
            "UPDATE",
            "orders",
            updated.id,
            user_id,
            old_values={"status": existing.status.value},
            new_values={"status": status.value},
        )
        return updated
