"""FastAPI server for the Order Service."""

from contextlib import asynccontextmanager
from typing import Optional

from commerce_common.audit import AuditProducer, AuditTrail
from commerce_common.http import register_error_handlers, require
from confluent_kafka.admin import AdminClient
from fastapi import APIRouter, Depends, FastAPI, Header

from .config import OrderSettings
from .coupons import CouponService
from .logger import logger
from .orders import OrderService
from .pricing import OrderPricingEngine
from .producer import OrderProducer
from .schemas import Coupon, CouponCreate, CouponQuote, CouponQuoteRequest, CouponUpdate, CreateOrderRequest, OrderRecord, StatusUpdate
from .store import InMemoryOrderStore, OrderStore


class OrderServiceState:
    """Wires the store, engines and services from settings.

    Uses ``SqlOrderStore`` when ``DATABASE_URL`` is set, otherwise the
    in-memory store.
    """

    def __init__(self, settings: OrderSettings):
        self.settings = settings
        self.store = self._build_store(settings)
        self.audit = AuditTrail()
        self.engine = OrderPricingEngine.from_settings(self.store, settings)
        self.orders = OrderService(self.engine, audit=self.audit)
        self.coupons = CouponService(self.store, audit=self.audit)

    @staticmethod
    def _build_store(settings: OrderSettings) -> OrderStore:
        if settings.database_url:
            from .sql_store import SqlOrderStore

            store = SqlOrderStore(settings.database_url)
            store.create_all()
            logger.info("Using SQL order store")
            return store
        logger.info("Using in-memory order store")
        return InMemoryOrderStore()


state = OrderServiceState(OrderSettings.from_env())


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Attach the Kafka producers for the lifetime of the app."""
    if state.settings.kafka_events_enabled:
        state.audit.producer = AuditProducer(state.settings.kafka_bootstrap_servers, client_id="order-service")
        state.orders.producer = OrderProducer(state.settings.kafka_bootstrap_servers)
        logger.info("Event producers started")
    yield
    if state.orders.producer:
        state.orders.producer.close()
    if state.audit.producer:
        state.audit.producer.close()
    logger.info("Shutdown complete")


app = FastAPI(title="Order Service", lifespan=lifespan)
router = APIRouter()
register_error_handlers(app)


@router.get("/health")
def health_check():
    """Basic health check endpoint."""
    return {"status": "healthy"}


@router.get("/health/ready")
def readiness_check():
    """Check if the service is ready to accept traffic.

    Returns:
        dict: Service readiness status and Kafka connection status.
    """
    kafka_ok = _check_kafka_connection()
    return {"status": "ready" if kafka_ok else "not_ready", "kafka": kafka_ok}


@router.post("/orders", response_model=OrderRecord, status_code=201, dependencies=[Depends(require("orders.create"))])
def create_order(order: CreateOrderRequest, x_user_id: Optional[str] = Header(default=None)):
    """Price and commit an order placed by staff on behalf of a user."""
    logger.info(f"Received order with {len(order.items)} items")
    return state.orders.create_order(order, x_user_id)


@router.post("/orders/guest", response_model=OrderRecord, status_code=201, dependencies=[Depends(require("orders.create_guest"))])
def create_guest_order(order: CreateOrderRequest):
    """Storefront checkout without an account."""
    return state.orders.create_order(order)


@router.get("/orders/number/{order_number}", response_model=OrderRecord, dependencies=[Depends(require("orders.read"))])
def get_order(order_number: str):
    return state.orders.get_order(order_number)


@router.patch(
    "/orders/number/{order_number}/status",
    response_model=OrderRecord,
    dependencies=[Depends(require("orders.update_status"))],
)
def update_order_status(order_number: str, data: StatusUpdate, x_user_id: Optional[str] = Header(default=None)):
    return state.orders.update_status(order_number, data.status, x_user_id)


@router.post("/coupons", response_model=Coupon, status_code=201, dependencies=[Depends(require("coupons.create"))])
def create_coupon(data: CouponCreate, x_user_id: Optional[str] = Header(default=None)):
    return state.coupons.create(data, x_user_id)


@router.post("/coupons/validate", response_model=CouponQuote, dependencies=[Depends(require("coupons.validate"))])
def validate_coupon(data: CouponQuoteRequest):
    """Preview a coupon's discount for a subtotal."""
    return state.coupons.quote(data.code, data.subtotal)


@router.get("/coupons/code/{code}", response_model=Coupon, dependencies=[Depends(require("coupons.read"))])
def get_coupon(code: str):
    return state.coupons.get_by_code(code)


@router.patch("/coupons/code/{code}", response_model=Coupon, dependencies=[Depends(require("coupons.update"))])
def update_coupon(code: str, data: CouponUpdate, x_user_id: Optional[str] = Header(default=None)):
    return state.coupons.update(code, data, x_user_id)


@router.post("/coupons/code/{code}/toggle", response_model=Coupon, dependencies=[Depends(require("coupons.toggle"))])
def toggle_coupon(code: str, x_user_id: Optional[str] = Header(default=None)):
    return state.coupons.toggle(code, x_user_id)


@router.delete("/coupons/code/{code}", response_model=Coupon, dependencies=[Depends(require("coupons.delete"))])
def remove_coupon(code: str, x_user_id: Optional[str] = Header(default=None)):
    return state.coupons.remove(code, x_user_id)


def _check_kafka_connection() -> bool:
    """Check if Kafka connection is available.

    Returns:
        bool: True if Kafka is accessible, False otherwise.
    """
    try:
        admin = AdminClient({"bootstrap.servers": state.settings.kafka_bootstrap_servers})
        return bool(admin.list_topics(timeout=5))
    except Exception as e:
        logger.error(f"Kafka connection failed: {e}")
        return False


app.include_router(router)
logger.info("API router mounted.")
