"""FastAPI server for the Catalog Service."""

import os
from contextlib import asynccontextmanager
from typing import Any, Optional

from commerce_common.audit import AuditProducer
from commerce_common.http import register_error_handlers, require
from confluent_kafka.admin import AdminClient
from fastapi import APIRouter, Depends, FastAPI, Header

from .logger import logger
from .registry import CatalogState
from .schemas import Product, ProductCreate, ProductType, ProductTypeCreate, ProductTypeUpdate, ProductUpdate
from .validation import dump_attributes, validate_attributes, validate_schema

state = CatalogState()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Attach the audit producer for the lifetime of the app."""
    if os.getenv("KAFKA_EVENTS_ENABLED", "true").lower() == "true":
        state.audit.producer = AuditProducer(
            bootstrap_servers=os.getenv("KAFKA_BOOTSTRAP_SERVERS", "kafka:9092"),
            client_id="catalog-service",
        )
        logger.info("Audit producer started")
    yield
    if state.audit.producer:
        state.audit.producer.close()
    logger.info("Shutdown complete")


app = FastAPI(title="Catalog Service", lifespan=lifespan)
router = APIRouter()
register_error_handlers(app)


@router.get("/health")
def health_check():
    """Basic health check endpoint."""
    return {"status": "healthy"}


@router.get("/health/ready")
def readiness_check():
    """Check if the service is ready to accept traffic."""
    kafka_ok = _check_kafka_connection()
    return {"status": "ready" if kafka_ok else "not_ready", "kafka": kafka_ok}


@router.post("/product-types/validate-schema", dependencies=[Depends(require("product_types.create"))])
def check_schema(schema_json: dict[str, Any]):
    """Validate a field schema without storing it."""
    field_schema = validate_schema(schema_json)
    return {"valid": True, "fields": len(field_schema.fields)}


@router.post("/product-types", response_model=ProductType, dependencies=[Depends(require("product_types.create"))])
def create_product_type(data: ProductTypeCreate, x_user_id: Optional[str] = Header(default=None)):
    return state.create_product_type(data, x_user_id)


@router.get("/product-types", response_model=list[ProductType], dependencies=[Depends(require("product_types.read_public"))])
def list_product_types():
    return state.list_product_types()


@router.get(
    "/product-types/slug/{slug}",
    response_model=ProductType,
    dependencies=[Depends(require("product_types.read_public"))],
)
def get_product_type_by_slug(slug: str):
    return state.get_product_type_by_slug(slug)


@router.get("/product-types/{type_id}", response_model=ProductType, dependencies=[Depends(require("product_types.read"))])
def get_product_type(type_id: str):
    return state.get_product_type(type_id)


@router.patch("/product-types/{type_id}", response_model=ProductType, dependencies=[Depends(require("product_types.update"))])
def update_product_type(type_id: str, data: ProductTypeUpdate, x_user_id: Optional[str] = Header(default=None)):
    return state.update_product_type(type_id, data, x_user_id)


@router.delete("/product-types/{type_id}", response_model=ProductType, dependencies=[Depends(require("product_types.delete"))])
def remove_product_type(type_id: str, x_user_id: Optional[str] = Header(default=None)):
    return state.remove_product_type(type_id, x_user_id)


@router.post("/product-types/{type_id}/validate", dependencies=[Depends(require("product_types.validate_attributes"))])
def check_attributes(type_id: str, attributes: dict[str, Any]):
    """Validate an attribute payload against a stored product type."""
    product_type = state.get_product_type(type_id)
    typed = validate_attributes(product_type.field_schema, attributes)
    return {"valid": True, "attributes": dump_attributes(typed)}


@router.post("/products", response_model=Product, dependencies=[Depends(require("products.create"))])
def create_product(data: ProductCreate, x_user_id: Optional[str] = Header(default=None)):
    return state.create_product(data, x_user_id)


@router.get("/products/{product_id}", response_model=Product, dependencies=[Depends(require("products.read"))])
def get_product(product_id: str):
    return state.get_product(product_id)


@router.patch("/products/{product_id}", response_model=Product, dependencies=[Depends(require("products.update"))])
def update_product(product_id: str, data: ProductUpdate, x_user_id: Optional[str] = Header(default=None)):
    return state.update_product(product_id, data, x_user_id)


@router.delete("/products/{product_id}", response_model=Product, dependencies=[Depends(require("products.delete"))])
def remove_product(product_id: str, x_user_id: Optional[str] = Header(default=None)):
    return state.remove_product(product_id, x_user_id)


def _check_kafka_connection() -> bool:
    """Check if Kafka connection is available.

    Returns:
        bool: True if Kafka is accessible, False otherwise.
    """
    try:
        admin = AdminClient({"bootstrap.servers": os.getenv("KAFKA_BOOTSTRAP_SERVERS", "kafka:9092")})
        return bool(admin.list_topics(timeout=5))
    except Exception as e:
        logger.error(f"Kafka connection failed: {e}")
        return False


app.include_router(router)
logger.info("API router mounted.")
