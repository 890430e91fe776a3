"""Environment-driven settings for the order service."""

import os
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class OrderSettings(BaseModel):
    """Runtime configuration.

    Attributes:
        tax_rate (Decimal): Fraction of the subtotal charged as tax.
        flat_shipping (Decimal): Shipping charged on every order.
        currency (str): Default currency for new orders.
        database_url (str | None): SQLAlchemy URL; unset means the in-memory store.
        kafka_bootstrap_servers (str): Broker list for the event producers.
        kafka_events_enabled (bool): Whether to publish audit and order events.
    """

    tax_rate: Decimal = Field(default=Decimal("0.10"), ge=0)
    flat_shipping: Decimal = Field(default=Decimal("10.00"), ge=0)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    database_url: Optional[str] = None
    kafka_bootstrap_servers: str = "kafka:9092"
    kafka_events_enabled: bool = True

    @classmethod
    def from_env(cls) -> "OrderSettings":
        return cls(
            tax_rate=os.getenv("ORDER_TAX_RATE", "0.10"),
            flat_shipping=os.getenv("ORDER_FLAT_SHIPPING", "10.00"),
            currency=os.getenv("ORDER_CURRENCY", "USD"),
            database_url=os.getenv("DATABASE_URL") or None,
            kafka_bootstrap_servers=os.getenv("KAFKA_BOOTSTRAP_SERVERS", "kafka:9092"),
            kafka_events_enabled=os.getenv("KAFKA_EVENTS_ENABLED", "true").lower() == "true",
        )
