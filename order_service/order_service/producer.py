"""Kafka producer for publishing order events."""

from confluent_kafka import Producer

from .logger import logger
from .schemas import PricedOrder

ORDERS_CREATED_TOPIC = "orders.created"


class OrderProducer:
    """Kafka producer for committed orders.

    Orders are keyed by order number so every event for one order lands on
    the same partition.

    Attributes:
        _producer: The underlying Kafka producer instance.
    """

    def __init__(self, bootstrap_servers: str):
        """Initialize the Kafka producer with the given bootstrap servers.

        Args:
            bootstrap_servers (str): Comma-separated list of Kafka broker addresses.
        """
        self._producer = Producer(
            {
                "bootstrap.servers": bootstrap_servers,
                "client.id": "order-service",
                "message.timeout.ms": 5000,
                "partitioner": "consistent_random",
            }
        )

    @property
    def producer(self):
        return self._producer

    def _delivery_callback(self, err, msg):
        if err:
            logger.error(f"Order event failed delivery to {msg.topic()}: {err}")
        else:
            logger.debug(f"Order event delivered to {msg.topic()} [p:{msg.partition()}] @ {msg.offset()}")

    def publish_order(self, order: PricedOrder):
        """Publish a committed order.

        Args:
            order (PricedOrder): The order's amounts and line items.

        Raises:
            BufferError: If the producer's internal buffer is full.
        """
        try:
            self._producer.produce(
                topic=ORDERS_CREATED_TOPIC,
                key=order.order_number.encode("utf-8"),
                value=order.model_dump_json(),
                on_delivery=self._delivery_callback,
            )
            self._producer.poll(0)
        except BufferError:
            logger.warning("Producer buffer full, flushing...")
            self._producer.flush()
            raise

    def close(self, timeout: float = 10.0):
        remaining = self._producer.flush(timeout)
        if remaining:
            logger.warning(f"{remaining} order events not delivered before shutdown")
