"""Fire-and-forget audit and analytics publishing.

Audit and analytics writes must never change the outcome of the operation
that triggered them. Everything in here funnels through ``best_effort``,
which logs a failure and returns normally.
"""

import uuid
from collections import deque
from datetime import datetime, timezone
from typing import Any, Callable, Literal, Optional

from confluent_kafka import Producer
from logging_utils.config import get_kafka_logger
from pydantic import BaseModel, Field

logger = get_kafka_logger("commerce-common")

AUDIT_TOPIC = "audit.events"
ANALYTICS_TOPIC = "analytics.events"

AuditAction = Literal["CREATE", "UPDATE", "DELETE", "LOGIN", "LOGOUT"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditEvent(BaseModel):
    """A single audited mutation.

    Attributes:
        event_id: Unique identifier for the event
        actor_user_id: Who performed the action, None for guests
        action: What kind of mutation happened
        entity: Entity collection name (e.g. 'orders')
        entity_id: Identifier of the mutated entity
        old_values: Snapshot before the change
        new_values: Snapshot after the change
        created_at: When the event was recorded
    """

    event_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    actor_user_id: Optional[str] = None
    action: AuditAction
    entity: str
    entity_id: str
    old_values: Optional[Any] = None
    new_values: Optional[Any] = None
    created_at: datetime = Field(default_factory=_utcnow)


class AnalyticsEvent(BaseModel):
    """A tracked storefront/analytics event."""

    event_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    type: str
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    payload: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_utcnow)


def best_effort(label: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
    """Call ``fn`` and swallow any failure after logging it.

    Args:
        label: Short description used in the log line
        fn: The instrumentation call to make
        *args: Positional arguments for ``fn``
        **kwargs: Keyword arguments for ``fn``
    """
    try:
        fn(*args, **kwargs)
    except Exception as e:
        logger.opt(exception=e).error(f"Best-effort call failed | call={label} | error={e}")


class AuditProducer:
    """Kafka producer for audit and analytics events."""

    def __init__(self, bootstrap_servers: str, client_id: str, acks: str = "all"):
        """Initialize the audit producer.

        Args:
            bootstrap_servers: Kafka bootstrap servers
            client_id: Producer client ID
            acks: The number of acknowledgments the producer requires
        """
        self.producer = Producer(
            {
                "bootstrap.servers": bootstrap_servers,
                "client.id": client_id,
                "acks": acks,
                "message.timeout.ms": 5000,
            }
        )

    def _delivery_callback(self, err, msg) -> None:
        if err:
            logger.error(f"Audit delivery failed: {err}")
        else:
            logger.debug(f"Audit event delivered to {msg.topic()} [{msg.partition()}]")

    def _produce(self, topic: str, key: str, value: str) -> None:
        try:
            self.producer.produce(
                topic=topic,
                key=key.encode("utf-8"),
                value=value.encode("utf-8"),
                on_delivery=self._delivery_callback,
            )
            self.producer.poll(0)
        except BufferError:
            logger.warning("Producer buffer full, flushing...")
            self.producer.flush()
            raise

    def send_audit_event(self, event: AuditEvent) -> None:
        """Publish an audit event keyed by the audited entity id."""
        self._produce(AUDIT_TOPIC, event.entity_id, event.model_dump_json())

    def send_analytics_event(self, event: AnalyticsEvent) -> None:
        """Publish an analytics event keyed by the event type."""
        self._produce(ANALYTICS_TOPIC, event.type, event.model_dump_json())

    def flush(self, timeout: float = 10.0) -> None:
        remaining = self.producer.flush(timeout)
        if remaining > 0:
            logger.warning(f"{remaining} audit messages still pending delivery")

    def close(self) -> None:
        """Flush pending messages before shutdown."""
        self.flush()


class AuditTrail:
    """Records audit and analytics events without ever failing the caller.

    Recent events are kept in memory (bounded) so operators can inspect the
    trail of an entity; publishing goes to Kafka when a producer is set.
    """

    def __init__(self, producer: Optional[AuditProducer] = None, history_size: int = 1000):
        self.producer = producer
        self._history: deque[AuditEvent] = deque(maxlen=history_size)

    def _store(self, event: AuditEvent) -> None:
        self._history.append(event)
        if self.producer:
            self.producer.send_audit_event(event)

    def log(
        self,
        action: AuditAction,
        entity: str,
        entity_id: str,
        actor_user_id: Optional[str] = None,
        old_values: Any = None,
        new_values: Any = None,
    ) -> None:
        """Record an audit event, best effort."""
        event = AuditEvent(
            actor_user_id=actor_user_id,
            action=action,
            entity=entity,
            entity_id=entity_id,
            old_values=old_values,
            new_values=new_values,
        )
        best_effort(f"audit {action} {entity}:{entity_id}", self._store, event)
        logger.debug(f"Audit log created: {action} on {entity}:{entity_id}")

    def track(self, event_type: str, user_id: Optional[str] = None, **payload: Any) -> None:
        """Record an analytics event, best effort."""
        if not self.producer:
            return
        event = AnalyticsEvent(type=event_type, user_id=user_id, payload=payload)
        best_effort(f"track {event_type}", self.producer.send_analytics_event, event)

    def find_by_entity(self, entity: str, entity_id: str, limit: int = 50) -> list[AuditEvent]:
        """Most recent events first for one entity."""
        matches = [e for e in reversed(self._history) if e.entity == entity and e.entity_id == entity_id]
        return matches[:limit]
