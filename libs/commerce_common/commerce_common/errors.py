"""Domain error taxonomy shared by the catalog and order services.

Every failure the engines raise is a ``CommerceError`` subclass carrying a
stable ``code``, the HTTP status the service shells map it to, and a
``context`` dict with the structured details (field label, variant id, ...).
"""

from http import HTTPStatus
from typing import Any


class CommerceError(Exception):
    """Base class for all structured domain failures."""

    code = "commerce_error"
    status_code = HTTPStatus.BAD_REQUEST

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        """Serialize the error for an API response body."""
        return {"error": self.code, "message": self.message, **self.context}

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, context={self.context!r})"


class SchemaInvalid(CommerceError):
    """A product type field schema is malformed."""

    code = "schema_invalid"


class AttributeValidationFailed(CommerceError):
    """A product attribute payload does not match its type schema."""

    code = "attribute_validation_failed"


class EntityNotFound(CommerceError):
    code = "entity_not_found"
    status_code = HTTPStatus.NOT_FOUND


class EntityInactive(CommerceError):
    code = "entity_inactive"


class EntityConflict(CommerceError):
    """A unique key (slug, coupon code, order number) is already taken."""

    code = "entity_conflict"
    status_code = HTTPStatus.CONFLICT


class DeletionBlocked(CommerceError):
    """An entity is still referenced and cannot be deleted."""

    code = "deletion_blocked"
    status_code = HTTPStatus.CONFLICT


class InsufficientInventory(CommerceError):
    code = "insufficient_inventory"
    status_code = HTTPStatus.CONFLICT


class CouponExpired(CommerceError):
    code = "coupon_expired"


class CouponExhausted(CommerceError):
    code = "coupon_exhausted"


class CouponMinimumNotMet(CommerceError):
    code = "coupon_minimum_not_met"


class InvalidCouponConfiguration(CommerceError):
    code = "invalid_coupon_configuration"
    status_code = HTTPStatus.UNPROCESSABLE_ENTITY


class InvalidStateTransition(CommerceError):
    code = "invalid_state_transition"
    status_code = HTTPStatus.CONFLICT


class InvalidOrderRequest(CommerceError):
    code = "invalid_order_request"
