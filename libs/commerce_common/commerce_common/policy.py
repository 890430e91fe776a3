"""Role policy table consulted by the service shells before calling an engine."""

from enum import Enum
from typing import Optional, Union


class Role(str, Enum):
    """Staff roles, most to least privileged."""

    OWNER = "OWNER"
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    SUPPORT = "SUPPORT"
    VIEWER = "VIEWER"


# Operations anyone may call, with or without a role.
PUBLIC = frozenset(Role)

_OWNERS = frozenset({Role.OWNER, Role.ADMIN})
_EDITORS = _OWNERS | {Role.MANAGER}
_SUPPORT = _EDITORS | {Role.SUPPORT}
_STAFF = _SUPPORT | {Role.VIEWER}

POLICY: dict[str, frozenset[Role]] = {
    # product types
    "product_types.create": _EDITORS,
    "product_types.read": _STAFF,
    "product_types.read_public": PUBLIC,
    "product_types.update": _EDITORS,
    "product_types.delete": _OWNERS,
    "product_types.validate_attributes": PUBLIC,
    # products
    "products.create": _EDITORS,
    "products.read": _STAFF,
    "products.update": _EDITORS,
    "products.delete": _OWNERS,
    # orders
    "orders.create": _STAFF,
    "orders.create_guest": PUBLIC,
    "orders.read": _STAFF,
    "orders.update_status": _EDITORS,
    # coupons
    "coupons.create": _EDITORS,
    "coupons.read": _SUPPORT,
    "coupons.validate": PUBLIC,
    "coupons.update": _EDITORS,
    "coupons.toggle": _EDITORS,
    "coupons.delete": _OWNERS,
}


def parse_role(value: Union[Role, str, None]) -> Optional[Role]:
    """Turn a header value into a Role, or None when absent or unknown."""
    if value is None or isinstance(value, Role):
        return value
    try:
        return Role(value.strip().upper())
    except ValueError:
        return None


def is_public(operation: str) -> bool:
    return POLICY.get(operation) is PUBLIC


def is_allowed(operation: str, role: Union[Role, str, None]) -> bool:
    """Return True if ``role`` may perform ``operation``.

    Unknown operations are denied. Public operations are allowed even
    without a role.
    """
    allowed = POLICY.get(operation)
    if allowed is None:
        return False
    if allowed is PUBLIC:
        return True
    parsed = parse_role(role)
    return parsed is not None and parsed in allowed
