"""Tests for the role policy table."""

import pytest

from commerce_common.policy import POLICY, PUBLIC, Role, is_allowed, is_public, parse_role


@pytest.mark.parametrize("value, expected", [("owner", Role.OWNER), (" Viewer ", Role.VIEWER), ("root", None), (None, None)])
def test_parse_role(value, expected):
    assert parse_role(value) == expected


def test_public_operations_need_no_role():
    assert is_public("orders.create_guest")
    assert is_allowed("orders.create_guest", None)
    assert is_allowed("coupons.validate", "nobody")


def test_deletes_restricted_to_owners():
    for operation in ("product_types.delete", "products.delete", "coupons.delete"):
        assert is_allowed(operation, Role.OWNER)
        assert is_allowed(operation, "ADMIN")
        assert not is_allowed(operation, Role.MANAGER)


def test_viewers_read_but_do_not_write():
    assert is_allowed("orders.read", Role.VIEWER)
    assert not is_allowed("orders.update_status", Role.VIEWER)
    assert not is_allowed("coupons.create", Role.SUPPORT)


def test_unknown_operation_denied():
    assert not is_allowed("orders.teleport", Role.OWNER)


def test_every_operation_names_roles():
    for operation, roles in POLICY.items():
        assert roles, operation
        assert roles is PUBLIC or Role.OWNER in roles


def test_order_and_coupon_operations_match_routes():
    """Only operations a route enforces are listed; anything else is denied."""
    assert {op for op in POLICY if op.startswith(("orders.", "coupons."))} == {
        "orders.create",
        "orders.create_guest",
        "orders.read",
        "orders.update_status",
        "coupons.create",
        "coupons.read",
        "coupons.validate",
        "coupons.update",
        "coupons.toggle",
        "coupons.delete",
    }
    assert not is_allowed("orders.list", Role.OWNER)
    assert not is_allowed("coupons.list", Role.OWNER)
