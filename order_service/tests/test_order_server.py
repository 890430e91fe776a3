"""Tests for the Order Service HTTP shell."""

from http import HTTPStatus
from unittest.mock import Mock, patch

import pytest
from fastapi.testclient import TestClient

from order_service import server
from order_service.config import OrderSettings

STAFF = {"X-User-Role": "SUPPORT", "X-User-Id": "user-9"}
MANAGER = {"X-User-Role": "MANAGER", "X-User-Id": "manager-1"}


@pytest.fixture
def service_state(monkeypatch, variant_a, variant_b):
    """Fresh in-memory service state seeded with variants A and B."""
    state = server.OrderServiceState(OrderSettings(kafka_events_enabled=False))
    state.store.add_variant(variant_a)
    state.store.add_variant(variant_b)
    monkeypatch.setattr(server, "state", state)
    return state


@pytest.fixture
def test_client(service_state):
    """Fixture for creating a test client."""
    return TestClient(server.app)


def test_health_check(test_client):
    response = test_client.get("/health")
    assert response.status_code == HTTPStatus.OK
    assert response.json() == {"status": "healthy"}


@patch("order_service.server.AdminClient")
def test_readiness_check_success(mock_admin_client, test_client):
    mock_admin_instance = Mock()
    mock_admin_instance.list_topics.return_value = {"topics": ["orders.created"]}
    mock_admin_client.return_value = mock_admin_instance

    response = test_client.get("/health/ready")
    assert response.json() == {"status": "ready", "kafka": True}


@patch("order_service.server.AdminClient")
def test_readiness_check_failure(mock_admin_client, test_client):
    mock_admin_client.side_effect = Exception("Connection failed")

    response = test_client.get("/health/ready")
    assert response.json() == {"status": "not_ready", "kafka": False}


def test_guest_order(test_client):
    response = test_client.post("/orders/guest", json={"items": [{"variant_id": "var-a", "quantity": 3}]})

    assert response.status_code == HTTPStatus.CREATED
    body = response.json()
    assert body["pricing"]["subtotal"] == "60.00"
    assert body["pricing"]["total_amount"] == "76.00"
    assert body["status"] == "PENDING"
    assert body["user_id"] is None


def test_staff_order_requires_role(test_client):
    order = {"items": [{"variant_id": "var-a", "quantity": 1}]}

    assert test_client.post("/orders", json=order).status_code == HTTPStatus.FORBIDDEN
    response = test_client.post("/orders", json=order, headers=STAFF)
    assert response.status_code == HTTPStatus.CREATED
    assert response.json()["user_id"] == "user-9"


def test_empty_order_is_rejected_by_request_model(test_client):
    response = test_client.post("/orders/guest", json={"items": []})
    assert response.status_code == HTTPStatus.UNPROCESSABLE_ENTITY


def test_insufficient_inventory_maps_to_409(test_client):
    response = test_client.post("/orders/guest", json={"items": [{"variant_id": "var-b", "quantity": 9}]})

    assert response.status_code == HTTPStatus.CONFLICT
    body = response.json()
    assert body["error"] == "insufficient_inventory"
    assert body["available"] == 2
    assert body["requested"] == 9


def test_order_lookup_and_status(test_client):
    created = test_client.post("/orders/guest", json={"items": [{"variant_id": "var-a", "quantity": 1}]}).json()
    number = created["order_number"]

    assert test_client.get(f"/orders/number/{number}", headers=STAFF).json()["id"] == created["id"]
    assert test_client.patch(f"/orders/number/{number}/status", json={"status": "PAID"}, headers=STAFF).status_code == 403

    response = test_client.patch(f"/orders/number/{number}/status", json={"status": "PAID"}, headers=MANAGER)
    assert response.json()["status"] == "PAID"
    assert response.json()["paid_at"] is not None


def test_coupon_lifecycle(test_client):
    coupon = {"code": "spring", "type": "PERCENTAGE", "value": "10", "usage_limit": 5}

    created = test_client.post("/coupons", json=coupon, headers=MANAGER)
    assert created.status_code == HTTPStatus.CREATED
    assert created.json()["code"] == "SPRING"

    quote = test_client.post("/coupons/validate", json={"code": "Spring", "subtotal": "60.00"})
    assert quote.json()["discount_amount"] == "6.00"

    order = test_client.post(
        "/orders/guest", json={"items": [{"variant_id": "var-a", "quantity": 3}], "coupon_code": "spring"}
    ).json()
    assert order["pricing"]["discount_amount"] == "6.00"
    assert order["pricing"]["total_amount"] == "70.00"

    assert test_client.get("/coupons/code/SPRING", headers=STAFF).json()["usage_count"] == 1
    assert test_client.post("/coupons/code/SPRING/toggle", headers=MANAGER).json()["active"] is False

    response = test_client.delete("/coupons/code/SPRING", headers={"X-User-Role": "OWNER"})
    assert response.status_code == HTTPStatus.CONFLICT
    assert response.json()["error"] == "deletion_blocked"


def test_invalid_coupon_configuration_maps_to_422(test_client):
    response = test_client.post("/coupons", json={"code": "X", "type": "PERCENTAGE", "value": "150"}, headers=MANAGER)

    assert response.status_code == HTTPStatus.UNPROCESSABLE_ENTITY
    assert response.json()["error"] == "invalid_coupon_configuration"


def test_expired_coupon_maps_to_400(test_client):
    test_client.post(
        "/coupons",
        json={"code": "OLD", "type": "FIXED_AMOUNT", "value": "5", "expires_at": "2000-01-01T00:00:00Z"},
        headers=MANAGER,
    )

    response = test_client.post("/coupons/validate", json={"code": "OLD", "subtotal": "50"})
    assert response.status_code == HTTPStatus.BAD_REQUEST
    assert response.json()["error"] == "coupon_expired"
