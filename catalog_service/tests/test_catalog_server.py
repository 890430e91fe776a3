"""Tests for the Catalog Service HTTP shell."""

from http import HTTPStatus
from unittest.mock import Mock, patch

import pytest
from fastapi.testclient import TestClient

from catalog_service import server
from catalog_service.registry import CatalogState

EDITOR = {"X-User-Role": "MANAGER", "X-User-Id": "user-7"}
OWNER = {"X-User-Role": "OWNER"}


@pytest.fixture
def test_client(monkeypatch):
    """Fixture for a test client over a fresh catalog."""
    monkeypatch.setattr(server, "state", CatalogState())
    return TestClient(server.app)


@pytest.fixture
def created_type(test_client, apparel_schema):
    response = test_client.post(
        "/product-types", json={"name": "Apparel", "slug": "apparel", "schema_json": apparel_schema}, headers=EDITOR
    )
    assert response.status_code == HTTPStatus.OK
    return response.json()


def test_health_check(test_client):
    """Test the basic health check endpoint."""
    response = test_client.get("/health")
    assert response.status_code == HTTPStatus.OK
    assert response.json() == {"status": "healthy"}


@patch("catalog_service.server.AdminClient")
def test_readiness_check_success(mock_admin_client, test_client):
    mock_admin_instance = Mock()
    mock_admin_instance.list_topics.return_value = {"topics": ["audit.events"]}
    mock_admin_client.return_value = mock_admin_instance

    response = test_client.get("/health/ready")
    assert response.json() == {"status": "ready", "kafka": True}


@patch("catalog_service.server.AdminClient")
def test_readiness_check_failure(mock_admin_client, test_client):
    mock_admin_client.side_effect = Exception("Connection failed")

    response = test_client.get("/health/ready")
    assert response.json() == {"status": "not_ready", "kafka": False}


def test_create_requires_editor_role(test_client, apparel_schema):
    body = {"name": "Apparel", "slug": "apparel", "schema_json": apparel_schema}

    assert test_client.post("/product-types", json=body).status_code == HTTPStatus.FORBIDDEN
    assert test_client.post("/product-types", json=body, headers={"X-User-Role": "VIEWER"}).status_code == 403


def test_invalid_schema_maps_to_400(test_client):
    response = test_client.post(
        "/product-types/validate-schema",
        json={"fields": [{"key": "size", "label": "Size", "type": "enum", "options": []}]},
        headers=EDITOR,
    )

    assert response.status_code == HTTPStatus.BAD_REQUEST
    assert response.json() == {
        "error": "schema_invalid",
        "message": "Enum field 'size' must have a non-empty options array",
        "field": "size",
    }


def test_validate_schema_endpoint(test_client, apparel_schema):
    response = test_client.post("/product-types/validate-schema", json=apparel_schema, headers=EDITOR)
    assert response.json() == {"valid": True, "fields": 7}


def test_public_listing_and_slug_lookup(test_client, created_type):
    assert [t["slug"] for t in test_client.get("/product-types").json()] == ["apparel"]

    response = test_client.get("/product-types/slug/apparel")
    assert response.json()["id"] == created_type["id"]


def test_validate_attributes_is_public(test_client, created_type, valid_attributes):
    response = test_client.post(f"/product-types/{created_type['id']}/validate", json=valid_attributes)

    assert response.status_code == HTTPStatus.OK
    assert response.json()["attributes"]["size"] == {"kind": "enum", "value": "M"}


def test_unknown_attribute_maps_to_400(test_client, created_type, valid_attributes):
    response = test_client.post(
        f"/product-types/{created_type['id']}/validate", json={**valid_attributes, "colour": "red"}
    )

    assert response.status_code == HTTPStatus.BAD_REQUEST
    assert response.json()["error"] == "attribute_validation_failed"
    assert response.json()["rule"] == "unknown"


def test_missing_type_maps_to_404(test_client):
    response = test_client.get("/product-types/nope", headers=EDITOR)
    assert response.status_code == HTTPStatus.NOT_FOUND
    assert response.json()["error"] == "entity_not_found"


def test_delete_blocked_maps_to_409(test_client, created_type, valid_attributes):
    product = test_client.post(
        "/products",
        json={"type_id": created_type["id"], "title": "Tee", "base_price": 19.99, "attributes": valid_attributes},
        headers=EDITOR,
    )
    assert product.status_code == HTTPStatus.OK

    assert test_client.delete(f"/product-types/{created_type['id']}", headers=EDITOR).status_code == 403
    response = test_client.delete(f"/product-types/{created_type['id']}", headers=OWNER)
    assert response.status_code == HTTPStatus.CONFLICT
    assert response.json()["error"] == "deletion_blocked"
