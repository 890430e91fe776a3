"""Test fixtures for the catalog service tests."""

import pytest

from catalog_service.registry import CatalogState
from catalog_service.schemas import ProductTypeCreate


@pytest.fixture
def apparel_schema():
    """A schema exercising every field type.

    Returns:
        dict: Raw schema with fields in declaration order.
    """
    return {
        "fields": [
            {"key": "material", "label": "Material", "type": "string", "required": True, "min": 3, "max": 40},
            {"key": "weight", "label": "Weight", "type": "number", "min": 0, "max": 100},
            {"key": "organic", "label": "Organic", "type": "boolean"},
            {"key": "size", "label": "Size", "type": "enum", "options": ["S", "M", "L"], "required": True},
            {"key": "released", "label": "Release date", "type": "date"},
            {"key": "manual", "label": "Care manual", "type": "file"},
            {"key": "length", "label": "Length", "type": "measurement"},
        ]
    }


@pytest.fixture
def valid_attributes():
    """Attributes that satisfy ``apparel_schema``."""
    return {
        "material": "Cotton",
        "weight": 12.5,
        "organic": True,
        "size": "M",
        "released": "2024-05-01",
        "manual": "https://cdn.example.com/manual.pdf",
        "length": {"value": 70, "unit": "cm"},
    }


@pytest.fixture
def catalog():
    """Empty catalog with an in-memory audit trail."""
    return CatalogState()


@pytest.fixture
def apparel_type(catalog, apparel_schema):
    """A stored product type named Apparel."""
    return catalog.create_product_type(ProductTypeCreate(name="Apparel", slug="apparel", schema_json=apparel_schema))
