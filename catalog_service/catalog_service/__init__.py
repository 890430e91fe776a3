"""Catalog service: product type schemas and attribute validation."""

__version__ = "0.1.0"
