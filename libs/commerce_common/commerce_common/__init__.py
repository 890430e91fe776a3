"""Shared building blocks for the commerce services."""

__version__ = "0.1.0"
