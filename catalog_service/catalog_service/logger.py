"""Logger module for the catalog service."""

import os

from logging_utils.config import setup_service_logger

logger = setup_service_logger("catalog-service", log_level=os.getenv("LOG_LEVEL", "INFO"))

__all__ = ["logger"]
