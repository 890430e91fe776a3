"""Logger module for the order service."""

import os

from logging_utils.config import setup_service_logger

logger = setup_service_logger("order-service", log_level=os.getenv("LOG_LEVEL", "INFO"))

__all__ = ["logger"]
