"""Logger module for the order service processes."""

import os

from logging_utils.config import setup_service_logger

logger = setup_service_logger(
    os.getenv("SERVICE_NAME", "order-service"),
    log_level=os.getenv("LOG_LEVEL", "INFO"),
)

__all__ = ["logger"]
