"""Logging utilities for the order fulfillment services."""

from .config import get_kafka_logger, get_queue_logger, setup_service_logger

__all__ = [
    "setup_service_logger",
    "get_kafka_logger",
    "get_queue_logger",
]
