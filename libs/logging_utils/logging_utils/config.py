"""Logging configuration shared by the order and payment processes."""

import os
import sys
from typing import Optional

from loguru import logger as loguru_logger

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<magenta>{extra[service]}</magenta> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {extra[service]} | {name}:{function}:{line} - {message}"


def setup_service_logger(
    service_name: str,
    log_level: Optional[str] = None,
    log_file: Optional[str] = None,
) -> loguru_logger:
    """Configure the process-wide loguru sinks and return a logger bound to a service.

    Args:
        service_name: Name of the process (e.g., 'order-api', 'payment-service')
        log_level: Logging level, defaults to the LOG_LEVEL env var or INFO
        log_file: Optional path to a log file, defaults to the LOG_FILE env var

    Returns:
        logger: Configured loguru logger bound with the service name
    """
    log_level = log_level or os.getenv("LOG_LEVEL", "INFO")
    log_file = log_file or os.getenv("LOG_FILE")

    loguru_logger.remove()
    loguru_logger.configure(extra={"service": service_name})

    loguru_logger.add(
        sys.stderr,
        level=log_level,
        format=CONSOLE_FORMAT,
        colorize=True,
        enqueue=True,
        backtrace=True,
        diagnose=False,
    )

    if log_file:
        loguru_logger.add(
            log_file,
            level=log_level,
            format=FILE_FORMAT,
            rotation="10 MB",
            retention="1 week",
            compression="gz",
            enqueue=True,
        )

    return loguru_logger.bind(service=service_name)


def get_kafka_logger(service_name: str) -> loguru_logger:
    """Get a logger for event-log (Kafka) operations.

    Unlike setup_service_logger this does not touch the configured sinks.
    """
    return loguru_logger.bind(service=f"{service_name}.kafka")


def get_queue_logger(service_name: str) -> loguru_logger:
    """Get a logger for work-queue (RabbitMQ) operations."""
    return loguru_logger.bind(service=f"{service_name}.rabbitmq")
