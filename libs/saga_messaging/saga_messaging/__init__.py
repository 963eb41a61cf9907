"""Message contracts and transport adapters for the order fulfillment saga."""

from .errors import EventLogUnavailable, QueueUnavailable, TransportError
from .event_log import ORDER_EVENTS_TOPIC, PAYMENT_REQUESTS_TOPIC, EventLogConsumer, EventLogProducer
from .schemas import (
    DomainEvent,
    DomainEventName,
    OrderItem,
    OrderRequest,
    OrderStatus,
    PaymentErrorCode,
    PaymentRequest,
    PaymentResult,
    SimulatedError,
    can_transition,
)
from .work_queue import ORDER_REQUESTS_QUEUE, PAYMENT_RESULTS_QUEUE, WorkQueue

__version__ = "0.1.0"

__all__ = [
    "DomainEvent",
    "DomainEventName",
    "EventLogConsumer",
    "EventLogProducer",
    "EventLogUnavailable",
    "ORDER_EVENTS_TOPIC",
    "ORDER_REQUESTS_QUEUE",
    "OrderItem",
    "OrderRequest",
    "OrderStatus",
    "PAYMENT_REQUESTS_TOPIC",
    "PAYMENT_RESULTS_QUEUE",
    "PaymentErrorCode",
    "PaymentRequest",
    "PaymentResult",
    "QueueUnavailable",
    "SimulatedError",
    "TransportError",
    "WorkQueue",
    "can_transition",
]
