"""Errors raised by the order intake path and the order store."""

from typing import Optional

from saga_messaging.schemas import OrderStatus


class OrderError(Exception):
    """Base class for order errors. Carries the trace id of the originating request."""

    def __init__(self, message: str, trace_id: Optional[str] = None):
        self.trace_id = trace_id
        super().__init__(message)


class InvalidOrder(OrderError):
    """Empty cart or non-positive total. Nothing was enqueued."""


class SimulatedProcessingFailure(OrderError):
    """The caller selected the order_processing_failure scenario."""


class OrderSubmissionFailed(OrderError):
    """The order request could not be handed to the work queue."""

    def __init__(self, message: str, trace_id: str, order_id: str):
        self.order_id = order_id
        super().__init__(message, trace_id)


class OrderNotFound(OrderError):
    def __init__(self, order_id: str, trace_id: Optional[str] = None):
        self.order_id = order_id
        super().__init__(f"Order {order_id} not found", trace_id)


class PersistenceFailure(OrderError):
    """The order store rejected or failed a write."""


class OrderAlreadyExists(PersistenceFailure):
    def __init__(self, order_id: str, trace_id: Optional[str] = None):
        self.order_id = order_id
        super().__init__(f"Order {order_id} already exists", trace_id)


class InvalidStatusTransition(OrderError):
    """A status update would move an order backward or skip a stage."""

    def __init__(self, order_id: str, current: OrderStatus, target: OrderStatus):
        self.order_id = order_id
        self.current = current
        self.target = target
        super().__init__(f"Order {order_id} cannot move from {current.value} to {target.value}")
