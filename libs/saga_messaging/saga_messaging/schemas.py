"""Message contracts exchanged between the order and payment processes."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class OrderStatus(str, Enum):
    """Lifecycle of an order. Transitions only ever move forward."""

    CREATED = "created"
    SENT_TO_PAYMENT = "sent_to_payment"
    PAID = "paid"
    PAYMENT_FAILED = "payment_failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({OrderStatus.PAID, OrderStatus.PAYMENT_FAILED})

# target status -> statuses it may be reached from
ALLOWED_PREDECESSORS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.CREATED: frozenset(),
    OrderStatus.SENT_TO_PAYMENT: frozenset({OrderStatus.CREATED}),
    OrderStatus.PAID: frozenset({OrderStatus.SENT_TO_PAYMENT}),
    # created -> payment_failed happens when the forward hop to the event log fails
    OrderStatus.PAYMENT_FAILED: frozenset({OrderStatus.CREATED, OrderStatus.SENT_TO_PAYMENT}),
}


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    """Return True if an order in `current` may move to `target`."""
    return current in ALLOWED_PREDECESSORS[target]


class SimulatedError(str, Enum):
    """Failure-injection tags carried through the saga for demo and testing."""

    BANK_TIMEOUT = "bank_timeout"
    PAYMENT_DECLINED = "payment_declined"
    PAYMENT_SERVICE_UNAVAILABLE = "payment_service_unavailable"


class PaymentErrorCode(str, Enum):
    BANK_TIMEOUT = "BANK_TIMEOUT"
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"


class OrderItem(BaseModel):
    """A single cart line.

    Attributes:
        id: Catalog item identifier.
        name: Display name of the item.
        price_cents: Unit price in minor currency units.
        quantity: Number of units, at least one.
    """

    id: str = Field(..., min_length=1)
    name: str
    price_cents: int = Field(..., ge=0, description="Unit price in minor currency units")
    quantity: int = Field(..., ge=1)

    model_config = ConfigDict(
        json_schema_extra={"example": {"id": "sku-42", "name": "Coffee beans", "price_cents": 1299, "quantity": 2}}
    )


class OrderRequest(BaseModel):
    """Work-queue message produced by the intake gateway (queue: order_requests)."""

    order_id: str
    trace_id: str
    items: list[OrderItem] = Field(..., min_length=1)
    total_amount_cents: int = Field(..., gt=0)
    test_error: Optional[SimulatedError] = None


class PaymentRequest(BaseModel):
    """Event-log message keyed by order id (topic: payment_requests)."""

    trace_id: str
    order_id: str
    amount_cents: int = Field(..., gt=0)
    test_error: Optional[SimulatedError] = None


class PaymentResult(BaseModel):
    """Work-queue message produced by the payment processor (queue: payment_results)."""

    trace_id: str
    order_id: str
    success: bool
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    def failure_detail(self) -> str:
        """Human readable reason for a failed payment."""
        return self.error_message or self.error_code or "Payment declined"


class DomainEventName(str, Enum):
    ORDER_CREATED = "order_created"
    ORDER_PAID = "order_paid"
    ORDER_PAYMENT_FAILED = "order_payment_failed"


class DomainEvent(BaseModel):
    """Append-only business event keyed by order id (topic: order-events)."""

    event: DomainEventName
    trace_id: str
    order_id: str
    payload: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
