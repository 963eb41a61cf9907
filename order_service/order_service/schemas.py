"""Pydantic models for the order API and the order store."""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from saga_messaging.schemas import OrderItem, OrderStatus

# Scenario selectors accepted by the intake API (X-Test-Error header).
ORDER_PROCESSING_FAILURE = "order_processing_failure"
TEST_ERROR_TYPES = (
    ORDER_PROCESSING_FAILURE,
    "bank_timeout",
    "payment_declined",
    "payment_service_unavailable",
)


class CreateOrderRequest(BaseModel):
    """Cart submitted by the client.

    Attributes:
        items: Cart lines. Emptiness is checked by the intake gateway, not here.
        total_amount_cents: Declared total; defaults to the sum of the lines.
        simulate_bank_delay: Legacy cart flag, same as X-Test-Error: bank_timeout.
        simulate_payment_declined: Legacy cart flag, same as X-Test-Error: payment_declined.
    """

    items: list[OrderItem] = Field(default_factory=list)
    total_amount_cents: Optional[int] = None
    simulate_bank_delay: bool = False
    simulate_payment_declined: bool = False

    def declared_total(self) -> int:
        if self.total_amount_cents is not None:
            return self.total_amount_cents
        return sum(item.price_cents * item.quantity for item in self.items)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "items": [
                    {"id": "sku-42", "name": "Coffee beans", "price_cents": 1299, "quantity": 2},
                    {"id": "sku-7", "name": "Mug", "price_cents": 850, "quantity": 1},
                ],
                "total_amount_cents": 3448,
            }
        }
    )


class SubmissionAccepted(BaseModel):
    order_id: str
    trace_id: str
    status: Literal["submitted"] = "submitted"


class Order(BaseModel):
    """Projection of a persisted order."""

    id: str
    trace_id: str
    status: OrderStatus
    amount_cents: int
    items: list[OrderItem]
    error_message: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class TerminalNotice(BaseModel):
    """Push delivered once to the client waiting on an order."""

    order_id: str = Field(..., min_length=1)
    status: Literal["paid", "payment_failed"]
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    error: str
    trace_id: str
    order_id: Optional[str] = None
    simulated: Optional[bool] = None
