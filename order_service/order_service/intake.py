"""Intake gateway: validates a cart and admits it onto the order_requests queue."""

import uuid
from typing import Optional

from saga_messaging.errors import QueueUnavailable
from saga_messaging.schemas import OrderRequest, SimulatedError
from saga_messaging.work_queue import ORDER_REQUESTS_QUEUE, WorkQueue

from .errors import InvalidOrder, OrderSubmissionFailed, SimulatedProcessingFailure
from .logger import logger
from .schemas import ORDER_PROCESSING_FAILURE, CreateOrderRequest, SubmissionAccepted


def resolve_test_error(test_error: Optional[str], cart: CreateOrderRequest) -> Optional[SimulatedError]:
    """Map the caller's scenario selector onto the tag carried downstream.

    The X-Test-Error header wins; the legacy cart flags are used only without it.
    Unknown selectors are ignored.
    """
    if test_error in {tag.value for tag in SimulatedError}:
        return SimulatedError(test_error)
    if cart.simulate_bank_delay:
        return SimulatedError.BANK_TIMEOUT
    if cart.simulate_payment_declined:
        return SimulatedError.PAYMENT_DECLINED
    return None


class IntakeGateway:
    """Admits orders. Keeps no state of its own; everything durable is downstream."""

    def __init__(self, work_queue: WorkQueue):
        self.work_queue = work_queue

    async def submit(
        self,
        cart: CreateOrderRequest,
        trace_id: str,
        test_error: Optional[str] = None,
    ) -> SubmissionAccepted:
        """Validate a cart and enqueue it as an OrderRequest.

        Raises:
            SimulatedProcessingFailure: The order_processing_failure scenario was selected.
            InvalidOrder: Empty cart or non-positive total.
            OrderSubmissionFailed: The work queue did not accept the message.
        """
        logger.info(f"Create order request | trace_id={trace_id} | test_error={test_error}")

        if test_error == ORDER_PROCESSING_FAILURE:
            logger.error(f"Simulated error: order_processing_failure | trace_id={trace_id} | simulated_error={test_error}")
            raise SimulatedProcessingFailure("Order processing failed (simulated)", trace_id)

        total = cart.declared_total()
        if not cart.items or total <= 0:
            logger.warning(
                f"Validation failed: empty cart or invalid amount | trace_id={trace_id} | "
                f"items={len(cart.items)} | total_amount_cents={total}"
            )
            raise InvalidOrder("Invalid order: empty cart or invalid amount", trace_id)

        order_id = str(uuid.uuid4())
        request = OrderRequest(
            order_id=order_id,
            trace_id=trace_id,
            items=cart.items,
            total_amount_cents=total,
            test_error=resolve_test_error(test_error, cart),
        )

        try:
            await self.work_queue.publish(ORDER_REQUESTS_QUEUE, request)
        except QueueUnavailable as e:
            logger.error(f"Failed to publish order to RabbitMQ | trace_id={trace_id} | order_id={order_id} | error={e}")
            raise OrderSubmissionFailed("Order service busy (RabbitMQ unavailable)", trace_id, order_id) from e

        logger.info(f"Order submitted to queue | trace_id={trace_id} | order_id={order_id}")
        return SubmissionAccepted(order_id=order_id, trace_id=trace_id)
