"""Simulated payment decisions."""

import asyncio
from typing import NamedTuple

from saga_messaging.schemas import PaymentErrorCode, PaymentRequest, PaymentResult, SimulatedError
from saga_messaging.work_queue import PAYMENT_RESULTS_QUEUE, WorkQueue

from .logger import logger

BANK_TIMEOUT_MESSAGE = "Bank response timed out (simulated)"
INSUFFICIENT_FUNDS_MESSAGE = "Insufficient funds (simulated)"
SERVICE_UNAVAILABLE_MESSAGE = "Payment service temporarily unavailable (simulated)"


class PaymentDecision(NamedTuple):
    delay: bool
    result: PaymentResult


def decide(request: PaymentRequest) -> PaymentDecision:
    """Decide the outcome of a payment from its failure-injection tag alone."""
    base = {"trace_id": request.trace_id, "order_id": request.order_id}

    if request.test_error == SimulatedError.BANK_TIMEOUT:
        return PaymentDecision(
            True,
            PaymentResult(
                **base,
                success=False,
                error_code=PaymentErrorCode.BANK_TIMEOUT.value,
                error_message=BANK_TIMEOUT_MESSAGE,
            ),
        )
    if request.test_error == SimulatedError.PAYMENT_DECLINED:
        return PaymentDecision(
            False,
            PaymentResult(
                **base,
                success=False,
                error_code=PaymentErrorCode.INSUFFICIENT_FUNDS.value,
                error_message=INSUFFICIENT_FUNDS_MESSAGE,
            ),
        )
    if request.test_error == SimulatedError.PAYMENT_SERVICE_UNAVAILABLE:
        return PaymentDecision(
            False,
            PaymentResult(
                **base,
                success=False,
                error_code=PaymentErrorCode.SERVICE_UNAVAILABLE.value,
                error_message=SERVICE_UNAVAILABLE_MESSAGE,
            ),
        )
    return PaymentDecision(False, PaymentResult(**base, success=True))


class PaymentProcessor:
    """Turns each payment request into exactly one payment result on the work queue."""

    def __init__(self, work_queue: WorkQueue, bank_delay: float = 15.0):
        """Initialize the payment processor.

        Args:
            work_queue: Connected queue the results are published to
            bank_delay: Seconds the simulated bank takes to time out
        """
        self.work_queue = work_queue
        self.bank_delay = bank_delay

    async def process(self, request: PaymentRequest) -> PaymentResult:
        context = f"trace_id={request.trace_id} | order_id={request.order_id}"
        test_error = request.test_error.value if request.test_error else None
        logger.info(f"Processing payment | {context} | amount_cents={request.amount_cents} | test_error={test_error}")

        decision = decide(request)
        if decision.delay:
            logger.info(f"Simulated bank delay | {context} | simulated_error={test_error} | delay_seconds={self.bank_delay}")
            # Only the consumer task that owns this record waits.
            await asyncio.sleep(self.bank_delay)

        result = decision.result
        if result.success:
            logger.info(f"Payment completed | {context}")
        elif request.test_error == SimulatedError.PAYMENT_SERVICE_UNAVAILABLE:
            logger.error(f"Simulated payment service unavailable | {context} | simulated_error={test_error}")
        else:
            logger.warning(f"Payment failed | {context} | simulated_error={test_error} | error_code={result.error_code}")
        return result

    async def handle(self, request: PaymentRequest) -> None:
        """Process a request and publish its result.

        Raises:
            QueueUnavailable: The result could not be published. The record is
                then delivered again rather than dropped.
        """
        result = await self.process(request)
        await self.work_queue.publish(PAYMENT_RESULTS_QUEUE, result)
        logger.debug(f"Payment result queued | trace_id={result.trace_id} | order_id={result.order_id}")
