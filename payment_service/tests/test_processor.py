"""Tests for the payment decision table and the processor."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from saga_messaging.errors import QueueUnavailable
from saga_messaging.schemas import PaymentRequest, SimulatedError
from saga_messaging.work_queue import PAYMENT_RESULTS_QUEUE

from payment_service import __version__
from payment_service.processor import PaymentProcessor, decide


def test_version():
    """Testing package Version."""
    assert __version__ == "0.1.0"


def payment_request(test_error=None) -> PaymentRequest:
    return PaymentRequest(trace_id="trace-1", order_id="order-1", amount_cents=3448, test_error=test_error)


@pytest.mark.parametrize(
    "test_error,delay,success,error_code",
    [
        (None, False, True, None),
        (SimulatedError.BANK_TIMEOUT, True, False, "BANK_TIMEOUT"),
        (SimulatedError.PAYMENT_DECLINED, False, False, "INSUFFICIENT_FUNDS"),
        (SimulatedError.PAYMENT_SERVICE_UNAVAILABLE, False, False, "SERVICE_UNAVAILABLE"),
    ],
)
def test_decision_table(test_error, delay, success, error_code):
    decision = decide(payment_request(test_error))

    assert decision.delay is delay
    assert decision.result.success is success
    assert decision.result.error_code == error_code
    assert decision.result.order_id == "order-1"
    assert decision.result.trace_id == "trace-1"
    if not success:
        assert decision.result.error_message


@pytest.fixture
def work_queue():
    work_queue = AsyncMock()
    work_queue.publish = AsyncMock()
    return work_queue


@pytest.mark.asyncio
async def test_handle_publishes_one_result(work_queue):
    await PaymentProcessor(work_queue, bank_delay=0).handle(payment_request())

    work_queue.publish.assert_awaited_once()
    queue_name, result = work_queue.publish.await_args.args
    assert queue_name == PAYMENT_RESULTS_QUEUE
    assert result.success is True


@pytest.mark.asyncio
async def test_bank_timeout_waits_for_bank_delay(work_queue, mocker):
    sleep = mocker.patch("payment_service.processor.asyncio.sleep", new=AsyncMock())

    result = await PaymentProcessor(work_queue, bank_delay=15).process(payment_request(SimulatedError.BANK_TIMEOUT))

    sleep.assert_awaited_once_with(15)
    assert result.error_code == "BANK_TIMEOUT"


@pytest.mark.asyncio
async def test_immediate_outcomes_do_not_wait(work_queue, mocker):
    sleep = mocker.patch("payment_service.processor.asyncio.sleep", new=AsyncMock())

    await PaymentProcessor(work_queue, bank_delay=15).process(payment_request(SimulatedError.PAYMENT_DECLINED))

    sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_bank_delay_is_cancellable(work_queue):
    processor = PaymentProcessor(work_queue, bank_delay=60)
    task = asyncio.create_task(processor.handle(payment_request(SimulatedError.BANK_TIMEOUT)))
    await asyncio.sleep(0.01)

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    work_queue.publish.assert_not_awaited()


@pytest.mark.asyncio
async def test_bank_delay_does_not_block_other_requests(work_queue):
    processor = PaymentProcessor(work_queue, bank_delay=60)
    slow = asyncio.create_task(processor.handle(payment_request(SimulatedError.BANK_TIMEOUT)))

    await asyncio.wait_for(processor.handle(payment_request()), timeout=1.0)

    assert not slow.done()
    work_queue.publish.assert_awaited_once()
    slow.cancel()
    await asyncio.gather(slow, return_exceptions=True)


@pytest.mark.asyncio
async def test_publish_failure_propagates(work_queue):
    work_queue.publish.side_effect = QueueUnavailable(PAYMENT_RESULTS_QUEUE)

    with pytest.raises(QueueUnavailable):
        await PaymentProcessor(work_queue, bank_delay=0).handle(payment_request())
