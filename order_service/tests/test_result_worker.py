"""Tests for the payment result worker."""

import pytest
import pytest_asyncio

from saga_messaging.errors import EventLogUnavailable
from saga_messaging.schemas import DomainEventName, OrderStatus, PaymentResult

from order_service.errors import InvalidStatusTransition
from order_service.result_worker import PaymentResultWorker


@pytest_asyncio.fixture
async def sent_order(store, items):
    await store.create_order("order-1", "trace-1", 3448, items)
    await store.mark_sent_to_payment("order-1")
    return "order-1"


def failed_result(**overrides):
    values = {"trace_id": "trace-1", "order_id": "order-1", "success": False}
    values.update(overrides)
    return PaymentResult(**values)


@pytest.mark.asyncio
async def test_success_marks_order_paid(store, event_log, notifier, sent_order):
    await PaymentResultWorker(store, event_log, notifier).handle(
        PaymentResult(trace_id="trace-1", order_id=sent_order, success=True)
    )

    assert (await store.get_order(sent_order)).status == OrderStatus.PAID
    assert event_log.publish_domain_event.call_args.args[0].event == DomainEventName.ORDER_PAID
    notifier.notify.assert_awaited_once_with(sent_order, OrderStatus.PAID)


@pytest.mark.asyncio
async def test_failure_records_error_message(store, event_log, notifier, sent_order):
    result = failed_result(error_code="INSUFFICIENT_FUNDS", error_message="Insufficient funds (simulated)")
    await PaymentResultWorker(store, event_log, notifier).handle(result)

    order = await store.get_order(sent_order)
    assert order.status == OrderStatus.PAYMENT_FAILED
    assert order.error_message == "Insufficient funds (simulated)"

    event = event_log.publish_domain_event.call_args.args[0]
    assert event.event == DomainEventName.ORDER_PAYMENT_FAILED
    assert event.payload == {"error_code": "INSUFFICIENT_FUNDS", "error_message": "Insufficient funds (simulated)"}
    notifier.notify.assert_awaited_once_with(
        sent_order, OrderStatus.PAYMENT_FAILED, "Insufficient funds (simulated)"
    )


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error_code,expected",
    [("BANK_TIMEOUT", "BANK_TIMEOUT"), (None, "Payment declined")],
)
async def test_failure_detail_fallbacks(store, event_log, notifier, sent_order, error_code, expected):
    await PaymentResultWorker(store, event_log, notifier).handle(failed_result(error_code=error_code))
    assert (await store.get_order(sent_order)).error_message == expected


@pytest.mark.asyncio
async def test_late_result_cannot_reverse_terminal_status(store, event_log, notifier, sent_order):
    worker = PaymentResultWorker(store, event_log, notifier)
    await worker.handle(PaymentResult(trace_id="trace-1", order_id=sent_order, success=True))
    notifier.notify.reset_mock()

    await worker.handle(failed_result(error_code="BANK_TIMEOUT"))

    assert (await store.get_order(sent_order)).status == OrderStatus.PAID
    notifier.notify.assert_not_awaited()


@pytest.mark.asyncio
async def test_redelivered_success_is_harmless(store, event_log, notifier, sent_order):
    worker = PaymentResultWorker(store, event_log, notifier)
    result = PaymentResult(trace_id="trace-1", order_id=sent_order, success=True)
    await worker.handle(result)
    event_log.publish_domain_event.reset_mock()
    notifier.notify.reset_mock()

    await worker.handle(result)

    assert (await store.get_order(sent_order)).status == OrderStatus.PAID
    event_log.publish_domain_event.assert_not_called()
    notifier.notify.assert_not_awaited()


@pytest.mark.asyncio
async def test_redelivered_failure_is_not_announced_twice(store, event_log, notifier, sent_order):
    worker = PaymentResultWorker(store, event_log, notifier)
    result = failed_result(error_code="INSUFFICIENT_FUNDS")
    await worker.handle(result)
    await worker.handle(result)

    assert event_log.publish_domain_event.call_count == 1
    notifier.notify.assert_awaited_once()


@pytest.mark.asyncio
async def test_unknown_order_is_dropped(store, event_log, notifier):
    await PaymentResultWorker(store, event_log, notifier).handle(
        PaymentResult(trace_id="trace-1", order_id="missing", success=True)
    )
    notifier.notify.assert_not_awaited()


@pytest.mark.asyncio
async def test_domain_event_failure_still_notifies(store, event_log, notifier, sent_order):
    event_log.publish_domain_event.side_effect = EventLogUnavailable("order-events", "timed out")
    await PaymentResultWorker(store, event_log, notifier).handle(
        PaymentResult(trace_id="trace-1", order_id=sent_order, success=True)
    )
    notifier.notify.assert_awaited_once_with(sent_order, OrderStatus.PAID)


@pytest.mark.asyncio
async def test_success_before_forward_is_recorded_is_requeued(store, event_log, notifier, items):
    # The payment request was published but the ingestion worker has not yet stored sent_to_payment.
    await store.create_order("order-1", "trace-1", 3448, items)
    worker = PaymentResultWorker(store, event_log, notifier)
    result = PaymentResult(trace_id="trace-1", order_id="order-1", success=True)

    with pytest.raises(InvalidStatusTransition):
        await worker.handle(result)
    notifier.notify.assert_not_awaited()

    await store.mark_sent_to_payment("order-1")
    await worker.handle(result)

    assert (await store.get_order("order-1")).status == OrderStatus.PAID
    notifier.notify.assert_awaited_once_with("order-1", OrderStatus.PAID)
    assert event_log.publish_domain_event.call_args.args[0].event == DomainEventName.ORDER_PAID

