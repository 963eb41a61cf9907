"""End-to-end order flow with in-memory transports standing in for the brokers."""

import pytest

from saga_messaging.errors import EventLogUnavailable
from saga_messaging.schemas import OrderStatus, PaymentResult
from saga_messaging.work_queue import ORDER_REQUESTS_QUEUE, PAYMENT_RESULTS_QUEUE

from order_service.intake import IntakeGateway
from order_service.notifications import InMemorySubscriptionRegistry, RegistryStatusNotifier
from order_service.order_worker import OrderIngestionWorker
from order_service.result_worker import PaymentResultWorker
from payment_service.processor import PaymentProcessor


async def run_saga(store, work_queue, event_log, cart, test_error=None):
    """Drive one cart through every stage and return (order_id, notice)."""
    registry = InMemorySubscriptionRegistry()
    notifier = RegistryStatusNotifier(registry)

    accepted = await IntakeGateway(work_queue).submit(cart, "trace-e2e", test_error)
    subscription = registry.subscribe(accepted.order_id)

    queue_name, order_request = work_queue.published.pop(0)
    assert queue_name == ORDER_REQUESTS_QUEUE
    await OrderIngestionWorker(store, event_log, notifier).handle(order_request)

    if (await store.get_order(accepted.order_id)).status == OrderStatus.SENT_TO_PAYMENT:
        payment_request = event_log.publish_payment_request.call_args.args[0]
        await PaymentProcessor(work_queue, bank_delay=0).handle(payment_request)
        queue_name, payment_result = work_queue.published.pop(0)
        assert queue_name == PAYMENT_RESULTS_QUEUE
        assert isinstance(payment_result, PaymentResult)
        await PaymentResultWorker(store, event_log, notifier).handle(payment_result)

    return accepted.order_id, await subscription.wait(timeout=1.0)


@pytest.mark.asyncio
async def test_happy_path_ends_paid(store, work_queue, event_log, cart):
    order_id, notice = await run_saga(store, work_queue, event_log, cart)

    assert notice.status == "paid"
    assert notice.detail is None
    order = await store.get_order(order_id)
    assert order.status == OrderStatus.PAID
    assert order.trace_id == "trace-e2e"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "test_error,error_code",
    [
        ("bank_timeout", "BANK_TIMEOUT"),
        ("payment_declined", "INSUFFICIENT_FUNDS"),
        ("payment_service_unavailable", "SERVICE_UNAVAILABLE"),
    ],
)
async def test_failure_scenarios_end_payment_failed(store, work_queue, event_log, cart, test_error, error_code):
    order_id, notice = await run_saga(store, work_queue, event_log, cart, test_error)

    assert notice.status == "payment_failed"
    order = await store.get_order(order_id)
    assert order.status == OrderStatus.PAYMENT_FAILED
    assert order.error_message == notice.detail
    failed_event = event_log.publish_domain_event.call_args.args[0]
    assert failed_event.payload["error_code"] == error_code


@pytest.mark.asyncio
async def test_legacy_cart_flag_declines_payment(store, work_queue, event_log, cart):
    cart.simulate_payment_declined = True
    order_id, notice = await run_saga(store, work_queue, event_log, cart)

    assert notice.status == "payment_failed"
    assert (await store.get_order(order_id)).status == OrderStatus.PAYMENT_FAILED


@pytest.mark.asyncio
async def test_event_log_outage_fails_order_before_payment(store, work_queue, event_log, cart):
    event_log.publish_payment_request.side_effect = EventLogUnavailable("payment_requests", "broker down")
    order_id, notice = await run_saga(store, work_queue, event_log, cart)

    assert notice.status == "payment_failed"
    assert notice.detail == "Failed to forward to payment"
    assert (await store.get_order(order_id)).status == OrderStatus.PAYMENT_FAILED
