"""Attach the order workers to their work queues."""

from saga_messaging.event_log import EventLogProducer
from saga_messaging.schemas import OrderRequest, PaymentResult
from saga_messaging.work_queue import ORDER_REQUESTS_QUEUE, PAYMENT_RESULTS_QUEUE, WorkQueue

from .notifications import StatusNotifier
from .order_worker import OrderIngestionWorker
from .result_worker import PaymentResultWorker
from .store import OrderStore


async def start_order_ingestion(
    work_queue: WorkQueue, store: OrderStore, event_log: EventLogProducer, notifier: StatusNotifier
) -> str:
    worker = OrderIngestionWorker(store, event_log, notifier)
    return await work_queue.consume(ORDER_REQUESTS_QUEUE, OrderRequest, worker.handle)


async def start_payment_results(
    work_queue: WorkQueue, store: OrderStore, event_log: EventLogProducer, notifier: StatusNotifier
) -> str:
    worker = PaymentResultWorker(store, event_log, notifier)
    return await work_queue.consume(PAYMENT_RESULTS_QUEUE, PaymentResult, worker.handle)


async def start_order_consumers(
    work_queue: WorkQueue, store: OrderStore, event_log: EventLogProducer, notifier: StatusNotifier
) -> list[str]:
    """Run both order workers on one connection, as a single-process deployment does."""
    return [
        await start_order_ingestion(work_queue, store, event_log, notifier),
        await start_payment_results(work_queue, store, event_log, notifier),
    ]
