"""Entry points for the order service processes."""

import asyncio
from collections.abc import Awaitable, Callable

import uvicorn

from saga_messaging.event_log import EventLogProducer
from saga_messaging.lifecycle import install_shutdown_handlers
from saga_messaging.work_queue import WorkQueue

from .logger import logger
from .notifications import HttpStatusNotifier, StatusNotifier
from .settings import OrderServiceSettings
from .store import OrderStore
from .workers import start_order_ingestion, start_payment_results

WorkerStarter = Callable[[WorkQueue, OrderStore, EventLogProducer, StatusNotifier], Awaitable[str]]


def run_api() -> None:
    settings = OrderServiceSettings.from_env()
    uvicorn.run("order_service.server:app", host=settings.host, port=settings.port)


async def _run_worker(name: str, start: WorkerStarter) -> None:
    """Own the connections of one worker process until SIGTERM or SIGINT."""
    settings = OrderServiceSettings.from_env()
    stop = asyncio.Event()
    install_shutdown_handlers(stop)

    store = OrderStore.from_url(settings.database_url)
    work_queue = WorkQueue(
        settings.rabbitmq_url,
        max_redeliveries=settings.max_redeliveries,
        dead_letter_queue=settings.dead_letter_queue,
    )
    event_log = EventLogProducer(
        settings.kafka_bootstrap_servers, client_id=name, timeout=settings.event_log_timeout_seconds
    )
    notifier = HttpStatusNotifier(settings.order_api_url)

    try:
        await store.init_schema()
        await work_queue.connect()
        await start(work_queue, store, event_log, notifier)
        logger.info(f"{name} ready")
        await stop.wait()
    finally:
        logger.info(f"Shutting down {name}...")
        await work_queue.close()
        event_log.close()
        await store.close()


def run_order_worker() -> None:
    """order_requests -> DB -> payment_requests."""
    try:
        asyncio.run(_run_worker("order-worker", start_order_ingestion))
    except KeyboardInterrupt:
        logger.info("Order worker interrupted")


def run_payment_results_worker() -> None:
    """payment_results -> DB -> order-events and client notice."""
    try:
        asyncio.run(_run_worker("payment-results-worker", start_payment_results))
    except KeyboardInterrupt:
        logger.info("Payment results worker interrupted")


async def _migrate() -> None:
    store = OrderStore.from_url(OrderServiceSettings.from_env().database_url)
    try:
        await store.init_schema()
    finally:
        await store.close()


def run_migration() -> None:
    asyncio.run(_migrate())


if __name__ == "__main__":
    run_api()
