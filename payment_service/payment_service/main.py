"""Main entry point for the Payment Service."""

import asyncio

from saga_messaging.lifecycle import install_shutdown_handlers
from saga_messaging.work_queue import PAYMENT_RESULTS_QUEUE, WorkQueue

from .consumer import PaymentRequestConsumers
from .logger import logger
from .processor import PaymentProcessor
from .settings import PaymentServiceSettings


async def serve(settings: PaymentServiceSettings) -> None:
    stop = asyncio.Event()
    install_shutdown_handlers(stop)

    work_queue = WorkQueue(settings.rabbitmq_url, queues=(PAYMENT_RESULTS_QUEUE,))
    consumers = PaymentRequestConsumers(settings.kafka_bootstrap_servers, settings.group_id, settings.consumers)
    processor = PaymentProcessor(work_queue, bank_delay=settings.bank_delay_seconds)

    try:
        await work_queue.connect()
        logger.info("Payment service ready: consuming from Kafka (payment_requests), sending results to RabbitMQ (payment_results)")
        await consumers.run(processor.handle, stop)
    finally:
        await work_queue.close()


def run() -> None:
    try:
        asyncio.run(serve(PaymentServiceSettings.from_env()))
    except KeyboardInterrupt:
        logger.info("Payment service interrupted")


if __name__ == "__main__":
    run()
