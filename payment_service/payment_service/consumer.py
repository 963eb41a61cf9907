"""Consumer loops reading payment requests from the event log."""

import asyncio
from collections.abc import Awaitable, Callable

from saga_messaging.event_log import PAYMENT_REQUESTS_TOPIC, EventLogConsumer
from saga_messaging.schemas import PaymentRequest

from .logger import logger

PaymentHandler = Callable[[PaymentRequest], Awaitable[None]]


class PaymentRequestConsumers:
    """A group of independent Kafka consumers sharing one consumer group.

    Each loop owns its own client, so the partitions assigned to one loop are
    never held up by a slow record on another.
    """

    def __init__(
        self,
        bootstrap_servers: str,
        group_id: str,
        count: int,
        client_id_prefix: str = "payment-service",
    ):
        self.consumers = [
            EventLogConsumer(bootstrap_servers, group_id, client_id=f"{client_id_prefix}-{index}")
            for index in range(count)
        ]

    async def run(self, handler: PaymentHandler, stop: asyncio.Event) -> None:
        """Run every consumer loop until `stop` is set, then close them all."""
        for consumer in self.consumers:
            consumer.subscribe([PAYMENT_REQUESTS_TOPIC])
        logger.info(f"Consuming from Kafka topic {PAYMENT_REQUESTS_TOPIC} | consumers={len(self.consumers)}")

        tasks = [
            asyncio.create_task(consumer.process_messages(PaymentRequest, handler, stop))
            for consumer in self.consumers
        ]
        try:
            await asyncio.gather(*tasks)
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            for consumer in self.consumers:
                consumer.close()
