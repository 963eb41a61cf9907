"""Durable point-to-point work queue backed by RabbitMQ (aio-pika)."""

from collections.abc import Awaitable, Callable, Iterable
from typing import Optional, TypeVar

import aio_pika
from aio_pika import DeliveryMode, Message
from aio_pika.abc import AbstractChannel, AbstractIncomingMessage, AbstractQueue, AbstractRobustConnection
from logging_utils.config import get_queue_logger
from pydantic import BaseModel

from .errors import QueueUnavailable

ORDER_REQUESTS_QUEUE = "order_requests"
PAYMENT_RESULTS_QUEUE = "payment_results"

# Set by quorum queues on every redelivery; classic queues only expose `redelivered`.
DELIVERY_COUNT_HEADER = "x-delivery-count"

ModelT = TypeVar("ModelT", bound=BaseModel)

logger = get_queue_logger("saga-messaging")


class WorkQueue:
    """One RabbitMQ connection and channel owned by a single process.

    Messages are JSON bodies of pydantic models, published persistent to durable
    queues. Consumers acknowledge after the handler returns and negatively
    acknowledge with requeue when it raises.
    """

    def __init__(
        self,
        url: str,
        queues: Iterable[str] = (ORDER_REQUESTS_QUEUE, PAYMENT_RESULTS_QUEUE),
        prefetch_count: int = 1,
        max_redeliveries: Optional[int] = None,
        dead_letter_queue: Optional[str] = None,
    ) -> None:
        """Initialize the work queue client.

        Args:
            url: AMQP connection URL
            queues: Queue names declared (durable) on connect
            prefetch_count: Unacknowledged messages delivered per consumer
            max_redeliveries: Stop requeueing a message after this many deliveries.
                None keeps the unconditional requeue behaviour.
            dead_letter_queue: Queue receiving messages that exhausted max_redeliveries
        """
        self._url = url
        self._queue_names = list(queues)
        self._prefetch_count = prefetch_count
        self._max_redeliveries = max_redeliveries
        self._dead_letter_queue = dead_letter_queue

        self._connection: Optional[AbstractRobustConnection] = None
        self._channel: Optional[AbstractChannel] = None
        self._queues: dict[str, AbstractQueue] = {}
        self._consumer_tags: dict[str, str] = {}

    @property
    def is_connected(self) -> bool:
        if self._connection is None or self._connection.is_closed:
            return False
        return self._channel is not None and not self._channel.is_closed

    async def connect(self) -> None:
        """Open the connection, set QoS and declare every configured queue."""
        self._connection = await aio_pika.connect_robust(self._url)
        self._channel = await self._connection.channel()
        await self._channel.set_qos(prefetch_count=self._prefetch_count)

        names = list(self._queue_names)
        if self._dead_letter_queue:
            names.append(self._dead_letter_queue)
        for name in names:
            self._queues[name] = await self._channel.declare_queue(name, durable=True)

        logger.info(f"RabbitMQ connected | queues={names} | prefetch={self._prefetch_count}")

    async def publish(self, queue_name: str, message: BaseModel, trace_id: Optional[str] = None) -> None:
        """Publish a persistent JSON message to a queue.

        Raises:
            QueueUnavailable: If the channel is closed or the broker refuses the message.
        """
        if not self.is_connected:
            raise QueueUnavailable(queue_name)

        trace_id = trace_id or getattr(message, "trace_id", None)
        try:
            await self._channel.default_exchange.publish(
                Message(
                    body=message.model_dump_json().encode("utf-8"),
                    content_type="application/json",
                    delivery_mode=DeliveryMode.PERSISTENT,
                    correlation_id=trace_id,
                ),
                routing_key=queue_name,
            )
        except Exception as e:
            logger.error(f"Publish to queue failed | queue={queue_name} | trace_id={trace_id} | error={e}")
            raise QueueUnavailable(queue_name, str(e)) from e

        logger.debug(f"Message queued | queue={queue_name} | trace_id={trace_id}")

    async def consume(
        self,
        queue_name: str,
        model: type[ModelT],
        handler: Callable[[ModelT], Awaitable[None]],
    ) -> str:
        """Start delivering messages from `queue_name` to `handler`.

        Returns:
            str: The consumer tag
        """
        if not self.is_connected:
            raise QueueUnavailable(queue_name)
        queue = self._queues.get(queue_name)
        if queue is None:
            queue = await self._channel.declare_queue(queue_name, durable=True)
            self._queues[queue_name] = queue

        async def on_message(message: AbstractIncomingMessage) -> None:
            await self.dispatch(queue_name, model, handler, message)

        consumer_tag = await queue.consume(on_message)
        self._consumer_tags[queue_name] = consumer_tag
        logger.info(f"Consuming from queue | queue={queue_name} | consumer_tag={consumer_tag}")
        return consumer_tag

    async def dispatch(
        self,
        queue_name: str,
        model: type[ModelT],
        handler: Callable[[ModelT], Awaitable[None]],
        message: AbstractIncomingMessage,
    ) -> None:
        """Decode one delivery, run the handler and settle the message."""
        trace_id = message.correlation_id or "unknown"
        try:
            payload = model.model_validate_json(message.body)
            trace_id = getattr(payload, "trace_id", trace_id)
            await handler(payload)
        except Exception as e:
            logger.error(
                f"Failed to process message | queue={queue_name} | trace_id={trace_id} | "
                f"error_type={type(e).__name__} | error={e}"
            )
            await self._settle_failure(queue_name, message, trace_id)
            return

        await message.ack()

    async def _settle_failure(self, queue_name: str, message: AbstractIncomingMessage, trace_id: str) -> None:
        deliveries = int((message.headers or {}).get(DELIVERY_COUNT_HEADER, 0)) + 1
        if self._max_redeliveries is None or deliveries <= self._max_redeliveries:
            await message.nack(requeue=True)
            return

        logger.error(
            f"Redelivery limit reached | queue={queue_name} | trace_id={trace_id} | "
            f"deliveries={deliveries} | dead_letter_queue={self._dead_letter_queue}"
        )
        if self._dead_letter_queue:
            await self._channel.default_exchange.publish(
                Message(
                    body=message.body,
                    content_type=message.content_type,
                    delivery_mode=DeliveryMode.PERSISTENT,
                    correlation_id=message.correlation_id,
                    headers={"x-original-queue": queue_name},
                ),
                routing_key=self._dead_letter_queue,
            )
            await message.ack()
        else:
            await message.reject(requeue=False)

    async def close(self) -> None:
        """Cancel consumers and close the channel and connection."""
        for queue_name, tag in self._consumer_tags.items():
            queue = self._queues.get(queue_name)
            if queue is not None and self.is_connected:
                await queue.cancel(tag)
        self._consumer_tags.clear()

        if self._channel is not None and not self._channel.is_closed:
            await self._channel.close()
        if self._connection is not None and not self._connection.is_closed:
            await self._connection.close()
        logger.info("RabbitMQ connection closed")
