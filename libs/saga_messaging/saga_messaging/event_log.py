"""Partitioned append-only event log backed by Kafka (confluent-kafka)."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Optional, TypeVar

from confluent_kafka import Consumer, KafkaError, KafkaException, Producer, TopicPartition
from logging_utils.config import get_kafka_logger
from pydantic import BaseModel, ValidationError

from .errors import EventLogUnavailable
from .schemas import DomainEvent, PaymentRequest

PAYMENT_REQUESTS_TOPIC = "payment_requests"
ORDER_EVENTS_TOPIC = "order-events"
TRACE_ID_HEADER = "traceId"

ModelT = TypeVar("ModelT", bound=BaseModel)

logger = get_kafka_logger("saga-messaging")


def trace_id_from_headers(headers: Optional[list[tuple[str, bytes]]]) -> str:
    """Extract the correlation trace id attached as record metadata."""
    for key, value in headers or []:
        if key == TRACE_ID_HEADER and value is not None:
            return value.decode("utf-8") if isinstance(value, bytes) else str(value)
    return "unknown"


class EventLogProducer:
    """Kafka producer publishing records keyed by order id.

    Records with the same key land on the same partition, so every message that
    belongs to one order is observed in emission order.
    """

    def __init__(
        self,
        bootstrap_servers: str,
        client_id: str,
        timeout: float = 5.0,
        acks: str = "all",
    ):
        """Initialize the event log producer.

        Args:
            bootstrap_servers: Kafka bootstrap servers
            client_id: Producer client ID
            timeout: Seconds to wait for a delivery report before failing a publish
            acks: The number of acknowledgments the producer requires
        """
        self._timeout = timeout
        self._producer = Producer(
            {
                "bootstrap.servers": bootstrap_servers,
                "client.id": client_id,
                "acks": acks,
                "message.timeout.ms": int(timeout * 1000),
                "partitioner": "consistent_random",  # Same key → same partition
            }
        )

    def publish(self, topic: str, key: str, message: BaseModel, trace_id: str) -> None:
        """Append a record and block until the broker acknowledges it.

        Raises:
            EventLogUnavailable: If the record is not delivered within the timeout.
        """
        failures: list = []

        def on_delivery(err, msg) -> None:
            if err:
                failures.append(err)
                logger.error(f"Message failed delivery | topic={topic} | key={key} | trace_id={trace_id} | error={err}")
            else:
                logger.debug(f"Message delivered to {msg.topic()} [p:{msg.partition()}] | offset={msg.offset()}")

        try:
            self._producer.produce(
                topic=topic,
                key=key.encode("utf-8"),
                value=message.model_dump_json().encode("utf-8"),
                headers={TRACE_ID_HEADER: trace_id.encode("utf-8")},
                on_delivery=on_delivery,
            )
        except (BufferError, KafkaException) as e:
            raise EventLogUnavailable(topic, str(e)) from e

        remaining = self._producer.flush(self._timeout)
        if remaining > 0:
            raise EventLogUnavailable(topic, f"{remaining} message(s) still pending delivery")
        if failures:
            raise EventLogUnavailable(topic, str(failures[0]))

    def publish_payment_request(self, request: PaymentRequest) -> None:
        self.publish(PAYMENT_REQUESTS_TOPIC, request.order_id, request, request.trace_id)

    def publish_domain_event(self, event: DomainEvent) -> None:
        self.publish(ORDER_EVENTS_TOPIC, event.order_id, event, event.trace_id)

    def close(self) -> None:
        """Flush pending records before the process exits."""
        remaining = self._producer.flush(self._timeout)
        if remaining > 0:
            logger.warning(f"{remaining} messages still pending delivery")
        logger.info("Producer closed")


class EventLogConsumer:
    """Kafka consumer with manual offset commits.

    An offset is committed only after the handler completes. When the handler
    raises, the consumer seeks back to the failed record so it is delivered again.
    """

    def __init__(
        self,
        bootstrap_servers: str,
        group_id: str,
        client_id: Optional[str] = None,
        auto_offset_reset: str = "earliest",
    ) -> None:
        """Initialize the event log consumer.

        Args:
            bootstrap_servers: Kafka bootstrap servers
            group_id: Consumer group ID shared by every instance of the service
            client_id: Optional client ID, useful to tell loops of one process apart
            auto_offset_reset: Where to start consuming from if no offset is stored
        """
        logger.info(f"Initializing consumer | bootstrap_servers={bootstrap_servers} | group_id={group_id}")
        config = {
            "bootstrap.servers": bootstrap_servers,
            "group.id": group_id,
            "auto.offset.reset": auto_offset_reset,
            "enable.auto.commit": False,
        }
        if client_id:
            config["client.id"] = client_id
        self.consumer = Consumer(config)

    def subscribe(self, topics: list[str]) -> None:
        """Subscribe to the specified Kafka topics."""
        logger.info(f"Subscribing to topics: {topics}")
        self.consumer.subscribe(topics)

    async def process_messages(
        self,
        model: type[ModelT],
        handler: Callable[[ModelT], Awaitable[None]],
        stop: asyncio.Event,
        poll_timeout: float = 1.0,
    ) -> None:
        """Poll and dispatch records one at a time until `stop` is set."""
        logger.info("Starting message processing loop")
        while not stop.is_set():
            msg = await asyncio.to_thread(self.consumer.poll, poll_timeout)
            if msg is None:
                continue

            error = msg.error()
            if error:
                if error.code() == KafkaError._PARTITION_EOF:
                    logger.debug("Reached end of partition")
                    continue
                if error.fatal():
                    logger.error(f"Fatal Kafka error: {error}")
                    raise KafkaException(error)
                # e.g. UNKNOWN_TOPIC_OR_PART before the first produce creates the topic
                logger.warning(f"Kafka error, continuing to poll: {error}")
                continue

            await self.dispatch(msg, model, handler)
        logger.info("Message processing loop stopped")

    async def dispatch(self, msg, model: type[ModelT], handler: Callable[[ModelT], Awaitable[None]]) -> None:
        """Handle one record and commit or rewind its offset."""
        trace_id = trace_id_from_headers(msg.headers())
        location = f"topic={msg.topic()} | partition={msg.partition()} | offset={msg.offset()}"
        try:
            payload = model.model_validate_json(msg.value())
        except ValidationError as e:
            # A record that cannot be decoded would block its partition forever.
            logger.error(f"Skipping undecodable record | trace_id={trace_id} | {location} | error={e}")
            await self._commit(msg)
            return

        try:
            await handler(payload)
        except asyncio.CancelledError:
            logger.warning(f"Handler cancelled, record left uncommitted | trace_id={trace_id} | {location}")
            self._rewind(msg)
            raise
        except Exception as e:
            logger.error(
                f"Error processing record, rewinding for redelivery | trace_id={trace_id} | "
                f"error_type={type(e).__name__} | error={e} | {location}"
            )
            self._rewind(msg)
            return

        await self._commit(msg)

    async def _commit(self, msg) -> None:
        await asyncio.to_thread(self.consumer.commit, message=msg, asynchronous=False)

    def _rewind(self, msg) -> None:
        try:
            self.consumer.seek(TopicPartition(msg.topic(), msg.partition(), msg.offset()))
        except KafkaException as e:
            # Partition revoked meanwhile: the new owner resumes from the last commit.
            logger.warning(f"Seek failed | topic={msg.topic()} | partition={msg.partition()} | error={e}")

    def close(self) -> None:
        """Close the consumer connection."""
        self.consumer.close()
        logger.info("Consumer closed")
