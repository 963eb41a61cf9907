"""Order ingestion worker: order_requests queue -> order store -> payment_requests topic."""

import asyncio

from saga_messaging.errors import EventLogUnavailable
from saga_messaging.event_log import EventLogProducer
from saga_messaging.schemas import DomainEvent, DomainEventName, OrderRequest, OrderStatus, PaymentRequest

from .errors import InvalidStatusTransition, OrderAlreadyExists, PersistenceFailure
from .logger import logger
from .notifications import StatusNotifier
from .store import OrderStore

FORWARD_FAILURE_DETAIL = "Failed to forward to payment"


class OrderIngestionWorker:
    """Persists admitted orders and forwards them to the payment processor.

    Exceptions escaping `handle` make the queue adapter requeue the message, so
    the handler must tolerate seeing the same order id again.
    """

    def __init__(self, store: OrderStore, event_log: EventLogProducer, notifier: StatusNotifier):
        self.store = store
        self.event_log = event_log
        self.notifier = notifier

    async def handle(self, request: OrderRequest) -> None:
        context = f"trace_id={request.trace_id} | order_id={request.order_id}"

        if not await self._persist(request):
            return

        payment_request = PaymentRequest(
            trace_id=request.trace_id,
            order_id=request.order_id,
            amount_cents=request.total_amount_cents,
            test_error=request.test_error,
        )
        try:
            await asyncio.to_thread(self.event_log.publish_payment_request, payment_request)
        except EventLogUnavailable as e:
            logger.error(f"Failed to send payment request to Kafka | {context} | error={e}")
            await self.store.mark_payment_failed(request.order_id, FORWARD_FAILURE_DETAIL)
            await self.notifier.notify(request.order_id, OrderStatus.PAYMENT_FAILED, FORWARD_FAILURE_DETAIL)
            return

        try:
            await self.store.mark_sent_to_payment(request.order_id)
        except InvalidStatusTransition as e:
            if not e.current.is_terminal:
                raise
            # The payment result overtook this update and already settled the order.
            logger.info(f"Order settled before forward was recorded | {context} | status={e.current.value}")
        await self._emit(
            DomainEvent(
                event=DomainEventName.ORDER_CREATED,
                trace_id=request.trace_id,
                order_id=request.order_id,
                payload={"amount_cents": request.total_amount_cents},
            )
        )
        logger.info(f"Order sent to payment via Kafka | {context}")

    async def _persist(self, request: OrderRequest) -> bool:
        """Insert the order; returns False when a redelivery found it already forwarded."""
        try:
            await self.store.create_order(
                request.order_id, request.trace_id, request.total_amount_cents, request.items
            )
            return True
        except OrderAlreadyExists:
            existing = await self.store.get_order(request.order_id)
            if existing is None:
                raise PersistenceFailure(f"Order {request.order_id} vanished after duplicate insert", request.trace_id)
            if existing.status != OrderStatus.CREATED:
                logger.info(
                    f"Redelivered order request already processed | trace_id={request.trace_id} | "
                    f"order_id={request.order_id} | status={existing.status.value}"
                )
                return False
            logger.info(f"Order already created, resuming forward | trace_id={request.trace_id} | order_id={request.order_id}")
            return True

    async def _emit(self, event: DomainEvent) -> None:
        try:
            await asyncio.to_thread(self.event_log.publish_domain_event, event)
        except EventLogUnavailable as e:
            logger.warning(f"Failed to publish Kafka event | event={event.event.value} | order_id={event.order_id} | error={e}")
