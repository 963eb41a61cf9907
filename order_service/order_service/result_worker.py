"""Payment result worker: payment_results queue -> terminal order status."""

import asyncio

from saga_messaging.errors import EventLogUnavailable
from saga_messaging.event_log import EventLogProducer
from saga_messaging.schemas import DomainEvent, DomainEventName, OrderStatus, PaymentResult

from .errors import InvalidStatusTransition, OrderNotFound
from .logger import logger
from .notifications import StatusNotifier
from .store import OrderStore


class PaymentResultWorker:
    """Finalizes orders from payment results and tells the waiting client.

    A result can overtake the ingestion worker's `sent_to_payment` update,
    because the payment request is published before that update is stored.
    Such a result is raised back to the queue adapter and requeued.
    """

    def __init__(self, store: OrderStore, event_log: EventLogProducer, notifier: StatusNotifier):
        self.store = store
        self.event_log = event_log
        self.notifier = notifier

    async def handle(self, result: PaymentResult) -> None:
        context = f"trace_id={result.trace_id} | order_id={result.order_id}"
        logger.info(f"Payment result received | {context} | success={result.success}")

        try:
            if result.success:
                await self._settle_paid(result)
            else:
                await self._settle_failed(result)
        except InvalidStatusTransition as e:
            if e.current == OrderStatus.CREATED:
                logger.warning(f"Payment result arrived before forward was recorded, requeueing | {context}")
                raise
            # Acknowledged: a retry can never make a backward move valid.
            logger.warning(f"Ignoring payment result | {context} | reason={e}")
        except OrderNotFound:
            logger.error(f"Payment result for unknown order, dropping | {context}")

    async def _settle_paid(self, result: PaymentResult) -> None:
        _, changed = await self.store.mark_paid(result.order_id)
        if not changed:
            return
        await self._emit(DomainEvent(event=DomainEventName.ORDER_PAID, trace_id=result.trace_id, order_id=result.order_id))
        await self.notifier.notify(result.order_id, OrderStatus.PAID)

    async def _settle_failed(self, result: PaymentResult) -> None:
        detail = result.failure_detail()
        _, changed = await self.store.mark_payment_failed(result.order_id, detail)
        if not changed:
            return
        await self._emit(
            DomainEvent(
                event=DomainEventName.ORDER_PAYMENT_FAILED,
                trace_id=result.trace_id,
                order_id=result.order_id,
                payload={"error_code": result.error_code, "error_message": detail},
            )
        )
        await self.notifier.notify(result.order_id, OrderStatus.PAYMENT_FAILED, detail)

    async def _emit(self, event: DomainEvent) -> None:
        try:
            await asyncio.to_thread(self.event_log.publish_domain_event, event)
        except EventLogUnavailable as e:
            logger.warning(f"Failed to publish Kafka event | event={event.event.value} | order_id={event.order_id} | error={e}")
