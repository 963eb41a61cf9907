"""Terminal status push back to the client that submitted an order.

The API process keeps at most one waiting subscriber per order id and hands it
exactly one notice. Workers run in other processes and reach it over HTTP.
"""

import asyncio
import threading
from typing import Optional, Protocol

import requests

from saga_messaging.schemas import OrderStatus

from .logger import logger
from .schemas import TerminalNotice


class Subscription:
    """A client waiting for the terminal status of one order."""

    def __init__(self, order_id: str, loop: asyncio.AbstractEventLoop):
        self.order_id = order_id
        self._loop = loop
        self._future: asyncio.Future = loop.create_future()

    @property
    def delivered(self) -> bool:
        return self._future.done()

    def deliver(self, notice: TerminalNotice) -> None:
        """Hand the notice to the waiting client. Safe to call from any thread."""
        try:
            self._loop.call_soon_threadsafe(self._resolve, notice)
        except RuntimeError as e:
            logger.error(f"Failed to deliver status notice | order_id={self.order_id} | error={e}")

    def _resolve(self, notice: TerminalNotice) -> None:
        if not self._future.done():
            self._future.set_result(notice)

    async def wait(self, timeout: Optional[float] = None) -> Optional[TerminalNotice]:
        """Wait for the notice; returns None if nothing arrived within `timeout`."""
        try:
            return await asyncio.wait_for(asyncio.shield(self._future), timeout)
        except asyncio.TimeoutError:
            return None


class SubscriptionRegistry(Protocol):
    """Correlates terminal notices with waiting clients."""

    def subscribe(self, order_id: str) -> Subscription: ...

    def unsubscribe(self, subscription: Subscription) -> None: ...

    def notify(self, notice: TerminalNotice) -> bool: ...


class InMemorySubscriptionRegistry:
    """Process-local registry: last subscriber wins, notices are never buffered."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: dict[str, Subscription] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def is_subscribed(self, order_id: str) -> bool:
        with self._lock:
            return order_id in self._subscribers

    def subscribe(self, order_id: str) -> Subscription:
        """Register the caller as the waiting client for `order_id`.

        A previous subscriber for the same order is abandoned without a notice.
        Must be called from the event loop that will await the subscription.
        """
        subscription = Subscription(order_id, asyncio.get_running_loop())
        with self._lock:
            previous = self._subscribers.get(order_id)
            self._subscribers[order_id] = subscription
        if previous is not None:
            logger.info(f"Replaced status subscriber | order_id={order_id}")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        """Drop a registration unless it was already replaced or delivered."""
        with self._lock:
            if self._subscribers.get(subscription.order_id) is subscription:
                del self._subscribers[subscription.order_id]

    def notify(self, notice: TerminalNotice) -> bool:
        """Deliver a notice to the registered subscriber, if any.

        Returns:
            bool: True if a subscriber received it, False if it was dropped
        """
        with self._lock:
            subscription = self._subscribers.pop(notice.order_id, None)
        if subscription is None:
            logger.debug(f"No subscriber for status notice, dropped | order_id={notice.order_id}")
            return False
        subscription.deliver(notice)
        logger.info(f"Status notice delivered | order_id={notice.order_id} | status={notice.status}")
        return True


class StatusNotifier(Protocol):
    """How workers announce a terminal status."""

    async def notify(self, order_id: str, status: OrderStatus, detail: Optional[str] = None) -> None: ...


class HttpStatusNotifier:
    """Posts terminal notices to the API's internal push endpoint.

    Best effort: failures are logged and never raised to the caller.
    """

    def __init__(self, order_api_url: str, timeout: float = 5.0):
        self.url = f"{order_api_url.rstrip('/')}/internal/order-events"
        self.timeout = timeout

    async def notify(self, order_id: str, status: OrderStatus, detail: Optional[str] = None) -> None:
        notice = TerminalNotice(order_id=order_id, status=status.value, detail=detail)
        await asyncio.to_thread(self._post, notice)

    def _post(self, notice: TerminalNotice) -> None:
        try:
            response = requests.post(self.url, json=notice.model_dump(), timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning(f"Failed to notify order API | order_id={notice.order_id} | status={notice.status} | error={e}")
            return
        if not response.ok:
            logger.warning(
                f"Order API internal/order-events non-OK | order_id={notice.order_id} | "
                f"status={notice.status} | status_code={response.status_code}"
            )


class RegistryStatusNotifier:
    """Notifies a registry living in the same process."""

    def __init__(self, registry: SubscriptionRegistry):
        self.registry = registry

    async def notify(self, order_id: str, status: OrderStatus, detail: Optional[str] = None) -> None:
        self.registry.notify(TerminalNotice(order_id=order_id, status=status.value, detail=detail))
