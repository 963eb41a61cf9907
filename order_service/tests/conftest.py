"""Test fixtures for the order service tests."""

from typing import Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from saga_messaging.errors import QueueUnavailable
from saga_messaging.event_log import EventLogProducer
from saga_messaging.schemas import OrderItem, OrderRequest

from order_service.schemas import CreateOrderRequest
from order_service.store import OrderStore


class FakeWorkQueue:
    """In-memory stand-in for WorkQueue that records what was published."""

    def __init__(self) -> None:
        self.published: list[tuple[str, BaseModel]] = []
        self.unavailable = False
        self.is_connected = True

    async def publish(self, queue_name: str, message: BaseModel, trace_id: Optional[str] = None) -> None:
        if self.unavailable:
            raise QueueUnavailable(queue_name, "connection reset")
        self.published.append((queue_name, message))


@pytest.fixture
def items():
    return [
        OrderItem(id="sku-42", name="Coffee beans", price_cents=1299, quantity=2),
        OrderItem(id="sku-7", name="Mug", price_cents=850, quantity=1),
    ]


@pytest.fixture
def cart(items):
    """A valid cart of two lines totalling 3448 cents."""
    return CreateOrderRequest(items=items)


@pytest.fixture
def order_request(items):
    return OrderRequest(order_id="order-1", trace_id="trace-1", items=items, total_amount_cents=3448)


@pytest.fixture
def work_queue():
    return FakeWorkQueue()


@pytest.fixture
def event_log():
    """Event log producer whose publishes succeed unless a test says otherwise."""
    return MagicMock(spec=EventLogProducer)


@pytest.fixture
def notifier():
    notifier = MagicMock()
    notifier.notify = AsyncMock()
    return notifier


@pytest_asyncio.fixture
async def store():
    """Order store on an in-memory SQLite database shared by every connection."""
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    order_store = OrderStore(engine)
    await order_store.init_schema()
    yield order_store
    await order_store.close()
