"""Order store: one `orders` table accessed through SQLAlchemy's async engine."""

from datetime import datetime, timezone
from typing import Any, NamedTuple, Optional

from sqlalchemy import JSON, Column, DateTime, Index, Integer, MetaData, String, Table, Text, insert, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from saga_messaging.schemas import ALLOWED_PREDECESSORS, OrderItem, OrderStatus

from .errors import InvalidStatusTransition, OrderAlreadyExists, OrderNotFound, PersistenceFailure
from .logger import logger
from .schemas import Order

metadata = MetaData()

orders = Table(
    "orders",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("trace_id", String(128), nullable=False),
    Column("status", String(32), nullable=False),
    Column("amount_cents", Integer, nullable=False),
    Column("items", JSON, nullable=False),
    Column("error_message", Text, nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    Index("idx_orders_trace_id", "trace_id"),
    Index("idx_orders_status", "status"),
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _row_to_order(row: Any) -> Order:
    return Order(
        id=row.id,
        trace_id=row.trace_id,
        status=OrderStatus(row.status),
        amount_cents=row.amount_cents,
        items=[OrderItem.model_validate(item) for item in row.items],
        error_message=row.error_message,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class StatusUpdate(NamedTuple):
    """Outcome of a status transition. `changed` is False when the order already had the status."""

    order: Order
    changed: bool


class OrderStore:
    """Persistent record of orders and their status.

    Status updates are conditional on the current status, so concurrent or
    redelivered updates can never move an order backward.
    """

    def __init__(self, engine: AsyncEngine):
        self._engine = engine

    @classmethod
    def from_url(cls, database_url: str) -> "OrderStore":
        return cls(create_async_engine(database_url, echo=False, pool_pre_ping=True))

    async def init_schema(self) -> None:
        """Create the orders table and its indexes if they do not exist."""
        async with self._engine.begin() as conn:
            await conn.run_sync(metadata.create_all)
        logger.info("DB migration completed")

    async def ping(self) -> bool:
        try:
            async with self._engine.connect() as conn:
                await conn.execute(select(1))
            return True
        except SQLAlchemyError as e:
            logger.error(f"Database connection failed: {e}")
            return False

    async def create_order(
        self,
        order_id: str,
        trace_id: str,
        amount_cents: int,
        items: list[OrderItem],
    ) -> None:
        """Insert a new order in status `created`.

        Raises:
            OrderAlreadyExists: If a row with this id is already stored.
            PersistenceFailure: On any other database error.
        """
        now = _now()
        try:
            async with self._engine.begin() as conn:
                await conn.execute(
                    insert(orders).values(
                        id=order_id,
                        trace_id=trace_id,
                        status=OrderStatus.CREATED.value,
                        amount_cents=amount_cents,
                        items=[item.model_dump() for item in items],
                        error_message=None,
                        created_at=now,
                        updated_at=now,
                    )
                )
        except IntegrityError as e:
            raise OrderAlreadyExists(order_id, trace_id) from e
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Failed to insert order {order_id}: {e}", trace_id) from e

    async def get_order(self, order_id: str) -> Optional[Order]:
        async with self._engine.connect() as conn:
            result = await conn.execute(select(orders).where(orders.c.id == order_id))
            row = result.first()
        return _row_to_order(row) if row is not None else None

    async def mark_sent_to_payment(self, order_id: str) -> StatusUpdate:
        return await self._transition(order_id, OrderStatus.SENT_TO_PAYMENT)

    async def mark_paid(self, order_id: str) -> StatusUpdate:
        return await self._transition(order_id, OrderStatus.PAID)

    async def mark_payment_failed(self, order_id: str, error_message: str) -> StatusUpdate:
        return await self._transition(order_id, OrderStatus.PAYMENT_FAILED, error_message=error_message)

    async def _transition(self, order_id: str, target: OrderStatus, **values: Any) -> StatusUpdate:
        """Move an order to `target` if its current status allows it.

        Re-applying the status an order already has is a no-op, which keeps
        redelivered messages harmless.

        Raises:
            OrderNotFound: If no such order exists.
            InvalidStatusTransition: If the update would move the order backward.
        """
        allowed = [status.value for status in ALLOWED_PREDECESSORS[target]]
        try:
            async with self._engine.begin() as conn:
                result = await conn.execute(
                    update(orders)
                    .where(orders.c.id == order_id, orders.c.status.in_(allowed))
                    .values(status=target.value, updated_at=_now(), **values)
                )
                updated = result.rowcount
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Failed to update order {order_id} to {target.value}: {e}") from e

        order = await self.get_order(order_id)
        if order is None:
            raise OrderNotFound(order_id)
        if updated:
            logger.debug(f"Order status updated | order_id={order_id} | status={target.value}")
            return StatusUpdate(order, changed=True)
        if order.status == target:
            logger.info(f"Order already in status, nothing to do | order_id={order_id} | status={target.value}")
            return StatusUpdate(order, changed=False)
        raise InvalidStatusTransition(order_id, order.status, target)

    async def close(self) -> None:
        await self._engine.dispose()
