"""Tests for the order store."""

import pytest

from saga_messaging.schemas import OrderStatus

from order_service.errors import InvalidStatusTransition, OrderAlreadyExists, OrderNotFound


@pytest.mark.asyncio
async def test_create_and_get_order(store, items):
    await store.create_order("order-1", "trace-1", 3448, items)

    order = await store.get_order("order-1")
    assert order.status == OrderStatus.CREATED
    assert order.trace_id == "trace-1"
    assert order.amount_cents == 3448
    assert order.items == items
    assert order.error_message is None


@pytest.mark.asyncio
async def test_get_unknown_order_returns_none(store):
    assert await store.get_order("missing") is None


@pytest.mark.asyncio
async def test_duplicate_insert_raises(store, items):
    await store.create_order("order-1", "trace-1", 3448, items)
    with pytest.raises(OrderAlreadyExists):
        await store.create_order("order-1", "trace-1", 3448, items)


@pytest.mark.asyncio
async def test_happy_path_transitions(store, items):
    await store.create_order("order-1", "trace-1", 3448, items)

    assert (await store.mark_sent_to_payment("order-1")).order.status == OrderStatus.SENT_TO_PAYMENT
    paid, changed = await store.mark_paid("order-1")
    assert changed
    assert paid.status == OrderStatus.PAID
    assert paid.updated_at >= paid.created_at


@pytest.mark.asyncio
async def test_payment_failed_records_detail(store, items):
    await store.create_order("order-1", "trace-1", 3448, items)
    await store.mark_sent_to_payment("order-1")

    order, _ = await store.mark_payment_failed("order-1", "Insufficient funds (simulated)")
    assert order.status == OrderStatus.PAYMENT_FAILED
    assert order.error_message == "Insufficient funds (simulated)"


@pytest.mark.asyncio
async def test_forward_failure_goes_straight_to_payment_failed(store, items):
    await store.create_order("order-1", "trace-1", 3448, items)
    order, _ = await store.mark_payment_failed("order-1", "Failed to forward to payment")
    assert order.status == OrderStatus.PAYMENT_FAILED


@pytest.mark.asyncio
async def test_reapplying_status_is_a_no_op(store, items):
    await store.create_order("order-1", "trace-1", 3448, items)
    await store.mark_sent_to_payment("order-1")
    await store.mark_paid("order-1")

    order, changed = await store.mark_paid("order-1")
    assert order.status == OrderStatus.PAID
    assert changed is False


@pytest.mark.asyncio
async def test_terminal_status_never_moves_backward(store, items):
    await store.create_order("order-1", "trace-1", 3448, items)
    await store.mark_sent_to_payment("order-1")
    await store.mark_paid("order-1")

    with pytest.raises(InvalidStatusTransition):
        await store.mark_sent_to_payment("order-1")
    with pytest.raises(InvalidStatusTransition):
        await store.mark_payment_failed("order-1", "late failure")
    assert (await store.get_order("order-1")).status == OrderStatus.PAID


@pytest.mark.asyncio
async def test_paid_requires_sent_to_payment(store, items):
    await store.create_order("order-1", "trace-1", 3448, items)
    with pytest.raises(InvalidStatusTransition) as excinfo:
        await store.mark_paid("order-1")
    assert excinfo.value.current == OrderStatus.CREATED


@pytest.mark.asyncio
async def test_transition_of_unknown_order_raises(store):
    with pytest.raises(OrderNotFound):
        await store.mark_paid("missing")


@pytest.mark.asyncio
async def test_ping(store):
    assert await store.ping() is True
