"""FastAPI server for the order API: intake, order lookup and status push."""

import asyncio
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Optional

from confluent_kafka.admin import AdminClient
from fastapi import Depends, FastAPI, Header, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse

from saga_messaging.event_log import EventLogProducer
from saga_messaging.work_queue import WorkQueue

from .errors import InvalidOrder, OrderError, OrderNotFound, OrderSubmissionFailed, SimulatedProcessingFailure
from .intake import IntakeGateway
from .logger import logger
from .notifications import InMemorySubscriptionRegistry, RegistryStatusNotifier, Subscription
from .schemas import TEST_ERROR_TYPES, CreateOrderRequest, ErrorResponse, Order, SubmissionAccepted, TerminalNotice
from .settings import OrderServiceSettings
from .store import OrderStore
from .workers import start_order_consumers

TRACE_ID_HEADER = "X-Trace-Id"
TEST_ERROR_HEADER = "X-Test-Error"

# How often a waiting event stream checks whether its client went away.
SSE_DISCONNECT_POLL_SECONDS = 1.0


class OrderApiState:
    """Components owned by the API process for its lifetime."""

    def __init__(self) -> None:
        self.settings: Optional[OrderServiceSettings] = None
        self.work_queue: Optional[WorkQueue] = None
        self.store: Optional[OrderStore] = None
        self.event_log: Optional[EventLogProducer] = None
        self.intake: Optional[IntakeGateway] = None
        self.registry = InMemorySubscriptionRegistry()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Connect to the database and the work queue; start embedded workers if enabled."""
    settings = OrderServiceSettings.from_env()
    state.settings = settings
    state.store = OrderStore.from_url(settings.database_url)
    await state.store.init_schema()

    state.work_queue = WorkQueue(
        settings.rabbitmq_url,
        max_redeliveries=settings.max_redeliveries,
        dead_letter_queue=settings.dead_letter_queue,
    )
    await state.work_queue.connect()
    state.intake = IntakeGateway(state.work_queue)

    if settings.embedded_workers:
        state.event_log = EventLogProducer(
            settings.kafka_bootstrap_servers, client_id="order-api", timeout=settings.event_log_timeout_seconds
        )
        await start_order_consumers(
            state.work_queue, state.store, state.event_log, RegistryStatusNotifier(state.registry)
        )
        logger.info("Embedded order workers started")

    logger.info(f"Order API ready | port={settings.port}")
    yield

    logger.info("Shutting down order API...")
    await state.work_queue.close()
    if state.event_log:
        state.event_log.close()
    await state.store.close()
    logger.info("Shutdown complete")


app = FastAPI(title="Order Service", lifespan=lifespan)
state = OrderApiState()


@app.middleware("http")
async def trace_id_middleware(request: Request, call_next):
    """Take the trace id from the inbound header or mint one, and echo it back."""
    trace_id = request.headers.get(TRACE_ID_HEADER) or str(uuid.uuid4())
    request.state.trace_id = trace_id
    response = await call_next(request)
    response.headers[TRACE_ID_HEADER] = trace_id
    return response


def get_trace_id(request: Request) -> str:
    return request.state.trace_id


def _error(status_code: int, error: OrderError, request: Request, **extra) -> JSONResponse:
    body = {"error": str(error), "trace_id": error.trace_id or get_trace_id(request), **extra}
    return JSONResponse(status_code=status_code, content=body)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content={"error": "Invalid request", "trace_id": get_trace_id(request), "details": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(InvalidOrder)
async def invalid_order_handler(request: Request, exc: InvalidOrder):
    return _error(400, exc, request)


@app.exception_handler(SimulatedProcessingFailure)
async def simulated_failure_handler(request: Request, exc: SimulatedProcessingFailure):
    return _error(500, exc, request, simulated=True)


@app.exception_handler(OrderSubmissionFailed)
async def submission_failed_handler(request: Request, exc: OrderSubmissionFailed):
    return _error(503, exc, request, order_id=exc.order_id)


@app.exception_handler(OrderNotFound)
async def order_not_found_handler(request: Request, exc: OrderNotFound):
    return JSONResponse(status_code=404, content={"error": "Order not found", "trace_id": get_trace_id(request)})


@app.get("/health")
async def health_check():
    """Basic health check endpoint."""
    return {"status": "ok"}


def _check_kafka_connection(bootstrap_servers: str) -> bool:
    """Check if Kafka connection is available.

    Returns:
        bool: True if Kafka is accessible, False otherwise.
    """
    try:
        admin = AdminClient({"bootstrap.servers": bootstrap_servers})
        return bool(admin.list_topics(timeout=5))
    except Exception as e:
        logger.error(f"Kafka connection failed: {e}")
        return False


@app.get("/health/ready")
async def readiness_check():
    """Check that the work queue and the database are reachable.

    Kafka is only checked when the order workers run inside the API process.
    """
    checks = {
        "rabbitmq": state.work_queue is not None and state.work_queue.is_connected,
        "database": state.store is not None and await state.store.ping(),
    }
    if state.settings is not None and state.settings.embedded_workers:
        checks["kafka"] = await asyncio.to_thread(_check_kafka_connection, state.settings.kafka_bootstrap_servers)
    ready = all(checks.values())
    return {"status": "ready" if ready else "not_ready", **checks}


@app.post(
    "/api/orders",
    status_code=202,
    response_model=SubmissionAccepted,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)
async def create_order(
    cart: CreateOrderRequest,
    trace_id: str = Depends(get_trace_id),
    x_test_error: Optional[str] = Header(default=None),
):
    """Validate a cart and hand it to the order workers.

    Returns:
        SubmissionAccepted: Order id and trace id to follow the order with
    """
    return await state.intake.submit(cart, trace_id, x_test_error)


@app.get("/api/orders/{order_id}", response_model=Order, responses={404: {"model": ErrorResponse}})
async def get_order(order_id: str, trace_id: str = Depends(get_trace_id)):
    """Fetch the stored projection of an order."""
    order = await state.store.get_order(order_id)
    if order is None:
        logger.info(f"Order not found | trace_id={trace_id} | order_id={order_id}")
        raise OrderNotFound(order_id, trace_id)
    return order


async def stream_terminal_status(request: Request, subscription: Subscription) -> AsyncIterator[str]:
    """Yield a single SSE frame with the terminal notice, or nothing if the client leaves."""
    try:
        while True:
            if await request.is_disconnected():
                logger.debug(f"Status subscriber disconnected | order_id={subscription.order_id}")
                return
            notice = await subscription.wait(timeout=SSE_DISCONNECT_POLL_SECONDS)
            if notice is not None:
                yield f"data: {notice.model_dump_json()}\n\n"
                return
    finally:
        state.registry.unsubscribe(subscription)


@app.get("/api/orders/{order_id}/events")
async def order_events(order_id: str, request: Request):
    """Server-sent events stream delivering exactly one terminal status."""
    subscription = state.registry.subscribe(order_id)
    return StreamingResponse(
        stream_terminal_status(request, subscription),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


@app.post("/internal/order-events", status_code=204)
async def push_order_event(notice: TerminalNotice):
    """Internal: workers push terminal statuses here for connected clients."""
    state.registry.notify(notice)
    return Response(status_code=204)


@app.post("/api/test/trigger-error")
async def trigger_error(type: Optional[str] = None, trace_id: str = Depends(get_trace_id)):
    """Explain how to exercise a failure scenario, or fail right away for order_processing_failure."""
    if type not in TEST_ERROR_TYPES:
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid type", "trace_id": trace_id, "allowed": list(TEST_ERROR_TYPES)},
        )
    logger.error(f"Test error triggered | trace_id={trace_id} | simulated_error={type}")
    if type == "order_processing_failure":
        raise SimulatedProcessingFailure("Simulated: order_processing_failure", trace_id)
    return {
        "message": f"Use {TEST_ERROR_HEADER} header when creating order",
        "trace_id": trace_id,
        "header": TEST_ERROR_HEADER,
        "value": type,
    }
