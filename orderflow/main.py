"""orderflow - order assignment with automatic driver reassignment."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from orderflow.core.config import constants, settings
from orderflow.core.errors import (
    InvalidStateError,
    StoreUnavailableError,
    WorkItemNotFoundError,
    classify_error,
)
from orderflow.core.logging import configure_logfire, instrument_fastapi
from orderflow.core.store import RedisWorkItemStore, create_store
from orderflow.interface.chat_router import router as chat_router
from orderflow.interface.order_router import router as order_router
from orderflow.services.assignment_engine import AssignmentEngine
from orderflow.services.candidate_provider import StaticPoolCandidateProvider
from orderflow.services.notification_service import NotificationDispatcher


logger = logging.getLogger(__name__)


async def check_store_connectivity(engine: AssignmentEngine) -> None:
    """Log whether the order store is reachable. Never fails startup."""
    if await engine.store.ping():
        logger.info("startup_validation", extra={"service": "store", "status": "ok"})
    else:
        logger.warning("startup_validation", extra={"service": "store", "status": "unavailable"})

    if not settings.openrouter_api_key:
        logger.warning(
            "startup_validation",
            extra={"service": "openrouter", "status": "disabled", "detail": "using fallback messages"},
        )


def build_components(app: FastAPI) -> None:
    """Attach the engine and dispatcher to app.state unless already provided."""
    if getattr(app.state, "engine", None) is not None:
        return

    dispatcher = NotificationDispatcher()
    engine = AssignmentEngine(
        store=create_store(),
        candidate_provider=StaticPoolCandidateProvider(),
        listener=dispatcher,
    )
    app.state.engine = engine
    app.state.dispatcher = dispatcher


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan context manager."""
    # Startup
    configure_logfire()
    build_components(app)
    engine: AssignmentEngine = app.state.engine
    await check_store_connectivity(engine)
    engine.start()
    yield
    # Shutdown
    engine.shutdown()
    await app.state.dispatcher.drain()
    if isinstance(engine.store, RedisWorkItemStore):
        await engine.store.close()


async def engine_error_handler(_request: Request, exc: Exception) -> JSONResponse:
    """Translate engine and store errors into structured JSON responses."""
    status_code, body = classify_error(exc)
    return JSONResponse(content=body.model_dump(mode="json"), status_code=status_code)


def create_app() -> FastAPI:
    application = FastAPI(
        title="orderflow",
        description="Order assignment with automatic driver reassignment",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Instrument FastAPI with Logfire
    instrument_fastapi(application)

    for exc_type in (WorkItemNotFoundError, InvalidStateError, StoreUnavailableError):
        application.add_exception_handler(exc_type, engine_error_handler)

    # Register routers
    application.include_router(order_router)
    application.include_router(chat_router)

    @application.get("/health")
    async def health_check() -> JSONResponse:
        """Health check endpoint."""
        return JSONResponse(content={"status": "healthy"}, status_code=constants.HTTP_OK)

    @application.get("/health/engine")
    async def engine_health_check(request: Request) -> JSONResponse:
        """Engine health: store reachability, armed deadlines and in-flight notifications."""
        engine: AssignmentEngine = request.app.state.engine
        dispatcher: NotificationDispatcher = request.app.state.dispatcher
        store_ok = await engine.store.ping()
        content = {
            "status": "healthy" if store_ok else "degraded",
            "store": "ok" if store_ok else "unavailable",
            "armed_deadlines": len(engine.timers),
            "pending_notifications": dispatcher.pending_tasks,
        }
        status_code = constants.HTTP_OK if store_ok else constants.HTTP_SERVICE_UNAVAILABLE
        return JSONResponse(content=content, status_code=status_code)

    return application


app = create_app()
