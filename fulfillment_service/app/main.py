import time
from contextlib import asynccontextmanager
from typing import Awaitable, Callable, List, Tuple

from fastapi import APIRouter, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.v1.admin_orders import router as admin_orders_router
from .api.v1.health import router as health_router
from .api.v1.inventory import router as inventory_router
from .api.v1.orders import router as orders_router
from .core.database import database_manager
from .core.events import close_events, init_events
from .core.settings import get_settings
from .middleware.error import setup_fulfillment_error_handling
from .middleware.request_context import CorrelationIdMiddleware
from .utils.logging import setup_fulfillment_logging as setup_logging

settings = get_settings()

environment = settings.ENVIRONMENT.lower()
enable_file_logging = environment in ["production", "staging"]

logger = setup_logging(
    "fulfillment_service",
    log_level=settings.LOG_LEVEL,
    enable_file_logging=enable_file_logging,
)

ROUTERS: List[Tuple[APIRouter, str]] = [
    (health_router, "Health"),
    (admin_orders_router, "Admin Orders"),
    (orders_router, "Checkout"),
    (inventory_router, "Inventory"),
]


async def _timed(step: str, action: Callable[[], Awaitable[None]]) -> int:
    started = time.time()
    await action()
    duration_ms = int((time.time() - started) * 1000)
    logger.info(f"{step} completed", extra={"duration_ms": duration_ms})
    return duration_ms


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "Starting fulfillment service",
        extra={
            "environment": environment,
            "debug_mode": settings.DEBUG,
            "events_enabled": settings.EVENTS_ENABLED,
            "service_version": settings.APP_VERSION,
        },
    )
    try:
        db_ms = await _timed("Database initialization", database_manager.create_tables)
        events_ms = await _timed("Event publisher startup", init_events)
    except Exception as e:
        logger.error(
            "Failed to start fulfillment service",
            exc_info=True,
            extra={"error_type": type(e).__name__},
        )
        raise
    logger.info(
        "Fulfillment service started",
        extra={"database_init_ms": db_ms, "event_publisher_init_ms": events_ms},
    )

    yield

    logger.info("Shutting down fulfillment service")
    try:
        await close_events()
    finally:
        # The engine is disposed even when the publisher fails to stop
        await database_manager.close()
    logger.info("Fulfillment service shutdown completed")


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        debug=settings.DEBUG,
        lifespan=lifespan,
        openapi_url="/openapi.json" if settings.DEBUG else None,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=settings.CORS_CREDENTIALS,
        allow_methods=settings.CORS_METHODS,
        allow_headers=settings.CORS_HEADERS,
        expose_headers=["X-Correlation-ID"],
    )
    app.add_middleware(CorrelationIdMiddleware)

    setup_fulfillment_error_handling(app)

    for router, tag in ROUTERS:
        app.include_router(router, tags=[tag])

    logger.info(
        "API routes configured",
        extra={
            "routers": [tag for _, tag in ROUTERS],
            "allowed_origins": len(settings.CORS_ORIGINS),
        },
    )
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(  # type: ignore
        "fulfillment_service.app.main:app",
        host="0.0.0.0",
        port=8004,
        reload=settings.DEBUG,
        log_level="info",
        access_log=True,
    )
