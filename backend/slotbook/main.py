"""
Slot Booking API - Main Application Entry Point

A slot booking service demonstrating:
- At most one confirmed booking per slot under concurrent load
  (row lock + status check + partial unique index)
- Optional strict first-come-first-served booking queue
- Per-caller fixed-window rate limiting that fails open
- Structured logging with request correlation and Prometheus metrics
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from slotbook.core.config import get_settings
from slotbook.core.logging import setup_logging, get_logger
from slotbook.core.metrics import metrics_endpoint
from slotbook.api.errors import register_exception_handlers
from slotbook.api.router import api_router
from slotbook.api.middleware import RequestLoggingMiddleware
from slotbook.db.session import dispose_engine, get_engine
from slotbook.infrastructure.redis_client import close_redis, get_redis
from slotbook.services.booking_queue import BookingWorker
from slotbook.services.strategy_factory import get_admission, reset_admission

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown hooks."""
    setup_logging()
    logger = get_logger(__name__)

    reset_admission()
    admission = get_admission()
    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
        admission_strategy=admission.name,
        rate_limit_enabled=settings.RATE_LIMIT_ENABLED,
    )

    worker = None
    if settings.RUN_BOOKING_WORKER:
        worker = BookingWorker()
        worker.start()
    elif admission.name == "queue":
        logger.warning("booking_worker_not_in_process", message="Run `python -m slotbook.worker`")

    yield

    if worker is not None:
        await worker.stop()
    await close_redis()
    await dispose_engine()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Slot booking API with concurrency-safe admission control",
    lifespan=lifespan,
)

# Custom middleware
app.add_middleware(RequestLoggingMiddleware)
register_exception_handlers(app)

# Routes
app.include_router(api_router)


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    checks = {}

    try:
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except SQLAlchemyError as e:
        checks["database"] = f"error: {type(e).__name__}"

    if settings.REDIS_ENABLED:
        try:
            await get_redis().ping()
            checks["redis"] = "ok"
        except (RedisError, OSError) as e:
            # Rate limiter fails open without Redis, so this only degrades
            checks["redis"] = f"error: {type(e).__name__}"
    else:
        checks["redis"] = "disabled"

    healthy = checks["database"] == "ok"
    return {
        "status": "healthy" if healthy else "unhealthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "checks": checks,
    }


@app.get("/metrics", tags=["Health"], include_in_schema=False)
def metrics():
    return metrics_endpoint()
