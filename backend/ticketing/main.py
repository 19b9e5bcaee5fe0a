"""
Ticketing Reconciliation API - Main Application Entry Point

Turns payment gateway notifications into paid orders, tickets and queue
numbers:
- Signature-checked, idempotent webhook reconciliation
- Optimistic (versioned) capacity accounting
- Booking intents that survive a forced re-login
- Scheduled ticket expiry and retention sweeps
- Structured logging with request correlation and Prometheus metrics
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import redis

from ticketing.core.config import get_settings
from ticketing.core.errors import register_exception_handlers
from ticketing.core.logging import setup_logging, get_logger
from ticketing.core.metrics import metrics_endpoint
from ticketing.api.router import api_router
from ticketing.api.middleware import RequestLoggingMiddleware
from ticketing.infrastructure import RedisClient, get_redis
from ticketing.tasks.scheduler import start_scheduler, stop_scheduler

settings = get_settings()


def _redis_status() -> str:
    if not settings.REDIS_ENABLED:
        return "disabled"
    try:
        get_redis().ping()
        return "connected"
    except redis.RedisError:
        return "unavailable"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown hooks."""
    setup_logging()
    logger = get_logger(__name__)

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
    )

    redis_status = _redis_status()
    if redis_status == "connected":
        logger.info("redis_ready")
    elif redis_status == "unavailable":
        logger.warning("redis_unavailable", message="Booking intents will not persist")

    scheduler_tasks = start_scheduler() if settings.SCHEDULER_ENABLED else []

    yield

    # Cleanup
    await stop_scheduler(scheduler_tasks)
    RedisClient.close()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Payment reconciliation and capacity allocation API",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Custom middleware
app.add_middleware(RequestLoggingMiddleware)

register_exception_handlers(app)

# Routes
app.include_router(api_router)


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "redis": _redis_status(),
    }


@app.get("/metrics", tags=["Health"], include_in_schema=False)
async def metrics():
    return metrics_endpoint()


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }
