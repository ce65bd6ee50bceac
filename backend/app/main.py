"""
Event Booking API - Main Application Entry Point

An event booking service whose core is a transactional seat reservation:
- Specific seat numbers per booking, never double-booked
- Check-then-commit under a per-event row lock
- Structured logging with request correlation
- Prometheus metrics and Redis-cached event listings
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.middleware import RequestLoggingMiddleware
from app.api.router import api_router
from app.core.config import get_settings
from app.core.errors import RejectionError, StoreFailure
from app.core.logging import get_logger, setup_logging
from app.core.metrics import metrics_endpoint
from app.db.capabilities import resolve_capabilities
from app.db.session import engine
from app.services.cache_service import close_redis, get_cache_stats, get_redis

settings = get_settings()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown hooks."""
    setup_logging()

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
    )

    # Probe the schema once instead of on every reservation.
    app.state.capabilities = await resolve_capabilities(engine, settings.SEAT_LIST_MODE)
    logger.info("schema_capabilities", seat_list=app.state.capabilities.seat_list)

    redis_client = await get_redis()
    if redis_client:
        logger.info("redis_ready")
    else:
        logger.warning("redis_unavailable", message="Running without cache")

    yield

    await close_redis()
    await engine.dispose()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Event booking API with transactional, per-seat reservations",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)

app.include_router(api_router)


@app.exception_handler(RejectionError)
async def rejection_handler(request: Request, exc: RejectionError) -> JSONResponse:
    rejection = exc.rejection
    return JSONResponse(status_code=rejection.status_code, content=rejection.to_dict())


@app.exception_handler(StoreFailure)
async def store_failure_handler(request: Request, exc: StoreFailure) -> JSONResponse:
    # Details only leave the process in development/debug mode.
    if get_settings().expose_error_details:
        error = exc.detail or str(exc)
    else:
        error = "An error occurred while processing your booking. Please try again."
    return JSONResponse(
        status_code=500,
        content={"reason": exc.reason.value, "message": "Server error", "error": error},
    )


@app.get("/health", tags=["Health"])
async def health_check(request: Request):
    """Health check endpoint for Docker and load balancers."""
    capabilities = getattr(request.app.state, "capabilities", None)
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "seat_list": capabilities.seat_list if capabilities else None,
        "cache": await get_cache_stats(),
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
