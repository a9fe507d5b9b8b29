"""
FastAPI application entry point.

Run with:
    uvicorn backend.app.main:app --reload --port 8000

Or from the project root:
    python -m uvicorn backend.app.main:app --reload
"""

from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# ── Core infrastructure ──
from backend.app.core.config import settings
from backend.app.core.logging_config import setup_logging, get_logger
from backend.app.core.errors import register_error_handlers
from backend.app.core.middleware import RequestLoggingMiddleware
from backend.app.core.health import HealthStatus, run_health_check
from backend.app.core.database import close_db, init_db
from backend.app.core.redis_client import close_redis

# ── Notifications ──
from backend.app.notifications.factory import build_dispatcher

# ── API routers ──
from backend.app.api.v1.notifications import router as notifications_router

# ── Initialise logging ──
setup_logging()
logger = get_logger(__name__)


def _pending_deliveries(app: FastAPI) -> int:
    dispatcher = getattr(app.state, "dispatcher", None)
    return dispatcher.pending_deliveries if dispatcher is not None else 0


# ── Application lifespan (startup / shutdown) ──

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the dispatcher on startup; drain deliveries and close clients on shutdown."""
    logger.info(
        "Starting %s v%s [%s]",
        settings.APP_NAME, settings.APP_VERSION, settings.ENVIRONMENT,
    )
    if "database" in (settings.ATTEMPT_STORE_BACKEND, settings.CONTACT_BACKEND):
        await init_db()

    http_client = httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS)
    app.state.dispatcher = build_dispatcher(settings, http_client)
    try:
        yield
    finally:
        logger.info("Shutting down %s", settings.APP_NAME)
        await app.state.dispatcher.drain(timeout=settings.SHUTDOWN_DRAIN_SECONDS)
        await http_client.aclose()
        await close_redis()
        await close_db()


# ── Create application ──

app = FastAPI(
    title=settings.APP_NAME,
    description=(
        "Multi-channel notification dispatch. "
        "Expands one event into email, SMS, in-app and push deliveries, "
        "persists every attempt before sending, "
        "sends on all channels concurrently, and "
        "records a terminal status per channel."
    ),
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# ── Middleware stack (outermost first) ──

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS if not settings.CORS_ALLOW_ALL else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)

# ── Error handlers ──
register_error_handlers(app)

# ── Register routers ──
app.include_router(notifications_router)


# ── Root & health endpoints ──

@app.get("/", tags=["root"])
async def root():
    return {
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "channels": ["email", "sms", "in_app", "push"],
        "docs": "/docs",
    }


@app.get("/health", tags=["health"])
async def health_check(request: Request):
    """Deep health probe — checks all subsystems."""
    report = await run_health_check(pending_deliveries=_pending_deliveries(request.app))
    return report.to_dict()


@app.get("/health/live", tags=["health"])
async def liveness():
    """Kubernetes liveness probe — is the process alive?"""
    return {"status": "alive"}


@app.get("/health/ready", tags=["health"])
async def readiness(request: Request):
    """Kubernetes readiness probe — can we serve traffic?"""
    report = await run_health_check(pending_deliveries=_pending_deliveries(request.app))
    if report.status == HealthStatus.UNHEALTHY:
        return JSONResponse(status_code=503, content=report.to_dict())
    return report.to_dict()
