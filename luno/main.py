"""
FastAPI application: routers, error handling and health check.
"""
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from luno.api import ROUTERS
from luno.config import Settings, get_settings
from luno.db.database import check_db_health, init_db
from luno.errors import LunoError, RateLimitedError
from luno.logger import configure_logging, get_logger, log_api_error
from luno.schemas import HealthStatus
from luno.tasks.schedule import start_scheduler, stop_scheduler

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown."""
    settings = get_settings()
    configure_logging(settings.DEBUG)
    logger.info("starting", service="luno-api")

    try:
        init_db()
    except Exception as e:
        logger.error("database_init_failed", error=str(e))

    if not settings.email_configured:
        logger.warning("email_disabled", reason="RESEND_API_KEY not set")
    if not settings.chat_configured:
        logger.warning("chat_disabled", reason="no AI provider key set")

    scheduler = start_scheduler() if settings.ENABLE_SCHEDULER else None

    yield

    if scheduler is not None:
        stop_scheduler(scheduler)
    logger.info("shutdown")


app = FastAPI(
    title="Luno API",
    version="0.1.0",
    description="Personal and family finance tracking with graceful degradation",
    lifespan=lifespan,
)


# === Middleware ===

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# === Error Handlers ===

@app.exception_handler(RateLimitedError)
async def rate_limited_handler(request: Request, exc: RateLimitedError):
    headers = {"Retry-After": str(exc.retry_after)}
    if exc.limit:
        headers["X-RateLimit-Limit"] = str(exc.limit)
        headers["X-RateLimit-Remaining"] = "0"
        headers["X-RateLimit-Reset"] = str(int(exc.reset_at))
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.message, "retryAfter": exc.retry_after},
        headers=headers,
    )


@app.exception_handler(LunoError)
async def luno_error_handler(request: Request, exc: LunoError):
    """Service errors become {"error": message} with their status code."""
    if exc.status_code >= 500:
        log_api_error(request.method, request.url.path, exc, getattr(request.state, "user_id", None))
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler for unhandled errors."""
    log_api_error(request.method, request.url.path, exc, getattr(request.state, "user_id", None))
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "detail": str(exc) if get_settings().DEBUG else "An unexpected error occurred",
        }
    )


# === Health Check ===

@app.get("/health", response_model=HealthStatus)
async def health_check(settings: Settings = Depends(get_settings)):
    """
    Health check.

    Checks:
    - Database connectivity and table counts
    - Which optional integrations are configured
    """
    db_health = check_db_health()

    integrations = {
        "email": settings.email_configured,
        "billing": settings.billing_configured,
        "chat": settings.chat_configured,
        "tool_router": settings.tool_router_configured,
    }

    overall_status = "ok"
    if db_health.get("status") != "healthy":
        overall_status = "unhealthy"
    elif not settings.chat_configured:
        overall_status = "degraded"

    return HealthStatus(
        status=overall_status,
        service="luno-api",
        timestamp=datetime.now(timezone.utc),
        database=db_health,
        integrations=integrations,
    )


for router in ROUTERS:
    app.include_router(router)
