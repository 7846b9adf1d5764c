"""
Webinar Registration API - Main Application Entry Point

- Registration workflow with free and paid (hosted checkout) paths
- Signed payment webhook driving confirmation, meeting link and invoice
- Daily reminder sweep scheduled in-process
- Structured logging with request correlation, Prometheus metrics
- Redis caching of public webinar listings
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from webinar_api.api.deps import ServiceContainer
from webinar_api.api.middleware import RequestLoggingMiddleware
from webinar_api.api.router import api_router
from webinar_api.core.config import get_settings
from webinar_api.core.exceptions import ValidationError, WebinarAPIError
from webinar_api.core.logging import get_logger, setup_logging
from webinar_api.core.metrics import metrics_endpoint
from webinar_api.db.session import SessionLocal, engine
from webinar_api.jobs.scheduler import ReminderScheduler
from webinar_api.services.cache_service import close_redis, get_cache_stats, get_redis
from webinar_api.services.reminder_sweep import ReminderSweep

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

    redis_client = await get_redis()
    if redis_client:
        logger.info("redis_ready")
    else:
        logger.warning("redis_unavailable", message="Running without cache")

    services = ServiceContainer.from_settings(settings, SessionLocal)
    app.state.services = services

    scheduler = None
    if settings.REMINDER_ENABLED:
        sweep = ReminderSweep(services.session_factory, services.notifier, settings)
        scheduler = ReminderScheduler(sweep, settings.REMINDER_HOUR, settings.REMINDER_TIMEZONE)
        scheduler.start()

    yield

    if scheduler is not None:
        await scheduler.stop()
    await services.aclose()
    await close_redis()
    await engine.dispose()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Webinar registration API with payment webhook confirmation and reminders",
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


def _error_body(message: str, fields: Optional[list[str]] = None) -> dict:
    body = {"success": False, "error": message}
    if fields:
        body["fields"] = fields
    return body


@app.exception_handler(WebinarAPIError)
async def webinar_api_error_handler(request: Request, exc: WebinarAPIError):
    fields = exc.fields if isinstance(exc, ValidationError) else None
    if exc.status_code >= 500:
        logger.error("request_error", error=exc.message, error_type=type(exc).__name__)
    else:
        logger.info("request_rejected", error=exc.message, status_code=exc.status_code)
    return JSONResponse(status_code=exc.status_code, content=_error_body(exc.message, fields))


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    fields = []
    for error in exc.errors():
        # loc is ("body", "user", "email") / ("query", "page") / ...
        location = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        if location:
            fields.append(".".join(location))
    return JSONResponse(
        status_code=422,
        content=_error_body("Invalid input", sorted(set(fields))),
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("unhandled_error", error=str(exc), error_type=type(exc).__name__)
    message = str(exc) if settings.DEBUG else "Unexpected server error"
    return JSONResponse(status_code=500, content=_error_body(message))


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    cache_stats = await get_cache_stats()
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "cache": cache_stats,
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
