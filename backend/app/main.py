"""FastAPI application entry point.

Railway Deployment Requirements:
- Binds to PORT from environment variable
- Health endpoint at /health for Railway health checks
- Graceful shutdown (scheduler stopped, clients and engine closed)
- All logs to stdout/stderr

Error Logging Requirements:
- Log all incoming requests with method, path, request_id
- Log request body at DEBUG level (sanitize sensitive fields)
- Log response status and timing for every request
- Return structured error responses: {"error": str, "code": str, "request_id": str}
- Log 4xx errors at WARNING, 5xx at ERROR
"""

import json
import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from app.api.v1 import router as api_v1_router
from app.core.config import get_settings
from app.core.container import ServiceContainer
from app.core.database import db_manager
from app.core.logging import get_logger, setup_logging
from app.core.scheduler import scheduler_manager
from app.services.stale_analysis_reaper import reap_stale_analyses_job

# Set up logging before anything else
setup_logging()
logger = get_logger(__name__)

REAPER_JOB_ID = "reap_stale_analyses"

# Sensitive fields to redact from request body logs
SENSITIVE_FIELDS = {
    "password",
    "token",
    "secret",
    "api_key",
    "authorization",
}


def sanitize_body(body: Any) -> Any:
    """Redact sensitive fields from request body for logging."""
    if not isinstance(body, dict):
        return body
    sanitized: dict[str, Any] = {}
    for key, value in body.items():
        if key.lower() in SENSITIVE_FIELDS:
            sanitized[key] = "****"
        elif isinstance(value, dict):
            sanitized[key] = sanitize_body(value)
        else:
            sanitized[key] = value
    return sanitized


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware to log all incoming requests with timing and request_id."""

    async def dispatch(self, request: Request, call_next: Any) -> Any:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id

        start_time = time.monotonic()
        method = request.method
        path = request.url.path

        logger.info(
            "Request started",
            extra={
                "request_id": request_id,
                "method": method,
                "path": path,
                "query_params": str(request.query_params)
                if request.query_params
                else None,
            },
        )

        if method not in ("GET", "HEAD", "OPTIONS") and logger.isEnabledFor(
            logging.DEBUG
        ):
            body = await request.body()
            if body:
                try:
                    logger.debug(
                        "Request body",
                        extra={
                            "request_id": request_id,
                            "body": sanitize_body(json.loads(body)),
                        },
                    )
                except json.JSONDecodeError:
                    logger.debug(
                        "Request body (non-JSON)",
                        extra={"request_id": request_id, "body_length": len(body)},
                    )

        response = await call_next(request)

        duration_ms = (time.monotonic() - start_time) * 1000
        status_code = response.status_code
        response.headers["X-Request-ID"] = request_id

        log_extra = {
            "request_id": request_id,
            "method": method,
            "path": path,
            "status_code": status_code,
            "duration_ms": round(duration_ms, 2),
        }

        if status_code >= 500:
            logger.error("Request failed", extra=log_extra)
        elif status_code >= 400:
            logger.warning("Request error", extra=log_extra)
        else:
            logger.info("Request completed", extra=log_extra)

        return response


@asynccontextmanager
async def lifespan(app: FastAPI) -> Any:
    """Application lifespan manager for startup/shutdown.

    Handles:
    - Database initialization
    - Service container construction
    - Scheduler start with the stale analysis reaper job
    - Graceful shutdown
    """
    settings = get_settings()
    logger.info(
        "Starting application",
        extra={
            "app_name": settings.app_name,
            "version": settings.app_version,
            "environment": settings.environment,
        },
    )

    try:
        db_manager.init_db()
        logger.info("Database initialized")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise

    container = ServiceContainer.build(db_manager.session_factory, settings)
    app.state.container = container

    for name, client in (
        ("OpenAI", container.openai),
        ("Perplexity", container.perplexity),
        ("Firecrawl", container.firecrawl),
        ("SMTP", container.email),
    ):
        if not client.available:
            logger.warning(f"{name} not configured")

    if scheduler_manager.init_scheduler():
        if scheduler_manager.start():
            scheduler_manager.add_interval_job(
                reap_stale_analyses_job,
                job_id=REAPER_JOB_ID,
                minutes=settings.reaper_interval_minutes,
                name="Reap stale analyses",
                kwargs={"reaper": container.reaper},
            )
            logger.info("Scheduler started")
        else:
            logger.warning("Failed to start scheduler")
    else:
        logger.info("Scheduler not initialized (disabled or error)")

    yield

    logger.info("Shutting down application")

    # Stop scheduler first (allows running jobs to complete)
    scheduler_manager.stop(wait=True)

    await container.close()
    await db_manager.close()
    logger.info("Application shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    # Request logging middleware (added first, runs last)
    app.add_middleware(RequestLoggingMiddleware)

    # CORS middleware - use FRONTEND_URL for production, allow all origins otherwise
    cors_origins: list[str] = ["*"]
    if settings.frontend_url:
        cors_origins = [settings.frontend_url]
        logger.info(
            "CORS configured for production",
            extra={"allowed_origins": cors_origins},
        )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Handle validation errors with structured response."""
        request_id = getattr(request.state, "request_id", "unknown")
        errors = exc.errors()
        error_msg = "; ".join(
            f"{'.'.join(str(loc) for loc in e['loc'])}: {e['msg']}" for e in errors
        )
        logger.warning(
            "Validation error",
            extra={
                "request_id": request_id,
                "errors": error_msg,
            },
        )
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "error": error_msg,
                "code": "VALIDATION_ERROR",
                "request_id": request_id,
            },
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected errors with structured response."""
        request_id = getattr(request.state, "request_id", "unknown")
        logger.error(
            "Unhandled exception",
            extra={
                "request_id": request_id,
                "error_type": type(exc).__name__,
                "error_message": str(exc),
            },
            exc_info=True,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "An internal error occurred. Please try again later.",
                "code": "INTERNAL_ERROR",
                "request_id": request_id,
            },
        )

    # Health check endpoint for Railway
    @app.get("/health", tags=["Health"])
    async def health_check() -> dict[str, str]:
        """Returns {"status": "ok"} if the service is running."""
        return {"status": "ok"}

    @app.get("/health/db", tags=["Health"])
    async def database_health() -> dict[str, str | bool]:
        """Check database connectivity."""
        is_healthy = await db_manager.check_connection()
        return {
            "status": "ok" if is_healthy else "error",
            "database": is_healthy,
        }

    @app.get("/health/scheduler", tags=["Health"])
    async def scheduler_health() -> dict[str, Any]:
        """Check scheduler status."""
        return scheduler_manager.check_health()

    @app.get("/health/integrations", tags=["Health"])
    async def integrations_health(request: Request) -> dict[str, Any]:
        """Configuration and circuit breaker state of external integrations."""
        container: ServiceContainer | None = getattr(
            request.app.state, "container", None
        )
        if container is None:
            return {"status": "not_initialized"}
        return {"status": "ok", **container.integration_status()}

    app.include_router(api_v1_router, prefix="/api/v1")

    return app


# Create the application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
