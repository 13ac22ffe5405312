"""
Main FastAPI application entry point.

This module sets up the FastAPI app with its components, routes, exception
handlers and lifecycle events.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .api import health_router, login_router, metrics_router
from .config import Settings, get_settings
from .core.dispatcher import NotificationDispatcher
from .core.exceptions import ConnLogException, RateLimitError
from .core.journal import JournalWriter
from .core.metrics import MetricsCollector
from .core.notifier import build_targets
from .core.pipeline import IngestionPipeline
from .core.ratelimit import RateLimiter, RateLimitSweeper
from .core.redaction import Redactor

HTTP_ERROR_CODES = {
    404: "not_found",
    405: "method_not_allowed",
}


def configure_logging(log_level: str = "INFO", log_format: str = "console") -> None:
    """Configure structured logging for the application."""
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, log_level.upper()),
    )

    # Silence the verbose watchfiles logger
    logging.getLogger("watchfiles").setLevel(logging.WARNING)

    if log_format == "json":
        renderers = [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        renderers = [structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            *renderers,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def create_lifespan_handler(settings: Settings) -> Any:
    """Create a lifespan handler with access to settings."""
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """
        FastAPI lifespan context manager.

        Handles startup and shutdown of the notification workers and the
        rate limiter sweeper.
        """
        logger = structlog.get_logger(__name__)
        logger.info("Starting ConnLog service", version=app.version)

        dispatcher: NotificationDispatcher = app.state.dispatcher
        sweeper: RateLimitSweeper = app.state.sweeper

        await dispatcher.start()
        await sweeper.start()

        try:
            logger.info(
                "ConnLog service started successfully",
                log_path=str(settings.storage.log_path),
                rate_limit=settings.limiter.requests,
                window_seconds=settings.limiter.window_seconds,
            )
            yield
        finally:
            logger.info("Shutting down ConnLog service")

            await sweeper.stop()
            await dispatcher.stop()

            logger.info("ConnLog service shutdown complete")

    return lifespan


def register_exception_handlers(app: FastAPI) -> None:
    """Map exceptions to the shared error body."""

    @app.exception_handler(ConnLogException)
    async def connlog_exception_handler(request: Request, exc: ConnLogException) -> JSONResponse:
        """Handle custom ConnLog exceptions."""
        logger = structlog.get_logger(__name__)
        log = logger.error if exc.status_code >= 500 else logger.info
        log(
            "ConnLog exception occurred",
            error=str(exc),
            status_code=exc.status_code,
            path=request.url.path,
            method=request.method,
        )

        headers = {}
        content = {
            "error": exc.error_code,
            "message": str(exc) if exc.status_code < 500 else "An internal error occurred",
            "details": exc.details,
        }

        # Retry-After header for rate limit errors
        if isinstance(exc, RateLimitError):
            headers["Retry-After"] = str(exc.retry_after)
            content["retry_after_sec"] = exc.retry_after

        return JSONResponse(
            status_code=exc.status_code,
            content=content,
            headers=headers,
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        """Handle routing errors (unknown path, wrong method)."""
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": HTTP_ERROR_CODES.get(exc.status_code, "http_error"),
                "message": str(exc.detail),
                "details": {},
            },
            headers=exc.headers,
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger = structlog.get_logger(__name__)
        logger.error(
            "Unexpected exception occurred",
            error=str(exc),
            error_type=type(exc).__name__,
            path=request.url.path,
            method=request.method,
            exc_info=True,
        )

        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_error",
                "message": "An unexpected error occurred",
                "details": {},
            },
        )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Every stateful component (rate limiter, journal, dispatcher, metrics) is
    built here and owned by the returned app, so separate apps never share
    state.
    """
    settings = settings or get_settings()

    # Configure logging with settings
    configure_logging(settings.log_level, settings.log_format)

    # Create lifespan handler with settings
    lifespan = create_lifespan_handler(settings)

    app = FastAPI(
        title="ConnLog",
        description="Connection logger → JSON Lines + chat notifications",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # Initialize core components
    metrics = MetricsCollector()
    limiter = RateLimiter(
        limit=settings.limiter.requests,
        window_seconds=settings.limiter.window_seconds,
    )
    journal = JournalWriter(settings.storage.log_path, metrics=metrics)
    dispatcher = NotificationDispatcher(
        build_targets(settings.notify),
        timeout_seconds=settings.notify.timeout_seconds,
        queue_size=settings.notify.queue_size,
        workers=settings.notify.workers,
        drain_timeout_seconds=settings.notify.drain_timeout_seconds,
        metrics=metrics,
    )

    app.state.settings = settings
    app.state.metrics = metrics
    app.state.limiter = limiter
    app.state.sweeper = RateLimitSweeper(limiter, settings.limiter.sweep_interval_seconds)
    app.state.journal = journal
    app.state.dispatcher = dispatcher
    app.state.pipeline = IngestionPipeline(
        limiter=limiter,
        journal=journal,
        dispatcher=dispatcher,
        redactor=Redactor(settings.redaction.extra_keys),
        metrics=metrics,
    )

    register_exception_handlers(app)

    # Include routers
    app.include_router(login_router, tags=["connections"])
    app.include_router(health_router, tags=["health"])
    app.include_router(metrics_router, tags=["metrics"])

    return app


# Create the app instance
app = create_app()


def run() -> None:
    """Run the service with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "connlog.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        reload=settings.debug,
    )


if __name__ == "__main__":
    run()
