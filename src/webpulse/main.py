"""
Main FastAPI application entry point.

This module sets up the FastAPI app with capture middleware, routes, and
lifecycle events. Host applications that already have their own FastAPI
app can call install_analytics() instead.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional, Sequence

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import CollectorRegistry

from . import __version__
from .api import admin_router, dashboard_router, healthz_router, metrics_router
from .config import Settings, get_settings
from .core.capture import AnalyticsMiddleware, CapturePolicy
from .core.exceptions import WebPulseException
from .core.health import HealthChecker
from .core.metrics import MetricsCollector
from .core.service import AnalyticsService


def configure_logging(log_level: str = "INFO") -> None:
    """Configure structured logging for the application."""
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, log_level.upper()),
    )

    # psycopg_pool logs every reconnect attempt at INFO
    logging.getLogger("psycopg.pool").setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


async def webpulse_exception_handler(request: Request, exc: WebPulseException) -> JSONResponse:
    """Render WebPulse exceptions as the structured error payload."""
    logger = structlog.get_logger(__name__)
    logger.error(
        "WebPulse exception occurred",
        error=str(exc),
        status_code=exc.status_code,
        path=request.url.path,
        method=request.method,
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.error_code,
            "message": str(exc),
            "details": exc.details,
        },
    )


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
            "error": "internal_server_error",
            "message": "An unexpected error occurred",
        },
    )


def install_analytics(
    app: FastAPI,
    service: AnalyticsService,
    policy: Optional[CapturePolicy] = None,
    exclude_prefixes: Sequence[str] = (),
) -> None:
    """
    Attach capture middleware, dashboard routes and error handlers to an app.

    Requests to the dashboard itself (and to exclude_prefixes) are not
    recorded. The caller owns the service lifecycle: await service.start()
    and service.stop() from the app's lifespan.
    """
    settings = service.settings
    app.state.settings = settings
    app.state.analytics = service

    if settings.capture.enabled:
        excluded = list(exclude_prefixes)
        if settings.dashboard.enabled:
            excluded.append(settings.dashboard.prefix.rstrip("/") + "/")
        app.add_middleware(
            AnalyticsMiddleware,
            service=service,
            policy=policy,
            exclude_prefixes=excluded,
        )

    if settings.dashboard.enabled:
        app.include_router(dashboard_router, prefix=settings.dashboard.prefix.rstrip("/"), tags=["dashboard"])

    app.add_exception_handler(WebPulseException, webpulse_exception_handler)


def create_lifespan_handler(service: AnalyticsService) -> Any:
    """Create a lifespan handler bound to the analytics service."""
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """
        FastAPI lifespan context manager.

        Starts the analytics service (store, schema, flush timer) and stops
        it with a final flush on shutdown.
        """
        logger = structlog.get_logger(__name__)
        logger.info("Starting WebPulse service", version=app.version)

        await service.start()
        app.state.health_checker = HealthChecker(service)

        try:
            logger.info("WebPulse service started successfully")
            yield
        finally:
            logger.info("Shutting down WebPulse service")
            await service.stop(final_flush=True)
            logger.info("WebPulse service shutdown complete")

    return lifespan


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[Any] = None,
    policy: Optional[CapturePolicy] = None,
    registry: Optional[CollectorRegistry] = None,
) -> FastAPI:
    """
    Create and configure the standalone FastAPI application.

    store and registry are injectable so tests can run without PostgreSQL
    and without sharing Prometheus collectors between apps.
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    metrics = MetricsCollector(registry=registry if registry is not None else CollectorRegistry())
    service = AnalyticsService(settings, store=store, metrics=metrics)

    app = FastAPI(
        title="WebPulse",
        description="Request analytics: capture → batch → PostgreSQL → dashboard",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=create_lifespan_handler(service),
    )
    app.state.metrics = metrics

    install_analytics(
        app,
        service,
        policy=policy,
        exclude_prefixes=["/metrics", "/healthz", "/readyz", "/v1/admin/"],
    )
    app.add_exception_handler(Exception, general_exception_handler)

    app.include_router(admin_router, tags=["admin"])
    app.include_router(metrics_router, tags=["metrics"])
    app.include_router(healthz_router, tags=["health"])

    @app.get("/", include_in_schema=False)
    async def root() -> Dict[str, str]:
        """Root endpoint with service information."""
        return {
            "service": "WebPulse",
            "version": app.version,
            "dashboard": settings.dashboard.prefix,
            "docs": "/docs",
        }

    return app


def run() -> None:
    """Console entry point."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "webpulse.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        reload=settings.debug,
    )


if __name__ == "__main__":
    run()
