"""LiveClass FastAPI application factory."""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_fastapi_instrumentator import Instrumentator

from liveclass import dependencies
from liveclass.config import Settings, get_settings
from liveclass.exceptions import StorageError
from liveclass.middleware.error_handler import ErrorHandlerMiddleware
from liveclass.middleware.logging import LoggingMiddleware, setup_logging
from liveclass.routers import live_activity
from liveclass.services.notification_dispatcher import LiveActivityDispatcher
from liveclass.services.token_registry import TokenRegistry

logger = logging.getLogger(__name__)


def _init_sentry(settings: Settings) -> None:
    """Enable Sentry error reporting when a DSN is configured."""
    dsn = settings.sentry_dsn.get_secret_value()
    if not dsn:
        return

    import sentry_sdk

    sentry_sdk.init(
        dsn=dsn,
        environment=settings.app_env,
        traces_sample_rate=settings.sentry_traces_sample_rate,
        send_default_pii=False,
    )
    logger.info("Sentry initialized (env=%s)", settings.app_env)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    settings: Settings = app.state.settings
    setup_logging(debug=settings.debug)
    _init_sentry(settings)
    logger.info("Starting LiveClass API (env=%s)", settings.app_env)

    dependencies.init_registry(settings)

    yield

    await dependencies.shutdown_registry()
    logger.info("LiveClass API shutting down")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    if settings is None:
        settings = get_settings()

    app = FastAPI(
        title="LiveClass",
        description="Live class-status push dispatch for school Live Activities",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.settings = settings

    # Middleware (order matters: outermost first)
    app.add_middleware(ErrorHandlerMiddleware)
    app.add_middleware(LoggingMiddleware)
    origins = settings.cors_origins
    allow_all = origins == ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins if not allow_all else [],
        allow_origin_regex=r".*" if allow_all else None,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "Accept"],
        max_age=600,
    )

    app.include_router(live_activity.router, prefix=settings.api_prefix)

    @app.get("/")
    async def root():
        return {"status": "running", "service": "liveclass-api", "version": "1.0.0"}

    @app.get("/health")
    async def health():
        return {"status": "ok", "service": "liveclass-api"}

    @app.get("/health/ready")
    async def health_ready(
        registry: TokenRegistry = Depends(dependencies.get_registry),
        dispatcher: LiveActivityDispatcher = Depends(dependencies.get_dispatcher),
    ):
        """Deep health check: token store reachable and push credentials configured."""
        checks: dict = {}

        try:
            await registry.store.ping()
            checks["token_store"] = "ok"
        except StorageError as e:
            checks["token_store"] = f"error: {type(e).__name__}"

        if dispatcher.push_service.is_ready:
            checks["apns"] = "ok"
        else:
            missing = dispatcher.push_service.authenticator.missing_fields()
            checks["apns"] = "error: missing " + ", ".join(missing)

        all_ok = all(v == "ok" for v in checks.values())
        return JSONResponse(
            status_code=200 if all_ok else 503,
            content={"status": "ready" if all_ok else "degraded", "checks": checks},
        )

    # Prometheus instrumentation
    instrumentator = Instrumentator(
        excluded_handlers=["/health", "/health/ready", "/docs", "/redoc", "/openapi.json", "/metrics"],
    )
    instrumentator.instrument(app)

    @app.get("/metrics", include_in_schema=False)
    async def metrics():
        """Prometheus metrics endpoint with multiprocess support."""
        from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, generate_latest, multiprocess

        multiproc_dir = os.environ.get("PROMETHEUS_MULTIPROC_DIR")
        if multiproc_dir:
            registry = CollectorRegistry()
            multiprocess.MultiProcessCollector(registry)
            data = generate_latest(registry)
        else:
            data = generate_latest()

        return Response(content=data, media_type=CONTENT_TYPE_LATEST)

    return app


# Default app instance for uvicorn
app = create_app()
