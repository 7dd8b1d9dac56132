"""
FastAPI Application Entry Point.

This is the main entry point for the notifier HTTP API.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from modules.notifier.api import health
from modules.notifier.api.v1 import router as api_v1_router
from modules.notifier.core.concurrency import shutdown_pools
from modules.notifier.core.config import get_app_config
from modules.notifier.core.database import dispose_engine
from modules.notifier.core.exception_handlers import register_exception_handlers
from modules.notifier.core.logging import get_logger, setup_logging
from modules.notifier.core.middleware import RequestContextMiddleware
from modules.notifier.runtime import NotifierRuntime, build_runtime

logger = get_logger(__name__)

_app: FastAPI | None = None


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager. Builds and starts the notifier runtime."""
    app_config = get_app_config()
    setup_logging(level=app_config.logging.level)

    logger.info(
        "Application starting",
        extra={
            "app_name": app_config.application.name,
            "env": app_config.application.environment,
        },
    )

    runtime: NotifierRuntime | None = getattr(app.state, "runtime", None)
    if runtime is None:
        runtime = build_runtime(app_config=app_config)
        app.state.runtime = runtime
    await runtime.start()

    yield

    logger.info("Application shutting down")
    await runtime.stop()
    await shutdown_pools()
    await dispose_engine()


def create_app(runtime: NotifierRuntime | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        runtime: Pre-built runtime (tests); built from configuration otherwise
    """
    app_config = get_app_config()
    app_settings = app_config.application

    app = FastAPI(
        title=app_settings.name,
        description=app_settings.description,
        version=app_settings.version,
        docs_url="/docs" if app_settings.docs_enabled else None,
        redoc_url="/redoc" if app_settings.docs_enabled else None,
        lifespan=lifespan,
    )
    if runtime is not None:
        app.state.runtime = runtime

    app.add_middleware(
        RequestContextMiddleware,
        request_logging=app_config.features.api_request_logging,
    )

    cors_origins = app_settings.cors.origins
    if cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    register_exception_handlers(app)

    app.include_router(health.router, tags=["health"])
    app.include_router(api_v1_router, prefix=app_settings.api_prefix)

    return app


def get_app() -> FastAPI:
    """
    Get the application instance (lazy initialization).

    This function creates the app on first call and caches it.
    Use this instead of importing `app` directly to avoid
    import-time configuration errors.
    """
    global _app
    if _app is None:
        _app = create_app()
    return _app


# For uvicorn: `uvicorn modules.notifier.main:app`
def __getattr__(name: str) -> FastAPI:
    """Support lazy access to `app` for uvicorn compatibility."""
    if name == "app":
        return get_app()
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
