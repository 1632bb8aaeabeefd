"""FastAPI application factory and lifespan management."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, Response

from s3local import __version__
from s3local.config import Settings
from s3local.errors import StorageError
from s3local.events.hub import OutcomeStreamHub
from s3local.middleware.logging import RequestLoggingMiddleware
from s3local.routes import buckets, events, health
from s3local.runtime import S3LocalRuntime

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Start the runtime on startup and shut it down on exit.

    Args:
        app: FastAPI application instance.

    Yields:
        None during application runtime.
    """
    runtime: S3LocalRuntime = app.state.runtime
    logger.info("s3_endpoint_startup", endpoint=runtime.settings.endpoint)

    await runtime.start()
    try:
        yield
    finally:
        await runtime.stop()
        logger.info("s3_endpoint_shutdown")


async def storage_error_handler(request: Request, exc: StorageError) -> Response:
    return buckets.error_response(exc, request.url.path)


def create_app(settings: Settings | None = None, runtime: S3LocalRuntime | None = None) -> FastAPI:
    """Factory function to create the S3 endpoint application.

    Args:
        settings: Configuration instance. Creates default if None.
        runtime: Runtime to serve. Built from settings if None.

    Returns:
        Configured FastAPI application.
    """
    if settings is None:
        settings = runtime.settings if runtime is not None else Settings()
    if runtime is None:
        runtime = S3LocalRuntime(settings)

    app = FastAPI(
        title="s3local",
        version=__version__,
        lifespan=lifespan,
        docs_url="/_s3local/docs" if settings.debug else None,
        redoc_url=None,
        openapi_url="/_s3local/openapi.json" if settings.debug else None,
    )
    app.state.settings = settings
    app.state.runtime = runtime
    app.state.outcome_hub = OutcomeStreamHub(
        runtime.outcomes,
        heartbeat_interval=settings.sse_heartbeat_interval,
    )

    app.add_middleware(RequestLoggingMiddleware)
    app.add_exception_handler(StorageError, storage_error_handler)

    app.include_router(health.router, prefix="/_s3local")
    app.include_router(events.router, prefix="/_s3local")
    app.include_router(buckets.router)

    return app
