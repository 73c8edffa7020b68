"""FastAPI application factory with lifespan context manager."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, Response, status

from app.config import settings
from app.dependencies import close_production_deps, init_production_deps
from app.logging_config import configure_logging
from app.routers import health, webhooks


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifespan: open and close the Concourse clients."""
    configure_logging(json_logs=not settings.debug, log_level=settings.log_level)
    settings.require_complete()
    init_production_deps(settings)

    structlog.get_logger().info("concourse_client_ready", concourse_url=settings.concourse.url)
    yield
    await close_production_deps()


app = FastAPI(title=settings.app_name, lifespan=lifespan)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> Response:
    """Return a bare 500 response for any unhandled exception."""
    logger = structlog.get_logger()
    logger.exception("unhandled_exception", path=request.url.path, method=request.method)
    return Response(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)


app.include_router(health.router)
app.include_router(webhooks.router)
