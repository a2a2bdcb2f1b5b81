"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from gitcache.api import health, projects, refresh
from gitcache.config import settings
from gitcache.container import ServiceContainer, build_container
from gitcache.middleware.exception_handlers import register_exception_handlers

logger = logging.getLogger(__name__)


def configure_logging(env: Optional[str] = None) -> None:
    """
    Configure logging based on ENV.

    ENV=dev: INFO level with detailed format (default)
    ENV=prod/staging: WARNING level, minimal logs
    """
    is_dev = (env or settings.ENV).lower() == "dev"
    logging.basicConfig(
        level=logging.INFO if is_dev else logging.WARNING,
        format=(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
            if is_dev
            else "%(levelname)s | %(message)s"
        ),
        datefmt="%H:%M:%S",
    )

    # Enable the exception logger in dev mode only
    if is_dev:
        logging.getLogger("gitcache.exception").setLevel(logging.INFO)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build services on startup (unless injected) and shut them down on exit."""
    if app.state.container is None:
        app.state.container = build_container(settings)

    container: ServiceContainer = app.state.container
    if container.start():
        logger.info("Staleness refresh scheduler started")
    try:
        yield
    finally:
        container.shutdown()


def create_app(container: Optional[ServiceContainer] = None) -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        description="Repository metadata caching and refresh engine",
        version=settings.APP_VERSION,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        lifespan=lifespan,
    )
    app.state.container = container

    register_exception_handlers(app)

    app.include_router(health.router, prefix="/api", tags=["Health"])
    app.include_router(projects.router, prefix="/api")
    app.include_router(refresh.router, prefix="/api")

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "message": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "docs": "/api/docs",
        }

    return app


configure_logging()
app = create_app()
