"""
FastAPI application factory.

This module sets up:
- The security core container (built eagerly, started in the lifespan)
- Request ID middleware
- Exception handlers
- API routes

Usage:
    app = create_app()
    # uvicorn "gatekeeper.api.app:create_app" --factory
"""

import logging
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI

from gatekeeper.api.handlers import register_exception_handlers
from gatekeeper.api.middleware import RequestIDMiddleware
from gatekeeper.api.routes import admin, auth, health, two_factor
from gatekeeper.core.config import Settings, get_settings
from gatekeeper.core.logging import setup_logging
from gatekeeper.infrastructure.container import Container

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None, container: Container | None = None) -> FastAPI:
    """
    Build the HTTP application.

    Args:
        settings: Application settings (defaults to the environment)
        container: Pre-built container; built from ``settings`` when omitted

    Returns:
        FastAPI application
    """
    settings = settings or (container.settings if container else get_settings())
    setup_logging(settings)
    container = container or Container.build(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):  # type: ignore
        logger.info(f"Starting {settings.app_name} v{settings.version}")
        logger.info(f"Environment: {settings.environment}")
        await container.startup()
        yield
        logger.info("Shutting down application")
        await container.shutdown()

    app = FastAPI(
        title=settings.app_name,
        version=settings.version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.container = container

    register_exception_handlers(app)
    app.add_middleware(RequestIDMiddleware)

    api_router = APIRouter(prefix="/api")
    api_router.include_router(auth.router)
    api_router.include_router(two_factor.router)
    api_router.include_router(admin.router)

    app.include_router(health.router)
    app.include_router(api_router)
    return app
