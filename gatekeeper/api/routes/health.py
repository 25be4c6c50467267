"""
Health Check Endpoints
"""

import logging
from typing import Any

from fastapi import APIRouter

from gatekeeper.api.dependencies import CoreContainer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["Health"])


@router.get("/")
async def health_check(container: CoreContainer) -> dict[str, str]:
    """
    Basic health check endpoint.

    Returns:
        Basic application information and status
    """
    settings = container.settings
    return {
        "status": "healthy",
        "app": settings.app_name,
        "version": settings.version,
        "environment": settings.environment,
    }


@router.get("/ready")
async def readiness_check(container: CoreContainer) -> dict[str, Any]:
    """
    Readiness check endpoint.

    Verifies database connectivity.
    """
    db_healthy = await container.db.health_check()
    return {
        "status": "ready" if db_healthy else "degraded",
        "app": container.settings.app_name,
        "version": container.settings.version,
        "checks": {"database": "ok" if db_healthy else "ko"},
    }
