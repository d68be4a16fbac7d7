"""Health endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from ...config import settings
from ...context import AppContext
from ...services.routing.osrm_client import check_health as osrm_health_check
from ..deps import get_context

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
def health_root() -> dict:
    """Simple health check endpoint that doesn't require any dependencies."""
    return {"status": "ok"}


@router.get("/health/osrm", status_code=status.HTTP_200_OK)
async def health_osrm() -> dict:
    """Check OSRM service health."""
    if not settings.osrm_base_url:
        return {"service": "osrm", "configured": False, "healthy": False}
    healthy = await osrm_health_check()
    return {"service": "osrm", "configured": True, "healthy": healthy}


@router.get("/health/database", status_code=status.HTTP_200_OK)
async def check_database(context: AppContext = Depends(get_context)) -> dict:
    """Check the local store and whether remote route sync is configured."""
    try:
        stats = await context.store.get_stats()
    except Exception as exc:
        return {
            "connected": False,
            "error": str(exc),
            "message": f"Database error: {exc}",
            "sync_configured": settings.sync_enabled,
        }
    return {
        "connected": True,
        "path": context.store.path,
        "tables": stats,
        "sync_configured": settings.sync_enabled,
        "message": "Database ready." if settings.sync_enabled else "Database ready. Remote route sync not configured.",
    }
