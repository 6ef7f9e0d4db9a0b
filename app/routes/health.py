"""
Health check endpoints.
Used for monitoring, deployment readiness checks, and basic connectivity tests.
"""

from fastapi import APIRouter, HTTPException
from app.core.errors import StorageFailure
from app.core.settings import settings
from app.services.report_store import get_report_store
from datetime import datetime, timezone


router = APIRouter(prefix="/health", tags=["Health"])


@router.get("")
async def health_check():
    """
    Basic health check endpoint.
    Returns 200 if service is running.
    """
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


@router.get("/db")
async def database_health():
    """
    Store connectivity check.
    Runs a cheap read against the configured report store.
    """
    try:
        store = get_report_store()
        store.get_report("_health_check")
        return {
            "status": "healthy",
            "store": type(store).__name__,
            "connected": True,
            "timestamp": datetime.now(timezone.utc).isoformat()
        }
    except (StorageFailure, RuntimeError) as e:
        raise HTTPException(
            status_code=503,
            detail=f"Store connection failed: {str(e)}"
        )
