"""
Health check endpoints.
Used for monitoring, deployment readiness checks, and basic connectivity tests.
"""

from fastapi import APIRouter, HTTPException
from cityflux.config.firebase import get_db, get_rtdb
from cityflux.core.settings import settings
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
    Connectivity check for Firestore and the Realtime Database.
    """
    try:
        collections = list(get_db().collections())
        # shallow read: only keys, no bucket payloads
        traffic_keys = get_rtdb().child("traffic").get(shallow=True) or {}

        return {
            "status": "healthy",
            "firestore": {"connected": True, "collections_count": len(collections)},
            "realtime_db": {"connected": True, "traffic_buckets": len(traffic_keys)},
            "timestamp": datetime.now(timezone.utc).isoformat()
        }
    except Exception as e:
        raise HTTPException(
            status_code=503,
            detail=f"Database connection failed: {str(e)}"
        )
