"""Health endpoints."""

from __future__ import annotations

from fastapi import APIRouter, status

from ...config import settings

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
def health_root() -> dict:
    """Simple health check endpoint that doesn't require any dependencies."""
    return {"status": "ok", "pushConfigured": settings.push_configured}


@router.get("/health/database", status_code=status.HTTP_200_OK)
def check_database() -> dict:
    """Check database connection and request table status."""
    from ...db.supabase import get_supabase_client

    supabase = get_supabase_client()
    if not supabase:
        return {
            "configured": False,
            "message": "Supabase not configured. Set REFILL_SUPABASE_URL and REFILL_SUPABASE_KEY environment variables.",
        }

    try:
        response = supabase.table("requests").select("request_id", count="exact").limit(1).execute()
        return {
            "configured": True,
            "connected": True,
            "requests_count": response.count or 0,
            "message": f"Database connected. Found {response.count or 0} requests.",
        }
    except Exception as exc:
        return {
            "configured": True,
            "connected": False,
            "error": str(exc),
            "message": f"Database connection error: {exc}",
        }
