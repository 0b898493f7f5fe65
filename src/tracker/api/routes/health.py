"""Health endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from ...db.supabase import get_supabase_client
from ...persistence.base import TrackingStore
from ..deps import get_tracking_store

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
def health_root() -> dict:
    """Simple health check endpoint that doesn't require any dependencies."""
    return {"status": "ok"}


@router.get("/health/database", status_code=status.HTTP_200_OK)
def health_database(store: TrackingStore = Depends(get_tracking_store)) -> dict:
    """Check the tracking store and report which backend is in use."""
    backend = "supabase" if get_supabase_client() is not None else "memory"
    try:
        zones = store.list_geofences()
        trucks = store.list_trucks()
        return {
            "service": "database",
            "backend": backend,
            "healthy": True,
            "geofences": len(zones),
            "active_trucks": len(trucks),
        }
    except Exception as e:
        return {"service": "database", "backend": backend, "healthy": False, "error": str(e)}
