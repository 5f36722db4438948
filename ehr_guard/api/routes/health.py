"""Health check endpoints."""

from fastapi import APIRouter, Request

from ehr_guard import __version__

router = APIRouter()


@router.get("/health")
async def health_check(request: Request) -> dict:
    """Basic health check."""
    sweeper = getattr(request.app.state, "sweeper", None)
    return {
        "status": "healthy",
        "service": "ehr-guard",
        "version": __version__,
        "lock_sweeper": "running" if sweeper is not None and sweeper.is_running else "stopped",
    }


@router.get("/health/live")
async def liveness_check() -> dict:
    """Liveness check - basic process health."""
    return {"status": "alive"}
