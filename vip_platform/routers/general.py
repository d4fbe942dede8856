"""General API routes."""

from fastapi import APIRouter
from vip_platform.schemas.general import HealthResponse
from vip_platform.core.config import settings
from vip_platform.core.constants import STATUS_HEALTHY
from vip_platform.scheduler import scheduler
from vip_platform.services.leaderboard_sync_service import sync_service

router = APIRouter(tags=["General"])


@router.get("/", response_model=dict)
async def root():
    """Root endpoint with API information."""
    return {
        "message": settings.API_TITLE,
        "version": settings.API_VERSION,
        "endpoints": {
            "/health": "Health check endpoint",
            "/api/affiliate/stats": "Ranked affiliate leaderboards",
            "/api/wager-races/current": "Current monthly wager race",
            "/api/wager-races/previous": "Previous monthly wager race",
            "/api/wager-race/position?uid=<uid>": "Position of a user in the current race",
            "/ws/leaderboard": "Real-time leaderboard updates",
            "/docs": "Swagger UI documentation",
            "/redoc": "ReDoc documentation"
        }
    }


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    last_result = sync_service.last_result or {}
    return HealthResponse(
        status=STATUS_HEALTHY,
        version=settings.API_VERSION,
        service=settings.API_TITLE,
        schedulerRunning=scheduler.running,
        lastSync=sync_service.last_run_time.isoformat() if sync_service.last_run_time else None,
        lastSyncStatus=last_result.get("status"),
    )
