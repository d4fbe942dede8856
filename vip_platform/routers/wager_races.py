"""Wager race routes."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from vip_platform.core.constants import STATUS_ERROR
from vip_platform.db.session import get_db
from vip_platform.routers.deps import require_admin
from vip_platform.schemas.races import (
    RacePositionResponse,
    RaceResponse,
    RaceTransitionResponse,
    SnapshotResultResponse,
)
from vip_platform.services.leaderboard_service import empty_leaderboard, leaderboard_service
from vip_platform.services.leaderboard_sync_service import sync_service
from vip_platform.services.race_service import race_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Wager Races"])


@router.get("/wager-races/current", response_model=RaceResponse)
async def get_current_wager_race(db: AsyncSession = Depends(get_db)):
    """
    Current monthly race with its top participants.

    The race window is the current calendar month. If the upstream is
    unavailable the race is returned without participants.
    """
    leaderboard = await leaderboard_service.get_leaderboard(db) or empty_leaderboard(status=STATUS_ERROR)
    return await race_service.get_current_race(db, leaderboard)


@router.get("/wager-races/previous", response_model=RaceResponse)
async def get_previous_wager_race(db: AsyncSession = Depends(get_db)):
    """Previous month's race with the final standings captured at completion."""
    return await race_service.get_previous_race(db)


@router.get("/wager-race/position", response_model=RacePositionResponse)
async def get_wager_race_position(
    uid: str = Query(..., min_length=1, description="External user id"),
    db: AsyncSession = Depends(get_db)
):
    """Position of a user in the current race. position is null for unranked users."""
    leaderboard = await leaderboard_service.get_leaderboard(db) or empty_leaderboard(status=STATUS_ERROR)
    return await race_service.get_user_position(db, leaderboard, uid)


@router.post("/admin/wager-races/complete", response_model=RaceTransitionResponse)
async def complete_wager_race(admin: dict = Depends(require_admin)):
    """Run the month-end transition now."""
    result = await sync_service.run_race_transition()
    if result.get("status") == "skipped":
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Race transition already in progress")
    logger.info(f"Race transition triggered by {admin.get('sub')}")
    return result


@router.post("/admin/wager-races/{race_id}/snapshot", response_model=SnapshotResultResponse)
async def snapshot_wager_race(
    race_id: int = Path(..., ge=1),
    db: AsyncSession = Depends(get_db),
    admin: dict = Depends(require_admin)
):
    """Write snapshot rows for participants still missing from a race."""
    leaderboard = await leaderboard_service.get_leaderboard(db)
    if leaderboard is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Leaderboard data unavailable"
        )
    try:
        stats = await race_service.snapshot_race(db, race_id, leaderboard)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return SnapshotResultResponse(raceId=race_id, **stats)
