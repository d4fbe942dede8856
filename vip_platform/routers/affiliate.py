"""Affiliate leaderboard routes."""

from fastapi import APIRouter, Depends, HTTPException, Query, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from vip_platform.core.constants import STATUS_ERROR
from vip_platform.db.session import get_db
from vip_platform.schemas.leaderboard import (
    AggregateStatsResponse,
    LeaderboardResponse,
    TopPerformersResponse,
    UserRankingsResponse,
)
from vip_platform.services.leaderboard_service import (
    aggregate_stats,
    empty_leaderboard,
    leaderboard_service,
    top_performers,
    user_rankings,
)

router = APIRouter(prefix="/api/affiliate", tags=["Affiliate"])


@router.get(
    "/stats",
    response_model=LeaderboardResponse,
    summary="Ranked affiliate leaderboards",
    description="Today, weekly, monthly and all-time leaderboards with competition ranks, after overrides and rank adjustments."
)
async def get_affiliate_stats(db: AsyncSession = Depends(get_db)):
    """
    Get ranked leaderboards for all four periods.

    When the upstream API is unreachable and nothing is cached, an empty
    payload with status "error" is returned instead of a server error.
    """
    leaderboard = await leaderboard_service.get_leaderboard(db)
    if leaderboard is None:
        return empty_leaderboard(status=STATUS_ERROR)
    return leaderboard


@router.get("/aggregate", response_model=AggregateStatsResponse)
async def get_aggregate_stats(db: AsyncSession = Depends(get_db)):
    """Totals, user count, average and top all-time wager."""
    leaderboard = await leaderboard_service.get_leaderboard(db) or empty_leaderboard(status=STATUS_ERROR)
    return aggregate_stats(leaderboard)


@router.get("/top-performers", response_model=TopPerformersResponse)
async def get_top_performers(
    limit: int = Query(10, ge=1, le=100, description="Entries per period"),
    db: AsyncSession = Depends(get_db)
):
    """Top entries of each period's leaderboard."""
    leaderboard = await leaderboard_service.get_leaderboard(db) or empty_leaderboard(status=STATUS_ERROR)
    return TopPerformersResponse(limit=limit, data=top_performers(leaderboard, limit))


@router.get(
    "/rankings/{uid}",
    response_model=UserRankingsResponse,
    responses={404: {"description": "uid not present in the leaderboard"}}
)
async def get_user_rankings(
    uid: str = Path(..., description="External user id"),
    db: AsyncSession = Depends(get_db)
):
    """Rank and wager of one user in every period."""
    leaderboard = await leaderboard_service.get_leaderboard(db) or empty_leaderboard(status=STATUS_ERROR)
    rankings = user_rankings(leaderboard, uid)
    if rankings is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"User {uid} not found in leaderboard"
        )
    return rankings
