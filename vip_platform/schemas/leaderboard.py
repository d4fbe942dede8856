"""Leaderboard-related schemas."""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict


class Wagered(BaseModel):
    """Wager totals for one user across the four tracked periods."""
    today: float = Field(0.0, description="Wagered today")
    this_week: float = Field(0.0, description="Wagered this week")
    this_month: float = Field(0.0, description="Wagered this month")
    all_time: float = Field(0.0, description="Wagered all time")


class WagerRecord(BaseModel):
    """Normalized upstream user entry."""
    uid: str = Field(..., description="External platform user id", example="2RW440E")
    name: str = Field("", description="External display name", example="Alice")
    wagered: Wagered = Field(default_factory=Wagered)


class RankedRecord(WagerRecord):
    """Wager record annotated with its competition rank for one period."""
    rank: int = Field(..., description="Rank in the leaderboard (1-based, ties share a rank)")


class LeaderboardPeriod(BaseModel):
    data: List[RankedRecord] = Field(default_factory=list)


class LeaderboardMetadata(BaseModel):
    totalUsers: int = Field(0, description="Number of users in the normalized batch")
    lastUpdated: Optional[str] = Field(None, description="ISO timestamp of the ranking")


class LeaderboardResponse(BaseModel):
    """Payload of GET /api/affiliate/stats."""
    status: str = Field(..., description="success or error", example="success")
    metadata: LeaderboardMetadata = Field(default_factory=LeaderboardMetadata)
    data: Dict[str, LeaderboardPeriod] = Field(..., description="Ranked lists keyed by today/weekly/monthly/all_time")

    class Config:
        json_schema_extra = {
            "example": {
                "status": "success",
                "metadata": {"totalUsers": 2, "lastUpdated": "2026-01-15T12:00:00"},
                "data": {
                    "monthly": {
                        "data": [
                            {"uid": "b", "name": "Bob", "rank": 1,
                             "wagered": {"today": 0, "this_week": 0, "this_month": 80, "all_time": 80}},
                        ]
                    }
                }
            }
        }


class AggregateStatsResponse(BaseModel):
    totalWagered: Dict[str, float] = Field(..., description="Sum of wagers per period")
    userCount: int = Field(..., description="Number of ranked users")
    averageWager: float = Field(..., description="Average all-time wager")
    topWager: float = Field(..., description="Highest all-time wager")


class TopPerformersResponse(BaseModel):
    limit: int
    data: Dict[str, List[RankedRecord]]


class PeriodRanking(BaseModel):
    rank: int
    wagered: float


class UserRankingsResponse(BaseModel):
    uid: str
    name: str
    rankings: Dict[str, PeriodRanking] = Field(..., description="Rank and wager keyed by today/weekly/monthly/all_time")
