"""Pydantic schemas for API validation."""

from vip_platform.schemas.general import HealthResponse
from vip_platform.schemas.leaderboard import WagerRecord, RankedRecord, LeaderboardResponse
from vip_platform.schemas.races import RaceResponse, RacePositionResponse
from vip_platform.schemas.overrides import WagerOverrideCreate, WagerOverrideResponse

__all__ = [
    "HealthResponse",
    "WagerRecord",
    "RankedRecord",
    "LeaderboardResponse",
    "RaceResponse",
    "RacePositionResponse",
    "WagerOverrideCreate",
    "WagerOverrideResponse",
]
