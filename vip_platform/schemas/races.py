"""Wager race schemas."""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any


class RaceParticipant(BaseModel):
    uid: str
    name: str
    wagered: float = Field(..., description="Monthly wager counted for the race")
    position: int = Field(..., description="1-based position in the race")
    prizeAmount: float = Field(0.0, description="Prize for this position")


class RaceMetadata(BaseModel):
    prizeDistribution: Dict[str, float] = Field(default_factory=dict)
    prizeMode: str = "percentage"
    transitionEnds: Optional[str] = None
    nextRaceStarts: Optional[str] = None


class RaceResponse(BaseModel):
    """Race object served by /api/wager-races/current and /previous."""
    id: str = Field(..., description="Race id in YYYYMM form", example="202601")
    title: str = Field(..., example="January 2026 Wager Race")
    status: str = Field(..., example="live")
    startDate: str
    endDate: str
    prizePool: float
    participants: List[RaceParticipant] = Field(default_factory=list)
    totalWagered: float = 0.0
    participantCount: int = 0
    metadata: RaceMetadata = Field(default_factory=RaceMetadata)


class RacePositionResponse(BaseModel):
    position: Optional[int] = Field(None, description="Position in the current race, null when unranked")
    totalParticipants: int
    wagerAmount: float
    previousPosition: Optional[int] = None
    raceType: str = "monthly"
    raceTitle: str
    endDate: str


class RaceTransitionResponse(BaseModel):
    completedRaceId: Optional[int] = None
    nextRaceId: Optional[int] = None
    snapshots: Dict[str, Any] = Field(default_factory=dict)
    overdueCompletedIds: List[int] = Field(default_factory=list, description="Earlier races closed because their window had ended")


class SnapshotResultResponse(BaseModel):
    raceId: int
    created: int
    skipped: int
    errors: int
