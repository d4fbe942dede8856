"""Service-level schemas."""

from pydantic import BaseModel, Field
from typing import Optional


class HealthResponse(BaseModel):
    """Liveness plus a short summary of the sync loop."""
    status: str = Field(..., description="Service status", example="healthy")
    version: str = Field(..., description="API version", example="1.0.0")
    service: str = Field(..., description="Service name", example="VIP Wager Rewards Platform")
    schedulerRunning: bool = Field(False, description="Whether periodic jobs are scheduled")
    lastSync: Optional[str] = Field(None, description="ISO time of the last finished sync")
    lastSyncStatus: Optional[str] = Field(None, example="success")

    class Config:
        json_schema_extra = {
            "example": {
                "status": "healthy",
                "version": "1.0.0",
                "service": "VIP Wager Rewards Platform",
                "schedulerRunning": True,
                "lastSync": "2026-01-15T12:00:00",
                "lastSyncStatus": "success"
            }
        }
