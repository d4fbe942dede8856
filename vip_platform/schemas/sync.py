"""Sync and diagnostics schemas."""

from pydantic import BaseModel, Field
from typing import Optional, Dict, Any
from datetime import datetime


class SyncTriggerResponse(BaseModel):
    message: str
    status: str = Field(..., description="started or already_running")


class SyncStatusResponse(BaseModel):
    running: bool
    lastRunTime: Optional[datetime] = None
    lastResult: Optional[Dict[str, Any]] = None


class TransformationLogResponse(BaseModel):
    id: int
    type: str
    message: str
    payload: Optional[Dict[str, Any]] = None
    duration_ms: Optional[float] = None
    created_at: datetime
    resolved: bool
    error_message: Optional[str] = None

    class Config:
        from_attributes = True
