"""Wager override schemas."""

from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime


class WagerOverrideCreate(BaseModel):
    username: str = Field(..., min_length=1, description="External username the override applies to")
    goated_id: Optional[str] = Field(None, description="External uid, if known")
    today_override: Optional[float] = None
    this_week_override: Optional[float] = None
    this_month_override: Optional[float] = None
    all_time_override: Optional[float] = None
    expires_at: Optional[datetime] = Field(None, description="Override stops applying after this time")
    notes: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "username": "Alice",
                "this_month_override": 200,
                "expires_at": None,
                "notes": "Manual correction for missed wagers"
            }
        }


class WagerOverrideUpdate(BaseModel):
    today_override: Optional[float] = None
    this_week_override: Optional[float] = None
    this_month_override: Optional[float] = None
    all_time_override: Optional[float] = None
    active: Optional[bool] = None
    expires_at: Optional[datetime] = None
    notes: Optional[str] = None


class WagerOverrideResponse(BaseModel):
    id: int
    username: str
    goated_id: Optional[str] = None
    today_override: Optional[float] = None
    this_week_override: Optional[float] = None
    this_month_override: Optional[float] = None
    all_time_override: Optional[float] = None
    active: bool
    expires_at: Optional[datetime] = None
    created_at: datetime
    created_by: Optional[str] = None
    notes: Optional[str] = None

    class Config:
        from_attributes = True
