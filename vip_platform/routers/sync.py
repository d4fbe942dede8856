"""Sync trigger and diagnostics routes."""

import logging
from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from vip_platform.db.session import get_db
from vip_platform.routers.deps import require_admin
from vip_platform.schemas.sync import SyncStatusResponse, SyncTriggerResponse, TransformationLogResponse
from vip_platform.services.leaderboard_sync_service import sync_service
from vip_platform.services.transformation_log import get_recent_logs

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Sync"])


@router.post("/sync/trigger", response_model=SyncTriggerResponse, status_code=202)
async def trigger_sync(
    background_tasks: BackgroundTasks,
    admin: dict = Depends(require_admin)
):
    """
    Start a leaderboard sync in the background and return immediately.

    A trigger while a sync is running does nothing.
    """
    if sync_service.is_running():
        return SyncTriggerResponse(message="Sync already in progress", status="already_running")

    background_tasks.add_task(sync_service.run_sync, True)
    logger.info(f"Leaderboard sync triggered by {admin.get('sub')}")
    return SyncTriggerResponse(message="Leaderboard sync started", status="started")


@router.get("/sync/status", response_model=SyncStatusResponse)
async def get_sync_status(admin: dict = Depends(require_admin)):
    return SyncStatusResponse(
        running=sync_service.is_running(),
        lastRunTime=sync_service.last_run_time,
        lastResult=sync_service.last_result,
    )


@router.get("/admin/transformation-logs", response_model=List[TransformationLogResponse])
async def list_transformation_logs(
    limit: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    admin: dict = Depends(require_admin)
):
    """Most recent transformation log entries, newest first."""
    return await get_recent_logs(db, limit)
