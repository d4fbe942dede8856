"""Admin routes for managing wager overrides."""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from vip_platform.db.models import WagerOverride
from vip_platform.db.session import get_db
from vip_platform.routers.deps import require_admin
from vip_platform.schemas.overrides import WagerOverrideCreate, WagerOverrideResponse, WagerOverrideUpdate
from vip_platform.services.wager_adjustments import OVERRIDE_COLUMNS

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin/wager-overrides", tags=["Wager Overrides"])


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _amount(value: Optional[float]) -> Optional[Decimal]:
    return Decimal(str(value)) if value is not None else None


async def _ensure_no_active_override(db: AsyncSession, username: str, exclude_id: Optional[int] = None):
    """409 when another active override exists for the username (case-insensitive, as overrides are applied)."""
    query = select(WagerOverride.id).where(
        func.lower(WagerOverride.username) == username.lower(),
        WagerOverride.active.is_(True)
    )
    if exclude_id is not None:
        query = query.where(WagerOverride.id != exclude_id)
    result = await db.execute(query)
    if result.first() is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"An active override for {username} already exists"
        )


async def _get_override_or_404(db: AsyncSession, override_id: int) -> WagerOverride:
    override = await db.get(WagerOverride, override_id)
    if override is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Override {override_id} not found")
    return override


@router.get("", response_model=List[WagerOverrideResponse])
async def list_overrides(
    active_only: bool = Query(False, description="Only return active overrides"),
    db: AsyncSession = Depends(get_db),
    admin: dict = Depends(require_admin)
):
    query = select(WagerOverride).order_by(WagerOverride.created_at.desc(), WagerOverride.id.desc())
    if active_only:
        query = query.where(WagerOverride.active.is_(True))
    result = await db.execute(query)
    return result.scalars().all()


@router.get("/{override_id}", response_model=WagerOverrideResponse)
async def get_override(
    override_id: int = Path(..., ge=1),
    db: AsyncSession = Depends(get_db),
    admin: dict = Depends(require_admin)
):
    return await _get_override_or_404(db, override_id)


@router.post("", response_model=WagerOverrideResponse, status_code=status.HTTP_201_CREATED)
async def create_override(
    payload: WagerOverrideCreate,
    db: AsyncSession = Depends(get_db),
    admin: dict = Depends(require_admin)
):
    """
    Create an override for a username.

    Only one active override may exist per username; a second one is rejected with 409.
    """
    if all(getattr(payload, column) is None for column in OVERRIDE_COLUMNS.values()):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="At least one override value is required"
        )

    await _ensure_no_active_override(db, payload.username)

    override = WagerOverride(
        username=payload.username,
        goated_id=payload.goated_id,
        expires_at=_naive_utc(payload.expires_at),
        created_by=admin.get("sub"),
        notes=payload.notes,
        active=True,
        **{column: _amount(getattr(payload, column)) for column in OVERRIDE_COLUMNS.values()},
    )
    try:
        db.add(override)
        await db.commit()
        await db.refresh(override)
    except Exception as e:
        await db.rollback()
        logger.error(f"❌ Failed to create override for {payload.username}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create override"
        )

    logger.info(f"Override {override.id} created for {override.username} by {override.created_by}")
    return override


@router.put("/{override_id}", response_model=WagerOverrideResponse)
async def update_override(
    payload: WagerOverrideUpdate,
    override_id: int = Path(..., ge=1),
    db: AsyncSession = Depends(get_db),
    admin: dict = Depends(require_admin)
):
    override = await _get_override_or_404(db, override_id)
    changes = payload.model_dump(exclude_unset=True)
    if changes.get("active") and not override.active:
        await _ensure_no_active_override(db, override.username, exclude_id=override.id)
    for field, value in changes.items():
        if field in OVERRIDE_COLUMNS.values():
            value = _amount(value)
        elif field == "expires_at":
            value = _naive_utc(value)
        setattr(override, field, value)

    await db.commit()
    await db.refresh(override)
    return override


@router.delete("/{override_id}", response_model=WagerOverrideResponse)
async def deactivate_override(
    override_id: int = Path(..., ge=1),
    db: AsyncSession = Depends(get_db),
    admin: dict = Depends(require_admin)
):
    """Soft-delete: the override is marked inactive and kept for history."""
    override = await _get_override_or_404(db, override_id)
    override.active = False
    await db.commit()
    await db.refresh(override)
    logger.info(f"Override {override_id} deactivated by {admin.get('sub')}")
    return override
