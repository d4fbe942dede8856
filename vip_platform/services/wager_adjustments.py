"""
Post-hoc wager adjustments applied before ranking.

Two passes run in order on every pipeline run:
1. Admin overrides from the wager_overrides table (expired rows are deactivated lazily).
2. Targeted rank adjustments configured per account (target rank + maximum boost).
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from vip_platform.core.constants import WAGER_PERIODS
from vip_platform.db.models import WagerOverride
from vip_platform.schemas.leaderboard import WagerRecord

logger = logging.getLogger(__name__)

# Override column for each wager period
OVERRIDE_COLUMNS = {
    "today": "today_override",
    "this_week": "this_week_override",
    "this_month": "this_month_override",
    "all_time": "all_time_override",
}


class RankAdjustmentPolicy(BaseModel):
    """Boost one account towards a target monthly rank, never by more than max_boost."""
    account: str = Field(..., min_length=1, description="uid or username of the account")
    target_rank: int = Field(3, ge=1)
    max_boost: float = Field(10.0, ge=0)
    min_increment: float = Field(0.01, gt=0, description="Margin by which the boosted wager beats the current holder")
    enabled: bool = True


def load_rank_adjustment_policies(raw_policies: List[Dict[str, Any]]) -> List[RankAdjustmentPolicy]:
    return [RankAdjustmentPolicy(**raw) for raw in raw_policies or []]


async def load_active_overrides(session: AsyncSession, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    """
    Fetch active overrides, deactivating any whose expiry has passed.

    Returns plain dicts (oldest first) for the overrides still in force.
    """
    now = now or datetime.utcnow()
    result = await session.execute(
        select(WagerOverride)
        .where(WagerOverride.active.is_(True))
        .order_by(WagerOverride.created_at, WagerOverride.id)
    )
    rows = result.scalars().all()

    expired_ids = []
    applicable = []
    for row in rows:
        if row.expires_at is not None and row.expires_at < now:
            expired_ids.append(row.id)
            continue
        applicable.append({
            "id": row.id,
            "username": row.username,
            "goated_id": row.goated_id,
            **{period: getattr(row, column) for period, column in OVERRIDE_COLUMNS.items()},
        })

    if expired_ids:
        try:
            await session.execute(
                update(WagerOverride)
                .where(WagerOverride.id.in_(expired_ids))
                .values(active=False)
            )
            await session.commit()
            logger.info(f"Deactivated {len(expired_ids)} expired wager override(s)")
        except Exception as e:
            await session.rollback()
            logger.error(f"❌ Failed to deactivate expired overrides {expired_ids}: {e}")

    return applicable


def apply_overrides(records: List[WagerRecord], overrides: List[Dict[str, Any]]) -> Tuple[List[WagerRecord], int]:
    """Replace wager fields that have a non-null override. Returns (records, applied count)."""
    if not overrides:
        return records, 0

    by_uid: Dict[str, Dict[str, Any]] = {}
    by_username: Dict[str, Dict[str, Any]] = {}
    for override in overrides:
        # Later (newer) overrides replace earlier ones for the same key
        if override.get("goated_id"):
            by_uid[override["goated_id"]] = override
        by_username[override["username"].lower()] = override

    adjusted = []
    applied = 0
    for record in records:
        override = by_uid.get(record.uid) or by_username.get(record.name.lower())
        if override is None:
            adjusted.append(record)
            continue

        changes = {
            period: float(override[period])
            for period in WAGER_PERIODS
            if override.get(period) is not None
        }
        if changes:
            applied += 1
            record = record.model_copy(update={"wagered": record.wagered.model_copy(update=changes)})
        adjusted.append(record)

    return adjusted, applied


def _matches_account(record: WagerRecord, account: str) -> bool:
    account = account.lower()
    return record.uid.lower() == account or record.name.lower() == account


def apply_rank_adjustment(records: List[WagerRecord], policy: RankAdjustmentPolicy) -> Tuple[List[WagerRecord], float]:
    """
    Apply one targeted rank adjustment.

    The boost is the gap needed for the account's monthly wager to beat the
    record currently holding the target rank, capped at max_boost. The same
    delta is added to all four wager fields. Returns (records, applied delta).
    """
    if not policy.enabled or policy.max_boost <= 0:
        return records, 0.0

    target = next((record for record in records if _matches_account(record, policy.account)), None)
    if target is None:
        return records, 0.0

    own = Decimal(str(target.wagered.this_month))
    others = sorted(
        (Decimal(str(record.wagered.this_month)) for record in records if record.uid != target.uid),
        reverse=True,
    )
    current_rank = 1 + sum(1 for value in others if value > own)
    if current_rank <= policy.target_rank:
        return records, 0.0

    # others[target_rank - 1] holds the target rank once the account moves above it
    gap = others[policy.target_rank - 1] - own + Decimal(str(policy.min_increment))
    delta = min(gap, Decimal(str(policy.max_boost)))
    if delta <= 0:
        return records, 0.0

    boosted = target.wagered.model_copy(update={
        period: float(Decimal(str(getattr(target.wagered, period))) + delta)
        for period in WAGER_PERIODS
    })
    adjusted = [
        record.model_copy(update={"wagered": boosted}) if record.uid == target.uid else record
        for record in records
    ]
    return adjusted, float(delta)


def apply_rank_adjustments(
    records: List[WagerRecord],
    policies: List[RankAdjustmentPolicy],
) -> Tuple[List[WagerRecord], Dict[str, float]]:
    applied: Dict[str, float] = {}
    for policy in policies:
        records, delta = apply_rank_adjustment(records, policy)
        if delta:
            applied[policy.account] = delta
            logger.info(f"Applied rank adjustment of {delta:.2f} to {policy.account} (target rank {policy.target_rank})")
    return records, applied


async def adjust_records(
    session: AsyncSession,
    records: List[WagerRecord],
    policies: List[RankAdjustmentPolicy],
    now: Optional[datetime] = None,
) -> Tuple[List[WagerRecord], Dict[str, Any]]:
    """Run overrides then rank adjustments. Returns (records, summary)."""
    overrides = await load_active_overrides(session, now=now)
    records, overrides_applied = apply_overrides(records, overrides)
    records, boosts = apply_rank_adjustments(records, policies)
    return records, {
        "overrides_active": len(overrides),
        "overrides_applied": overrides_applied,
        "boosts": boosts,
    }
