"""
Periodic leaderboard sync.

Pulls fresh ranked data, upserts the leaderboard_users cache, mirrors
profiles, promotes due races and broadcasts the update. Only one sync runs
at a time; overlapping triggers return immediately without doing anything.
"""

import asyncio
import logging
import time
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import insert, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from vip_platform.core.config import settings
from vip_platform.core.constants import LOG_ERROR, LOG_INFO, LOG_WARNING, WAGER_QUANTUM
from vip_platform.db.models import LeaderboardUser
from vip_platform.db.session import AsyncSessionLocal
from vip_platform.schemas.leaderboard import WagerRecord
from vip_platform.services.goated_api_client import UpstreamUnavailableError
from vip_platform.services.leaderboard_broadcaster import publish_leaderboard_update
from vip_platform.services.leaderboard_service import (
    LeaderboardService,
    empty_leaderboard,
    leaderboard_records,
    leaderboard_service,
)
from vip_platform.services.profile_sync_service import sync_user_profiles
from vip_platform.services.race_service import WagerRaceService, race_service
from vip_platform.services.transformation_log import log_transformation

logger = logging.getLogger(__name__)

# Cache column per wager period
WAGER_COLUMNS = {
    "today": "wager_today",
    "this_week": "wager_week",
    "this_month": "wager_month",
    "all_time": "wager_all_time",
}


def _amount(value: Any) -> Decimal:
    return Decimal(str(value or 0)).quantize(Decimal(WAGER_QUANTUM))


async def upsert_leaderboard_users(
    session: AsyncSession,
    records: List[WagerRecord],
    now: Optional[datetime] = None,
) -> Dict[str, int]:
    """
    Upsert records into leaderboard_users.

    New uids are inserted. Existing rows are written, and last_synced bumped,
    only when a wager value differs; unchanged rows are not touched at all.
    Each row commits on its own.
    """
    now = now or datetime.utcnow()
    stats = {"processed": 0, "created": 0, "updated": 0, "unchanged": 0, "errors": 0}

    result = await session.execute(
        select(LeaderboardUser.id, LeaderboardUser.uid, *[getattr(LeaderboardUser, c) for c in WAGER_COLUMNS.values()])
    )
    existing = {row.uid: row for row in result.all()}

    for record in records:
        stats["processed"] += 1
        values = {column: _amount(getattr(record.wagered, period)) for period, column in WAGER_COLUMNS.items()}
        try:
            row = existing.get(record.uid)
            if row is None:
                await session.execute(
                    insert(LeaderboardUser).values(
                        uid=record.uid,
                        name=record.name,
                        last_synced=now,
                        created_at=now,
                        updated_at=now,
                        **values,
                    )
                )
                await session.commit()
                stats["created"] += 1
            elif any(_amount(getattr(row, column)) != value for column, value in values.items()):
                await session.execute(
                    update(LeaderboardUser)
                    .where(LeaderboardUser.id == row.id)
                    .values(last_synced=now, updated_at=now, **values)
                )
                await session.commit()
                stats["updated"] += 1
            else:
                stats["unchanged"] += 1
        except Exception as e:
            await session.rollback()
            stats["errors"] += 1
            logger.error(f"❌ Failed to upsert leaderboard user {record.uid}: {e}")

    return stats


class LeaderboardSyncService:
    """Runs sync cycles with a single-flight guard."""

    def __init__(
        self,
        leaderboard: Optional[LeaderboardService] = None,
        races: Optional[WagerRaceService] = None,
        session_factory: Callable[[], AsyncSession] = AsyncSessionLocal,
        profile_sync_enabled: bool = settings.PROFILE_SYNC_ENABLED,
    ):
        self.leaderboard = leaderboard or leaderboard_service
        self.races = races or race_service
        self.session_factory = session_factory
        self.profile_sync_enabled = profile_sync_enabled
        # Shared by sync cycles and race transitions; both rebuild the leaderboard
        self._lock = asyncio.Lock()
        self._transition_pending = False
        self.last_run_time: Optional[datetime] = None
        self.last_result: Optional[Dict[str, Any]] = None

    def is_running(self) -> bool:
        return self._lock.locked()

    async def run_sync(self, force_fresh: bool = True, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Run one sync cycle, or return {"status": "skipped"} if one is already running."""
        if self._lock.locked():
            logger.warning("Leaderboard sync already in progress, skipping...")
            return {"status": "skipped"}

        async with self._lock:
            async with self.session_factory() as session:
                result = await self._run_cycle(session, force_fresh, now or datetime.utcnow())
            self.last_run_time = datetime.utcnow()
            self.last_result = result
            return result

    async def _run_cycle(self, session: AsyncSession, force_fresh: bool, now: datetime) -> Dict[str, Any]:
        started = time.monotonic()
        logger.info("🔄 Starting leaderboard sync...")

        def elapsed_ms() -> float:
            return (time.monotonic() - started) * 1000

        previous = self.leaderboard.latest
        try:
            leaderboard = await self.leaderboard.build_leaderboard(session, force_fresh=force_fresh, now=now)
        except UpstreamUnavailableError as e:
            logger.error(f"❌ Leaderboard sync aborted: {e}")
            await log_transformation(
                session, LOG_ERROR, "Sync aborted: upstream unavailable",
                duration_ms=elapsed_ms(), error_message=str(e),
            )
            return {"status": "failed", "error": str(e)}

        records = leaderboard_records(leaderboard)
        if not records:
            logger.warning("⚠️ Upstream returned no usable records, cache left unchanged")
            await log_transformation(session, LOG_WARNING, "No data this cycle", duration_ms=elapsed_ms())
            return {"status": "empty"}

        try:
            upsert_stats = await upsert_leaderboard_users(session, records, now)
            profile_stats = None
            if self.profile_sync_enabled:
                profile_stats = await sync_user_profiles(session, leaderboard, now)
            # Standings from the previous cycle can still be the final ones of a race left open
            await self.races.ensure_current_race(session, now, previous)
            promoted = await self.races.promote_due_races(session, now)
        except Exception as e:
            await session.rollback()
            logger.error(f"❌ Leaderboard sync failed: {e}", exc_info=True)
            await log_transformation(
                session, LOG_ERROR, "Sync failed during persistence",
                duration_ms=elapsed_ms(), error_message=str(e),
            )
            return {"status": "failed", "error": str(e)}

        await publish_leaderboard_update(leaderboard)

        errors = upsert_stats["errors"] + (profile_stats["errors"] if profile_stats else 0)
        status = "partial" if errors else "success"
        result = {
            "status": status,
            "leaderboard": upsert_stats,
            "profiles": profile_stats,
            "promotedRaces": promoted,
            "adjustments": self.leaderboard.last_adjustments,
            "duration_ms": round(elapsed_ms(), 2),
        }
        await log_transformation(
            session,
            LOG_WARNING if errors else LOG_INFO,
            f"Sync {status}: {upsert_stats['created']} created, {upsert_stats['updated']} updated, "
            f"{upsert_stats['unchanged']} unchanged, {errors} errors",
            duration_ms=elapsed_ms(),
            payload=result,
        )
        logger.info(
            f"✅ Leaderboard sync {status}: {upsert_stats['created']} created, "
            f"{upsert_stats['updated']} updated, {upsert_stats['unchanged']} unchanged "
            f"in {elapsed_ms():.0f}ms"
        )
        return result

    async def run_race_transition(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Month-end race transition using freshly ranked data.

        Waits for a running sync instead of skipping, so the transition is
        never lost to an overlapping sync; a second transition request while
        one is pending returns {"status": "skipped"}. When the upstream is down
        the last leaderboard built in this process is used, so the race still
        completes and the next one opens.
        """
        if self._transition_pending:
            logger.warning("Race transition already in progress, skipping...")
            return {"status": "skipped"}

        self._transition_pending = True
        try:
            async with self._lock:
                now = now or datetime.utcnow()
                async with self.session_factory() as session:
                    try:
                        leaderboard = await self.leaderboard.build_leaderboard(session, force_fresh=True, now=now)
                    except UpstreamUnavailableError as e:
                        logger.error(f"❌ Fresh data unavailable for race transition, using last known standings: {e}")
                        leaderboard = self.leaderboard.latest or empty_leaderboard()
                    return await self.races.complete_race(session, leaderboard, now)
        finally:
            self._transition_pending = False


# Global service instance
sync_service = LeaderboardSyncService()
