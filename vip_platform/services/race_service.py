"""
Monthly wager races.

The wall clock decides which calendar month is the current and previous
race window. Stored race rows supply the race id, prize pool and prize
table, and hold the completed snapshot; their status is maintained by the
month-end transition job and the upcoming->live promotion step.
"""

import calendar
import logging
import time
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from vip_platform.core.config import settings
from vip_platform.core.constants import (
    DEFAULT_PRIZE_DISTRIBUTION,
    LOG_INFO,
    LOG_WARNING,
    PRIZE_MODE_FIXED,
    RACE_COMPLETED,
    RACE_LIVE,
    RACE_TYPE_MONTHLY,
    RACE_UPCOMING,
)
from vip_platform.db.models import WagerRace, WagerRaceParticipantSnapshot
from vip_platform.schemas.leaderboard import LeaderboardResponse
from vip_platform.schemas.races import (
    RaceMetadata,
    RaceParticipant,
    RacePositionResponse,
    RaceResponse,
)
from vip_platform.services.transformation_log import log_transformation

logger = logging.getLogger(__name__)


def month_window(moment: datetime) -> Tuple[datetime, datetime]:
    """First and last second of the calendar month containing moment."""
    start = datetime(moment.year, moment.month, 1)
    last_day = calendar.monthrange(moment.year, moment.month)[1]
    end = datetime(moment.year, moment.month, last_day, 23, 59, 59)
    return start, end


def next_month_window(moment: datetime) -> Tuple[datetime, datetime]:
    _, end = month_window(moment)
    return month_window(end + timedelta(seconds=1))


def previous_month_window(moment: datetime) -> Tuple[datetime, datetime]:
    start, _ = month_window(moment)
    return month_window(start - timedelta(seconds=1))


def race_external_id(start: datetime) -> str:
    return f"{start.year}{start.month:02d}"


def race_title(start: datetime) -> str:
    return f"{start.strftime('%B %Y')} Wager Race"


def parse_prize_distribution(distribution: Dict[str, Any]) -> Dict[int, float]:
    """
    Expand a prize table into {position: value}.

    Keys are single positions ("1") or inclusive ranges ("4-10").
    """
    table: Dict[int, float] = {}
    for key, value in (distribution or {}).items():
        key = str(key).strip()
        if "-" in key:
            low, high = key.split("-", 1)
            for position in range(int(low), int(high) + 1):
                table[position] = float(value)
        else:
            table[int(key)] = float(value)
    return table


def calculate_prize_amount(position: int, prize_pool: float, distribution: Dict[str, Any], mode: str) -> float:
    """Prize for a final position: a share of the pool, or a fixed amount in fixed mode."""
    value = parse_prize_distribution(distribution).get(position, 0.0)
    if mode == PRIZE_MODE_FIXED:
        return round(value, 2)
    return round(float(prize_pool) * value, 2)


def _iso(moment: Optional[datetime]) -> Optional[str]:
    return moment.isoformat() if moment else None


def ranked_within(leaderboard: Optional[LeaderboardResponse], start: datetime, end: datetime) -> bool:
    """Whether the leaderboard was ranked inside the window [start, end]."""
    if leaderboard is None or not leaderboard.metadata.lastUpdated:
        return False
    ranked_at = datetime.fromisoformat(leaderboard.metadata.lastUpdated)
    return start <= ranked_at <= end


class WagerRaceService:
    """Race windows, standings, snapshots and the month-end transition."""

    def __init__(
        self,
        top_n: int = settings.RACE_TOP_N,
        prize_pool: float = settings.RACE_PRIZE_POOL,
        prize_mode: str = settings.RACE_PRIZE_MODE,
        prize_distribution: Optional[Dict[str, float]] = None,
    ):
        self.top_n = top_n
        self.prize_pool = prize_pool
        self.prize_mode = prize_mode
        self.prize_distribution = prize_distribution or settings.RACE_PRIZE_DISTRIBUTION or DEFAULT_PRIZE_DISTRIBUTION

    def build_participants(
        self,
        leaderboard: LeaderboardResponse,
        prize_pool: float,
        distribution: Dict[str, Any],
        mode: str,
    ) -> List[RaceParticipant]:
        """Top N of the monthly ranking; position is the 1-based sorted position."""
        monthly = leaderboard.data["monthly"].data[:self.top_n]
        return [
            RaceParticipant(
                uid=entry.uid,
                name=entry.name,
                wagered=entry.wagered.this_month,
                position=index + 1,
                prizeAmount=calculate_prize_amount(index + 1, prize_pool, distribution, mode),
            )
            for index, entry in enumerate(monthly)
        ]

    async def get_race_for_window(
        self,
        session: AsyncSession,
        start: datetime,
        race_type: str = RACE_TYPE_MONTHLY,
    ) -> Optional[WagerRace]:
        result = await session.execute(
            select(WagerRace).where(WagerRace.type == race_type, WagerRace.start_date == start)
        )
        return result.scalar_one_or_none()

    async def create_race(
        self,
        session: AsyncSession,
        start: datetime,
        end: datetime,
        status: str,
        race_type: str = RACE_TYPE_MONTHLY,
    ) -> WagerRace:
        race = WagerRace(
            external_id=race_external_id(start),
            title=race_title(start),
            type=race_type,
            status=status,
            prize_pool=Decimal(str(self.prize_pool)),
            prize_mode=self.prize_mode,
            prize_distribution=dict(self.prize_distribution),
            start_date=start,
            end_date=end,
        )
        session.add(race)
        await session.commit()
        logger.info(f"Created {status} race {race.external_id} ({race.title})")
        return race

    async def ensure_current_race(
        self,
        session: AsyncSession,
        now: Optional[datetime] = None,
        leaderboard: Optional[LeaderboardResponse] = None,
    ) -> WagerRace:
        """
        Create the live row for the current month if it does not exist yet.

        Live races whose window already ended are completed first, so a
        missed month-end job never leaves two live races behind.
        """
        now = now or datetime.utcnow()
        await self.complete_overdue_races(session, now, leaderboard)
        start, end = month_window(now)
        race = await self.get_race_for_window(session, start)
        if race is None:
            race = await self.create_race(session, start, end, RACE_LIVE)
        return race

    async def promote_due_races(self, session: AsyncSession, now: Optional[datetime] = None) -> int:
        """Move upcoming races whose start has passed to live."""
        now = now or datetime.utcnow()
        result = await session.execute(
            update(WagerRace)
            .where(
                WagerRace.status == RACE_UPCOMING,
                WagerRace.start_date <= now,
                WagerRace.end_date >= now,
            )
            .values(status=RACE_LIVE)
        )
        await session.commit()
        promoted = result.rowcount or 0
        if promoted:
            logger.info(f"Promoted {promoted} upcoming race(s) to live")
        return promoted

    def _race_settings(self, race: Optional[WagerRace]) -> Tuple[float, Dict[str, Any], str]:
        if race is None:
            return float(self.prize_pool), dict(self.prize_distribution), self.prize_mode
        return float(race.prize_pool), dict(race.prize_distribution or {}), race.prize_mode

    def _race_response(
        self,
        start: datetime,
        end: datetime,
        status: str,
        prize_pool: float,
        distribution: Dict[str, Any],
        mode: str,
        participants: List[RaceParticipant],
    ) -> RaceResponse:
        next_start, _ = next_month_window(start)
        return RaceResponse(
            id=race_external_id(start),
            title=race_title(start),
            status=status,
            startDate=start.isoformat(),
            endDate=end.isoformat(),
            prizePool=prize_pool,
            participants=participants,
            totalWagered=round(sum(participant.wagered for participant in participants), 8),
            participantCount=len(participants),
            metadata=RaceMetadata(
                prizeDistribution={str(key): float(value) for key, value in distribution.items()},
                prizeMode=mode,
                transitionEnds=_iso(end),
                nextRaceStarts=_iso(next_start),
            ),
        )

    async def get_current_race(
        self,
        session: AsyncSession,
        leaderboard: LeaderboardResponse,
        now: Optional[datetime] = None,
    ) -> RaceResponse:
        now = now or datetime.utcnow()
        start, end = month_window(now)
        race = await self.get_race_for_window(session, start)
        prize_pool, distribution, mode = self._race_settings(race)
        participants = self.build_participants(leaderboard, prize_pool, distribution, mode)
        return self._race_response(start, end, RACE_LIVE, prize_pool, distribution, mode, participants)

    async def get_previous_race(self, session: AsyncSession, now: Optional[datetime] = None) -> RaceResponse:
        """Previous month's race, built from its snapshot rows (empty when none were taken)."""
        now = now or datetime.utcnow()
        start, end = previous_month_window(now)
        race = await self.get_race_for_window(session, start)
        prize_pool, distribution, mode = self._race_settings(race)

        participants: List[RaceParticipant] = []
        if race is not None:
            result = await session.execute(
                select(WagerRaceParticipantSnapshot)
                .where(WagerRaceParticipantSnapshot.race_id == race.id)
                .order_by(WagerRaceParticipantSnapshot.final_rank)
            )
            participants = [
                RaceParticipant(
                    uid=snapshot.uid,
                    name=snapshot.username_at_race_end,
                    wagered=float(snapshot.wagered_amount),
                    position=snapshot.final_rank,
                    prizeAmount=float(snapshot.prize_won_amount),
                )
                for snapshot in result.scalars().all()
            ]

        return self._race_response(start, end, RACE_COMPLETED, prize_pool, distribution, mode, participants)

    async def get_user_position(
        self,
        session: AsyncSession,
        leaderboard: LeaderboardResponse,
        uid: str,
        now: Optional[datetime] = None,
    ) -> RacePositionResponse:
        now = now or datetime.utcnow()
        start, end = month_window(now)
        monthly = leaderboard.data["monthly"].data

        position = None
        wager_amount = 0.0
        for index, entry in enumerate(monthly):
            if entry.uid == uid:
                position = index + 1
                wager_amount = entry.wagered.this_month
                break

        previous_position = None
        previous_start, _ = previous_month_window(now)
        previous_race = await self.get_race_for_window(session, previous_start)
        if previous_race is not None:
            result = await session.execute(
                select(WagerRaceParticipantSnapshot.final_rank).where(
                    WagerRaceParticipantSnapshot.race_id == previous_race.id,
                    WagerRaceParticipantSnapshot.uid == uid,
                )
            )
            previous_position = result.scalar_one_or_none()

        return RacePositionResponse(
            position=position,
            totalParticipants=len(monthly),
            wagerAmount=wager_amount,
            previousPosition=previous_position,
            raceType=RACE_TYPE_MONTHLY,
            raceTitle=race_title(start),
            endDate=end.isoformat(),
        )

    async def snapshot_race(
        self,
        session: AsyncSession,
        race_id: int,
        leaderboard: LeaderboardResponse,
        now: Optional[datetime] = None,
    ) -> Dict[str, int]:
        """
        Write one snapshot row per top-N participant.

        Participants that already have a row are skipped, so a partially
        failed snapshot can be completed by running this again.
        """
        now = now or datetime.utcnow()
        race = await session.get(WagerRace, race_id)
        if race is None:
            raise ValueError(f"Race {race_id} not found")
        prize_pool, distribution, mode = self._race_settings(race)

        result = await session.execute(
            select(WagerRaceParticipantSnapshot.uid).where(WagerRaceParticipantSnapshot.race_id == race_id)
        )
        existing = set(result.scalars().all())

        stats = {"created": 0, "skipped": 0, "errors": 0}
        for participant in self.build_participants(leaderboard, prize_pool, distribution, mode):
            if participant.uid in existing:
                stats["skipped"] += 1
                continue
            try:
                session.add(WagerRaceParticipantSnapshot(
                    race_id=race_id,
                    uid=participant.uid,
                    username_at_race_end=participant.name,
                    final_rank=participant.position,
                    wagered_amount=Decimal(str(participant.wagered)),
                    prize_won_amount=Decimal(str(participant.prizeAmount)),
                    snapshot_timestamp=now,
                ))
                await session.commit()
                stats["created"] += 1
            except Exception as e:
                await session.rollback()
                stats["errors"] += 1
                logger.error(f"❌ Failed to snapshot participant {participant.uid} for race {race_id}: {e}")

        return stats

    async def _close_race(
        self,
        session: AsyncSession,
        race: WagerRace,
        leaderboard: Optional[LeaderboardResponse],
        now: datetime,
    ) -> Dict[str, Any]:
        """
        Complete one race, snapshot its standings and open the following month.

        The status change is committed first; snapshot failures are logged
        and counted without undoing it. Without a leaderboard no snapshot
        rows are written; they can be filled in later with snapshot_race.
        """
        started = time.monotonic()
        race_id = race.id
        race_start = race.start_date

        await session.execute(
            update(WagerRace)
            .where(WagerRace.id == race_id)
            .values(status=RACE_COMPLETED, completed_at=now)
        )
        await session.commit()
        logger.info(f"✅ Race {race_id} marked completed")

        snapshot_stats = {"created": 0, "skipped": 0, "errors": 0}
        if leaderboard is not None:
            snapshot_stats = await self.snapshot_race(session, race_id, leaderboard, now)
        else:
            logger.warning(f"⚠️ No standings from race {race_id}'s window, completed without snapshot")

        next_start, next_end = next_month_window(race_start)
        next_race = await self.get_race_for_window(session, next_start)
        if next_race is None:
            next_race = await self.create_race(
                session,
                next_start,
                next_end,
                RACE_LIVE if next_start <= now else RACE_UPCOMING,
            )
        next_race_id = next_race.id

        duration_ms = (time.monotonic() - started) * 1000
        summary = {
            "completedRaceId": race_id,
            "nextRaceId": next_race_id,
            "snapshots": snapshot_stats,
        }
        await log_transformation(
            session,
            LOG_WARNING if snapshot_stats["errors"] or leaderboard is None else LOG_INFO,
            f"Race {race_id} completed with {snapshot_stats['created']} snapshot(s), "
            f"{snapshot_stats['errors']} error(s); next race {next_race_id}",
            duration_ms=duration_ms,
            payload=summary,
        )
        return summary

    async def complete_overdue_races(
        self,
        session: AsyncSession,
        now: Optional[datetime] = None,
        leaderboard: Optional[LeaderboardResponse] = None,
    ) -> List[Dict[str, Any]]:
        """
        Complete live or upcoming races whose window ended before now, oldest first.

        Closing a race opens the following month, which may itself be over
        already, so this repeats until no ended race is left open. The
        leaderboard is snapshotted only for a race whose window contains the
        time it was ranked; later standings belong to another month.
        """
        now = now or datetime.utcnow()
        summaries = []
        while True:
            result = await session.execute(
                select(WagerRace)
                .where(
                    WagerRace.type == RACE_TYPE_MONTHLY,
                    WagerRace.status.in_([RACE_LIVE, RACE_UPCOMING]),
                    WagerRace.end_date < now,
                )
                .order_by(WagerRace.start_date)
            )
            race = result.scalars().first()
            if race is None:
                return summaries

            logger.warning(f"⚠️ Race {race.external_id} is still {race.status} after its window ended, completing it")
            standings = leaderboard if ranked_within(leaderboard, race.start_date, race.end_date) else None
            summaries.append(await self._close_race(session, race, standings, now))

    async def complete_race(
        self,
        session: AsyncSession,
        leaderboard: LeaderboardResponse,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """
        Month-end transition: complete the live race, snapshot its standings
        and open the next month's race.

        Races left open from earlier months are completed first. When the job
        runs after the month already rolled over, that catch-up is the whole
        transition and the new month's race stays live.
        """
        now = now or datetime.utcnow()
        overdue = await self.complete_overdue_races(session, now, leaderboard)
        overdue_ids = [item["completedRaceId"] for item in overdue]

        result = await session.execute(
            select(WagerRace)
            .where(
                WagerRace.type == RACE_TYPE_MONTHLY,
                WagerRace.status == RACE_LIVE,
                WagerRace.start_date <= now,
                WagerRace.end_date >= now,
            )
        )
        race = result.scalars().first()
        if race is None:
            if overdue:
                return {**overdue[-1], "overdueCompletedIds": overdue_ids[:-1]}
            logger.warning("⚠️ No live race found at transition time, completing the current month's race")
            race = await self.ensure_current_race(session, now)
        elif overdue and now < race.end_date - timedelta(days=1):
            # Late run: the month already rolled over and the catch-up closed it
            return {**overdue[-1], "overdueCompletedIds": overdue_ids[:-1]}

        summary = await self._close_race(session, race, leaderboard, now)
        summary["overdueCompletedIds"] = overdue_ids
        return summary


# Global service instance
race_service = WagerRaceService()
