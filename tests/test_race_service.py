"""
Tests for wager race windows, prizes, snapshots and the month-end transition.
"""

from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy import func
from sqlalchemy.future import select

from vip_platform.core.constants import RACE_COMPLETED, RACE_LIVE, RACE_UPCOMING
from vip_platform.db.models import TransformationLog, WagerRace, WagerRaceParticipantSnapshot
from vip_platform.schemas.leaderboard import (
    LeaderboardMetadata,
    LeaderboardPeriod,
    LeaderboardResponse,
    WagerRecord,
    Wagered,
)
from vip_platform.services.race_service import (
    WagerRaceService,
    calculate_prize_amount,
    month_window,
    next_month_window,
    parse_prize_distribution,
    previous_month_window,
    race_external_id,
)
from vip_platform.services.ranking import build_rankings
from tests.conftest import NOW


MONTH_END = datetime(2026, 1, 31, 23, 59, 0)


def make_leaderboard(count=12, ranked_at=None):
    records = [
        WagerRecord(uid=f"u{i}", name=f"User {i}", wagered=Wagered(this_month=1000 - i * 50, all_time=5000 - i))
        for i in range(count)
    ]
    return LeaderboardResponse(
        status="success",
        metadata=LeaderboardMetadata(totalUsers=count, lastUpdated=ranked_at.isoformat() if ranked_at else None),
        data={view: LeaderboardPeriod(data=ranked) for view, ranked in build_rankings(records).items()},
    )


@pytest.fixture
def races():
    return WagerRaceService(
        top_n=10,
        prize_pool=500,
        prize_mode="percentage",
        prize_distribution={"1": 0.425, "2": 0.2, "3": 0.15, "4-10": 0.0321},
    )


class TestWindows:
    def test_month_window(self):
        start, end = month_window(NOW)
        assert start == datetime(2026, 1, 1)
        assert end == datetime(2026, 1, 31, 23, 59, 59)

    def test_february_and_year_rollover(self):
        assert month_window(datetime(2028, 2, 10))[1] == datetime(2028, 2, 29, 23, 59, 59)
        assert next_month_window(datetime(2026, 12, 31, 23, 59))[0] == datetime(2027, 1, 1)
        assert previous_month_window(datetime(2026, 1, 1))[0] == datetime(2025, 12, 1)

    def test_external_id(self):
        assert race_external_id(datetime(2026, 3, 1)) == "202603"


class TestPrizes:
    def test_range_keys_expand(self):
        table = parse_prize_distribution({"1": 250, "2": 150, "3": 75, "4-10": 25})
        assert table[1] == 250
        assert table[4] == 25
        assert table[10] == 25
        assert 11 not in table

    def test_percentage_mode(self):
        assert calculate_prize_amount(1, 500, {"1": 0.425}, "percentage") == 212.5
        assert calculate_prize_amount(11, 500, {"1": 0.425}, "percentage") == 0

    def test_fixed_mode(self):
        distribution = {"1": 250, "2": 150, "3": 75, "4-10": 25}
        assert calculate_prize_amount(2, 500, distribution, "fixed") == 150
        assert calculate_prize_amount(7, 500, distribution, "fixed") == 25


class TestCurrentAndPrevious:
    async def test_current_race_from_monthly_ranking(self, db_session, races):
        race = await races.get_current_race(db_session, make_leaderboard(), now=NOW)

        assert race.id == "202601"
        assert race.status == RACE_LIVE
        assert race.participantCount == 10
        assert [p.position for p in race.participants] == list(range(1, 11))
        assert race.participants[0].uid == "u0"
        assert race.participants[0].prizeAmount == 212.5
        assert race.metadata.nextRaceStarts == "2026-02-01T00:00:00"

    async def test_current_race_uses_stored_prize_settings(self, db_session, races):
        start, end = month_window(NOW)
        db_session.add(WagerRace(
            external_id="202601", title="January 2026 Wager Race", type="monthly", status=RACE_LIVE,
            prize_pool=Decimal("1000"), prize_mode="fixed", prize_distribution={"1": 400},
            start_date=start, end_date=end,
        ))
        await db_session.commit()

        race = await races.get_current_race(db_session, make_leaderboard(), now=NOW)
        assert race.prizePool == 1000
        assert race.participants[0].prizeAmount == 400
        assert race.participants[1].prizeAmount == 0

    async def test_previous_race_without_data_is_empty(self, db_session, races):
        race = await races.get_previous_race(db_session, now=NOW)
        assert race.id == "202512"
        assert race.status == RACE_COMPLETED
        assert race.participants == []

    async def test_user_position(self, db_session, races):
        position = await races.get_user_position(db_session, make_leaderboard(), "u11", now=NOW)
        assert position.position == 12
        assert position.totalParticipants == 12
        assert position.wagerAmount == 450
        assert position.previousPosition is None
        assert position.raceTitle == "January 2026 Wager Race"

    async def test_unranked_user_position(self, db_session, races):
        position = await races.get_user_position(db_session, make_leaderboard(), "nobody", now=NOW)
        assert position.position is None
        assert position.wagerAmount == 0


class TestTransition:
    async def test_month_end_transition(self, db_session, races):
        current = await races.ensure_current_race(db_session, NOW)
        current_id = current.id

        summary = await races.complete_race(db_session, make_leaderboard(), now=MONTH_END)

        assert summary["completedRaceId"] == current_id
        assert summary["snapshots"] == {"created": 10, "skipped": 0, "errors": 0}

        result = await db_session.execute(select(WagerRace.status).where(WagerRace.id == current_id))
        assert result.scalar_one() == RACE_COMPLETED

        result = await db_session.execute(
            select(WagerRace.status).where(WagerRace.start_date == datetime(2026, 2, 1))
        )
        assert result.scalars().all() == [RACE_UPCOMING]

        result = await db_session.execute(
            select(WagerRaceParticipantSnapshot)
            .where(WagerRaceParticipantSnapshot.race_id == current_id)
            .order_by(WagerRaceParticipantSnapshot.final_rank)
        )
        snapshots = result.scalars().all()
        assert [s.uid for s in snapshots] == [f"u{i}" for i in range(10)]
        assert [s.final_rank for s in snapshots] == list(range(1, 11))
        assert float(snapshots[0].prize_won_amount) == 212.5
        assert float(snapshots[3].prize_won_amount) == 16.05

        result = await db_session.execute(select(func.count()).select_from(TransformationLog))
        assert result.scalar_one() == 1

    async def test_rerunning_snapshot_only_fills_gaps(self, db_session, races):
        race = await races.ensure_current_race(db_session, NOW)
        db_session.add(WagerRaceParticipantSnapshot(
            race_id=race.id, uid="u0", username_at_race_end="User 0",
            final_rank=1, wagered_amount=Decimal("1000"), prize_won_amount=Decimal("212.5"),
        ))
        await db_session.commit()

        stats = await races.snapshot_race(db_session, race.id, make_leaderboard(), now=MONTH_END)
        assert stats == {"created": 9, "skipped": 1, "errors": 0}

    async def test_snapshot_unknown_race(self, db_session, races):
        with pytest.raises(ValueError):
            await races.snapshot_race(db_session, 999, make_leaderboard())

    async def test_previous_race_reads_snapshots_and_position(self, db_session, races):
        await races.ensure_current_race(db_session, NOW)
        await races.complete_race(db_session, make_leaderboard(), now=MONTH_END)

        february = datetime(2026, 2, 10)
        previous = await races.get_previous_race(db_session, now=february)
        assert previous.id == "202601"
        assert previous.participantCount == 10
        assert previous.participants[0].prizeAmount == 212.5

        position = await races.get_user_position(db_session, make_leaderboard(), "u2", now=february)
        assert position.previousPosition == 3

    async def test_upcoming_race_promoted_when_due(self, db_session, races):
        await races.ensure_current_race(db_session, NOW)
        await races.complete_race(db_session, make_leaderboard(), now=MONTH_END)

        assert await races.promote_due_races(db_session, now=datetime(2026, 1, 31, 23, 59, 30)) == 0
        assert await races.promote_due_races(db_session, now=datetime(2026, 2, 1, 0, 10)) == 1

        result = await db_session.execute(select(WagerRace.status).where(WagerRace.status == RACE_LIVE))
        assert len(result.scalars().all()) == 1

    async def test_transition_without_live_race_completes_current_month(self, db_session, races):
        summary = await races.complete_race(db_session, make_leaderboard(), now=MONTH_END)

        result = await db_session.execute(select(WagerRace.external_id, WagerRace.status).order_by(WagerRace.start_date))
        assert [tuple(row) for row in result.all()] == [("202601", RACE_COMPLETED), ("202602", RACE_UPCOMING)]
        assert summary["snapshots"]["created"] == 10


async def _race_statuses(session):
    result = await session.execute(select(WagerRace.external_id, WagerRace.status).order_by(WagerRace.start_date))
    return [tuple(row) for row in result.all()]


async def _snapshot_count(session, race_id):
    result = await session.execute(
        select(func.count()).select_from(WagerRaceParticipantSnapshot)
        .where(WagerRaceParticipantSnapshot.race_id == race_id)
    )
    return result.scalar_one()


class TestMissedTransition:
    async def test_opening_new_month_completes_ended_race(self, db_session, races):
        january = await races.ensure_current_race(db_session, NOW)
        january_id = january.id

        await races.ensure_current_race(db_session, datetime(2026, 2, 2))

        assert await _race_statuses(db_session) == [("202601", RACE_COMPLETED), ("202602", RACE_LIVE)]
        assert await _snapshot_count(db_session, january_id) == 0

        summary = await races.complete_race(db_session, make_leaderboard(), now=datetime(2026, 2, 28, 23, 59))
        assert summary["overdueCompletedIds"] == []
        assert await _race_statuses(db_session) == [
            ("202601", RACE_COMPLETED), ("202602", RACE_COMPLETED), ("202603", RACE_UPCOMING),
        ]

    async def test_catch_up_snapshots_standings_ranked_inside_window(self, db_session, races):
        january = await races.ensure_current_race(db_session, NOW)
        january_id = january.id

        standings = make_leaderboard(ranked_at=datetime(2026, 1, 31, 22, 0))
        await races.ensure_current_race(db_session, datetime(2026, 2, 2), standings)

        assert await _snapshot_count(db_session, january_id) == 10

    async def test_catch_up_ignores_standings_from_next_month(self, db_session, races):
        january = await races.ensure_current_race(db_session, NOW)
        january_id = january.id

        standings = make_leaderboard(ranked_at=datetime(2026, 2, 1, 0, 5))
        await races.ensure_current_race(db_session, datetime(2026, 2, 2), standings)

        assert await _snapshot_count(db_session, january_id) == 0

    async def test_month_end_job_after_missed_month(self, db_session, races):
        january = await races.ensure_current_race(db_session, NOW)
        january_id = january.id

        summary = await races.complete_race(db_session, make_leaderboard(), now=datetime(2026, 2, 28, 23, 59))

        assert summary["overdueCompletedIds"] == [january_id]
        assert summary["snapshots"]["created"] == 10
        assert await _race_statuses(db_session) == [
            ("202601", RACE_COMPLETED), ("202602", RACE_COMPLETED), ("202603", RACE_UPCOMING),
        ]

    async def test_late_month_end_job_keeps_new_month_live(self, db_session, races):
        january = await races.ensure_current_race(db_session, NOW)
        january_id = january.id

        summary = await races.complete_race(db_session, make_leaderboard(), now=datetime(2026, 2, 1, 0, 0, 30))

        assert summary["completedRaceId"] == january_id
        assert await _race_statuses(db_session) == [("202601", RACE_COMPLETED), ("202602", RACE_LIVE)]

    async def test_unpromoted_upcoming_race_is_closed_once_over(self, db_session, races):
        await races.ensure_current_race(db_session, NOW)
        await races.complete_race(db_session, make_leaderboard(), now=MONTH_END)

        march = datetime(2026, 3, 5)
        await races.ensure_current_race(db_session, march)

        assert await races.promote_due_races(db_session, now=march) == 0
        assert await _race_statuses(db_session) == [
            ("202601", RACE_COMPLETED), ("202602", RACE_COMPLETED), ("202603", RACE_LIVE),
        ]
