"""
Tests for the leaderboard sync cycle: upserts, idempotence, failure handling
and the single-flight guard.
"""

import asyncio
from datetime import datetime, timedelta

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.future import select

from vip_platform.core.constants import LOG_ERROR, LOG_INFO, LOG_WARNING, RACE_COMPLETED, RACE_LIVE
from vip_platform.db.models import LeaderboardUser, TransformationLog, WagerRace, WagerRaceParticipantSnapshot
from vip_platform.services.goated_api_client import UpstreamUnavailableError
from vip_platform.services.leaderboard_service import LeaderboardService
from vip_platform.services.leaderboard_sync_service import LeaderboardSyncService, upsert_leaderboard_users
from vip_platform.services.race_service import WagerRaceService
from vip_platform.schemas.leaderboard import WagerRecord, Wagered
from tests.conftest import NOW, FakeApiClient, make_entry


PAYLOAD = [
    make_entry("a", "Alice", today=1, this_week=10, this_month=50, all_time=500),
    make_entry("b", "Bob", today=2, this_week=20, this_month=80, all_time=800),
]


def make_sync_service(session_factory, client, profile_sync_enabled=False):
    return LeaderboardSyncService(
        leaderboard=LeaderboardService(client=client, policies=[]),
        races=WagerRaceService(top_n=10, prize_pool=500, prize_mode="percentage"),
        session_factory=session_factory,
        profile_sync_enabled=profile_sync_enabled,
    )


async def _cache_rows(session_factory):
    async with session_factory() as session:
        result = await session.execute(
            select(LeaderboardUser.uid, LeaderboardUser.wager_month, LeaderboardUser.last_synced)
            .order_by(LeaderboardUser.uid)
        )
        return result.all()


async def _log_types(session_factory):
    async with session_factory() as session:
        result = await session.execute(select(TransformationLog.type).order_by(TransformationLog.id))
        return list(result.scalars().all())


class TestUpsert:
    async def test_insert_update_and_unchanged(self, db_session):
        records = [WagerRecord(uid="a", name="Alice", wagered=Wagered(this_month=50))]
        first = await upsert_leaderboard_users(db_session, records, NOW)
        assert first["created"] == 1

        same = await upsert_leaderboard_users(db_session, records, NOW + timedelta(minutes=10))
        assert same == {"processed": 1, "created": 0, "updated": 0, "unchanged": 1, "errors": 0}

        changed = [WagerRecord(uid="a", name="Alice", wagered=Wagered(this_month=75.5))]
        updated = await upsert_leaderboard_users(db_session, changed, NOW + timedelta(minutes=20))
        assert updated["updated"] == 1

        result = await db_session.execute(select(LeaderboardUser.wager_month, LeaderboardUser.last_synced))
        row = result.one()
        assert float(row.wager_month) == 75.5
        assert row.last_synced == NOW + timedelta(minutes=20)


class TestSyncCycle:
    async def test_first_sync_populates_cache(self, session_factory):
        service = make_sync_service(session_factory, FakeApiClient(PAYLOAD))

        result = await service.run_sync(now=NOW)

        assert result["status"] == "success"
        assert result["leaderboard"]["created"] == 2
        rows = await _cache_rows(session_factory)
        assert [(r.uid, float(r.wager_month)) for r in rows] == [("a", 50.0), ("b", 80.0)]
        assert service.last_result == result
        assert await _log_types(session_factory) == [LOG_INFO]

    async def test_second_identical_sync_writes_nothing(self, session_factory):
        service = make_sync_service(session_factory, FakeApiClient(PAYLOAD), profile_sync_enabled=True)

        await service.run_sync(now=NOW)
        before = await _cache_rows(session_factory)

        second = await service.run_sync(now=NOW + timedelta(minutes=10))
        after = await _cache_rows(session_factory)

        assert second["leaderboard"]["created"] == 0
        assert second["leaderboard"]["updated"] == 0
        assert second["leaderboard"]["unchanged"] == 2
        assert second["profiles"]["created"] == 0
        assert second["profiles"]["updated"] == 0
        assert second["profiles"]["existing"] == 2
        assert second["promotedRaces"] == 0
        # last_synced only moves when wager data changes
        assert before == after

    async def test_upstream_failure_aborts_without_writes(self, session_factory):
        client = FakeApiClient(error=UpstreamUnavailableError("down"))
        service = make_sync_service(session_factory, client)

        result = await service.run_sync(now=NOW)

        assert result["status"] == "failed"
        assert await _cache_rows(session_factory) == []
        assert await _log_types(session_factory) == [LOG_ERROR]

    async def test_failed_cycle_keeps_previous_cache(self, session_factory):
        client = FakeApiClient(PAYLOAD)
        service = make_sync_service(session_factory, client)
        await service.run_sync(now=NOW)

        client.error = UpstreamUnavailableError("down")
        await service.run_sync(now=NOW + timedelta(minutes=10))

        rows = await _cache_rows(session_factory)
        assert len(rows) == 2

    async def test_empty_payload_is_not_an_error(self, session_factory):
        service = make_sync_service(session_factory, FakeApiClient({"status": "maintenance"}))

        result = await service.run_sync(now=NOW)

        assert result == {"status": "empty"}
        assert await _cache_rows(session_factory) == []
        assert await _log_types(session_factory) == [LOG_WARNING]

    async def test_sync_opens_current_race(self, session_factory):
        service = make_sync_service(session_factory, FakeApiClient(PAYLOAD))
        await service.run_sync(now=NOW)
        await service.run_sync(now=NOW + timedelta(minutes=10))

        async with session_factory() as session:
            result = await session.execute(select(func.count()).select_from(WagerRace))
            assert result.scalar_one() == 1

    async def test_sync_after_missed_month_end_closes_old_race(self, session_factory):
        service = make_sync_service(session_factory, FakeApiClient(PAYLOAD))
        await service.run_sync(now=datetime(2026, 1, 31, 22, 0))

        await service.run_sync(now=datetime(2026, 2, 2, 9, 0))

        async with session_factory() as session:
            result = await session.execute(select(WagerRace.external_id, WagerRace.status).order_by(WagerRace.start_date))
            assert [tuple(row) for row in result.all()] == [("202601", RACE_COMPLETED), ("202602", RACE_LIVE)]

            # Standings from the last January cycle become the final ones
            result = await session.execute(
                select(WagerRaceParticipantSnapshot.uid).order_by(WagerRaceParticipantSnapshot.final_rank)
            )
            assert result.scalars().all() == ["b", "a"]

    async def test_persistence_failure_is_recorded_not_raised(self, session_factory, monkeypatch):
        service = make_sync_service(session_factory, FakeApiClient(PAYLOAD))

        async def broken_race_step(*args, **kwargs):
            raise SQLAlchemyError("database is locked")

        monkeypatch.setattr(service.races, "ensure_current_race", broken_race_step)

        result = await service.run_sync(now=NOW)

        assert result["status"] == "failed"
        assert "database is locked" in result["error"]
        assert service.last_result == result
        assert service.last_run_time is not None
        assert not service.is_running()
        assert (await _log_types(session_factory))[-1] == LOG_ERROR


class TestSingleFlight:
    async def test_overlapping_trigger_is_skipped(self, session_factory):
        gate = asyncio.Event()

        class SlowClient(FakeApiClient):
            async def fetch_referral_data(self, force_fresh=False):
                await gate.wait()
                return await super().fetch_referral_data(force_fresh)

        client = SlowClient(PAYLOAD)
        service = make_sync_service(session_factory, client)

        first = asyncio.create_task(service.run_sync(now=NOW))
        while not service.is_running():
            await asyncio.sleep(0)

        second = await service.run_sync(now=NOW)
        assert second == {"status": "skipped"}

        gate.set()
        result = await first
        assert result["status"] == "success"
        assert client.calls == 1
        assert not service.is_running()


class TestRaceTransition:
    async def test_transition_snapshots_fresh_standings(self, session_factory):
        service = make_sync_service(session_factory, FakeApiClient(PAYLOAD))
        await service.run_sync(now=NOW)

        summary = await service.run_race_transition(now=datetime(2026, 1, 31, 23, 59))

        assert summary["snapshots"] == {"created": 2, "skipped": 0, "errors": 0}
        assert summary["overdueCompletedIds"] == []

    async def test_transition_falls_back_to_last_standings(self, session_factory):
        client = FakeApiClient(PAYLOAD)
        service = make_sync_service(session_factory, client)
        await service.run_sync(now=NOW)

        client.error = UpstreamUnavailableError("down")
        summary = await service.run_race_transition(now=datetime(2026, 1, 31, 23, 59))

        assert summary["snapshots"]["created"] == 2
        async with session_factory() as session:
            result = await session.execute(select(WagerRace.status).where(WagerRace.id == summary["completedRaceId"]))
            assert result.scalar_one() == RACE_COMPLETED

    async def test_transition_waits_for_running_sync(self, session_factory):
        gate = asyncio.Event()

        class SlowClient(FakeApiClient):
            async def fetch_referral_data(self, force_fresh=False):
                await gate.wait()
                return await super().fetch_referral_data(force_fresh)

        service = make_sync_service(session_factory, SlowClient(PAYLOAD))

        sync = asyncio.create_task(service.run_sync(now=NOW))
        while not service.is_running():
            await asyncio.sleep(0)

        transition = asyncio.create_task(service.run_race_transition(now=datetime(2026, 1, 31, 23, 59)))
        await asyncio.sleep(0)

        # A second transition request while one is waiting does nothing
        assert await service.run_race_transition() == {"status": "skipped"}

        gate.set()
        assert (await sync)["status"] == "success"
        summary = await transition
        assert summary["snapshots"]["created"] == 2
