"""
Shared fixtures: an isolated in-memory database per test and a fake upstream client.
"""

import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["RANK_ADJUSTMENTS"] = "[]"

from datetime import datetime

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from vip_platform.db.base import Base
from vip_platform.db import models  # noqa: F401
from vip_platform.services.auth_service import create_access_token


NOW = datetime(2026, 1, 15, 12, 0, 0)


class FakeApiClient:
    """Stands in for GoatedApiClient; returns a fixed payload or raises."""

    def __init__(self, payload=None, error=None):
        self.payload = payload
        self.error = error
        self.calls = 0

    async def fetch_referral_data(self, force_fresh: bool = False):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.payload


def make_entry(uid, name, today=0, this_week=0, this_month=0, all_time=0):
    return {
        "uid": uid,
        "name": name,
        "wagered": {
            "today": today,
            "this_week": this_week,
            "this_month": this_month,
            "all_time": all_time,
        },
    }


@pytest.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    yield factory
    await engine.dispose()


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def admin_headers():
    token = create_access_token({"sub": "admin@example.com", "is_admin": True})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def user_headers():
    token = create_access_token({"sub": "user@example.com", "is_admin": False})
    return {"Authorization": f"Bearer {token}"}
