"""
Mirror ranked external users into local user profiles.

Users are matched by external uid. Existing users get their cached wager
and rank fields refreshed when something changed; unknown uids get a new
externally-linked profile with a random placeholder credential.
"""

import asyncio
import logging
import secrets
import time
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import insert, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from vip_platform.core.constants import LEADERBOARD_VIEWS, WAGER_QUANTUM
from vip_platform.db.models import User
from vip_platform.schemas.leaderboard import LeaderboardResponse
from vip_platform.services.auth_service import get_password_hash

logger = logging.getLogger(__name__)

# Cached wager column per wager period
USER_WAGER_COLUMNS = {
    "today": "wager_today",
    "this_week": "wager_week",
    "this_month": "wager_month",
    "all_time": "wager_all_time",
}

# Rank column per leaderboard view
USER_RANK_COLUMNS = {
    "today": "rank_daily",
    "weekly": "rank_weekly",
    "monthly": "rank_monthly",
    "all_time": "rank_all_time",
}

PLACEHOLDER_EMAIL_DOMAIN = "affiliate.placeholder"


def _amount(value: Any) -> Decimal:
    return Decimal(str(value or 0)).quantize(Decimal(WAGER_QUANTUM))


def _rank_maps(leaderboard: LeaderboardResponse) -> Dict[str, Dict[str, int]]:
    return {
        view: {entry.uid: entry.rank for entry in leaderboard.data[view].data}
        for view in LEADERBOARD_VIEWS
    }


def _username_for(name: str, uid: str, taken: set) -> str:
    username = name or f"user_{uid}"
    if username.lower() in taken:
        username = f"{username}_{uid}"
    return username


async def sync_user_profiles(
    session: AsyncSession,
    leaderboard: LeaderboardResponse,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Reconcile local users with the ranked all-time list.

    Each user commits on its own; a failing record is rolled back, counted
    and skipped. Returns {created, updated, existing, errors, totalProcessed, duration_ms}.
    """
    now = now or datetime.utcnow()
    started = time.monotonic()
    stats = {"created": 0, "updated": 0, "existing": 0, "errors": 0, "totalProcessed": 0}

    ranks = _rank_maps(leaderboard)
    result = await session.execute(
        select(
            User.id,
            User.goated_id,
            User.goated_username,
            *[getattr(User, column) for column in USER_WAGER_COLUMNS.values()],
            *[getattr(User, column) for column in USER_RANK_COLUMNS.values()],
        ).where(User.goated_id.isnot(None))
    )
    existing = {row.goated_id: row for row in result.all()}

    names_result = await session.execute(select(User.username))
    taken_usernames = {username.lower() for username in names_result.scalars().all()}

    for entry in leaderboard.data["all_time"].data:
        stats["totalProcessed"] += 1
        values = {
            column: _amount(getattr(entry.wagered, period))
            for period, column in USER_WAGER_COLUMNS.items()
        }
        values.update({
            column: ranks[view].get(entry.uid)
            for view, column in USER_RANK_COLUMNS.items()
        })

        try:
            row = existing.get(entry.uid)
            if row is None:
                username = _username_for(entry.name, entry.uid, taken_usernames)
                # bcrypt is CPU bound; keep it off the event loop
                password_hash = await asyncio.to_thread(get_password_hash, secrets.token_urlsafe(32))
                await session.execute(
                    insert(User).values(
                        username=username,
                        email=f"{entry.uid}@{PLACEHOLDER_EMAIL_DOMAIN}",
                        password_hash=password_hash,
                        goated_id=entry.uid,
                        goated_username=entry.name,
                        goated_account_linked=True,
                        created_at=now,
                        last_active=now,
                        **values,
                    )
                )
                await session.commit()
                taken_usernames.add(username.lower())
                stats["created"] += 1
                continue

            stored = {column: getattr(row, column) for column in values}
            stored.update({column: _amount(stored[column]) for column in USER_WAGER_COLUMNS.values()})
            if row.goated_username == entry.name and stored == values:
                stats["existing"] += 1
                continue

            await session.execute(
                update(User)
                .where(User.id == row.id)
                .values(goated_username=entry.name, last_active=now, **values)
            )
            await session.commit()
            stats["updated"] += 1
        except Exception as e:
            await session.rollback()
            stats["errors"] += 1
            logger.error(f"❌ Failed to sync profile for uid {entry.uid}: {e}")

    stats["duration_ms"] = round((time.monotonic() - started) * 1000, 2)
    logger.info(
        f"✅ Profile sync complete: {stats['created']} created, {stats['updated']} updated, "
        f"{stats['existing']} unchanged, {stats['errors']} errors"
    )
    return stats
