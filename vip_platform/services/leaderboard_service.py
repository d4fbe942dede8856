"""
Leaderboard pipeline: fetch -> normalize -> adjust -> rank.

Every consumer (HTTP routes, sync, races, profile sync) reads the ranked
output of this pipeline, never raw upstream responses.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from vip_platform.core.config import settings
from vip_platform.core.constants import (
    LEADERBOARD_VIEWS,
    STATUS_SUCCESS,
    WAGER_PERIODS,
    PERIOD_ALL_TIME,
)
from vip_platform.schemas.leaderboard import (
    LeaderboardMetadata,
    LeaderboardPeriod,
    LeaderboardResponse,
    RankedRecord,
    WagerRecord,
)
from vip_platform.services.data_extractor import extract_wager_records
from vip_platform.services.goated_api_client import GoatedApiClient, UpstreamUnavailableError, goated_client
from vip_platform.services.ranking import build_rankings
from vip_platform.services.wager_adjustments import (
    RankAdjustmentPolicy,
    adjust_records,
    load_rank_adjustment_policies,
)

logger = logging.getLogger(__name__)


def empty_leaderboard(status: str = STATUS_SUCCESS) -> LeaderboardResponse:
    return LeaderboardResponse(
        status=status,
        metadata=LeaderboardMetadata(totalUsers=0, lastUpdated=None),
        data={view: LeaderboardPeriod(data=[]) for view in LEADERBOARD_VIEWS},
    )


def leaderboard_records(leaderboard: LeaderboardResponse) -> List[WagerRecord]:
    """Adjusted records underlying a leaderboard, in all-time order."""
    return [
        WagerRecord(uid=entry.uid, name=entry.name, wagered=entry.wagered)
        for entry in leaderboard.data["all_time"].data
    ]


class LeaderboardService:
    """Builds ranked leaderboards and keeps the most recent one in memory."""

    def __init__(
        self,
        client: Optional[GoatedApiClient] = None,
        policies: Optional[List[RankAdjustmentPolicy]] = None,
    ):
        self.client = client or goated_client
        if policies is None:
            policies = load_rank_adjustment_policies(settings.RANK_ADJUSTMENTS)
        self.policies = policies
        self.latest: Optional[LeaderboardResponse] = None
        self.last_adjustments: Dict = {}

    async def build_leaderboard(
        self,
        session: AsyncSession,
        force_fresh: bool = False,
        now: Optional[datetime] = None,
    ) -> LeaderboardResponse:
        """
        Run the full pipeline once.

        Raises UpstreamUnavailableError when the upstream is down and no
        response was ever cached. An unusable payload yields an empty leaderboard.
        """
        now = now or datetime.utcnow()
        raw = await self.client.fetch_referral_data(force_fresh=force_fresh)
        records = extract_wager_records(raw)
        records, self.last_adjustments = await adjust_records(session, records, self.policies, now=now)

        rankings = build_rankings(records)
        leaderboard = LeaderboardResponse(
            status=STATUS_SUCCESS,
            metadata=LeaderboardMetadata(totalUsers=len(records), lastUpdated=now.isoformat()),
            data={view: LeaderboardPeriod(data=ranked) for view, ranked in rankings.items()},
        )
        self.latest = leaderboard
        return leaderboard

    async def get_leaderboard(self, session: AsyncSession) -> Optional[LeaderboardResponse]:
        """Leaderboard for read paths; None when the upstream is down with nothing cached."""
        try:
            return await self.build_leaderboard(session)
        except UpstreamUnavailableError as e:
            logger.warning(f"⚠️ Leaderboard unavailable, serving empty payload: {e}")
            return None


def aggregate_stats(leaderboard: LeaderboardResponse) -> Dict:
    records = leaderboard.data["all_time"].data
    totals = {period: sum(getattr(entry.wagered, period) for entry in records) for period in WAGER_PERIODS}
    count = len(records)
    return {
        "totalWagered": totals,
        "userCount": count,
        "averageWager": totals[PERIOD_ALL_TIME] / count if count else 0.0,
        "topWager": max((entry.wagered.all_time for entry in records), default=0.0),
    }


def top_performers(leaderboard: LeaderboardResponse, limit: int = 10) -> Dict[str, List[RankedRecord]]:
    return {view: period.data[:limit] for view, period in leaderboard.data.items()}


def user_rankings(leaderboard: LeaderboardResponse, uid: str) -> Optional[Dict]:
    """Rank and wager of one uid in every view, or None if the uid is not ranked."""
    rankings = {}
    name = None
    for view, period in LEADERBOARD_VIEWS.items():
        entry = next((item for item in leaderboard.data[view].data if item.uid == uid), None)
        if entry is None:
            return None
        name = entry.name
        rankings[view] = {"rank": entry.rank, "wagered": getattr(entry.wagered, period)}
    return {"uid": uid, "name": name, "rankings": rankings}


# Global service instance
leaderboard_service = LeaderboardService()
