"""Competition ranking of wager records per period."""

from typing import Dict, List

from vip_platform.core.constants import WAGER_PERIODS, LEADERBOARD_VIEWS
from vip_platform.schemas.leaderboard import WagerRecord, RankedRecord


def wager_for(record: WagerRecord, period: str) -> float:
    if period not in WAGER_PERIODS:
        raise ValueError(f"Unknown wager period: {period}")
    return getattr(record.wagered, period)


def sort_by_wagered(records: List[WagerRecord], period: str) -> List[WagerRecord]:
    """Stable sort, highest wager first."""
    return sorted(records, key=lambda record: wager_for(record, period), reverse=True)


def rank_records(records: List[WagerRecord], period: str) -> List[RankedRecord]:
    """
    Rank records by one period's wager.

    Equal wagers share a rank and the next distinct wager takes its 1-based
    position, so [100, 100, 80] ranks as [1, 1, 3].
    """
    ranked: List[RankedRecord] = []
    previous_value = None
    current_rank = 0
    for index, record in enumerate(sort_by_wagered(records, period)):
        value = wager_for(record, period)
        if index == 0 or value != previous_value:
            current_rank = index + 1
        previous_value = value
        ranked.append(RankedRecord(uid=record.uid, name=record.name, wagered=record.wagered, rank=current_rank))
    return ranked


def build_rankings(records: List[WagerRecord]) -> Dict[str, List[RankedRecord]]:
    """Rank independently for every leaderboard view (today/weekly/monthly/all_time)."""
    return {view: rank_records(records, period) for view, period in LEADERBOARD_VIEWS.items()}
