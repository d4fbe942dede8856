"""
Normalizes upstream referral payloads into WagerRecord lists.

The upstream shape is loose: a bare array, {"data": [...]}, {"data": {"data": [...]}},
{"results": [...]}, per-timeframe objects, or raw text that failed to parse as JSON.
Each shape is handled by one strategy; strategies are tried in priority order
and the first one that applies wins.
"""

import json
import logging
import math
import re
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from vip_platform.core.constants import UPSTREAM_TIMEFRAMES
from vip_platform.schemas.leaderboard import WagerRecord, Wagered

logger = logging.getLogger(__name__)

_OBJECT_PATTERN = re.compile(r"\{.*\}", re.DOTALL)
_ARRAY_PATTERN = re.compile(r"\[.*\]", re.DOTALL)
_USER_KEYS = ("uid", "name", "wagered")
_MAX_TEXT_DEPTH = 2


class ExtractionStrategy(str, Enum):
    DIRECT_ARRAY = "direct_array"
    DATA_ARRAY = "data_array"
    NESTED_DATA_ARRAY = "nested_data_array"
    RESULTS_ARRAY = "results_array"
    TIMEFRAME_MERGE = "timeframe_merge"
    RAW_TEXT = "raw_text"
    LARGEST_ARRAY = "largest_array"
    USER_LIKE_VALUES = "user_like_values"


def _direct_array(raw: Any, depth: int) -> Optional[List[Any]]:
    return raw if isinstance(raw, list) else None


def _data_array(raw: Any, depth: int) -> Optional[List[Any]]:
    if isinstance(raw, dict) and isinstance(raw.get("data"), list):
        return raw["data"]
    return None


def _nested_data_array(raw: Any, depth: int) -> Optional[List[Any]]:
    if isinstance(raw, dict) and isinstance(raw.get("data"), dict):
        inner = raw["data"].get("data")
        if isinstance(inner, list):
            return inner
    return None


def _results_array(raw: Any, depth: int) -> Optional[List[Any]]:
    if isinstance(raw, dict) and isinstance(raw.get("results"), list):
        return raw["results"]
    return None


def _timeframe_container(raw: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(raw, dict):
        return None
    for candidate in (raw.get("data"), raw):
        if isinstance(candidate, dict) and any(key in candidate for key in UPSTREAM_TIMEFRAMES):
            return candidate
    return None


def _timeframe_merge(raw: Any, depth: int) -> Optional[List[Any]]:
    container = _timeframe_container(raw)
    if container is None:
        return None

    merged: List[Any] = []
    seen = set()
    found_any = False
    for timeframe in UPSTREAM_TIMEFRAMES:
        period = container.get(timeframe)
        entries = period.get("data") if isinstance(period, dict) else period
        if not isinstance(entries, list):
            continue
        found_any = True
        for entry in entries:
            uid = _clean_str(entry.get("uid")) if isinstance(entry, dict) else ""
            if uid and uid in seen:
                continue
            if uid:
                seen.add(uid)
            merged.append(entry)
    return merged if found_any else None


def _raw_text(raw: Any, depth: int) -> Optional[List[Any]]:
    if not (isinstance(raw, dict) and raw.get("parseError") and isinstance(raw.get("rawText"), str)):
        return None
    if depth >= _MAX_TEXT_DEPTH:
        return None

    text = raw["rawText"]
    for pattern in (_OBJECT_PATTERN, _ARRAY_PATTERN):
        match = pattern.search(text)
        if not match:
            continue
        try:
            parsed = json.loads(match.group(0))
        except ValueError:
            continue
        entries, _ = extract_data_array(parsed, _depth=depth + 1)
        if entries:
            return entries
    return []


def _largest_array(raw: Any, depth: int) -> Optional[List[Any]]:
    if not isinstance(raw, dict):
        return None
    arrays = [value for value in raw.values() if isinstance(value, list) and value]
    if not arrays:
        return None
    return max(arrays, key=len)


def _user_like_values(raw: Any, depth: int) -> Optional[List[Any]]:
    if not isinstance(raw, dict):
        return None
    users = [
        value for value in raw.values()
        if isinstance(value, dict) and any(key in value for key in _USER_KEYS)
    ]
    return users or None


STRATEGY_CHAIN: List[Tuple[ExtractionStrategy, Callable[[Any, int], Optional[List[Any]]]]] = [
    (ExtractionStrategy.DIRECT_ARRAY, _direct_array),
    (ExtractionStrategy.DATA_ARRAY, _data_array),
    (ExtractionStrategy.NESTED_DATA_ARRAY, _nested_data_array),
    (ExtractionStrategy.RESULTS_ARRAY, _results_array),
    (ExtractionStrategy.TIMEFRAME_MERGE, _timeframe_merge),
    (ExtractionStrategy.RAW_TEXT, _raw_text),
    (ExtractionStrategy.LARGEST_ARRAY, _largest_array),
    (ExtractionStrategy.USER_LIKE_VALUES, _user_like_values),
]


def extract_data_array(raw: Any, _depth: int = 0) -> Tuple[List[Any], Optional[ExtractionStrategy]]:
    """
    Run the strategy chain over a raw payload.

    Returns the raw entries and the strategy that produced them, or ([], None)
    when nothing applies. Never raises.
    """
    for strategy, func in STRATEGY_CHAIN:
        try:
            entries = func(raw, _depth)
        except Exception as e:
            logger.warning(f"⚠️ Extraction strategy {strategy.value} failed: {e}")
            continue
        if entries is not None:
            return entries, strategy
    return [], None


def _clean_str(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _to_amount(value: Any) -> float:
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(amount) or math.isinf(amount):
        return 0.0
    return amount


def to_wager_record(entry: Any) -> Optional[WagerRecord]:
    """Map one raw entry to a WagerRecord, or None if it has no uid."""
    if not isinstance(entry, dict):
        return None

    uid = _clean_str(entry.get("uid"))
    name = _clean_str(entry.get("name"))
    if not uid:
        return None

    wagered = entry.get("wagered")
    if not isinstance(wagered, dict):
        wagered = {}

    return WagerRecord(
        uid=uid,
        name=name or uid,
        wagered=Wagered(
            today=_to_amount(wagered.get("today")),
            this_week=_to_amount(wagered.get("this_week")),
            this_month=_to_amount(wagered.get("this_month")),
            all_time=_to_amount(wagered.get("all_time")),
        ),
    )


def extract_wager_records(raw: Any) -> List[WagerRecord]:
    """
    Normalize a raw upstream payload into unique WagerRecords.

    Entries without a uid are dropped; duplicate uids keep the first occurrence.
    An empty list means there was no usable data.
    """
    entries, strategy = extract_data_array(raw)
    if strategy is None:
        logger.warning("⚠️ No extraction strategy matched the upstream payload")
        return []

    records: List[WagerRecord] = []
    seen = set()
    dropped = 0
    for entry in entries:
        record = to_wager_record(entry)
        if record is None:
            dropped += 1
            continue
        if record.uid in seen:
            continue
        seen.add(record.uid)
        records.append(record)

    logger.info(f"Extracted {len(records)} records via {strategy.value} ({dropped} dropped)")
    return records
