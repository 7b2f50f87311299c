"""
engine.py — Current-vs-previous comparison run shared by every analytics domain.

resolve window → aggregate current → aggregate previous → rank with trend,
then serialize to JSON-safe structures for the API.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

import numpy as np

from core.aggregator import aggregate, summarize
from core.contracts import AggregateRow, FactRow, RankedRow, SortOrder
from core.filters import filter_by_direction, paginate, search_rows
from core.periods import PeriodWindow, resolve_period
from core.ranking import STABLE_BAND, rank_with_trend, trend_counts

logger = logging.getLogger(__name__)


@dataclass
class PeriodComparison:
    window: PeriodWindow
    current: List[AggregateRow]
    previous: List[AggregateRow]
    ranked: List[RankedRow]

    def summary(self) -> Dict[str, Any]:
        current = summarize(self.current)
        previous = summarize(self.previous)
        delta = None
        if self.current and self.previous:
            delta = current["overall_percentage"] - previous["overall_percentage"]
        current["previous_overall_percentage"] = previous["overall_percentage"] if self.previous else None
        current["overall_delta"] = delta
        current["trend_counts"] = trend_counts(self.ranked)
        return current


def compare_periods(
    facts: Iterable[FactRow],
    period: Any,
    reference_date: Any,
    metric=None,
    order=SortOrder.DESC,
    threshold: float = STABLE_BAND,
    cumulative: bool = False,
) -> PeriodComparison:
    """
    Rank groups for the resolved period against the previous one.

    With ``cumulative`` each window reaches back to the first fact, which suits
    state-type facts (a chapter completion flag stays true once set).
    """
    window = resolve_period(period, reference_date)
    facts = list(facts)

    start, end = window.bounds()
    prev_start, prev_end = window.previous_bounds()
    if cumulative:
        start = prev_start = None

    current = aggregate(facts, start, end)
    previous = aggregate(facts, prev_start, prev_end)
    ranked = rank_with_trend(current, previous, metric=metric, order=order, threshold=threshold)

    logger.debug(
        "Compared %s window ending %s: %d facts, %d current groups, %d previous groups",
        window.period.value, window.end_date, len(facts), len(current), len(previous),
    )
    return PeriodComparison(window=window, current=current, previous=previous, ranked=ranked)


# ── Serialization ───────────────────────────────────────────────────

def sanitize(obj):
    """Recursively coerce numpy scalars, dates and enums to JSON-safe Python types."""
    if isinstance(obj, dict):
        return {k: sanitize(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [sanitize(v) for v in obj]
    if isinstance(obj, (np.bool_,)):
        return bool(obj)
    if isinstance(obj, (np.integer,)):
        return int(obj)
    if isinstance(obj, (np.floating, float)):
        v = float(obj)
        return None if (np.isnan(v) or np.isinf(v)) else v
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    return obj


def aggregate_to_dict(row: AggregateRow) -> Dict[str, Any]:
    return sanitize({
        "key": row.group_key.as_dict(),
        "label": row.group_label,
        "numerator": row.numerator,
        "denominator": row.denominator,
        "percentage": row.percentage,
        "last_updated": row.last_updated,
        "row_count": row.row_count,
    })


def ranked_to_dict(row: RankedRow) -> Dict[str, Any]:
    data = aggregate_to_dict(row)
    data.update(sanitize({
        "rank": row.rank,
        "previous_percentage": row.previous_percentage,
        "trend_delta": row.trend_delta,
        "trend_direction": row.trend_direction,
    }))
    return data


def comparison_to_dict(
    comparison: PeriodComparison,
    search: Optional[str] = None,
    directions: Optional[List[str]] = None,
    limit: Optional[int] = None,
    offset: int = 0,
) -> Dict[str, Any]:
    rows = search_rows(comparison.ranked, search)
    rows = filter_by_direction(rows, directions)
    page = paginate(rows, limit=limit, offset=offset)
    return sanitize({
        "period": comparison.window.period,
        "window": comparison.window.as_dict(),
        "summary": comparison.summary(),
        "rows": [ranked_to_dict(r) for r in page["data"]],
        "total": page["total"],
        "has_more": page["has_more"],
        "next_offset": page["next_offset"],
    })
