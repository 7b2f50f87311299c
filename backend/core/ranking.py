"""
ranking.py — Period-over-period trend classification and ranking.

A group's trend is the signed change in percentage points between the
current and previous window. Changes within ±STABLE_BAND points count as
stable noise. Groups are then ordered by a metric with a label tie-break so
ranks are reproducible for identical inputs.
"""

import logging
from dataclasses import replace
from fractions import Fraction
from typing import Any, Callable, Dict, List, Optional, Union

from core.contracts import AggregateRow, GroupKey, RankedRow, SortOrder, TrendDirection

logger = logging.getLogger(__name__)

STABLE_BAND = 2.0

MetricSelector = Callable[[RankedRow], Optional[float]]

METRICS: Dict[str, MetricSelector] = {
    "percentage": lambda row: row.percentage,
    "numerator": lambda row: row.numerator,
    "denominator": lambda row: row.denominator,
    "row_count": lambda row: row.row_count,
    "trend_delta": lambda row: row.trend_delta,
    "previous_percentage": lambda row: row.previous_percentage,
}


def resolve_metric(metric: Union[str, MetricSelector, None]) -> MetricSelector:
    if metric is None:
        return METRICS["percentage"]
    if callable(metric):
        return metric
    if metric in METRICS:
        return METRICS[metric]
    raise ValueError(f"Invalid metric {metric!r}. Expected one of: {', '.join(METRICS)}.")


def resolve_order(order: Union[str, SortOrder]) -> SortOrder:
    try:
        return SortOrder(order)
    except ValueError:
        raise ValueError(f"Invalid sort order {order!r}. Expected 'asc' or 'desc'.") from None


# ── Trend ───────────────────────────────────────────────────────────

def classify_trend(delta: Optional[float], threshold: float = STABLE_BAND) -> TrendDirection:
    if delta is None:
        return TrendDirection.UNKNOWN
    if delta > threshold:
        return TrendDirection.IMPROVING
    if delta < -threshold:
        return TrendDirection.DECLINING
    return TrendDirection.STABLE


def _exact_percentage(row: AggregateRow) -> Fraction:
    if not row.denominator or row.denominator <= 0:
        return Fraction(0)
    return Fraction(row.numerator) * 100 / Fraction(row.denominator)


def _with_trend(
    row: AggregateRow, previous: Optional[AggregateRow], threshold: float
) -> RankedRow:
    prev_pct = previous.percentage if previous is not None else None
    # Delta from the exact ratios so a 2-point change never drifts past the band.
    exact = _exact_percentage(row) - _exact_percentage(previous) if previous is not None else None
    delta = float(exact) if exact is not None else None
    return RankedRow(
        group_key=row.group_key,
        group_label=row.group_label,
        numerator=row.numerator,
        denominator=row.denominator,
        percentage=row.percentage,
        last_updated=row.last_updated,
        row_count=row.row_count,
        previous_percentage=prev_pct,
        trend_delta=delta,
        trend_direction=classify_trend(exact, threshold),
        rank=0,
    )


# ── Ranking ─────────────────────────────────────────────────────────

def _tie_break(row: RankedRow):
    label = row.group_label or ""
    return (label.casefold(), label, row.group_key.sort_key())


def rank_with_trend(
    current: List[AggregateRow],
    previous: List[AggregateRow],
    metric: Union[str, MetricSelector, None] = None,
    order: Union[str, SortOrder] = SortOrder.DESC,
    threshold: float = STABLE_BAND,
) -> List[RankedRow]:
    """
    Merge current and previous aggregates into ranked, trend-annotated rows.

    Only groups in ``current`` are returned. Rows are sorted by ``metric``
    (default: percentage) in ``order``; equal metrics fall back to the label,
    case-insensitively and ascending, in both directions. Rows whose metric is
    None go last. Ranks are 1-based positions.
    """
    selector = resolve_metric(metric)
    direction = resolve_order(order)

    previous_by_key: Dict[GroupKey, AggregateRow] = {}
    for row in previous:
        previous_by_key.setdefault(row.group_key, row)

    candidates = [_with_trend(row, previous_by_key.get(row.group_key), threshold) for row in current]

    # Label order first, then a stable sort on the metric keeps it within ties.
    candidates.sort(key=_tie_break)
    scored = [row for row in candidates if selector(row) is not None]
    unscored = [row for row in candidates if selector(row) is None]
    scored.sort(key=selector, reverse=direction is SortOrder.DESC)

    ranked = [replace(row, rank=i + 1) for i, row in enumerate(scored + unscored)]
    logger.debug(
        "Ranked %d groups (%d with previous data) %s",
        len(ranked), sum(1 for r in ranked if r.previous_percentage is not None), direction.value,
    )
    return ranked


def trend_counts(rows: List[RankedRow]) -> Dict[str, Any]:
    counts = {d.value: 0 for d in TrendDirection}
    for row in rows:
        counts[row.trend_direction.value] += 1
    return counts
