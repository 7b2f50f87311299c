"""
aggregator.py — Folds fact rows into per-group summaries.

Computes:
- Per-group numerator/denominator sums, percentage and last-updated inside a window
- Overall time series bucketed by day, week or month
- Series trend (numpy polyfit slope)
- Roll-up summary across groups (weighted overall rate, mean, median)
"""

import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

import numpy as np
import pandas as pd

from core.contracts import AggregateRow, FactRow, GroupKey, percentage_of
from core.periods import end_of_day, start_of_day

logger = logging.getLogger(__name__)

GRANULARITIES = ("day", "week", "month")
SERIES_SLOPE_BAND = 0.5


# ── Helpers ─────────────────────────────────────────────────────────

def _python_number(val):
    """Coerce numpy scalars back to int/float."""
    return val.item() if hasattr(val, "item") else val


def _lower_bound(value) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    return start_of_day(value)


def _upper_bound(value) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    return end_of_day(value)


def _align(ts, reference: Optional[datetime]) -> datetime:
    """
    Put a fact timestamp on the same footing as the window bounds.

    Dates become midnight. Against naive bounds an aware timestamp keeps its
    wall-clock time; against aware bounds a naive timestamp is read in the
    bounds' zone and an aware one is converted into it.
    """
    if not isinstance(ts, datetime):
        ts = datetime.combine(ts, datetime.min.time())
    tz = reference.tzinfo if reference is not None else None
    if tz is None:
        return ts.replace(tzinfo=None)
    if ts.tzinfo is None:
        return ts.replace(tzinfo=tz)
    return ts.astimezone(tz)


def _in_window(
    rows: Iterable[FactRow], window_start, window_end
) -> List[Tuple[FactRow, datetime]]:
    lower = _lower_bound(window_start)
    upper = _upper_bound(window_end)
    reference = lower or upper
    if lower is not None and upper is not None and (lower.tzinfo is None) != (upper.tzinfo is None):
        raise ValueError("Window bounds must both be naive or both be timezone-aware.")

    kept = []
    for row in rows:
        ts = _align(row.timestamp, reference)
        if lower is not None and ts < lower:
            continue
        if upper is not None and ts > upper:
            continue
        kept.append((row, ts))
    return kept


# ── Aggregation ─────────────────────────────────────────────────────

def aggregate(
    rows: Iterable[FactRow], window_start, window_end
) -> List[AggregateRow]:
    """
    One AggregateRow per group with at least one fact inside
    [window_start, window_end] (inclusive; dates widen to whole days,
    None leaves that side open). Output is ordered by group key.
    """
    kept = _in_window(rows, window_start, window_end)
    if not kept:
        return []

    keys = sorted({row.group_key for row, _ in kept}, key=GroupKey.sort_key)
    codes = {key: i for i, key in enumerate(keys)}
    labels: Dict[GroupKey, str] = {}
    for row, _ in kept:
        labels.setdefault(row.group_key, row.group_label)

    frame = pd.DataFrame({
        "code": [codes[row.group_key] for row, _ in kept],
        "numerator": [row.numerator for row, _ in kept],
        "denominator": [row.denominator for row, _ in kept],
        "timestamp": [ts for _, ts in kept],
    })
    grouped = frame.groupby("code", sort=True).agg(
        numerator=("numerator", "sum"),
        denominator=("denominator", "sum"),
        last_updated=("timestamp", "max"),
        row_count=("numerator", "size"),
    )

    result = []
    for rec in grouped.itertuples():
        key = keys[int(rec.Index)]
        last = rec.last_updated
        result.append(AggregateRow.build(
            group_key=key,
            group_label=labels[key],
            numerator=_python_number(rec.numerator),
            denominator=_python_number(rec.denominator),
            last_updated=last.to_pydatetime() if isinstance(last, pd.Timestamp) else last,
            row_count=int(rec.row_count),
        ))

    logger.debug("Aggregated %d facts into %d groups", len(kept), len(result))
    return result


# ── Time series ─────────────────────────────────────────────────────

def bucket_start(day: date, granularity: str) -> date:
    if granularity == "day":
        return day
    if granularity == "week":
        return day - timedelta(days=day.weekday())
    if granularity == "month":
        return day.replace(day=1)
    raise ValueError(f"Invalid granularity {granularity!r}. Expected one of: {', '.join(GRANULARITIES)}.")


def bucket_label(start: date, granularity: str) -> str:
    if granularity == "week":
        return f"Week of {start.isoformat()}"
    if granularity == "month":
        return start.strftime("%Y-%m")
    return start.isoformat()


def aggregate_series(
    rows: Iterable[FactRow], window_start, window_end, granularity: str = "day"
) -> List[Dict[str, Any]]:
    """Overall rate per time bucket, across all groups, oldest first."""
    if granularity not in GRANULARITIES:
        raise ValueError(f"Invalid granularity {granularity!r}. Expected one of: {', '.join(GRANULARITIES)}.")

    kept = _in_window(rows, window_start, window_end)
    if not kept:
        return []

    frame = pd.DataFrame({
        "bucket": [bucket_start(ts.date(), granularity) for _, ts in kept],
        "numerator": [row.numerator for row, _ in kept],
        "denominator": [row.denominator for row, _ in kept],
    })
    grouped = frame.groupby("bucket", sort=True).agg(
        numerator=("numerator", "sum"),
        denominator=("denominator", "sum"),
        row_count=("numerator", "size"),
    )

    points = []
    for rec in grouped.itertuples():
        numerator = _python_number(rec.numerator)
        denominator = _python_number(rec.denominator)
        points.append({
            "bucket_start": rec.Index,
            "label": bucket_label(rec.Index, granularity),
            "numerator": numerator,
            "denominator": denominator,
            "percentage": percentage_of(numerator, denominator),
            "row_count": int(rec.row_count),
        })
    return points


def series_trend(points: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Direction of a series from the slope of a straight-line fit."""
    values = [p["percentage"] for p in points]
    if len(values) < 2:
        return {"trend": "insufficient_data", "slope": None}

    x = np.arange(len(values))
    slope = float(np.polyfit(x, values, 1)[0])
    trend = (
        "improving" if slope > SERIES_SLOPE_BAND else
        "declining" if slope < -SERIES_SLOPE_BAND else
        "stable"
    )
    return {"trend": trend, "slope": slope}


# ── Summary ─────────────────────────────────────────────────────────

def summarize(aggregates: List[AggregateRow]) -> Dict[str, Any]:
    """Roll-up across groups; percentages are left unrounded."""
    if not aggregates:
        return {
            "groups": 0,
            "numerator": 0,
            "denominator": 0,
            "overall_percentage": 0.0,
            "mean_percentage": None,
            "median_percentage": None,
            "complete_groups": 0,
            "zero_groups": 0,
        }

    pct = np.array([a.percentage for a in aggregates], dtype=float)
    numerator = sum(a.numerator for a in aggregates)
    denominator = sum(a.denominator for a in aggregates)
    return {
        "groups": len(aggregates),
        "numerator": numerator,
        "denominator": denominator,
        "overall_percentage": percentage_of(numerator, denominator),
        "mean_percentage": float(np.mean(pct)),
        "median_percentage": float(np.median(pct)),
        "complete_groups": int((pct >= 100).sum()),
        "zero_groups": int((pct == 0).sum()),
    }
