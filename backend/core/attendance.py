"""
attendance.py — Attendance adapter.

One fact per attendance mark: numerator 1 when the student was present,
denominator 1 for every mark. The percentage is the attendance rate of the
class (or student) over the window.
"""

import logging
from typing import Any, Dict, List, Optional

import pandas as pd

from core.aggregator import aggregate_series, series_trend
from core.contracts import FactRow, GroupKey, GroupKind
from core.engine import PeriodComparison
from core.parser import check_option, normalize_columns, parse_timestamp, text

logger = logging.getLogger(__name__)

FIELDS = ["student_id", "student_name", "class_id", "class_name", "status", "date"]
REQUIRED = ["status", "date"]
GROUP_BY = {
    "class": GroupKind.CLASS,
    "student": GroupKind.STUDENT,
}
DEFAULT_GROUP_BY = "class"
PRESENT_STATUSES = {"present", "p"}


def _group(record: Dict[str, Any], group_by: str):
    if group_by == "student":
        sid = text(record.get("student_id"))
        return sid, text(record.get("student_name"), fallback=sid)
    cid = text(record.get("class_id"))
    return cid, text(record.get("class_name"), fallback=cid)


def to_fact_row(record: Dict[str, Any], group_by: str = DEFAULT_GROUP_BY) -> Optional[FactRow]:
    """Map one attendance mark; None when it has no usable date or group id."""
    check_option(group_by, GROUP_BY, "group_by for attendance")
    ts = parse_timestamp(record.get("date"))
    group_id, label = _group(record, group_by)
    if ts is None or not group_id:
        return None
    present = text(record.get("status")).lower() in PRESENT_STATUSES
    return FactRow(
        group_key=GroupKey.of(GROUP_BY[group_by], group_id),
        group_label=label,
        numerator=1 if present else 0,
        denominator=1,
        timestamp=ts,
    )


def facts_from_frame(df: pd.DataFrame, group_by: str = DEFAULT_GROUP_BY) -> List[FactRow]:
    check_option(group_by, GROUP_BY, "group_by for attendance")
    required = REQUIRED + (["student_id"] if group_by == "student" else ["class_id"])
    norm = normalize_columns(df, FIELDS, required)
    facts = []
    for record in norm.to_dict(orient="records"):
        fact = to_fact_row(record, group_by)
        if fact is not None:
            facts.append(fact)
    skipped = len(norm) - len(facts)
    if skipped:
        logger.info("Skipped %d attendance records without a date or %s id", skipped, group_by)
    return facts


def daily_trend(facts: List[FactRow], comparison: PeriodComparison) -> Dict[str, Any]:
    """Attendance rate per day across the current window."""
    start, end = comparison.window.bounds()
    points = aggregate_series(facts, start, end, granularity="day")
    return {"points": points, **series_trend(points)}
