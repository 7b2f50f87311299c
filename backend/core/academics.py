"""
academics.py — Test attempts adapter.

Two measures over the same attempt records:
- participation: 1 per completed attempt over 1 per assigned attempt
- score: earned points over total points, completed attempts only
"""

import logging
from typing import Any, Dict, List, Optional

import pandas as pd

from core.contracts import FactRow, GroupKey, GroupKind
from core.parser import check_option, normalize_columns, parse_amount, parse_timestamp, text

logger = logging.getLogger(__name__)

FIELDS = [
    "subject_id", "subject_name", "class_id", "class_name", "student_id", "student_name",
    "status", "earned_points", "total_points", "date",
]
REQUIRED = ["status", "date"]
GROUP_BY = {
    "subject": GroupKind.SUBJECT,
    "class": GroupKind.CLASS,
    "student": GroupKind.STUDENT,
}
DEFAULT_GROUP_BY = "subject"
MEASURES = ("participation", "score")
COMPLETED_STATUSES = {"completed", "submitted", "graded"}


def _group(record: Dict[str, Any], group_by: str):
    id_field, name_field = f"{group_by}_id", f"{group_by}_name"
    gid = text(record.get(id_field))
    return gid, text(record.get(name_field), fallback=gid)


def is_completed(record: Dict[str, Any]) -> bool:
    return text(record.get("status")).lower() in COMPLETED_STATUSES


def to_fact_row(
    record: Dict[str, Any], group_by: str = DEFAULT_GROUP_BY, measure: str = "participation"
) -> Optional[FactRow]:
    check_option(group_by, GROUP_BY, "group_by for academics")
    check_option(measure, MEASURES, "measure")

    ts = parse_timestamp(record.get("date"))
    group_id, label = _group(record, group_by)
    if ts is None or not group_id:
        return None

    completed = is_completed(record)
    if measure == "participation":
        numerator, denominator = (1 if completed else 0), 1
    else:
        total = parse_amount(record.get("total_points"))
        if not completed or not total or total <= 0:
            return None
        earned = parse_amount(record.get("earned_points")) or 0.0
        numerator, denominator = min(max(earned, 0.0), total), total

    return FactRow(
        group_key=GroupKey.of(GROUP_BY[group_by], group_id),
        group_label=label,
        numerator=numerator,
        denominator=denominator,
        timestamp=ts,
    )


def facts_from_frame(
    df: pd.DataFrame, group_by: str = DEFAULT_GROUP_BY, measure: str = "participation"
) -> List[FactRow]:
    check_option(group_by, GROUP_BY, "group_by for academics")
    check_option(measure, MEASURES, "measure")
    required = REQUIRED + [f"{group_by}_id"]
    if measure == "score":
        required += ["earned_points", "total_points"]
    norm = normalize_columns(df, FIELDS, required)
    facts = []
    for record in norm.to_dict(orient="records"):
        fact = to_fact_row(record, group_by, measure)
        if fact is not None:
            facts.append(fact)
    skipped = len(norm) - len(facts)
    if skipped:
        logger.info("Skipped %d test attempt records for %s measure", skipped, measure)
    return facts


def attempt_counts(df: pd.DataFrame, start=None, end=None) -> Dict[str, int]:
    """Attempt counts, restricted to attempts dated within [start, end] when given."""
    norm = normalize_columns(df, FIELDS, ["status"])
    records = []
    for record in norm.to_dict(orient="records"):
        ts = parse_timestamp(record.get("date"))
        if (start or end) and ts is None:
            continue
        if start and ts.date() < start:
            continue
        if end and ts.date() > end:
            continue
        records.append(record)
    completed = sum(1 for r in records if is_completed(r))
    return {
        "total_attempts": len(records),
        "completed_attempts": completed,
        "pending_attempts": len(records) - completed,
    }
