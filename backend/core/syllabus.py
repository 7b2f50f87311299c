"""
syllabus.py — Syllabus progress adapter.

One fact per chapter progress record: numerator 1 when the chapter is
completed, denominator 1 per chapter. Completion is state rather than an
event, so comparisons over these facts run cumulatively (everything updated
up to the window end). Records without a date, usually chapters that have
not been started, still count towards the denominator.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import pandas as pd

from core.contracts import AggregateRow, FactRow, GroupKey, GroupKind
from core.parser import check_option, normalize_columns, parse_flag, parse_timestamp, text

logger = logging.getLogger(__name__)

FIELDS = [
    "class_id", "class_name", "subject_id", "subject_name", "chapter_id",
    "is_completed", "status", "date",
]
REQUIRED: List[str] = []
GROUP_BY = {
    "class_subject": GroupKind.CLASS_SUBJECT,
    "class": GroupKind.CLASS,
    "subject": GroupKind.SUBJECT,
}
DEFAULT_GROUP_BY = "class_subject"
CUMULATIVE = True
# Undated progress records (typically chapters not yet started) count from here.
UNDATED = datetime(1970, 1, 1)


def _group(record: Dict[str, Any], group_by: str):
    cid = text(record.get("class_id"))
    sid = text(record.get("subject_id"))
    class_label = text(record.get("class_name"), fallback=cid)
    subject_label = text(record.get("subject_name"), fallback=sid)
    if group_by == "class":
        return (cid,) if cid else (), class_label
    if group_by == "subject":
        return (sid,) if sid else (), subject_label
    if not cid or not sid:
        return (), ""
    return (cid, sid), f"{class_label} - {subject_label}"


def _completed(record: Dict[str, Any]) -> bool:
    if not text(record.get("is_completed")) and text(record.get("status")):
        return text(record.get("status")).lower() == "completed"
    return parse_flag(record.get("is_completed"))


def to_fact_row(record: Dict[str, Any], group_by: str = DEFAULT_GROUP_BY) -> Optional[FactRow]:
    check_option(group_by, GROUP_BY, "group_by for syllabus")
    ids, label = _group(record, group_by)
    if not ids:
        return None
    ts = parse_timestamp(record.get("date")) or UNDATED
    return FactRow(
        group_key=GroupKey(kind=GROUP_BY[group_by], ids=ids),
        group_label=label,
        numerator=1 if _completed(record) else 0,
        denominator=1,
        timestamp=ts,
    )


def facts_from_frame(df: pd.DataFrame, group_by: str = DEFAULT_GROUP_BY) -> List[FactRow]:
    check_option(group_by, GROUP_BY, "group_by for syllabus")
    required = REQUIRED + {
        "class_subject": ["class_id", "subject_id"],
        "class": ["class_id"],
        "subject": ["subject_id"],
    }[group_by]
    norm = normalize_columns(df, FIELDS, required)
    facts = []
    for record in norm.to_dict(orient="records"):
        fact = to_fact_row(record, group_by)
        if fact is not None:
            facts.append(fact)
    skipped = len(norm) - len(facts)
    if skipped:
        logger.info("Skipped %d syllabus records without a %s id", skipped, group_by)
    return facts


def completion_summary(current: List[AggregateRow]) -> Dict[str, Any]:
    fully = [row for row in current if row.denominator > 0 and row.numerator >= row.denominator]
    return {
        "tracked_groups": len(current),
        "completed_groups": len(fully),
        "completed_topics": sum(row.numerator for row in current),
        "total_topics": sum(row.denominator for row in current),
    }
