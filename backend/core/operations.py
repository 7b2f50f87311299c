"""
operations.py — Timetable coverage adapter.

One fact per planned timetable period: numerator 1 when the period was
conducted, denominator 1 per planned period. The percentage is timetable
coverage per teacher (or class).
"""

import logging
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd

from core.contracts import AggregateRow, FactRow, GroupKey, GroupKind
from core.parser import check_option, normalize_columns, parse_flag, parse_timestamp, text

logger = logging.getLogger(__name__)

FIELDS = [
    "teacher_id", "teacher_name", "class_id", "class_name", "conducted", "status", "date",
]
REQUIRED = ["date"]
GROUP_BY = {
    "teacher": GroupKind.TEACHER,
    "class": GroupKind.CLASS,
}
DEFAULT_GROUP_BY = "teacher"
CONDUCTED_STATUSES = {"conducted", "completed", "held", "done"}


def _group(record: Dict[str, Any], group_by: str):
    gid = text(record.get(f"{group_by}_id"))
    return gid, text(record.get(f"{group_by}_name"), fallback=gid)


def _conducted(record: Dict[str, Any]) -> bool:
    if text(record.get("conducted")):
        return parse_flag(record.get("conducted"))
    return text(record.get("status")).lower() in CONDUCTED_STATUSES


def to_fact_row(record: Dict[str, Any], group_by: str = DEFAULT_GROUP_BY) -> Optional[FactRow]:
    check_option(group_by, GROUP_BY, "group_by for operations")
    ts = parse_timestamp(record.get("date"))
    group_id, label = _group(record, group_by)
    if ts is None or not group_id:
        return None
    return FactRow(
        group_key=GroupKey.of(GROUP_BY[group_by], group_id),
        group_label=label,
        numerator=1 if _conducted(record) else 0,
        denominator=1,
        timestamp=ts,
    )


def facts_from_frame(df: pd.DataFrame, group_by: str = DEFAULT_GROUP_BY) -> List[FactRow]:
    check_option(group_by, GROUP_BY, "group_by for operations")
    norm = normalize_columns(df, FIELDS, REQUIRED + [f"{group_by}_id"])
    if norm["conducted"].isna().all() and norm["status"].isna().all():
        raise ValueError("Required column not found: 'conducted' or 'status'.")
    facts = []
    for record in norm.to_dict(orient="records"):
        fact = to_fact_row(record, group_by)
        if fact is not None:
            facts.append(fact)
    skipped = len(norm) - len(facts)
    if skipped:
        logger.info("Skipped %d timetable records without a date or %s id", skipped, group_by)
    return facts


def teacher_load(current: List[AggregateRow]) -> Dict[str, Any]:
    """Planned vs conducted periods per group and how unevenly the planned load is spread."""
    loads = [
        {
            "id": row.group_key.id,
            "name": row.group_label,
            "planned_periods": row.denominator,
            "conducted_periods": row.numerator,
        }
        for row in current
    ]
    loads.sort(key=lambda r: (-r["planned_periods"], r["name"].casefold()))
    planned = np.array([r["planned_periods"] for r in loads], dtype=float)
    return {
        "loads": loads,
        "mean_planned": float(planned.mean()) if len(planned) else None,
        "load_spread": float(planned.std()) if len(planned) else None,
    }
