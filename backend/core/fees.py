"""
fees.py — Fee collection adapter.

One fact per billing line, weighted by money rather than counted: the
numerator is the amount paid (capped at the amount billed) and the
denominator is the amount billed, both in minor currency units so sums stay
exact. The percentage is the collection (realization) rate.

Also computes:
- Totals billed / collected / outstanding
- Per-student fee status (paid, current, overdue, no_billing)
- Aging buckets for outstanding balances (current, 30-60, 60-90, 90+)
"""

import logging
from datetime import date
from typing import Any, Dict, List, Optional

import pandas as pd

from core.contracts import FactRow, GroupKey, GroupKind, percentage_of
from core.parser import check_option, normalize_columns, parse_timestamp, text, to_minor_units
from core.periods import coerce_date

logger = logging.getLogger(__name__)

FIELDS = [
    "student_id", "student_name", "class_id", "class_name",
    "billed", "paid", "due_date", "date",
]
REQUIRED = ["student_id", "billed", "paid", "date"]
GROUP_BY = {
    "class": GroupKind.CLASS,
    "student": GroupKind.STUDENT,
}
DEFAULT_GROUP_BY = "class"

AGING_BUCKETS = ["current", "30-60", "60-90", "90+"]
FEE_STATUSES = ["paid", "current", "overdue", "no_billing"]


def _group(record: Dict[str, Any], group_by: str):
    if group_by == "student":
        sid = text(record.get("student_id"))
        return sid, text(record.get("student_name"), fallback=sid)
    cid = text(record.get("class_id"))
    return cid, text(record.get("class_name"), fallback=cid)


def to_fact_row(record: Dict[str, Any], group_by: str = DEFAULT_GROUP_BY) -> Optional[FactRow]:
    check_option(group_by, GROUP_BY, "group_by for fees")
    ts = parse_timestamp(record.get("date"))
    group_id, label = _group(record, group_by)
    if ts is None or not group_id:
        return None
    billed = to_minor_units(record.get("billed"))
    paid = min(to_minor_units(record.get("paid")), billed)
    return FactRow(
        group_key=GroupKey.of(GROUP_BY[group_by], group_id),
        group_label=label,
        numerator=paid,
        denominator=billed,
        timestamp=ts,
    )


def facts_from_frame(df: pd.DataFrame, group_by: str = DEFAULT_GROUP_BY) -> List[FactRow]:
    check_option(group_by, GROUP_BY, "group_by for fees")
    required = REQUIRED + (["class_id"] if group_by == "class" else [])
    norm = normalize_columns(df, FIELDS, required)
    facts = []
    for record in norm.to_dict(orient="records"):
        fact = to_fact_row(record, group_by)
        if fact is not None:
            facts.append(fact)
    skipped = len(norm) - len(facts)
    if skipped:
        logger.info("Skipped %d fee records without a date or %s id", skipped, group_by)
    return facts


# ── Status & aging ──────────────────────────────────────────────────

def aging_bucket(due_date: Optional[date], reference_date: date) -> str:
    if due_date is None:
        return "current"
    days_overdue = (reference_date - due_date).days
    if days_overdue <= 30:
        return "current"
    if days_overdue <= 60:
        return "30-60"
    if days_overdue <= 90:
        return "60-90"
    return "90+"


def fee_status(billed: int, paid: int, due_date: Optional[date], reference_date: date) -> str:
    if billed == 0:
        return "no_billing"
    if paid >= billed:
        return "paid"
    if due_date is not None and reference_date > due_date:
        return "overdue"
    return "current"


def fee_overview(df: pd.DataFrame, reference_date: Any, start=None, end=None) -> Dict[str, Any]:
    """
    Per-student balances as of reference_date, rolled up into totals, status
    counts and aging buckets. Amounts are returned in major units.

    ``start``/``end`` (dates) restrict which billing lines are counted.
    """
    ref = coerce_date(reference_date)
    norm = normalize_columns(df, FIELDS, ["student_id", "billed", "paid"])

    students: Dict[str, Dict[str, Any]] = {}
    for record in norm.to_dict(orient="records"):
        sid = text(record.get("student_id"))
        if not sid:
            continue
        ts = parse_timestamp(record.get("date"))
        if ts is not None and ((start and ts.date() < start) or (end and ts.date() > end)):
            continue
        billed = to_minor_units(record.get("billed"))
        paid = to_minor_units(record.get("paid"))
        due = parse_timestamp(record.get("due_date"))

        entry = students.setdefault(sid, {
            "student_id": sid,
            "student_name": text(record.get("student_name"), fallback=sid),
            "class_name": text(record.get("class_name"), fallback=text(record.get("class_id"))),
            "billed": 0,
            "paid": 0,
            "due_date": None,
            "last_payment_date": None,
        })
        entry["billed"] += billed
        entry["paid"] += paid
        if due is not None and (entry["due_date"] is None or due.date() < entry["due_date"]):
            entry["due_date"] = due.date()
        if paid > 0 and ts is not None and (entry["last_payment_date"] is None or ts > entry["last_payment_date"]):
            entry["last_payment_date"] = ts

    aging = {bucket: 0 for bucket in AGING_BUCKETS}
    statuses = {status: 0 for status in FEE_STATUSES}
    summaries = []
    for entry in students.values():
        outstanding = max(entry["billed"] - entry["paid"], 0)
        status = fee_status(entry["billed"], entry["paid"], entry["due_date"], ref)
        statuses[status] += 1
        bucket = None
        if outstanding > 0:
            bucket = aging_bucket(entry["due_date"], ref)
            aging[bucket] += 1
        summaries.append({
            "student_id": entry["student_id"],
            "student_name": entry["student_name"],
            "class_name": entry["class_name"],
            "total_billed": entry["billed"] / 100,
            "total_paid": entry["paid"] / 100,
            "total_due": outstanding / 100,
            "status": status,
            "aging_bucket": bucket,
            "aging_days": max((ref - entry["due_date"]).days, 0) if entry["due_date"] else 0,
            "last_payment_date": entry["last_payment_date"],
        })

    summaries.sort(key=lambda s: (-s["total_due"], s["student_name"].casefold()))
    total_billed = sum(e["billed"] for e in students.values())
    total_collected = sum(min(e["paid"], e["billed"]) for e in students.values())
    return {
        "total_billed": total_billed / 100,
        "total_collected": total_collected / 100,
        "total_outstanding": (total_billed - total_collected) / 100,
        "realization_rate": percentage_of(total_collected, total_billed),
        "aging_breakdown": aging,
        "status_counts": statuses,
        "student_summaries": summaries,
    }
