"""
parser.py — Raw record ingestion for the domain adapters.

Supports:
- Building a DataFrame from the JSON records of a request payload
- Fuzzy column name mapping onto canonical field names
- Lenient value parsing (dates, flags, amounts, minor currency units)
"""

import logging
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

import pandas as pd

logger = logging.getLogger(__name__)

# Common column name variations for auto-mapping
COLUMN_ALIASES = {
    "student_id": [
        "student_id", "studentid", "student id", "admission_no", "adm_no",
        "reg_no", "student",
    ],
    "student_name": [
        "student_name", "student name", "full_name", "full name", "name",
        "learner_name", "pupil_name",
    ],
    "class_id": [
        "class_id", "class_instance_id", "classid", "class id", "class",
        "grade", "form", "stream",
    ],
    "class_name": [
        "class_name", "class name", "class_label", "grade_name",
    ],
    "subject_id": [
        "subject_id", "subjectid", "subject id", "subject",
    ],
    "subject_name": [
        "subject_name", "subject name", "subject_label",
    ],
    "teacher_id": [
        "teacher_id", "teacherid", "teacher id", "teacher", "staff_id",
    ],
    "teacher_name": [
        "teacher_name", "teacher name", "staff_name",
    ],
    "chapter_id": [
        "chapter_id", "topic_id", "chapter", "topic",
    ],
    "status": [
        "status", "attendance_status", "attempt_status", "state",
    ],
    "is_completed": [
        "is_completed", "completed", "done", "is_done",
    ],
    "conducted": [
        "conducted", "is_conducted", "held", "taught",
    ],
    "billed": [
        "billed", "amount_billed", "billed_amount", "total_billed", "amount_due",
        "fee_amount", "plan_amount",
    ],
    "paid": [
        "paid", "amount_paid", "paid_amount", "total_paid", "amount",
    ],
    "earned_points": [
        "earned_points", "score", "marks", "points",
    ],
    "total_points": [
        "total_points", "max_score", "max_marks", "out_of", "max_points",
    ],
    "due_date": [
        "due_date", "due", "due_on",
    ],
    "date": [
        "date", "created_at", "updated_at", "completed_at", "marked_at",
        "paid_at", "payment_date", "period_date", "timestamp",
    ],
}

TRUE_FLAGS = {"1", "true", "t", "yes", "y", "completed", "done", "conducted", "held"}


def find_col(df: pd.DataFrame, aliases: List[str]) -> Optional[str]:
    """Find the first column matching any alias (case-insensitive)."""
    cols_lower = {str(c).lower().strip(): c for c in df.columns}
    for a in aliases:
        if a.lower() in cols_lower:
            return cols_lower[a.lower()]
    return None


def suggest_column_mapping(df: pd.DataFrame, fields: List[str]) -> Dict[str, Optional[str]]:
    """
    Suggest a mapping from canonical field names to actual column names.
    A column already claimed by an earlier field is not reused.
    """
    mapping: Dict[str, Optional[str]] = {}
    claimed = set()
    for field in fields:
        candidates = df.drop(columns=list(claimed)) if claimed else df
        matched = find_col(candidates, COLUMN_ALIASES.get(field, [field]))
        mapping[field] = matched
        if matched is not None:
            claimed.add(matched)
    return mapping


def normalize_columns(
    df: pd.DataFrame, fields: List[str], required: List[str]
) -> pd.DataFrame:
    """
    Return a copy holding only canonical columns for ``fields``.
    Optional fields that cannot be found are added as empty columns.
    """
    mapping = suggest_column_mapping(df, fields)
    missing = [f for f in required if mapping.get(f) is None]
    if missing:
        expected = "; ".join(f"'{f}' (one of {COLUMN_ALIASES.get(f, [f])})" for f in missing)
        raise ValueError(f"Required column(s) not found: {expected}")

    out = pd.DataFrame(index=df.index)
    for field in fields:
        col = mapping.get(field)
        out[field] = df[col] if col is not None else None
    return out


def check_option(value: Any, options, what: str) -> None:
    """Raise ValueError naming the accepted values when ``value`` is not one of ``options``."""
    if value not in options:
        raise ValueError(f"Invalid {what} {value!r}. Expected one of: {', '.join(options)}.")


def frame_from_records(data: Any) -> pd.DataFrame:
    if not data:
        raise ValueError("No data provided.")
    if not isinstance(data, list):
        raise ValueError("'data' must be a list of records.")
    return pd.DataFrame(data)


# ── Value parsing ───────────────────────────────────────────────────

def is_blank(value: Any) -> bool:
    if value is None:
        return True
    try:
        if pd.isna(value):
            return True
    except (TypeError, ValueError):
        return False
    return isinstance(value, str) and (not value.strip() or value.strip().lower() == "nan")


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a date or datetime value; None when blank or unparseable."""
    if is_blank(value):
        return None
    try:
        ts = pd.Timestamp(value)
    except (TypeError, ValueError):
        return None
    if pd.isna(ts):
        return None
    return ts.to_pydatetime()


def parse_flag(value: Any) -> bool:
    if is_blank(value):
        return False
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in TRUE_FLAGS


def parse_amount(value: Any) -> Optional[float]:
    if is_blank(value):
        return None
    number = pd.to_numeric(value, errors="coerce")
    if pd.isna(number):
        return None
    return float(number)


def to_minor_units(value: Any) -> int:
    """
    Currency amount in minor units (cents, paise). Thousands separators are
    ignored; blanks, negatives and unreadable amounts count as 0.
    """
    if is_blank(value):
        return 0
    raw = str(value).strip().replace(",", "").replace(" ", "")
    try:
        amount = Decimal(raw)
    except InvalidOperation:
        logger.info("Unreadable amount %r counted as 0", value)
        return 0
    if not amount.is_finite() or amount <= 0:
        return 0
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def text(value: Any, fallback: str = "") -> str:
    if is_blank(value):
        return fallback
    return str(value).strip()
