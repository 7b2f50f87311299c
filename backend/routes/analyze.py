"""
Analyze routes — period-over-period analytics API endpoints.
"""

import logging
import os
from datetime import date
from typing import Any, Dict, Optional

from fastapi import APIRouter, HTTPException

from core import academics, attendance, fees, operations, syllabus
from core.engine import compare_periods, comparison_to_dict, sanitize
from core.parser import frame_from_records
from core.periods import coerce_date, date_range_presets

router = APIRouter()
logger = logging.getLogger(__name__)

TREND_THRESHOLD = float(os.getenv("TREND_THRESHOLD", "2"))
DEFAULT_PERIOD = os.getenv("DEFAULT_PERIOD", "weekly")


def _options(payload: dict, default_group_by: str) -> Dict[str, Any]:
    """Extract shared query options from a request payload."""
    reference = payload.get("reference_date")
    search = payload.get("search")
    limit = payload.get("limit")
    trend = payload.get("trend") or []
    if isinstance(trend, str):
        trend = [trend]
    return {
        "period": payload.get("period") or DEFAULT_PERIOD,
        "reference_date": coerce_date(reference) if reference else date.today(),
        "group_by": payload.get("group_by") or default_group_by,
        "metric": payload.get("metric") or "percentage",
        "order": payload.get("order") or "desc",
        "search": str(search) if search is not None else None,
        "trend": trend,
        "limit": int(limit) if limit is not None else None,
        "offset": int(payload.get("offset") or 0),
    }


def _run(payload: dict, adapter, facts_fn, cumulative: bool = False):
    """Build facts, compare periods, serialize. ValueErrors become 400s."""
    try:
        df = frame_from_records(payload.get("data"))
        opts = _options(payload, adapter.DEFAULT_GROUP_BY)
        facts = facts_fn(df, opts)
        comparison = compare_periods(
            facts,
            opts["period"],
            opts["reference_date"],
            metric=opts["metric"],
            order=opts["order"],
            threshold=TREND_THRESHOLD,
            cumulative=cumulative,
        )
        result = comparison_to_dict(
            comparison,
            search=opts["search"],
            directions=opts["trend"],
            limit=opts["limit"],
            offset=opts["offset"],
        )
    except (ValueError, TypeError) as exc:
        logger.warning("Rejected analytics request: %s", exc)
        raise HTTPException(400, str(exc))
    result["group_by"] = opts["group_by"]
    return df, opts, facts, comparison, result


@router.get("/periods")
async def periods(reference_date: Optional[str] = None):
    """Period presets (current and previous windows) for a period picker."""
    try:
        ref = coerce_date(reference_date) if reference_date else date.today()
    except ValueError as exc:
        raise HTTPException(400, str(exc))
    return {"reference_date": ref.isoformat(), "presets": date_range_presets(ref)}


@router.post("/attendance")
async def attendance_analytics(payload: dict):
    """Attendance rate per class or student, ranked, with trend and a daily series."""
    _, _, facts, comparison, result = _run(
        payload, attendance,
        lambda df, o: attendance.facts_from_frame(df, o["group_by"]),
    )
    result["daily"] = sanitize(attendance.daily_trend(facts, comparison))
    return result


@router.post("/fees")
async def fees_analytics(payload: dict):
    """Fee collection rate per class or student, plus totals, status and aging."""
    df, opts, _, comparison, result = _run(
        payload, fees,
        lambda df, o: fees.facts_from_frame(df, o["group_by"]),
    )
    window = comparison.window
    result["overview"] = sanitize(
        fees.fee_overview(df, opts["reference_date"], window.start_date, window.end_date)
    )
    return result


@router.post("/academics")
async def academics_analytics(payload: dict):
    """Test participation or score rate per subject, class or student."""
    measure = payload.get("measure") or "participation"
    df, _, _, comparison, result = _run(
        payload, academics,
        lambda df, o: academics.facts_from_frame(df, o["group_by"], measure),
    )
    window = comparison.window
    result["measure"] = measure
    result["attempts"] = academics.attempt_counts(df, window.start_date, window.end_date)
    return result


@router.post("/syllabus")
async def syllabus_analytics(payload: dict):
    """Syllabus completion per class and subject, compared cumulatively."""
    _, _, _, comparison, result = _run(
        payload, syllabus,
        lambda df, o: syllabus.facts_from_frame(df, o["group_by"]),
        cumulative=syllabus.CUMULATIVE,
    )
    result["completion"] = sanitize(syllabus.completion_summary(comparison.current))
    return result


@router.post("/operations")
async def operations_analytics(payload: dict):
    """Timetable coverage per teacher or class, plus teacher load balance."""
    _, _, _, comparison, result = _run(
        payload, operations,
        lambda df, o: operations.facts_from_frame(df, o["group_by"]),
    )
    result["load"] = sanitize(operations.teacher_load(comparison.current))
    return result
