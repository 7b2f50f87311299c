"""
periods.py — Period resolution for period-over-period analytics.

A symbolic period is an aggregation granularity, not a literal single period:
"daily" is a 7-day window sampled daily, "weekly" a 30-day window and
"monthly" a 90-day window. Each resolved window comes with the immediately
preceding window of identical length for trend comparison.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Any, Dict, List, Optional, Tuple

from core.contracts import Period

logger = logging.getLogger(__name__)

# Window length in whole calendar days, reference day included.
PERIOD_WINDOWS = {
    Period.DAILY: 7,
    Period.WEEKLY: 30,
    Period.MONTHLY: 90,
}

PERIOD_LABELS = {
    Period.DAILY: "Last 7 Days",
    Period.WEEKLY: "Last 30 Days",
    Period.MONTHLY: "Last 90 Days",
}


class InvalidPeriod(ValueError):
    """Raised for a period symbol that has no window definition."""

    def __init__(self, period: Any):
        self.period = period
        valid = ", ".join(p.value for p in Period)
        super().__init__(f"Invalid period {period!r}. Expected one of: {valid}.")


# ── Helpers ─────────────────────────────────────────────────────────

def coerce_date(value: Any) -> date:
    """Accept a date, datetime or ISO-8601 string and return the calendar date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        raw = value.strip()
        try:
            return date.fromisoformat(raw[:10])
        except ValueError:
            pass
    raise ValueError(f"Invalid date {value!r}. Expected YYYY-MM-DD.")


def start_of_day(day: date, tz: Optional[tzinfo] = None) -> datetime:
    return datetime.combine(day, time.min, tzinfo=tz)


def end_of_day(day: date, tz: Optional[tzinfo] = None) -> datetime:
    return datetime.combine(day, time.max, tzinfo=tz)


def _parse_period(period: Any) -> Period:
    if isinstance(period, Period):
        return period
    if isinstance(period, str):
        try:
            return Period(period)
        except ValueError:
            pass
    raise InvalidPeriod(period)


def previous_window(start_date: date, end_date: date) -> Tuple[date, date]:
    """The non-overlapping window of identical length ending the day before start_date."""
    length = (end_date - start_date).days + 1
    if length < 1:
        raise ValueError(f"Window end {end_date} is before its start {start_date}.")
    prev_end = start_date - timedelta(days=1)
    prev_start = prev_end - timedelta(days=length - 1)
    return prev_start, prev_end


# ── Resolution ──────────────────────────────────────────────────────

@dataclass(frozen=True)
class PeriodWindow:
    period: Period
    start_date: date
    end_date: date
    previous_start_date: date
    previous_end_date: date
    tz: Optional[tzinfo] = None

    @property
    def length_days(self) -> int:
        return (self.end_date - self.start_date).days + 1

    def bounds(self) -> Tuple[datetime, datetime]:
        return start_of_day(self.start_date, self.tz), end_of_day(self.end_date, self.tz)

    def previous_bounds(self) -> Tuple[datetime, datetime]:
        return (
            start_of_day(self.previous_start_date, self.tz),
            end_of_day(self.previous_end_date, self.tz),
        )

    def as_dict(self) -> Dict[str, Any]:
        return {
            "period": self.period.value,
            "label": PERIOD_LABELS[self.period],
            "length_days": self.length_days,
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "previous_start_date": self.previous_start_date.isoformat(),
            "previous_end_date": self.previous_end_date.isoformat(),
            "display": format_date_range(self.start_date, self.end_date),
        }


def resolve_period(period: Any, reference_date: Any) -> PeriodWindow:
    """
    Resolve a symbolic period into the current window ending at reference_date
    (inclusive) and the matching previous window.

    A timezone-aware reference datetime carries its tzinfo into the day bounds,
    so every comparison made against one resolution uses the same zone.
    """
    parsed = _parse_period(period)
    tz = reference_date.tzinfo if isinstance(reference_date, datetime) else None
    end = coerce_date(reference_date)
    length = PERIOD_WINDOWS[parsed]

    start = end - timedelta(days=length - 1)
    prev_start, prev_end = previous_window(start, end)

    logger.debug(
        "Resolved %s at %s: %s..%s (previous %s..%s)",
        parsed.value, end, start, end, prev_start, prev_end,
    )
    return PeriodWindow(
        period=parsed,
        start_date=start,
        end_date=end,
        previous_start_date=prev_start,
        previous_end_date=prev_end,
        tz=tz,
    )


# ── Presentation helpers ────────────────────────────────────────────

def format_date_range(start_date: date, end_date: date) -> str:
    """Human-readable range, e.g. 'Jan 25 - 31, 2025' or 'Dec 28, 2024 - Jan 3, 2025'."""
    def _full(d: date) -> str:
        return f"{d.strftime('%b')} {d.day}, {d.year}"

    if start_date == end_date:
        return _full(start_date)
    if start_date.year == end_date.year and start_date.month == end_date.month:
        return f"{start_date.strftime('%b')} {start_date.day} - {end_date.day}, {end_date.year}"
    return f"{_full(start_date)} - {_full(end_date)}"


def date_range_presets(reference_date: Any) -> List[Dict[str, Any]]:
    """One preset per period for a period picker."""
    return [resolve_period(p, reference_date).as_dict() for p in Period]
