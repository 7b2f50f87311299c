"""
contracts.py — Shared row and key types for the analytics engine.

Defines:
- GroupKey: tagged grouping key (class, subject, teacher, student, class+subject)
- FactRow: one observed fact feeding an aggregation
- AggregateRow: one group's summary inside a time window
- RankedRow: an AggregateRow with period-over-period trend and rank
"""

import math
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from numbers import Real
from typing import Optional, Tuple, Union

Timestamp = Union[date, datetime]


class GroupKind(str, Enum):
    CLASS = "class"
    SUBJECT = "subject"
    TEACHER = "teacher"
    STUDENT = "student"
    CLASS_SUBJECT = "class_subject"


class TrendDirection(str, Enum):
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"
    UNKNOWN = "unknown"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class Period(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


# ── Keys ────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class GroupKey:
    """
    Structural grouping key.

    Two keys are equal only when both the kind and every id match, so a class
    and a subject that happen to share an id never collapse into one group.
    """

    kind: GroupKind
    ids: Tuple[str, ...]

    def __post_init__(self):
        if not isinstance(self.kind, GroupKind):
            object.__setattr__(self, "kind", GroupKind(self.kind))
        ids = tuple(str(i) for i in self.ids)
        if not ids:
            raise ValueError("GroupKey needs at least one id.")
        object.__setattr__(self, "ids", ids)

    @classmethod
    def of(cls, kind, *ids) -> "GroupKey":
        return cls(kind=kind, ids=tuple(ids))

    @property
    def id(self) -> str:
        """Single id for simple keys; ids joined with ':' for composite keys."""
        return ":".join(self.ids)

    def sort_key(self) -> Tuple[str, Tuple[str, ...]]:
        return (self.kind.value, self.ids)

    def as_dict(self):
        return {"kind": self.kind.value, "id": self.id, "ids": list(self.ids)}


# ── Rows ────────────────────────────────────────────────────────────

def _check_contribution(name: str, value) -> None:
    if isinstance(value, bool) or not isinstance(value, Real):
        raise ValueError(f"{name} must be a number, got {value!r}.")
    if not math.isfinite(float(value)) or value < 0:
        raise ValueError(f"{name} must be finite and non-negative, got {value!r}.")


@dataclass(frozen=True)
class FactRow:
    group_key: GroupKey
    group_label: str
    numerator: Real
    denominator: Real
    timestamp: Timestamp

    def __post_init__(self):
        _check_contribution("numerator", self.numerator)
        _check_contribution("denominator", self.denominator)
        if not isinstance(self.timestamp, date):
            raise ValueError(f"timestamp must be a date or datetime, got {self.timestamp!r}.")


def percentage_of(numerator, denominator) -> float:
    """numerator / denominator * 100, or 0.0 when there is nothing to divide by."""
    if not denominator or denominator <= 0:
        return 0.0
    return float(numerator) * 100 / float(denominator)


@dataclass(frozen=True)
class AggregateRow:
    group_key: GroupKey
    group_label: str
    numerator: Real
    denominator: Real
    percentage: float
    last_updated: Optional[Timestamp]
    row_count: int

    @classmethod
    def build(cls, group_key, group_label, numerator, denominator, last_updated, row_count):
        return cls(
            group_key=group_key,
            group_label=group_label,
            numerator=numerator,
            denominator=denominator,
            percentage=percentage_of(numerator, denominator),
            last_updated=last_updated,
            row_count=row_count,
        )


@dataclass(frozen=True)
class RankedRow(AggregateRow):
    previous_percentage: Optional[float]
    trend_delta: Optional[float]
    trend_direction: TrendDirection
    rank: int
