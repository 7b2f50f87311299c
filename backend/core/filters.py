"""
filters.py — Client-side narrowing of ranked rows: search, trend filter, paging.
"""

from typing import Any, Dict, Iterable, List, Optional

from core.contracts import RankedRow, TrendDirection


def search_rows(rows: List[RankedRow], query: Optional[str]) -> List[RankedRow]:
    """Case-insensitive substring match on the group label and key ids."""
    if query is None:
        return rows
    if not isinstance(query, str):
        raise ValueError(f"search must be text, got {query!r}.")
    if not query.strip():
        return rows
    needle = query.strip().casefold()

    def _matches(row: RankedRow) -> bool:
        haystack = [row.group_label or ""] + list(row.group_key.ids)
        return any(needle in value.casefold() for value in haystack)

    return [row for row in rows if _matches(row)]


def filter_by_direction(rows: List[RankedRow], directions: Optional[Iterable[Any]]) -> List[RankedRow]:
    """Keep rows whose trend direction is listed. No directions keeps everything."""
    wanted = {TrendDirection(d) for d in (directions or [])}
    if not wanted:
        return rows
    return [row for row in rows if row.trend_direction in wanted]


def paginate(rows: List[Any], limit: Optional[int] = None, offset: int = 0) -> Dict[str, Any]:
    if offset < 0:
        raise ValueError("offset must be zero or positive.")
    if limit is not None and limit < 0:
        raise ValueError("limit must be zero or positive.")

    total = len(rows)
    end = total if limit is None else offset + limit
    has_more = end < total
    return {
        "data": rows[offset:end],
        "total": total,
        "has_more": has_more,
        "next_offset": end if has_more else None,
    }
