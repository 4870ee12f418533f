"""
================================================================================
QUERY TABLE
================================================================================

PURPOSE:
    Derive the row set shown in the team table: brush filter, search filter,
    sort, paginate. Also decides which columns the table shows and how the
    two-level header is grouped.

PIPELINE:
    visible teams
      -> brush filter   (row must satisfy EVERY active brush range)
      -> search filter  (case-insensitive substring of team or league)
      -> sort           (single column, asc/desc)
      -> page slice     (PAGE_SIZE rows, page clamped to [1, total_pages])

SORT RULES:
    - Ordinal columns sort by rank, not by label
    - Numeric columns sort numerically
    - Anything else: case-insensitive string comparison
    - Nulls always go last

COLUMNS:
    league_name, team_name, active attributes...,
    cluster        (only if some team has a cluster label)
    weightedScore  (only if some team has a score)

================================================================================
"""

import math
from dataclasses import dataclass, field
from typing import List, Optional

from team_attributes import (
    CLUSTER_FIELD,
    IDENTITY_FIELDS,
    SCORE_FIELD,
    get_column_type,
    is_ordinal,
)

# =============================================================================
# CONFIGURATION
# =============================================================================

PAGE_SIZE = 10
ASCENDING = 1
DESCENDING = -1


@dataclass
class TablePage:
    rows: List = field(default_factory=list)
    page: int = 1
    total_pages: int = 1
    filtered_count: int = 0
    page_size: int = PAGE_SIZE

    @property
    def has_prev(self) -> bool:
        return self.page > 1

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def page_info(self) -> str:
        return f"Page {self.page} of {self.total_pages}"


# =============================================================================
# FILTERS
# =============================================================================

def matches_search(record, search: str) -> bool:
    query = (search or "").lower()
    if not query:
        return True
    return query in record.team.lower() or query in record.league.lower()


def within_brushes(record, brush_ranges) -> bool:
    """True if the record falls inside every brush range (bounds inclusive)."""
    for attr, (low, high) in (brush_ranges or {}).items():
        value = record.get(attr)
        if value is None:
            return False
        if value < low or value > high:
            return False
    return True


def filter_rows(records, search="", brush_ranges=None) -> list:
    return [
        r for r in records
        if within_brushes(r, brush_ranges) and matches_search(r, search)
    ]


# =============================================================================
# SORT
# =============================================================================

def is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def sort_rows(rows, column: Optional[str], direction: int = ASCENDING) -> list:
    """
    Stable single-column sort. Returns a new list.
    """
    if not column:
        return list(rows)

    present = [r for r in rows if r.get(column) is not None]
    missing = [r for r in rows if r.get(column) is None]

    numeric = is_ordinal(column) or all(is_number(r.get(column)) for r in present)
    if numeric:
        key = lambda r: r.get(column)
    else:
        key = lambda r: str(r.get(column)).casefold()

    present.sort(key=key, reverse=direction < 0)
    return present + missing


# =============================================================================
# PAGINATION
# =============================================================================

def total_pages(count: int, page_size: int = PAGE_SIZE) -> int:
    return max(1, math.ceil(count / page_size))


def clamp_page(page, count: int, page_size: int = PAGE_SIZE) -> int:
    try:
        page = int(page)
    except (TypeError, ValueError):
        page = 1
    return max(1, min(page, total_pages(count, page_size)))


def query_rows(records, search="", brush_ranges=None, sort_column=None,
               sort_direction=ASCENDING, page=1, page_size=PAGE_SIZE) -> TablePage:
    """
    Filtered, sorted, paginated table rows.

    Args:
        records: Visible TeamRecords
        search: Search box text
        brush_ranges: Dict of attribute_id -> (low, high)
        sort_column: Column to sort on, or None for input order
        sort_direction: ASCENDING or DESCENDING
        page: Requested page (1-based, clamped)
        page_size: Rows per page

    Returns:
        TablePage
    """
    filtered = filter_rows(records, search, brush_ranges)
    ordered = sort_rows(filtered, sort_column, sort_direction)

    count = len(ordered)
    current = clamp_page(page, count, page_size)
    start = (current - 1) * page_size

    return TablePage(
        rows=ordered[start:start + page_size],
        page=current,
        total_pages=total_pages(count, page_size),
        filtered_count=count,
        page_size=page_size,
    )


# =============================================================================
# COLUMNS
# =============================================================================

def table_columns(records, active_attributes) -> List[str]:
    cols = list(IDENTITY_FIELDS)
    cols += [a for a in active_attributes if a not in cols]
    if any(r.cluster is not None for r in records):
        cols.append(CLUSTER_FIELD)
    if any(r.weighted_score is not None for r in records):
        cols.append(SCORE_FIELD)
    return cols


def column_header_groups(columns) -> List[dict]:
    """
    Top header row: consecutive columns of the same type share one cell.

    Returns:
        List of {"type": ..., "span": ...}
    """
    groups = []
    for col in columns:
        col_type = get_column_type(col)
        if groups and groups[-1]["type"] == col_type:
            groups[-1]["span"] += 1
        else:
            groups.append({"type": col_type, "span": 1})
    return groups


def cell_text(record, column: str) -> str:
    """Display text for one table cell."""
    if is_ordinal(column):
        label = record.labels.get(column)
        if label:
            return label
    value = record.get(column)
    if value is None:
        return ""
    if column == SCORE_FIELD:
        return f"{value:.2f}"
    if column == CLUSTER_FIELD:
        return str(int(value))
    if is_number(value) and float(value).is_integer():
        return str(int(value))
    return str(value)
