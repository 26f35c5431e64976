# File: /app/engine/ordering.py | Version: 1.0 | Title: Ordering Engine (groups -> sorts -> manual order -> id)
from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional, Sequence

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import Table

from app.core import errors
from app.engine.identifiers import ORDER_COLUMN, SURROGATE_KEY
from app.schemas.filters import SortDirection, SortItem

log = logging.getLogger(__name__)

_sorts_adapter = TypeAdapter(List[SortItem])
_groups_adapter = TypeAdapter(List[str])


def parse_sorts(raw: Any) -> List[SortItem]:
    if raw in (None, "", []):
        return []
    try:
        return _sorts_adapter.validate_python(raw)
    except PydanticValidationError:
        raise errors.ValidationError("Invalid sorts")


def parse_groups(raw: Any) -> List[str]:
    if raw in (None, "", []):
        return []
    try:
        return _groups_adapter.validate_python(raw)
    except PydanticValidationError:
        raise errors.ValidationError("Invalid groups")


def _check_identifier(name: str) -> None:
    if '"' in name:
        raise errors.ValidationError(f"Invalid column name: {name}")


def build_order_by(
    table: Table,
    *,
    groups: Sequence[str] = (),
    sorts: Sequence[SortItem] = (),
    manual_order: bool = False,
) -> List[Any]:
    """
    ORDER BY terms: group columns first (direction from a matching sort, else
    ASC), then the remaining sorts, then the manual order column, then id.
    Unknown columns are dropped; names containing a double quote are rejected.
    """
    for name in [*groups, *(s.column for s in sorts)]:
        _check_identifier(name)

    directions: Dict[str, SortDirection] = {}
    for s in sorts:
        directions.setdefault(s.column, s.direction)

    terms: List[Any] = []
    used: List[str] = []

    def _add(name: str, direction: SortDirection) -> None:
        if name in used or name not in table.c:
            return
        col = table.c[name]
        terms.append(col.desc() if direction == SortDirection.desc else col.asc())
        used.append(name)

    for name in groups:
        _add(name, directions.get(name, SortDirection.asc))
    for s in sorts:
        _add(s.column, s.direction)

    # Tie-breakers keep pagination deterministic.
    if manual_order and ORDER_COLUMN in table.c:
        _add(ORDER_COLUMN, SortDirection.asc)
    _add(SURROGATE_KEY, SortDirection.asc)
    return terms


def group_headers(rows: Sequence[Dict[str, Any]], groups: Sequence[str]) -> List[Dict[str, Any]]:
    """
    Header markers for display grouping. A header opens at the first level
    (outermost first) whose key differs from the previous row, and at every
    level below it.
    """
    if not groups:
        return []
    headers: List[Dict[str, Any]] = []
    previous: Optional[Dict[str, Any]] = None
    for index, row in enumerate(rows):
        start = None
        for level, column in enumerate(groups):
            if previous is None or row.get(column) != previous.get(column):
                start = level
                break
        if start is not None:
            for level in range(start, len(groups)):
                column = groups[level]
                headers.append(
                    {"rowIndex": index, "level": level, "column": column, "value": row.get(column)}
                )
        previous = row
    return headers


def parse_json_param(raw: Optional[str], name: str) -> Any:
    """Decode a JSON-encoded query-string parameter (filters, sorts, groups, aggregates)."""
    if raw is None or raw == "":
        return None
    try:
        return json.loads(raw)
    except ValueError:
        raise errors.ValidationError(f"Invalid JSON in '{name}'")
