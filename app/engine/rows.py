# File: /app/engine/rows.py | Version: 1.0 | Title: Row browse & edit operations on dynamic tables
from __future__ import annotations

import logging
from math import ceil
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core import errors
from app.core.config import settings
from app.engine import filtering, ordering, registry, row_order
from app.engine.identifiers import ORDER_COLUMN, RESERVED_COLUMNS, SURROGATE_KEY
from app.schemas.filters import CellValue, SortItem
from app.schemas.tables import RowPosition

log = logging.getLogger(__name__)


def clamp_page_size(page_size: Optional[int]) -> int:
    if not page_size or page_size < 1:
        return settings.DEFAULT_PAGE_SIZE
    return min(page_size, settings.MAX_PAGE_SIZE)


def _browse_statement(meta, raw_filters: Any, sorts: Sequence[SortItem], groups: Sequence[str]):
    """Shared WHERE/ORDER BY for paging and locating, with filter columns allowlisted."""
    table = registry.build_table(meta)
    tree = filtering.normalize(raw_filters)
    filtering.ensure_known_columns(tree, table.c.keys())
    where = filtering.compile_filter(tree, table.c)
    order_by = ordering.build_order_by(
        table, groups=groups, sorts=sorts, manual_order=bool(meta.manual_order)
    )
    return table, where, order_by


def fetch_page(
    db: Session,
    owner_id: str,
    ref: Any,
    *,
    page: int = 1,
    page_size: Optional[int] = None,
    filters: Any = None,
    sorts: Sequence[SortItem] = (),
    groups: Sequence[str] = (),
) -> Dict[str, Any]:
    meta = registry.resolve_tabular(db, owner_id, ref)
    page = max(1, page or 1)
    size = clamp_page_size(page_size)
    table, where, order_by = _browse_statement(meta, filters, sorts, groups)

    count_stmt = select(func.count()).select_from(table)
    rows_stmt = select(table).order_by(*order_by).limit(size).offset((page - 1) * size)
    if where is not None:
        count_stmt = count_stmt.where(where)
        rows_stmt = rows_stmt.where(where)

    try:
        total = db.execute(count_stmt).scalar_one()
        data = [dict(r) for r in db.execute(rows_stmt).mappings()]
    except SQLAlchemyError as exc:
        raise errors.EngineExecutionError(registry.engine_message(exc)) from exc

    result: Dict[str, Any] = {
        "data": data,
        "total": total,
        "page": page,
        "page_size": size,
        "total_pages": ceil(total / size) if total else 0,
    }
    active_groups = [g for g in groups if g in table.c]
    if active_groups:
        result["group_headers"] = ordering.group_headers(data, active_groups)
    return result


def locate_row(
    db: Session,
    owner_id: str,
    ref: Any,
    row_id: int,
    *,
    page_size: Optional[int] = None,
    filters: Any = None,
    sorts: Sequence[SortItem] = (),
    groups: Sequence[str] = (),
) -> Dict[str, Any]:
    """Page on which ``row_id`` appears under the same ordering as :func:`fetch_page`."""
    meta = registry.resolve_tabular(db, owner_id, ref)
    size = clamp_page_size(page_size)
    table, where, order_by = _browse_statement(meta, filters, sorts, groups)

    position = func.row_number().over(order_by=order_by).label("position")
    numbered = select(table.c[SURROGATE_KEY].label("row_id"), position)
    if where is not None:
        numbered = numbered.where(where)
    numbered = numbered.subquery()
    try:
        row_number = db.execute(
            select(numbered.c["position"]).where(numbered.c["row_id"] == row_id)
        ).scalar()
    except SQLAlchemyError as exc:
        raise errors.EngineExecutionError(registry.engine_message(exc)) from exc
    if row_number is None:
        raise errors.NotFoundOrForbidden("Row not found")

    return {
        "page": (row_number - 1) // size + 1,
        "index_in_page": (row_number - 1) % size,
        "row_number": row_number,
        "page_size": size,
        "row_id": row_id,
    }


def _editable_column(meta, column: str) -> str:
    if column in RESERVED_COLUMNS:
        raise errors.ValidationError(f"Column is not editable: {column}")
    if column not in registry.writable_columns(meta):
        raise errors.ValidationError(f"Unknown column: {column}")
    return column


def update_cell(db: Session, owner_id: str, ref: Any, row_id: int, column: str, value: CellValue) -> None:
    meta = registry.resolve_tabular(db, owner_id, ref)
    name = _editable_column(meta, column)
    table = registry.build_table(meta)
    with registry.atomic(db):
        result = db.execute(
            update(table)
            .where(table.c[SURROGATE_KEY] == row_id)
            .values({name: registry.coerce_cell(value)})
        )
        if result.rowcount == 0:
            raise errors.NotFoundOrForbidden("Row not found")


def insert_row(
    db: Session,
    owner_id: str,
    ref: Any,
    data: Dict[str, CellValue],
    position: Optional[RowPosition] = None,
) -> int:
    """Insert one row (unknown keys ignored), optionally next to an anchor row."""
    meta = registry.resolve_tabular(db, owner_id, ref)
    known = set(registry.writable_columns(meta))
    values = {k: registry.coerce_cell(v) for k, v in (data or {}).items() if k in known}

    with registry.atomic(db):
        if position is not None:
            row_order.ensure_order_column(db, meta)
        table = registry.build_table(meta)
        if position is not None:
            values[ORDER_COLUMN] = row_order.key_next_to(db, table, position.row_id, position.direction)
        elif meta.manual_order:
            values[ORDER_COLUMN] = row_order.append_key(db, table)
        stmt = insert(table).values(values) if values else insert(table)
        result = db.execute(stmt)
        new_id = result.inserted_primary_key[0]
    log.debug("Inserted row %s into %s", new_id, meta.internal_name)
    return new_id


def delete_row(db: Session, owner_id: str, ref: Any, row_id: int) -> None:
    meta = registry.resolve_tabular(db, owner_id, ref)
    table = registry.build_table(meta)
    with registry.atomic(db):
        result = db.execute(delete(table).where(table.c[SURROGATE_KEY] == row_id))
        if result.rowcount == 0:
            raise errors.NotFoundOrForbidden("Row not found")


def export_rows(db: Session, owner_id: str, ref: Any) -> tuple:
    """(meta, display headers, row value lists) in default order, without id/_sort_order."""
    meta = registry.resolve_tabular(db, owner_id, ref)
    table = registry.build_table(meta)
    columns = registry.columns_of(meta)
    if not columns:
        return meta, [], []
    order_by = ordering.build_order_by(table, manual_order=bool(meta.manual_order))
    stmt = select(*[table.c[c.internal_name] for c in columns]).order_by(*order_by)
    try:
        rows: List[list] = [list(r) for r in db.execute(stmt)]
    except SQLAlchemyError as exc:
        raise errors.EngineExecutionError(registry.engine_message(exc)) from exc
    return meta, [c.display_name for c in columns], rows
