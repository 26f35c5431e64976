# File: /app/engine/row_order.py | Version: 1.0 | Title: Row Order Manager (fractional _sort_order keys)
"""
Positional inserts without renumbering.

``_sort_order`` is provisioned lazily (REAL, backfilled with ``id``) the first
time a positional insert is requested. A new row placed next to an anchor gets
the midpoint between the anchor's key and its neighbour's. Only when float
precision can no longer separate the two are the keys renumbered to 1..n.

All functions run inside the caller's transaction and never commit.
"""
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import Table, bindparam, func, select, text, update
from sqlalchemy.orm import Session

from app.core import errors
from app.engine.identifiers import ORDER_COLUMN, SURROGATE_KEY
from app.models import TableMeta

log = logging.getLogger(__name__)


def ensure_order_column(db: Session, meta: TableMeta) -> bool:
    """Add and backfill ``_sort_order`` if missing. Returns True when it was provisioned now."""
    if meta.manual_order:
        return False
    preparer = db.get_bind().dialect.identifier_preparer
    table_sql = preparer.quote_identifier(meta.internal_name)
    order_sql = preparer.quote_identifier(ORDER_COLUMN)
    db.execute(text(f"ALTER TABLE {table_sql} ADD COLUMN {order_sql} REAL"))
    db.execute(text(f"UPDATE {table_sql} SET {order_sql} = {preparer.quote_identifier(SURROGATE_KEY)}"))
    meta.manual_order = True
    db.flush()
    log.info("Provisioned manual order on %s", meta.internal_name)
    return True


def _anchor_key(db: Session, table: Table, anchor_id: int) -> float:
    key = db.execute(
        select(table.c[ORDER_COLUMN]).where(table.c[SURROGATE_KEY] == anchor_id)
    ).first()
    if key is None:
        raise errors.NotFoundOrForbidden("Anchor row not found")
    if key[0] is None:
        # Rows inserted by older writers without a key sort by id.
        return float(anchor_id)
    return float(key[0])


def _neighbour_key(db: Session, table: Table, anchor: float, direction: str) -> Optional[float]:
    order_col = table.c[ORDER_COLUMN]
    if direction == "before":
        stmt = select(func.max(order_col)).where(order_col < anchor)
    else:
        stmt = select(func.min(order_col)).where(order_col > anchor)
    value = db.execute(stmt).scalar()
    return None if value is None else float(value)


def midpoint(anchor: float, neighbour: Optional[float], direction: str) -> float:
    if neighbour is None:
        neighbour = anchor - 1 if direction == "before" else anchor + 1
    return (anchor + neighbour) / 2


def renumber(db: Session, table: Table) -> None:
    """Rewrite keys to 1..n in current order (ties by id)."""
    order_col = table.c[ORDER_COLUMN]
    ids = db.execute(
        select(table.c[SURROGATE_KEY]).order_by(order_col.asc(), table.c[SURROGATE_KEY].asc())
    ).scalars().all()
    if not ids:
        return
    stmt = (
        update(table)
        .where(table.c[SURROGATE_KEY] == bindparam("_ord_row_id"))
        .values({ORDER_COLUMN: bindparam("_ord_key")})
    )
    db.execute(stmt, [{"_ord_row_id": row_id, "_ord_key": float(i)} for i, row_id in enumerate(ids, start=1)])
    log.info("Renumbered %d order keys on %s", len(ids), table.name)


def key_next_to(db: Session, table: Table, anchor_id: int, direction: str) -> float:
    """Order key for a row inserted immediately before/after ``anchor_id``."""
    anchor = _anchor_key(db, table, anchor_id)
    neighbour = _neighbour_key(db, table, anchor, direction)
    key = midpoint(anchor, neighbour, direction)
    if key == anchor or (neighbour is not None and key == neighbour):
        renumber(db, table)
        anchor = _anchor_key(db, table, anchor_id)
        key = midpoint(anchor, _neighbour_key(db, table, anchor, direction), direction)
    return key


def append_key(db: Session, table: Table) -> float:
    current = db.execute(select(func.max(table.c[ORDER_COLUMN]))).scalar()
    return 1.0 if current is None else float(current) + 1
