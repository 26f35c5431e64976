# File: /app/engine/aggregates.py | Version: 1.0 | Title: Aggregate Engine (SUM/AVG/MIN/MAX/COUNT under browse filters)
from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core import errors
from app.engine import filtering, registry

log = logging.getLogger(__name__)

AGGREGATE_FUNCTIONS = {
    "SUM": func.sum,
    "AVG": func.avg,
    "MIN": func.min,
    "MAX": func.max,
    "COUNT": func.count,
}


def compute_aggregates(
    db: Session,
    owner_id: str,
    ref: Any,
    *,
    filters: Any = None,
    aggregates: Optional[Mapping[str, str]] = None,
) -> Dict[str, Any]:
    """
    One value per requested ``column -> function`` under the browse filter.
    Unknown columns/functions are dropped; an engine failure yields ``{}``.
    """
    meta = registry.resolve_tabular(db, owner_id, ref)
    if aggregates is not None and not isinstance(aggregates, Mapping):
        raise errors.ValidationError("Aggregates must be an object of column -> function")

    table = registry.build_table(meta)
    tree = filtering.normalize(filters)
    filtering.ensure_known_columns(tree, table.c.keys())

    selected = []
    for column, fn_name in (aggregates or {}).items():
        fn = AGGREGATE_FUNCTIONS.get(str(fn_name or "").strip().upper())
        if fn is None or column not in table.c:
            continue
        selected.append(fn(table.c[column]).label(column))
    if not selected:
        return {}

    stmt = select(*selected).select_from(table)
    where = filtering.compile_filter(tree, table.c)
    if where is not None:
        stmt = stmt.where(where)

    try:
        row = db.execute(stmt).mappings().first()
    except SQLAlchemyError as exc:
        log.warning(
            "Aggregates on %s degraded to empty: %s", meta.internal_name, registry.engine_message(exc)
        )
        return {}
    return dict(row) if row else {}
