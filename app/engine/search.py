# File: /app/engine/search.py | Version: 1.1 | Title: Cross-Table Search (best-effort per table)
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import TEXT, and_, cast, func, literal_column, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.engine import filtering, registry
from app.models import TableMeta

log = logging.getLogger(__name__)

_SEPARATOR = literal_column("' '")
_BLANK = literal_column("''")


def _metadata_reason(meta: TableMeta, needle: str) -> Optional[str]:
    if not needle:
        return None
    lowered = needle.lower()
    reasons = []
    if lowered in meta.display_name.lower():
        reasons.append("Table name matches")
    matched = [c.display_name for c in registry.columns_of(meta) if lowered in c.display_name.lower()]
    if matched:
        reasons.append(f"Column names match: {', '.join(matched)}")
    return "; ".join(reasons) or None


def _text_clause(table, names: List[str], needle: str):
    """``coalesce(cast(c1 as text),'') || ' ' || ... LIKE '%needle%'`` over the user-visible columns."""
    if not names:
        return None
    parts = [func.coalesce(cast(table.c[name], TEXT), _BLANK) for name in names]
    haystack = parts[0]
    for part in parts[1:]:
        haystack = haystack.concat(_SEPARATOR).concat(part)
    return haystack.like(f"%{needle}%")


def search_tables(
    db: Session,
    owner_id: str,
    *,
    query: Optional[str] = None,
    filters: Any = None,
    scope: Optional[registry.ProjectScope] = None,
) -> List[Dict[str, Any]]:
    """
    Run a text and/or filter query over every owned table in ``scope``.
    Filter conditions on columns a table lacks are pruned for that table;
    a failing table is skipped.
    """
    needle = (query or "").strip()
    tree = filtering.normalize(filters)
    if not needle and tree is None:
        return []

    limit = settings.SEARCH_MATCHES_PER_TABLE
    results: List[Dict[str, Any]] = []
    for meta in registry.list_tables(db, owner_id, scope):
        reason = _metadata_reason(meta, needle)
        entry = {
            "table": meta.internal_name,
            "table_name": meta.display_name,
            "table_id": meta.id,
            "matches": [],
            "match_reason": reason,
            "total_count": 0,
        }
        if meta.is_document:
            if reason:
                results.append(entry)
            continue

        table = registry.build_table(meta)
        clauses = []
        if needle:
            visible = [c.internal_name for c in registry.columns_of(meta)]
            text_clause = _text_clause(table, visible, needle)
            if text_clause is None:
                if reason:
                    results.append(entry)
                continue
            clauses.append(text_clause)
        pruned = filtering.prune_unknown(tree, set(table.c.keys()))
        filter_clause = filtering.compile_filter(pruned, table.c)
        if filter_clause is not None:
            clauses.append(filter_clause)
        if not clauses:
            if reason:
                results.append(entry)
            continue

        where = and_(*clauses) if len(clauses) > 1 else clauses[0]
        try:
            total = db.execute(select(func.count()).select_from(table).where(where)).scalar_one()
            rows = db.execute(select(table).where(where).order_by(table.c.id.asc()).limit(limit)).mappings()
            matches = [
                {**dict(r), "_source_table": meta.display_name, "_source_table_id": meta.id}
                for r in rows
            ]
        except SQLAlchemyError as exc:
            log.warning("Search skipped table %s: %s", meta.internal_name, registry.engine_message(exc))
            continue

        if matches or reason:
            entry["matches"] = matches
            entry["total_count"] = total
            results.append(entry)
    return results
