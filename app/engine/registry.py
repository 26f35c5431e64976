# File: /app/engine/registry.py | Version: 1.0 | Title: Schema Registry (TableMeta <-> backing relational tables)
"""
Schema Registry.

Each tenant-visible dataset is a ``TableMeta`` row plus (for tabular data) a
backing table named by a generated ``internal_name``. Backing tables are
described at runtime as SQLAlchemy Core ``Table`` objects, so identifiers are
always quoted by the dialect and values always travel as bound parameters.

Every multi-statement mutation runs inside :func:`atomic`; together with the
transactional-DDL hooks in ``app.db.session`` a failure rolls back the DDL too.
"""
from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence

from sqlalchemy import INTEGER, REAL, TEXT, Column, MetaData, Table, false, or_, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core import errors
from app.core.config import settings
from app.crud.projects import get_owned_project
from app.engine.identifiers import (
    ORDER_COLUMN,
    RESERVED_COLUMNS,
    SURROGATE_KEY,
    new_internal_table_name,
    reserved_names,
    sanitize_headers,
    unique_identifier,
)
from app.models import TableMeta
from app.schemas.filters import CellValue
from app.schemas.tables import ColumnMeta, ColumnOverlay, ColumnType, TableMetaUpdate

log = logging.getLogger(__name__)

_SQL_TYPES = {
    ColumnType.text: TEXT,
    ColumnType.integer: INTEGER,
    ColumnType.real: REAL,
}

_UNCATEGORIZED_TOKENS = {"uncategorized", "-1", "null", "none"}


# ---------------------------
# Transactions
# ---------------------------


def engine_message(exc: SQLAlchemyError) -> str:
    orig = getattr(exc, "orig", None)
    return str(orig) if orig is not None else str(exc)


@contextmanager
def atomic(db: Session) -> Iterator[Session]:
    """Commit on success; roll back everything (DDL included) on any failure."""
    try:
        yield db
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        log.warning("Engine statement failed, rolled back: %s", engine_message(exc))
        raise errors.EngineExecutionError(engine_message(exc)) from exc
    except Exception:
        db.rollback()
        raise


def quote(db: Session, name: str) -> str:
    return db.get_bind().dialect.identifier_preparer.quote_identifier(name)


# ---------------------------
# Column metadata & type inference
# ---------------------------


def infer_type(value: Any) -> Optional[ColumnType]:
    """Type of one sample value; None when the value carries no type information."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return ColumnType.integer
    if isinstance(value, int):
        return ColumnType.integer
    if isinstance(value, float):
        return ColumnType.integer if value.is_integer() else ColumnType.real
    return ColumnType.text


def infer_column_types(width: int, rows: Sequence[Sequence[Any]], sample_size: int) -> List[ColumnType]:
    sample = list(rows[:sample_size])
    types: List[ColumnType] = []
    for i in range(width):
        inferred = None
        for row in sample:
            inferred = infer_type(row[i] if i < len(row) else None)
            if inferred is not None:
                break
        types.append(inferred or ColumnType.text)
    return types


def coerce_cell(value: CellValue) -> CellValue:
    if isinstance(value, bool):
        return int(value)
    return value


def columns_of(meta: TableMeta) -> List[ColumnMeta]:
    return [ColumnMeta.model_validate(c) for c in meta.columns or []]


def _dump_columns(columns: Iterable[ColumnMeta]) -> List[Dict[str, Any]]:
    return [c.model_dump(mode="json") for c in columns]


def build_table(meta: TableMeta) -> Table:
    """Core ``Table`` describing the backing table of ``meta``."""
    cols = [Column(SURROGATE_KEY, INTEGER, primary_key=True, autoincrement=True)]
    for c in columns_of(meta):
        cols.append(Column(c.internal_name, _SQL_TYPES[c.type], quote=True))
    if meta.manual_order:
        cols.append(Column(ORDER_COLUMN, REAL, quote=True))
    return Table(meta.internal_name, MetaData(), *cols, quote=True, sqlite_autoincrement=True)


def writable_columns(meta: TableMeta) -> List[str]:
    return [c.internal_name for c in columns_of(meta)]


def row_values(names: Sequence[str], row: Sequence[Any]) -> Dict[str, CellValue]:
    return {name: coerce_cell(row[i]) if i < len(row) else None for i, name in enumerate(names)}


# ---------------------------
# Scoping & resolution
# ---------------------------


@dataclass(frozen=True)
class ProjectScope:
    project_ids: tuple = ()
    uncategorized: bool = False

    @classmethod
    def parse(cls, raw: Any) -> Optional["ProjectScope"]:
        """
        None/empty means "all tables". Accepts a list, JSON array text,
        comma-separated text or a single id / "uncategorized" token.
        """
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            return None
        if isinstance(raw, str):
            stripped = raw.strip()
            if stripped.startswith("["):
                try:
                    raw = json.loads(stripped)
                except ValueError:
                    raise errors.ValidationError("Invalid project scope")
            else:
                raw = [part for part in stripped.split(",") if part.strip()]
        if not isinstance(raw, (list, tuple)):
            raw = [raw]

        ids: List[int] = []
        uncategorized = False
        for item in raw:
            token = str(item).strip().lower()
            if token in _UNCATEGORIZED_TOKENS:
                uncategorized = True
                continue
            try:
                ids.append(int(token))
            except ValueError:
                raise errors.ValidationError(f"Invalid project id: {item}")
        return cls(tuple(ids), uncategorized)

    def clause(self):
        parts = []
        if self.project_ids:
            parts.append(TableMeta.project_id.in_(self.project_ids))
        if self.uncategorized:
            parts.append(TableMeta.project_id.is_(None))
        return or_(*parts) if parts else false()


def list_tables(db: Session, owner_id: str, scope: Optional[ProjectScope] = None) -> List[TableMeta]:
    stmt = select(TableMeta).where(TableMeta.owner_id == str(owner_id))
    if scope is not None:
        stmt = stmt.where(scope.clause())
    stmt = stmt.order_by(TableMeta.created_at.desc(), TableMeta.id.desc())
    return list(db.execute(stmt).scalars().all())


def resolve(db: Session, owner_id: str, ref: Any) -> TableMeta:
    """
    Find an owned table by internal name, numeric id, or unique display name.
    Missing and foreign tables raise the same NotFoundOrForbidden.
    """
    key = str(ref if ref is not None else "").strip()
    if not key:
        raise errors.NotFoundOrForbidden("Table not found")

    owned = select(TableMeta).where(TableMeta.owner_id == str(owner_id))
    meta = db.execute(owned.where(TableMeta.internal_name == key)).scalar_one_or_none()
    if meta is None and key.isdigit():
        meta = db.execute(owned.where(TableMeta.id == int(key))).scalar_one_or_none()
    if meta is None:
        by_name = db.execute(owned.where(TableMeta.display_name == key).limit(2)).scalars().all()
        if len(by_name) == 1:
            meta = by_name[0]
    if meta is None:
        raise errors.NotFoundOrForbidden("Table not found")
    return meta


def resolve_tabular(db: Session, owner_id: str, ref: Any) -> TableMeta:
    meta = resolve(db, owner_id, ref)
    if meta.is_document:
        raise errors.ValidationError("Documents have no rows or columns")
    return meta


def owned_tabular_names(db: Session, owner_id: str) -> set:
    stmt = select(TableMeta.internal_name).where(
        TableMeta.owner_id == str(owner_id), TableMeta.kind == "tabular"
    )
    return {name.lower() for name in db.execute(stmt).scalars()}


# ---------------------------
# Create / register
# ---------------------------


def create_from_rows(
    db: Session,
    *,
    owner_id: str,
    display_name: str,
    headers: Sequence[Any],
    rows: Sequence[Sequence[Any]],
    project_id: Optional[int] = None,
    sample_size: Optional[int] = None,
) -> TableMeta:
    """Create the backing table, bulk-insert ``rows`` and register it, atomically."""
    if not headers:
        raise errors.ValidationError("The sheet has no header row")
    if project_id is not None:
        get_owned_project(db, owner_id, project_id)

    names = sanitize_headers(headers)
    types = infer_column_types(len(names), rows, sample_size or settings.TYPE_SAMPLE_ROWS)
    columns = [
        ColumnMeta(
            internal_name=name,
            display_name=str(header).strip() if header is not None and str(header).strip() else name,
            type=col_type,
        )
        for name, header, col_type in zip(names, headers, types)
    ]
    meta = TableMeta(
        display_name=(display_name or "").strip() or "Untitled",
        internal_name=new_internal_table_name(),
        owner_id=str(owner_id),
        project_id=project_id,
        kind="tabular",
        columns=_dump_columns(columns),
        manual_order=False,
    )
    table = build_table(meta)
    payload = [row_values(names, row) for row in rows]

    with atomic(db):
        table.create(bind=db.connection())
        if payload:
            db.execute(table.insert(), payload)
        db.add(meta)
        db.flush()
    db.refresh(meta)
    log.info(
        "Created table %s (%s) with %d columns, %d rows",
        meta.internal_name,
        meta.display_name,
        len(columns),
        len(payload),
    )
    return meta


def register_document(
    db: Session,
    *,
    owner_id: str,
    display_name: str,
    stored_file_path: str,
    project_id: Optional[int] = None,
) -> TableMeta:
    if project_id is not None:
        get_owned_project(db, owner_id, project_id)
    meta = TableMeta(
        display_name=(display_name or "").strip() or "Untitled",
        internal_name=new_internal_table_name(),
        owner_id=str(owner_id),
        project_id=project_id,
        kind="document",
        file_path=str(stored_file_path),
        columns=[],
        manual_order=False,
    )
    with atomic(db):
        db.add(meta)
        db.flush()
    db.refresh(meta)
    log.info("Registered document %s (%s)", meta.internal_name, meta.display_name)
    return meta


# ---------------------------
# Update / drop
# ---------------------------


def _overlay_columns(meta: TableMeta, overlays: Sequence[ColumnOverlay]) -> List[Dict[str, Any]]:
    current = columns_of(meta)
    by_name = {c.internal_name.lower(): c for c in current}
    for ov in overlays:
        col = by_name.get(ov.internal_name.lower())
        if col is None:
            raise errors.ValidationError(f"Unknown column: {ov.internal_name}")
        if ov.display_name is not None and ov.display_name.strip():
            col.display_name = ov.display_name.strip()
        if ov.type is not None:
            col.type = ov.type
    return _dump_columns(current)


def update_meta(db: Session, owner_id: str, ref: Any, changes: TableMetaUpdate) -> TableMeta:
    meta = resolve(db, owner_id, ref)
    fields = changes.model_fields_set

    with atomic(db):
        if "display_name" in fields and changes.display_name is not None:
            name = changes.display_name.strip()
            if not name:
                raise errors.ValidationError("Display name cannot be empty")
            meta.display_name = name
        if "project_id" in fields:
            if changes.project_id is not None:
                get_owned_project(db, owner_id, changes.project_id)
            meta.project_id = changes.project_id
        if changes.columns is not None:
            meta.columns = _overlay_columns(meta, changes.columns)
        db.flush()
    db.refresh(meta)
    return meta


def remove_stored_file(path: Optional[str]) -> None:
    """File removal cannot join a transaction; callers run it after commit."""
    if not path:
        return
    try:
        Path(path).unlink(missing_ok=True)
    except OSError as exc:
        log.warning("Could not remove stored document %s: %s", path, exc)


def drop_entry(db: Session, meta: TableMeta) -> Optional[str]:
    """
    Drop the backing table and delete the registry row inside the caller's
    transaction. Returns the document path to remove once committed.
    """
    file_path = meta.file_path if meta.is_document else None
    if not meta.is_document:
        build_table(meta).drop(bind=db.connection(), checkfirst=True)
    db.delete(meta)
    return file_path


def drop(db: Session, owner_id: str, ref: Any) -> None:
    meta = resolve(db, owner_id, ref)
    internal_name = meta.internal_name
    with atomic(db):
        file_path = drop_entry(db, meta)
        db.flush()
    remove_stored_file(file_path)
    log.info("Dropped table %s", internal_name)


# ---------------------------
# Live schema changes
# ---------------------------


def add_column(
    db: Session,
    owner_id: str,
    ref: Any,
    name: str,
    col_type: ColumnType = ColumnType.text,
) -> ColumnMeta:
    """
    Add a nullable column. Re-using an existing display name is an error; a new
    name that merely sanitizes onto an existing identifier gets a ``_n`` suffix.
    """
    meta = resolve_tabular(db, owner_id, ref)
    display = (name or "").strip()
    if not display:
        raise errors.ValidationError("Column name is required")

    current = columns_of(meta)
    if any(c.display_name.strip().lower() == display.lower() for c in current):
        raise errors.ValidationError(f"Column already exists: {display}")

    taken = reserved_names(c.internal_name for c in current)
    column = ColumnMeta(
        internal_name=unique_identifier(display, taken),
        display_name=display,
        type=col_type,
    )
    ddl = (
        f"ALTER TABLE {quote(db, meta.internal_name)} "
        f"ADD COLUMN {quote(db, column.internal_name)} {column.type.value}"
    )
    with atomic(db):
        db.execute(text(ddl))
        meta.columns = _dump_columns([*current, column])
        db.flush()
    log.info("Added column %s to %s", column.internal_name, meta.internal_name)
    return column


def drop_column(db: Session, owner_id: str, ref: Any, column_name: str) -> None:
    meta = resolve_tabular(db, owner_id, ref)
    key = (column_name or "").strip().lower()
    if key in {r.lower() for r in RESERVED_COLUMNS}:
        raise errors.ValidationError(f"Column cannot be removed: {column_name}")

    current = columns_of(meta)
    target = next((c for c in current if c.internal_name.lower() == key), None)
    if target is None:
        raise errors.ValidationError(f"Unknown column: {column_name}")

    ddl = (
        f"ALTER TABLE {quote(db, meta.internal_name)} "
        f"DROP COLUMN {quote(db, target.internal_name)}"
    )
    with atomic(db):
        db.execute(text(ddl))
        meta.columns = _dump_columns(c for c in current if c is not target)
        db.flush()
    log.info("Dropped column %s from %s", target.internal_name, meta.internal_name)
