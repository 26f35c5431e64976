# File: /app/routers/tables.py | Version: 1.0 | Title: Tables Router (registry, browse, rows, columns, export)
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

from fastapi import APIRouter, Depends, Query
from fastapi.responses import FileResponse, Response
from sqlalchemy.orm import Session

from app.core import errors
from app.db.session import get_db
from app.engine import aggregates as aggregate_engine
from app.engine import ordering, registry, rows, spreadsheet
from app.schemas.filters import SortItem
from app.schemas.tables import (
    CellUpdate,
    ColumnCreate,
    ColumnMeta,
    DataPage,
    RowCreate,
    RowLocation,
    TableMetaOut,
    TableMetaUpdate,
)
from app.security import get_current_owner_id

router = APIRouter(prefix="/tables", tags=["Tables"])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


# ----------------------------
# Helpers
# ----------------------------
def _browse_params(
    filters: Optional[str], sorts: Optional[str], groups: Optional[str]
) -> Tuple[Any, List[SortItem], List[str]]:
    """Decode the JSON-encoded browse parameters shared by data and locate."""
    return (
        ordering.parse_json_param(filters, "filters"),
        ordering.parse_sorts(ordering.parse_json_param(sorts, "sorts")),
        ordering.parse_groups(ordering.parse_json_param(groups, "groups")),
    )


def _attachment(filename: str) -> str:
    # RFC 6266 / 5987: ASCII fallback plus UTF-8 encoded name
    fallback = filename.encode("ascii", "ignore").decode() or "export.xlsx"
    fallback = fallback.replace('"', "")
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename)}"


# ----------------------------
# Registry
# ----------------------------
@router.get("", response_model=List[TableMetaOut], summary="List my tables (optionally by project)")
def list_tables(
    project_id: Optional[str] = Query(default=None, alias="projectId"),
    project_ids: Optional[str] = Query(default=None, alias="projectIds"),
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_owner_id),
):
    scope = registry.ProjectScope.parse(project_ids if project_ids is not None else project_id)
    return registry.list_tables(db, owner_id, scope)


@router.put("/{table}", response_model=TableMetaOut)
def update_table(
    table: str,
    body: TableMetaUpdate,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_owner_id),
):
    return registry.update_meta(db, owner_id, table, body)


@router.delete("/{table}")
def delete_table(
    table: str,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_owner_id),
):
    registry.drop(db, owner_id, table)
    return {"success": True}


# ----------------------------
# Browse
# ----------------------------
@router.get("/{table}/data", response_model=DataPage)
def get_table_data(
    table: str,
    page: int = Query(default=1, ge=1),
    page_size: Optional[int] = Query(default=None, alias="pageSize", ge=1),
    filters: Optional[str] = Query(default=None),
    sorts: Optional[str] = Query(default=None),
    groups: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_owner_id),
):
    raw_filters, sort_items, group_cols = _browse_params(filters, sorts, groups)
    return rows.fetch_page(
        db,
        owner_id,
        table,
        page=page,
        page_size=page_size,
        filters=raw_filters,
        sorts=sort_items,
        groups=group_cols,
    )


@router.get("/{table}/aggregates", response_model=Dict[str, Any])
def get_aggregates(
    table: str,
    filters: Optional[str] = Query(default=None),
    aggregates: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_owner_id),
):
    return aggregate_engine.compute_aggregates(
        db,
        owner_id,
        table,
        filters=ordering.parse_json_param(filters, "filters"),
        aggregates=ordering.parse_json_param(aggregates, "aggregates"),
    )


# ----------------------------
# Rows
# ----------------------------
@router.post("/{table}/rows")
def create_row(
    table: str,
    body: RowCreate,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_owner_id),
):
    new_id = rows.insert_row(db, owner_id, table, body.data, body.position)
    return {"id": new_id}


@router.put("/{table}/rows/{row_id}")
def update_row_cell(
    table: str,
    row_id: int,
    body: CellUpdate,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_owner_id),
):
    rows.update_cell(db, owner_id, table, row_id, body.column, body.value)
    return {"success": True}


@router.delete("/{table}/rows/{row_id}")
def delete_row(
    table: str,
    row_id: int,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_owner_id),
):
    rows.delete_row(db, owner_id, table, row_id)
    return {"success": True}


@router.get("/{table}/rows/{row_id}/locate", response_model=RowLocation)
def locate_row(
    table: str,
    row_id: int,
    page_size: Optional[int] = Query(default=None, alias="pageSize", ge=1),
    filters: Optional[str] = Query(default=None),
    sorts: Optional[str] = Query(default=None),
    groups: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_owner_id),
):
    raw_filters, sort_items, group_cols = _browse_params(filters, sorts, groups)
    return rows.locate_row(
        db,
        owner_id,
        table,
        row_id,
        page_size=page_size,
        filters=raw_filters,
        sorts=sort_items,
        groups=group_cols,
    )


# ----------------------------
# Columns
# ----------------------------
@router.post("/{table}/columns", response_model=ColumnMeta)
def add_column(
    table: str,
    body: ColumnCreate,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_owner_id),
):
    return registry.add_column(db, owner_id, table, body.name, body.type)


@router.delete("/{table}/columns/{column}")
def drop_column(
    table: str,
    column: str,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_owner_id),
):
    registry.drop_column(db, owner_id, table, column)
    return {"success": True}


# ----------------------------
# Downloads
# ----------------------------
@router.get("/{table}/export", summary="Download the table as an .xlsx workbook")
def export_table(
    table: str,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_owner_id),
):
    meta, headers, values = rows.export_rows(db, owner_id, table)
    content = spreadsheet.export_workbook(headers, values, sheet_name=meta.display_name)
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": _attachment(f"{meta.display_name}.xlsx")},
    )


@router.get("/{table}/file", summary="Download the stored document")
def download_document(
    table: str,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_owner_id),
):
    meta = registry.resolve(db, owner_id, table)
    if not meta.is_document:
        raise errors.ValidationError("Only documents have a stored file")
    path = Path(meta.file_path or "")
    if not meta.file_path or not path.is_file():
        raise errors.NotFoundOrForbidden("File not found")
    return FileResponse(path, filename=f"{meta.display_name}{path.suffix}")
