# File: /app/routers/upload.py | Version: 1.0 | Title: Upload Router (spreadsheets -> tables, documents -> stored files)
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional
from uuid import uuid4

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from sqlalchemy.orm import Session

from app.core import errors
from app.core.config import settings
from app.db.session import get_db
from app.engine import registry, spreadsheet
from app.schemas.tables import UploadResult
from app.security import get_current_owner_id

log = logging.getLogger(__name__)

router = APIRouter(tags=["Upload"])

_NO_PROJECT = {"", "null", "none", "uncategorized", "-1"}


def _project_id(raw: Optional[str]) -> Optional[int]:
    token = (raw or "").strip().lower()
    if token in _NO_PROJECT:
        return None
    try:
        return int(token)
    except ValueError:
        raise errors.ValidationError(f"Invalid project id: {raw}")


def _read_limited(file: UploadFile) -> bytes:
    limit = settings.MAX_UPLOAD_BYTES
    contents = file.file.read(limit + 1)
    if len(contents) > limit:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File exceeds {limit} bytes",
        )
    if not contents:
        raise errors.ValidationError("Uploaded file is empty")
    return contents


def _store_document(contents: bytes, filename: str) -> Path:
    folder = Path(settings.DATA_DIR) / "documents"
    folder.mkdir(parents=True, exist_ok=True)
    target = folder / f"{uuid4().hex}{Path(filename).suffix.lower()}"
    target.write_bytes(contents)
    return target


@router.post(
    "/upload",
    response_model=UploadResult,
    response_model_exclude_none=True,
    summary="Upload a spreadsheet (becomes a table) or a document",
)
def upload_file(
    file: UploadFile = File(...),
    project_id: Optional[str] = Form(default=None, alias="projectId"),
    sheet: Optional[str] = Form(default=None),
    header_row: int = Form(default=1, alias="headerRow"),
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_owner_id),
):
    filename = file.filename or ""
    kind = spreadsheet.file_kind(filename)
    target_project = _project_id(project_id)
    contents = _read_limited(file)
    display_name = spreadsheet.display_name_for(filename)

    if kind == "document":
        stored = _store_document(contents, filename)
        try:
            meta = registry.register_document(
                db,
                owner_id=owner_id,
                display_name=display_name,
                stored_file_path=str(stored),
                project_id=target_project,
            )
        except Exception:
            registry.remove_stored_file(str(stored))
            raise
        return UploadResult(
            table_name=meta.internal_name,
            table_id=meta.id,
            display_name=meta.display_name,
            type="document",
        )

    parsed = spreadsheet.read_sheet(contents, filename, sheet=sheet, header_row=header_row)
    meta = registry.create_from_rows(
        db,
        owner_id=owner_id,
        display_name=display_name,
        headers=parsed.headers,
        rows=parsed.rows,
        project_id=target_project,
    )
    log.info("Imported %s as %s (%d rows)", filename, meta.internal_name, len(parsed.rows))
    return UploadResult(
        table_name=meta.internal_name,
        table_id=meta.id,
        display_name=meta.display_name,
        columns=registry.columns_of(meta),
    )


@router.post("/upload/sheets", response_model=list[str], summary="List the sheets of a workbook before import")
def list_workbook_sheets(
    file: UploadFile = File(...),
    owner_id: str = Depends(get_current_owner_id),
):
    filename = file.filename or ""
    if spreadsheet.file_kind(filename) != "spreadsheet":
        raise errors.ValidationError("Only spreadsheets have sheets")
    return spreadsheet.list_sheets(_read_limited(file), filename)
