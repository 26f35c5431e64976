# File: /app/routers/query.py | Version: 1.0 | Title: Free-form SQL Router (sandboxed preview & save)
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.engine import sandbox
from app.schemas.query import QueryPreviewOut, QueryPreviewRequest, QuerySaveRequest
from app.schemas.tables import TableMetaOut
from app.security import get_current_owner_id

router = APIRouter(prefix="/query", tags=["Query"])


@router.post("/preview", response_model=QueryPreviewOut)
def preview_query(
    body: QueryPreviewRequest,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_owner_id),
):
    return sandbox.preview(db, owner_id, body.sql)


@router.post("/save", response_model=TableMetaOut)
def save_query(
    body: QuerySaveRequest,
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_owner_id),
):
    return sandbox.materialize(db, owner_id, body.sql, body.table_name, body.project_id)
