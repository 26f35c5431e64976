# File: /app/routers/search.py | Version: 1.0 | Title: Cross-Table Search Router
from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.engine import ordering, registry, search
from app.schemas.tables import SearchResult
from app.security import get_current_owner_id

router = APIRouter(tags=["Search"])


@router.get("/search", response_model=List[SearchResult])
def search_tables(
    q: Optional[str] = Query(default=None),
    filters: Optional[str] = Query(default=None),
    project_id: Optional[str] = Query(default=None, alias="projectId"),
    project_ids: Optional[str] = Query(default=None, alias="projectIds"),
    db: Session = Depends(get_db),
    owner_id: str = Depends(get_current_owner_id),
):
    """
    Text (`q`) and/or filter search across every owned table in scope.
    `projectIds` (JSON array or comma list) wins over the legacy `projectId`.
    """
    scope = registry.ProjectScope.parse(project_ids if project_ids is not None else project_id)
    return search.search_tables(
        db,
        owner_id,
        query=q,
        filters=ordering.parse_json_param(filters, "filters"),
        scope=scope,
    )
