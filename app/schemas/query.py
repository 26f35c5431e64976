# File: /app/schemas/query.py | Version: 1.0 | Title: Free-form SQL request/response schemas
from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import Field

from app.schemas._base import CamelSchema


class QueryPreviewRequest(CamelSchema):
    sql: str = Field(min_length=1)


class QuerySaveRequest(CamelSchema):
    sql: str = Field(min_length=1)
    table_name: str = Field(min_length=1, max_length=255)
    project_id: Optional[int] = None


class QueryPreviewOut(CamelSchema):
    columns: List[str]
    data: List[Dict[str, Any]]
