# File: /app/schemas/tables.py | Version: 1.0 | Title: Table registry, row & column schemas
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import AliasChoices, Field, field_validator, model_validator

from app.schemas._base import CamelSchema
from app.schemas.filters import CellValue


class ColumnType(str, Enum):
    text = "TEXT"
    integer = "INTEGER"
    real = "REAL"


class ColumnMeta(CamelSchema):
    internal_name: str
    display_name: str
    type: ColumnType = ColumnType.text


class TableMetaOut(CamelSchema):
    id: int
    display_name: str
    internal_name: str
    project_id: Optional[int] = None
    kind: Literal["tabular", "document"] = "tabular"
    columns: List[ColumnMeta] = Field(default_factory=list)
    manual_order: bool = False
    created_at: Optional[datetime] = None


class ColumnOverlay(CamelSchema):
    internal_name: str
    display_name: Optional[str] = None
    type: Optional[ColumnType] = None


class TableMetaUpdate(CamelSchema):
    """Partial update; an explicit ``projectId: null`` moves the table to uncategorized."""

    display_name: Optional[str] = Field(
        default=None,
        min_length=1,
        validation_alias=AliasChoices("displayName", "display_name", "name"),
    )
    project_id: Optional[int] = None
    columns: Optional[List[ColumnOverlay]] = None

    @field_validator("project_id", mode="before")
    @classmethod
    def _uncategorized_tokens(cls, value: Any) -> Any:
        if isinstance(value, str) and value.strip().lower() in {"", "null", "none", "uncategorized"}:
            return None
        if value == -1 or value == "-1":
            return None
        return value


class CellUpdate(CamelSchema):
    column: str = Field(min_length=1)
    value: CellValue = None


class RowPosition(CamelSchema):
    row_id: int
    direction: Literal["before", "after"] = "after"


class RowCreate(CamelSchema):
    data: Dict[str, CellValue] = Field(default_factory=dict)
    position: Optional[RowPosition] = None

    @model_validator(mode="before")
    @classmethod
    def _wrap_legacy_body(cls, value: Any) -> Any:
        # Older clients post the bare row object.
        if isinstance(value, dict) and "data" not in value and "position" not in value:
            return {"data": value}
        return value


class ColumnCreate(CamelSchema):
    name: str = Field(min_length=1)
    type: ColumnType = ColumnType.text


class DataPage(CamelSchema):
    data: List[Dict[str, Any]]
    total: int
    page: int
    page_size: int
    total_pages: int
    group_headers: Optional[List[Dict[str, Any]]] = None


class RowLocation(CamelSchema):
    page: int
    index_in_page: int
    row_number: int
    page_size: int
    row_id: int


class UploadResult(CamelSchema):
    table_name: str  # internal name; usable as {table} in later calls
    table_id: int
    display_name: str
    type: Literal["tabular", "document"] = "tabular"
    columns: Optional[List[ColumnMeta]] = None


class SearchResult(CamelSchema):
    table: str
    table_name: str
    table_id: int
    matches: List[Dict[str, Any]] = Field(default_factory=list)
    match_reason: Optional[str] = None
    total_count: int = 0
