# File: /app/schemas/filters.py | Version: 2.1 | Title: Filter Tree, Sort & Grouping Schemas
from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, Discriminator, Field, Tag, field_validator

# Scalar stored in a dynamic table cell (and accepted as a filter operand).
CellValue = Optional[Union[bool, int, float, str]]


class FilterOperator(str, Enum):
    eq = "="
    ne = "!="
    gt = ">"
    lt = "<"
    gte = ">="
    lte = "<="
    like = "LIKE"
    not_like = "NOT LIKE"
    is_empty = "IS EMPTY"
    is_not_empty = "IS NOT EMPTY"

    @classmethod
    def parse(cls, raw: Any) -> "FilterOperator":
        """Unknown operators compare for equality."""
        text = " ".join(str(raw or "").upper().split())
        try:
            return cls(text)
        except ValueError:
            return cls.eq


class Logic(str, Enum):
    and_ = "AND"
    or_ = "OR"


def _upper(value: Any) -> Any:
    return value.upper() if isinstance(value, str) else value


class Condition(BaseModel):
    type: Literal["condition"] = "condition"
    column: str = ""
    operator: str = "="
    value: CellValue = None
    # Connector to the previous sibling; ignored for the first item.
    logic: Optional[Logic] = None

    @field_validator("column", mode="before")
    @classmethod
    def _null_column(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("logic", mode="before")
    @classmethod
    def _upper_logic(cls, v: Any) -> Any:
        return _upper(v) or None

    @property
    def op(self) -> FilterOperator:
        return FilterOperator.parse(self.operator)


class Group(BaseModel):
    type: Literal["group"] = "group"
    logic: Logic = Logic.and_
    items: List[FilterNode] = Field(default_factory=list)

    @field_validator("logic", mode="before")
    @classmethod
    def _upper_logic(cls, v: Any) -> Any:
        return _upper(v) or Logic.and_


def _node_tag(value: Any) -> Optional[str]:
    # Clients that predate the "type" field send bare {column,...} or {items,...}.
    if isinstance(value, dict):
        tag = value.get("type")
        if tag:
            return tag
        return "group" if "items" in value else "condition"
    return getattr(value, "type", None)


FilterNode = Annotated[
    Union[Annotated[Condition, Tag("condition")], Annotated[Group, Tag("group")]],
    Discriminator(_node_tag),
]

Group.model_rebuild()


class SortDirection(str, Enum):
    asc = "ASC"
    desc = "DESC"


class SortItem(BaseModel):
    column: str = ""
    direction: SortDirection = SortDirection.asc

    @field_validator("direction", mode="before")
    @classmethod
    def _lenient_direction(cls, v: Any) -> SortDirection:
        text = str(v or "").strip().upper()
        return SortDirection.desc if text == "DESC" else SortDirection.asc
