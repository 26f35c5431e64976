# File: /app/engine/filtering.py | Version: 1.1 | Title: Filter Tree Compiler (Condition | Group -> SQL expression)
"""
Compile a client filter tree into a SQLAlchemy boolean expression.

The compiler trusts the column names it is given; callers allowlist them
first with :func:`ensure_known_columns` (browse, aggregates) or
:func:`prune_unknown` (cross-table search).
"""
from __future__ import annotations

import logging
from typing import Any, Iterable, List, Mapping, Optional, Set, Union

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import and_, literal_column, or_

from app.core import errors
from app.schemas.filters import Condition, FilterNode, FilterOperator, Group, Logic

log = logging.getLogger(__name__)

_node_adapter: TypeAdapter = TypeAdapter(FilterNode)

# Literal '' keeps IS EMPTY / IS NOT EMPTY free of bound parameters.
_EMPTY_TEXT = literal_column("''")


def _drop_blank_columns(node: Union[Condition, Group]) -> Optional[Union[Condition, Group]]:
    """Half-built conditions (no column picked yet) contribute nothing."""
    if isinstance(node, Condition):
        return node if node.column.strip() else None
    kept = [k for k in (_drop_blank_columns(i) for i in node.items) if k is not None]
    return node.model_copy(update={"items": kept})


def normalize(raw: Any) -> Optional[Group]:
    """
    Parse either a tree (one node) or a legacy flat array into a single Group.
    A flat array becomes an AND group whose items keep their own ``logic``.
    Conditions with a blank column are dropped.
    """
    if raw is None or raw == "" or raw == []:
        return None
    try:
        if isinstance(raw, (Condition, Group)):
            node = raw
        elif isinstance(raw, list):
            node = Group(logic=Logic.and_, items=[_node_adapter.validate_python(i) for i in raw])
        else:
            node = _node_adapter.validate_python(raw)
    except PydanticValidationError as exc:
        raise errors.ValidationError(f"Invalid filters: {exc.errors()[0].get('msg', 'malformed')}")
    node = _drop_blank_columns(node)
    if node is None:
        return None
    if isinstance(node, Condition):
        return Group(logic=Logic.and_, items=[node])
    return node


def referenced_columns(node: Optional[Union[Condition, Group]]) -> Set[str]:
    if node is None:
        return set()
    if isinstance(node, Condition):
        return {node.column}
    found: Set[str] = set()
    for item in node.items:
        found |= referenced_columns(item)
    return found


def ensure_known_columns(node: Optional[Group], known: Iterable[str]) -> None:
    unknown = referenced_columns(node) - set(known)
    if unknown:
        raise errors.ValidationError(f"Unknown filter column: {sorted(unknown)[0]}")


def prune_unknown(node: Optional[Union[Condition, Group]], known: Set[str]):
    """Copy of ``node`` without conditions on columns outside ``known``; None if nothing remains."""
    if node is None:
        return None
    if isinstance(node, Condition):
        return node if node.column in known else None
    kept = [p for p in (prune_unknown(i, known) for i in node.items) if p is not None]
    if not kept:
        return None
    return node.model_copy(update={"items": kept})


def _compile_condition(cond: Condition, columns: Mapping[str, Any]):
    col = columns[cond.column]
    op = cond.op
    value = cond.value

    if op == FilterOperator.is_empty:
        return or_(col.is_(None), col == _EMPTY_TEXT)
    if op == FilterOperator.is_not_empty:
        return and_(col.is_not(None), col != _EMPTY_TEXT)
    if op == FilterOperator.like:
        return col.like(f"%{'' if value is None else value}%")
    if op == FilterOperator.not_like:
        return col.not_like(f"%{'' if value is None else value}%")
    if op == FilterOperator.ne:
        return col != value
    if op == FilterOperator.gt:
        return col > value
    if op == FilterOperator.lt:
        return col < value
    if op == FilterOperator.gte:
        return col >= value
    if op == FilterOperator.lte:
        return col <= value
    return col == value


def _connector(item: Union[Condition, Group], parent: Group) -> Logic:
    # A condition's own logic wins over its group's; nested groups use the parent's.
    if isinstance(item, Condition) and item.logic is not None:
        return item.logic
    return parent.logic


def compile_filter(node: Optional[Union[Condition, Group]], columns: Mapping[str, Any]):
    """
    Compile a node to a SQL expression, or None when it contributes nothing.

    Siblings are folded with SQL precedence (AND binds tighter than OR), so
    ``a AND b OR c`` means ``(a AND b) OR c``.
    """
    if node is None:
        return None
    if isinstance(node, Condition):
        return _compile_condition(node, columns)

    terms: List[List[Any]] = []
    for item in node.items:
        expr = compile_filter(item, columns)
        if expr is None:
            continue  # empty groups drop out
        if not terms or _connector(item, node) == Logic.or_:
            terms.append([expr])
        else:
            terms[-1].append(expr)

    if not terms:
        return None
    clauses = [t[0] if len(t) == 1 else and_(*t) for t in terms]
    return clauses[0] if len(clauses) == 1 else or_(*clauses)
