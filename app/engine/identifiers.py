# File: /app/engine/identifiers.py | Version: 1.0 | Title: Identifier sanitizing & generated table names
from __future__ import annotations

import re
from typing import Iterable, List, Optional, Set
from uuid import uuid4

INTERNAL_TABLE_PREFIX = "t_"
INTERNAL_TABLE_PATTERN = re.compile(r"t_[0-9a-f]{6,}", re.IGNORECASE)

SURROGATE_KEY = "id"
ORDER_COLUMN = "_sort_order"
RESERVED_COLUMNS = frozenset({SURROGATE_KEY, ORDER_COLUMN})

_DISALLOWED = re.compile(r"[^\u4e00-\u9fa5A-Za-z0-9_]")


def sanitize_identifier(name: object) -> str:
    """
    Map an arbitrary header to a bare SQL identifier: ASCII letters, digits,
    underscore and CJK ideographs only, never starting with a digit.
    """
    cleaned = _DISALLOWED.sub("_", str(name if name is not None else "").strip())
    if cleaned and cleaned[0].isdigit():
        cleaned = f"_{cleaned}"
    return cleaned or "col"


def unique_identifier(name: object, taken: Set[str]) -> str:
    """
    Sanitize ``name`` and suffix ``_1``, ``_2``... until it is unique in ``taken``
    (lower-cased names). The chosen name is added to ``taken``.
    """
    base = sanitize_identifier(name)
    candidate = base
    n = 0
    while candidate.lower() in taken:
        n += 1
        candidate = f"{base}_{n}"
    taken.add(candidate.lower())
    return candidate


def reserved_names(existing: Optional[Iterable[str]] = None) -> Set[str]:
    taken = {r.lower() for r in RESERVED_COLUMNS}
    taken.update(e.lower() for e in existing or ())
    return taken


def sanitize_headers(headers: Iterable[object]) -> List[str]:
    taken = reserved_names()
    return [unique_identifier(h, taken) for h in headers]


def new_internal_table_name() -> str:
    return f"{INTERNAL_TABLE_PREFIX}{uuid4().hex}"


def is_internal_table_name(name: str) -> bool:
    return bool(INTERNAL_TABLE_PATTERN.fullmatch(name or ""))
