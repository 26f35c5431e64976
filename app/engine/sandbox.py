# File: /app/engine/sandbox.py | Version: 1.1 | Title: SQL Sandbox (validate, preview & materialize tenant SELECTs)
"""
Free-form SQL sandbox.

Validation runs over a ``sqlparse`` token stream (comments and whitespace
dropped, quoted identifiers unquoted) as a pipeline of independent checks.
Any failure rejects the query before it reaches the database:

1. mutation keyword denylist
2. exactly one SELECT statement
3. system-table denylist (identifiers and table-position names)
4. every internal-table-name token is an owned tabular table
5. every FROM/JOIN table reference (single-quoted names included) is an
   owned table or a CTE of the query

Preview runs read-only (``PRAGMA query_only``) under a progress-handler
deadline; materialize copies the result into a new registered table.
"""
from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterable, Iterator, List, Optional, Sequence, Set, Tuple

import sqlparse
from sqlalchemy import column as sql_column
from sqlalchemy import insert, select
from sqlalchemy import table as sql_table
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlparse import tokens as T

from app.core import errors
from app.core.config import settings
from app.crud.projects import get_owned_project
from app.db.base_class import Base
from app.engine import registry
from app.engine.identifiers import (
    is_internal_table_name,
    new_internal_table_name,
    sanitize_headers,
)
from app.models import TableMeta
from app.schemas.tables import ColumnMeta, ColumnType

log = logging.getLogger(__name__)

MUTATION_KEYWORDS = frozenset(
    {
        "DROP",
        "DELETE",
        "UPDATE",
        "INSERT",
        "ALTER",
        "TRUNCATE",
        "REPLACE",
        "CREATE",
        "PRAGMA",
        "VACUUM",
        "ATTACH",
        "DETACH",
        "GRANT",
        "REVOKE",
        "COMMIT",
        "ROLLBACK",
    }
)
SYSTEM_TABLE_PREFIXES = ("sqlite_", "pragma_")
EXTRA_SYSTEM_TABLES = frozenset({"alembic_version"})

# Keywords that end a FROM list at the current nesting depth.
_FROM_LIST_END = frozenset(
    {
        "WHERE",
        "GROUP BY",
        "ORDER BY",
        "HAVING",
        "LIMIT",
        "WINDOW",
        "UNION",
        "UNION ALL",
        "EXCEPT",
        "INTERSECT",
        "SELECT",
        "VALUES",
    }
)
_NOT_A_TABLE = frozenset({"SELECT", "WITH", "VALUES"})
_CTE_HINTS = frozenset({"NOT", "MATERIALIZED", "NOT MATERIALIZED"})


@dataclass(frozen=True)
class SqlToken:
    kind: str  # keyword | name | quoted | string | punct | other
    value: str

    @property
    def is_word(self) -> bool:
        return self.kind in ("keyword", "name", "quoted")

    @property
    def is_table_name(self) -> bool:
        # SQLite also accepts a single-quoted string where a table name is expected
        return self.is_word or self.kind == "string"

    def is_punct(self, char: str) -> bool:
        return self.kind == "punct" and self.value == char

    def is_keyword(self, *words: str) -> bool:
        return self.kind == "keyword" and self.value in words


def _unquote(raw: str, quote: str) -> str:
    return raw[1:-1].replace(quote * 2, quote)


def _classify(tok) -> Optional[SqlToken]:
    ttype = tok.ttype
    if tok.is_whitespace or ttype is None or ttype in T.Comment:
        return None
    raw = tok.value
    if ttype in T.Keyword:
        return SqlToken("keyword", " ".join(raw.upper().split()))
    if ttype in T.Literal.String.Symbol:
        return SqlToken("quoted", _unquote(raw, raw[0]))
    if ttype in T.Literal.String.Single:
        return SqlToken("string", _unquote(raw, "'"))
    if ttype in T.Name:
        if len(raw) >= 2 and raw[0] == "`" and raw[-1] == "`":
            return SqlToken("quoted", _unquote(raw, "`"))
        if len(raw) >= 2 and raw[0] == "[" and raw[-1] == "]":
            return SqlToken("quoted", raw[1:-1])
        return SqlToken("name", raw)
    if ttype in T.Punctuation:
        return SqlToken("punct", raw)
    return SqlToken("other", raw)


def parse_statements(sql: str) -> List[sqlparse.sql.Statement]:
    """Non-empty statements of ``sql`` (comment-only fragments dropped)."""
    return [
        s for s in sqlparse.parse(sql) if s.token_first(skip_ws=True, skip_cm=True) is not None
    ]


def tokenize(statements: Iterable[sqlparse.sql.Statement]) -> List[SqlToken]:
    out: List[SqlToken] = []
    for statement in statements:
        for tok in statement.flatten():
            classified = _classify(tok)
            if classified is not None:
                out.append(classified)
    return out


# ---------------------------
# Checks (each raises SandboxRejected)
# ---------------------------


def check_mutation_keywords(tokens: Sequence[SqlToken]) -> None:
    for tok in tokens:
        if tok.kind not in ("keyword", "name"):
            continue
        for word in tok.value.upper().split():
            if word in MUTATION_KEYWORDS:
                raise errors.SandboxRejected(f"Statement type not allowed: {word}")


def check_single_select(statements: Sequence[sqlparse.sql.Statement]) -> sqlparse.sql.Statement:
    if len(statements) != 1:
        raise errors.SandboxRejected("Only a single statement is allowed")
    statement = statements[0]
    if statement.get_type() != "SELECT":
        raise errors.SandboxRejected("Only SELECT queries are allowed")
    return statement


def system_table_names() -> Set[str]:
    return {name.lower() for name in Base.metadata.tables} | set(EXTRA_SYSTEM_TABLES)


def _is_system_name(name: str, system: Set[str]) -> bool:
    lowered = name.lower()
    return lowered in system or lowered.startswith(SYSTEM_TABLE_PREFIXES)


def check_system_tables(tokens: Sequence[SqlToken], system: Optional[Set[str]] = None) -> None:
    system = system if system is not None else system_table_names()
    names = [tok.value for tok in tokens if tok.is_word] + table_references(tokens)
    for name in names:
        if _is_system_name(name, system):
            raise errors.SandboxRejected("System tables cannot be queried")


def check_owned_tables(tokens: Sequence[SqlToken], owned: Set[str]) -> None:
    """Every token shaped like an internal table name must be owned (foreign and missing alike)."""
    for tok in tokens:
        if tok.kind not in ("name", "quoted", "string", "keyword"):
            continue
        if is_internal_table_name(tok.value) and tok.value.lower() not in owned:
            raise errors.SandboxRejected(f"Access to table '{tok.value}' is not allowed")


def _skip_parens(tokens: Sequence[SqlToken], start: int) -> int:
    """Index just past the parenthesis group opening at ``start``."""
    depth = 0
    for i in range(start, len(tokens)):
        if tokens[i].is_punct("("):
            depth += 1
        elif tokens[i].is_punct(")"):
            depth -= 1
            if depth == 0:
                return i + 1
    return len(tokens)


def cte_names(tokens: Sequence[SqlToken]) -> Set[str]:
    """Names introduced as ``name [(cols)] AS [NOT] [MATERIALIZED] (``."""
    names: Set[str] = set()
    for i, tok in enumerate(tokens):
        if not tok.is_word:
            continue
        j = i + 1
        if j < len(tokens) and tokens[j].is_punct("("):
            j = _skip_parens(tokens, j)
        if j >= len(tokens) or not tokens[j].is_keyword("AS"):
            continue
        k = j + 1
        while k < len(tokens) and tokens[k].is_word and tokens[k].value.upper() in _CTE_HINTS:
            k += 1
        if k < len(tokens) and tokens[k].is_punct("("):
            names.add(tok.value.lower())
    return names


def _qualified_name(tokens: Sequence[SqlToken], start: int) -> Tuple[str, int]:
    """Last part of ``a.b.c`` starting at ``start``; returns (name, index of that part)."""
    i = start
    while (
        i + 2 < len(tokens)
        and tokens[i + 1].is_punct(".")
        and tokens[i + 2].is_table_name
    ):
        i += 2
    return tokens[i].value, i


def table_references(tokens: Sequence[SqlToken]) -> List[str]:
    """
    Names in table position: after FROM / JOIN, after a comma in a FROM list,
    or inside a parenthesized join. Quoted strings count as names there.
    """
    refs: List[str] = []
    open_from_lists: Set[int] = set()
    depth = 0
    expecting = False
    for i, tok in enumerate(tokens):
        if tok.is_punct("("):
            depth += 1
            if expecting:
                # either a sub-select or a parenthesized table list
                open_from_lists.add(depth)
            continue
        if tok.is_punct(")"):
            open_from_lists.discard(depth)
            depth -= 1
            expecting = False
            continue
        if expecting:
            expecting = False
            if tok.is_keyword(*_NOT_A_TABLE):
                open_from_lists.discard(depth)
                continue
            if tok.is_table_name:
                name, last = _qualified_name(tokens, i)
                is_function = last + 1 < len(tokens) and tokens[last + 1].is_punct("(")
                if not is_function:
                    refs.append(name)
            continue
        if tok.kind == "keyword":
            if tok.value == "FROM" and not (i > 0 and tokens[i - 1].is_keyword("DISTINCT")):
                expecting = True
                open_from_lists.add(depth)
            elif tok.value.endswith("JOIN"):
                expecting = True
            elif tok.value in _FROM_LIST_END:
                open_from_lists.discard(depth)
        elif tok.is_punct(",") and depth in open_from_lists:
            expecting = True
    return refs


def check_table_references(tokens: Sequence[SqlToken], owned: Set[str]) -> None:
    allowed = owned | cte_names(tokens)
    for name in table_references(tokens):
        if name.lower() not in allowed:
            raise errors.SandboxRejected(f"Access to table '{name}' is not allowed")


def _strip_terminator(sql: str) -> str:
    text = sql.strip()
    while text.endswith(";"):
        text = text[:-1].rstrip()
    return text


def validate(sql: str, owned: Set[str], system: Optional[Set[str]] = None) -> str:
    """Run every check; returns the single statement without its terminator."""
    if not sql or not sql.strip():
        raise errors.ValidationError("SQL is required")
    owned = {name.lower() for name in owned}
    statements = parse_statements(sql)
    if not statements:
        raise errors.ValidationError("SQL is required")
    tokens = tokenize(statements)

    check_mutation_keywords(tokens)
    statement = check_single_select(statements)
    check_system_tables(tokens, system)
    check_owned_tables(tokens, owned)
    check_table_references(tokens, owned)
    return _strip_terminator(str(statement))


def validate_for_owner(db: Session, owner_id: str, sql: str) -> str:
    try:
        return validate(sql, registry.owned_tabular_names(db, owner_id))
    except errors.SandboxRejected as exc:
        log.warning("Sandbox rejected query for owner %s: %s", owner_id, exc.message)
        log.debug("Rejected SQL: %s", sql)
        raise


# ---------------------------
# Execution
# ---------------------------


@contextmanager
def guarded(conn: Connection, *, read_only: bool) -> Iterator[None]:
    """SQLite only: optional query_only mode plus a progress-handler deadline."""
    if conn.dialect.name != "sqlite":
        yield
        return
    dbapi_conn = conn.connection.dbapi_connection
    deadline = time.monotonic() + settings.QUERY_TIMEOUT_SECONDS

    def _past_deadline() -> int:
        return 1 if time.monotonic() > deadline else 0

    if read_only:
        conn.exec_driver_sql("PRAGMA query_only = ON")
    dbapi_conn.set_progress_handler(_past_deadline, 10_000)
    try:
        yield
    finally:
        dbapi_conn.set_progress_handler(None, 10_000)
        if read_only:
            conn.exec_driver_sql("PRAGMA query_only = OFF")


def _failure(message: str) -> errors.EngineExecutionError:
    if "interrupted" in message.lower():
        message = "Query exceeded the time limit"
    return errors.EngineExecutionError(f"Query failed: {message}")


def preview(db: Session, owner_id: str, sql: str) -> dict:
    """Up to QUERY_PREVIEW_ROW_LIMIT rows; columns come from the cursor."""
    cleaned = validate_for_owner(db, owner_id, sql)
    wrapped = f"SELECT * FROM (\n{cleaned}\n) LIMIT {int(settings.QUERY_PREVIEW_ROW_LIMIT)}"
    conn = db.connection()
    try:
        with guarded(conn, read_only=True):
            result = conn.exec_driver_sql(wrapped)
            columns = list(result.keys())
            data = [dict(zip(columns, row)) for row in result.fetchall()]
    except SQLAlchemyError as exc:
        db.rollback()
        raise _failure(registry.engine_message(exc)) from exc
    db.rollback()
    return {"columns": columns, "data": data}


def _declared_type(declared: Optional[str]) -> Optional[ColumnType]:
    decl = (declared or "").upper()
    if "INT" in decl:
        return ColumnType.integer
    if any(k in decl for k in ("CHAR", "CLOB", "TEXT")):
        return ColumnType.text
    if any(k in decl for k in ("REAL", "FLOA", "DOUB")):
        return ColumnType.real
    return None


def _column_types(declared: Sequence[Optional[str]], sample: Sequence[Sequence]) -> List[ColumnType]:
    inferred = registry.infer_column_types(len(declared), sample, len(sample))
    return [_declared_type(d) or fallback for d, fallback in zip(declared, inferred)]


def materialize(
    db: Session,
    owner_id: str,
    sql: str,
    display_name: str,
    project_id: Optional[int] = None,
) -> TableMeta:
    """Persist the query result as a brand-new owned table, atomically."""
    name = (display_name or "").strip()
    if not name:
        raise errors.ValidationError("Table name is required")
    cleaned = validate_for_owner(db, owner_id, sql)
    if project_id is not None:
        get_owned_project(db, owner_id, project_id)

    conn = db.connection()
    q = conn.dialect.identifier_preparer.quote_identifier
    staging = f"{new_internal_table_name()}_staging"

    try:
        with registry.atomic(db):
            with guarded(conn, read_only=False):
                conn.exec_driver_sql(f"CREATE TABLE {q(staging)} AS SELECT * FROM (\n{cleaned}\n)")
            info = conn.exec_driver_sql(f"PRAGMA table_info({q(staging)})").fetchall()
            source_names = [row[1] for row in info]
            sample = conn.exec_driver_sql(
                f"SELECT * FROM {q(staging)} LIMIT {int(settings.TYPE_SAMPLE_ROWS)}"
            ).fetchall()

            internal_names = sanitize_headers(source_names)
            types = _column_types([row[2] for row in info], sample)
            columns = [
                ColumnMeta(internal_name=i, display_name=s, type=t)
                for i, s, t in zip(internal_names, source_names, types)
            ]
            meta = TableMeta(
                display_name=name,
                internal_name=new_internal_table_name(),
                owner_id=str(owner_id),
                project_id=project_id,
                kind="tabular",
                columns=[c.model_dump(mode="json") for c in columns],
                manual_order=False,
            )
            final = registry.build_table(meta)
            final.create(bind=conn)
            source = sql_table(staging, *[sql_column(n) for n in source_names])
            conn.execute(insert(final).from_select(internal_names, select(*source.c)))
            conn.exec_driver_sql(f"DROP TABLE {q(staging)}")
            db.add(meta)
            db.flush()
    except errors.EngineExecutionError as exc:
        raise _failure(exc.message) from exc
    db.refresh(meta)
    log.info("Materialized query into %s (%s)", meta.internal_name, meta.display_name)
    return meta

