# File: tests/test_sandbox.py | Version: 1.0 | Title: SQL sandbox validation, preview & materialize
import pytest

from app.core import errors
from app.core.config import settings
from app.engine import registry, rows, sandbox

OWNED = {"t_aaaaaa01", "t_bbbbbb02"}
SYSTEM = {"users", "projects", "_app_tables", "alembic_version"}


def _validate(sql, owned=OWNED):
    return sandbox.validate(sql, owned, SYSTEM)


@pytest.mark.parametrize(
    "sql",
    [
        "SELECT * FROM t_aaaaaa01",
        "select a.x, b.y from t_aaaaaa01 a join t_bbbbbb02 b on a.id = b.id",
        'SELECT * FROM "t_aaaaaa01" WHERE name = \'x\';',
        "SELECT * FROM t_aaaaaa01, t_bbbbbb02",
        "WITH x AS (SELECT * FROM t_aaaaaa01) SELECT * FROM x",
        "SELECT count(*) FROM (SELECT id FROM t_aaaaaa01) sub",
        "SELECT DISTINCT region FROM t_aaaaaa01 ORDER BY region",
        "SELECT 1 + 1",
        "SELECT * FROM t_aaaaaa01 -- trailing comment",
        "SELECT * FROM t_aaaaaa01 WHERE region = 'users'",
        "SELECT * FROM 't_aaaaaa01'",
    ],
)
def test_accepts_owned_selects(sql):
    assert _validate(sql).upper().lstrip().startswith(("SELECT", "WITH"))


@pytest.mark.parametrize(
    "sql",
    [
        "DELETE FROM t_aaaaaa01",
        "DROP TABLE t_aaaaaa01",
        "UPDATE t_aaaaaa01 SET x = 1",
        "INSERT INTO t_aaaaaa01 VALUES (1)",
        "PRAGMA table_info(t_aaaaaa01)",
        "ATTACH DATABASE 'x.db' AS other",
        "SELECT * FROM t_aaaaaa01; DROP TABLE t_aaaaaa01",
        "SELECT * FROM t_aaaaaa01; SELECT * FROM t_bbbbbb02",
        "SELECT * FROM users",
        "SELECT * FROM _app_tables",
        "SELECT name FROM sqlite_master",
        "SELECT * FROM pragma_table_info('t_aaaaaa01')",
        "SELECT * FROM t_ccccccc3",
        "SELECT * FROM t_aaaaaa01 WHERE id IN (SELECT id FROM t_dddddd04)",
        'SELECT * FROM "other_name"',
        "SELECT * FROM t_aaaaaa01 JOIN some_table ON 1 = 1",
        "SELECT * FROM 'users'",
        "SELECT * FROM '_app_tables'",
        "SELECT * FROM 'projects'",
        "SELECT email FROM main.'users'",
        "SELECT * FROM t_aaaaaa01 JOIN 'users' ON 1 = 1",
        "SELECT * FROM t_aaaaaa01, 'some_table'",
        "SELECT * FROM ('users')",
        "SELECT * FROM (t_aaaaaa01, 'other_name')",
    ],
)
def test_rejects_mutations_system_and_foreign_tables(sql):
    with pytest.raises(errors.SandboxRejected):
        _validate(sql)


def test_empty_sql_is_validation_error():
    with pytest.raises(errors.ValidationError):
        _validate("   ")


def test_system_names_come_from_declared_models():
    names = sandbox.system_table_names()
    assert {"users", "projects", "_app_tables", "alembic_version"} <= names


def test_cte_names_and_references():
    tokens = sandbox.tokenize(
        sandbox.parse_statements(
            "WITH a AS (SELECT * FROM t_aaaaaa01), b(x) AS (SELECT 1) SELECT * FROM a JOIN b ON 1=1"
        )
    )
    assert sandbox.cte_names(tokens) == {"a", "b"}
    assert sandbox.table_references(tokens) == ["t_aaaaaa01", "a", "b"]


def _sales(db, owner_id, name="Sales"):
    return registry.create_from_rows(
        db,
        owner_id=owner_id,
        display_name=name,
        headers=["region", "amount"],
        rows=[["N", 10], ["S", 5], ["N", 7]],
    )


def test_preview_own_table_and_cross_tenant_rejection(db_session, owner_id, other_owner_id):
    mine = _sales(db_session, owner_id)
    theirs = _sales(db_session, other_owner_id, "Theirs")

    out = sandbox.preview(
        db_session,
        owner_id,
        f'SELECT region, SUM(amount) AS total FROM "{mine.internal_name}" GROUP BY region ORDER BY region',
    )
    assert out["columns"] == ["region", "total"]
    assert out["data"] == [{"region": "N", "total": 17}, {"region": "S", "total": 5}]

    with pytest.raises(errors.SandboxRejected):
        sandbox.preview(db_session, owner_id, f"SELECT * FROM {theirs.internal_name}")
    with pytest.raises(errors.SandboxRejected):
        sandbox.preview(db_session, owner_id, "SELECT email, hashed_password FROM 'users'")
    with pytest.raises(errors.SandboxRejected):
        sandbox.preview(db_session, owner_id, f"SELECT * FROM '{theirs.internal_name}'")
    with pytest.raises(errors.SandboxRejected):
        sandbox.preview(db_session, owner_id, "SELECT * FROM users")


def test_preview_caps_rows_and_keeps_columns_when_empty(db_session, owner_id):
    meta = registry.create_from_rows(
        db_session,
        owner_id=owner_id,
        display_name="Many",
        headers=["n"],
        rows=[[i] for i in range(settings.QUERY_PREVIEW_ROW_LIMIT + 20)],
    )
    out = sandbox.preview(db_session, owner_id, f"SELECT * FROM {meta.internal_name}")
    assert len(out["data"]) == settings.QUERY_PREVIEW_ROW_LIMIT

    empty = sandbox.preview(db_session, owner_id, f"SELECT n FROM {meta.internal_name} WHERE n < 0")
    assert empty == {"columns": ["n"], "data": []}


def test_preview_is_read_only_and_engine_errors_surface(db_session, owner_id):
    meta = _sales(db_session, owner_id)
    with pytest.raises(errors.EngineExecutionError):
        sandbox.preview(db_session, owner_id, f"SELECT no_such_column FROM {meta.internal_name}")
    # the session is still usable afterwards
    assert rows.fetch_page(db_session, owner_id, meta.id)["total"] == 3


def test_materialize_creates_browsable_table(db_session, owner_id):
    meta = _sales(db_session, owner_id)
    saved = sandbox.materialize(
        db_session,
        owner_id,
        f"SELECT id, region, SUM(amount) AS total FROM {meta.internal_name} GROUP BY region",
        "Totals",
    )
    assert saved.display_name == "Totals"
    assert saved.internal_name != meta.internal_name
    cols = registry.columns_of(saved)
    assert [c.internal_name for c in cols] == ["id_1", "region", "total"]
    assert [c.display_name for c in cols] == ["id", "region", "total"]
    assert cols[2].type.value == "INTEGER"

    page = rows.fetch_page(db_session, owner_id, saved.internal_name)
    assert page["total"] == 2
    assert sorted((r["region"], r["total"]) for r in page["data"]) == [("N", 17), ("S", 5)]
    assert saved.internal_name in {m.internal_name for m in registry.list_tables(db_session, owner_id)}

    # the new table is immediately queryable by its owner
    again = sandbox.preview(db_session, owner_id, f"SELECT COUNT(*) AS c FROM {saved.internal_name}")
    assert again["data"] == [{"c": 2}]


def test_materialize_rejections_leave_nothing_behind(db_session, owner_id):
    meta = _sales(db_session, owner_id)
    before = {m.internal_name for m in registry.list_tables(db_session, owner_id)}
    with pytest.raises(errors.SandboxRejected):
        sandbox.materialize(db_session, owner_id, "DELETE FROM " + meta.internal_name, "Nope")
    with pytest.raises(errors.EngineExecutionError):
        sandbox.materialize(db_session, owner_id, f"SELECT bogus FROM {meta.internal_name}", "Nope")
    with pytest.raises(errors.ValidationError):
        sandbox.materialize(db_session, owner_id, f"SELECT * FROM {meta.internal_name}", "  ")
    assert {m.internal_name for m in registry.list_tables(db_session, owner_id)} == before
