# File: tests/test_ordering.py | Version: 1.0 | Title: Ordering Engine + visual grouping headers
import pytest
from sqlalchemy import Column, Integer, MetaData, REAL, Table, Text
from sqlalchemy.dialects import sqlite

from app.core import errors
from app.engine import ordering, registry, rows

_table = Table(
    "t_order01",
    MetaData(),
    Column("id", Integer, primary_key=True),
    Column("dept", Text),
    Column("team", Text),
    Column("score", Integer),
    Column("_sort_order", REAL),
)


def _order_sql(**kwargs):
    terms = ordering.build_order_by(_table, **kwargs)
    return [str(t.compile(dialect=sqlite.dialect())) for t in terms]


def test_groups_first_then_sorts_then_tiebreakers():
    sorts = ordering.parse_sorts([{"column": "score", "direction": "desc"}, {"column": "dept", "direction": "DESC"}])
    assert _order_sql(groups=["dept", "team"], sorts=sorts, manual_order=True) == [
        "t_order01.dept DESC",
        "t_order01.team ASC",
        "t_order01.score DESC",
        "t_order01._sort_order ASC",
        "t_order01.id ASC",
    ]


def test_unknown_columns_dropped_and_default_is_id():
    sorts = ordering.parse_sorts([{"column": "nope"}])
    assert _order_sql(groups=["missing"], sorts=sorts) == ["t_order01.id ASC"]


def test_quote_in_name_rejected():
    with pytest.raises(errors.ValidationError):
        ordering.build_order_by(_table, sorts=ordering.parse_sorts([{"column": 'a"b'}]))


def test_parse_helpers():
    assert ordering.parse_sorts(None) == []
    assert ordering.parse_groups("") == []
    assert ordering.parse_groups(["dept"]) == ["dept"]
    assert ordering.parse_json_param('["a"]', "groups") == ["a"]
    with pytest.raises(errors.ValidationError):
        ordering.parse_json_param("{bad", "filters")
    with pytest.raises(errors.ValidationError):
        ordering.parse_groups({"not": "a list"})


def test_group_headers_open_at_outermost_change():
    page = [
        {"dept": "A", "team": "x"},
        {"dept": "A", "team": "x"},
        {"dept": "A", "team": "y"},
        {"dept": "B", "team": "y"},
    ]
    assert ordering.group_headers(page, ["dept", "team"]) == [
        {"rowIndex": 0, "level": 0, "column": "dept", "value": "A"},
        {"rowIndex": 0, "level": 1, "column": "team", "value": "x"},
        {"rowIndex": 2, "level": 1, "column": "team", "value": "y"},
        {"rowIndex": 3, "level": 0, "column": "dept", "value": "B"},
        {"rowIndex": 3, "level": 1, "column": "team", "value": "y"},
    ]
    assert ordering.group_headers(page, []) == []


def test_grouped_page_rows_are_contiguous(db_session, owner_id):
    meta = registry.create_from_rows(
        db_session,
        owner_id=owner_id,
        display_name="Staff",
        headers=["dept", "name"],
        rows=[["B", "b1"], ["A", "a1"], ["B", "b2"], ["A", "a2"], ["C", "c1"]],
    )
    page = rows.fetch_page(db_session, owner_id, meta.id, groups=["dept"])
    depts = [r["dept"] for r in page["data"]]
    assert depts == ["A", "A", "B", "B", "C"]
    # within a group, insertion order (id) is kept
    assert [r["name"] for r in page["data"]] == ["a1", "a2", "b1", "b2", "c1"]
    assert [h["rowIndex"] for h in page["group_headers"]] == [0, 2, 4]

    desc = rows.fetch_page(
        db_session,
        owner_id,
        meta.id,
        groups=["dept"],
        sorts=ordering.parse_sorts([{"column": "dept", "direction": "DESC"}]),
    )
    assert [r["dept"] for r in desc["data"]] == ["C", "B", "B", "A", "A"]


def test_locate_matches_fetch_page(db_session, owner_id):
    meta = registry.create_from_rows(
        db_session,
        owner_id=owner_id,
        display_name="Numbers",
        headers=["n"],
        rows=[[i] for i in range(1, 8)],
    )
    sorts = ordering.parse_sorts([{"column": "n", "direction": "DESC"}])
    filters = [{"column": "n", "operator": ">", "value": 1}]
    located = rows.locate_row(db_session, owner_id, meta.id, 3, page_size=2, filters=filters, sorts=sorts)
    # n = 7..2 in DESC order; row id 3 holds n=3, the 5th row -> page 3, index 0
    assert located["row_number"] == 5
    assert located["page"] == 3 and located["index_in_page"] == 0

    page = rows.fetch_page(
        db_session, owner_id, meta.id, page=located["page"], page_size=2, filters=filters, sorts=sorts
    )
    assert page["data"][located["index_in_page"]]["id"] == 3

    with pytest.raises(errors.NotFoundOrForbidden):
        # filtered out
        rows.locate_row(db_session, owner_id, meta.id, 1, page_size=2, filters=filters)
