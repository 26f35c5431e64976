# File: tests/test_row_order.py | Version: 1.0 | Title: Fractional row ordering
import math

import pytest
from sqlalchemy import select

from app.core import errors
from app.engine import registry, row_order, rows
from app.engine.identifiers import ORDER_COLUMN
from app.schemas.tables import RowPosition


@pytest.fixture()
def ten_rows(db_session, owner_id):
    return registry.create_from_rows(
        db_session,
        owner_id=owner_id,
        display_name="Ten",
        headers=["label"],
        rows=[[f"r{i}"] for i in range(1, 11)],
    )


def _key(db, meta, row_id):
    table = registry.build_table(registry.resolve(db, meta.owner_id, meta.id))
    return db.execute(select(table.c[ORDER_COLUMN]).where(table.c.id == row_id)).scalar_one()


def _labels(db, owner_id, meta):
    return [r["label"] for r in rows.fetch_page(db, owner_id, meta.id, page_size=100)["data"]]


def test_insert_after_takes_midpoint(db_session, owner_id, ten_rows):
    new_id = rows.insert_row(
        db_session, owner_id, ten_rows.id, {"label": "new"}, RowPosition(row_id=5, direction="after")
    )
    assert _key(db_session, ten_rows, new_id) == 5.5
    # existing keys were backfilled from id and never touched again
    assert _key(db_session, ten_rows, 5) == 5.0
    assert _key(db_session, ten_rows, 6) == 6.0
    assert _labels(db_session, owner_id, ten_rows)[4:7] == ["r5", "new", "r6"]


def test_repeated_inserts_stay_between_neighbours(db_session, owner_id, ten_rows):
    anchor = 5
    keys = []
    for i in range(3):
        anchor = rows.insert_row(
            db_session,
            owner_id,
            ten_rows.id,
            {"label": f"n{i}"},
            RowPosition(row_id=anchor, direction="after"),
        )
        keys.append(_key(db_session, ten_rows, anchor))
    assert keys == sorted(keys)
    assert all(5 < k < 6 for k in keys)
    assert _labels(db_session, owner_id, ten_rows)[4:9] == ["r5", "n0", "n1", "n2", "r6"]


def test_insert_before_first_row(db_session, owner_id, ten_rows):
    new_id = rows.insert_row(
        db_session, owner_id, ten_rows.id, {"label": "top"}, RowPosition(row_id=1, direction="before")
    )
    assert _key(db_session, ten_rows, new_id) == 0.5
    assert _labels(db_session, owner_id, ten_rows)[0] == "top"


def test_plain_append_after_manual_order_goes_last(db_session, owner_id, ten_rows):
    rows.insert_row(db_session, owner_id, ten_rows.id, {"label": "mid"}, RowPosition(row_id=2))
    last = rows.insert_row(db_session, owner_id, ten_rows.id, {"label": "end"})
    assert _key(db_session, ten_rows, last) == 11.0
    assert _labels(db_session, owner_id, ten_rows)[-1] == "end"


def test_missing_anchor_is_not_found(db_session, owner_id, ten_rows):
    with pytest.raises(errors.NotFoundOrForbidden):
        rows.insert_row(db_session, owner_id, ten_rows.id, {"label": "x"}, RowPosition(row_id=999))


def test_midpoint_and_renumber(db_session, owner_id, ten_rows):
    assert row_order.midpoint(5.0, 6.0, "after") == 5.5
    assert row_order.midpoint(1.0, None, "before") == 0.5
    assert row_order.midpoint(10.0, None, "after") == 10.5

    rows.insert_row(db_session, owner_id, ten_rows.id, {"label": "x"}, RowPosition(row_id=3))
    meta = registry.resolve(db_session, owner_id, ten_rows.id)
    table = registry.build_table(meta)
    row_order.renumber(db_session, table)
    db_session.commit()
    keys = db_session.execute(select(table.c[ORDER_COLUMN]).order_by(table.c[ORDER_COLUMN])).scalars().all()
    assert keys == [float(i) for i in range(1, 12)]
    assert _labels(db_session, owner_id, ten_rows)[2:5] == ["r3", "x", "r4"]


def test_collapsed_midpoint_triggers_renumber(db_session, owner_id, ten_rows):
    rows.insert_row(db_session, owner_id, ten_rows.id, {"label": "seed"}, RowPosition(row_id=1))
    meta = registry.resolve(db_session, owner_id, ten_rows.id)
    table = registry.build_table(meta)
    # no float fits between row 1 and row 2 any more
    db_session.execute(
        table.update().where(table.c.id == 2).values({ORDER_COLUMN: math.nextafter(1.0, math.inf)})
    )
    db_session.commit()

    new_id = rows.insert_row(db_session, owner_id, ten_rows.id, {"label": "fit"}, RowPosition(row_id=1))
    assert _key(db_session, ten_rows, 1) == 1.0
    assert _key(db_session, ten_rows, 2) == 2.0
    assert _key(db_session, ten_rows, new_id) == 1.5
    assert _labels(db_session, owner_id, ten_rows)[:4] == ["r1", "fit", "r2", "seed"]
