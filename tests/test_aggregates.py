# File: tests/test_aggregates.py | Version: 1.0 | Title: Aggregate Engine under browse filters
import pytest

from app.core import errors
from app.engine import registry
from app.engine.aggregates import compute_aggregates


@pytest.fixture()
def sales(db_session, owner_id):
    return registry.create_from_rows(
        db_session,
        owner_id=owner_id,
        display_name="Sales",
        headers=["region", "amount", "note"],
        rows=[["N", 10, "a"], ["N", 20, None], ["S", 5, "c"], ["S", None, "d"]],
    )


def test_aggregates_apply_browse_filter(db_session, owner_id, sales):
    result = compute_aggregates(
        db_session,
        owner_id,
        sales.id,
        filters=[{"column": "region", "operator": "=", "value": "N"}],
        aggregates={"amount": "sum", "note": "COUNT"},
    )
    assert result == {"amount": 30, "note": 1}


def test_all_functions_without_filter(db_session, owner_id, sales):
    result = compute_aggregates(db_session, owner_id, sales.id, aggregates={"amount": "AVG"})
    assert result["amount"] == pytest.approx(35 / 3)
    assert compute_aggregates(db_session, owner_id, sales.id, aggregates={"amount": "MIN"}) == {"amount": 5}
    assert compute_aggregates(db_session, owner_id, sales.id, aggregates={"amount": "MAX"}) == {"amount": 20}


def test_unknown_columns_and_functions_are_dropped(db_session, owner_id, sales):
    assert compute_aggregates(
        db_session, owner_id, sales.id, aggregates={"ghost": "SUM", "amount": "MEDIAN"}
    ) == {}
    assert compute_aggregates(db_session, owner_id, sales.id, aggregates=None) == {}


def test_unknown_filter_column_and_bad_shape_are_rejected(db_session, owner_id, sales):
    with pytest.raises(errors.ValidationError):
        compute_aggregates(
            db_session,
            owner_id,
            sales.id,
            filters=[{"column": "ghost", "operator": "=", "value": 1}],
            aggregates={"amount": "SUM"},
        )
    with pytest.raises(errors.ValidationError):
        compute_aggregates(db_session, owner_id, sales.id, aggregates=["amount"])


def test_foreign_table_is_not_found(db_session, other_owner_id, sales):
    with pytest.raises(errors.NotFoundOrForbidden):
        compute_aggregates(db_session, other_owner_id, sales.internal_name, aggregates={"amount": "SUM"})
