import pytest

from data_integrator import StorageError, UNIQUE_VIOLATION
from services.numbering_service import (
    allocate_order_number,
    allocate_sales_transaction_no,
    format_order_number,
    next_order_number,
    parse_sequence,
)


def _order_row(number):
    return {"order_number": number, "order_date": "2026-03-05", "status": "pending"}


def test_format_order_number():
    assert format_order_number("2026-03-05", 7) == "PO-20260305-007"
    assert format_order_number("2026-03-05", 1234) == "PO-20260305-1234"


@pytest.mark.parametrize(
    "number, expected",
    [("PO-20260305-007", 7), ("PO-20260305-1000", 1000), ("PO-20260305-x", None), (None, None)],
)
def test_parse_sequence(number, expected):
    assert parse_sequence(number) == expected


def test_next_order_number_compares_numerically(db):
    db.seed("orders", _order_row("PO-20260305-999"), _order_row("PO-20260305-1000"))
    db.seed("orders", _order_row("PO-20260304-050"))

    assert next_order_number(db, "2026-03-05") == "PO-20260305-1001"
    assert next_order_number(db, "2026-03-06") == "PO-20260306-001"


def test_same_day_suffix_strictly_increases(db):
    numbers = [allocate_order_number(db, "2026-03-05", _order_row)["order_number"] for _ in range(3)]
    assert numbers == ["PO-20260305-001", "PO-20260305-002", "PO-20260305-003"]


def test_conflict_is_retried_with_a_fresh_number(db):
    db.fail_on("insert", "orders", times=2, code=UNIQUE_VIOLATION)

    row = allocate_order_number(db, "2026-03-05", _order_row)

    assert row["order_number"] == "PO-20260305-003"
    assert [r["order_number"] for r in db.rows("orders")] == ["PO-20260305-003"]


def test_gives_up_after_max_attempts(db):
    db.fail_on("insert", "orders", times=10, code=UNIQUE_VIOLATION)

    with pytest.raises(StorageError) as exc:
        allocate_order_number(db, "2026-03-05", _order_row, max_attempts=3)

    assert exc.value.is_unique_violation
    assert db.rows("orders") == []


def test_other_insert_errors_are_not_retried(db):
    db.fail_on("insert", "orders", times=1, code="42501")

    with pytest.raises(StorageError):
        allocate_order_number(db, "2026-03-05", _order_row)

    assert db.calls.count(("insert", "orders")) == 1


def test_sales_number_allocation_retries_rpc(db):
    db.fail_on("rpc", "generate_sales_transaction_no", times=2)
    assert allocate_sales_transaction_no(db, "2026-03-05") == "INV-20260305-001"


def test_sales_number_allocation_raises_last_error(db):
    db.fail_on("rpc", "generate_sales_transaction_no", times=3)
    with pytest.raises(StorageError):
        allocate_sales_transaction_no(db, "2026-03-05")
