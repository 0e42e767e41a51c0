import pytest

from data_integrator import UNIQUE_VIOLATION
from domain.models import CustomPricedInvoice, CustomPricedLine, SalesLine, StandardInvoice, ValidationError
from services.sales_service import (
    FlowState,
    InvalidTransition,
    InvoiceFlow,
    commit_invoice,
    delete_sales_transaction,
    get_sales_transaction,
    invoice_from_transaction,
    validate_invoice,
)


def _line(product, qty):
    return SalesLine(
        product_id=product["id"],
        product_name=product["name"],
        unit=product["unit"],
        quantity=qty,
        unit_price=product["price"],
    )


@pytest.fixture
def invoice(catalog):
    return StandardInvoice(
        transaction_date="2026-03-05",
        payment_method_id=catalog["tunai"]["id"],
        payment_method_name="Tunai",
        lines=[_line(catalog["nasi"], 2), _line(catalog["ayam"], 1), _line(catalog["ayam"], 0)],
    )


def test_validate_rejects_empty_invoice():
    with pytest.raises(ValidationError):
        validate_invoice(StandardInvoice(transaction_date="2026-03-05"))
    with pytest.raises(ValidationError):
        validate_invoice(StandardInvoice(transaction_date=""))


def test_commit_new_reconciles_total_with_details(db, invoice):
    ok, msg, committed = commit_invoice(db, invoice)

    assert ok, msg
    assert committed.transaction_no == "INV-20260305-001"
    assert committed.total == 55000

    (header,) = db.rows("sales_transactions")
    details = db.rows("sales_details")
    assert header["total"] == 55000
    assert len(details) == 2
    assert sum(d["subtotal"] for d in details) == header["total"]
    for d in details:
        assert d["subtotal"] == d["quantity"] * d["unit_price"]


def test_detail_failure_removes_the_header(db, invoice):
    db.fail_on("insert", "sales_details")

    ok, msg, committed = commit_invoice(db, invoice)

    assert not ok
    assert committed is None
    assert "injected" in msg
    assert db.rows("sales_transactions") == []


def test_taken_number_is_retried_with_the_next_one(db, invoice):
    db.seed("sales_transactions", {"transaction_no": "INV-20260305-001", "transaction_date": "2026-03-05", "total": 1})

    ok, msg, committed = commit_invoice(db, invoice)

    assert ok, msg
    assert committed.transaction_no == "INV-20260305-002"
    headers = db.rows("sales_transactions")
    assert sorted(h["transaction_no"] for h in headers) == ["INV-20260305-001", "INV-20260305-002"]
    assert {d["sales_transaction_id"] for d in db.rows("sales_details")} == {committed.transaction_id}


def test_number_conflict_on_every_attempt_gives_up(db, invoice):
    db.fail_on("insert", "sales_transactions", times=3, code=UNIQUE_VIOLATION)

    ok, msg, committed = commit_invoice(db, invoice)

    assert not ok
    assert committed is None
    assert "injected" in msg
    assert db.rows("sales_transactions") == []
    assert db.calls.count(("insert", "sales_transactions")) == 3
    assert ("insert", "sales_details") not in db.calls


def test_number_failure_aborts_before_any_write(db, invoice):
    db.fail_on("rpc", "generate_sales_transaction_no", times=3)

    ok, _, _ = commit_invoice(db, invoice)

    assert not ok
    assert ("insert", "sales_transactions") not in db.calls


def test_custom_price_overrides_catalog_price(db, catalog):
    draft = CustomPricedInvoice(
        transaction_date="2026-03-05",
        lines=[
            CustomPricedLine(
                product_id=catalog["nasi"]["id"],
                product_name="Nasi Kotak",
                unit="box",
                quantity=3,
                unit_price=15000,
                custom_price=12000,
            )
        ],
    )

    ok, _, committed = commit_invoice(db, draft)

    assert ok
    assert committed.total == 36000
    (detail,) = db.rows("sales_details")
    assert detail["unit_price"] == 12000
    assert detail["subtotal"] == 36000


def test_edit_replaces_details(db, invoice, catalog):
    _, _, committed = commit_invoice(db, invoice)

    draft = invoice_from_transaction(db, committed.transaction_id)
    assert draft.editing_transaction_id == committed.transaction_id
    assert [line.product_name for line in draft.lines] == ["Nasi Kotak", "Ayam Bakar"]

    draft.lines = [_line(catalog["ayam"], 4)]
    ok, msg, updated = commit_invoice(db, draft)

    assert ok and msg == "Penjualan diperbarui"
    (header,) = db.rows("sales_transactions")
    assert header["total"] == 100000
    assert header["transaction_no"] == committed.transaction_no
    assert [d["quantity"] for d in db.rows("sales_details")] == [4]


def test_failed_edit_restores_header_and_details(db, invoice, catalog):
    _, _, committed = commit_invoice(db, invoice)
    db.update("sales_transactions", {"updated_at": "2026-03-05T10:00:00+00:00"}, eq={"id": committed.transaction_id})
    before_details = [(d["product_id"], d["quantity"]) for d in db.rows("sales_details")]

    draft = invoice_from_transaction(db, committed.transaction_id)
    draft.lines = [_line(catalog["ayam"], 4)]
    db.fail_on("insert", "sales_details")

    ok, _, _ = commit_invoice(db, draft)

    assert not ok
    (header,) = db.rows("sales_transactions")
    assert header["total"] == 55000
    assert header["updated_at"] == "2026-03-05T10:00:00+00:00"
    assert sorted((d["product_id"], d["quantity"]) for d in db.rows("sales_details")) == sorted(before_details)


def test_delete_removes_details_then_header(db, invoice):
    _, _, committed = commit_invoice(db, invoice)

    ok, _ = delete_sales_transaction(db, committed.transaction_id)

    assert ok
    assert db.rows("sales_transactions") == []
    assert db.rows("sales_details") == []


def test_get_sales_transaction_includes_payment_method_name(db, invoice):
    _, _, committed = commit_invoice(db, invoice)

    tx = get_sales_transaction(db, committed.transaction_id)

    assert tx["payment_method_name"] == "Tunai"
    assert tx["details"][0]["products"]["name"] == "Nasi Kotak"


# ---------------------------------------------------------------------------
# InvoiceFlow
# ---------------------------------------------------------------------------

def test_flow_entry_preview_committed(db, invoice):
    flow = InvoiceFlow()
    flow.to_preview(invoice)
    assert flow.state == FlowState.PREVIEW

    ok, _, committed = flow.confirm(db)

    assert ok
    assert flow.state == FlowState.COMMITTED
    assert flow.result is committed
    assert not flow.is_open


def test_flow_back_keeps_draft(invoice):
    flow = InvoiceFlow()
    flow.to_preview(invoice)

    assert flow.back() is invoice
    assert flow.state == FlowState.ENTRY


def test_flow_failed_confirm_stays_in_preview(db, invoice):
    flow = InvoiceFlow()
    flow.to_preview(invoice)
    db.fail_on("insert", "sales_details")

    ok, msg, _ = flow.confirm(db)

    assert not ok
    assert flow.state == FlowState.PREVIEW
    assert flow.last_error == msg


def test_flow_invalid_draft_stays_in_entry():
    flow = InvoiceFlow()
    with pytest.raises(ValidationError):
        flow.to_preview(StandardInvoice(transaction_date="2026-03-05"))
    assert flow.state == FlowState.ENTRY


def test_flow_rejects_confirm_from_entry(db):
    flow = InvoiceFlow()
    with pytest.raises(InvalidTransition):
        flow.confirm(db)


def test_flow_cancel_from_any_state(invoice):
    flow = InvoiceFlow()
    flow.to_preview(invoice)
    flow.cancel()

    assert flow.state == FlowState.CANCELLED
    with pytest.raises(InvalidTransition):
        flow.back()
