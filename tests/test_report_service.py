import io

import pytest
from openpyxl import load_workbook

from domain.models import ReportRow
from services.report_service import (
    MODE_PURCHASES,
    MODE_SALES,
    ReportError,
    export_report_xlsx,
    fetch_period_report,
    report_filename,
)


@pytest.fixture
def ledger(db, catalog):
    tunai = catalog["tunai"]["id"]
    s1, s2, s3 = db.seed(
        "sales_transactions",
        {"transaction_no": "INV-20260305-001", "transaction_date": "2026-03-05", "total": 30000,
         "payment_method_id": tunai},
        {"transaction_no": "INV-20260301-001", "transaction_date": "2026-03-01", "total": 25000,
         "payment_method_id": None},
        {"transaction_no": "INV-20260401-001", "transaction_date": "2026-04-01", "total": 15000,
         "payment_method_id": tunai},
    )
    db.seed(
        "sales_details",
        {"sales_transaction_id": s1["id"], "product_id": catalog["nasi"]["id"], "quantity": 2,
         "unit_price": 15000, "subtotal": 30000},
        {"sales_transaction_id": s2["id"], "product_id": catalog["ayam"]["id"], "quantity": 1,
         "unit_price": 25000, "subtotal": 25000},
        {"sales_transaction_id": s3["id"], "product_id": catalog["nasi"]["id"], "quantity": 1,
         "unit_price": 15000, "subtotal": 15000},
    )
    db.seed(
        "purchase_transactions",
        {"category_id": catalog["bahan"]["id"], "description": "Beras", "amount": 300000,
         "transaction_date": "2026-03-10", "payment_method_id": tunai},
    )
    return db


def test_sales_report_sorted_with_total(ledger):
    report = fetch_period_report(ledger, MODE_SALES, "2026-03-01", "2026-03-31")

    assert [(r.date, r.description, r.amount) for r in report.rows] == [
        ("2026-03-01", "INV-20260301-001", 25000),
        ("2026-03-05", "INV-20260305-001", 30000),
    ]
    assert report.total == 55000


def test_product_filter_resolves_transaction_ids_first(ledger, catalog):
    report = fetch_period_report(ledger, MODE_SALES, "2026-03-01", "2026-03-31", product_id=catalog["nasi"]["id"])
    assert [r.description for r in report.rows] == ["INV-20260305-001"]


def test_product_without_sales_yields_empty_report(ledger):
    report = fetch_period_report(ledger, MODE_SALES, "2026-03-01", "2026-03-31", product_id=999)
    assert report.rows == []
    assert report.total == 0
    assert ("select", "sales_transactions") not in ledger.calls


def test_payment_method_filter(ledger, catalog):
    report = fetch_period_report(
        ledger, MODE_SALES, "2026-03-01", "2026-04-30", payment_method_id=catalog["tunai"]["id"]
    )
    assert [r.description for r in report.rows] == ["INV-20260305-001", "INV-20260401-001"]


def test_purchases_report(ledger):
    report = fetch_period_report(ledger, MODE_PURCHASES, "2026-03-01", "2026-03-31")
    assert [(r.description, r.amount) for r in report.rows] == [("Beras", 300000)]


def test_inverted_range_is_rejected(ledger):
    with pytest.raises(ReportError):
        fetch_period_report(ledger, MODE_SALES, "2026-03-31", "2026-03-01")


def test_report_filename():
    assert report_filename(MODE_SALES, "2026-03-01", "2026-03-31") == "laporan-penjualan-2026-03-01-2026-03-31.xlsx"
    assert report_filename(MODE_PURCHASES, "2026-03-01", "2026-03-31") == "laporan-pengeluaran-2026-03-01-2026-03-31.xlsx"


def test_export_reads_back_the_same_rows():
    rows = [
        ReportRow(date="2026-03-01", description="INV-20260301-001", amount=25000),
        ReportRow(date="2026-03-05", description="INV-20260305-001", amount=1234567),
    ]

    wb = load_workbook(io.BytesIO(export_report_xlsx(rows)))
    ws = wb["Laporan"]

    assert [c.value for c in ws[1]] == ["Tanggal", "Keterangan", "Nominal"]
    assert all(c.font.bold for c in ws[1])
    assert [ws.column_dimensions[col].width for col in "ABC"] == [14, 32, 16]

    body = [tuple(c.value for c in row) for row in ws.iter_rows(min_row=2)]
    assert body == [("2026-03-01", "INV-20260301-001", 25000), ("2026-03-05", "INV-20260305-001", 1234567)]
    assert ws["C3"].number_format == "#,##0"


def test_export_without_rows_raises():
    with pytest.raises(ReportError, match="Tidak ada data untuk diexport"):
        export_report_xlsx([])
