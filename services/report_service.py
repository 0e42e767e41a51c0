# dapurasri/services/report_service.py

import io
import logging
from typing import Any, Dict, List, Optional

from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter

from data_integrator import StorageGateway
from domain.models import PeriodReport, ReportRow
from utils.formatting import to_iso, to_number

logger = logging.getLogger(__name__)

MODE_SALES = "sales"
MODE_PURCHASES = "purchases"

REPORT_TITLES = {
    MODE_SALES: "Laporan Penjualan",
    MODE_PURCHASES: "Laporan Pengeluaran",
}

_TYPE_LABELS = {
    MODE_SALES: "penjualan",
    MODE_PURCHASES: "pengeluaran",
}

SHEET_NAME = "Laporan"
COLUMNS = [
    # header, width
    ("Tanggal", 14),
    ("Keterangan", 32),
    ("Nominal", 16),
]
NOMINAL_FORMAT = "#,##0"


class ReportError(Exception):
    pass


def _check_mode(mode: str) -> None:
    if mode not in REPORT_TITLES:
        raise ValueError(f"Unknown report mode: {mode}")


def build_report_rows(mode: str, rows: List[Dict[str, Any]]) -> List[ReportRow]:
    """
    Reshape header rows into {date, description, amount}, oldest first.
    """
    _check_mode(mode)
    if mode == MODE_SALES:
        out = [
            ReportRow(
                date=to_iso(r.get("transaction_date")),
                description=r.get("transaction_no") or "",
                amount=to_number(r.get("total")),
            )
            for r in rows
        ]
    else:
        out = [
            ReportRow(
                date=to_iso(r.get("transaction_date")),
                description=r.get("description") or "",
                amount=to_number(r.get("amount")),
            )
            for r in rows
        ]
    out.sort(key=lambda r: r.date)
    return out


def fetch_period_report(
        db: StorageGateway,
        mode: str,
        date_from: str,
        date_to: str,
        product_id: Optional[Any] = None,
        payment_method_id: Optional[Any] = None,
) -> PeriodReport:
    """
    Fetch the rows of one period and roll them up.

    The product filter only applies to sales: the product lives on the
    detail rows, so the matching transaction ids are resolved first and
    then intersected with the date range.
    """
    _check_mode(mode)
    date_from, date_to = to_iso(date_from), to_iso(date_to)
    if date_from and date_to and date_from > date_to:
        raise ReportError("Tanggal awal tidak boleh melewati tanggal akhir")

    eq: Dict[str, Any] = {}
    if payment_method_id:
        eq["payment_method_id"] = payment_method_id

    filters = {
        "eq": eq,
        "gte": {"transaction_date": date_from},
        "lte": {"transaction_date": date_to},
        "order": "transaction_date",
    }

    if mode == MODE_SALES:
        if product_id:
            detail_rows = db.select(
                "sales_details",
                "sales_transaction_id",
                eq={"product_id": product_id},
            )
            ids = sorted({r["sales_transaction_id"] for r in detail_rows}, key=str)
            if not ids:
                return PeriodReport(mode, date_from, date_to, [], 0)
            filters["in_"] = {"id": ids}

        raw = db.select("sales_transactions", "id, transaction_no, transaction_date, total", **filters)
    else:
        raw = db.select("purchase_transactions", "id, description, amount, transaction_date", **filters)

    rows = build_report_rows(mode, raw)
    total = sum((r.amount for r in rows), 0)
    logger.info("%s %s..%s: %d rows, total %s", REPORT_TITLES[mode], date_from, date_to, len(rows), total)
    return PeriodReport(mode=mode, date_from=date_from, date_to=date_to, rows=rows, total=total)


# ---------------------------------------------------------------------------
# Excel export
# ---------------------------------------------------------------------------

def report_filename(mode: str, date_from: str, date_to: str) -> str:
    _check_mode(mode)
    return f"laporan-{_TYPE_LABELS[mode]}-{to_iso(date_from)}-{to_iso(date_to)}.xlsx"


def export_report_xlsx(rows: List[ReportRow]) -> bytes:
    """
    Tanggal | Keterangan | Nominal, one row per transaction.
    Nominal stays a plain number; only the cell format groups thousands.
    """
    if not rows:
        raise ReportError("Tidak ada data untuk diexport")

    wb = Workbook()
    ws = wb.active
    ws.title = SHEET_NAME

    ws.append([header for header, _ in COLUMNS])
    for cell in ws[1]:
        cell.font = Font(bold=True)

    for r in rows:
        ws.append([to_iso(r.date), r.description, to_number(r.amount)])

    for idx, (_, width) in enumerate(COLUMNS, start=1):
        ws.column_dimensions[get_column_letter(idx)].width = width

    for (cell,) in ws.iter_rows(min_row=2, min_col=3, max_col=3):
        cell.number_format = NOMINAL_FORMAT

    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()
