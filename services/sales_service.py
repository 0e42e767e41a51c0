# dapurasri/services/sales_service.py

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from data_integrator import StorageError, StorageGateway
from domain.models import (
    CommittedInvoice,
    InvoiceKind,
    SalesLine,
    StandardInvoice,
    ValidationError,
    editing_id,
    invoice_total,
    valid_lines,
)
from services.compensation import Compensation
from services.numbering_service import allocate_sales_transaction_no
from utils.formatting import to_iso, to_number

logger = logging.getLogger(__name__)

MAX_HEADER_ATTEMPTS = 3


class FlowState(str, Enum):
    ENTRY = "entry"
    PREVIEW = "preview"
    COMMITTED = "committed"
    CANCELLED = "cancelled"


class InvalidTransition(Exception):
    pass


# ---------------------------------------------------------------------------
# Validation + row building
# ---------------------------------------------------------------------------

def validate_invoice(invoice: InvoiceKind) -> None:
    if not to_iso(invoice.transaction_date):
        raise ValidationError("Tanggal transaksi wajib diisi")
    if not valid_lines(invoice):
        raise ValidationError("Minimal satu produk dengan jumlah lebih dari 0")
    if invoice_total(invoice) <= 0:
        raise ValidationError("Total penjualan harus lebih dari 0")


def detail_rows(invoice: InvoiceKind, transaction_id: Any) -> List[Dict[str, Any]]:
    """
    One sales_details row per valid line; subtotal is stored, not derived
    on read.
    """
    return [
        {
            "sales_transaction_id": transaction_id,
            "product_id": line.product_id,
            "quantity": to_number(line.quantity),
            "unit_price": line.effective_price,
            "subtotal": line.subtotal,
        }
        for line in valid_lines(invoice)
    ]


def _header_values(invoice: InvoiceKind) -> Dict[str, Any]:
    return {
        "transaction_date": to_iso(invoice.transaction_date),
        "total": invoice_total(invoice),
        "payment_method_id": invoice.payment_method_id or None,
    }


def _committed(invoice: InvoiceKind, header: Dict[str, Any]) -> CommittedInvoice:
    return CommittedInvoice(
        transaction_id=header.get("id"),
        transaction_no=header.get("transaction_no"),
        transaction_date=to_iso(invoice.transaction_date),
        payment_method_name=invoice.payment_method_name,
        lines=valid_lines(invoice),
        total=invoice_total(invoice),
    )


# ---------------------------------------------------------------------------
# Commit paths
# ---------------------------------------------------------------------------

def _insert_header(db: StorageGateway, invoice: InvoiceKind) -> Dict[str, Any]:
    """
    Allocate a number and insert the header. A number already taken by a
    concurrent session is retried with a freshly allocated one.
    """
    last_error: Optional[StorageError] = None
    for attempt in range(1, MAX_HEADER_ATTEMPTS + 1):
        number = allocate_sales_transaction_no(db, invoice.transaction_date)
        try:
            inserted = db.insert(
                "sales_transactions",
                {"transaction_no": number, **_header_values(invoice)},
            )
        except StorageError as e:
            if not e.is_unique_violation:
                raise
            last_error = e
            logger.warning("Transaction number %s taken (%d/%d)", number, attempt, MAX_HEADER_ATTEMPTS)
            continue
        if not inserted:
            raise StorageError("Gagal menyimpan: header tidak dikembalikan")
        return inserted[0]
    raise last_error


def create_sales_transaction(db: StorageGateway, invoice: InvoiceKind) -> Dict[str, Any]:
    header = _insert_header(db, invoice)
    header_id = header["id"]

    with Compensation(f"penjualan baru {header.get('transaction_no')}") as undo:
        undo.push("hapus header", lambda: db.delete("sales_transactions", eq={"id": header_id}))
        db.insert("sales_details", detail_rows(invoice, header_id))

    logger.info("Sales transaction %s saved (%d lines, total %s)",
                header.get("transaction_no"), len(valid_lines(invoice)), header.get("total"))
    return header


def _restore_details(db: StorageGateway, transaction_id: Any, rows: List[Dict[str, Any]]) -> None:
    db.delete("sales_details", eq={"sales_transaction_id": transaction_id})
    db.insert("sales_details", rows)


def update_sales_transaction(db: StorageGateway, invoice: InvoiceKind) -> Dict[str, Any]:
    """
    Update header, replace all detail rows. Any failure restores the old
    header fields and detail rows.
    """
    transaction_id = editing_id(invoice)
    old_header = db.select_one("sales_transactions", eq={"id": transaction_id})
    if not old_header:
        raise StorageError("Transaksi penjualan tidak ditemukan")

    old_details = [
        {
            "sales_transaction_id": transaction_id,
            "product_id": d.get("product_id"),
            "quantity": to_number(d.get("quantity")),
            "unit_price": to_number(d.get("unit_price")),
            "subtotal": to_number(d.get("subtotal")),
        }
        for d in db.select("sales_details", eq={"sales_transaction_id": transaction_id})
    ]
    old_values = {k: old_header.get(k) for k in ("transaction_date", "total", "payment_method_id", "updated_at")}

    with Compensation(f"edit penjualan {old_header.get('transaction_no')}") as undo:
        updated = db.update(
            "sales_transactions",
            {**_header_values(invoice), "updated_at": datetime.now(timezone.utc).isoformat()},
            eq={"id": transaction_id},
        )
        undo.push("kembalikan header",
                  lambda: db.update("sales_transactions", old_values, eq={"id": transaction_id}))

        db.delete("sales_details", eq={"sales_transaction_id": transaction_id})
        undo.push("kembalikan detail", lambda: _restore_details(db, transaction_id, old_details))

        db.insert("sales_details", detail_rows(invoice, transaction_id))

    header = updated[0] if updated else {**old_header, **_header_values(invoice)}
    logger.info("Sales transaction %s updated", header.get("transaction_no"))
    return header


def commit_invoice(
        db: StorageGateway,
        invoice: InvoiceKind,
) -> Tuple[bool, str, Optional[CommittedInvoice]]:
    """
    Persist an invoice (new or edited).
    Returns (ok, message, committed_invoice)
    """
    try:
        validate_invoice(invoice)
    except ValidationError as e:
        return False, str(e), None

    try:
        if editing_id(invoice):
            header = update_sales_transaction(db, invoice)
            msg = "Penjualan diperbarui"
        else:
            header = create_sales_transaction(db, invoice)
            msg = "Penjualan disimpan"
    except StorageError as e:
        logger.error("Sales commit failed: %s", e)
        return False, e.message, None

    return True, msg, _committed(invoice, header)


# ---------------------------------------------------------------------------
# Entry -> Preview -> Committed
# ---------------------------------------------------------------------------

class InvoiceFlow:
    """
    State of one invoice dialog.

      entry --to_preview--> preview --confirm(ok)--> committed
      preview --back--> entry
      any --cancel--> cancelled

    Preview shows the draft produced by entry and never re-fetches.
    """

    def __init__(self, draft: Optional[InvoiceKind] = None):
        self.state = FlowState.ENTRY
        self.draft = draft
        self.result: Optional[CommittedInvoice] = None
        self.last_error: Optional[str] = None

    def _require(self, *states: FlowState) -> None:
        if self.state not in states:
            raise InvalidTransition(f"Tidak bisa dari status {self.state.value}")

    def to_preview(self, draft: InvoiceKind) -> None:
        self._require(FlowState.ENTRY)
        validate_invoice(draft)
        self.draft = draft
        self.last_error = None
        self.state = FlowState.PREVIEW

    def back(self) -> Optional[InvoiceKind]:
        self._require(FlowState.PREVIEW)
        self.state = FlowState.ENTRY
        return self.draft

    def cancel(self) -> None:
        self.state = FlowState.CANCELLED

    def confirm(self, db: StorageGateway) -> Tuple[bool, str, Optional[CommittedInvoice]]:
        self._require(FlowState.PREVIEW)
        ok, msg, committed = commit_invoice(db, self.draft)
        if ok:
            self.result = committed
            self.state = FlowState.COMMITTED
        else:
            self.last_error = msg
        return ok, msg, committed

    @property
    def is_open(self) -> bool:
        return self.state in (FlowState.ENTRY, FlowState.PREVIEW)


# ---------------------------------------------------------------------------
# Reads + delete
# ---------------------------------------------------------------------------

def get_sales_transaction(db: StorageGateway, transaction_id: Any) -> Optional[Dict[str, Any]]:
    """
    Header with `details` (product name/unit nested) and
    `payment_method_name`, or None when the row does not exist.
    """
    header = db.select_one("sales_transactions", eq={"id": transaction_id})
    if not header:
        return None

    payment_method_name = ""
    if header.get("payment_method_id"):
        pm = db.select_one("payment_methods", "name", eq={"id": header["payment_method_id"]})
        payment_method_name = (pm or {}).get("name") or ""

    details = db.select(
        "sales_details",
        "*, products(name, unit)",
        eq={"sales_transaction_id": transaction_id},
    )
    return {**header, "details": details, "payment_method_name": payment_method_name}


def invoice_from_transaction(db: StorageGateway, transaction_id: Any) -> Optional[StandardInvoice]:
    """Load a saved transaction back into an editable draft."""
    tx = get_sales_transaction(db, transaction_id)
    if not tx:
        return None
    lines = [
        SalesLine(
            product_id=d.get("product_id"),
            product_name=(d.get("products") or {}).get("name") or "",
            unit=(d.get("products") or {}).get("unit") or "",
            quantity=to_number(d.get("quantity")),
            unit_price=to_number(d.get("unit_price")),
        )
        for d in tx["details"]
    ]
    return StandardInvoice(
        transaction_date=to_iso(tx.get("transaction_date")),
        payment_method_id=tx.get("payment_method_id"),
        payment_method_name=tx["payment_method_name"],
        lines=lines,
        editing_transaction_id=transaction_id,
    )


def delete_sales_transaction(db: StorageGateway, transaction_id: Any) -> Tuple[bool, str]:
    try:
        old_details = db.select("sales_details", eq={"sales_transaction_id": transaction_id})
        with Compensation(f"hapus penjualan {transaction_id}") as undo:
            db.delete("sales_details", eq={"sales_transaction_id": transaction_id})
            undo.push("kembalikan detail", lambda: db.insert("sales_details", old_details))
            db.delete("sales_transactions", eq={"id": transaction_id})
    except StorageError as e:
        logger.error("Delete sales %s failed: %s", transaction_id, e)
        return False, e.message
    return True, "Transaksi penjualan dihapus"
