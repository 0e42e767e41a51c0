# dapurasri/services/purchase_service.py

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from data_integrator import StorageError, StorageGateway
from domain.models import PurchaseLine
from utils.formatting import to_iso, to_number

logger = logging.getLogger(__name__)


def purchase_row(line: PurchaseLine, transaction_date: str, payment_method_id: Optional[Any]) -> Dict[str, Any]:
    return {
        "category_id": line.category_id,
        "description": str(line.description).strip(),
        "amount": to_number(line.amount),
        "transaction_date": to_iso(transaction_date),
        "payment_method_id": payment_method_id or None,
    }


def save_purchases(
        db: StorageGateway,
        lines: List[PurchaseLine],
        transaction_date: str,
        payment_method_id: Optional[Any] = None,
) -> Tuple[bool, str, List[Dict[str, Any]]]:
    """
    Insert every valid line as its own purchase_transactions row, in one
    batch. Returns (ok, message, inserted_rows)
    """
    if not to_iso(transaction_date):
        return False, "Tanggal transaksi wajib diisi", []

    valid = [line for line in lines if line.is_valid]
    if not valid:
        return False, "Minimal satu item dengan kategori dan keterangan", []

    try:
        inserted = db.insert(
            "purchase_transactions",
            [purchase_row(line, transaction_date, payment_method_id) for line in valid],
        )
    except StorageError as e:
        logger.error("Save purchases failed: %s", e)
        return False, e.message, []

    logger.info("Saved %d purchase row(s) for %s", len(valid), transaction_date)
    return True, "Pembelian disimpan", inserted


def update_purchase(
        db: StorageGateway,
        purchase_id: Any,
        line: PurchaseLine,
        transaction_date: str,
        payment_method_id: Optional[Any] = None,
) -> Tuple[bool, str]:
    """Editing always works on exactly one line."""
    if not to_iso(transaction_date):
        return False, "Tanggal transaksi wajib diisi"
    if not line.is_valid:
        return False, "Kategori dan keterangan wajib diisi, nominal tidak boleh negatif"

    try:
        db.update(
            "purchase_transactions",
            {
                **purchase_row(line, transaction_date, payment_method_id),
                "updated_at": datetime.now(timezone.utc).isoformat(),
            },
            eq={"id": purchase_id},
        )
    except StorageError as e:
        logger.error("Update purchase %s failed: %s", purchase_id, e)
        return False, e.message
    return True, "Pembelian diperbarui"


def get_purchase(db: StorageGateway, purchase_id: Any) -> Optional[Dict[str, Any]]:
    row = db.select_one(
        "purchase_transactions",
        "*, purchase_categories(name), payment_methods(name)",
        eq={"id": purchase_id},
    )
    if not row:
        return None
    return {
        **row,
        "category_name": (row.get("purchase_categories") or {}).get("name") or "",
        "payment_method_name": (row.get("payment_methods") or {}).get("name") or "",
    }


def delete_purchase(db: StorageGateway, purchase_id: Any) -> Tuple[bool, str]:
    try:
        db.delete("purchase_transactions", eq={"id": purchase_id})
    except StorageError as e:
        return False, e.message
    return True, "Transaksi pembelian dihapus"
