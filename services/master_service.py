# dapurasri/services/master_service.py

import logging
from typing import Any, Dict, List, Optional, Tuple

from data_integrator import StorageError, StorageGateway, is_exist
from domain.models import ValidationError
from utils.formatting import to_number

logger = logging.getLogger(__name__)

DEFAULT_UNIT = "kg"

# table -> (singular label, list columns)
MASTER_TABLES = {
    "products": ("Produk", "id, name, price, unit"),
    "purchase_categories": ("Kategori", "id, name"),
    "payment_methods": ("Metode pembayaran", "id, name"),
}


def _label(table: str) -> str:
    if table not in MASTER_TABLES:
        raise ValueError(f"Unknown master table: {table}")
    return MASTER_TABLES[table][0]


def list_master(db: StorageGateway, table: str) -> Tuple[bool, str, List[Dict[str, Any]]]:
    _label(table)
    try:
        rows = db.select(table, MASTER_TABLES[table][1], order="name")
    except StorageError as e:
        return False, e.message, []
    return True, "Fetched", rows


def build_payload(table: str, values: Dict[str, Any], current: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    name = str(values.get("name") or "").strip()
    if not name:
        raise ValidationError(f"Nama {_label(table).lower()} wajib diisi")
    payload: Dict[str, Any] = {"name": name}

    if table == "products":
        raw_price = values.get("price")
        if raw_price is None or str(raw_price).strip() == "":
            raise ValidationError("Harga wajib diisi")
        price = to_number(raw_price, default=-1)
        if price < 0:
            raise ValidationError("Harga tidak boleh negatif")
        payload["price"] = price
        payload["unit"] = (
                str(values.get("unit") or "").strip()
                or (current or {}).get("unit")
                or DEFAULT_UNIT
        )
    return payload


def save_master(
        db: StorageGateway,
        table: str,
        values: Dict[str, Any],
        row_id: Optional[Any] = None,
) -> Tuple[bool, str, Optional[Dict[str, Any]]]:
    """
    Insert (row_id None) or update one lookup row.
    Returns (ok, message, row)
    """
    label = _label(table)
    try:
        current = db.select_one(table, eq={"id": row_id}) if row_id else None
        payload = build_payload(table, values, current)
        if is_exist(db, table, "name", payload["name"], exclude_id=row_id):
            raise ValidationError(f"{label} '{payload['name']}' sudah ada di database")

        if row_id:
            rows = db.update(table, payload, eq={"id": row_id})
            msg = f"{label} diperbarui"
        else:
            rows = db.insert(table, payload)
            msg = f"{label} ditambahkan"
    except ValidationError as e:
        return False, str(e), None
    except StorageError as e:
        logger.error("Save %s failed: %s", table, e)
        return False, e.message, None

    return True, msg, rows[0] if rows else None


def delete_master(db: StorageGateway, table: str, row_id: Any) -> Tuple[bool, str]:
    label = _label(table)
    try:
        db.delete(table, eq={"id": row_id})
    except StorageError as e:
        if e.is_foreign_key_violation:
            return False, f"{label} masih dipakai di transaksi lain"
        return False, e.message
    return True, f"{label} dihapus"


def search_products(products: List[Dict[str, Any]], query: str) -> List[Dict[str, Any]]:
    q = (query or "").strip().lower()
    if not q:
        return list(products)
    return [
        p for p in products
        if q in str(p.get("name") or "").lower() or q in str(p.get("unit") or "").lower()
    ]
