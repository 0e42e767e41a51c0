# dapurasri/services/order_service.py

import logging
from collections import OrderedDict
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from data_integrator import StorageError, StorageGateway
from domain.models import OrderLine, OrderStatus, SalesLine, StandardInvoice, ValidationError
from services.compensation import Compensation
from services.numbering_service import allocate_order_number
from utils.formatting import to_iso, to_number

logger = logging.getLogger(__name__)

ORDER_LIST_COLUMNS = "*, customers(name), order_items(product_id, product_name, unit, quantity, unit_price)"


# ---------------------------------------------------------------------------
# Customers
# ---------------------------------------------------------------------------

def find_customer(customers: List[Dict[str, Any]], name: str) -> Optional[Dict[str, Any]]:
    """Exact match on the trimmed name, ignoring case."""
    needle = (name or "").strip().lower()
    if not needle:
        return None
    return next((c for c in customers if str(c.get("name") or "").strip().lower() == needle), None)


def find_or_create_customer(db: StorageGateway, name: str) -> Tuple[Dict[str, Any], bool]:
    """
    Returns (customer_row, created)
    """
    clean = (name or "").strip()
    if not clean:
        raise ValidationError("Nama pemesan wajib diisi")

    existing = find_customer(db.select("customers", "id, name"), clean)
    if existing:
        return existing, False

    inserted = db.insert("customers", {"name": clean})
    if not inserted:
        raise StorageError("Gagal menambah pemesan: no data returned")
    logger.info('Customer "%s" created (id=%s)', clean, inserted[0].get("id"))
    return inserted[0], True


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------

def validate_order(customer_name: str, order_date: str, target_date: str, lines: List[OrderLine]) -> None:
    if not (customer_name or "").strip():
        raise ValidationError("Nama pemesan wajib diisi")
    if not lines:
        raise ValidationError("Minimal satu produk harus ditambahkan")
    if any(to_number(line.quantity) <= 0 for line in lines):
        raise ValidationError("Jumlah produk harus lebih dari 0")
    if not to_iso(target_date):
        raise ValidationError("Tanggal target wajib diisi")
    if to_iso(order_date) and to_iso(target_date) < to_iso(order_date):
        raise ValidationError("Tanggal target tidak boleh sebelum tanggal pesanan")


def load_orders(db: StorageGateway) -> List[Dict[str, Any]]:
    return db.select("orders", ORDER_LIST_COLUMNS, order="created_at", desc=True)


def load_order_items(db: StorageGateway, order_id: Any) -> List[OrderLine]:
    rows = db.select("order_items", "*, products(name, unit)", eq={"order_id": order_id})
    return [
        OrderLine(
            product_id=r.get("product_id"),
            product_name=r.get("product_name") or (r.get("products") or {}).get("name") or "",
            unit=r.get("unit") or (r.get("products") or {}).get("unit") or "",
            quantity=to_number(r.get("quantity")),
            unit_price=to_number(r.get("unit_price")),
        )
        for r in rows
    ]


def create_order(
        db: StorageGateway,
        customer_name: str,
        target_date: str,
        lines: List[OrderLine],
        order_date: Optional[str] = None,
) -> Tuple[bool, str, Optional[Dict[str, Any]]]:
    """
    Insert an order header (numbered PO-YYYYMMDD-NNN) and its items.
    Returns (ok, message, order_row)
    """
    order_date = to_iso(order_date) or date.today().isoformat()
    try:
        validate_order(customer_name, order_date, target_date, lines)
    except ValidationError as e:
        return False, str(e), None

    try:
        with Compensation("pesanan baru") as undo:
            customer, created = find_or_create_customer(db, customer_name)
            if created:
                undo.push("hapus pemesan", lambda: db.delete("customers", eq={"id": customer["id"]}))

            order = allocate_order_number(
                db,
                order_date,
                lambda number: {
                    "order_number": number,
                    "customer_id": customer["id"],
                    "order_date": order_date,
                    "target_date": to_iso(target_date),
                    "status": OrderStatus.PENDING.value,
                },
            )
            undo.push("hapus pesanan", lambda: db.delete("orders", eq={"id": order["id"]}))

            db.insert("order_items", [line.to_row(order["id"]) for line in lines])
    except (StorageError, ValidationError) as e:
        logger.error("Create order failed: %s", e)
        return False, str(e), None

    logger.info("Order %s created for %s", order.get("order_number"), customer.get("name"))
    return True, "Pesanan berhasil dibuat", order


def _restore_items(db: StorageGateway, order_id: Any, rows: List[Dict[str, Any]]) -> None:
    db.delete("order_items", eq={"order_id": order_id})
    db.insert("order_items", rows)


def update_order(
        db: StorageGateway,
        order_id: Any,
        customer_name: str,
        target_date: str,
        lines: List[OrderLine],
) -> Tuple[bool, str, Optional[Dict[str, Any]]]:
    """
    Update customer/target date and replace all items. The order date and
    number never change after creation.
    """
    try:
        old = db.select_one("orders", eq={"id": order_id})
        if not old:
            return False, "Pesanan tidak ditemukan", None
        validate_order(customer_name, old.get("order_date"), target_date, lines)

        old_items = [
            OrderLine(
                product_id=r.get("product_id"),
                product_name=r.get("product_name") or "",
                unit=r.get("unit") or "",
                quantity=to_number(r.get("quantity")),
                unit_price=to_number(r.get("unit_price")),
            ).to_row(order_id)
            for r in db.select("order_items", eq={"order_id": order_id})
        ]
        old_values = {"customer_id": old.get("customer_id"), "target_date": old.get("target_date")}

        with Compensation(f"edit pesanan {old.get('order_number')}") as undo:
            customer, created = find_or_create_customer(db, customer_name)
            if created:
                undo.push("hapus pemesan", lambda: db.delete("customers", eq={"id": customer["id"]}))

            updated = db.update(
                "orders",
                {
                    "customer_id": customer["id"],
                    "target_date": to_iso(target_date),
                    "updated_at": datetime.now(timezone.utc).isoformat(),
                },
                eq={"id": order_id},
            )
            undo.push("kembalikan pesanan", lambda: db.update("orders", old_values, eq={"id": order_id}))

            db.delete("order_items", eq={"order_id": order_id})
            undo.push("kembalikan item", lambda: _restore_items(db, order_id, old_items))

            db.insert("order_items", [line.to_row(order_id) for line in lines])
    except ValidationError as e:
        return False, str(e), None
    except StorageError as e:
        logger.error("Update order %s failed: %s", order_id, e)
        return False, e.message, None

    return True, "Pesanan berhasil diperbarui", (updated[0] if updated else old)


def update_order_status(db: StorageGateway, order_id: Any, status: str) -> Tuple[bool, str]:
    try:
        new_status = OrderStatus(status)
    except ValueError:
        return False, f"Status tidak dikenal: {status}"
    try:
        db.update(
            "orders",
            {"status": new_status.value, "updated_at": datetime.now(timezone.utc).isoformat()},
            eq={"id": order_id},
        )
    except StorageError as e:
        return False, e.message
    return True, f"Status pesanan: {new_status.label}"


def delete_order(db: StorageGateway, order_id: Any) -> Tuple[bool, str]:
    try:
        old_items = db.select("order_items", eq={"order_id": order_id})
        with Compensation(f"hapus pesanan {order_id}") as undo:
            db.delete("order_items", eq={"order_id": order_id})
            undo.push("kembalikan item", lambda: db.insert("order_items", old_items))
            db.delete("orders", eq={"id": order_id})
    except StorageError as e:
        logger.error("Delete order %s failed: %s", order_id, e)
        return False, e.message
    return True, "Pesanan dihapus"


# ---------------------------------------------------------------------------
# Order -> sales transaction
# ---------------------------------------------------------------------------

def merge_order_lines(items: List[Dict[str, Any]]) -> List[SalesLine]:
    """
    Merge order items by product id (quantities summed, first name/unit/
    price kept), dropping lines that end up with quantity <= 0.
    """
    merged: "OrderedDict[Any, SalesLine]" = OrderedDict()
    for item in items:
        pid = item.get("product_id")
        if not pid:
            continue
        qty = to_number(item.get("quantity"))
        if pid in merged:
            merged[pid].quantity += qty
        else:
            merged[pid] = SalesLine(
                product_id=pid,
                product_name=item.get("product_name") or "",
                unit=item.get("unit") or "",
                quantity=qty,
                unit_price=to_number(item.get("unit_price")),
            )
    return [line for line in merged.values() if to_number(line.quantity) > 0]


def order_to_sales_draft(
        order: Dict[str, Any],
        items: Optional[List[Dict[str, Any]]] = None,
        today: Optional[date] = None,
) -> Optional[StandardInvoice]:
    """
    Build a pre-filled sales entry from an order, or None when nothing is
    left to invoice. The order itself is left untouched.
    """
    lines = merge_order_lines(items if items is not None else (order.get("order_items") or []))
    if not lines:
        return None
    return StandardInvoice(
        transaction_date=(today or date.today()).isoformat(),
        lines=lines,
        source_order_id=order.get("id"),
        source_order_number=order.get("order_number"),
    )
