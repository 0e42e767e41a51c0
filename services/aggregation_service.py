# dapurasri/services/aggregation_service.py

import logging
from collections import defaultdict
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from data_integrator import StorageError, StorageGateway
from domain.models import CustomerRollup, MonthlySummary, ProductQty, ProductUnits
from utils.formatting import format_short_date, month_key, month_label, to_iso, to_number

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Dashboard: monthly summary
# ---------------------------------------------------------------------------

def build_monthly_summaries(
        sales_headers: List[Dict[str, Any]],
        sales_details: List[Dict[str, Any]],
        purchases: List[Dict[str, Any]],
        year: int,
        today: Optional[date] = None,
) -> List[MonthlySummary]:
    """
    Fold flat rows into one summary per month of `year`.

    sales_headers:  {"id", "transaction_date"}
    sales_details:  {"sales_transaction_id", "subtotal", "quantity",
                     "product_id", "products": {"name"}}
    purchases:      {"amount", "transaction_date"}

    Months with neither sales nor purchases are dropped. The current month
    comes first, the rest stay in calendar order.
    """
    today = today or date.today()

    # 1) header id -> month key
    id_to_month: Dict[Any, str] = {}
    for row in sales_headers:
        if not row or row.get("id") is None or not row.get("transaction_date"):
            continue
        id_to_month[row["id"]] = month_key(row["transaction_date"])

    # 2) details -> sales total + units per product
    sales_total: Dict[str, Any] = defaultdict(int)
    units: Dict[str, Dict[Any, ProductUnits]] = defaultdict(dict)

    for row in sales_details:
        if not row:
            continue
        key = id_to_month.get(row.get("sales_transaction_id"))
        if not key:
            continue

        sales_total[key] += to_number(row.get("subtotal"))

        pid = row.get("product_id")
        if not pid:
            continue
        name = (row.get("products") or {}).get("name")
        entry = units[key].get(pid)
        if entry is None:
            entry = units[key][pid] = ProductUnits(product_id=pid, name=name or "-", units=0)
        elif name and entry.name == "-":
            entry.name = name
        entry.units += to_number(row.get("quantity"))

    # 3) purchases -> purchases total
    purchases_total: Dict[str, Any] = defaultdict(int)
    for row in purchases:
        if not row or not row.get("transaction_date"):
            continue
        purchases_total[month_key(row["transaction_date"])] += to_number(row.get("amount"))

    # 4) one bucket per calendar month
    summaries: List[MonthlySummary] = []
    for month in range(1, 13):
        key = f"{year:04d}-{month:02d}"
        s_total = sales_total.get(key, 0)
        p_total = purchases_total.get(key, 0)
        if s_total <= 0 and p_total <= 0:
            continue
        products = sorted(
            units.get(key, {}).values(),
            key=lambda p: (-p.units, p.name, str(p.product_id)),
        )
        summaries.append(
            MonthlySummary(
                month_key=key,
                label=month_label(key),
                sales_total=s_total,
                purchases_total=p_total,
                products=products,
            )
        )

    # 5) current month first
    current = today.strftime("%Y-%m")
    summaries.sort(key=lambda m: m.month_key != current)
    return summaries


def load_monthly_summaries(
        db: StorageGateway,
        year: int,
        today: Optional[date] = None,
) -> List[MonthlySummary]:
    """
    Fetch the rows of `year` and build the dashboard summaries.
    A failed fetch counts as "no rows" for that source.
    """
    range_start = f"{year:04d}-01-01"
    range_end = f"{year:04d}-12-31"
    date_range = {
        "gte": {"transaction_date": range_start},
        "lte": {"transaction_date": range_end},
    }

    try:
        headers = db.select("sales_transactions", "id, transaction_date", **date_range)
    except StorageError as e:
        logger.warning("Dashboard: sales headers unavailable: %s", e)
        headers = []

    try:
        purchases = db.select("purchase_transactions", "amount, transaction_date", **date_range)
    except StorageError as e:
        logger.warning("Dashboard: purchases unavailable: %s", e)
        purchases = []

    details: List[Dict[str, Any]] = []
    sales_ids = [row["id"] for row in headers if row.get("id") is not None]
    if sales_ids:
        try:
            details = db.select(
                "sales_details",
                "sales_transaction_id, subtotal, quantity, product_id, products(name)",
                in_={"sales_transaction_id": sales_ids},
            )
        except StorageError as e:
            logger.warning("Dashboard: sales details unavailable: %s", e)

    return build_monthly_summaries(headers, details, purchases, year, today)


# ---------------------------------------------------------------------------
# Orders: product / customer rollups
# ---------------------------------------------------------------------------

def _items(order: Dict[str, Any]) -> List[Dict[str, Any]]:
    return order.get("order_items") or []


def _customer_name(order: Dict[str, Any]) -> str:
    return (order.get("customers") or {}).get("name") or "-"


def order_nominal(order: Dict[str, Any]):
    """Σ quantity × unit price; orders do not store a total."""
    return sum(
        (to_number(item.get("quantity")) * to_number(item.get("unit_price")) for item in _items(order)),
        0,
    )


def orders_grand_total(orders: List[Dict[str, Any]]):
    return sum((order_nominal(o) for o in orders), 0)


def order_total_quantity(order: Dict[str, Any]):
    return sum((to_number(item.get("quantity")) for item in _items(order)), 0)


def format_order_items(order: Dict[str, Any]) -> str:
    if not _items(order):
        return "-"
    return ", ".join(
        f"{item.get('product_name')} ×{to_number(item.get('quantity'))}" for item in _items(order)
    )


def product_counts(orders: List[Dict[str, Any]]) -> List[ProductQty]:
    totals: Dict[str, Any] = defaultdict(int)
    for order in orders:
        for item in _items(order):
            name = item.get("product_name")
            if not name:
                continue
            totals[name] += to_number(item.get("quantity"))

    return sorted(
        (ProductQty(name=name, qty=qty) for name, qty in totals.items()),
        key=lambda p: (-p.qty, p.name),
    )


def product_customers(orders: List[Dict[str, Any]], product_name: str) -> List[CustomerRollup]:
    """
    For one product: quantity per customer plus the orders it appeared in.
    """
    if not product_name:
        return []

    result: Dict[str, CustomerRollup] = {}
    for order in orders:
        customer = _customer_name(order)
        for item in _items(order):
            if item.get("product_name") != product_name:
                continue
            entry = result.setdefault(customer, CustomerRollup(customer=customer, qty=0, orders=[]))
            entry.qty += to_number(item.get("quantity"))
            number = order.get("order_number")
            if number and number not in entry.orders:
                entry.orders.append(number)

    for entry in result.values():
        entry.orders.sort()
    return sorted(result.values(), key=lambda c: (-c.qty, c.customer))


def filter_orders(orders: List[Dict[str, Any]], query: str) -> List[Dict[str, Any]]:
    q = (query or "").strip().lower()
    if not q:
        return list(orders)
    return [
        o for o in orders
        if q in _customer_name(o).lower() or q in str(o.get("order_number") or "").lower()
    ]


# ---------------------------------------------------------------------------
# Transactions list: sales + purchases in one feed
# ---------------------------------------------------------------------------

def merge_transactions(
        sales: List[Dict[str, Any]],
        purchases: List[Dict[str, Any]],
) -> List[Dict[str, Any]]:
    tagged = [
        {**row, "_type": "sales", "_amount": to_number(row.get("total"))} for row in sales
    ] + [
        {**row, "_type": "purchase", "_amount": to_number(row.get("amount"))} for row in purchases
    ]
    tagged.sort(
        key=lambda r: (to_iso(r.get("transaction_date")), str(r.get("created_at") or "")),
        reverse=True,
    )
    return tagged


def transaction_feed_rows(
        feed: List[Dict[str, Any]],
        category_names: Dict[Any, str],
) -> List[Dict[str, Any]]:
    """
    One display row per feed row, keeping its id and type so rows with the
    same date and text stay distinct.
    """
    rows = []
    for r in feed:
        if r["_type"] == "sales":
            kind, description = "Penjualan", r.get("transaction_no") or ""
        else:
            kind = "Pengeluaran"
            description = f"{category_names.get(r.get('category_id'), '-')}: {r.get('description') or ''}"
        date_label = format_short_date(r.get("transaction_date"))
        rows.append({
            "id": r.get("id"),
            "_type": r["_type"],
            "date": date_label,
            "type": kind,
            "description": description,
            "amount": r["_amount"],
            "label": f"{date_label} · {kind} · {description}",
        })
    return rows


def load_transaction_feed(db: StorageGateway) -> Tuple[List[Dict[str, Any]], List[str]]:
    """
    Sales and purchases merged newest first.
    Returns (rows, error_messages); a failed source contributes no rows.
    """
    errors: List[str] = []
    feeds: Dict[str, List[Dict[str, Any]]] = {}
    for table in ("sales_transactions", "purchase_transactions"):
        try:
            feeds[table] = db.select(table, "*", order=["transaction_date", "created_at"], desc=True)
        except StorageError as e:
            logger.warning("Transaction feed: %s unavailable: %s", table, e)
            errors.append(e.message)
            feeds[table] = []
    return merge_transactions(feeds["sales_transactions"], feeds["purchase_transactions"]), errors
