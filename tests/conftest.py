import copy
import itertools
import re
from typing import Any, Dict, List, Optional

import pytest

from data_integrator import FOREIGN_KEY_VIOLATION, UNIQUE_VIOLATION, StorageError

UNIQUE_COLUMNS = {
    "orders": ["order_number"],
    "sales_transactions": ["transaction_no"],
}

# relation name -> foreign key column on the parent row (many-to-one)
MANY_TO_ONE = {
    "products": "product_id",
    "customers": "customer_id",
    "purchase_categories": "category_id",
    "payment_methods": "payment_method_id",
}

# (parent table, relation name) -> foreign key column on the child rows
ONE_TO_MANY = {
    ("orders", "order_items"): "order_id",
    ("sales_transactions", "sales_details"): "sales_transaction_id",
}

# table -> [(child table, fk column)]
REFERENCED_BY = {
    "products": [("sales_details", "product_id"), ("order_items", "product_id")],
    "payment_methods": [("sales_transactions", "payment_method_id"),
                        ("purchase_transactions", "payment_method_id")],
    "purchase_categories": [("purchase_transactions", "category_id")],
    "customers": [("orders", "customer_id")],
    "orders": [("order_items", "order_id")],
    "sales_transactions": [("sales_details", "sales_transaction_id")],
}


def _split_columns(columns: str) -> List[str]:
    parts, depth, buf = [], 0, ""
    for ch in columns:
        if ch == "," and depth == 0:
            parts.append(buf.strip())
            buf = ""
            continue
        depth += ch == "("
        depth -= ch == ")"
        buf += ch
    if buf.strip():
        parts.append(buf.strip())
    return parts


def _like(pattern: str) -> "re.Pattern":
    return re.compile("^" + ".*".join(re.escape(p) for p in pattern.split("%")) + "$")


class FakeGateway:
    """
    In-memory StorageGateway: same method signatures, plus
    unique constraints, FK checks on delete and injectable failures.
    """

    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.calls: List[tuple] = []
        self._ids = itertools.count(1)
        self._clock = itertools.count(1)
        self._failures: List[Dict[str, Any]] = []
        self._counters: Dict[str, int] = {}

    # -- test helpers -------------------------------------------------------

    def seed(self, table: str, *rows: Dict[str, Any]) -> List[Dict[str, Any]]:
        stored = []
        for row in rows:
            row = dict(row)
            row.setdefault("id", next(self._ids))
            row.setdefault("created_at", f"2026-01-01T00:00:{next(self._clock):06d}")
            self.tables.setdefault(table, []).append(row)
            stored.append(copy.deepcopy(row))
        return stored

    def rows(self, table: str) -> List[Dict[str, Any]]:
        return copy.deepcopy(self.tables.get(table, []))

    def fail_on(self, op: str, table: str, times: int = 1, code: Optional[str] = None) -> None:
        self._failures.append({"op": op, "table": table, "times": times, "code": code})

    def _maybe_fail(self, op: str, table: str) -> None:
        self.calls.append((op, table))
        for f in self._failures:
            if f["op"] == op and f["table"] == table and f["times"] > 0:
                f["times"] -= 1
                raise StorageError(f"{op} {table} failed: injected", code=f["code"])

    # -- filtering ------------------------------------------------------------

    @staticmethod
    def _matches(row, eq=None, gte=None, lte=None, in_=None, like=None) -> bool:
        for col, val in (eq or {}).items():
            if row.get(col) != val:
                return False
        for col, val in (gte or {}).items():
            if row.get(col) is None or str(row.get(col)) < str(val):
                return False
        for col, val in (lte or {}).items():
            if row.get(col) is None or str(row.get(col)) > str(val):
                return False
        for col, vals in (in_ or {}).items():
            if row.get(col) not in list(vals):
                return False
        for col, pattern in (like or {}).items():
            if not _like(pattern).match(str(row.get(col) or "")):
                return False
        return True

    def _project(self, table: str, row: Dict[str, Any], columns: str) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for part in _split_columns(columns):
            if part == "*":
                out.update(copy.deepcopy(row))
                continue
            m = re.match(r"^(\w+)\((.*)\)$", part)
            if not m:
                out[part] = copy.deepcopy(row.get(part))
                continue

            relation, inner = m.group(1), m.group(2)
            if (table, relation) in ONE_TO_MANY:
                fk = ONE_TO_MANY[(table, relation)]
                out[relation] = [
                    self._project(relation, child, inner)
                    for child in self.tables.get(relation, [])
                    if child.get(fk) == row.get("id")
                ]
            else:
                fk_val = row.get(MANY_TO_ONE[relation])
                target = next((r for r in self.tables.get(relation, []) if r.get("id") == fk_val), None)
                out[relation] = self._project(relation, target, inner) if target else None
        return out

    # -- StorageGateway interface --------------------------------------------

    def select(self, table, columns="*", *, eq=None, gte=None, lte=None, in_=None,
               like=None, order=None, desc=False, limit=None):
        self._maybe_fail("select", table)
        rows = [r for r in self.tables.get(table, []) if self._matches(r, eq, gte, lte, in_, like)]
        if order:
            cols = [order] if isinstance(order, str) else list(order)
            rows = sorted(rows, key=lambda r: tuple(str(r.get(c) or "") for c in cols), reverse=desc)
        if limit is not None:
            rows = rows[:limit]
        return [self._project(table, r, columns) for r in rows]

    def select_one(self, table, columns="*", **filters):
        rows = self.select(table, columns, limit=1, **filters)
        return rows[0] if rows else None

    def insert(self, table, rows):
        if isinstance(rows, list) and not rows:
            return []
        self._maybe_fail("insert", table)
        batch = rows if isinstance(rows, list) else [rows]
        existing = self.tables.get(table, [])
        for col in UNIQUE_COLUMNS.get(table, []):
            taken = {r.get(col) for r in existing}
            for row in batch:
                if row.get(col) in taken:
                    raise StorageError(
                        f'Insert {table} failed: duplicate key value violates unique constraint "{table}_{col}_key"',
                        code=UNIQUE_VIOLATION,
                    )
                taken.add(row.get(col))
        return self.seed(table, *batch)

    def update(self, table, values, *, eq):
        self._maybe_fail("update", table)
        updated = []
        for row in self.tables.get(table, []):
            if self._matches(row, eq=eq):
                row.update(copy.deepcopy(values))
                updated.append(copy.deepcopy(row))
        return updated

    def delete(self, table, *, eq=None, in_=None):
        self._maybe_fail("delete", table)
        doomed = [r for r in self.tables.get(table, []) if self._matches(r, eq=eq, in_=in_)]
        doomed_ids = {r.get("id") for r in doomed}
        for child, fk in REFERENCED_BY.get(table, []):
            if any(r.get(fk) in doomed_ids for r in self.tables.get(child, [])):
                raise StorageError(
                    f'Delete {table} failed: violates foreign key constraint on "{child}"',
                    code=FOREIGN_KEY_VIOLATION,
                )
        self.tables[table] = [r for r in self.tables.get(table, []) if r.get("id") not in doomed_ids]
        return copy.deepcopy(doomed)

    def rpc(self, fn, params):
        self._maybe_fail("rpc", fn)
        if fn != "generate_sales_transaction_no":
            raise StorageError(f"RPC {fn} failed: unknown function")
        day = params["p_txn_date"]
        self._counters[day] = self._counters.get(day, 0) + 1
        return f"INV-{day.replace('-', '')}-{self._counters[day]:03d}"


@pytest.fixture
def db():
    return FakeGateway()


@pytest.fixture
def catalog(db):
    """A small seeded catalog: two products, one category, one payment method."""
    nasi, ayam = db.seed(
        "products",
        {"name": "Nasi Kotak", "price": 15000, "unit": "box"},
        {"name": "Ayam Bakar", "price": 25000, "unit": "porsi"},
    )
    (bahan,) = db.seed("purchase_categories", {"name": "Bahan Baku"})
    (tunai,) = db.seed("payment_methods", {"name": "Tunai"})
    return {"nasi": nasi, "ayam": ayam, "bahan": bahan, "tunai": tunai}
