# dapurasri/services/numbering_service.py

import logging
from typing import Any, Callable, Dict, Optional

from data_integrator import StorageError, StorageGateway, UNIQUE_VIOLATION
from utils.formatting import to_iso

logger = logging.getLogger(__name__)

ORDER_PREFIX = "PO"
SALES_NUMBER_RPC = "generate_sales_transaction_no"

MAX_ORDER_NUMBER_ATTEMPTS = 5
MAX_SALES_NUMBER_ATTEMPTS = 3


def order_number_prefix(order_date) -> str:
    """`2026-03-05` -> `PO-20260305`"""
    return f"{ORDER_PREFIX}-{to_iso(order_date).replace('-', '')}"


def format_order_number(order_date, seq: int) -> str:
    return f"{order_number_prefix(order_date)}-{seq:03d}"


def parse_sequence(number: Optional[str]) -> Optional[int]:
    """Trailing numeric part of a document number, None if unparsable."""
    if not number:
        return None
    tail = str(number).rsplit("-", 1)[-1]
    return int(tail) if tail.isdigit() else None


def last_order_sequence(db: StorageGateway, order_date) -> int:
    """
    Highest sequence already used for the day, 0 when none.

    All numbers of the day are read (not just the lexicographic max) so a
    sequence past 999 still compares numerically.
    """
    rows = db.select(
        "orders",
        "order_number",
        like={"order_number": f"{order_number_prefix(order_date)}-%"},
    )
    seqs = [parse_sequence(row.get("order_number")) for row in rows]
    return max((s for s in seqs if s is not None), default=0)


def next_order_number(db: StorageGateway, order_date) -> str:
    return format_order_number(order_date, last_order_sequence(db, order_date) + 1)


def allocate_order_number(
        db: StorageGateway,
        order_date,
        build_row: Callable[[str], Dict[str, Any]],
        max_attempts: int = MAX_ORDER_NUMBER_ATTEMPTS,
) -> Dict[str, Any]:
    """
    Allocate the next order number for the day and insert the order header
    built by `build_row(order_number)`.

    The unique constraint on orders.order_number is the arbiter: when a
    concurrent writer took the same number the insert is retried with a
    fresh number.
    """
    last_tried = 0
    for attempt in range(1, max_attempts + 1):
        seq = max(last_order_sequence(db, order_date), last_tried) + 1
        number = format_order_number(order_date, seq)
        last_tried = seq
        try:
            inserted = db.insert("orders", build_row(number))
        except StorageError as e:
            if not e.is_unique_violation:
                raise
            logger.warning("Order number %s taken (%d/%d), retrying", number, attempt, max_attempts)
            continue
        if not inserted:
            raise StorageError("Insert orders failed: no data returned")
        logger.info("Allocated order number %s", number)
        return inserted[0]

    raise StorageError(
        f"Gagal mengalokasikan nomor pesanan setelah {max_attempts} percobaan",
        code=UNIQUE_VIOLATION,
    )


def allocate_sales_transaction_no(
        db: StorageGateway,
        transaction_date,
        max_attempts: int = MAX_SALES_NUMBER_ATTEMPTS,
) -> str:
    """
    Ask the backend counter for the next sales transaction number of the
    given date. Allocation failures are retried; the last error is raised.
    """
    last_error: Optional[StorageError] = None
    for attempt in range(1, max_attempts + 1):
        try:
            number = db.rpc(SALES_NUMBER_RPC, {"p_txn_date": to_iso(transaction_date)})
        except StorageError as e:
            last_error = e
            logger.warning("Sales number allocation failed (%d/%d): %s", attempt, max_attempts, e)
            continue
        if number:
            return str(number)
        last_error = StorageError(f"RPC {SALES_NUMBER_RPC} returned no number")
        logger.warning("Sales number allocation returned nothing (%d/%d)", attempt, max_attempts)

    logger.error("Giving up allocating a sales number for %s: %s", transaction_date, last_error)
    raise last_error
