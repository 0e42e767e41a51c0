# dapurasri/domain/models.py

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from utils.formatting import to_number


class ValidationError(Exception):
    """Input rejected before any backend call."""


class OrderStatus(str, Enum):
    PENDING = "pending"
    PROSES = "proses"
    SELESAI = "selesai"
    BATAL = "batal"

    @property
    def label(self) -> str:
        return ORDER_STATUS_LABELS[self]

    @classmethod
    def parse(cls, value: Optional[str]) -> "OrderStatus":
        try:
            return cls(value)
        except ValueError:
            return cls.PENDING


ORDER_STATUS_LABELS = {
    OrderStatus.PENDING: "Menunggu",
    OrderStatus.PROSES: "Diproses",
    OrderStatus.SELESAI: "Selesai",
    OrderStatus.BATAL: "Dibatalkan",
}


# ---------------------------------------------------------------------------
# Sales invoice drafts
# ---------------------------------------------------------------------------

@dataclass
class SalesLine:
    """
    One line on a catalog-priced invoice.
    """
    product_id: Any
    product_name: str
    unit: str
    quantity: float
    unit_price: float

    @property
    def effective_price(self):
        return to_number(self.unit_price)

    @property
    def subtotal(self):
        return to_number(self.quantity) * self.effective_price

    @property
    def is_valid(self) -> bool:
        return bool(self.product_id) and to_number(self.quantity) > 0


@dataclass
class CustomPricedLine(SalesLine):
    """
    A line whose price was overridden by hand. `unit_price` keeps the
    catalog price, `custom_price` is what gets charged.
    """
    custom_price: float = 0

    @property
    def effective_price(self):
        return to_number(self.custom_price)


@dataclass
class StandardInvoice:
    transaction_date: str
    payment_method_id: Optional[Any] = None
    payment_method_name: str = ""
    lines: List[SalesLine] = field(default_factory=list)
    editing_transaction_id: Optional[Any] = None
    source_order_id: Optional[Any] = None
    source_order_number: Optional[str] = None
    kind: str = field(default="standard", init=False)


@dataclass
class CustomPricedInvoice:
    transaction_date: str
    payment_method_id: Optional[Any] = None
    payment_method_name: str = ""
    lines: List[CustomPricedLine] = field(default_factory=list)
    kind: str = field(default="custom", init=False)


InvoiceKind = Union[StandardInvoice, CustomPricedInvoice]


def valid_lines(invoice: InvoiceKind) -> List[SalesLine]:
    return [line for line in invoice.lines if line.is_valid]


def invoice_total(invoice: InvoiceKind):
    return sum((line.subtotal for line in valid_lines(invoice)), 0)


def editing_id(invoice: InvoiceKind) -> Optional[Any]:
    return getattr(invoice, "editing_transaction_id", None)


@dataclass
class CommittedInvoice:
    """
    What the preview shows after a successful commit (used for receipts).
    """
    transaction_id: Any
    transaction_no: Optional[str]
    transaction_date: str
    payment_method_name: str
    lines: List[SalesLine]
    total: float


# ---------------------------------------------------------------------------
# Orders & purchases
# ---------------------------------------------------------------------------

@dataclass
class OrderLine:
    product_id: Any
    product_name: str
    unit: str
    quantity: float
    unit_price: float

    def to_row(self, order_id: Any) -> Dict[str, Any]:
        return {
            "order_id": order_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": to_number(self.quantity),
            "unit_price": to_number(self.unit_price),
            "unit": self.unit,
        }


@dataclass
class PurchaseLine:
    category_id: Any
    description: str
    amount: float
    category_name: str = ""

    @property
    def is_valid(self) -> bool:
        return (
                bool(self.category_id)
                and bool(str(self.description or "").strip())
                and to_number(self.amount) >= 0
        )


# ---------------------------------------------------------------------------
# Aggregates
# ---------------------------------------------------------------------------

@dataclass
class ProductUnits:
    product_id: Any
    name: str
    units: float


@dataclass
class MonthlySummary:
    month_key: str
    label: str
    sales_total: float
    purchases_total: float
    products: List[ProductUnits]


@dataclass
class ProductQty:
    name: str
    qty: float


@dataclass
class CustomerRollup:
    customer: str
    qty: float
    orders: List[str]


@dataclass
class ReportRow:
    date: str
    description: str
    amount: float


@dataclass
class PeriodReport:
    mode: str
    date_from: str
    date_to: str
    rows: List[ReportRow]
    total: float
