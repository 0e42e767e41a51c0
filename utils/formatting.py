# dapurasri/utils/formatting.py

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Union

Number = Union[int, float]

BULAN = [
    "Januari", "Februari", "Maret", "April", "Mei", "Juni",
    "Juli", "Agustus", "September", "Oktober", "November", "Desember",
]


def format_rupiah(n: Any) -> str:
    """
    Format a number to Indonesian-style with '.' as thousands separator.
    Example: 1234567 -> "1.234.567"
    """
    return f"{to_number(n):,.0f}".replace(",", ".")


def format_rp(n: Any) -> str:
    return f"Rp {format_rupiah(n)}"


def to_number(value: Any, default: Number = 0) -> Number:
    """
    Coerce a backend value (int, float, numeric string, Decimal, None) to a
    plain number. Missing or invalid values become `default`.
    Integral values come back as int so they stay JSON friendly.
    """
    if value is None or isinstance(value, bool):
        return default
    try:
        num = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return default
    if not num.is_finite():
        return default
    if num == num.to_integral_value():
        return int(num)
    return float(num)


def to_iso(value: Union[str, date, datetime, None]) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value)[:10]


def today_iso() -> str:
    return date.today().isoformat()


def month_key(value: Union[str, date, datetime, None]) -> str:
    """`2026-03-05` -> `2026-03`. Empty string when there is no date."""
    return to_iso(value)[:7]


def month_label(key: str) -> str:
    """`2026-03` -> `Maret 2026`"""
    year, month = key.split("-")
    return f"{BULAN[int(month) - 1]} {year}"


def format_long_date(value: Union[str, date, datetime, None]) -> str:
    """`2026-03-05` -> `05 Maret 2026`"""
    iso = to_iso(value)
    if not iso:
        return "-"
    d = date.fromisoformat(iso)
    return f"{d.day:02d} {BULAN[d.month - 1]} {d.year}"


def format_short_date(value: Union[str, date, datetime, None]) -> str:
    """`2026-03-05` -> `05 Mar 2026`"""
    iso = to_iso(value)
    if not iso:
        return "-"
    d = date.fromisoformat(iso)
    return f"{d.day:02d} {BULAN[d.month - 1][:3]} {d.year}"


def format_qty(n: Any) -> str:
    num = to_number(n)
    if isinstance(num, int):
        return format_rupiah(num)
    return f"{num:,.3f}".rstrip("0").rstrip(".").replace(",", "#").replace(".", ",").replace("#", ".")
