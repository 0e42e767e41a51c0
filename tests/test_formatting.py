from datetime import date, datetime
from decimal import Decimal

import pytest

from utils.formatting import (
    format_long_date,
    format_qty,
    format_rp,
    format_rupiah,
    format_short_date,
    month_key,
    month_label,
    to_iso,
    to_number,
)


def test_format_rupiah():
    assert format_rupiah(1234567) == "1.234.567"
    assert format_rupiah("0") == "0"
    assert format_rp(15000) == "Rp 15.000"


@pytest.mark.parametrize(
    "value, expected",
    [(None, 0), ("abc", 0), (True, 0), ("15000", 15000), (2.0, 2), ("2.5", 2.5), (Decimal("3.00"), 3)],
)
def test_to_number(value, expected):
    result = to_number(value)
    assert result == expected
    assert type(result) is type(expected)


def test_dates():
    assert to_iso(datetime(2026, 3, 5, 10, 0)) == "2026-03-05"
    assert to_iso(date(2026, 3, 5)) == "2026-03-05"
    assert to_iso("2026-03-05T10:00:00+00:00") == "2026-03-05"
    assert month_key("2026-03-05") == "2026-03"
    assert month_label("2026-03") == "Maret 2026"
    assert format_long_date("2026-03-05") == "05 Maret 2026"
    assert format_short_date("2026-12-25") == "25 Des 2026"
    assert format_long_date(None) == "-"


def test_format_qty():
    assert format_qty(3) == "3"
    assert format_qty("1.5") == "1,5"
    assert format_qty(1234.25) == "1.234,25"
