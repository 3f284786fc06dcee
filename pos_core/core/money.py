from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable

ZERO = Decimal("0")
HUNDRED = Decimal("100")
RUPIAH = Decimal("1")  # no minor unit


def to_decimal(v: Any) -> Decimal:
    if v is None:
        return ZERO
    if isinstance(v, Decimal):
        return v
    return Decimal(str(v))


def rupiah(v: Any) -> Decimal:
    return to_decimal(v).quantize(RUPIAH, rounding=ROUND_HALF_UP)


def money_sum(values: Iterable[Any]) -> Decimal:
    return sum((to_decimal(v) for v in values), ZERO)


def format_rupiah(v: Any) -> str:
    """Rp 1.234.567: dot thousands separator, no decimals (id-ID)."""
    amount = rupiah(v)
    sign = "-" if amount < 0 else ""
    grouped = f"{abs(int(amount)):,}".replace(",", ".")
    return f"Rp {sign}{grouped}"
