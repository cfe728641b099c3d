from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_EVEN

CURRENCY_SYMBOLS = {
    "INR": "₹",
    "EUR": "€",
    "USD": "$",
    "GBP": "£",
}


def parse_amount(text: str | int | float | Decimal) -> int:
    """Convert a major-unit amount such as ``"12.50"`` into integer cents."""
    try:
        value = Decimal(str(text).strip().replace(",", ""))
    except InvalidOperation as exc:
        raise ValueError(f"Invalid amount: {text!r}") from exc
    if not value.is_finite():
        raise ValueError(f"Invalid amount: {text!r}")
    return int((value * 100).quantize(Decimal("1"), rounding=ROUND_HALF_EVEN))


def format_amount(amount_cents: int, currency: str = "INR") -> str:
    sign = "-" if amount_cents < 0 else ""
    major, minor = divmod(abs(amount_cents), 100)
    symbol = CURRENCY_SYMBOLS.get(currency.upper())
    if symbol is None:
        return f"{sign}{major:,}.{minor:02d} {currency.upper()}"
    return f"{sign}{symbol}{major:,}.{minor:02d}"
