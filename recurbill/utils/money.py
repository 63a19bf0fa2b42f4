"""
Money helpers shared by the revenue, invoice and reporting code.

Usage:
    from recurbill.utils.money import format_money, to_money

    format_money(15000, "USD")        -> "15,000.00 USD"
    format_money("43.3", "EUR")       -> "43.30 EUR"
    to_money(Decimal("33.3333"))      -> Decimal("33.33")
"""
from decimal import Decimal, ROUND_HALF_UP

CENT = Decimal("0.01")


def to_money(amount) -> Decimal:
    """Quantize any numeric value to cents (half-up)."""
    if not isinstance(amount, Decimal):
        amount = Decimal(str(amount))
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def format_money(amount, currency: str = "USD", decimals: int = 2) -> str:
    """
    Format an amount with thousands separators and a currency suffix.

    Args:
        amount: int / float / Decimal / str
        currency: ISO currency code
        decimals: digits after the decimal point

    Returns:
        "1,200.00 USD"
    """
    if isinstance(amount, str):
        amount = Decimal(amount)
    fmt = f"{{:,.{decimals}f}}"
    return f"{fmt.format(amount)} {currency}"
