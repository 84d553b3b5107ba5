"""
Heimursaga API — Money Helpers
================================

Amounts are stored and sent to Stripe as integers in the smallest currency
unit (cents). The API accepts and returns dollars.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Union

Number = Union[int, float, str, Decimal]

CURRENCIES: Dict[str, Dict[str, str]] = {
    "usd": {"code": "USD", "symbol": "$"},
}
DEFAULT_CURRENCY = "usd"

# Smallest sponsorship or payout, in cents
MIN_CHARGE = 100


def currency_info(currency: str) -> Dict[str, str]:
    """Code and symbol for a currency; unknown currencies fall back to USD."""
    return CURRENCIES.get((currency or "").lower(), CURRENCIES[DEFAULT_CURRENCY])


def decimal_to_integer(amount: Number) -> int:
    """Dollars → cents, rounded half-up (12.345 → 1235)."""
    cents = (Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(cents)


def integer_to_decimal(cents: int) -> float:
    """Cents → dollars (1235 → 12.35)."""
    return float(Decimal(int(cents or 0)) / 100)


def application_fee(amount_cents: int, percent: float) -> int:
    """Platform fee in cents for a charge; never negative."""
    fee = (Decimal(int(amount_cents)) * Decimal(str(percent)) / 100).quantize(
        Decimal("1"), rounding=ROUND_HALF_UP
    )
    return max(int(fee), 0)
