"""
Shared formatters for currency, percentages, and multiples.
Used by services, report builders and the AI copilot tools.
"""

from __future__ import annotations

import math
from typing import Any, Optional

from core.errors import ServiceError

CURRENCY_SYMBOLS = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
}

SUPPORTED_CURRENCIES = tuple(CURRENCY_SYMBOLS)


def currency_symbol(currency: Optional[str]) -> str:
    return CURRENCY_SYMBOLS.get((currency or "USD").upper(), "$")


def _group(value: Any) -> str:
    number = float(value)
    if number.is_integer():
        return f"{int(number):,}"
    return f"{number:,.2f}".rstrip("0").rstrip(".")


def format_currency(value: Any, currency: str = "USD") -> Optional[str]:
    """Format as a currency string ("$1,234"). Returns None if value is falsy."""
    if not value:
        return None
    return f"{currency_symbol(currency)}{_group(value)}"


def format_money(value: Any, currency: str = "USD") -> str:
    """Format as a currency string, defaulting to "$0"."""
    if not value:
        return f"{currency_symbol(currency)}0"
    return f"{currency_symbol(currency)}{_group(value)}"


def format_decimal_raw(value: Any) -> Optional[str]:
    if not value:
        return None
    number = float(value)
    return str(int(number)) if number.is_integer() else str(number)


def format_percentage(value: Any) -> Optional[str]:
    """Format a decimal ratio (0.351) as "35.1%". Returns None if value is falsy."""
    if not value:
        return None
    return f"{float(value) * 100:.1f}%"


def format_percent(value: Any) -> str:
    """Format a decimal ratio as a percentage, defaulting to "0%"."""
    if not value:
        return "0%"
    return f"{float(value) * 100:.1f}%"


def format_multiple(value: Any) -> str:
    """Format as a multiple ("2.50x"), or "-" when missing."""
    if not value:
        return "-"
    return f"{float(value):.2f}x"


def parse_money(value: Any) -> float:
    """Parse "$1,234,567" into 1234567.0. Unparsable input yields 0."""
    if value is None or value == "":
        return 0.0
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else 0.0
    cleaned = str(value).replace("$", "").replace(",", "").strip()
    try:
        number = float(cleaned)
    except ValueError:
        return 0.0
    return number if math.isfinite(number) else 0.0


def parse_percent(value: Any) -> float:
    """
    Parse "85%" or "0.85" into a decimal.
    Values > 1 are treated as whole-number percentages (85 -> 0.85).
    """
    if value is None or value == "":
        return 0.0
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        try:
            number = float(str(value).replace("%", "").strip())
        except ValueError:
            return 0.0
    return number / 100 if number > 1 else number


def parse_number(value: Any, field: str, integer: bool = False) -> Optional[float]:
    """
    Parse an optional numeric input ("12.5", "1,200", 40).

    Empty input yields None; anything else that is not a finite number
    raises ``ServiceError("Invalid <field>")``.
    """
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ServiceError(f"Invalid {field}")
    try:
        number = float(str(value).replace(",", "").strip()) if isinstance(value, str) else float(value)
    except (TypeError, ValueError):
        raise ServiceError(f"Invalid {field}") from None
    if not math.isfinite(number):
        raise ServiceError(f"Invalid {field}")
    if integer:
        if not number.is_integer():
            raise ServiceError(f"Invalid {field}")
        return int(number)
    return number
