"""
Price and SKU value helpers shared by export, snapshot and import.
"""

from decimal import Decimal, InvalidOperation
from typing import Any, Optional


class InvalidPriceError(ValueError):
    """A non-blank value that is not a finite number."""
    pass


def normalize_sku(sku: Any) -> str:
    """Key used to match SKUs across systems: trimmed and lower-cased."""
    if sku is None:
        return ""
    return str(sku).strip().lower()


def is_blank(value: Any) -> bool:
    """True for None and whitespace-only strings."""
    return value is None or (isinstance(value, str) and value.strip() == "")


def parse_price(value: Any) -> Decimal:
    """
    Parse a price cell or API value into a Decimal.

    Floats go through their shortest repr so 29.99 stays 29.99.

    Raises:
        InvalidPriceError: If the value is not a finite number
    """
    if isinstance(value, bool):
        raise InvalidPriceError(f"Not a price: {value!r}")

    if isinstance(value, Decimal):
        parsed = value
    elif isinstance(value, int):
        parsed = Decimal(value)
    elif isinstance(value, float):
        parsed = Decimal(repr(value))
    else:
        try:
            parsed = Decimal(str(value).strip())
        except InvalidOperation as e:
            raise InvalidPriceError(f"Not a price: {value!r}") from e

    if not parsed.is_finite():
        raise InvalidPriceError(f"Not a finite price: {value!r}")
    return parsed


def parse_price_or_none(value: Any) -> Optional[Decimal]:
    """Parse a price, mapping absent or unparseable values to None (never zero)."""
    if is_blank(value):
        return None
    try:
        return parse_price(value)
    except InvalidPriceError:
        return None


def format_price(value: Optional[Decimal]) -> Optional[str]:
    """
    Format a price for the Shopify API.

    Uses fixed-point notation so the digits written are exactly the digits
    parsed.
    """
    if value is None:
        return None
    return format(value, "f")
