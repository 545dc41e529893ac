"""Lenient value parsing for OCR output.

Every parser here returns a neutral value on bad input instead of
raising; extraction heuristics call them on arbitrary cell contents.
"""

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation

ZERO = Decimal("0")

# Day-first formats come before month-first ones: source documents are UK.
DATE_FORMATS: list[str] = [
    "%d/%m/%Y",
    "%d/%m/%y",
    "%m/%d/%Y",
    "%Y-%m-%d",
    "%d-%m-%Y",
    "%m-%d-%Y",
    "%d.%m.%Y",
    "%B %d, %Y",
    "%b %d, %Y",
    "%d %B %Y",
    "%d %b %Y",
]

_NON_NUMERIC = re.compile(r"[^\d.\-]")
_CURRENCY = re.compile(r"([£$€¥₹])|\b([A-Z]{3})\b")


def parse_decimal(text: object, allow_negative: bool = False) -> Decimal:
    """Parse a number out of text, ignoring symbols and separators.

    Args:
        text: Raw cell content, for example ``"£1,234.50"`` or ``"10 pcs"``.
        allow_negative: Keep negative values instead of clamping to zero.

    Returns:
        The parsed value, or ``Decimal(0)`` when nothing parses.
    """
    if text is None:
        return ZERO
    if isinstance(text, Decimal):
        value = text
    else:
        cleaned = _NON_NUMERIC.sub("", str(text))
        if not cleaned:
            return ZERO
        try:
            value = Decimal(cleaned)
        except InvalidOperation:
            return ZERO
    if not value.is_finite():
        return ZERO
    if value < 0 and not allow_negative:
        return ZERO
    return value


def split_currency(text: str | None) -> tuple[str | None, Decimal]:
    """Separate a currency marker from an amount.

    Args:
        text: Amount text such as ``"£12.00"`` or ``"12.00 EUR"``.

    Returns:
        Tuple of (currency symbol or code of one to three characters, amount).
    """
    if not text:
        return None, ZERO
    match = _CURRENCY.search(text)
    currency = None
    if match:
        currency = (match.group(1) or match.group(2))[:3]
    return currency, parse_decimal(text)


def parse_date(text: str | None) -> date | None:
    """Parse a date in any supported format.

    Args:
        text: Date text.

    Returns:
        The date, or ``None`` if no format matches.
    """
    if not text:
        return None
    candidate = text.strip().rstrip(".,")
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(candidate, fmt).date()
        except ValueError:
            continue
    return None


def clean_text(text: str | None) -> str | None:
    """Collapse whitespace; blank input becomes ``None``."""
    if text is None:
        return None
    collapsed = re.sub(r"\s+", " ", text).strip()
    return collapsed or None
