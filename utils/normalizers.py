"""
Row normalizer: date and amount cells to canonical values.

Pure functions, safe to call from any thread. A None result means
"unparseable"; callers report it as a row error rather than substituting
a default.
"""

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from dateutil import parser as date_parser

from utils.text_utils import cell_text

# <group1>[/-]<group2>[/-]<group3>, each group 1-4 digits
DATE_PARTS = re.compile(r"(\d{1,4})[/-](\d{1,4})[/-](\d{1,4})")

# Two defaults that differ in every date part; a part that changes between
# them was filled in by the parser, not read from the cell
_DEFAULTS = (datetime(2000, 1, 1), datetime(2001, 2, 2))

# Characters dropped before parsing an amount
AMOUNT_NOISE = ("$", ",")


def normalize_date(value: Any) -> Optional[str]:
    """
    Normalize a date cell to YYYY-MM-DD.

    Order of attempts:
    1. General calendar parse of the whole string (ISO-8601, RFC-2822,
       "March 14, 2024", "03/14/2024", ...).
    2. Digit groups separated by / or -:
       - 4-digit first group: YYYY-MM-DD
       - 4-digit last group: DD-MM-YYYY, reordered
       - otherwise unparseable
    3. None.

    "03-04-2024" is ambiguous; whichever reading step 1 produces wins and
    no further disambiguation is attempted.

    Args:
        value: Raw cell (str, date, datetime or None)

    Returns:
        Canonical date string or None if unparseable
    """
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()

    text = cell_text(value)
    if not text:
        return None

    parsed = _parse_calendar_date(text)
    if parsed is not None:
        return parsed.isoformat()

    return _parse_digit_groups(text)


def normalize_amount(value: Any) -> Optional[Decimal]:
    """
    Normalize an amount cell to a signed Decimal.

    Strips "$" and thousands separators before parsing:
    - "$1,234.50" → Decimal("1234.50")
    - "-4.5" → Decimal("-4.5")
    - "abc" → None (never coerced to zero)

    Args:
        value: Raw cell (str, int, float, Decimal or None)

    Returns:
        Decimal amount or None if unparseable
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, (int, float)):
        # str() keeps the short repr: 4.5 -> "4.5", not the binary expansion
        amount = _to_decimal(str(value))
    else:
        text = cell_text(value)
        for noise in AMOUNT_NOISE:
            text = text.replace(noise, "")
        amount = _to_decimal(text.strip())

    if amount is None or not amount.is_finite():
        return None

    return amount


# ===================
# HELPER FUNCTIONS
# ===================

def _parse_calendar_date(text: str) -> Optional[date]:
    """
    General-purpose parse; None when the text is not a complete date.

    Times alone ("12:30"), bare months ("Jan") and relative words
    ("today") are rejected rather than completed from the current date.
    """
    try:
        first, second = (date_parser.parse(text, default=d) for d in _DEFAULTS)
    except (ValueError, TypeError, OverflowError):
        return None

    if first.date() != second.date():
        return None

    return first.date()


def _parse_digit_groups(text: str) -> Optional[str]:
    """Year-position heuristic for digit-group dates."""
    match = DATE_PARTS.search(text)
    if not match:
        return None

    first, middle, last = match.groups()

    if len(first) == 4:
        year, month, day = first, middle, last
    elif len(last) == 4:
        year, month, day = last, middle, first
    else:
        return None

    try:
        return date(int(year), int(month), int(day)).isoformat()
    except ValueError:
        return None


def _to_decimal(text: str) -> Optional[Decimal]:
    if not text:
        return None
    try:
        return Decimal(text)
    except InvalidOperation:
        return None
