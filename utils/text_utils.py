"""
Text utilities for header matching and cell cleanup.

Spreadsheet headers arrive in any casing, spacing and accenting; these
helpers reduce them to comparable forms.
"""

import re
import unicodedata
from typing import Any, Optional

_NON_ALNUM = re.compile(r"[^a-z0-9]")


def normalize_header(header: Optional[str]) -> str:
    """
    Normalize a column header or field name for comparison.

    Lower-cases and drops every non-alphanumeric character. Accents are
    folded first so "Descripción" still lines up with "description":
    - "Txn Date" → "txndate"
    - "document_id" → "documentid"
    - "Descripción" → "descripcion"

    Args:
        header: Raw header text (may be None)

    Returns:
        Normalized string, empty if nothing alphanumeric remains
    """
    if not header:
        return ""

    # NFD separates base characters from combining accent marks
    decomposed = unicodedata.normalize("NFD", str(header))
    ascii_text = "".join(
        c for c in decomposed
        if unicodedata.category(c) != "Mn"
    )

    return _NON_ALNUM.sub("", ascii_text.lower())


def cell_text(value: Any) -> str:
    """Raw cell value as stripped text; None becomes ''."""
    if value is None:
        return ""
    if isinstance(value, float) and value != value:  # NaN from pandas
        return ""
    return str(value).strip()


def clean_optional_text(value: Any, max_length: int = 255) -> Optional[str]:
    """
    Clean an optional text cell for storage.

    - Strips whitespace
    - Truncates to max length
    - Returns None for empty/whitespace-only values

    Args:
        value: Raw cell value
        max_length: Maximum characters to store

    Returns:
        Cleaned text or None
    """
    text = cell_text(value)

    if not text:
        return None

    if len(text) > max_length:
        text = text[:max_length]

    return text
