"""
CSV parser for user-supplied transaction exports.

Reads an arbitrary CSV layout into candidate rows (header -> raw string).
No mapping or validation happens here; that is the mapping engine's job.
"""

from dataclasses import dataclass, field
from io import StringIO
from typing import Union
import structlog

import pandas as pd

from exceptions import CSVParseError

logger = structlog.get_logger(__name__)

# Tried in order; latin-1 never fails so it closes the list
ENCODINGS = ("utf-8-sig", "cp1252", "latin-1")


@dataclass
class CSVParseResult:
    """Result of parsing a CSV file."""
    headers: list[str] = field(default_factory=list)
    rows: list[dict[str, str]] = field(default_factory=list)


def parse_csv(content: Union[bytes, str]) -> CSVParseResult:
    """
    Parse CSV content into headers and candidate rows.

    Every cell is kept as a string exactly as typed (stripped); empty cells
    become "". Lines with no content in any cell are skipped.

    Args:
        content: Raw file bytes or already decoded text

    Returns:
        CSVParseResult with headers and rows

    Raises:
        CSVParseError: If the file is empty, has no header row, or is malformed
    """
    text = _decode(content) if isinstance(content, bytes) else content

    logger.info("parsing_csv", size_chars=len(text))

    try:
        df = pd.read_csv(
            StringIO(text),
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
        )
    except pd.errors.EmptyDataError:
        raise CSVParseError(message="CSV file is empty")
    except pd.errors.ParserError as e:
        logger.warning("csv_read_failed", error=str(e))
        raise CSVParseError(
            message="Failed to read CSV file",
            details={"original_error": str(e)}
        )

    headers = [str(col).strip() for col in df.columns]
    if not any(headers):
        raise CSVParseError(message="CSV is missing a header row")
    df.columns = headers

    result = CSVParseResult(headers=headers)

    for record in df.to_dict(orient="records"):
        row = {header: _clean_cell(value) for header, value in record.items()}
        # Rows of bare delimiters carry no data
        if not any(row.values()):
            continue
        result.rows.append(row)

    logger.info(
        "csv_parsed",
        header_count=len(result.headers),
        row_count=len(result.rows)
    )

    return result


# ===================
# HELPER FUNCTIONS
# ===================

def _decode(content: bytes) -> str:
    """Decode bytes with the first encoding that succeeds."""
    for encoding in ENCODINGS:
        try:
            return content.decode(encoding)
        except UnicodeDecodeError:
            continue
    raise CSVParseError(message="CSV file encoding not recognized")


def _clean_cell(value) -> str:
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return ""
    return str(value).strip()
