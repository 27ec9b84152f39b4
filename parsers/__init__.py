"""
File parsers module.
"""

from parsers.csv_parser import (
    parse_csv,
    CSVParseResult,
)

__all__ = [
    "parse_csv",
    "CSVParseResult",
]
