"""
Accepted upload types.

Only CSV, PDF and common image formats may enter the import pipeline;
everything else is rejected before any dispatch.
"""

import mimetypes
from typing import Optional

CSV_TYPES = frozenset({
    "text/csv",
    "application/csv",
    "text/x-csv",
    "application/vnd.ms-excel",  # what some browsers send for .csv
})

DOCUMENT_TYPES = frozenset({
    "application/pdf",
    "image/png",
    "image/jpeg",
    "image/gif",
    "image/webp",
    "image/tiff",
    "image/heic",
})

ALLOWED_TYPES = CSV_TYPES | DOCUMENT_TYPES

# Content types that say nothing; fall back to the file extension
GENERIC_TYPES = frozenset({"", "application/octet-stream", "binary/octet-stream"})

EXTENSION_TYPES = {
    ".csv": "text/csv",
    ".pdf": "application/pdf",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".tif": "image/tiff",
    ".tiff": "image/tiff",
    ".heic": "image/heic",
}


def resolve_content_type(content_type: Optional[str], filename: Optional[str]) -> Optional[str]:
    """
    Resolve the effective MIME type of an upload.

    Parameters after ";" are dropped. When the client sent a generic type,
    the filename extension decides.

    Returns:
        Lower-case MIME type, or None if it cannot be determined
    """
    resolved = (content_type or "").split(";")[0].strip().lower()

    if resolved in GENERIC_TYPES and filename:
        lower = filename.lower()
        for extension, mime in EXTENSION_TYPES.items():
            if lower.endswith(extension):
                return mime
        guessed, _ = mimetypes.guess_type(lower)
        return guessed

    return resolved or None


def is_allowed(content_type: Optional[str]) -> bool:
    return content_type in ALLOWED_TYPES


def is_csv(content_type: Optional[str]) -> bool:
    return content_type in CSV_TYPES


def is_document(content_type: Optional[str]) -> bool:
    return content_type in DOCUMENT_TYPES
