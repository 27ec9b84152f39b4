"""
Document extraction service integration.

Hands a source document to the third-party OCR/parsing service together
with a correlation key. The service answers later by calling the staging
write-back endpoint with the same key; nothing useful comes back here.
"""

from typing import Optional
import requests
import structlog

from config import settings
from exceptions import ExtractionDispatchError

logger = structlog.get_logger(__name__)


def dispatch_document(
    key: str,
    filename: str,
    content: bytes,
    content_type: str,
    callback_url: Optional[str] = None
) -> None:
    """
    Send a document for extraction (fire-and-forget).

    Args:
        key: Correlation key the service must echo back
        filename: Original filename
        content: Raw file bytes
        content_type: MIME type of the file
        callback_url: Where the service should post the extracted rows

    Raises:
        ExtractionDispatchError: If the service is not configured, unreachable,
            or refuses the document
    """
    if not settings.extraction_configured:
        logger.warning("extraction_service_not_configured")
        raise ExtractionDispatchError("Document extraction service is not configured")

    headers = {}
    if settings.extraction_api_key:
        headers["Authorization"] = f"Bearer {settings.extraction_api_key}"

    data = {"key": key}
    if callback_url:
        data["callback_url"] = callback_url

    try:
        logger.info(
            "dispatching_document",
            key=key,
            filename=filename,
            content_type=content_type,
            size_bytes=len(content)
        )

        response = requests.post(
            settings.extraction_service_url,
            data=data,
            files={"file": (filename, content, content_type)},
            headers=headers,
            timeout=settings.extraction_timeout_seconds,
        )
        response.raise_for_status()

    except requests.exceptions.HTTPError as e:
        status = e.response.status_code if e.response is not None else None
        logger.error("extraction_dispatch_rejected", key=key, status=status, error=str(e))
        raise ExtractionDispatchError(
            "Extraction service rejected the document",
            details={"status": status}
        ) from e

    except requests.exceptions.RequestException as e:
        logger.error("extraction_dispatch_failed", key=key, error=str(e))
        raise ExtractionDispatchError(
            f"Failed to reach extraction service: {str(e)}"
        ) from e

    logger.info("document_dispatched", key=key, status=response.status_code)
