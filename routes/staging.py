"""
Staging API routes.

Write-back and read endpoints for out-of-band import payloads. Producers
(extraction service, Dropbox webhook) post rows under a correlation key;
clients take them exactly once.
"""

import uuid
from datetime import timedelta
from typing import Optional
from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse
import structlog

from config import settings
from models.staging import (
    StagePutRequest,
    StagePutResponse,
    StageTakeResponse,
    DropboxWebhookRequest,
    EvictResponse,
)
from services.staging_store import get_staging_store
from integrations.dropbox import fetch_json, to_direct_link
from exceptions import AppError, InvalidRequestError

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/pending-import", tags=["Staging"])


def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(
            status_code=e.status_code,
            content=e.to_dict()
        )
    logger.error("unexpected_error", error=str(e), type=type(e).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred"
            }
        }
    )


def _require_key(key: Optional[str], id: Optional[str]) -> str:
    resolved = (key or id or "").strip()
    if not resolved:
        raise InvalidRequestError(
            "Missing correlation key",
            expected="query parameter 'key' (or 'id')"
        )
    return resolved


@router.post("", response_model=StagePutResponse)
async def put_staged_rows(data: StagePutRequest):
    """
    Stage extracted rows under a correlation key.

    Called by the extraction service when it finishes. A second write to
    the same key replaces the first.
    """
    try:
        store = get_staging_store()
        entry = store.put(data.key, data.rows)

        return StagePutResponse(key=entry.key, count=len(entry.payload))

    except Exception as e:
        return handle_error(e)


@router.get("", response_model=StageTakeResponse)
async def take_staged_rows(
    key: Optional[str] = Query(None, description="Correlation key"),
    id: Optional[str] = Query(None, description="Alias of key")
):
    """
    Take the rows staged under a key.

    Consumes the entry: a second call for the same key returns null data.
    """
    try:
        resolved = _require_key(key, id)
        store = get_staging_store()

        return StageTakeResponse(data=store.take_once(resolved))

    except Exception as e:
        return handle_error(e)


@router.delete("")
async def delete_staged_rows(
    key: Optional[str] = Query(None, description="Correlation key"),
    id: Optional[str] = Query(None, description="Alias of key")
):
    """Discard a staged entry. Deleting a missing key succeeds."""
    try:
        resolved = _require_key(key, id)
        get_staging_store().delete(resolved)

        return {"success": True, "key": resolved}

    except Exception as e:
        return handle_error(e)


@router.post("/evict", response_model=EvictResponse)
async def evict_expired(
    max_age_minutes: Optional[int] = Query(
        None,
        ge=1,
        description="Override the configured retention window"
    )
):
    """
    Remove staged entries older than the retention window.

    Meant for a scheduled job; orphaned keys from timed out imports end
    up here.
    """
    try:
        minutes = max_age_minutes or settings.staging_retention_minutes
        count = get_staging_store().evict_expired(timedelta(minutes=minutes))

        return EvictResponse(
            evicted_count=count,
            message=f"Evicted {count} staged import(s) older than {minutes} minutes"
        )

    except Exception as e:
        return handle_error(e)


@router.post("/dropbox-webhook", response_model=StagePutResponse)
async def stage_from_dropbox(data: DropboxWebhookRequest):
    """
    Fetch a JSON export from a Dropbox link and stage its rows.

    The response key can be handed to POST /api/imports/staged to review
    and commit the rows.
    """
    try:
        payload = fetch_json(data.dropbox_link)

        if isinstance(payload, dict):
            payload = [payload]
        if not isinstance(payload, list) or not all(isinstance(r, dict) for r in payload):
            raise InvalidRequestError(
                "Dropbox file must contain a JSON object or a list of objects",
                expected="list of transaction objects"
            )

        key = data.key or str(uuid.uuid4())
        entry = get_staging_store().put(
            key,
            payload,
            filename=data.filename,
            source_url=to_direct_link(data.dropbox_link),
        )

        logger.info("dropbox_rows_staged", key=key, count=len(entry.payload))

        return StagePutResponse(key=entry.key, count=len(entry.payload))

    except Exception as e:
        return handle_error(e)
