"""
Import API routes.

CSV flow:      upload -> proposed mapping -> validate -> commit
Document flow: upload -> dispatch -> poll -> review/edit -> commit
"""

from typing import Any, Optional
from fastapi import APIRouter, Body, Query, UploadFile, File, Form
from fastapi.responses import JSONResponse
import structlog

from models.mapping import ValidateRequest, CSVPreviewResponse
from models.transaction import CommitRequest, CommitResponse
from models.import_session import (
    ImportSessionResponse,
    ImportCommitResponse,
    ReviewRowInput,
    StagedImportRequest,
)
from services.import_coordinator import get_import_coordinator
from services.mapping_service import get_mapping_service
from services.transaction_store import get_transaction_store
from integrations.dropbox import fetch_json
from exceptions import AppError, InvalidRequestError, MappingError

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/imports", tags=["Imports"])


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


def _as_rows(data: Any) -> list[dict[str, Any]]:
    """Accept one object or a list of objects."""
    rows = data if isinstance(data, list) else [data]
    if not all(isinstance(r, dict) for r in rows):
        raise InvalidRequestError(
            "Body must be a JSON object or a list of objects",
            expected="list of transaction objects"
        )
    return rows


# ===================
# CSV FLOW
# ===================

@router.post("/csv", response_model=CSVPreviewResponse)
async def upload_csv(file: UploadFile = File(...)):
    """
    Parse a CSV file and propose a column mapping.

    Nothing is stored; the client edits the mapping and calls /validate.
    """
    try:
        content = await file.read()
        coordinator = get_import_coordinator()

        return coordinator.preview_csv(file.filename, content, file.content_type)

    except Exception as e:
        return handle_error(e)


@router.post("/validate")
async def validate_rows(data: ValidateRequest):
    """
    Validate candidate rows against a mapping set.

    An invalid mapping is rejected outright (422). Otherwise the response
    lists valid rows and every row error; can_commit is true only when
    there are none.
    """
    try:
        result = get_mapping_service().validate_rows(data.rows, data.mappings)

        if result.form_errors:
            raise MappingError([e.to_json_dict() for e in result.form_errors])

        return result.to_dict()

    except Exception as e:
        return handle_error(e)


@router.post("/commit", response_model=CommitResponse)
async def commit_rows(data: CommitRequest):
    """Bulk insert already validated rows. All or nothing."""
    try:
        inserted = get_transaction_store().bulk_insert(data.rows)

        return CommitResponse(inserted=inserted)

    except Exception as e:
        return handle_error(e)


@router.post("/preview")
async def preview_rows(data: Any = Body(...)):
    """
    Echo JSON rows back as a list with a proposed mapping.

    Lets a client preview an export before staging or validating it.
    """
    try:
        rows = _as_rows(data)
        return _preview(rows)

    except Exception as e:
        return handle_error(e)


@router.get("/dropbox-json")
async def preview_dropbox_json(url: Optional[str] = Query(None, description="Dropbox share link")):
    """Fetch a JSON export from Dropbox and preview it without staging."""
    try:
        if not url or not url.strip():
            raise InvalidRequestError("Missing url parameter", expected="query parameter 'url'")

        rows = _as_rows(fetch_json(url))
        return _preview(rows)

    except Exception as e:
        return handle_error(e)


def _preview(rows: list[dict[str, Any]]) -> dict:
    headers: list[str] = []
    for row in rows:
        for key in row:
            if key not in headers:
                headers.append(key)

    mappings = get_mapping_service().propose_mapping(headers)

    return {
        "preview": rows,
        "total_rows": len(rows),
        "headers": headers,
        "mappings": [m.to_json_dict() for m in mappings],
    }


# ===================
# DOCUMENT FLOW
# ===================

@router.post("/documents", response_model=ImportSessionResponse, status_code=202)
async def upload_document(
    file: UploadFile = File(...),
    callback_url: Optional[str] = Form(None)
):
    """
    Send a PDF or image for extraction.

    Returns the session in POLLING state; poll GET /api/imports/{id}
    until it reaches REVIEWING, TIMED_OUT or FAILED.
    """
    try:
        content = await file.read()
        coordinator = get_import_coordinator()

        return coordinator.start_document_import(
            file.filename,
            content,
            file.content_type,
            callback_url=callback_url
        )

    except Exception as e:
        return handle_error(e)


@router.post("/staged", response_model=ImportSessionResponse, status_code=202)
async def watch_staged_rows(data: StagedImportRequest):
    """Start a review session for rows staged under a known key."""
    try:
        return get_import_coordinator().watch_staged(data.key, data.filename)

    except Exception as e:
        return handle_error(e)


@router.get("/{session_id}", response_model=ImportSessionResponse)
async def get_import(session_id: str):
    """Current state of an import session, including review rows and their errors."""
    try:
        return get_import_coordinator().get_session(session_id)

    except Exception as e:
        return handle_error(e)


@router.post("/{session_id}/retry", response_model=ImportSessionResponse)
async def retry_import(session_id: str):
    """Check the staging store again after a timeout."""
    try:
        return get_import_coordinator().retry_polling(session_id)

    except Exception as e:
        return handle_error(e)


@router.post("/{session_id}/rows", response_model=ImportSessionResponse)
async def add_review_row(session_id: str, data: ReviewRowInput):
    try:
        return get_import_coordinator().add_row(
            session_id,
            data.model_dump(exclude_unset=True)
        )

    except Exception as e:
        return handle_error(e)


@router.patch("/{session_id}/rows/{index}", response_model=ImportSessionResponse)
async def update_review_row(session_id: str, index: int, data: ReviewRowInput):
    """Edit cells of a review row; only the fields sent are changed."""
    try:
        return get_import_coordinator().update_row(
            session_id,
            index,
            data.model_dump(exclude_unset=True)
        )

    except Exception as e:
        return handle_error(e)


@router.delete("/{session_id}/rows/{index}", response_model=ImportSessionResponse)
async def delete_review_row(session_id: str, index: int):
    try:
        return get_import_coordinator().delete_row(session_id, index)

    except Exception as e:
        return handle_error(e)


@router.post("/{session_id}/commit", response_model=ImportCommitResponse)
async def commit_import(session_id: str):
    """
    Commit the reviewed rows.

    Blocked (422) while any row has errors. If the store rejects the batch
    the session stays in review with its rows.
    """
    try:
        return get_import_coordinator().commit(session_id)

    except Exception as e:
        return handle_error(e)


@router.post("/{session_id}/cancel", response_model=ImportSessionResponse)
async def cancel_import(session_id: str):
    """Stop polling and discard the session's rows."""
    try:
        return get_import_coordinator().cancel(session_id)

    except Exception as e:
        return handle_error(e)
