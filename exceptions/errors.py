"""
Custom exception classes for the application.

Every error raised by the import pipeline serializes to the same envelope:
{"error": {"code", "message", "details", "timestamp"}}.
"""

from typing import Optional, Any
from datetime import datetime, timezone


class AppError(Exception):
    """
    Base exception for all application errors.

    All custom exceptions inherit from this.

    Attributes:
        code: Error code (e.g., "IMPORT_SESSION_NOT_FOUND")
        message: Human-readable message
        status_code: HTTP status code
        details: Additional context
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to API response format."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
                "timestamp": self.timestamp
            }
        }


class NotFoundError(AppError):
    """Resource not found (404)."""

    def __init__(
        self,
        resource: str,
        identifier: str,
        code: Optional[str] = None
    ):
        super().__init__(
            code=code or f"{resource.upper().replace(' ', '_')}_NOT_FOUND",
            message=f"{resource} not found",
            status_code=404,
            details={"id": identifier}
        )


class ValidationError(AppError):
    """Validation failed (422)."""

    def __init__(
        self,
        message: str,
        code: str = "VALIDATION_ERROR",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=422,
            details=details
        )


class ConflictError(AppError):
    """Conflict with current state (409)."""

    def __init__(
        self,
        message: str,
        code: str = "CONFLICT",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details=details
        )


class ExternalServiceError(AppError):
    """External service failure (503)."""

    def __init__(
        self,
        service: str,
        message: str,
        details: Optional[dict] = None,
        code: Optional[str] = None,
        status_code: int = 503
    ):
        super().__init__(
            code=code or f"{service.upper()}_ERROR",
            message=message,
            status_code=status_code,
            details={"service": service, **(details or {})}
        )


# ===================
# INPUT SHAPE ERRORS
# ===================

class InvalidRequestError(AppError):
    """Malformed request body or query (400)."""

    def __init__(
        self,
        message: str,
        expected: Optional[str] = None,
        details: Optional[dict] = None
    ):
        extra = {"expected": expected} if expected else {}
        super().__init__(
            code="INVALID_REQUEST",
            message=message,
            status_code=400,
            details={**extra, **(details or {})}
        )


class InvalidFileTypeError(AppError):
    """Uploaded file is not CSV, PDF or a supported image (415)."""

    def __init__(self, content_type: Optional[str], filename: Optional[str], allowed: list[str]):
        super().__init__(
            code="INVALID_FILE_TYPE",
            message="File must be a CSV, PDF or image (PNG, JPEG, GIF, WEBP, TIFF, HEIC)",
            status_code=415,
            details={
                "provided": content_type,
                "filename": filename,
                "allowed": allowed
            }
        )


class FileTooLargeError(AppError):
    """Upload exceeds the configured limit (413)."""

    def __init__(self, size_bytes: int, max_bytes: int):
        super().__init__(
            code="FILE_TOO_LARGE",
            message=f"File exceeds the {max_bytes // (1024 * 1024)} MB upload limit",
            status_code=413,
            details={"size_bytes": size_bytes, "max_bytes": max_bytes}
        )


class CSVParseError(ValidationError):
    """CSV file could not be read."""

    def __init__(
        self,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="CSV_PARSE_ERROR",
            message=message,
            details=details
        )


# ===================
# MAPPING / ROW ERRORS
# ===================

class MappingError(ValidationError):
    """Column mapping is incomplete or contradictory; no rows were projected."""

    def __init__(self, errors: list[dict]):
        super().__init__(
            code="MAPPING_INVALID",
            message=f"Column mapping has {len(errors)} error(s)",
            details={"errors": errors}
        )


class ImportValidationError(ValidationError):
    """One or more rows failed validation; commit is blocked."""

    def __init__(self, errors: list[dict]):
        super().__init__(
            code="IMPORT_ROWS_INVALID",
            message=f"Import blocked: {len(errors)} row error(s) must be fixed first",
            details={"errors": errors}
        )


# ===================
# STAGING ERRORS
# ===================

class StagingUnavailableError(AppError):
    """Staging storage medium could not be reached (503)."""

    def __init__(self, operation: str, message: str):
        super().__init__(
            code="STAGING_UNAVAILABLE",
            message="Staging storage is unavailable, please try again",
            status_code=503,
            details={"operation": operation, "reason": message}
        )


# ===================
# IMPORT COORDINATOR ERRORS
# ===================

class ImportSessionNotFoundError(NotFoundError):
    """Import session not found."""

    def __init__(self, session_id: str):
        super().__init__(
            resource="Import session",
            identifier=session_id,
            code="IMPORT_SESSION_NOT_FOUND"
        )


class InvalidImportTransitionError(ConflictError):
    """Import session cannot move to the requested state."""

    def __init__(self, current_state: str, new_state: str):
        super().__init__(
            code="INVALID_IMPORT_TRANSITION",
            message=f"Cannot transition from {current_state} to {new_state}",
            details={
                "current_state": current_state,
                "new_state": new_state
            }
        )


class ReviewRowNotFoundError(NotFoundError):
    """Row index outside the review set."""

    def __init__(self, index: int):
        super().__init__(
            resource="Review row",
            identifier=str(index),
            code="REVIEW_ROW_NOT_FOUND"
        )


# ===================
# EXTERNAL COLLABORATORS
# ===================

class ExtractionDispatchError(ExternalServiceError):
    """Document could not be handed to the extraction service."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            service="extraction",
            message=message,
            details=details,
            code="EXTRACTION_DISPATCH_FAILED"
        )


class DropboxFetchError(ExternalServiceError):
    """Dropbox export could not be fetched or decoded."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            service="dropbox",
            message=message,
            details=details,
            code="DROPBOX_FETCH_FAILED",
            status_code=400
        )


class CommitFailedError(ExternalServiceError):
    """Transaction store rejected the batch; nothing was committed."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            service="transaction_store",
            message=message,
            details=details,
            code="COMMIT_FAILED",
            status_code=502
        )
