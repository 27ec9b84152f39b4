"""
Custom exceptions module.
"""

from exceptions.errors import (
    # Base exceptions
    AppError,
    NotFoundError,
    ValidationError,
    ConflictError,
    ExternalServiceError,

    # Input shape
    InvalidRequestError,
    InvalidFileTypeError,
    FileTooLargeError,
    CSVParseError,

    # Mapping / rows
    MappingError,
    ImportValidationError,

    # Staging
    StagingUnavailableError,

    # Import coordinator
    ImportSessionNotFoundError,
    InvalidImportTransitionError,
    ReviewRowNotFoundError,

    # External collaborators
    ExtractionDispatchError,
    DropboxFetchError,
    CommitFailedError,
)

__all__ = [
    "AppError",
    "NotFoundError",
    "ValidationError",
    "ConflictError",
    "ExternalServiceError",
    "InvalidRequestError",
    "InvalidFileTypeError",
    "FileTooLargeError",
    "CSVParseError",
    "MappingError",
    "ImportValidationError",
    "StagingUnavailableError",
    "ImportSessionNotFoundError",
    "InvalidImportTransitionError",
    "ReviewRowNotFoundError",
    "ExtractionDispatchError",
    "DropboxFetchError",
    "CommitFailedError",
]
