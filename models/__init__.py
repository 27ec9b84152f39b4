"""
Pydantic models for validation and serialization.
"""

from models.base import (
    BaseSchema,
    TimestampMixin,
)
from models.transaction import (
    DestinationField,
    REQUIRED_FIELDS,
    TransactionRow,
    CommitRequest,
    CommitResponse,
)
from models.mapping import (
    ColumnMapping,
    FormError,
    RowError,
    ValidationResult,
    ValidateRequest,
    CSVPreviewResponse,
)
from models.staging import (
    StagedImport,
    StagePutRequest,
    StagePutResponse,
    StageTakeResponse,
    DropboxWebhookRequest,
    EvictResponse,
)
from models.import_session import (
    ImportState,
    FailureKind,
    ALLOWED_TRANSITIONS,
    TERMINAL_STATES,
    is_valid_import_transition,
    ImportSessionResponse,
    ReviewRowInput,
    StagedImportRequest,
    ImportCommitResponse,
)

__all__ = [
    # Base
    "BaseSchema",
    "TimestampMixin",

    # Transaction
    "DestinationField",
    "REQUIRED_FIELDS",
    "TransactionRow",
    "CommitRequest",
    "CommitResponse",

    # Mapping
    "ColumnMapping",
    "FormError",
    "RowError",
    "ValidationResult",
    "ValidateRequest",
    "CSVPreviewResponse",

    # Staging
    "StagedImport",
    "StagePutRequest",
    "StagePutResponse",
    "StageTakeResponse",
    "DropboxWebhookRequest",
    "EvictResponse",

    # Import sessions
    "ImportState",
    "FailureKind",
    "ALLOWED_TRANSITIONS",
    "TERMINAL_STATES",
    "is_valid_import_transition",
    "ImportSessionResponse",
    "ReviewRowInput",
    "StagedImportRequest",
    "ImportCommitResponse",
]
