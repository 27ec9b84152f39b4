"""
Document import session models.

A session follows one document from dispatch to commit:

    IDLE -> DISPATCHED -> POLLING -> {READY | TIMED_OUT | FAILED}
         -> REVIEWING -> {COMMITTED | CANCELLED}
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional, Union
from pydantic import Field

from models.base import BaseSchema, TimestampMixin


class ImportState(str, Enum):
    """Import session states."""
    IDLE = "IDLE"
    DISPATCHED = "DISPATCHED"
    POLLING = "POLLING"
    READY = "READY"
    TIMED_OUT = "TIMED_OUT"
    FAILED = "FAILED"
    REVIEWING = "REVIEWING"
    COMMITTED = "COMMITTED"
    CANCELLED = "CANCELLED"


class FailureKind(str, Enum):
    """What caused a FAILED session; only staging failures can be re-polled."""
    DISPATCH = "dispatch"
    STAGING = "staging"


ALLOWED_TRANSITIONS: dict[ImportState, frozenset[ImportState]] = {
    ImportState.IDLE: frozenset({ImportState.DISPATCHED}),
    ImportState.DISPATCHED: frozenset({ImportState.POLLING, ImportState.FAILED, ImportState.CANCELLED}),
    ImportState.POLLING: frozenset({
        ImportState.READY,
        ImportState.TIMED_OUT,
        ImportState.FAILED,
        ImportState.CANCELLED,
    }),
    ImportState.READY: frozenset({ImportState.REVIEWING, ImportState.CANCELLED}),
    ImportState.TIMED_OUT: frozenset({ImportState.POLLING, ImportState.CANCELLED}),
    ImportState.FAILED: frozenset({ImportState.POLLING, ImportState.CANCELLED}),
    ImportState.REVIEWING: frozenset({ImportState.COMMITTED, ImportState.CANCELLED}),
    ImportState.COMMITTED: frozenset(),
    ImportState.CANCELLED: frozenset(),
}

TERMINAL_STATES = frozenset({ImportState.COMMITTED, ImportState.CANCELLED})


def is_valid_import_transition(current: ImportState, new: ImportState) -> bool:
    """
    Check if an import session may move from current to new.

    COMMITTED and CANCELLED are terminal.
    """
    return new in ALLOWED_TRANSITIONS[current]


class ImportSessionResponse(BaseSchema, TimestampMixin):
    """Snapshot of a document import session for polling clients."""

    id: str = Field(..., description="Correlation key")
    state: ImportState
    filename: Optional[str] = None
    content_type: Optional[str] = None
    attempts: int = Field(0, description="Staging checks made so far")
    max_attempts: int
    rows: list[dict[str, Any]] = Field(default_factory=list, description="Rows under review")
    row_errors: list[dict[str, Any]] = Field(default_factory=list, description="Current validation errors of the review rows")
    message: Optional[str] = None
    error: Optional[dict[str, Any]] = None
    committed_count: Optional[int] = None


RawValue = Optional[Union[str, int, float]]


class ReviewRowInput(BaseSchema):
    """
    Cells of a review row.

    Values stay raw until commit; set only the cells being added or edited.
    """

    date: RawValue = None
    description: RawValue = None
    amount: RawValue = None
    category: RawValue = None
    document_id: RawValue = None


class StagedImportRequest(BaseSchema):
    """Review rows already staged under a known key (e.g. by the Dropbox webhook)."""

    key: str = Field(..., min_length=1, max_length=200)
    filename: Optional[str] = None


class ImportCommitResponse(BaseSchema):
    id: str
    state: ImportState
    inserted: int
    committed_at: datetime
