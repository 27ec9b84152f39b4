"""
Import coordinator for document-based and CSV imports.

Document flow (one session per correlation key):

    IDLE -> DISPATCHED -> POLLING -> {READY | TIMED_OUT | FAILED}
         -> REVIEWING -> {COMMITTED | CANCELLED}

Polling is a tick loop: each tick is one take_once() on the staging store,
separated by an interruptible wait. Cancellation sets an event that is
checked at every tick boundary, so nothing fires after a cancel.

CSV flow: rows go straight to the mapping engine; no session is kept.
"""

import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional
import structlog

from config import settings
from models.transaction import DestinationField
from models.mapping import CSVPreviewResponse
from models.import_session import (
    ImportState,
    FailureKind,
    ImportSessionResponse,
    ImportCommitResponse,
    TERMINAL_STATES,
    is_valid_import_transition,
)
from parsers.csv_parser import parse_csv
from services.mapping_service import MappingService, get_mapping_service
from services.staging_store import StagingStore, get_staging_store
from services.transaction_store import TransactionStore, get_transaction_store
from integrations.extraction_service import dispatch_document
from utils.file_types import resolve_content_type, is_allowed, is_csv, is_document, ALLOWED_TYPES
from utils.text_utils import cell_text
from exceptions import (
    AppError,
    ConflictError,
    InvalidRequestError,
    InvalidFileTypeError,
    FileTooLargeError,
    ImportSessionNotFoundError,
    InvalidImportTransitionError,
    ReviewRowNotFoundError,
    ImportValidationError,
    StagingUnavailableError,
    CommitFailedError,
)

logger = structlog.get_logger(__name__)

Dispatcher = Callable[..., None]


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ImportSession:
    """In-memory state of one document import; owned by a single operator."""
    id: str
    max_attempts: int
    filename: Optional[str] = None
    content_type: Optional[str] = None
    state: ImportState = ImportState.IDLE
    attempts: int = 0
    rows: list[dict[str, Any]] = field(default_factory=list)
    message: Optional[str] = None
    error: Optional[dict[str, Any]] = None
    failure_kind: Optional[FailureKind] = None
    committed_count: Optional[int] = None
    created_at: datetime = field(default_factory=_now)
    updated_at: Optional[datetime] = None
    cancel_event: threading.Event = field(default_factory=threading.Event)
    lock: threading.RLock = field(default_factory=threading.RLock)


class ImportCoordinator:
    """
    Orchestrates imports end to end.

    Handles:
    - CSV preview (parse + proposed mapping)
    - Document dispatch and bounded polling of the staging store
    - Review edits (add/edit/delete rows) before commit
    - Commit through the transaction store, cancel, retry after timeout
    """

    def __init__(
        self,
        staging_store: Optional[StagingStore] = None,
        transaction_store: Optional[TransactionStore] = None,
        mapping_service: Optional[MappingService] = None,
        dispatcher: Optional[Dispatcher] = None,
        poll_interval: Optional[float] = None,
        max_attempts: Optional[int] = None,
        run_in_background: bool = True
    ):
        self.staging = staging_store if staging_store is not None else get_staging_store()
        self._transactions = transaction_store
        self.mapping = mapping_service if mapping_service is not None else get_mapping_service()
        self.dispatch = dispatcher if dispatcher is not None else dispatch_document
        self.poll_interval = settings.poll_interval_seconds if poll_interval is None else poll_interval
        self.max_attempts = max_attempts or settings.poll_max_attempts
        self.run_in_background = run_in_background

        self._sessions: dict[str, ImportSession] = {}
        self._sessions_lock = threading.Lock()

    @property
    def transactions(self) -> TransactionStore:
        if self._transactions is None:
            self._transactions = get_transaction_store()
        return self._transactions

    # ===================
    # CSV FLOW
    # ===================

    def preview_csv(
        self,
        filename: Optional[str],
        content: bytes,
        content_type: Optional[str]
    ) -> CSVPreviewResponse:
        """
        Parse a CSV upload and propose a column mapping.

        Raises:
            InvalidFileTypeError: If the file is not a CSV
            FileTooLargeError: If the upload exceeds the limit
            CSVParseError: If the CSV cannot be read
        """
        resolved = self._check_upload(filename, content, content_type)
        if not is_csv(resolved):
            raise InvalidFileTypeError(content_type, filename, sorted(ALLOWED_TYPES))

        parsed = parse_csv(content)
        mappings = self.mapping.propose_mapping(parsed.headers)

        logger.info(
            "csv_preview_ready",
            filename=filename,
            rows=len(parsed.rows),
            mapped=[m.destination.value for m in mappings if m.source]
        )

        return CSVPreviewResponse(
            filename=filename,
            headers=parsed.headers,
            rows=parsed.rows,
            total_rows=len(parsed.rows),
            mappings=mappings,
        )

    # ===================
    # DOCUMENT FLOW
    # ===================

    def start_document_import(
        self,
        filename: Optional[str],
        content: bytes,
        content_type: Optional[str],
        callback_url: Optional[str] = None
    ) -> ImportSessionResponse:
        """
        Dispatch a document for extraction and start polling for the result.

        A fresh correlation key is generated per call. Dispatch is
        fire-and-forget: this returns as soon as the service accepts the file.

        Raises:
            InvalidFileTypeError: If the file is not a PDF or supported image
            FileTooLargeError: If the upload exceeds the limit
            ExtractionDispatchError: If the dispatch call fails (session FAILED)
        """
        resolved = self._check_upload(filename, content, content_type)
        if is_csv(resolved):
            raise InvalidRequestError(
                "CSV files are imported through the column mapping flow",
                expected="PDF or image document; send CSV files to /api/imports/csv"
            )
        if not is_document(resolved):
            raise InvalidFileTypeError(content_type, filename, sorted(ALLOWED_TYPES))

        session = self._create_session(str(uuid.uuid4()), filename, resolved)

        with session.lock:
            self._transition(session, ImportState.DISPATCHED)

        try:
            self.dispatch(
                key=session.id,
                filename=filename or "document",
                content=content,
                content_type=resolved,
                callback_url=callback_url,
            )
        except AppError as e:
            with session.lock:
                self._fail(session, e, FailureKind.DISPATCH)
            e.details["session_id"] = session.id
            raise

        return self._begin_polling(session)

    def watch_staged(self, key: str, filename: Optional[str] = None) -> ImportSessionResponse:
        """
        Start a session for a payload queued under a caller-known key.

        Used for producers that stage rows without a dispatch from here
        (e.g. the Dropbox webhook). No external call is made.

        Raises:
            ConflictError: If a session for the key is still active
        """
        key = key.strip()
        if not key:
            raise InvalidRequestError("Correlation key is required", expected="non-empty key")

        with self._sessions_lock:
            existing = self._sessions.get(key)
            if existing is not None and existing.state not in TERMINAL_STATES:
                raise ConflictError(
                    "An import session is already active for this key",
                    code="IMPORT_SESSION_ACTIVE",
                    details={"id": key, "state": existing.state.value}
                )

        session = self._create_session(key, filename, None)

        with session.lock:
            self._transition(session, ImportState.DISPATCHED)

        return self._begin_polling(session)

    def run_polling(self, session_id: str) -> ImportState:
        """
        Poll the staging store until rows arrive, attempts run out, or the
        session is cancelled.

        Makes at most max_attempts checks; TIMED_OUT is only reached after
        the last one. Safe to call directly (tests, workers) or from the
        background thread started by start_document_import.

        Returns:
            State the session ended in
        """
        session = self._get(session_id)

        try:
            return self._poll(session)
        except Exception as e:
            # Malformed payload or a bug; the session must not stay POLLING
            logger.error(
                "import_polling_crashed",
                id=session.id,
                error=str(e),
                type=type(e).__name__
            )
            with session.lock:
                if session.state == ImportState.POLLING:
                    self._fail(session, StagingUnavailableError("take_once", str(e)), FailureKind.STAGING)
                return session.state

    def _poll(self, session: ImportSession) -> ImportState:
        while True:
            with session.lock:
                if session.cancel_event.is_set() or session.state != ImportState.POLLING:
                    return session.state

                if session.attempts >= self.max_attempts:
                    self._transition(session, ImportState.TIMED_OUT)
                    session.message = (
                        "No extraction result yet. The document may still be processing; "
                        "retry the check in a moment."
                    )
                    logger.warning(
                        "import_timed_out",
                        id=session.id,
                        attempts=session.attempts
                    )
                    return session.state

                session.attempts += 1
                attempt = session.attempts

            logger.debug("poll_attempt", id=session.id, attempt=attempt, max_attempts=self.max_attempts)

            try:
                payload = self.staging.take_once(session.id)
            except StagingUnavailableError as e:
                with session.lock:
                    if session.state == ImportState.POLLING:
                        self._fail(session, e, FailureKind.STAGING)
                    return session.state

            if payload:
                review_rows = self._to_review_rows(payload)

                with session.lock:
                    if session.cancel_event.is_set() or session.state != ImportState.POLLING:
                        logger.info("staged_rows_discarded_after_cancel", id=session.id, rows=len(payload))
                        return session.state

                    self._transition(session, ImportState.READY)
                    session.rows = review_rows
                    self._transition(session, ImportState.REVIEWING)
                    session.message = f"{len(session.rows)} row(s) ready for review"

                    logger.info("import_ready", id=session.id, rows=len(session.rows), attempts=attempt)
                    return session.state

            if attempt >= self.max_attempts:
                continue

            # Returns True as soon as cancel() sets the event
            if session.cancel_event.wait(self.poll_interval):
                return session.state

    def retry_polling(self, session_id: str) -> ImportSessionResponse:
        """
        Re-check the staging store for a timed out (or staging-failed) session.

        Raises:
            InvalidImportTransitionError: If the session cannot resume polling
        """
        session = self._get(session_id)

        with session.lock:
            resumable = session.state == ImportState.TIMED_OUT or (
                session.state == ImportState.FAILED
                and session.failure_kind == FailureKind.STAGING
            )
            if not resumable:
                raise InvalidImportTransitionError(session.state.value, ImportState.POLLING.value)

            session.attempts = 0
            session.error = None
            session.failure_kind = None
            session.message = None

        logger.info("import_retry_requested", id=session.id)
        return self._begin_polling(session)

    # ===================
    # REVIEW
    # ===================

    def add_row(self, session_id: str, values: dict[str, Any]) -> ImportSessionResponse:
        session = self._get(session_id)
        with session.lock:
            self._require_reviewing(session)
            session.rows.append(self._blank_row() | self._only_destination(values))
            session.updated_at = _now()
            return self._snapshot(session)

    def update_row(self, session_id: str, index: int, values: dict[str, Any]) -> ImportSessionResponse:
        """Overwrite the given cells of one review row."""
        session = self._get(session_id)
        with session.lock:
            self._require_reviewing(session)
            row = self._row_at(session, index)
            row.update(self._only_destination(values))
            session.updated_at = _now()
            return self._snapshot(session)

    def delete_row(self, session_id: str, index: int) -> ImportSessionResponse:
        session = self._get(session_id)
        with session.lock:
            self._require_reviewing(session)
            self._row_at(session, index)
            del session.rows[index]
            session.updated_at = _now()
            return self._snapshot(session)

    def commit(self, session_id: str) -> ImportCommitResponse:
        """
        Commit the reviewed rows as one batch.

        Any row error blocks the commit. A failed insert leaves the session
        in REVIEWING with its rows intact; nothing is retried automatically.

        Raises:
            InvalidImportTransitionError: If the session is not under review
            ImportValidationError: If any row is invalid
            CommitFailedError: If the transaction store rejects the batch
        """
        session = self._get(session_id)

        with session.lock:
            if session.state != ImportState.REVIEWING:
                raise InvalidImportTransitionError(session.state.value, ImportState.COMMITTED.value)

            if not session.rows:
                raise InvalidRequestError("There are no rows to commit", expected="at least one row")

            result = self.mapping.validate_rows(session.rows, self.mapping.identity_mappings())
            if not result.can_commit:
                raise ImportValidationError([e.to_json_dict() for e in result.row_errors])

            try:
                inserted = self.transactions.bulk_insert(result.rows)
            except CommitFailedError as e:
                session.error = e.to_dict()["error"]
                session.message = "Commit failed; rows kept for another attempt"
                session.updated_at = _now()
                raise

            self._transition(session, ImportState.COMMITTED)
            session.committed_count = inserted
            session.rows = []
            session.error = None
            session.message = f"{inserted} transaction(s) imported"

            logger.info("import_committed", id=session.id, inserted=inserted)

            return ImportCommitResponse(
                id=session.id,
                state=session.state,
                inserted=inserted,
                committed_at=session.updated_at,
            )

    def cancel(self, session_id: str) -> ImportSessionResponse:
        """
        Stop polling and discard the session's rows.

        The staging entry is left alone: it was either consumed already or
        never arrived.
        """
        session = self._get(session_id)

        with session.lock:
            if session.state in TERMINAL_STATES:
                raise InvalidImportTransitionError(session.state.value, ImportState.CANCELLED.value)

            session.cancel_event.set()
            self._transition(session, ImportState.CANCELLED)
            session.rows = []
            session.message = "Import cancelled"

            return self._snapshot(session)

    def get_session(self, session_id: str) -> ImportSessionResponse:
        session = self._get(session_id)
        with session.lock:
            return self._snapshot(session)

    # ===================
    # HELPER FUNCTIONS
    # ===================

    def _check_upload(
        self,
        filename: Optional[str],
        content: bytes,
        content_type: Optional[str]
    ) -> str:
        """Reject unsupported or oversized uploads before any side effect."""
        resolved = resolve_content_type(content_type, filename)

        if not is_allowed(resolved):
            logger.warning("upload_rejected_type", filename=filename, content_type=content_type)
            raise InvalidFileTypeError(content_type, filename, sorted(ALLOWED_TYPES))

        if len(content) > settings.max_upload_bytes:
            raise FileTooLargeError(len(content), settings.max_upload_bytes)

        if not content:
            raise InvalidRequestError("Uploaded file is empty", expected="non-empty file")

        return resolved

    def _create_session(
        self,
        key: str,
        filename: Optional[str],
        content_type: Optional[str]
    ) -> ImportSession:
        session = ImportSession(
            id=key,
            max_attempts=self.max_attempts,
            filename=filename,
            content_type=content_type,
        )

        with self._sessions_lock:
            self._prune_stale()
            self._sessions[key] = session

        logger.info("import_session_created", id=key, filename=filename)
        return session

    def _prune_stale(self) -> None:
        """
        Drop sessions untouched for longer than the staging retention window.

        Applies to every state: timed out, failed and abandoned reviews
        would otherwise keep their rows in memory for good.
        """
        cutoff = _now() - timedelta(minutes=settings.staging_retention_minutes)
        stale = [
            k for k, s in self._sessions.items()
            if (s.updated_at or s.created_at) < cutoff
        ]
        for k in stale:
            self._sessions.pop(k).cancel_event.set()

        if stale:
            logger.info("import_sessions_pruned", count=len(stale))

    def _begin_polling(self, session: ImportSession) -> ImportSessionResponse:
        with session.lock:
            self._transition(session, ImportState.POLLING)
            snapshot = self._snapshot(session)

        if self.run_in_background:
            thread = threading.Thread(
                target=self.run_polling,
                args=(session.id,),
                name=f"import-poll-{session.id[:8]}",
                daemon=True,
            )
            thread.start()

        return snapshot

    def _get(self, session_id: str) -> ImportSession:
        with self._sessions_lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise ImportSessionNotFoundError(session_id)
        return session

    def _transition(self, session: ImportSession, new_state: ImportState) -> None:
        if not is_valid_import_transition(session.state, new_state):
            raise InvalidImportTransitionError(session.state.value, new_state.value)

        logger.info(
            "import_state_changed",
            id=session.id,
            from_state=session.state.value,
            to_state=new_state.value
        )
        session.state = new_state
        session.updated_at = _now()

    def _fail(self, session: ImportSession, error: AppError, kind: FailureKind) -> None:
        self._transition(session, ImportState.FAILED)
        session.failure_kind = kind
        session.error = error.to_dict()["error"]
        session.message = error.message

        logger.error(
            "import_failed",
            id=session.id,
            kind=kind.value,
            code=error.code,
            error=error.message
        )

    def _require_reviewing(self, session: ImportSession) -> None:
        if session.state != ImportState.REVIEWING:
            raise ConflictError(
                "Rows can only be edited while the import is under review",
                code="IMPORT_NOT_REVIEWING",
                details={"id": session.id, "state": session.state.value}
            )

    def _row_at(self, session: ImportSession, index: int) -> dict[str, Any]:
        if index < 0 or index >= len(session.rows):
            raise ReviewRowNotFoundError(index)
        return session.rows[index]

    def _blank_row(self) -> dict[str, Any]:
        return {destination.value: None for destination in DestinationField}

    def _only_destination(self, values: dict[str, Any]) -> dict[str, Any]:
        allowed = {destination.value for destination in DestinationField}
        return {k: v for k, v in values.items() if k in allowed}

    def _to_review_rows(self, payload: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """
        Reshape producer rows to destination field names.

        Producers usually send destination names already; anything else is
        mapped with the same header heuristic the CSV flow uses. Values stay
        raw so the operator can fix them.
        """
        headers: list[str] = []
        for row in payload:
            for key in row:
                if key not in headers:
                    headers.append(key)

        sources = {
            m.destination: m.source
            for m in self.mapping.propose_mapping(headers)
            if m.source
        }
        for destination in DestinationField:
            if destination.value in headers:
                sources[destination] = destination.value

        review_rows = []
        for row in payload:
            review = self._blank_row()
            for destination, source in sources.items():
                value = row.get(source)
                review[destination.value] = value if cell_text(value) else None
            review_rows.append(review)

        return review_rows

    def _snapshot(self, session: ImportSession) -> ImportSessionResponse:
        row_errors: list[dict[str, Any]] = []
        if session.state == ImportState.REVIEWING and session.rows:
            result = self.mapping.validate_rows(session.rows, self.mapping.identity_mappings())
            row_errors = [e.to_json_dict() for e in result.row_errors]

        return ImportSessionResponse(
            id=session.id,
            state=session.state,
            filename=session.filename,
            content_type=session.content_type,
            attempts=session.attempts,
            max_attempts=session.max_attempts,
            rows=[dict(r) for r in session.rows],
            row_errors=row_errors,
            message=session.message,
            error=session.error,
            committed_count=session.committed_count,
            created_at=session.created_at,
            updated_at=session.updated_at,
        )


# Singleton instance
_import_coordinator: Optional[ImportCoordinator] = None


def get_import_coordinator() -> ImportCoordinator:
    """Get or create ImportCoordinator instance."""
    global _import_coordinator
    if _import_coordinator is None:
        _import_coordinator = ImportCoordinator()
    return _import_coordinator
