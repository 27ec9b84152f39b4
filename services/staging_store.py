"""
Staging store for out-of-band import payloads.

Key-addressed, write-once-read-once holding area. Producers (extraction
webhook, Dropbox webhook) put rows under a correlation key; the import
coordinator takes them exactly once.

Two backends, selected by settings.staging_backend:
- memory: dict guarded by a lock (single process)
- supabase: durable pending_imports table (multi process)
"""

import threading
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any, Optional
import structlog

from config import settings, get_supabase_client, get_admin_client
from models.staging import StagedImport
from exceptions import StagingUnavailableError

logger = structlog.get_logger(__name__)

Payload = list[dict[str, Any]]


class StagingStore(ABC):
    """
    Staging store contract.

    - put: upsert, last writer wins
    - take_once: return and remove atomically; one winner per key
    - delete: idempotent removal
    - evict_expired: retention policy hook, never called by the core flow
    """

    @abstractmethod
    def put(
        self,
        key: str,
        payload: Payload,
        filename: Optional[str] = None,
        source_url: Optional[str] = None
    ) -> StagedImport:
        ...

    @abstractmethod
    def take_once(self, key: str) -> Optional[Payload]:
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        ...

    @abstractmethod
    def evict_expired(self, max_age: timedelta) -> int:
        ...


class InMemoryStagingStore(StagingStore):
    """Process-local staging; lost on restart, invisible to other workers."""

    def __init__(self):
        self._entries: dict[str, StagedImport] = {}
        self._lock = threading.Lock()

    def put(
        self,
        key: str,
        payload: Payload,
        filename: Optional[str] = None,
        source_url: Optional[str] = None
    ) -> StagedImport:
        entry = StagedImport(
            key=key,
            payload=list(payload),
            created_at=datetime.now(timezone.utc),
            filename=filename,
            source_url=source_url,
        )

        with self._lock:
            replaced = key in self._entries
            self._entries[key] = entry

        logger.info(
            "staged_import_stored",
            key=key,
            rows=len(payload),
            replaced=replaced,
            backend="memory"
        )
        return entry

    def take_once(self, key: str) -> Optional[Payload]:
        with self._lock:
            entry = self._entries.pop(key, None)

        if entry is None:
            logger.debug("staged_import_absent", key=key, backend="memory")
            return None

        logger.info("staged_import_taken", key=key, rows=len(entry.payload), backend="memory")
        return entry.payload

    def delete(self, key: str) -> None:
        with self._lock:
            removed = self._entries.pop(key, None) is not None

        logger.info("staged_import_deleted", key=key, existed=removed, backend="memory")

    def evict_expired(self, max_age: timedelta) -> int:
        cutoff = datetime.now(timezone.utc) - max_age

        with self._lock:
            expired = [k for k, e in self._entries.items() if e.created_at < cutoff]
            for k in expired:
                del self._entries[k]

        logger.info("staged_imports_evicted", count=len(expired), backend="memory")
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class SupabaseStagingStore(StagingStore):
    """
    Durable staging in a Supabase table.

    Table columns: id (text, PK), data (jsonb), created_at (timestamptz),
    filename (text), source_url (text).

    take_once is a single DELETE ... RETURNING: Postgres lets exactly one
    concurrent deleter see the row.
    """

    def __init__(self, client=None, table: Optional[str] = None):
        self._client = client
        self.table = table or settings.staging_table

    @property
    def db(self):
        if self._client is None:
            try:
                # Webhook writes are anonymous; use the service role when available
                self._client = get_admin_client() or get_supabase_client()
            except Exception as e:
                raise StagingUnavailableError("connect", str(e)) from e
        return self._client

    def put(
        self,
        key: str,
        payload: Payload,
        filename: Optional[str] = None,
        source_url: Optional[str] = None
    ) -> StagedImport:
        created_at = datetime.now(timezone.utc)
        record = {
            "id": key,
            "data": list(payload),
            "created_at": created_at.isoformat(),
            "filename": filename,
            "source_url": source_url,
        }

        try:
            self.db.table(self.table).upsert(record, on_conflict="id").execute()
        except StagingUnavailableError:
            raise
        except Exception as e:
            logger.error("staged_import_store_failed", key=key, error=str(e))
            raise StagingUnavailableError("put", str(e)) from e

        logger.info("staged_import_stored", key=key, rows=len(payload), backend="supabase")

        return StagedImport(
            key=key,
            payload=record["data"],
            created_at=created_at,
            filename=filename,
            source_url=source_url,
        )

    def take_once(self, key: str) -> Optional[Payload]:
        try:
            result = self.db.table(self.table).delete().eq("id", key).execute()
        except StagingUnavailableError:
            raise
        except Exception as e:
            logger.error("staged_import_take_failed", key=key, error=str(e))
            raise StagingUnavailableError("take_once", str(e)) from e

        if not result.data:
            logger.debug("staged_import_absent", key=key, backend="supabase")
            return None

        payload = result.data[0].get("data") or []

        logger.info("staged_import_taken", key=key, rows=len(payload), backend="supabase")
        return payload

    def delete(self, key: str) -> None:
        try:
            result = self.db.table(self.table).delete().eq("id", key).execute()
        except StagingUnavailableError:
            raise
        except Exception as e:
            logger.error("staged_import_delete_failed", key=key, error=str(e))
            raise StagingUnavailableError("delete", str(e)) from e

        logger.info(
            "staged_import_deleted",
            key=key,
            existed=bool(result.data),
            backend="supabase"
        )

    def evict_expired(self, max_age: timedelta) -> int:
        cutoff = (datetime.now(timezone.utc) - max_age).isoformat()

        try:
            result = self.db.table(self.table).delete().lt("created_at", cutoff).execute()
        except StagingUnavailableError:
            raise
        except Exception as e:
            logger.error("staged_imports_evict_failed", error=str(e))
            raise StagingUnavailableError("evict", str(e)) from e

        count = len(result.data) if result.data else 0
        logger.info("staged_imports_evicted", count=count, backend="supabase")
        return count


# Singleton instance
_staging_store: Optional[StagingStore] = None
_staging_lock = threading.Lock()


def get_staging_store() -> StagingStore:
    """Get or create the configured StagingStore."""
    global _staging_store
    with _staging_lock:
        if _staging_store is None:
            if settings.staging_backend == "supabase":
                _staging_store = SupabaseStagingStore()
            else:
                _staging_store = InMemoryStagingStore()
            logger.info("staging_store_selected", backend=settings.staging_backend)
    return _staging_store
