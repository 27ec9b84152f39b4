"""
Transaction store collaborator.

Bulk-inserts validated rows into the Supabase transactions table. The
batch is one insert call: it either succeeds with a count or fails as a
whole. No retries happen here.
"""

from typing import Optional
import structlog

from config import settings, get_supabase_client
from models.transaction import TransactionRow
from exceptions import CommitFailedError

logger = structlog.get_logger(__name__)


class TransactionStore:
    """
    Writes finalized transactions.

    Reading, editing and deleting stored transactions belong to the
    dashboard, not to the import pipeline.
    """

    def __init__(self, client=None):
        self._client = client
        self.table = settings.transactions_table

    @property
    def db(self):
        if self._client is None:
            try:
                self._client = get_supabase_client()
            except Exception as e:
                raise CommitFailedError(f"Transaction store unavailable: {e}") from e
        return self._client

    def bulk_insert(self, rows: list[TransactionRow]) -> int:
        """
        Insert a batch of validated rows.

        Args:
            rows: Rows to insert (all or nothing)

        Returns:
            Number of rows inserted

        Raises:
            CommitFailedError: If the insert fails for any reason
        """
        if not rows:
            return 0

        records = [row.to_record() for row in rows]

        logger.info("committing_transactions", count=len(records), table=self.table)

        try:
            result = self.db.table(self.table).insert(records).execute()
        except CommitFailedError:
            raise
        except Exception as e:
            logger.error(
                "transaction_commit_failed",
                count=len(records),
                error=str(e),
                error_type=type(e).__name__
            )
            raise CommitFailedError(f"Failed to save transactions: {e}") from e

        inserted = len(result.data) if result.data else 0

        if inserted != len(records):
            logger.error(
                "transaction_commit_incomplete",
                expected=len(records),
                inserted=inserted
            )
            raise CommitFailedError(
                "Transaction store acknowledged a partial batch",
                details={"expected": len(records), "inserted": inserted}
            )

        logger.info("transactions_committed", count=inserted)
        return inserted


# Singleton instance
_transaction_store: Optional[TransactionStore] = None


def get_transaction_store() -> TransactionStore:
    """Get or create TransactionStore instance."""
    global _transaction_store
    if _transaction_store is None:
        _transaction_store = TransactionStore()
    return _transaction_store
