"""
Business logic services.

Each service handles one domain area.
"""

from services.mapping_service import MappingService, get_mapping_service
from services.staging_store import (
    StagingStore,
    InMemoryStagingStore,
    SupabaseStagingStore,
    get_staging_store,
)
from services.transaction_store import TransactionStore, get_transaction_store
from services.import_coordinator import ImportCoordinator, get_import_coordinator

__all__ = [
    "MappingService",
    "get_mapping_service",
    "StagingStore",
    "InMemoryStagingStore",
    "SupabaseStagingStore",
    "get_staging_store",
    "TransactionStore",
    "get_transaction_store",
    "ImportCoordinator",
    "get_import_coordinator",
]
