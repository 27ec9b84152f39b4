"""
Database connection management.

Provides Supabase client singletons for the transaction store and the
durable staging table.
"""

from supabase import create_client, Client
from functools import lru_cache
from typing import Optional
import structlog

from config.settings import settings

logger = structlog.get_logger(__name__)


class ConnectionError(Exception):
    """Failed to connect to database."""
    pass


@lru_cache()
def get_supabase_client() -> Client:
    """
    Get cached Supabase client instance.

    Uses lru_cache to ensure only one client is created.
    Call get_supabase_client.cache_clear() to reconnect.

    Returns:
        Client: Supabase client

    Raises:
        ConnectionError: If credentials are missing or connection fails
    """
    if not settings.supabase_configured:
        logger.error("supabase_not_configured")
        raise ConnectionError("Supabase is not configured (SUPABASE_URL / SUPABASE_KEY)")

    try:
        logger.info(
            "connecting_to_supabase",
            url=settings.supabase_url[:30] + "..."  # Log partial URL only
        )

        client = create_client(
            settings.supabase_url,
            settings.supabase_key
        )

        logger.info(
            "supabase_connected",
            status="success"
        )

        return client

    except Exception as e:
        logger.error(
            "supabase_connection_failed",
            error=str(e),
            error_type=type(e).__name__
        )
        raise ConnectionError(f"Failed to connect to Supabase: {e}") from e


def get_admin_client() -> Optional[Client]:
    """
    Get Supabase client with service role key (admin access).

    Only available if SUPABASE_SERVICE_KEY is configured. The staging
    write-back path prefers it because webhook callers are anonymous.

    Returns:
        Client: Admin Supabase client, or None if not configured
    """
    if not (settings.supabase_url and settings.supabase_service_key):
        logger.debug("admin_client_not_configured")
        return None

    try:
        return create_client(
            settings.supabase_url,
            settings.supabase_service_key
        )
    except Exception as e:
        logger.error(
            "admin_client_failed",
            error=str(e)
        )
        return None


# ===================
# HELPER FUNCTIONS
# ===================

def check_connection() -> dict:
    """
    Check database connection health.

    Returns:
        dict: Connection status with details
    """
    if not settings.supabase_configured:
        return {
            "status": "not_configured",
            "staging_backend": settings.staging_backend
        }

    try:
        client = get_supabase_client()

        transactions = (
            client.table(settings.transactions_table)
            .select("id", count="exact")
            .limit(1)
            .execute()
        )

        return {
            "status": "healthy",
            "transactions_count": transactions.count,
            "staging_backend": settings.staging_backend
        }

    except Exception as e:
        return {
            "status": "unhealthy",
            "error": str(e),
            "staging_backend": settings.staging_backend
        }
