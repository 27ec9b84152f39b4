"""
Configuration module.

Exports:
    settings: Application settings instance
    get_settings: Settings accessor for dependency injection
    get_supabase_client / get_admin_client: Supabase clients for the stores
    check_connection: Health probe used by /health and startup
"""

from config.settings import settings, get_settings, Settings
from config.database import (
    get_supabase_client,
    get_admin_client,
    check_connection,
    ConnectionError
)

__all__ = [
    # Settings
    "settings",
    "get_settings",
    "Settings",

    # Database
    "get_supabase_client",
    "get_admin_client",
    "check_connection",
    "ConnectionError",
]
