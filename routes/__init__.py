"""
API route modules.

Each module defines routes for one domain area.
"""

from routes.imports import router as imports_router
from routes.staging import router as staging_router

__all__ = [
    "imports_router",
    "staging_router",
]
