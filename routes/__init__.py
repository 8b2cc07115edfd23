"""
API route modules.

Each module defines routes for one domain area.
"""

from routes.issuings import router as issuings_router
from routes.imports import router as imports_router

__all__ = [
    "issuings_router",
    "imports_router",
]
