"""
API route modules.

Each module defines routes for one domain area.
"""

from routes.shipments import router as shipments_router
from routes.documents import router as documents_router

__all__ = [
    "shipments_router",
    "documents_router",
]
