"""
Shared route helpers.

The store is built once in the application lifespan and handed to each
request through get_store; tests override it with
app.dependency_overrides.
"""

from fastapi import Request
from fastapi.responses import JSONResponse
import structlog

from exceptions import AppError, StoreConnectionError
from services.shipment_store import ShipmentStore

logger = structlog.get_logger(__name__)


def get_store(request: Request) -> ShipmentStore:
    """FastAPI dependency returning the application's store."""
    store = getattr(request.app.state, "store", None)
    if store is None:
        raise StoreConnectionError("Store is not configured")
    return store


def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(
            status_code=e.status_code,
            content=e.to_dict()
        )
    # Unexpected error
    logger.error("unexpected_error", error=str(e), type=type(e).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred"
            }
        }
    )
