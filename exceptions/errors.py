"""
Custom exception classes for the application.

Per-record data problems are never raised from batch code; these errors
cover lookups, manual corrections, configuration and the store.
"""

from typing import Optional, Any
from datetime import datetime, timezone


class AppError(Exception):
    """
    Base exception for all application errors.

    All custom exceptions inherit from this.

    Attributes:
        code: Error code (e.g., "SHIPMENT_NOT_FOUND")
        message: Human-readable message
        status_code: HTTP status code
        details: Additional context
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to API response format."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
                "timestamp": self.timestamp
            }
        }


class NotFoundError(AppError):
    """Resource not found (404)."""

    def __init__(
        self,
        resource: str,
        identifier: str,
        code: Optional[str] = None
    ):
        super().__init__(
            code=code or f"{resource.upper()}_NOT_FOUND",
            message=f"{resource} not found",
            status_code=404,
            details={"id": identifier}
        )


class ValidationError(AppError):
    """Validation failed (422)."""

    def __init__(
        self,
        message: str,
        code: str = "VALIDATION_ERROR",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=422,
            details=details
        )


class DatabaseError(AppError):
    """Database operation failed (500). Batch code skips the record and continues."""

    def __init__(
        self,
        operation: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="DATABASE_ERROR",
            message=f"Database {operation} failed: {message}",
            status_code=500,
            details={"operation": operation, **(details or {})}
        )


class StoreConnectionError(AppError):
    """Store unreachable (503). Stops the batch."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            code="STORE_UNAVAILABLE",
            message=message,
            status_code=503,
            details=details
        )


# ===================
# SHIPMENT ERRORS
# ===================

class ShipmentNotFoundError(NotFoundError):
    """Shipment not found."""

    def __init__(self, shipment_id: str):
        super().__init__(
            resource="Shipment",
            identifier=shipment_id,
            code="SHIPMENT_NOT_FOUND"
        )


class DocumentNotFoundError(NotFoundError):
    """Classified document not found."""

    def __init__(self, document_id: str):
        super().__init__(
            resource="Document",
            identifier=document_id,
            code="DOCUMENT_NOT_FOUND"
        )


# ===================
# WORKFLOW ERRORS
# ===================

class InvalidStatusTransitionError(ValidationError):
    """Manual correction would move a shipment backward without force."""

    def __init__(self, current_status: str, new_status: str, terminal_status: str = "cancelled"):
        super().__init__(
            code="INVALID_STATUS_TRANSITION",
            message=f"Cannot transition from {current_status} to {new_status}",
            details={
                "current_status": current_status,
                "new_status": new_status,
                "reason": f"Status can only move forward unless forced, and {terminal_status} is terminal"
            }
        )


class UnknownWorkflowStateError(ValidationError):
    """State name is not in the workflow rule table."""

    def __init__(self, state: str, valid: Optional[list[str]] = None):
        super().__init__(
            code="UNKNOWN_WORKFLOW_STATE",
            message=f"Unknown workflow state: {state}",
            details={"provided": state, "valid": valid or []}
        )


class RuleTableError(AppError):
    """Workflow rule table failed validation at load."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            code="RULE_TABLE_INVALID",
            message=message,
            status_code=500,
            details=details
        )
