"""
Custom exceptions module.
"""

from exceptions.errors import (
    # Base exceptions
    AppError,
    NotFoundError,
    ValidationError,
    DatabaseError,
    StoreConnectionError,

    # Shipments and documents
    ShipmentNotFoundError,
    DocumentNotFoundError,

    # Workflow
    InvalidStatusTransitionError,
    UnknownWorkflowStateError,
    RuleTableError,
)

__all__ = [
    # Base
    "AppError",
    "NotFoundError",
    "ValidationError",
    "DatabaseError",
    "StoreConnectionError",

    # Shipments and documents
    "ShipmentNotFoundError",
    "DocumentNotFoundError",

    # Workflow
    "InvalidStatusTransitionError",
    "UnknownWorkflowStateError",
    "RuleTableError",
]
