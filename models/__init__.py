"""
Pydantic models for validation and serialization.
"""

from models.base import BaseSchema, TimestampMixin
from models.document import (
    DocumentType,
    Direction,
    IdentifierType,
    ExtractedIdentifier,
    ClassifiedDocument,
)
from models.shipment import ShipmentStatus, ShipmentResponse
from models.link import (
    LinkMethod,
    CASCADE_ORDER,
    EmailAuthority,
    ResolutionResult,
    IdentifierConflict,
    DocumentLink,
    RepairOutcome,
    ResolvePreviewRequest,
    ResolvePreviewResponse,
)
from models.workflow import (
    WorkflowState,
    WorkflowPhase,
    StateDefinition,
    DocumentStateRule,
    StateComputation,
    TransitionResult,
    WorkflowCorrectionRequest,
    ShipmentWorkflowStatus,
)
from models.priority import (
    PriorityLevel,
    Severity,
    StakeholderTier,
    Blocker,
    Insight,
    StakeholderProfile,
    PriorityFactor,
    PriorityFactors,
    PriorityResult,
)
from models.task import TaskType, TaskCandidate

__all__ = [
    # Base
    "BaseSchema",
    "TimestampMixin",
    # Documents
    "DocumentType",
    "Direction",
    "IdentifierType",
    "ExtractedIdentifier",
    "ClassifiedDocument",
    # Shipments
    "ShipmentStatus",
    "ShipmentResponse",
    # Links
    "LinkMethod",
    "CASCADE_ORDER",
    "EmailAuthority",
    "ResolutionResult",
    "IdentifierConflict",
    "DocumentLink",
    "RepairOutcome",
    "ResolvePreviewRequest",
    "ResolvePreviewResponse",
    # Workflow
    "WorkflowState",
    "WorkflowPhase",
    "StateDefinition",
    "DocumentStateRule",
    "StateComputation",
    "TransitionResult",
    "WorkflowCorrectionRequest",
    "ShipmentWorkflowStatus",
    # Priority
    "PriorityLevel",
    "Severity",
    "StakeholderTier",
    "Blocker",
    "Insight",
    "StakeholderProfile",
    "PriorityFactor",
    "PriorityFactors",
    "PriorityResult",
    # Tasks
    "TaskType",
    "TaskCandidate",
]
