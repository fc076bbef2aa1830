"""
Business logic services.

Each service handles one domain area. Store-backed services take a
ShipmentStore in their constructor; there are no module-level clients.
"""

from services.identifier_normalizer import normalize, normalize_many
from services.email_authority import derive_direction, determine_authority
from services.shipment_index import ShipmentIndex, ThreadLink
from services.shipment_resolver import ShipmentResolver
from services.shipment_store import ShipmentStore
from services.workflow_state_machine import WorkflowStateMachine, WorkflowStateService
from services.priority_scorer import PriorityScorer, label_for
from services.task_service import TaskService
from services.linking_service import LinkingService
from services.batch_processor import BatchProcessor, BatchSummary

__all__ = [
    "normalize",
    "normalize_many",
    "derive_direction",
    "determine_authority",
    "ShipmentIndex",
    "ThreadLink",
    "ShipmentResolver",
    "ShipmentStore",
    "WorkflowStateMachine",
    "WorkflowStateService",
    "PriorityScorer",
    "label_for",
    "TaskService",
    "LinkingService",
    "BatchProcessor",
    "BatchSummary",
]
