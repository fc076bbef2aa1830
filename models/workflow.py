"""
Workflow state schemas.
"""

from pydantic import Field
from typing import Optional
from enum import Enum
from datetime import datetime

from models.base import BaseSchema


class WorkflowState(str, Enum):
    """Shipment lifecycle states, listed in rank order."""
    BOOKING_CONFIRMED = "booking_confirmed"
    BOOKING_SHARED = "booking_shared"
    SI_DRAFT_RECEIVED = "si_draft_received"
    SI_SUBMITTED = "si_submitted"
    SI_CONFIRMED = "si_confirmed"
    VGM_SUBMITTED = "vgm_submitted"
    CONTAINER_GATED_IN = "container_gated_in"
    BILL_OF_LADING_RECEIVED = "bill_of_lading_received"
    HBL_SHARED = "hbl_shared"
    DEPARTED = "departed"
    INVOICE_SENT = "invoice_sent"
    ARRIVAL_NOTICE_RECEIVED = "arrival_notice_received"
    ARRIVAL_NOTICE_SHARED = "arrival_notice_shared"
    CUSTOMS_CLEARED = "customs_cleared"
    DELIVERY_ORDER_RECEIVED = "delivery_order_received"
    DELIVERY_ORDER_SHARED = "delivery_order_shared"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class WorkflowPhase(str, Enum):
    """Coarse grouping of states. Display only, never used for ranking."""
    BOOKING = "booking"
    PRE_DEPARTURE = "pre_departure"
    IN_TRANSIT = "in_transit"
    ARRIVAL = "arrival"
    DELIVERY = "delivery"
    CLOSED = "closed"


class StateDefinition(BaseSchema):
    """One row of the state table."""

    state: str
    rank: int = Field(..., ge=0)
    phase: WorkflowPhase
    label: str = ""


class DocumentStateRule(BaseSchema):
    """(document_type, direction) -> state. direction None matches both."""

    document_type: str
    direction: Optional[str] = None
    state: str


class StateComputation(BaseSchema):
    """Outcome of evaluating all linked documents of one shipment."""

    shipment_id: str
    current_state: Optional[str] = None
    current_rank: Optional[int] = None
    candidate_state: Optional[str] = None
    candidate_rank: Optional[int] = None
    candidate_phase: Optional[str] = None
    triggering_document_id: Optional[str] = None
    should_apply: bool = False
    documents_evaluated: int = 0
    ignored_document_ids: list[str] = Field(
        default_factory=list,
        description="Documents with no rule for their type and direction"
    )
    unhandled_document_types: list[str] = Field(default_factory=list)
    reason: str = ""


class TransitionResult(BaseSchema):
    """Outcome of recompute or manual correction for one shipment."""

    shipment_id: str
    previous_state: Optional[str] = None
    new_state: Optional[str] = None
    new_phase: Optional[str] = None
    applied: bool = False
    lost_race: bool = False
    reason: str = ""
    unhandled_count: int = 0


class WorkflowCorrectionRequest(BaseSchema):
    """Body of a manual workflow correction."""

    state: str = Field(..., min_length=1)
    reason: str = Field(..., min_length=3, max_length=500)
    force: bool = Field(default=False, description="Allow moving the state backward")
    corrected_by: Optional[str] = Field(None, max_length=100)


class ShipmentWorkflowStatus(BaseSchema):
    """Workflow view of a shipment for the dashboard."""

    shipment_id: str
    workflow_state: Optional[str] = None
    workflow_phase: Optional[str] = None
    workflow_state_rank: Optional[int] = None
    workflow_state_updated_at: Optional[datetime] = None
    rules_version: str
    linked_documents: int = 0
    history: list[dict] = Field(default_factory=list)
