"""
Follow-up task candidate schemas.
"""

from pydantic import Field
from typing import Optional
from enum import Enum
from datetime import datetime

from models.base import BaseSchema
from models.priority import PriorityLevel


class TaskType(str, Enum):
    """Kinds of follow-up work generated from shipment state."""
    SUBMIT_SI = "submit_si"
    SUBMIT_VGM = "submit_vgm"
    GATE_IN_CARGO = "gate_in_cargo"
    RESOLVE_BLOCKER = "resolve_blocker"
    SHARE_BOOKING_CONFIRMATION = "share_booking_confirmation"
    SHARE_ARRIVAL_NOTICE = "share_arrival_notice"
    SHARE_DELIVERY_ORDER = "share_delivery_order"


class TaskCandidate(BaseSchema):
    """
    A scored follow-up task.

    dedup_key is the natural key; persisting with upsert on it keeps
    repeated runs from creating duplicates.
    """

    dedup_key: str
    shipment_id: str
    task_type: TaskType
    reference: str = Field(..., description="What the task is about, e.g. a cutoff or blocker id")
    title: str
    due_at: Optional[datetime] = None
    priority_score: int = Field(..., ge=0, le=100)
    priority_label: PriorityLevel
    factors: dict[str, float] = Field(default_factory=dict)

    @staticmethod
    def make_key(shipment_id: str, task_type: str, reference: str) -> str:
        task_type = getattr(task_type, "value", task_type)
        return f"{shipment_id}:{task_type}:{reference}"
