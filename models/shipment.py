"""
Shipment schemas for validation and serialization.
"""

from pydantic import Field, field_validator
from typing import Any, Optional
from enum import Enum
from datetime import datetime
from decimal import Decimal, InvalidOperation

from models.base import BaseSchema, TimestampMixin
from utils.date_utils import parse_datetime


class ShipmentStatus(str, Enum):
    """Record status. Shipments are never deleted, only closed or cancelled."""
    ACTIVE = "active"
    CANCELLED = "cancelled"
    CLOSED = "closed"


class ShipmentResponse(BaseSchema, TimestampMixin):
    """
    Shipment as read from the store.

    workflow_state stays None until the first document is linked.
    """

    id: str = Field(..., description="Shipment UUID")
    status: ShipmentStatus = Field(default=ShipmentStatus.ACTIVE)

    # Reference numbers
    booking_number: Optional[str] = Field(None, description="Carrier booking reference")
    bill_of_lading_number: Optional[str] = Field(None, description="Bill of lading number")
    master_bill_number: Optional[str] = Field(None, description="Master BL (carrier) number")
    house_bill_number: Optional[str] = Field(None, description="House BL number")
    container_numbers: list[str] = Field(default_factory=list)

    # Workflow
    workflow_state: Optional[str] = Field(None, description="Current lifecycle state")
    workflow_phase: Optional[str] = Field(None, description="Phase derived from state")
    workflow_state_rank: Optional[int] = Field(None, description="Rank of workflow_state")
    workflow_state_updated_at: Optional[datetime] = Field(None)

    # Parties
    customer_id: Optional[str] = Field(None, description="Customer party UUID")

    # Schedule and cutoffs
    etd: Optional[datetime] = Field(None, description="Estimated time of departure")
    eta: Optional[datetime] = Field(None, description="Estimated time of arrival")
    si_cutoff: Optional[datetime] = Field(None, description="Shipping instruction cutoff")
    vgm_cutoff: Optional[datetime] = Field(None, description="VGM cutoff")
    cargo_cutoff: Optional[datetime] = Field(None, description="Cargo cutoff")
    gate_cutoff: Optional[datetime] = Field(None, description="Gate-in cutoff")

    # Money
    freight_charges: Optional[Decimal] = Field(None, description="Freight charges in USD")

    @field_validator(
        "etd", "eta", "si_cutoff", "vgm_cutoff", "cargo_cutoff", "gate_cutoff",
        "workflow_state_updated_at", "created_at", "updated_at",
        mode="before"
    )
    @classmethod
    def parse_dates(cls, v: Any) -> Optional[datetime]:
        """Unparseable dates are treated as absent."""
        return parse_datetime(v)

    @field_validator("status", mode="before")
    @classmethod
    def default_status(cls, v: Any) -> str:
        text = str(getattr(v, "value", v) or "").strip().lower()
        return text if text in {s.value for s in ShipmentStatus} else ShipmentStatus.ACTIVE.value

    @field_validator("container_numbers", mode="before")
    @classmethod
    def coerce_containers(cls, v: Any) -> list[str]:
        if not v:
            return []
        if isinstance(v, str):
            return [v]
        return [str(c) for c in v if c]

    @field_validator("freight_charges", mode="before")
    @classmethod
    def parse_freight(cls, v: Any) -> Optional[Decimal]:
        if v is None or isinstance(v, bool):
            return None
        try:
            value = Decimal(str(v))
        except (InvalidOperation, ValueError):
            return None
        if not value.is_finite() or value < 0:
            return None
        return value

    @property
    def is_cancelled(self) -> bool:
        return self.status == ShipmentStatus.CANCELLED
