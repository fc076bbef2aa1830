"""
Document-shipment link schemas.
"""

from pydantic import Field
from typing import Optional
from enum import Enum
from datetime import datetime

from models.base import BaseSchema
from models.document import ClassifiedDocument


class LinkMethod(str, Enum):
    """How a document was matched to its shipment (cascade order)."""
    THREAD = "thread"
    BOOKING_NUMBER = "booking_number"
    MBL_NUMBER = "mbl_number"
    HBL_NUMBER = "hbl_number"
    CONTAINER_NUMBER = "container_number"


# Cascade order, most specific evidence first
CASCADE_ORDER = [
    LinkMethod.THREAD,
    LinkMethod.BOOKING_NUMBER,
    LinkMethod.MBL_NUMBER,
    LinkMethod.HBL_NUMBER,
    LinkMethod.CONTAINER_NUMBER,
]


class EmailAuthority(str, Enum):
    """How authoritative the sender of a document is."""
    DIRECT_CARRIER = "direct_carrier"
    FORWARDED_CARRIER = "forwarded_carrier"
    INTERNAL = "internal"
    THIRD_PARTY = "third_party"


class ResolutionResult(BaseSchema):
    """Resolver output for one document."""

    document_id: str
    shipment_id: str
    method: LinkMethod
    confidence_score: int = Field(..., ge=0, le=100)
    matched_value: Optional[str] = Field(None, description="Variant or thread id that matched")


class IdentifierConflict(BaseSchema):
    """A document's own identifiers disagree with a shipment's."""

    document_id: str
    shipment_id: str
    kind: str = Field(..., description="booking or bill")
    document_values: list[str] = Field(default_factory=list)
    shipment_values: list[str] = Field(default_factory=list)


class DocumentLink(BaseSchema):
    """
    Persisted link row, unique per document.

    A revoked link keeps its row with shipment_id cleared so the repair
    attempt counter survives across batch runs.
    """

    id: Optional[str] = None
    document_id: str
    shipment_id: Optional[str] = None
    method: Optional[LinkMethod] = None
    confidence_score: Optional[int] = Field(None, ge=0, le=100)
    is_active: bool = True
    repair_attempts: int = 0
    linked_at: Optional[datetime] = None
    revoked_at: Optional[datetime] = None
    revoked_reason: Optional[str] = None


class RepairOutcome(BaseSchema):
    """Result of revoking and re-resolving one thread link."""

    document_id: str
    previous_shipment_id: str
    new_shipment_id: Optional[str] = None
    new_method: Optional[LinkMethod] = None
    attempts: int = 0
    exhausted: bool = False
    conflict: Optional[IdentifierConflict] = None


class ResolvePreviewRequest(BaseSchema):
    """Resolve either a stored document (by id) or an inline one."""

    document_id: Optional[str] = None
    document: Optional[ClassifiedDocument] = None


class ResolvePreviewResponse(BaseSchema):
    document_id: str
    resolution: Optional[ResolutionResult] = None
    thread_conflict: Optional[IdentifierConflict] = Field(
        None,
        description="Set when a thread match was found but rejected"
    )
    existing_link: Optional[DocumentLink] = None
