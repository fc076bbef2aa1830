"""
Classified document schemas.

A classified document is one email (or attachment) after the upstream AI
step has assigned a document type and extracted identifier candidates.
Everything here is untrusted input: unknown types and unreadable fields
are tolerated and normalized, never rejected wholesale.
"""

from pydantic import Field, field_validator
from typing import Any, Optional
from enum import Enum
from datetime import datetime

from models.base import BaseSchema
from utils.date_utils import parse_datetime


class DocumentType(str, Enum):
    """Document types the upstream classifier is known to emit."""
    BOOKING_CONFIRMATION = "booking_confirmation"
    BOOKING_AMENDMENT = "booking_amendment"
    BOOKING_CANCELLATION = "booking_cancellation"
    SHIPPING_INSTRUCTION = "shipping_instruction"
    SI_CONFIRMATION = "si_confirmation"
    VGM_SUBMISSION = "vgm_submission"
    VGM_CONFIRMATION = "vgm_confirmation"
    GATE_IN_CONFIRMATION = "gate_in_confirmation"
    BILL_OF_LADING = "bill_of_lading"
    HOUSE_BL = "house_bl"
    SOB_CONFIRMATION = "sob_confirmation"
    DEPARTURE_NOTICE = "departure_notice"
    INVOICE = "invoice"
    ARRIVAL_NOTICE = "arrival_notice"
    CUSTOMS_CLEARANCE = "customs_clearance"
    DELIVERY_ORDER = "delivery_order"
    PROOF_OF_DELIVERY = "proof_of_delivery"
    GENERAL_CORRESPONDENCE = "general_correspondence"


class Direction(str, Enum):
    """Whether we received the document or sent it onward."""
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class IdentifierType(str, Enum):
    """Identifier kinds the extractor may return."""
    BOOKING_NUMBER = "booking_number"
    BILL_OF_LADING_NUMBER = "bill_of_lading_number"
    MBL_NUMBER = "mbl_number"
    HBL_NUMBER = "hbl_number"
    CONTAINER_NUMBER = "container_number"
    THREAD_ID = "thread_id"


class ExtractedIdentifier(BaseSchema):
    """One (identifier_type, raw_value, confidence) tuple from extraction."""

    identifier_type: str = Field(..., description="Identifier kind, e.g. booking_number")
    raw_value: Optional[str] = Field(None, description="Value as extracted")
    confidence: Optional[float] = Field(
        None,
        description="Extraction confidence 0-100 (None when not reported)"
    )

    @field_validator("identifier_type", mode="before")
    @classmethod
    def normalize_type(cls, v: Any) -> str:
        """Lowercase the type so 'Booking_Number' and 'booking_number' agree."""
        return str(v or "").strip().lower()

    @field_validator("raw_value", mode="before")
    @classmethod
    def coerce_value(cls, v: Any) -> Optional[str]:
        """Numbers come through as ints or floats from some extractors."""
        if v is None:
            return None
        if isinstance(v, float) and v.is_integer():
            return str(int(v))
        return str(v)

    @field_validator("confidence", mode="before")
    @classmethod
    def drop_bad_confidence(cls, v: Any) -> Optional[float]:
        """Out-of-range or unreadable confidence counts as not reported."""
        if v is None or isinstance(v, bool):
            return None
        try:
            value = float(v)
        except (TypeError, ValueError):
            return None
        if value < 0 or value > 100:
            return None
        return value


class ClassifiedDocument(BaseSchema):
    """
    A classified unit of correspondence.

    Immutable after classification; re-classification creates a new row
    that supersedes this one.
    """

    id: str = Field(..., description="Document UUID")
    document_type: str = Field(..., description="Classifier output, see DocumentType")
    direction: Direction = Field(..., description="inbound or outbound")
    correspondence_thread_id: Optional[str] = Field(None, description="Mail thread id")
    sender_email: Optional[str] = Field(None, description="Envelope sender")
    true_sender_email: Optional[str] = Field(
        None,
        description="Original sender when the mail was forwarded"
    )
    identifiers: list[ExtractedIdentifier] = Field(default_factory=list)
    received_at: Optional[datetime] = Field(None, description="Receipt timestamp")
    is_draft: bool = Field(default=False, description="Document is still a draft")

    @field_validator("document_type", mode="before")
    @classmethod
    def normalize_document_type(cls, v: Any) -> str:
        return str(v or "").strip().lower()

    @field_validator("correspondence_thread_id", mode="before")
    @classmethod
    def blank_thread_is_none(cls, v: Any) -> Optional[str]:
        if v is None:
            return None
        text = str(v).strip()
        return text or None

    @field_validator("received_at", mode="before")
    @classmethod
    def parse_received_at(cls, v: Any) -> Optional[datetime]:
        return parse_datetime(v)

    @field_validator("identifiers", mode="before")
    @classmethod
    def drop_malformed_identifiers(cls, v: Any) -> list:
        """Keep only entries that look like identifier tuples."""
        if not isinstance(v, list):
            return []
        return [
            item for item in v
            if isinstance(item, ExtractedIdentifier)
            or (isinstance(item, dict) and item.get("identifier_type"))
        ]

    def raw_values(self, *identifier_types: str, min_confidence: float = 0) -> list[str]:
        """
        Raw identifier values of the given types.

        Identifiers that report a confidence below min_confidence are
        skipped; identifiers without a confidence are kept.
        """
        wanted = {str(getattr(t, "value", t)) for t in identifier_types}
        values = []
        for identifier in self.identifiers:
            if identifier.identifier_type not in wanted or not identifier.raw_value:
                continue
            if identifier.confidence is not None and identifier.confidence < min_confidence:
                continue
            values.append(identifier.raw_value)
        return values

    def arrival_key(self) -> tuple:
        """Sort key: received_at ascending, undated last, ties by id."""
        return (self.received_at is None, self.received_at or datetime.min, self.id)
