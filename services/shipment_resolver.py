"""
Shipment resolver.

Assigns one classified document to at most one shipment by walking a
fixed cascade of evidence, most specific first:

    1. thread continuity (rejected on identifier conflict)
    2. booking number
    3. master bill number
    4. house bill number
    5. container number

The first step that yields exactly one shipment wins. Pure given the
index snapshot; the caller persists the link.
"""

from typing import Optional, Sequence

import structlog

from config.settings import get_settings
from models.document import ClassifiedDocument, IdentifierType
from models.link import (
    CASCADE_ORDER,
    EmailAuthority,
    IdentifierConflict,
    LinkMethod,
    ResolutionResult,
)
from services.email_authority import determine_authority
from services.identifier_normalizer import normalize, normalize_many
from services.shipment_index import BOOKING, CONTAINER, HBL, MBL, ShipmentIndex, ThreadLink

logger = structlog.get_logger(__name__)


BASE_CONFIDENCE = {
    LinkMethod.THREAD: 90,
    LinkMethod.BOOKING_NUMBER: 90,
    LinkMethod.MBL_NUMBER: 85,
    LinkMethod.HBL_NUMBER: 80,
    LinkMethod.CONTAINER_NUMBER: 70,
}

# Cascade step → index namespace
STEP_NAMESPACE = {
    LinkMethod.BOOKING_NUMBER: BOOKING,
    LinkMethod.MBL_NUMBER: MBL,
    LinkMethod.HBL_NUMBER: HBL,
    LinkMethod.CONTAINER_NUMBER: CONTAINER,
}

# Extracted identifier types feeding each namespace. A generic bill of
# lading number can be either the master or the house bill.
NAMESPACE_SOURCES = {
    BOOKING: (IdentifierType.BOOKING_NUMBER,),
    MBL: (IdentifierType.MBL_NUMBER, IdentifierType.BILL_OF_LADING_NUMBER),
    HBL: (IdentifierType.HBL_NUMBER, IdentifierType.BILL_OF_LADING_NUMBER),
    CONTAINER: (IdentifierType.CONTAINER_NUMBER,),
}


class ShipmentResolver:
    """
    Priority cascade over one ShipmentIndex snapshot.

    Args:
        index: Snapshot to resolve against
        carrier_bonus: Confidence bonus for direct-carrier senders
        min_identifier_confidence: Ignore extracted identifiers reported below this
        carrier_domains: Mail domain fragments that identify carriers
    """

    def __init__(
        self,
        index: ShipmentIndex,
        carrier_bonus: Optional[int] = None,
        min_identifier_confidence: Optional[float] = None,
        carrier_domains: Optional[Sequence[str]] = None
    ):
        settings = get_settings()
        self.index = index
        self.carrier_bonus = settings.carrier_confidence_bonus if carrier_bonus is None else carrier_bonus
        self.min_identifier_confidence = (
            settings.min_identifier_confidence
            if min_identifier_confidence is None
            else min_identifier_confidence
        )
        self.carrier_domains = carrier_domains

    # ===================
    # RESOLUTION
    # ===================

    def resolve(
        self,
        document: ClassifiedDocument,
        start_at: LinkMethod = LinkMethod.THREAD
    ) -> Optional[ResolutionResult]:
        """
        Resolve a document to a shipment.

        Args:
            document: Document to resolve
            start_at: First cascade step to try (conflict repair starts
                at BOOKING_NUMBER so the rejected thread is not reused)

        Returns:
            ResolutionResult, or None when no step matches
        """
        variants = self.document_variants(document)
        steps = CASCADE_ORDER[CASCADE_ORDER.index(start_at):]

        for method in steps:
            if method == LinkMethod.THREAD:
                shipment_id, matched_value = self._match_thread(document, variants)
            else:
                shipment_id, matched_value = self._match_identifier(document, method, variants)

            if shipment_id:
                result = ResolutionResult(
                    document_id=document.id,
                    shipment_id=shipment_id,
                    method=method,
                    confidence_score=self.confidence_for(method, document),
                    matched_value=matched_value,
                )
                logger.debug(
                    "document_resolved",
                    document_id=document.id,
                    shipment_id=shipment_id,
                    method=method.value,
                    confidence=result.confidence_score
                )
                return result

        logger.debug("document_unresolved", document_id=document.id, start_at=start_at.value)
        return None

    def find_conflict(
        self,
        document: ClassifiedDocument,
        shipment_id: str
    ) -> Optional[IdentifierConflict]:
        """
        Check a document's own identifiers against a shipment's.

        A kind (booking, or bill covering BL/MBL/HBL) conflicts only when
        both sides carry values of that kind and none of them overlap.
        Missing identifiers on either side never conflict.
        """
        return self._conflict(document.id, self.document_variants(document), shipment_id)

    def confidence_for(self, method: LinkMethod, document: ClassifiedDocument) -> int:
        score = BASE_CONFIDENCE[method]
        authority = determine_authority(
            document.sender_email,
            document.true_sender_email,
            carrier_domains=self.carrier_domains
        )
        if authority == EmailAuthority.DIRECT_CARRIER:
            score += self.carrier_bonus
        return max(0, min(100, score))

    # ===================
    # HELPERS
    # ===================

    def document_variants(self, document: ClassifiedDocument) -> dict[str, set[str]]:
        """Normalized variants of the document's identifiers, per namespace."""
        variants = {}
        for namespace, source_types in NAMESPACE_SOURCES.items():
            raw_values = document.raw_values(*source_types, min_confidence=self.min_identifier_confidence)
            # All types of one namespace share the same normalization rules
            variants[namespace] = normalize_many(source_types[0], raw_values)
        return variants

    def thread_id_of(self, document: ClassifiedDocument) -> Optional[str]:
        if document.correspondence_thread_id:
            return document.correspondence_thread_id
        for raw_value in document.raw_values(IdentifierType.THREAD_ID):
            variants = normalize(IdentifierType.THREAD_ID, raw_value)
            if variants:
                return next(iter(variants))
        return None

    def thread_authority(self, document: ClassifiedDocument) -> Optional[ThreadLink]:
        """Earliest linked document of the document's thread, if any."""
        mates = self.index.thread_mates(self.thread_id_of(document), exclude_document_id=document.id)
        return mates[0] if mates else None

    def _match_thread(self, document: ClassifiedDocument, variants: dict[str, set[str]]):
        authority = self.thread_authority(document)
        if authority is None:
            return None, None
        thread_id = authority.thread_id
        conflict = self._conflict(document.id, variants, authority.shipment_id)
        if conflict:
            logger.info(
                "thread_match_rejected",
                document_id=document.id,
                thread_id=thread_id,
                shipment_id=authority.shipment_id,
                conflict_kind=conflict.kind
            )
            return None, None

        return authority.shipment_id, thread_id

    def _match_identifier(self, document: ClassifiedDocument, method: LinkMethod, variants: dict[str, set[str]]):
        namespace = STEP_NAMESPACE[method]
        candidates = variants.get(namespace) or set()
        if not candidates:
            return None, None

        matches = self.index.lookup(namespace, candidates)
        if len(matches) == 1:
            shipment_id = next(iter(matches))
            return shipment_id, self._matched_variant(namespace, candidates, shipment_id)

        if len(matches) > 1:
            logger.warning(
                "ambiguous_identifier_match",
                document_id=document.id,
                method=method.value,
                shipment_ids=sorted(matches)
            )
        return None, None

    def _matched_variant(self, namespace: str, candidates: set[str], shipment_id: str) -> Optional[str]:
        for variant in sorted(candidates, key=lambda v: (-len(v), v)):
            if shipment_id in self.index.lookup(namespace, [variant]):
                return variant
        return None

    def _conflict(
        self,
        document_id: str,
        variants: dict[str, set[str]],
        shipment_id: str
    ) -> Optional[IdentifierConflict]:
        identifiers = self.index.identifiers_of(shipment_id)
        if identifiers is None:
            return None

        document_bills = variants.get(MBL, set()) | variants.get(HBL, set())
        checks = (
            ("booking", variants.get(BOOKING, set()), identifiers.booking),
            ("bill", document_bills, identifiers.bill),
        )
        for kind, document_values, shipment_values in checks:
            if document_values and shipment_values and not (document_values & shipment_values):
                return IdentifierConflict(
                    document_id=document_id,
                    shipment_id=shipment_id,
                    kind=kind,
                    document_values=sorted(document_values),
                    shipment_values=sorted(shipment_values),
                )
        return None
