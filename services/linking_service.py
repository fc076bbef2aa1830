"""
Document linking and conflict repair.

Resolves documents to shipments, persists the links, and re-checks
thread-based links against later evidence. A thread link whose document
disagrees with the shipment is revoked and the document is re-resolved
from the booking number step onward.
"""

from typing import Iterable, Optional

import structlog

from config.settings import get_settings
from exceptions import DatabaseError
from models.document import ClassifiedDocument
from models.link import (
    DocumentLink,
    IdentifierConflict,
    LinkMethod,
    RepairOutcome,
    ResolutionResult,
)
from services.shipment_index import ShipmentIndex
from services.shipment_resolver import ShipmentResolver
from services.shipment_store import ShipmentStore
from utils.date_utils import utc_now

logger = structlog.get_logger(__name__)


class LinkingService:
    """
    Persists resolver output and repairs bad thread links.

    Args:
        store: Persistence
        index: Snapshot for this run, kept current as links are made
        resolver: Resolver over the same index (built if omitted)
        max_repair_attempts: Revocations allowed per document before it
            is left unlinked
        dry_run: Resolve and update the in-memory index, never write
    """

    def __init__(
        self,
        store: ShipmentStore,
        index: ShipmentIndex,
        resolver: Optional[ShipmentResolver] = None,
        max_repair_attempts: Optional[int] = None,
        dry_run: bool = False
    ):
        self.store = store
        self.index = index
        self.resolver = resolver or ShipmentResolver(index)
        self.max_repair_attempts = max_repair_attempts or get_settings().max_repair_attempts
        self.dry_run = dry_run
        self.affected_shipments: set[str] = set()

    # ===================
    # LINKING
    # ===================

    def link_document(
        self,
        document: ClassifiedDocument,
        previous_link: Optional[DocumentLink] = None
    ) -> Optional[ResolutionResult]:
        """
        Resolve and persist the link of one document.

        A document whose earlier link was revoked skips the thread step;
        once it has used up its repair attempts it is not resolved again.

        Returns:
            ResolutionResult, or None when the document stays unlinked
        """
        start_at = LinkMethod.THREAD
        if previous_link is not None and not previous_link.is_active and previous_link.repair_attempts:
            if self._exhausted(previous_link.repair_attempts):
                logger.debug(
                    "repair_attempts_exhausted",
                    document_id=document.id,
                    attempts=previous_link.repair_attempts
                )
                return None
            start_at = LinkMethod.BOOKING_NUMBER

        result = self.resolver.resolve(document, start_at=start_at)
        if result is None:
            return None

        self._persist(document, result)
        logger.info(
            "shipment_linked",
            document_id=document.id,
            shipment_id=result.shipment_id,
            method=result.method.value,
            confidence=result.confidence_score,
            dry_run=self.dry_run
        )
        return result

    def _exhausted(self, repair_attempts: int) -> bool:
        return repair_attempts >= self.max_repair_attempts

    def _persist(self, document: ClassifiedDocument, result: ResolutionResult) -> None:
        if not self.dry_run:
            self.store.upsert_link(result)
        self.index.add_link(
            document.id,
            self.resolver.thread_id_of(document),
            result.shipment_id,
            document.received_at
        )
        self.affected_shipments.add(result.shipment_id)

    # ===================
    # CONFLICT REPAIR
    # ===================

    def reconcile_thread_links(self, links: Optional[Iterable[DocumentLink]] = None) -> list[RepairOutcome]:
        """
        Re-check every active thread link against the current index.

        Args:
            links: Links to check (defaults to all active thread links)

        Returns:
            One RepairOutcome per revoked link
        """
        if links is None:
            links = self.store.iter_links(active_only=True, method=LinkMethod.THREAD.value)
        links = [link for link in links if link.shipment_id and link.method == LinkMethod.THREAD]
        if not links:
            return []

        documents = {d.id: d for d in self.store.get_documents(link.document_id for link in links)}
        outcomes = []

        for link in links:
            document = documents.get(link.document_id)
            if document is None:
                continue

            conflict = self.resolver.find_conflict(document, link.shipment_id)
            if conflict is None:
                continue

            try:
                outcomes.append(self.repair(document, link, conflict))
            except DatabaseError as e:
                logger.error("link_repair_failed", document_id=document.id, error=e.message)

        logger.info(
            "thread_links_reconciled",
            checked=len(links),
            repaired=len(outcomes),
            relinked=sum(1 for o in outcomes if o.new_shipment_id),
            dry_run=self.dry_run
        )
        return outcomes

    def repair(
        self,
        document: ClassifiedDocument,
        link: DocumentLink,
        conflict: IdentifierConflict
    ) -> RepairOutcome:
        """
        Revoke a conflicting thread link and re-resolve the document.

        Re-resolution starts at the booking step, so a repaired document
        does not come back here through its thread and attempts normally
        stop at 1. Once a revocation brings the count to
        max_repair_attempts the document is left unlinked.
        """
        attempts = link.repair_attempts + 1
        reason = f"{conflict.kind}_conflict"

        self.index.remove_link(document.id)
        self.affected_shipments.add(link.shipment_id)

        if not self.dry_run:
            self.store.revoke_link(document.id, reason, attempts)
            self.store.record_correction({
                "document_id": document.id,
                "previous_shipment_id": link.shipment_id,
                "previous_method": link.method.value if link.method else None,
                "reason": reason,
                "conflict": conflict.model_dump(),
                "attempt": attempts,
                "corrected_at": utc_now().isoformat(),
            })

        logger.warning(
            "thread_link_revoked",
            document_id=document.id,
            shipment_id=link.shipment_id,
            conflict_kind=conflict.kind,
            attempt=attempts,
            dry_run=self.dry_run
        )

        outcome = RepairOutcome(
            document_id=document.id,
            previous_shipment_id=link.shipment_id,
            attempts=attempts,
            conflict=conflict,
        )

        if self._exhausted(attempts):
            logger.warning(
                "repair_attempts_exhausted",
                document_id=document.id,
                attempts=attempts,
                max_attempts=self.max_repair_attempts
            )
            outcome.exhausted = True
            return outcome

        result = self.resolver.resolve(document, start_at=LinkMethod.BOOKING_NUMBER)
        if result is None:
            return outcome

        self._persist(document, result)
        outcome.new_shipment_id = result.shipment_id
        outcome.new_method = result.method

        logger.info(
            "document_relinked",
            document_id=document.id,
            from_shipment_id=link.shipment_id,
            to_shipment_id=result.shipment_id,
            method=result.method.value
        )
        return outcome
