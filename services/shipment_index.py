"""
In-memory shipment lookup for one batch run.

Built from a read-only snapshot of shipments and active links at the
start of a run and discarded at the end. Links created during the run
are added with add_link so later documents of the same thread see them.
"""

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Optional

import structlog

from models.shipment import ShipmentResponse
from services.identifier_normalizer import (
    bill_variants,
    booking_variants,
    container_variants,
)

logger = structlog.get_logger(__name__)

BOOKING = "booking"
MBL = "mbl"
HBL = "hbl"
CONTAINER = "container"
NAMESPACES = (BOOKING, MBL, HBL, CONTAINER)

# Sorts undated links after dated ones
_UNDATED = datetime.max.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class ThreadLink:
    document_id: str
    thread_id: str
    shipment_id: str
    received_at: Optional[datetime] = None

    def sort_key(self) -> tuple:
        return (self.received_at or _UNDATED, self.document_id)


@dataclass(frozen=True)
class ShipmentIdentifiers:
    """Normalized identifiers of one shipment, grouped for conflict checks."""
    booking: frozenset
    bill: frozenset
    container: frozenset


class ShipmentIndex:
    """
    Variant → shipment lookup plus thread → linked documents lookup.

    Not thread-safe. Only the sequential linking pass mutates it.
    """

    def __init__(self):
        self._variants: dict[str, dict[str, set[str]]] = {ns: defaultdict(set) for ns in NAMESPACES}
        self._identifiers: dict[str, ShipmentIdentifiers] = {}
        self._threads: dict[str, dict[str, ThreadLink]] = defaultdict(dict)
        self._thread_of_document: dict[str, str] = {}

    @classmethod
    def build(
        cls,
        shipments: Iterable[ShipmentResponse],
        thread_links: Iterable[ThreadLink] = ()
    ) -> "ShipmentIndex":
        """Index a snapshot of shipments and thread-linked documents."""
        index = cls()
        for shipment in shipments:
            index.add_shipment(shipment)
        for link in thread_links:
            index.add_link(link.document_id, link.thread_id, link.shipment_id, link.received_at)

        logger.info(
            "shipment_index_built",
            shipments=len(index._identifiers),
            threads=len(index._threads),
            variants={ns: len(index._variants[ns]) for ns in NAMESPACES}
        )
        return index

    # ===================
    # SHIPMENTS
    # ===================

    def add_shipment(self, shipment: ShipmentResponse) -> None:
        booking = booking_variants(shipment.booking_number) if shipment.booking_number else set()

        mbl: set[str] = set()
        for value in (shipment.master_bill_number, shipment.bill_of_lading_number):
            if value:
                mbl |= bill_variants(value)

        hbl = bill_variants(shipment.house_bill_number) if shipment.house_bill_number else set()

        containers: set[str] = set()
        for value in shipment.container_numbers:
            containers |= container_variants(value)

        for namespace, variants in ((BOOKING, booking), (MBL, mbl), (HBL, hbl), (CONTAINER, containers)):
            for variant in variants:
                self._variants[namespace][variant].add(shipment.id)

        self._identifiers[shipment.id] = ShipmentIdentifiers(
            booking=frozenset(booking),
            bill=frozenset(mbl | hbl),
            container=frozenset(containers),
        )

    def lookup(self, namespace: str, variants: Iterable[str]) -> set[str]:
        """Shipment ids owning any of the variants in the namespace."""
        table = self._variants.get(namespace)
        if table is None:
            raise KeyError(f"Unknown index namespace: {namespace}")

        found: set[str] = set()
        for variant in variants:
            found |= table.get(variant, set())
        return found

    def identifiers_of(self, shipment_id: str) -> Optional[ShipmentIdentifiers]:
        return self._identifiers.get(shipment_id)

    def has_shipment(self, shipment_id: str) -> bool:
        return shipment_id in self._identifiers

    # ===================
    # THREADS
    # ===================

    def add_link(
        self,
        document_id: str,
        thread_id: Optional[str],
        shipment_id: str,
        received_at: Optional[datetime] = None
    ) -> None:
        """Record that a document of a thread is linked to a shipment."""
        if not thread_id:
            return
        self.remove_link(document_id)
        self._threads[thread_id][document_id] = ThreadLink(
            document_id=document_id,
            thread_id=thread_id,
            shipment_id=shipment_id,
            received_at=received_at,
        )
        self._thread_of_document[document_id] = thread_id

    def remove_link(self, document_id: str) -> None:
        thread_id = self._thread_of_document.pop(document_id, None)
        if thread_id is not None:
            self._threads[thread_id].pop(document_id, None)

    def thread_mates(self, thread_id: Optional[str], exclude_document_id: Optional[str] = None) -> list[ThreadLink]:
        """Linked documents of a thread, earliest received first."""
        if not thread_id or thread_id not in self._threads:
            return []
        mates = [
            link for doc_id, link in self._threads[thread_id].items()
            if doc_id != exclude_document_id
        ]
        return sorted(mates, key=ThreadLink.sort_key)

    @property
    def shipment_count(self) -> int:
        return len(self._identifiers)
