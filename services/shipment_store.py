"""
Persistence for shipments, documents, links and workflow state.

Every component that reads or writes the database goes through a
ShipmentStore built around an injected Supabase client. Transport
failures become StoreConnectionError (stop the batch); any other
failure becomes DatabaseError (skip the record).
"""

from typing import Any, Callable, Iterable, Iterator, Optional
import httpx
import structlog
from pydantic import ValidationError as PydanticValidationError
from supabase import Client

from config.settings import get_settings
from exceptions import (
    DatabaseError,
    DocumentNotFoundError,
    ShipmentNotFoundError,
    StoreConnectionError,
)
from models.document import ClassifiedDocument, Direction
from models.link import DocumentLink, ResolutionResult
from models.priority import Blocker, Insight, StakeholderProfile
from models.shipment import ShipmentResponse
from models.task import TaskCandidate
from services.email_authority import derive_direction
from services.shipment_index import ThreadLink
from utils.date_utils import parse_datetime, utc_now

logger = structlog.get_logger(__name__)

# Postgrest caps the length of in.(...) filters
IN_FILTER_CHUNK = 100

TRANSPORT_ERRORS = (httpx.TransportError, ConnectionError, TimeoutError)


class ShipmentStore:
    """
    Query/update interface over one Supabase client.

    Args:
        db: Supabase client (or anything with the same builder API)
        page_size: Rows per page for paginated scans
    """

    SHIPMENTS = "shipments"
    DOCUMENTS = "classified_documents"
    LINKS = "document_shipment_links"
    HISTORY = "shipment_workflow_history"
    CORRECTIONS = "link_corrections"
    BLOCKERS = "shipment_blockers"
    INSIGHTS = "shipment_insights"
    PARTIES = "parties"
    TASKS = "action_tasks"

    def __init__(self, db: Client, page_size: Optional[int] = None):
        self.db = db
        self.page_size = page_size or get_settings().batch_page_size

    # ===================
    # PLUMBING
    # ===================

    def _execute(self, operation: str, query: Any, **context):
        """Run a built query, translating failures into app errors."""
        try:
            return query.execute()
        except TRANSPORT_ERRORS as e:
            logger.error(
                "store_connection_lost",
                operation=operation,
                error=str(e),
                error_type=type(e).__name__,
                **context
            )
            raise StoreConnectionError(
                f"Store unreachable during {operation}: {e}",
                details={"operation": operation}
            ) from e
        except Exception as e:
            logger.error("store_operation_failed", operation=operation, error=str(e), **context)
            raise DatabaseError(operation, str(e), details=context) from e

    def iter_rows(
        self,
        table: str,
        columns: str = "*",
        apply_filters: Optional[Callable[[Any], Any]] = None,
        page_size: Optional[int] = None
    ) -> Iterator[dict]:
        """
        Yield every row of a table in stable id order, one page at a time.

        Args:
            table: Table name
            columns: Select clause
            apply_filters: Callable adding filters to the query builder
            page_size: Override for the store's page size
        """
        size = page_size or self.page_size
        offset = 0

        while True:
            query = self.db.table(table).select(columns)
            if apply_filters:
                query = apply_filters(query)
            query = query.order("id").range(offset, offset + size - 1)

            result = self._execute("select", query, table=table, offset=offset)
            rows = result.data or []
            yield from rows

            if len(rows) < size:
                return
            offset += size

    def _fetch_by_ids(self, table: str, ids: Iterable[str], columns: str = "*") -> list[dict]:
        unique_ids = sorted(set(ids))
        rows: list[dict] = []
        for start in range(0, len(unique_ids), IN_FILTER_CHUNK):
            chunk = unique_ids[start:start + IN_FILTER_CHUNK]
            query = self.db.table(table).select(columns).in_("id", chunk)
            rows.extend(self._execute("select", query, table=table).data or [])
        return rows

    # ===================
    # SHIPMENTS
    # ===================

    def iter_shipments(self) -> Iterator[ShipmentResponse]:
        for row in self.iter_rows(self.SHIPMENTS):
            shipment = self._row_to_shipment(row)
            if shipment:
                yield shipment

    def get_shipment(self, shipment_id: str) -> ShipmentResponse:
        """
        Raises:
            ShipmentNotFoundError: If shipment doesn't exist
        """
        query = self.db.table(self.SHIPMENTS).select("*").eq("id", shipment_id).limit(1)
        result = self._execute("select", query, shipment_id=shipment_id)

        shipment = self._row_to_shipment(result.data[0]) if result.data else None
        if shipment is None:
            raise ShipmentNotFoundError(shipment_id)
        return shipment

    def apply_workflow_state(
        self,
        shipment_id: str,
        state: str,
        phase: Optional[str],
        rank: int,
        unconditional: bool = False
    ) -> bool:
        """
        Write a new workflow state if the persisted rank is still lower.

        The rank guard is evaluated by the database, so of two racing
        writers at most the higher one lands. unconditional skips the
        guard (cancellation, forced manual corrections).

        Returns:
            True if a row was updated
        """
        query = (
            self.db.table(self.SHIPMENTS)
            .update({
                "workflow_state": state,
                "workflow_phase": phase,
                "workflow_state_rank": rank,
                "workflow_state_updated_at": utc_now().isoformat(),
                "updated_at": utc_now().isoformat(),
            })
            .eq("id", shipment_id)
        )
        if not unconditional:
            query = query.or_(f"workflow_state_rank.is.null,workflow_state_rank.lt.{rank}")

        result = self._execute("update", query, shipment_id=shipment_id, state=state)
        return bool(result.data)

    # ===================
    # DOCUMENTS
    # ===================

    def get_document(self, document_id: str) -> ClassifiedDocument:
        """
        Raises:
            DocumentNotFoundError: If document doesn't exist or can't be read
        """
        query = self.db.table(self.DOCUMENTS).select("*").eq("id", document_id).limit(1)
        result = self._execute("select", query, document_id=document_id)

        document = self._row_to_document(result.data[0]) if result.data else None
        if document is None:
            raise DocumentNotFoundError(document_id)
        return document

    def iter_documents(self) -> Iterator[ClassifiedDocument]:
        for row in self.iter_rows(self.DOCUMENTS):
            document = self._row_to_document(row)
            if document:
                yield document

    def iter_unlinked_documents(self) -> Iterator[ClassifiedDocument]:
        """Documents without an active link, in arrival order."""
        linked = {link.document_id for link in self.iter_links(active_only=True)}
        unlinked = [d for d in self.iter_documents() if d.id not in linked]
        yield from sorted(unlinked, key=ClassifiedDocument.arrival_key)

    def get_documents(self, document_ids: Iterable[str]) -> list[ClassifiedDocument]:
        documents = []
        for row in self._fetch_by_ids(self.DOCUMENTS, document_ids):
            document = self._row_to_document(row)
            if document:
                documents.append(document)
        return sorted(documents, key=lambda d: d.id)

    def get_linked_documents(self, shipment_id: str) -> list[ClassifiedDocument]:
        """All documents actively linked to a shipment."""
        query = (
            self.db.table(self.LINKS)
            .select("document_id")
            .eq("shipment_id", shipment_id)
            .eq("is_active", True)
        )
        result = self._execute("select", query, shipment_id=shipment_id)
        return self.get_documents(row["document_id"] for row in result.data or [])

    # ===================
    # LINKS
    # ===================

    def iter_links(self, active_only: bool = True, method: Optional[str] = None) -> Iterator[DocumentLink]:
        def filters(query):
            if active_only:
                query = query.eq("is_active", True)
            if method:
                query = query.eq("method", method)
            return query

        for row in self.iter_rows(self.LINKS, apply_filters=filters):
            try:
                yield DocumentLink.model_validate(row)
            except PydanticValidationError as e:
                logger.warning("link_row_invalid", link_id=row.get("id"), error=str(e))

    def iter_thread_links(self) -> Iterator[ThreadLink]:
        """Active links of documents that belong to a mail thread."""
        links = {link.document_id: link for link in self.iter_links(active_only=True) if link.shipment_id}
        rows = self._fetch_by_ids(
            self.DOCUMENTS,
            links.keys(),
            columns="id,correspondence_thread_id,received_at"
        )
        for row in sorted(rows, key=lambda r: r["id"]):
            thread_id = (row.get("correspondence_thread_id") or "").strip()
            if not thread_id:
                continue
            yield ThreadLink(
                document_id=row["id"],
                thread_id=thread_id,
                shipment_id=links[row["id"]].shipment_id,
                received_at=parse_datetime(row.get("received_at")),
            )

    def get_link(self, document_id: str) -> Optional[DocumentLink]:
        query = self.db.table(self.LINKS).select("*").eq("document_id", document_id).limit(1)
        result = self._execute("select", query, document_id=document_id)
        if not result.data:
            return None
        return DocumentLink.model_validate(result.data[0])

    def upsert_link(self, resolution: ResolutionResult) -> DocumentLink:
        """
        Create or replace the link of a document.

        Keyed on document_id, so repeating the call is a no-op and a
        document never has two links. repair_attempts is not part of the
        payload and survives re-linking.
        """
        payload = {
            "document_id": resolution.document_id,
            "shipment_id": resolution.shipment_id,
            "method": resolution.method.value,
            "confidence_score": resolution.confidence_score,
            "is_active": True,
            "linked_at": utc_now().isoformat(),
            "revoked_at": None,
            "revoked_reason": None,
        }
        query = self.db.table(self.LINKS).upsert(payload, on_conflict="document_id")
        result = self._execute("upsert", query, document_id=resolution.document_id)

        row = result.data[0] if result.data else payload
        return DocumentLink.model_validate(row)

    def revoke_link(self, document_id: str, reason: str, repair_attempts: int) -> None:
        query = (
            self.db.table(self.LINKS)
            .update({
                "shipment_id": None,
                "is_active": False,
                "revoked_at": utc_now().isoformat(),
                "revoked_reason": reason,
                "repair_attempts": repair_attempts,
            })
            .eq("document_id", document_id)
        )
        self._execute("update", query, document_id=document_id)

    def record_correction(self, correction: dict) -> None:
        query = self.db.table(self.CORRECTIONS).insert(correction)
        self._execute("insert", query, document_id=correction.get("document_id"))

    # ===================
    # WORKFLOW HISTORY
    # ===================

    def insert_workflow_history(self, entry: dict) -> None:
        query = self.db.table(self.HISTORY).insert(entry)
        self._execute("insert", query, shipment_id=entry.get("shipment_id"))

    def get_workflow_history(self, shipment_id: str, limit: int = 20) -> list[dict]:
        query = (
            self.db.table(self.HISTORY)
            .select("*")
            .eq("shipment_id", shipment_id)
            .order("changed_at", desc=True)
            .limit(limit)
        )
        return self._execute("select", query, shipment_id=shipment_id).data or []

    # ===================
    # PRIORITY INPUTS
    # ===================

    def get_open_blockers(self, shipment_id: str) -> list[Blocker]:
        query = (
            self.db.table(self.BLOCKERS)
            .select("*")
            .eq("shipment_id", shipment_id)
            .eq("is_resolved", False)
        )
        rows = self._execute("select", query, shipment_id=shipment_id).data or []
        return [b for b in (self._validate_row(Blocker, row) for row in rows) if b]

    def get_active_insights(self, shipment_id: str) -> list[Insight]:
        query = (
            self.db.table(self.INSIGHTS)
            .select("*")
            .eq("shipment_id", shipment_id)
            .eq("is_active", True)
        )
        rows = self._execute("select", query, shipment_id=shipment_id).data or []
        return [i for i in (self._validate_row(Insight, row) for row in rows) if i]

    def get_stakeholder(self, party_id: Optional[str]) -> Optional[StakeholderProfile]:
        if not party_id:
            return None
        query = self.db.table(self.PARTIES).select("*").eq("id", party_id).limit(1)
        rows = self._execute("select", query, party_id=party_id).data or []
        return self._validate_row(StakeholderProfile, rows[0]) if rows else None

    # ===================
    # TASKS
    # ===================

    def upsert_tasks(self, candidates: list[TaskCandidate]) -> int:
        """Persist task candidates keyed on dedup_key. Returns rows written."""
        if not candidates:
            return 0

        payload = [
            {
                "dedup_key": c.dedup_key,
                "shipment_id": c.shipment_id,
                "task_type": c.task_type.value,
                "reference": c.reference,
                "title": c.title,
                "due_date": c.due_at.isoformat() if c.due_at else None,
                "priority": c.priority_label.value,
                "priority_score": c.priority_score,
                "priority_factors": c.factors,
                "updated_at": utc_now().isoformat(),
            }
            for c in candidates
        ]
        query = self.db.table(self.TASKS).upsert(payload, on_conflict="dedup_key")
        result = self._execute("upsert", query, count=len(payload))
        return len(result.data or payload)

    # ===================
    # ROW MAPPING
    # ===================

    def _validate_row(self, model, row: dict):
        try:
            return model.model_validate(row)
        except PydanticValidationError as e:
            logger.warning("row_invalid", model=model.__name__, row_id=row.get("id"), error=str(e))
            return None

    def _row_to_shipment(self, row: dict) -> Optional[ShipmentResponse]:
        """Convert database row to ShipmentResponse (None if unreadable)."""
        return self._validate_row(ShipmentResponse, row)

    def _row_to_document(self, row: dict) -> Optional[ClassifiedDocument]:
        """
        Convert database row to ClassifiedDocument.

        Rows without a usable direction get one derived from the sender.
        """
        data = dict(row)
        if data.get("direction") not in {d.value for d in Direction}:
            data["direction"] = derive_direction(data.get("sender_email")).value
        return self._validate_row(ClassifiedDocument, data)
