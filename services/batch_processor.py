"""
Batch linking and workflow recomputation.

One run:
    1. build a fresh ShipmentIndex snapshot
    2. link every unlinked document in arrival order (sequential, so
       thread links made early in the run are visible to later replies)
    3. reconcile thread links and repair conflicts
    4. recompute workflow state for every touched shipment, one shipment
       per worker so each shipment has a single writer
    5. optionally regenerate follow-up tasks

Per-record failures are logged and counted. StoreConnectionError stops
the run. Re-running from the start is always safe.
"""

from concurrent.futures import ThreadPoolExecutor, as_completed
from collections import Counter
from datetime import datetime
from typing import Iterable, Optional

import structlog
from pydantic import Field

from config.settings import Settings, get_settings
from config.workflow_rules import WorkflowRuleTable
from exceptions import AppError, StoreConnectionError
from models.base import BaseSchema
from models.workflow import TransitionResult
from services.linking_service import LinkingService
from services.shipment_index import ShipmentIndex
from services.shipment_store import ShipmentStore
from services.task_service import TaskService
from services.workflow_state_machine import WorkflowStateService
from utils.date_utils import utc_now

logger = structlog.get_logger(__name__)


class BatchSummary(BaseSchema):
    """Counters for one batch run."""

    dry_run: bool = False
    started_at: datetime = Field(default_factory=utc_now)
    finished_at: Optional[datetime] = None

    documents_scanned: int = 0
    documents_linked: int = 0
    documents_unlinked: int = 0
    link_failures: int = 0
    links_by_method: dict[str, int] = Field(default_factory=dict)

    links_repaired: int = 0
    links_relinked: int = 0
    repairs_exhausted: int = 0

    shipments_recomputed: int = 0
    states_advanced: int = 0
    lost_races: int = 0
    unhandled_type_count: int = 0
    state_failures: int = 0

    tasks_generated: int = 0
    task_failures: int = 0


class BatchProcessor:
    """
    Runs linking, repair and recomputation over the whole store.

    Args:
        store: Persistence
        settings: Settings (defaults to env)
        rule_table: Workflow rules (defaults to the cached table)
    """

    def __init__(
        self,
        store: ShipmentStore,
        settings: Optional[Settings] = None,
        rule_table: Optional[WorkflowRuleTable] = None
    ):
        self.store = store
        self.settings = settings or get_settings()
        self.workflow = WorkflowStateService(store, rule_table)
        self.tasks = TaskService(store)

    def build_index(self) -> ShipmentIndex:
        return ShipmentIndex.build(self.store.iter_shipments(), self.store.iter_thread_links())

    def run(
        self,
        execute: bool = True,
        link: bool = True,
        reconcile: bool = True,
        recompute: bool = True,
        generate_tasks: bool = False
    ) -> BatchSummary:
        """
        Run a full batch.

        Args:
            execute: Write results (False = dry run)
            link: Link unlinked documents
            reconcile: Re-check thread links and repair conflicts
            recompute: Recompute state of touched shipments
            generate_tasks: Regenerate follow-up tasks of touched shipments

        Raises:
            StoreConnectionError: Store unreachable; the run stops
        """
        summary = BatchSummary(dry_run=not execute)
        logger.info("batch_started", dry_run=summary.dry_run)

        index = self.build_index()
        linking = LinkingService(
            self.store,
            index,
            max_repair_attempts=self.settings.max_repair_attempts,
            dry_run=summary.dry_run
        )

        if link:
            self._link_documents(linking, summary)

        if reconcile:
            outcomes = linking.reconcile_thread_links()
            summary.links_repaired = len(outcomes)
            summary.links_relinked = sum(1 for o in outcomes if o.new_shipment_id)
            summary.repairs_exhausted = sum(1 for o in outcomes if o.exhausted)

        affected = sorted(linking.affected_shipments)

        if recompute:
            results = self.recompute_states(affected, dry_run=summary.dry_run)
            self._summarize_transitions(results, summary, attempted=len(affected))

        if generate_tasks:
            self._generate_tasks(affected, summary)

        summary.finished_at = utc_now()
        logger.info("batch_finished", **summary.model_dump(exclude={"started_at", "finished_at"}))
        return summary

    # ===================
    # STEPS
    # ===================

    def _link_documents(self, linking: LinkingService, summary: BatchSummary) -> None:
        revoked = {
            link.document_id: link
            for link in self.store.iter_links(active_only=False)
            if not link.is_active
        }
        methods: Counter = Counter()

        for document in self.store.iter_unlinked_documents():
            summary.documents_scanned += 1
            try:
                result = linking.link_document(document, revoked.get(document.id))
            except StoreConnectionError:
                raise
            except AppError as e:
                summary.link_failures += 1
                logger.error("document_link_failed", document_id=document.id, error=e.message)
                continue

            if result is None:
                summary.documents_unlinked += 1
            else:
                summary.documents_linked += 1
                methods[result.method.value] += 1

            if summary.documents_scanned % self.settings.batch_page_size == 0:
                logger.info(
                    "linking_progress",
                    scanned=summary.documents_scanned,
                    linked=summary.documents_linked
                )

        summary.links_by_method = dict(methods)

    def recompute_states(self, shipment_ids: Iterable[str], dry_run: bool = False) -> list[TransitionResult]:
        """
        Recompute workflow state for many shipments in parallel.

        Each shipment is one work item, so no two workers ever write the
        same shipment. Failed shipments are logged and left out of the
        result.

        Raises:
            StoreConnectionError: Store unreachable
        """
        shipment_ids = sorted(set(shipment_ids))
        if not shipment_ids:
            return []

        results = []
        workers = min(self.settings.batch_max_workers, len(shipment_ids))

        with ThreadPoolExecutor(max_workers=workers) as executor:
            future_to_shipment = {
                executor.submit(self.workflow.recompute, shipment_id, dry_run): shipment_id
                for shipment_id in shipment_ids
            }

            for future in as_completed(future_to_shipment):
                shipment_id = future_to_shipment[future]
                try:
                    results.append(future.result())
                except StoreConnectionError:
                    for pending in future_to_shipment:
                        pending.cancel()
                    raise
                except AppError as e:
                    logger.error("workflow_recompute_failed", shipment_id=shipment_id, error=e.message)

        return sorted(results, key=lambda r: r.shipment_id)

    def recompute_all(self, dry_run: bool = False) -> BatchSummary:
        """Recompute state for every shipment (no linking)."""
        summary = BatchSummary(dry_run=dry_run)
        shipment_ids = [s.id for s in self.store.iter_shipments()]
        results = self.recompute_states(shipment_ids, dry_run=dry_run)
        self._summarize_transitions(results, summary, attempted=len(shipment_ids))
        summary.finished_at = utc_now()
        return summary

    def generate_tasks_for_all(self, dry_run: bool = False) -> BatchSummary:
        summary = BatchSummary(dry_run=dry_run)
        self._generate_tasks([s.id for s in self.store.iter_shipments()], summary)
        summary.finished_at = utc_now()
        return summary

    def _generate_tasks(self, shipment_ids: Iterable[str], summary: BatchSummary) -> None:
        for shipment_id in shipment_ids:
            try:
                candidates = self.tasks.generate_for_shipment(shipment_id, dry_run=summary.dry_run)
            except StoreConnectionError:
                raise
            except AppError as e:
                summary.task_failures += 1
                logger.error("task_generation_failed", shipment_id=shipment_id, error=e.message)
                continue
            summary.tasks_generated += len(candidates)

    def _summarize_transitions(
        self,
        results: list[TransitionResult],
        summary: BatchSummary,
        attempted: Optional[int] = None
    ) -> None:
        summary.shipments_recomputed = len(results)
        summary.state_failures = (attempted - len(results)) if attempted is not None else 0
        summary.states_advanced = sum(
            1 for r in results
            if r.applied or (summary.dry_run and r.new_state != r.previous_state)
        )
        summary.lost_races = sum(1 for r in results if r.lost_race)
        summary.unhandled_type_count = sum(r.unhandled_count for r in results)
