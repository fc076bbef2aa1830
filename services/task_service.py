"""
Follow-up task generation.

Turns shipment state, cutoffs and blockers into scored task candidates.
Candidates carry a natural dedup_key, so regenerating tasks for the same
shipment updates the existing rows instead of adding new ones.
"""

from datetime import datetime
from typing import Optional

import structlog

from config.workflow_rules import CANCELLED_STATE
from models.priority import Blocker, Insight, PriorityResult, StakeholderProfile
from models.shipment import ShipmentResponse
from models.task import TaskCandidate, TaskType
from models.workflow import WorkflowState
from services.priority_scorer import PriorityScorer
from services.shipment_store import ShipmentStore
from utils.date_utils import utc_now

logger = structlog.get_logger(__name__)


# Task type → (cutoff fields, state that completes it, title)
CUTOFF_TASKS = {
    TaskType.SUBMIT_SI: (("si_cutoff",), WorkflowState.SI_SUBMITTED.value, "Submit shipping instructions"),
    TaskType.SUBMIT_VGM: (("vgm_cutoff",), WorkflowState.VGM_SUBMITTED.value, "Submit VGM"),
    TaskType.GATE_IN_CARGO: (
        ("cargo_cutoff", "gate_cutoff"),
        WorkflowState.CONTAINER_GATED_IN.value,
        "Gate in cargo before cutoff",
    ),
}

# A shipment sitting exactly in a "received" state has not forwarded it yet
SHARE_TASKS = {
    WorkflowState.BOOKING_CONFIRMED.value: (TaskType.SHARE_BOOKING_CONFIRMATION, "Share booking confirmation with customer"),
    WorkflowState.ARRIVAL_NOTICE_RECEIVED.value: (TaskType.SHARE_ARRIVAL_NOTICE, "Share arrival notice with customer"),
    WorkflowState.DELIVERY_ORDER_RECEIVED.value: (TaskType.SHARE_DELIVERY_ORDER, "Share delivery order with customer"),
}


class TaskService:
    """
    Task candidate generation and persistence.

    build_candidates is pure; generate_for_shipment loads its inputs from
    the store and upserts the result.
    """

    def __init__(self, store: Optional[ShipmentStore] = None, scorer: Optional[PriorityScorer] = None):
        self.store = store
        self.scorer = scorer or PriorityScorer()
        self.rules = self.scorer.rules

    # ===================
    # PURE GENERATION
    # ===================

    def build_candidates(
        self,
        shipment: ShipmentResponse,
        blockers: Optional[list[Blocker]] = None,
        insights: Optional[list[Insight]] = None,
        stakeholder: Optional[StakeholderProfile] = None,
        draft_document_types: Optional[list[str]] = None,
        now: Optional[datetime] = None
    ) -> list[TaskCandidate]:
        """
        Build scored task candidates for one shipment.

        Cancelled shipments get none. Ranked by score (highest first),
        ties broken by dedup_key.
        """
        if shipment.is_cancelled or shipment.workflow_state == CANCELLED_STATE:
            return []

        now = now or utc_now()
        blockers = [b for b in (blockers or []) if not b.is_resolved]
        insights = insights or []

        def scored(task_type, reference, title, due_at=None, severity=None) -> TaskCandidate:
            result = self.scorer.score(
                shipment,
                blockers,
                insights,
                stakeholder,
                due_at=due_at,
                notification_severity=severity,
                draft_document_types=draft_document_types,
                now=now,
            )
            return self._candidate(shipment.id, task_type, reference, title, due_at, result)

        candidates = []
        current_rank = self.rules.rank(shipment.workflow_state)

        for task_type, (fields, completed_by, title) in CUTOFF_TASKS.items():
            completed_rank = self.rules.rank(completed_by)
            if current_rank is not None and completed_rank is not None and current_rank >= completed_rank:
                continue
            cutoffs = [(getattr(shipment, f), f) for f in fields if getattr(shipment, f) is not None]
            if not cutoffs:
                continue
            due_at, field = min(cutoffs)
            candidates.append(scored(task_type, field, title, due_at=due_at))

        for blocker in blockers:
            reference = blocker.id or blocker.blocker_type
            if not reference:
                continue
            title = f"Resolve blocker: {blocker.description or blocker.blocker_type or reference}"
            candidates.append(scored(TaskType.RESOLVE_BLOCKER, reference, title, severity=blocker.severity))

        share = SHARE_TASKS.get(shipment.workflow_state or "")
        if share:
            task_type, title = share
            candidates.append(scored(task_type, shipment.workflow_state, title))

        return sorted(candidates, key=lambda c: (-c.priority_score, c.dedup_key))

    # ===================
    # STORE-BACKED
    # ===================

    def score_shipment(self, shipment_id: str, now: Optional[datetime] = None) -> PriorityResult:
        """
        Score a shipment as a whole.

        Raises:
            ShipmentNotFoundError: If shipment doesn't exist
        """
        shipment, blockers, insights, stakeholder, drafts = self._load_inputs(shipment_id)
        return self.scorer.score(
            shipment,
            blockers,
            insights,
            stakeholder,
            draft_document_types=drafts,
            now=now,
        )

    def generate_for_shipment(
        self,
        shipment_id: str,
        dry_run: bool = False,
        now: Optional[datetime] = None
    ) -> list[TaskCandidate]:
        """
        Build and (unless dry_run) upsert task candidates for a shipment.

        Raises:
            ShipmentNotFoundError: If shipment doesn't exist
        """
        shipment, blockers, insights, stakeholder, drafts = self._load_inputs(shipment_id)
        candidates = self.build_candidates(shipment, blockers, insights, stakeholder, drafts, now)

        if candidates and not dry_run:
            self.store.upsert_tasks(candidates)

        logger.info(
            "followup_tasks_generated",
            shipment_id=shipment_id,
            count=len(candidates),
            dry_run=dry_run,
            top_score=candidates[0].priority_score if candidates else None
        )
        return candidates

    # ===================
    # HELPERS
    # ===================

    def _load_inputs(self, shipment_id: str):
        if self.store is None:
            raise RuntimeError("TaskService needs a store for store-backed operations")

        shipment = self.store.get_shipment(shipment_id)
        blockers = self.store.get_open_blockers(shipment_id)
        insights = self.store.get_active_insights(shipment_id)
        stakeholder = self.store.get_stakeholder(shipment.customer_id)
        drafts = [d.document_type for d in self.store.get_linked_documents(shipment_id) if d.is_draft]
        return shipment, blockers, insights, stakeholder, drafts

    def _candidate(
        self,
        shipment_id: str,
        task_type: TaskType,
        reference: str,
        title: str,
        due_at: Optional[datetime],
        result: PriorityResult
    ) -> TaskCandidate:
        return TaskCandidate(
            dedup_key=TaskCandidate.make_key(shipment_id, task_type, reference),
            shipment_id=shipment_id,
            task_type=task_type,
            reference=reference,
            title=title,
            due_at=due_at,
            priority_score=result.score,
            priority_label=result.label,
            factors={name: factor.score for name, factor in result.factors.as_dict().items()},
        )
