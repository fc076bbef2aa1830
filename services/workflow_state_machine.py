"""
Workflow state machine.

A shipment's state is the highest-ranked state any of its linked
documents maps to. Persisted state only moves forward; cancellation is
the one transition allowed from any rank. The machine itself is pure;
WorkflowStateService reads and writes through a ShipmentStore.
"""

from typing import Iterable, Optional

import structlog

from config.workflow_rules import CANCELLED_STATE, WorkflowRuleTable, get_rule_table
from exceptions import InvalidStatusTransitionError, UnknownWorkflowStateError
from models.document import ClassifiedDocument
from models.workflow import (
    ShipmentWorkflowStatus,
    StateComputation,
    TransitionResult,
)
from services.shipment_store import ShipmentStore
from utils.date_utils import utc_now

logger = structlog.get_logger(__name__)


class WorkflowStateMachine:
    """Computes the target state of a shipment from its linked documents."""

    def __init__(self, rule_table: Optional[WorkflowRuleTable] = None):
        self.rules = rule_table or get_rule_table()

    def compute_state(
        self,
        shipment_id: str,
        linked_documents: Iterable[ClassifiedDocument],
        current_state: Optional[str] = None
    ) -> StateComputation:
        """
        Evaluate every linked document against the rule table.

        Documents are considered in arrival order so that, between two
        documents mapping to the same state, the earlier one is reported
        as the trigger. Arrival order never affects which state wins.

        Args:
            shipment_id: Shipment being evaluated
            linked_documents: All documents currently linked to it
            current_state: Persisted state (None if never set)

        Returns:
            StateComputation with should_apply set when the candidate
            outranks the current state or is a cancellation
        """
        documents = sorted(linked_documents, key=ClassifiedDocument.arrival_key)
        current_rank = self.rules.rank(current_state)

        computation = StateComputation(
            shipment_id=shipment_id,
            current_state=current_state,
            current_rank=current_rank,
            documents_evaluated=len(documents),
        )

        if not documents:
            computation.reason = "no_documents"
            return computation

        unhandled: set[str] = set()
        for document in documents:
            target = self.rules.state_for(document.document_type, document.direction)
            if target is None:
                computation.ignored_document_ids.append(document.id)
                if not self.rules.handles(document.document_type):
                    unhandled.add(document.document_type or "<empty>")
                continue

            rank = self.rules.rank(target)
            if computation.candidate_rank is None or rank > computation.candidate_rank:
                computation.candidate_state = target
                computation.candidate_rank = rank
                computation.triggering_document_id = document.id

        computation.unhandled_document_types = sorted(unhandled)

        if computation.candidate_state is None:
            computation.reason = "no_applicable_rules"
            return computation

        computation.candidate_phase = self.rules.phase(computation.candidate_state)

        if current_state == CANCELLED_STATE:
            computation.reason = "already_cancelled"
        elif computation.candidate_state == CANCELLED_STATE:
            computation.should_apply = True
            computation.reason = "cancelled"
        elif current_state and not self.rules.is_known(current_state):
            computation.reason = "unknown_current_state"
        elif current_rank is None:
            computation.should_apply = True
            computation.reason = "initial_state"
        elif computation.candidate_rank > current_rank:
            computation.should_apply = True
            computation.reason = "advanced"
        else:
            computation.reason = "not_forward"

        return computation


class WorkflowStateService:
    """
    Applies state computations to persisted shipments.

    Safe to call repeatedly: a shipment already at or above the computed
    rank is left untouched.
    """

    def __init__(self, store: ShipmentStore, rule_table: Optional[WorkflowRuleTable] = None):
        self.store = store
        self.machine = WorkflowStateMachine(rule_table)
        self.rules = self.machine.rules

    # ===================
    # READ OPERATIONS
    # ===================

    def get_status(self, shipment_id: str, history_limit: int = 20) -> ShipmentWorkflowStatus:
        """
        Raises:
            ShipmentNotFoundError: If shipment doesn't exist
        """
        shipment = self.store.get_shipment(shipment_id)
        documents = self.store.get_linked_documents(shipment_id)

        return ShipmentWorkflowStatus(
            shipment_id=shipment.id,
            workflow_state=shipment.workflow_state,
            workflow_phase=shipment.workflow_phase or self.rules.phase(shipment.workflow_state),
            workflow_state_rank=self.rules.rank(shipment.workflow_state),
            workflow_state_updated_at=shipment.workflow_state_updated_at,
            rules_version=self.rules.version,
            linked_documents=len(documents),
            history=self.store.get_workflow_history(shipment_id, limit=history_limit),
        )

    # ===================
    # RECOMPUTE
    # ===================

    def recompute(self, shipment_id: str, dry_run: bool = False) -> TransitionResult:
        """
        Recompute and, if it moves forward, persist a shipment's state.

        Args:
            shipment_id: Shipment UUID
            dry_run: Compute only, never write

        Raises:
            ShipmentNotFoundError: If shipment doesn't exist
        """
        shipment = self.store.get_shipment(shipment_id)
        documents = self.store.get_linked_documents(shipment_id)
        computation = self.machine.compute_state(shipment.id, documents, shipment.workflow_state)

        for document_type in computation.unhandled_document_types:
            logger.warning(
                "unhandled_document_type",
                shipment_id=shipment_id,
                document_type=document_type,
                rules_version=self.rules.version
            )
        if computation.reason == "unknown_current_state":
            logger.warning(
                "unknown_current_state",
                shipment_id=shipment_id,
                workflow_state=shipment.workflow_state
            )

        result = TransitionResult(
            shipment_id=shipment_id,
            previous_state=shipment.workflow_state,
            new_state=shipment.workflow_state,
            new_phase=shipment.workflow_phase,
            reason=computation.reason,
            unhandled_count=len(computation.unhandled_document_types),
        )

        if not computation.should_apply:
            return result

        result.new_state = computation.candidate_state
        result.new_phase = computation.candidate_phase

        if dry_run:
            result.reason = f"dry_run:{computation.reason}"
            return result

        applied = self.store.apply_workflow_state(
            shipment_id,
            computation.candidate_state,
            computation.candidate_phase,
            computation.candidate_rank,
            unconditional=computation.candidate_state == CANCELLED_STATE
        )

        if not applied:
            # Another writer already moved the shipment at least this far
            logger.info(
                "workflow_update_lost_race",
                shipment_id=shipment_id,
                candidate_state=computation.candidate_state
            )
            result.new_state = shipment.workflow_state
            result.new_phase = shipment.workflow_phase
            result.lost_race = True
            return result

        self._record_history(
            shipment_id,
            from_state=shipment.workflow_state,
            to_state=computation.candidate_state,
            source="document",
            triggering_document_id=computation.triggering_document_id,
            reason=computation.reason,
        )

        logger.info(
            "workflow_state_advanced",
            shipment_id=shipment_id,
            from_state=shipment.workflow_state,
            to_state=computation.candidate_state,
            phase=computation.candidate_phase,
            document_id=computation.triggering_document_id
        )

        result.applied = True
        return result

    # ===================
    # MANUAL CORRECTION
    # ===================

    def correct_state(
        self,
        shipment_id: str,
        state: str,
        reason: str,
        force: bool = False,
        corrected_by: Optional[str] = None
    ) -> TransitionResult:
        """
        Set a shipment's state by hand.

        Moving forward (or to cancelled) is always allowed. Moving
        backward, or out of cancelled, requires force.

        Raises:
            UnknownWorkflowStateError: If state isn't in the rule table
            InvalidStatusTransitionError: Backward move without force
            ShipmentNotFoundError: If shipment doesn't exist
        """
        if not self.rules.is_known(state):
            raise UnknownWorkflowStateError(state, valid=self.rules.states())

        shipment = self.store.get_shipment(shipment_id)
        current = shipment.workflow_state
        current_rank = self.rules.rank(current)
        new_rank = self.rules.rank(state)

        backward = (
            current_rank is not None
            and state != CANCELLED_STATE
            and new_rank < current_rank
        )
        if backward and not force:
            raise InvalidStatusTransitionError(current, state, terminal_status=CANCELLED_STATE)

        result = TransitionResult(
            shipment_id=shipment_id,
            previous_state=current,
            new_state=current,
            new_phase=shipment.workflow_phase,
        )

        if state == current:
            result.reason = "unchanged"
            return result

        phase = self.rules.phase(state)
        self.store.apply_workflow_state(shipment_id, state, phase, new_rank, unconditional=True)
        self._record_history(
            shipment_id,
            from_state=current,
            to_state=state,
            source="manual",
            reason=reason,
            corrected_by=corrected_by,
        )

        logger.warning(
            "workflow_state_corrected",
            shipment_id=shipment_id,
            from_state=current,
            to_state=state,
            forced=backward,
            corrected_by=corrected_by
        )

        result.new_state = state
        result.new_phase = phase
        result.applied = True
        result.reason = "forced_correction" if backward else "manual_correction"
        return result

    # ===================
    # HELPERS
    # ===================

    def _record_history(
        self,
        shipment_id: str,
        from_state: Optional[str],
        to_state: str,
        source: str,
        reason: str,
        triggering_document_id: Optional[str] = None,
        corrected_by: Optional[str] = None
    ) -> None:
        self.store.insert_workflow_history({
            "shipment_id": shipment_id,
            "from_state": from_state,
            "to_state": to_state,
            "to_phase": self.rules.phase(to_state),
            "source": source,
            "reason": reason,
            "document_id": triggering_document_id,
            "corrected_by": corrected_by,
            "rules_version": self.rules.version,
            "changed_at": utc_now().isoformat(),
        })
