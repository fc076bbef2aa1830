"""
Unit tests for WorkflowStateMachine and WorkflowStateService.

Run: pytest tests/unit/test_workflow_state_machine.py -v
"""

import pytest
from datetime import timedelta

from config.workflow_rules import RULES_VERSION
from exceptions import (
    InvalidStatusTransitionError,
    ShipmentNotFoundError,
    UnknownWorkflowStateError,
)
from services.workflow_state_machine import WorkflowStateMachine, WorkflowStateService
from tests.factories import BASE_TIME, DocumentFactory, LinkFactory, ShipmentFactory


@pytest.fixture
def machine(rule_table):
    return WorkflowStateMachine(rule_table)


def _doc(document_type, direction="inbound", **kwargs):
    return DocumentFactory.model(document_type=document_type, direction=direction, **kwargs)


class TestComputeState:
    """Tests for WorkflowStateMachine.compute_state()"""

    def test_no_documents(self, machine):
        result = machine.compute_state("S1", [], None)

        assert result.should_apply is False
        assert result.reason == "no_documents"

    def test_initial_state(self, machine):
        doc = _doc("booking_confirmation")

        result = machine.compute_state("S1", [doc], None)

        assert result.should_apply is True
        assert result.candidate_state == "booking_confirmed"
        assert result.candidate_phase == "booking"
        assert result.triggering_document_id == doc.id
        assert result.reason == "initial_state"

    def test_direction_selects_state(self, machine):
        result = machine.compute_state("S1", [_doc("booking_confirmation", "outbound")], None)

        assert result.candidate_state == "booking_shared"

    def test_never_moves_backward(self, machine):
        """A late booking confirmation must not undo si_submitted."""
        result = machine.compute_state("S1", [_doc("booking_confirmation")], "si_submitted")

        assert result.should_apply is False
        assert result.candidate_state == "booking_confirmed"
        assert result.reason == "not_forward"

    def test_same_rank_is_not_forward(self, machine):
        result = machine.compute_state("S1", [_doc("booking_confirmation")], "booking_confirmed")

        assert result.should_apply is False

    def test_advances_forward(self, machine):
        docs = [_doc("booking_confirmation"), _doc("shipping_instruction", "outbound")]

        result = machine.compute_state("S1", docs, "booking_confirmed")

        assert result.should_apply is True
        assert result.candidate_state == "si_submitted"
        assert result.reason == "advanced"

    def test_out_of_order_jump(self, machine):
        """Should jump straight to a later state with no earlier evidence."""
        result = machine.compute_state("S1", [_doc("departure_notice")], None)

        assert result.should_apply is True
        assert result.candidate_state == "departed"

    @pytest.mark.parametrize("current", ["booking_confirmed", "si_submitted", "departed", "delivered"])
    def test_cancelled_from_any_rank(self, machine, current):
        docs = [_doc("delivery_order"), _doc("booking_cancellation")]

        result = machine.compute_state("S1", docs, current)

        assert result.should_apply is True
        assert result.candidate_state == "cancelled"
        assert result.reason == "cancelled"

    def test_cancelled_is_terminal(self, machine):
        result = machine.compute_state("S1", [_doc("proof_of_delivery")], "cancelled")

        assert result.should_apply is False
        assert result.reason == "already_cancelled"

    def test_unknown_document_type(self, machine):
        doc = _doc("mystery_type")

        result = machine.compute_state("S1", [doc], None)

        assert result.should_apply is False
        assert result.reason == "no_applicable_rules"
        assert result.ignored_document_ids == [doc.id]
        assert result.unhandled_document_types == ["mystery_type"]

    def test_known_type_wrong_direction_is_not_unhandled(self, machine):
        result = machine.compute_state("S1", [_doc("invoice", "inbound")], None)

        assert result.unhandled_document_types == []
        assert result.reason == "no_applicable_rules"

    def test_unknown_current_state_left_alone(self, machine):
        result = machine.compute_state("S1", [_doc("departure_notice")], "legacy_state")

        assert result.should_apply is False
        assert result.reason == "unknown_current_state"

    def test_unknown_current_state_can_still_be_cancelled(self, machine):
        result = machine.compute_state("S1", [_doc("booking_cancellation")], "in_transit_legacy")

        assert result.candidate_state == "cancelled"
        assert result.should_apply is True
        assert result.reason == "cancelled"

    def test_arrival_order_does_not_change_result(self, machine):
        early = _doc("departure_notice", received_at=BASE_TIME)
        late = _doc("booking_confirmation", received_at=BASE_TIME + timedelta(days=3))

        forward = machine.compute_state("S1", [early, late], None)
        reverse = machine.compute_state("S1", [late, early], None)

        assert forward.candidate_state == reverse.candidate_state == "departed"

    def test_earliest_document_triggers_on_tie(self, machine):
        first = _doc("departure_notice", received_at=BASE_TIME)
        second = _doc("sob_confirmation", received_at=BASE_TIME + timedelta(hours=2))

        result = machine.compute_state("S1", [second, first], None)

        assert result.triggering_document_id == first.id


# ===================
# SERVICE TESTS
# ===================

def _setup(mock_supabase, shipment, docs):
    mock_supabase.set_table_data("shipments", [shipment])
    mock_supabase.set_table_data("classified_documents", docs)
    mock_supabase.set_table_data(
        "document_shipment_links",
        [LinkFactory.create(d["id"], shipment["id"]) for d in docs]
    )


class TestRecompute:
    """Tests for WorkflowStateService.recompute()"""

    def test_applies_and_records_history(self, mock_supabase, store, rule_table):
        _setup(mock_supabase, ShipmentFactory.create(id="S1"), [DocumentFactory.create()])
        service = WorkflowStateService(store, rule_table)

        result = service.recompute("S1")

        row = mock_supabase.rows("shipments")[0]
        history = mock_supabase.rows("shipment_workflow_history")
        assert result.applied is True
        assert result.new_state == "booking_confirmed"
        assert row["workflow_state"] == "booking_confirmed"
        assert row["workflow_phase"] == "booking"
        assert row["workflow_state_rank"] == 10
        assert len(history) == 1
        assert history[0]["source"] == "document"
        assert history[0]["rules_version"] == RULES_VERSION

    def test_idempotent(self, mock_supabase, store, rule_table):
        _setup(mock_supabase, ShipmentFactory.create(id="S1"), [DocumentFactory.create()])
        service = WorkflowStateService(store, rule_table)

        service.recompute("S1")
        second = service.recompute("S1")

        assert second.applied is False
        assert second.new_state == "booking_confirmed"
        assert len(mock_supabase.rows("shipment_workflow_history")) == 1

    def test_dry_run_writes_nothing(self, mock_supabase, store, rule_table):
        _setup(mock_supabase, ShipmentFactory.create(id="S1"), [DocumentFactory.create()])

        result = WorkflowStateService(store, rule_table).recompute("S1", dry_run=True)

        assert result.new_state == "booking_confirmed"
        assert result.applied is False
        assert result.reason == "dry_run:initial_state"
        assert mock_supabase.rows("shipments")[0]["workflow_state"] is None
        assert mock_supabase.rows("shipment_workflow_history") == []

    def test_ignores_revoked_links(self, mock_supabase, store, rule_table):
        doc = DocumentFactory.create()
        _setup(mock_supabase, ShipmentFactory.create(id="S1"), [doc])
        mock_supabase.rows("document_shipment_links")[0]["is_active"] = False

        result = WorkflowStateService(store, rule_table).recompute("S1")

        assert result.reason == "no_documents"

    def test_lost_race_is_a_no_op(self, mock_supabase, store, rule_table, monkeypatch):
        """Should not overwrite a state another writer moved further."""
        _setup(
            mock_supabase,
            ShipmentFactory.create(id="S1", workflow_state="departed", workflow_state_rank=60),
            [DocumentFactory.create()]
        )
        stale = ShipmentFactory.model(id="S1")
        monkeypatch.setattr(store, "get_shipment", lambda shipment_id: stale)

        result = WorkflowStateService(store, rule_table).recompute("S1")

        assert result.lost_race is True
        assert result.applied is False
        assert mock_supabase.rows("shipments")[0]["workflow_state"] == "departed"
        assert mock_supabase.rows("shipment_workflow_history") == []

    def test_cancellation_overrides_later_state(self, mock_supabase, store, rule_table):
        _setup(
            mock_supabase,
            ShipmentFactory.create(id="S1", workflow_state="departed", workflow_state_rank=60),
            [DocumentFactory.create(document_type="booking_cancellation")]
        )

        result = WorkflowStateService(store, rule_table).recompute("S1")

        row = mock_supabase.rows("shipments")[0]
        assert result.applied is True
        assert row["workflow_state"] == "cancelled"
        assert row["workflow_phase"] == "closed"

    def test_unhandled_types_are_counted(self, mock_supabase, store, rule_table):
        _setup(
            mock_supabase,
            ShipmentFactory.create(id="S1"),
            [DocumentFactory.create(document_type="mystery_type"), DocumentFactory.create()]
        )

        result = WorkflowStateService(store, rule_table).recompute("S1")

        assert result.applied is True
        assert result.unhandled_count == 1

    def test_missing_shipment(self, store, rule_table):
        with pytest.raises(ShipmentNotFoundError):
            WorkflowStateService(store, rule_table).recompute("nope")


class TestCorrectState:
    """Tests for WorkflowStateService.correct_state()"""

    @pytest.fixture
    def service(self, mock_supabase, store, rule_table):
        mock_supabase.set_table_data("shipments", [
            ShipmentFactory.create(id="S1", workflow_state="si_submitted", workflow_state_rank=20)
        ])
        return WorkflowStateService(store, rule_table)

    def test_backward_requires_force(self, service):
        with pytest.raises(InvalidStatusTransitionError):
            service.correct_state("S1", "booking_confirmed", "wrong SI linked")

    def test_forced_backward_move(self, service, mock_supabase):
        result = service.correct_state("S1", "booking_confirmed", "wrong SI linked", force=True, corrected_by="ops")

        row = mock_supabase.rows("shipments")[0]
        history = mock_supabase.rows("shipment_workflow_history")
        assert result.applied is True
        assert result.reason == "forced_correction"
        assert row["workflow_state_rank"] == 10
        assert history[0]["source"] == "manual"
        assert history[0]["corrected_by"] == "ops"

    def test_forward_move_without_force(self, service):
        result = service.correct_state("S1", "departed", "vessel sailed")

        assert result.applied is True
        assert result.reason == "manual_correction"

    def test_unknown_state(self, service):
        with pytest.raises(UnknownWorkflowStateError):
            service.correct_state("S1", "teleported", "typo")

    def test_same_state_is_unchanged(self, service, mock_supabase):
        result = service.correct_state("S1", "si_submitted", "no-op")

        assert result.applied is False
        assert result.reason == "unchanged"
        assert mock_supabase.rows("shipment_workflow_history") == []

    def test_leaving_cancelled_requires_force(self, mock_supabase, store, rule_table):
        mock_supabase.set_table_data("shipments", [
            ShipmentFactory.create(id="S1", workflow_state="cancelled", workflow_state_rank=999)
        ])
        service = WorkflowStateService(store, rule_table)

        with pytest.raises(InvalidStatusTransitionError):
            service.correct_state("S1", "departed", "cancelled by mistake")


class TestGetStatus:
    """Tests for WorkflowStateService.get_status()"""

    def test_status_view(self, mock_supabase, store, rule_table):
        _setup(mock_supabase, ShipmentFactory.create(id="S1"), [DocumentFactory.create()])
        service = WorkflowStateService(store, rule_table)
        service.recompute("S1")

        status = service.get_status("S1")

        assert status.workflow_state == "booking_confirmed"
        assert status.workflow_state_rank == 10
        assert status.rules_version == RULES_VERSION
        assert status.linked_documents == 1
        assert len(status.history) == 1
