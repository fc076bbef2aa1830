"""
Unit tests for ShipmentStore.

Run: pytest tests/unit/test_shipment_store.py -v
"""

import httpx
import pytest

from exceptions import DatabaseError, ShipmentNotFoundError, StoreConnectionError
from models.document import Direction
from models.link import LinkMethod, ResolutionResult
from services.shipment_store import ShipmentStore
from tests.factories import DocumentFactory, LinkFactory, ShipmentFactory


class TestPagination:
    """Tests for ShipmentStore.iter_rows()"""

    def test_pages_through_all_rows(self, mock_supabase):
        mock_supabase.set_table_data("shipments", [
            ShipmentFactory.create(id=f"s{i}") for i in (3, 1, 5, 2, 4)
        ])
        store = ShipmentStore(mock_supabase, page_size=2)

        ids = [row["id"] for row in store.iter_rows("shipments")]

        assert ids == ["s1", "s2", "s3", "s4", "s5"]
        assert mock_supabase.calls.count(("shipments", "select")) == 3

    def test_applies_filters(self, mock_supabase, store):
        mock_supabase.set_table_data("document_shipment_links", [
            LinkFactory.create("d1", "A"),
            LinkFactory.create("d2", None, is_active=False),
        ])

        links = list(store.iter_links(active_only=True))

        assert [link.document_id for link in links] == ["d1"]

    def test_unreadable_shipment_rows_skipped(self, mock_supabase, store):
        mock_supabase.set_table_data("shipments", [
            ShipmentFactory.create(id="s1"),
            {"id": None, "booking_number": "263805268"},
        ])

        assert [s.id for s in store.iter_shipments()] == ["s1"]


class TestErrorMapping:
    """Tests for failure translation."""

    @pytest.mark.parametrize("error", [httpx.ConnectError("refused"), TimeoutError("slow"), ConnectionError("reset")])
    def test_transport_errors_stop_the_batch(self, mock_supabase, store, error):
        mock_supabase.fail_next(error)

        with pytest.raises(StoreConnectionError):
            store.get_shipment("s1")

    def test_other_errors_are_database_errors(self, mock_supabase, store):
        mock_supabase.fail_next(RuntimeError("column does not exist"))

        with pytest.raises(DatabaseError) as exc_info:
            store.get_shipment("s1")

        assert exc_info.value.details["operation"] == "select"

    def test_missing_shipment(self, store):
        with pytest.raises(ShipmentNotFoundError):
            store.get_shipment("nope")


class TestWorkflowStateUpdate:
    """Tests for ShipmentStore.apply_workflow_state()"""

    @pytest.fixture
    def row(self, mock_supabase):
        mock_supabase.set_table_data("shipments", [
            ShipmentFactory.create(id="s1", workflow_state="si_submitted", workflow_state_rank=20)
        ])
        return mock_supabase.rows("shipments")[0]

    def test_higher_rank_applies(self, store, row):
        assert store.apply_workflow_state("s1", "vgm_submitted", "pre_departure", 30) is True
        assert row["workflow_state"] == "vgm_submitted"

    def test_lower_rank_rejected_by_guard(self, store, row):
        assert store.apply_workflow_state("s1", "booking_confirmed", "booking", 10) is False
        assert row["workflow_state"] == "si_submitted"

    def test_equal_rank_rejected_by_guard(self, store, row):
        assert store.apply_workflow_state("s1", "si_submitted", "pre_departure", 20) is False

    def test_unconditional_write(self, store, row):
        assert store.apply_workflow_state("s1", "booking_confirmed", "booking", 10, unconditional=True) is True
        assert row["workflow_state_rank"] == 10

    def test_null_rank_accepts_first_state(self, mock_supabase, store):
        mock_supabase.set_table_data("shipments", [ShipmentFactory.create(id="s1")])

        assert store.apply_workflow_state("s1", "booking_confirmed", "booking", 10) is True


class TestLinks:
    """Tests for link upsert and revocation."""

    def _resolution(self, shipment_id="A"):
        return ResolutionResult(
            document_id="d1",
            shipment_id=shipment_id,
            method=LinkMethod.BOOKING_NUMBER,
            confidence_score=90,
        )

    def test_upsert_is_idempotent(self, mock_supabase, store):
        store.upsert_link(self._resolution())
        store.upsert_link(self._resolution())

        assert len(mock_supabase.rows("document_shipment_links")) == 1

    def test_repair_attempts_survive_relinking(self, mock_supabase, store):
        store.upsert_link(self._resolution("A"))
        store.revoke_link("d1", "booking_conflict", 2)

        revoked = store.get_link("d1")
        relinked = store.upsert_link(self._resolution("B"))

        assert revoked.is_active is False
        assert revoked.shipment_id is None
        assert revoked.revoked_reason == "booking_conflict"
        assert relinked.shipment_id == "B"
        assert relinked.is_active is True
        assert relinked.repair_attempts == 2

    def test_unlinked_documents(self, mock_supabase, store):
        mock_supabase.set_table_data("classified_documents", [
            DocumentFactory.create(id="d1"),
            DocumentFactory.create(id="d2"),
        ])
        mock_supabase.set_table_data("document_shipment_links", [LinkFactory.create("d1", "A")])

        assert [d.id for d in store.iter_unlinked_documents()] == ["d2"]

    def test_thread_links_need_a_thread(self, mock_supabase, store):
        mock_supabase.set_table_data("classified_documents", [
            DocumentFactory.create(id="d1", thread_id="T1"),
            DocumentFactory.create(id="d2"),
        ])
        mock_supabase.set_table_data("document_shipment_links", [
            LinkFactory.create("d1", "A"),
            LinkFactory.create("d2", "A"),
        ])

        links = list(store.iter_thread_links())

        assert [(link.document_id, link.thread_id, link.shipment_id) for link in links] == [("d1", "T1", "A")]


class TestRowMapping:
    """Tests for document row conversion."""

    def test_missing_direction_derived_from_sender(self, mock_supabase, store):
        mock_supabase.set_table_data("classified_documents", [
            DocumentFactory.create(id="d1", direction=None, sender_email="ops@intoglo.com")
        ])

        assert store.get_document("d1").direction == Direction.OUTBOUND

    def test_malformed_identifiers_dropped(self, mock_supabase, store):
        row = DocumentFactory.create(id="d1")
        row["identifiers"] = [{"identifier_type": "booking_number", "raw_value": "263805268"}, "junk", {}]
        mock_supabase.set_table_data("classified_documents", [row])

        assert len(store.get_document("d1").identifiers) == 1

    def test_float_identifier_read_as_integer_string(self, mock_supabase, store):
        row = DocumentFactory.create(id="d1")
        row["identifiers"] = [{"identifier_type": "booking_number", "raw_value": 263805268.0, "confidence": 95}]
        mock_supabase.set_table_data("classified_documents", [row])

        assert store.get_document("d1").raw_values("booking_number") == ["263805268"]
