"""
Unit tests for the workflow rule table.

Run: pytest tests/unit/test_workflow_rules.py -v
"""

import json
import pytest

from config.workflow_rules import (
    CANCELLED_STATE,
    DOCUMENT_STATE_RULES,
    RULES_VERSION,
    STATE_DEFINITIONS,
    WorkflowRuleTable,
)
from exceptions import RuleTableError


def _table(states=None, rules=None):
    return WorkflowRuleTable.from_dict({
        "states": STATE_DEFINITIONS if states is None else states,
        "rules": DOCUMENT_STATE_RULES if rules is None else rules,
    })


class TestDefaultTable:
    """Tests for the built-in rule table."""

    def test_states_in_rank_order(self, rule_table):
        states = rule_table.states()

        assert states[0] == "booking_confirmed"
        assert states[-1] == CANCELLED_STATE
        ranks = [rule_table.rank(s) for s in states]
        assert ranks == sorted(ranks)

    def test_version(self, rule_table):
        assert rule_table.version == RULES_VERSION

    def test_direction_aware_rules(self, rule_table):
        assert rule_table.state_for("booking_confirmation", "inbound") == "booking_confirmed"
        assert rule_table.state_for("booking_confirmation", "outbound") == "booking_shared"
        assert rule_table.state_for("shipping_instruction", "outbound") == "si_submitted"

    def test_any_direction_rule(self, rule_table):
        assert rule_table.state_for("booking_cancellation", "inbound") == CANCELLED_STATE
        assert rule_table.state_for("booking_cancellation", "outbound") == CANCELLED_STATE

    def test_type_lookup_ignores_case(self, rule_table):
        assert rule_table.state_for("Booking_Confirmation", "INBOUND") == "booking_confirmed"

    def test_unmapped_types(self, rule_table):
        """Should return None for types or directions without a rule."""
        assert rule_table.state_for("general_correspondence", "inbound") is None
        assert rule_table.state_for("invoice", "inbound") is None
        assert rule_table.state_for(None, "inbound") is None

    def test_handles(self, rule_table):
        assert rule_table.handles("invoice") is True
        assert rule_table.handles("general_correspondence") is False

    def test_shared_sits_above_received(self, rule_table):
        assert rule_table.rank("booking_shared") > rule_table.rank("booking_confirmed")
        assert rule_table.rank("booking_shared") < rule_table.rank("si_submitted")

    def test_cancelled_outranks_everything(self, rule_table):
        assert rule_table.rank(CANCELLED_STATE) > rule_table.rank("delivered")
        assert rule_table.phase(CANCELLED_STATE) == "closed"

    def test_unknown_state(self, rule_table):
        assert rule_table.is_known("teleported") is False
        assert rule_table.rank("teleported") is None
        assert rule_table.phase(None) is None


class TestTableValidation:
    """Tests for load-time validation."""

    def test_duplicate_rank_rejected(self):
        states = STATE_DEFINITIONS + [{"state": "extra", "rank": 10, "phase": "booking"}]

        with pytest.raises(RuleTableError):
            _table(states=states)

    def test_duplicate_state_rejected(self):
        states = STATE_DEFINITIONS + [{"state": "delivered", "rank": 101, "phase": "delivery"}]

        with pytest.raises(RuleTableError):
            _table(states=states)

    def test_undefined_target_rejected(self):
        rules = DOCUMENT_STATE_RULES + [{"document_type": "telex", "direction": None, "state": "telex_released"}]

        with pytest.raises(RuleTableError):
            _table(rules=rules)

    def test_conflicting_rules_rejected(self):
        rules = DOCUMENT_STATE_RULES + [
            {"document_type": "booking_confirmation", "direction": "inbound", "state": "departed"}
        ]

        with pytest.raises(RuleTableError):
            _table(rules=rules)

    def test_cancelled_state_required(self):
        states = [s for s in STATE_DEFINITIONS if s["state"] != CANCELLED_STATE]
        rules = [r for r in DOCUMENT_STATE_RULES if r["state"] != CANCELLED_STATE]

        with pytest.raises(RuleTableError):
            _table(states=states, rules=rules)

    def test_malformed_entry_rejected(self):
        states = STATE_DEFINITIONS + [{"state": "broken", "rank": -5, "phase": "nowhere"}]

        with pytest.raises(RuleTableError):
            _table(states=states)


class TestJsonOverride:
    """Tests for WorkflowRuleTable.from_json_file()"""

    def test_loads_json_file(self, tmp_path):
        path = tmp_path / "rules.json"
        path.write_text(json.dumps({
            "version": "custom-1",
            "states": STATE_DEFINITIONS,
            "rules": DOCUMENT_STATE_RULES,
        }))

        table = WorkflowRuleTable.from_json_file(str(path))

        assert table.version == "custom-1"
        assert table.state_for("proof_of_delivery", "inbound") == "delivered"

    def test_unreadable_file(self, tmp_path):
        path = tmp_path / "rules.json"
        path.write_text("{not json")

        with pytest.raises(RuleTableError):
            WorkflowRuleTable.from_json_file(str(path))

    def test_missing_file(self, tmp_path):
        with pytest.raises(RuleTableError):
            WorkflowRuleTable.from_json_file(str(tmp_path / "absent.json"))

    def test_non_object_rejected(self, tmp_path):
        path = tmp_path / "rules.json"
        path.write_text("[]")

        with pytest.raises(RuleTableError):
            WorkflowRuleTable.from_json_file(str(path))
