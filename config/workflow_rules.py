"""
Workflow rule table.

Maps (document_type, direction) to a lifecycle state, and each state to
its rank and phase. The state machine only reads this table; changing
the lifecycle means editing data here (or the JSON override named by
WORKFLOW_RULES_PATH), never the machine.
"""

import json
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

import structlog
from pydantic import ValidationError as PydanticValidationError

from config.settings import get_settings
from exceptions import RuleTableError
from models.workflow import (
    DocumentStateRule,
    StateDefinition,
    WorkflowState,
)

logger = structlog.get_logger(__name__)


# Bump when ranks or mappings change so history rows can be traced
RULES_VERSION = "2024.06"

CANCELLED_STATE = WorkflowState.CANCELLED.value


# =============================================================================
# STATES (rank order)
# =============================================================================
# "shared" states sit just above their "received" counterpart: forwarding a
# document to the customer never outranks the next carrier milestone.

STATE_DEFINITIONS = [
    # Booking
    {"state": "booking_confirmed", "rank": 10, "phase": "booking", "label": "Booking Confirmed"},
    {"state": "booking_shared", "rank": 12, "phase": "booking", "label": "Booking Shared"},
    # Pre-departure
    {"state": "si_draft_received", "rank": 16, "phase": "pre_departure", "label": "SI Draft Received"},
    {"state": "si_submitted", "rank": 20, "phase": "pre_departure", "label": "SI Submitted"},
    {"state": "si_confirmed", "rank": 25, "phase": "pre_departure", "label": "SI Confirmed"},
    {"state": "vgm_submitted", "rank": 30, "phase": "pre_departure", "label": "VGM Submitted"},
    {"state": "container_gated_in", "rank": 40, "phase": "pre_departure", "label": "Container Gated In"},
    {"state": "bill_of_lading_received", "rank": 50, "phase": "pre_departure", "label": "BL Received"},
    {"state": "hbl_shared", "rank": 55, "phase": "pre_departure", "label": "HBL Shared"},
    # In transit
    {"state": "departed", "rank": 60, "phase": "in_transit", "label": "Departed"},
    {"state": "invoice_sent", "rank": 65, "phase": "in_transit", "label": "Invoice Sent"},
    # Arrival
    {"state": "arrival_notice_received", "rank": 70, "phase": "arrival", "label": "Arrival Notice Received"},
    {"state": "arrival_notice_shared", "rank": 72, "phase": "arrival", "label": "Arrival Notice Shared"},
    {"state": "customs_cleared", "rank": 80, "phase": "arrival", "label": "Customs Cleared"},
    # Delivery
    {"state": "delivery_order_received", "rank": 90, "phase": "delivery", "label": "DO Received"},
    {"state": "delivery_order_shared", "rank": 92, "phase": "delivery", "label": "DO Shared"},
    {"state": "delivered", "rank": 100, "phase": "delivery", "label": "Delivered"},
    # Terminal
    {"state": "cancelled", "rank": 999, "phase": "closed", "label": "Cancelled"},
]


# =============================================================================
# DOCUMENT RULES
# =============================================================================
# direction None matches both directions. Types without a rule (e.g.
# general_correspondence) stay linked but never move the state.

DOCUMENT_STATE_RULES = [
    {"document_type": "booking_confirmation", "direction": "inbound", "state": "booking_confirmed"},
    {"document_type": "booking_confirmation", "direction": "outbound", "state": "booking_shared"},
    {"document_type": "booking_amendment", "direction": "inbound", "state": "booking_confirmed"},
    {"document_type": "booking_amendment", "direction": "outbound", "state": "booking_shared"},
    {"document_type": "booking_cancellation", "direction": None, "state": "cancelled"},
    {"document_type": "shipping_instruction", "direction": "inbound", "state": "si_draft_received"},
    {"document_type": "shipping_instruction", "direction": "outbound", "state": "si_submitted"},
    {"document_type": "si_confirmation", "direction": "inbound", "state": "si_confirmed"},
    {"document_type": "vgm_submission", "direction": "outbound", "state": "vgm_submitted"},
    {"document_type": "vgm_confirmation", "direction": "inbound", "state": "vgm_submitted"},
    {"document_type": "gate_in_confirmation", "direction": "inbound", "state": "container_gated_in"},
    {"document_type": "bill_of_lading", "direction": "inbound", "state": "bill_of_lading_received"},
    {"document_type": "bill_of_lading", "direction": "outbound", "state": "hbl_shared"},
    {"document_type": "house_bl", "direction": "outbound", "state": "hbl_shared"},
    {"document_type": "sob_confirmation", "direction": "inbound", "state": "departed"},
    {"document_type": "departure_notice", "direction": "inbound", "state": "departed"},
    {"document_type": "invoice", "direction": "outbound", "state": "invoice_sent"},
    {"document_type": "arrival_notice", "direction": "inbound", "state": "arrival_notice_received"},
    {"document_type": "arrival_notice", "direction": "outbound", "state": "arrival_notice_shared"},
    {"document_type": "customs_clearance", "direction": "inbound", "state": "customs_cleared"},
    {"document_type": "delivery_order", "direction": "inbound", "state": "delivery_order_received"},
    {"document_type": "delivery_order", "direction": "outbound", "state": "delivery_order_shared"},
    {"document_type": "proof_of_delivery", "direction": None, "state": "delivered"},
]


class WorkflowRuleTable:
    """
    Validated, read-only view of the state and document rules.

    Raises RuleTableError on construction if ranks collide, a rule points
    at an undefined state, or one (type, direction) maps to two states.
    """

    def __init__(
        self,
        states: list[StateDefinition],
        rules: list[DocumentStateRule],
        version: str = RULES_VERSION
    ):
        self.version = version
        self._states: dict[str, StateDefinition] = {}
        self._rules: dict[tuple[str, Optional[str]], str] = {}

        seen_ranks: dict[int, str] = {}
        for definition in states:
            if definition.state in self._states:
                raise RuleTableError(
                    f"State defined twice: {definition.state}",
                    details={"state": definition.state}
                )
            if definition.rank in seen_ranks:
                raise RuleTableError(
                    f"Rank {definition.rank} used by both {seen_ranks[definition.rank]} and {definition.state}",
                    details={"rank": definition.rank}
                )
            seen_ranks[definition.rank] = definition.state
            self._states[definition.state] = definition

        if CANCELLED_STATE not in self._states:
            raise RuleTableError("Rule table must define the cancelled state")

        for rule in rules:
            if rule.state not in self._states:
                raise RuleTableError(
                    f"Rule for {rule.document_type} targets undefined state {rule.state}",
                    details={"document_type": rule.document_type, "state": rule.state}
                )
            key = (rule.document_type.lower(), rule.direction.lower() if rule.direction else None)
            existing = self._rules.get(key)
            if existing and existing != rule.state:
                raise RuleTableError(
                    f"Conflicting rules for {key[0]} ({key[1] or 'any'}): {existing} vs {rule.state}",
                    details={"document_type": key[0], "direction": key[1]}
                )
            self._rules[key] = rule.state

    # ===================
    # CONSTRUCTION
    # ===================

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WorkflowRuleTable":
        """Build from {"version", "states": [...], "rules": [...]}."""
        try:
            states = [StateDefinition.model_validate(s) for s in data.get("states", [])]
            rules = [DocumentStateRule.model_validate(r) for r in data.get("rules", [])]
        except PydanticValidationError as e:
            raise RuleTableError("Rule table has malformed entries", details={"errors": e.errors()}) from e

        return cls(states, rules, version=str(data.get("version") or RULES_VERSION))

    @classmethod
    def default(cls) -> "WorkflowRuleTable":
        return cls.from_dict({
            "version": RULES_VERSION,
            "states": STATE_DEFINITIONS,
            "rules": DOCUMENT_STATE_RULES,
        })

    @classmethod
    def from_json_file(cls, path: str) -> "WorkflowRuleTable":
        try:
            data = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise RuleTableError(f"Cannot read rule table {path}: {e}") from e

        if not isinstance(data, dict):
            raise RuleTableError(f"Rule table {path} must be a JSON object")
        return cls.from_dict(data)

    # ===================
    # LOOKUPS
    # ===================

    def state_for(self, document_type: Optional[str], direction: Optional[str]) -> Optional[str]:
        """Target state for a document, or None when no rule covers it."""
        if not document_type:
            return None
        doc_type = document_type.lower()
        direction = str(getattr(direction, "value", direction) or "").lower() or None

        if direction and (doc_type, direction) in self._rules:
            return self._rules[(doc_type, direction)]
        return self._rules.get((doc_type, None))

    def is_known(self, state: Optional[str]) -> bool:
        return bool(state) and state in self._states

    def rank(self, state: Optional[str]) -> Optional[int]:
        definition = self._states.get(state) if state else None
        return definition.rank if definition else None

    def phase(self, state: Optional[str]) -> Optional[str]:
        definition = self._states.get(state) if state else None
        return definition.phase.value if definition else None

    def definition(self, state: str) -> Optional[StateDefinition]:
        return self._states.get(state)

    def states(self) -> list[str]:
        """State names in rank order."""
        return [d.state for d in sorted(self._states.values(), key=lambda d: d.rank)]

    def handles(self, document_type: Optional[str]) -> bool:
        """True when some rule exists for this type in either direction."""
        if not document_type:
            return False
        doc_type = document_type.lower()
        return any(key[0] == doc_type for key in self._rules)


@lru_cache()
def get_rule_table() -> WorkflowRuleTable:
    """
    Load the rule table once per process.

    Uses WORKFLOW_RULES_PATH when set, the built-in table otherwise.
    Call get_rule_table.cache_clear() to reload.
    """
    path = get_settings().workflow_rules_path
    if path:
        table = WorkflowRuleTable.from_json_file(path)
        logger.info("workflow_rules_loaded", source=path, version=table.version)
        return table

    return WorkflowRuleTable.default()
