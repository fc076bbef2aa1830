"""
Priority scoring for follow-up work.

Eight independently weighted factors add up to at most 100:

    deadline_urgency       25   nearest unmet cutoff or explicit due date
    financial_impact       15   shipment volume/value, customer tier
    notification_severity  15   severity of the triggering notification
    stakeholder_importance 10   customer status and tier
    historical_pattern     10   stakeholder on-time rate, response time
    document_criticality    5   drafts still in flight
    insight_boost          10   AI/rule insights, diminishing
    blocker_impact         10   open blockers, weighted by severity

Each factor is clamped to its weight, the total to [0, 100]. The scorer
is pure: the same inputs and `now` always give the same result.
"""

import math
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any, Iterable, Optional, Union

import structlog

from config.workflow_rules import WorkflowRuleTable, get_rule_table
from models.priority import (
    Blocker,
    Insight,
    PriorityFactor,
    PriorityFactors,
    PriorityLevel,
    PriorityResult,
    Severity,
    StakeholderProfile,
    StakeholderTier,
)
from models.shipment import ShipmentResponse
from models.workflow import WorkflowState
from utils.date_utils import parse_datetime, utc_now

logger = structlog.get_logger(__name__)


PRIORITY_WEIGHTS = {
    "deadline_urgency": 25,
    "financial_impact": 15,
    "notification_severity": 15,
    "stakeholder_importance": 10,
    "historical_pattern": 10,
    "document_criticality": 5,
    "insight_boost": 10,
    "blocker_impact": 10,
}

PRIORITY_THRESHOLDS = {
    PriorityLevel.CRITICAL: 85,
    PriorityLevel.HIGH: 70,
    PriorityLevel.MEDIUM: 50,
}

# (hours remaining below, share of weight, reason)
DEADLINE_TIERS = [
    (4, 0.95, "Due within 4 hours"),
    (24, 0.85, "Due within 24 hours"),
    (48, 0.7, "Due within 48 hours"),
    (72, 0.5, "Due within 3 days"),
    (168, 0.3, "Due within 1 week"),
]
DEADLINE_FAR_SHARE = 0.1

# Cutoff field → state after which the cutoff is met
CUTOFF_MET_BY = {
    "si_cutoff": WorkflowState.SI_SUBMITTED.value,
    "vgm_cutoff": WorkflowState.VGM_SUBMITTED.value,
    "cargo_cutoff": WorkflowState.CONTAINER_GATED_IN.value,
    "gate_cutoff": WorkflowState.CONTAINER_GATED_IN.value,
}

SEVERITY_SHARE = {
    Severity.CRITICAL: 1.0,
    Severity.HIGH: 0.75,
    Severity.MEDIUM: 0.5,
    Severity.LOW: 0.25,
}
CRITICAL_NOTIFICATION_TYPES = {"rollover", "customs_hold", "vessel_omission", "cargo_cutoff"}
CRITICAL_TYPE_MULTIPLIER = 1.2

BLOCKER_SEVERITY_WEIGHT = {
    Severity.CRITICAL: 1.0,
    Severity.HIGH: 0.7,
    Severity.MEDIUM: 0.4,
    Severity.LOW: 0.15,
}
LONG_BLOCKER_HOURS = 24
LONG_BLOCKER_BOOST = 0.3

INSIGHT_SEVERITY_SHARE = {
    Severity.CRITICAL: 0.6,
    Severity.HIGH: 0.3,
    Severity.MEDIUM: 0.1,
}

CRITICAL_DRAFT_TYPES = ("bill_of_lading", "shipping_instruction", "customs")


def label_for(score: int) -> PriorityLevel:
    """Map a 0-100 score to its label. Thresholds are inclusive."""
    for level, threshold in PRIORITY_THRESHOLDS.items():
        if score >= threshold:
            return level
    return PriorityLevel.LOW


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _factor(name: str, share: float, reason: str) -> PriorityFactor:
    weight = PRIORITY_WEIGHTS[name]
    score = max(0.0, min(weight * share, weight))
    return PriorityFactor(score=round(score, 2), max=weight, reason=reason)


class PriorityScorer:
    """
    Scores shipments (or work about them) from 0 to 100.

    Args:
        rule_table: Used to decide which cutoffs are already met
    """

    def __init__(self, rule_table: Optional[WorkflowRuleTable] = None):
        self.rules = rule_table or get_rule_table()

    def score(
        self,
        shipment: Optional[ShipmentResponse] = None,
        blockers: Optional[Iterable[Blocker]] = None,
        insights: Optional[Iterable[Insight]] = None,
        stakeholder: Union[StakeholderProfile, StakeholderTier, str, None] = None,
        *,
        due_at: Any = None,
        notification_severity: Any = None,
        notification_type: Optional[str] = None,
        draft_document_types: Optional[Iterable[str]] = None,
        now: Optional[datetime] = None
    ) -> PriorityResult:
        """
        Score one shipment or task.

        Args:
            shipment: Shipment the work is about
            blockers: Open blockers of the shipment
            insights: Active insights of the shipment
            stakeholder: Profile, or just a tier name
            due_at: Explicit due date of the task
            notification_severity: Severity of the triggering notification
            notification_type: Type of the triggering notification
            draft_document_types: Types of documents still in draft
            now: Reference time (defaults to current UTC time)

        Returns:
            PriorityResult with score, label and factor breakdown
        """
        now = parse_datetime(now) or utc_now()
        profile = self._profile(stakeholder)

        deadline, deadline_factor = self._deadline_urgency(shipment, parse_datetime(due_at), now)
        factors = PriorityFactors(
            deadline_urgency=deadline_factor,
            financial_impact=self._financial_impact(shipment, profile),
            notification_severity=self._notification_severity(notification_severity, notification_type),
            stakeholder_importance=self._stakeholder_importance(profile),
            historical_pattern=self._historical_pattern(profile),
            document_criticality=self._document_criticality(draft_document_types),
            insight_boost=self._insight_boost(insights),
            blocker_impact=self._blocker_impact(blockers, now),
        )

        total = max(0, min(100, _round_half_up(factors.total())))
        return PriorityResult(
            score=total,
            label=label_for(total),
            factors=factors,
            due_at=deadline,
        )

    # ===================
    # FACTORS
    # ===================

    def nearest_deadline(
        self,
        shipment: Optional[ShipmentResponse],
        due_at: Optional[datetime] = None
    ) -> Optional[datetime]:
        """Explicit due date if given, else the shipment's earliest unmet cutoff."""
        if due_at is not None:
            return due_at

        candidates = []
        if shipment is not None:
            current_rank = self.rules.rank(shipment.workflow_state)
            for field, met_by in CUTOFF_MET_BY.items():
                cutoff = getattr(shipment, field)
                met_rank = self.rules.rank(met_by)
                if cutoff is None:
                    continue
                if current_rank is not None and met_rank is not None and current_rank >= met_rank:
                    continue
                candidates.append(cutoff)
        return min(candidates) if candidates else None

    def _deadline_urgency(self, shipment, due_at, now):
        deadline = self.nearest_deadline(shipment, due_at)
        if deadline is None:
            return None, _factor("deadline_urgency", 0, "No deadline set")

        hours = (deadline - now) / timedelta(hours=1)
        if hours < 0:
            return deadline, _factor("deadline_urgency", 1.0, f"Overdue by {int(abs(hours))} hours")

        for limit, share, reason in DEADLINE_TIERS:
            if hours < limit:
                return deadline, _factor("deadline_urgency", share, reason)
        return deadline, _factor("deadline_urgency", DEADLINE_FAR_SHARE, "Due in more than 1 week")

    def _financial_impact(self, shipment, profile):
        if shipment is None and profile is None:
            return _factor("financial_impact", 0.3, "No shipment or stakeholder context")

        share, reason = 0.3, "Default financial impact"
        if shipment is not None:
            containers = len(shipment.container_numbers) or 1
            freight = float(shipment.freight_charges or 0)
            if containers >= 10:
                share, reason = 0.9, f"High volume shipment ({containers} containers)"
            elif containers >= 5:
                share, reason = 0.7, f"Medium volume shipment ({containers} containers)"
            elif freight > 10000:
                share, reason = 0.8, f"High value shipment (${freight:,.0f})"

        if profile is not None and profile.is_customer:
            if profile.priority_tier == StakeholderTier.PLATINUM:
                share, reason = max(share, 0.95), "Platinum customer"
            elif profile.priority_tier == StakeholderTier.GOLD:
                share, reason = max(share, 0.8), "Gold customer"
            elif (profile.total_revenue or 0) > 100000:
                share, reason = max(share, 0.7), "High-revenue customer"

        return _factor("financial_impact", share, reason)

    def _notification_severity(self, severity, notification_type):
        level = self._severity(severity)
        if level is None:
            return _factor("notification_severity", 0.5, "No notification context")

        share = SEVERITY_SHARE[level]
        critical_type = (notification_type or "").lower() in CRITICAL_NOTIFICATION_TYPES
        if critical_type:
            share *= CRITICAL_TYPE_MULTIPLIER
        suffix = " (critical type)" if critical_type else ""
        return _factor("notification_severity", share, f"{level.value} priority notification{suffix}")

    def _stakeholder_importance(self, profile):
        if profile is None:
            return _factor("stakeholder_importance", 0.3, "No stakeholder context")

        share, reason = 0.3, "Standard stakeholder"
        if profile.is_customer:
            share, reason = 0.6, "Active customer"
            tier_shares = {
                StakeholderTier.PLATINUM: 1.0,
                StakeholderTier.GOLD: 0.85,
                StakeholderTier.SILVER: 0.7,
            }
            if profile.priority_tier in tier_shares:
                share = tier_shares[profile.priority_tier]
                reason = f"{profile.priority_tier.value.title()} tier customer"

        if (profile.total_shipments or 0) > 50:
            share *= 1.1
            reason += " (high volume)"

        return _factor("stakeholder_importance", share, reason)

    def _historical_pattern(self, profile):
        if profile is None or (profile.on_time_rate is None and profile.avg_response_time_hours is None):
            return _factor("historical_pattern", 0.5, "No historical metrics")

        share, reason = 0.5, "Normal patterns"
        if profile.on_time_rate is not None and profile.on_time_rate < 70:
            share, reason = 0.9, f"Low on-time rate ({profile.on_time_rate:.0f}%)"
        elif profile.on_time_rate is not None and profile.on_time_rate > 95:
            share, reason = 0.3, f"Excellent track record ({profile.on_time_rate:.0f}%)"

        if profile.avg_response_time_hours is not None and profile.avg_response_time_hours > 48:
            share = max(share, 0.8)
            reason = f"Slow responder ({profile.avg_response_time_hours:.0f}h avg)"

        return _factor("historical_pattern", share, reason)

    def _document_criticality(self, draft_document_types):
        drafts = [str(t).lower() for t in (draft_document_types or []) if t]
        if not drafts:
            return _factor("document_criticality", 0, "No drafts in flight")

        if any(marker in doc_type for doc_type in drafts for marker in CRITICAL_DRAFT_TYPES):
            return _factor("document_criticality", 0.8, "Critical document still in draft")
        return _factor("document_criticality", 0.4, f"{len(drafts)} draft(s) in flight")

    def _insight_boost(self, insights):
        active = [i for i in (insights or []) if i.is_active]
        weight = PRIORITY_WEIGHTS["insight_boost"]

        # Within one severity each further insight counts half the previous
        groups: dict[str, list[float]] = defaultdict(list)
        for insight in active:
            if insight.priority_boost is not None:
                base = insight.priority_boost
            elif insight.severity in INSIGHT_SEVERITY_SHARE:
                base = weight * INSIGHT_SEVERITY_SHARE[insight.severity]
            else:
                continue
            key = insight.severity.value if insight.severity else "unrated"
            groups[key].append(base)

        if not groups:
            return _factor("insight_boost", 0, "No active insights")

        boost = 0.0
        reasons = []
        for key in sorted(groups):
            bases = sorted(groups[key], reverse=True)
            boost += sum(base * 0.5 ** position for position, base in enumerate(bases))
            reasons.append(f"{len(bases)} {key} insight(s)")

        return _factor("insight_boost", boost / weight, ", ".join(reasons))

    def _blocker_impact(self, blockers, now):
        open_blockers = [b for b in (blockers or []) if not b.is_resolved]
        if not open_blockers:
            return _factor("blocker_impact", 0, "No active blockers")

        total = 0.0
        counts: dict[str, int] = defaultdict(int)
        for blocker in open_blockers:
            if blocker.severity in BLOCKER_SEVERITY_WEIGHT:
                total += BLOCKER_SEVERITY_WEIGHT[blocker.severity]
                counts[blocker.severity.value] += 1

        long_standing = any(
            b.blocked_since is not None and (now - b.blocked_since) > timedelta(hours=LONG_BLOCKER_HOURS)
            for b in open_blockers
        )
        if long_standing:
            total += LONG_BLOCKER_BOOST

        weight = PRIORITY_WEIGHTS["blocker_impact"]
        score = min(total * (weight / 2), weight)

        reasons = [f"{count} {severity}" for severity, count in sorted(counts.items())]
        if long_standing:
            reasons.append("blocker >24h")
        return _factor(
            "blocker_impact",
            score / weight,
            f"{len(open_blockers)} blocker(s): {', '.join(reasons) or 'unrated'}"
        )

    # ===================
    # HELPERS
    # ===================

    def _profile(self, stakeholder) -> Optional[StakeholderProfile]:
        if stakeholder is None or isinstance(stakeholder, StakeholderProfile):
            return stakeholder
        # A bare tier means a customer of that tier
        return StakeholderProfile(is_customer=True, priority_tier=stakeholder)

    def _severity(self, value) -> Optional[Severity]:
        if value is None:
            return None
        try:
            return Severity(str(getattr(value, "value", value)).strip().lower())
        except ValueError:
            logger.debug("unknown_notification_severity", severity=value)
            return None
