"""
Priority scoring schemas.

Blockers, insights and stakeholder profiles are produced upstream and
read here as-is. Validators turn unreadable fields into None so a bad
value drops one factor instead of failing the whole score.
"""

from pydantic import Field, field_validator
from typing import Any, Optional
from enum import Enum
from datetime import datetime

from models.base import BaseSchema
from utils.date_utils import parse_datetime


class PriorityLevel(str, Enum):
    """Coarse label derived from the score."""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Severity(str, Enum):
    """Severity shared by blockers, insights and notifications."""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class StakeholderTier(str, Enum):
    PLATINUM = "platinum"
    GOLD = "gold"
    SILVER = "silver"
    BRONZE = "bronze"


def _severity_or_none(v: Any) -> Optional[str]:
    if v is None:
        return None
    text = str(getattr(v, "value", v)).strip().lower()
    return text if text in {s.value for s in Severity} else None


def _number_or_none(v: Any, low: float, high: float) -> Optional[float]:
    if v is None or isinstance(v, bool):
        return None
    try:
        value = float(v)
    except (TypeError, ValueError):
        return None
    if value != value or value < low or value > high:
        return None
    return value


class Blocker(BaseSchema):
    """Open obstruction on a shipment."""

    id: Optional[str] = None
    shipment_id: Optional[str] = None
    blocker_type: Optional[str] = None
    severity: Optional[Severity] = None
    blocked_since: Optional[datetime] = None
    description: Optional[str] = None
    is_resolved: bool = False

    @field_validator("severity", mode="before")
    @classmethod
    def unknown_severity_is_none(cls, v: Any) -> Optional[str]:
        return _severity_or_none(v)

    @field_validator("blocked_since", mode="before")
    @classmethod
    def parse_blocked_since(cls, v: Any) -> Optional[datetime]:
        return parse_datetime(v)


class Insight(BaseSchema):
    """AI- or rule-derived observation about a shipment."""

    id: Optional[str] = None
    shipment_id: Optional[str] = None
    severity: Optional[Severity] = None
    priority_boost: Optional[float] = Field(
        None,
        description="Explicit boost 0-10, overrides the severity base"
    )
    title: Optional[str] = None
    is_active: bool = True

    @field_validator("severity", mode="before")
    @classmethod
    def unknown_severity_is_none(cls, v: Any) -> Optional[str]:
        return _severity_or_none(v)

    @field_validator("priority_boost", mode="before")
    @classmethod
    def bad_boost_is_none(cls, v: Any) -> Optional[float]:
        return _number_or_none(v, 0, 10)


class StakeholderProfile(BaseSchema):
    """Customer or partner the shipment's work is for."""

    id: Optional[str] = None
    name: Optional[str] = None
    is_customer: bool = False
    priority_tier: Optional[StakeholderTier] = None
    total_revenue: Optional[float] = None
    total_shipments: Optional[int] = None
    on_time_rate: Optional[float] = Field(None, description="Percent 0-100")
    avg_response_time_hours: Optional[float] = None

    @field_validator("priority_tier", mode="before")
    @classmethod
    def unknown_tier_is_none(cls, v: Any) -> Optional[str]:
        if v is None:
            return None
        text = str(getattr(v, "value", v)).strip().lower()
        return text if text in {t.value for t in StakeholderTier} else None

    @field_validator("on_time_rate", mode="before")
    @classmethod
    def bad_rate_is_none(cls, v: Any) -> Optional[float]:
        return _number_or_none(v, 0, 100)

    @field_validator("total_revenue", "avg_response_time_hours", mode="before")
    @classmethod
    def negative_is_none(cls, v: Any) -> Optional[float]:
        return _number_or_none(v, 0, float("inf"))

    @field_validator("total_shipments", mode="before")
    @classmethod
    def bad_count_is_none(cls, v: Any) -> Optional[int]:
        value = _number_or_none(v, 0, float("inf"))
        return int(value) if value is not None else None


class PriorityFactor(BaseSchema):
    """One weighted factor. score never exceeds max."""

    score: float = Field(..., ge=0)
    max: float = Field(..., ge=0)
    reason: str = ""


class PriorityFactors(BaseSchema):
    deadline_urgency: PriorityFactor
    financial_impact: PriorityFactor
    notification_severity: PriorityFactor
    stakeholder_importance: PriorityFactor
    historical_pattern: PriorityFactor
    document_criticality: PriorityFactor
    insight_boost: PriorityFactor
    blocker_impact: PriorityFactor

    def total(self) -> float:
        return sum(factor.score for factor in self.as_dict().values())

    def as_dict(self) -> dict[str, PriorityFactor]:
        return {name: getattr(self, name) for name in type(self).model_fields}


class PriorityResult(BaseSchema):
    """Scorer output: bounded score, label and the per-factor breakdown."""

    score: int = Field(..., ge=0, le=100)
    label: PriorityLevel
    factors: PriorityFactors
    due_at: Optional[datetime] = Field(None, description="Deadline the urgency factor used")
