"""Data models for risk windows, assessments and leverage recommendations.

RiskLevel and Priority are ordered: comparisons follow severity, so
``max(levels)`` yields the most severe level.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from oracle.models import new_id, utc_now

_LEVEL_ORDER = ("low", "medium", "high", "critical")


class _Ordered(str, Enum):
    """String enum ordered by declaration (low -> critical)."""

    @property
    def rank(self) -> int:
        return _LEVEL_ORDER.index(self.value)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, type(self)):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, type(self)):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, type(self)):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, type(self)):
            return NotImplemented
        return self.rank >= other.rank


class RiskLevel(_Ordered):
    """Severity of a risk window."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Priority(_Ordered):
    """Urgency of a recommendation."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class RiskFactorType(str, Enum):
    CORPORATE_ACTION = "corporate_action"
    HIGH_VOLATILITY = "high_volatility"
    LOW_LIQUIDITY = "low_liquidity"
    LARGE_POSITION = "large_position"
    MARKET_EVENT = "market_event"


class RiskAction(str, Enum):
    DELEVERAGE = "deleverage"
    GRADUAL_DELEVERAGE = "gradual_deleverage"
    RETURN_TO_BASELINE = "return_to_baseline"


@dataclass
class RiskFactor:
    """One reason a risk window exists. Owned by exactly one RiskWindow.

    level is the severity this factor alone implies; start_date/end_date are
    the range it contributes to the window bounds.
    """

    factor_type: RiskFactorType
    description: str
    impact: Decimal  # 0-1
    effective_date: datetime
    level: RiskLevel = RiskLevel.HIGH
    start_date: datetime | None = None
    end_date: datetime | None = None
    details: dict[str, Any] | None = None


@dataclass
class RiskWindow:
    """A time range during which elevated leverage is discouraged."""

    symbol: str
    level: RiskLevel
    start_date: datetime
    end_date: datetime
    factors: list[RiskFactor] = field(default_factory=list)
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utc_now)

    @property
    def has_factors(self) -> bool:
        return bool(self.factors)

    def is_active_at(self, moment: datetime) -> bool:
        return self.start_date <= moment <= self.end_date


@dataclass
class RiskRecommendation:
    """A leverage change suggestion. Only acknowledgment ever mutates it."""

    symbol: str
    action: RiskAction
    current_leverage: Decimal
    target_leverage: Decimal
    reason: str
    priority: Priority
    position_id: str | None = None
    reduction_percentage: Decimal | None = None
    increase_percentage: Decimal | None = None
    recommended_at: datetime = field(default_factory=utc_now)
    valid_until: datetime | None = None
    acknowledged: bool = False
    acknowledged_at: datetime | None = None
    acknowledged_by: str | None = None
    id: str = field(default_factory=new_id)

    def is_open_at(self, moment: datetime) -> bool:
        """True while the recommendation has not expired."""
        return self.valid_until is None or self.valid_until >= moment


@dataclass
class RiskAssessment:
    """Point-in-time leverage risk for a symbol (and optionally a position)."""

    symbol: str
    level: RiskLevel
    current_leverage: Decimal
    recommended_leverage: Decimal
    risk_score: Decimal  # 0-100
    factors: list[RiskFactor] = field(default_factory=list)
    active_window: RiskWindow | None = None
    recommendations: list[RiskRecommendation] = field(default_factory=list)
    assessed_at: datetime = field(default_factory=utc_now)
