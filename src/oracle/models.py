"""Shared data models for the equity price oracle.

CRITICAL: All prices, ratios, rates and scores use Decimal. Never use float
for anything that ends up in a consensus price, an adjusted price or a
funding rate.

Timestamps are timezone-aware UTC datetimes. Corporate action dates are plain
calendar dates: a corporate action is identified by the day it becomes
effective, never by a time of day.
"""

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum

from oracle.exceptions import BadRequestError


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


def as_day(value: date | datetime) -> date:
    """Truncate a datetime to its calendar day; dates pass through unchanged."""
    if isinstance(value, datetime):
        return value.date()
    return value


# ──────────────────────────────────────────────
# Corporate actions
# ──────────────────────────────────────────────


class CorporateActionType(str, Enum):
    """Structural events that change the meaning of a historical raw price."""

    STOCK_SPLIT = "stock_split"
    REVERSE_SPLIT = "reverse_split"
    DIVIDEND = "dividend"
    SPECIAL_DIVIDEND = "special_dividend"
    MERGER = "merger"
    ACQUISITION = "acquisition"

    @property
    def is_split(self) -> bool:
        return self in (CorporateActionType.STOCK_SPLIT, CorporateActionType.REVERSE_SPLIT)

    @property
    def is_dividend(self) -> bool:
        return self in (CorporateActionType.DIVIDEND, CorporateActionType.SPECIAL_DIVIDEND)

    @property
    def is_merger(self) -> bool:
        return self in (CorporateActionType.MERGER, CorporateActionType.ACQUISITION)


@dataclass(frozen=True)
class SplitDetails:
    """Split or reverse split. A 4:1 split has ratio 4."""

    ratio: Decimal


@dataclass(frozen=True)
class DividendDetails:
    """Cash dividend per share."""

    amount: Decimal
    currency: str = "USD"


@dataclass(frozen=True)
class MergerDetails:
    """Merger or acquisition: each old share becomes exchange_ratio new shares."""

    acquiring_symbol: str
    exchange_ratio: Decimal


CorporateActionDetails = SplitDetails | DividendDetails | MergerDetails


def validate_details(action_type: CorporateActionType, details: CorporateActionDetails) -> None:
    """Check that the details variant matches the action type and is well-formed.

    Raises:
        BadRequestError: On a variant/type mismatch or a non-positive value.
    """
    if action_type.is_split:
        if not isinstance(details, SplitDetails):
            raise BadRequestError(f"{action_type.value} requires split details")
        if details.ratio <= 0:
            raise BadRequestError("Split ratio must be greater than 0")
    elif action_type.is_dividend:
        if not isinstance(details, DividendDetails):
            raise BadRequestError(f"{action_type.value} requires dividend details")
        if details.amount <= 0:
            raise BadRequestError("Dividend amount must be greater than 0")
        if not details.currency:
            raise BadRequestError("Dividend currency is required")
    elif action_type.is_merger:
        if not isinstance(details, MergerDetails):
            raise BadRequestError(f"{action_type.value} requires merger details")
        if not details.acquiring_symbol:
            raise BadRequestError("Acquiring symbol is required for mergers")
        if details.exchange_ratio <= 0:
            raise BadRequestError("Exchange ratio must be greater than 0")


@dataclass
class CorporateAction:
    """A validated corporate action.

    Construction enforces the per-type invariants, so an instance always
    carries complete details for its type. Rows are never physically
    deleted; is_deleted hides them from every read.
    """

    symbol: str
    action_type: CorporateActionType
    ex_date: date
    record_date: date
    effective_date: date
    details: CorporateActionDetails
    verified: bool = False
    source: str = ""
    external_id: str | None = None
    is_deleted: bool = False
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def __post_init__(self) -> None:
        self.symbol = self.symbol.upper()
        validate_details(self.action_type, self.details)

    @property
    def key(self) -> tuple[str, CorporateActionType, date]:
        """Deduplication key: (symbol, type, effective day)."""
        return (self.symbol, self.action_type, self.effective_date)


@dataclass
class RawCorporateAction:
    """A corporate action as reported by a single source.

    Optional fields may be missing; reconciliation backfills them from other
    sources before the record is validated into a CorporateAction.
    """

    symbol: str
    action_type: CorporateActionType
    effective_date: date
    source: str
    ex_date: date | None = None
    record_date: date | None = None
    split_ratio: Decimal | None = None
    dividend_amount: Decimal | None = None
    dividend_currency: str | None = None
    acquiring_symbol: str | None = None
    exchange_ratio: Decimal | None = None
    verified: bool = False
    external_id: str | None = None

    @property
    def key(self) -> tuple[str, CorporateActionType, date]:
        return (self.symbol.upper(), self.action_type, self.effective_date)

    @classmethod
    def from_action(cls, action: CorporateAction) -> "RawCorporateAction":
        """Flatten a stored action back into the optional-field form."""
        raw = cls(
            symbol=action.symbol,
            action_type=action.action_type,
            effective_date=action.effective_date,
            source=action.source,
            ex_date=action.ex_date,
            record_date=action.record_date,
            verified=action.verified,
            external_id=action.external_id,
        )
        details = action.details
        if isinstance(details, SplitDetails):
            raw.split_ratio = details.ratio
        elif isinstance(details, DividendDetails):
            raw.dividend_amount = details.amount
            raw.dividend_currency = details.currency
        elif isinstance(details, MergerDetails):
            raw.acquiring_symbol = details.acquiring_symbol
            raw.exchange_ratio = details.exchange_ratio
        return raw

    def to_corporate_action(self) -> CorporateAction:
        """Validate into a CorporateAction.

        Missing ex/record dates fall back to the effective date.

        Raises:
            BadRequestError: If the fields required by the action type are missing or invalid.
        """
        details: CorporateActionDetails
        if self.action_type.is_split:
            if self.split_ratio is None:
                raise BadRequestError("Split ratio is required for split actions")
            details = SplitDetails(ratio=self.split_ratio)
        elif self.action_type.is_dividend:
            if self.dividend_amount is None:
                raise BadRequestError("Dividend amount is required for dividend actions")
            details = DividendDetails(
                amount=self.dividend_amount,
                currency=self.dividend_currency or "USD",
            )
        else:
            if not self.acquiring_symbol or self.exchange_ratio is None:
                raise BadRequestError(
                    "Acquiring symbol and exchange ratio are required for merger actions"
                )
            details = MergerDetails(
                acquiring_symbol=self.acquiring_symbol.upper(),
                exchange_ratio=self.exchange_ratio,
            )

        ex_date = self.ex_date or self.effective_date
        return CorporateAction(
            symbol=self.symbol,
            action_type=self.action_type,
            ex_date=ex_date,
            record_date=self.record_date or ex_date,
            effective_date=self.effective_date,
            details=details,
            verified=self.verified,
            source=self.source,
            external_id=self.external_id,
        )


@dataclass
class AppliedCorporateAction:
    """A corporate action folded into an adjusted price, with its factor."""

    action_id: str
    action_type: CorporateActionType
    effective_date: date
    adjustment_factor: Decimal


# ──────────────────────────────────────────────
# Prices
# ──────────────────────────────────────────────


@dataclass
class SourceQuote:
    """One successful quote from a spot price source."""

    symbol: str
    price: Decimal
    source_name: str
    timestamp: datetime = field(default_factory=utc_now)
    latency_ms: float = 0.0


@dataclass
class SourcePrice:
    """Per-source entry in a consensus breakdown."""

    source_name: str
    price: Decimal
    timestamp: datetime
    reliability: Decimal
    latency_ms: float = 0.0
    excluded: bool = False  # rejected as an outlier


@dataclass
class ConsensusResult:
    """Outcome of one consensus computation."""

    symbol: str
    price: Decimal
    confidence: Decimal
    sources: list[SourcePrice] = field(default_factory=list)
    computed_at: datetime = field(default_factory=utc_now)
    is_stale: bool = False


@dataclass
class EquityPriceSnapshot:
    """Persisted consensus price. Append-only: never updated once written."""

    symbol: str
    raw_price: Decimal
    adjusted_price: Decimal
    confidence: Decimal
    price_date: datetime
    sources: list[SourcePrice] = field(default_factory=list)
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)


@dataclass
class PriceQuote:
    """Price read result returned to callers."""

    symbol: str
    raw_price: Decimal
    adjusted_price: Decimal
    confidence: Decimal
    price_date: datetime
    sources: list[SourcePrice] = field(default_factory=list)
    corporate_actions_applied: list[AppliedCorporateAction] = field(default_factory=list)
    last_updated: datetime = field(default_factory=utc_now)
    is_stale: bool = False

    @property
    def price(self) -> Decimal:
        return self.adjusted_price


# ──────────────────────────────────────────────
# Funding rates
# ──────────────────────────────────────────────


@dataclass
class FundingRateComponents:
    """Additive components of a funding rate (annualized percent)."""

    base_rate: Decimal
    corporate_action_adjustment: Decimal
    liquidity_adjustment: Decimal
    volatility_adjustment: Decimal

    @property
    def total(self) -> Decimal:
        return (
            self.base_rate
            + self.corporate_action_adjustment
            + self.liquidity_adjustment
            + self.volatility_adjustment
        )


@dataclass
class FundingRateRecord:
    """A computed funding rate. Immutable once persisted."""

    symbol: str
    rate: Decimal  # annualized percent, clamped
    hourly_rate: Decimal
    mark_price: Decimal
    spot_price: Decimal
    adjusted_spot_price: Decimal
    premium: Decimal
    premium_percentage: Decimal
    components: FundingRateComponents
    calculated_at: datetime
    valid_until: datetime
    onchain_tx_hash: str | None = None
    id: str = field(default_factory=new_id)

    def is_valid_at(self, moment: datetime) -> bool:
        return self.valid_until > moment


@dataclass
class Position:
    """A leveraged perpetual position, as supplied by the caller."""

    id: str
    symbol: str
    leverage: Decimal
    size: Decimal | None = None
