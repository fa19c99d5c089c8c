"""Shared test fixtures for the equity price oracle."""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
import pytest_asyncio

from oracle.config import (
    AnalyticsSettings,
    AppSettings,
    ConsensusSettings,
    FundingSettings,
    RiskSettings,
)
from oracle.data import OracleDatabase, OracleDataStore
from oracle.exceptions import SourceError
from oracle.models import RawCorporateAction, SourceQuote
from oracle.sources.base import CorporateActionSource, SpotPriceSource

NOW = datetime(2024, 6, 3, 15, 0, tzinfo=timezone.utc)


class FakePriceSource(SpotPriceSource):
    """Spot source returning a fixed price, or raising when price is None."""

    def __init__(
        self,
        name: str,
        price: Decimal | None,
        reliability: Decimal = Decimal("0.9"),
        supports_history: bool = False,
        history: dict[date, Decimal] | None = None,
    ) -> None:
        self.name = name
        self.price = price
        self.reliability_score = reliability
        self.supports_history = supports_history
        self.history = history or {}
        self.calls = 0

    async def fetch(self, symbol: str) -> SourceQuote:
        self.calls += 1
        if self.price is None:
            raise SourceError(f"{self.name} unavailable")
        return SourceQuote(symbol=symbol, price=self.price, source_name=self.name, timestamp=NOW)

    async def fetch_at_date(self, symbol: str, day: date) -> SourceQuote:
        if day not in self.history:
            raise SourceError(f"{self.name} has no bar for {day}")
        return SourceQuote(symbol=symbol, price=self.history[day], source_name=self.name, timestamp=NOW)


class FakeActionSource(CorporateActionSource):
    """Corporate action source returning canned records, or raising when fail=True."""

    def __init__(
        self,
        name: str,
        actions: list[RawCorporateAction] | None = None,
        reliability: Decimal = Decimal("0.9"),
        fail: bool = False,
    ) -> None:
        self.name = name
        self.actions = actions or []
        self.reliability_score = reliability
        self.fail = fail

    async def fetch_actions(self, symbol: str, since: date) -> list[RawCorporateAction]:
        if self.fail:
            raise SourceError(f"{self.name} unavailable")
        return [a for a in self.actions if a.symbol == symbol and a.effective_date >= since]


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def price_source_cls() -> type[FakePriceSource]:
    return FakePriceSource


@pytest.fixture
def action_source_cls() -> type[FakeActionSource]:
    return FakeActionSource


@pytest.fixture
def mock_settings() -> AppSettings:
    """Return AppSettings with test defaults (no provider keys, in-memory friendly)."""
    return AppSettings(log_level="DEBUG")


@pytest.fixture
def consensus_settings() -> ConsensusSettings:
    return ConsensusSettings()


@pytest.fixture
def funding_settings() -> FundingSettings:
    return FundingSettings()


@pytest.fixture
def analytics_settings() -> AnalyticsSettings:
    return AnalyticsSettings()


@pytest.fixture
def risk_settings() -> RiskSettings:
    return RiskSettings()


@pytest_asyncio.fixture
async def database(tmp_path):
    """Connected OracleDatabase backed by a temporary file."""
    db = OracleDatabase(str(tmp_path / "oracle.db"))
    await db.connect()
    yield db
    await db.close()


@pytest_asyncio.fixture
async def store(database) -> OracleDataStore:
    return OracleDataStore(database)
