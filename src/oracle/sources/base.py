"""Abstract market data source interfaces.

Defines the contract for every external provider. The aggregating services
depend only on these interfaces, keeping provider-specific URL and payload
details isolated in the concrete adapters.
"""

from abc import ABC, abstractmethod
from datetime import date
from decimal import Decimal

from oracle.models import RawCorporateAction, SourceQuote


class SpotPriceSource(ABC):
    """A provider of current equity quotes with a fixed reliability weight."""

    #: Display name recorded in consensus breakdowns.
    name: str = ""
    #: Weight in (0, 1] used by the consensus computation.
    reliability_score: Decimal = Decimal("0.5")
    #: Whether fetch_at_date is supported.
    supports_history: bool = False

    @abstractmethod
    async def fetch(self, symbol: str) -> SourceQuote:
        """Fetch the latest quote.

        Raises:
            SourceError: If the provider fails or returns no usable price.
        """
        ...

    async def fetch_at_date(self, symbol: str, day: date) -> SourceQuote:
        """Fetch the closing price on a past trading day."""
        raise NotImplementedError(f"{self.name} does not support historical prices")

    async def close(self) -> None:
        """Release network resources."""


class CorporateActionSource(ABC):
    """A provider of corporate action records."""

    name: str = ""
    reliability_score: Decimal = Decimal("0.5")

    @abstractmethod
    async def fetch_actions(self, symbol: str, since: date) -> list[RawCorporateAction]:
        """Fetch actions effective on or after since.

        Raises:
            SourceError: If the provider call fails.
        """
        ...

    async def close(self) -> None:
        """Release network resources."""
