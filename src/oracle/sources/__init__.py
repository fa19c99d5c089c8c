"""External data source adapters -- spot prices and corporate actions."""

from oracle.sources.base import CorporateActionSource, SpotPriceSource
from oracle.sources.registry import SourceRegistry, build_sources

__all__ = [
    "CorporateActionSource",
    "SourceRegistry",
    "SpotPriceSource",
    "build_sources",
]
