"""Statistical consensus over same-symbol quotes from independent sources.

Pure functions, no I/O. The aggregator collects quotes and hands them here.

Outlier rejection: each quote is compared with the median of the *other*
quotes, and rejected when its distance exceeds
``max(outlier_sigma * sigma, agreement_tolerance * median)``, where sigma is
the population standard deviation of the other quotes around their median,
so a quote never contributes to the spread it is judged by. If every quote
would be rejected, all are kept.

CRITICAL: All computations use Decimal. Never use float for prices or confidence.
"""

from __future__ import annotations

from decimal import Decimal

from oracle.config import ConsensusSettings
from oracle.models import ConsensusResult, SourcePrice

_ZERO = Decimal("0")
_ONE = Decimal("1")
_TWO = Decimal("2")


def median(values: list[Decimal]) -> Decimal:
    """Median of a non-empty list."""
    if not values:
        raise ValueError("median of empty sequence")
    ordered = sorted(values)
    mid = len(ordered) // 2
    if len(ordered) % 2:
        return ordered[mid]
    return (ordered[mid - 1] + ordered[mid]) / _TWO


def population_std(values: list[Decimal], center: Decimal) -> Decimal:
    """Population standard deviation of values around an arbitrary center."""
    if not values:
        return _ZERO
    variance = sum(((v - center) ** 2 for v in values), _ZERO) / Decimal(len(values))
    return variance.sqrt()


def clamp(value: Decimal, low: Decimal, high: Decimal) -> Decimal:
    return max(low, min(high, value))


def is_outlier(
    price: Decimal,
    others: list[Decimal],
    outlier_sigma: Decimal,
    tolerance: Decimal,
) -> bool:
    """Whether price deviates beyond the rejection band of the other quotes."""
    if not others:
        return False
    center = median(others)
    spread = population_std(others, center)
    band = max(outlier_sigma * spread, tolerance * abs(center))
    return abs(price - center) > band


def reject_outliers(
    prices: list[SourcePrice],
    outlier_sigma: Decimal,
    tolerance: Decimal,
) -> tuple[list[SourcePrice], list[SourcePrice]]:
    """Split quotes into (kept, excluded). Never returns an empty kept list."""
    if len(prices) < 2:
        return list(prices), []

    kept: list[SourcePrice] = []
    excluded: list[SourcePrice] = []
    for i, candidate in enumerate(prices):
        others = [p.price for j, p in enumerate(prices) if j != i]
        if is_outlier(candidate.price, others, outlier_sigma, tolerance):
            excluded.append(candidate)
        else:
            kept.append(candidate)

    if not kept:
        return list(prices), []
    return kept, excluded


def weighted_price(prices: list[SourcePrice]) -> Decimal:
    """Reliability-weighted mean; plain median when the total weight is zero."""
    total_weight = sum((p.reliability for p in prices), _ZERO)
    if total_weight == 0:
        return median([p.price for p in prices])
    return sum((p.price * p.reliability for p in prices), _ZERO) / total_weight


def agreement_fraction(prices: list[SourcePrice], consensus: Decimal, tolerance: Decimal) -> Decimal:
    """Fraction of quotes within tolerance (relative) of the consensus price."""
    if not prices:
        return _ZERO
    if consensus == 0:
        agreeing = sum(1 for p in prices if p.price == 0)
    else:
        agreeing = sum(1 for p in prices if abs(p.price - consensus) / abs(consensus) <= tolerance)
    return Decimal(agreeing) / Decimal(len(prices))


def consensus_confidence(
    prices: list[SourcePrice],
    consensus: Decimal,
    settings: ConsensusSettings,
) -> Decimal:
    """agreement x mean reliability x min(1, n / full_confidence_sources), clamped to [0, 1]."""
    if not prices:
        return _ZERO
    agreement = agreement_fraction(prices, consensus, settings.agreement_tolerance)
    mean_reliability = sum((p.reliability for p in prices), _ZERO) / Decimal(len(prices))
    coverage = min(_ONE, Decimal(len(prices)) / Decimal(settings.full_confidence_sources))
    return clamp(agreement * mean_reliability * coverage, _ZERO, _ONE)


def build_consensus(
    symbol: str,
    prices: list[SourcePrice],
    settings: ConsensusSettings,
) -> ConsensusResult:
    """Reduce one or more source quotes to a consensus price and confidence.

    Args:
        symbol: Equity symbol the quotes belong to.
        prices: Successful quotes with their source reliability.
        settings: Outlier and confidence policy.

    Returns:
        ConsensusResult whose sources list every input quote, with rejected
        quotes flagged ``excluded``.

    Raises:
        ValueError: If prices is empty.
    """
    if not prices:
        raise ValueError("consensus requires at least one quote")

    if len(prices) == 1:
        only = prices[0]
        return ConsensusResult(
            symbol=symbol,
            price=only.price,
            confidence=clamp(only.reliability, _ZERO, _ONE),
            sources=[only],
        )

    kept, excluded = reject_outliers(
        prices, settings.outlier_sigma, settings.agreement_tolerance
    )
    for quote in excluded:
        quote.excluded = True

    price = weighted_price(kept)
    confidence = consensus_confidence(kept, price, settings)
    return ConsensusResult(
        symbol=symbol,
        price=price,
        confidence=confidence,
        sources=[*kept, *excluded],
    )
