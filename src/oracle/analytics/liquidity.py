"""Liquidity score (0-1) blended from data availability, price stability
and recent activity.

    score = w_data * min(1, points / lookback_days)
          + w_stability * min(1, max(0, 1 - 2 * CV))
          + w_recent * min(1, recent_points / recent_days)

where CV is the coefficient of variation (population std dev / mean).
"""

from decimal import Decimal

from oracle.config import AnalyticsSettings

_ZERO = Decimal("0")
_ONE = Decimal("1")
_TWO = Decimal("2")


def _bounded(value: Decimal) -> Decimal:
    return min(_ONE, max(_ZERO, value))


def coefficient_of_variation(prices: list[Decimal]) -> Decimal | None:
    """Population std dev over mean; None when the mean is not positive."""
    n = Decimal(len(prices))
    mean = sum(prices, _ZERO) / n
    if mean <= _ZERO:
        return None
    variance = sum(((p - mean) ** 2 for p in prices), _ZERO) / n
    return variance.sqrt() / mean


def price_stability(prices: list[Decimal]) -> Decimal | None:
    """1 for a constant series, falling to 0 as CV reaches 0.5."""
    if len(prices) < 2:
        return None
    cv = coefficient_of_variation(prices)
    if cv is None:
        return None
    return _bounded(_ONE - _TWO * cv)


def compute_liquidity_score(
    prices: list[Decimal],
    recent_points: int,
    settings: AnalyticsSettings,
) -> Decimal:
    """Blend the three liquidity terms for a daily close series.

    Args:
        prices: Daily closes over the lookback window.
        recent_points: How many of those closes fall in the recent-activity window.
        settings: Lookback lengths, weights and the default score.

    Returns:
        Score in [0, 1]. The default score when there are no points; only the
        data-availability term for a single point or a non-positive mean.
    """
    if not prices:
        return settings.default_liquidity

    availability = _bounded(Decimal(len(prices)) / Decimal(settings.lookback_days))
    score = settings.weight_data_availability * availability

    stability = price_stability(prices)
    if stability is None:
        return score

    recent = _bounded(Decimal(recent_points) / Decimal(settings.recent_activity_days))
    score += settings.weight_price_stability * stability
    score += settings.weight_recent_activity * recent
    return _bounded(score)
