"""Annualized historical volatility from daily closes.

Pure Decimal computation: simple daily returns, sample standard deviation
(N-1 denominator), scaled by sqrt(trading days per year).

CRITICAL: All values use Decimal. Never use float for prices or volatility.
"""

from decimal import Decimal

from oracle.exceptions import InsufficientDataError

_ZERO = Decimal("0")


def daily_returns(closes: list[Decimal]) -> list[Decimal]:
    """Simple returns between consecutive closes, skipping non-positive bases."""
    return [
        (current - previous) / previous
        for previous, current in zip(closes, closes[1:])
        if previous > _ZERO
    ]


def compute_volatility(closes: list[Decimal], trading_days_per_year: int = 252) -> Decimal:
    """Annualized volatility of a close series ordered oldest first.

    Args:
        closes: One adjusted close per day, ascending by date.
        trading_days_per_year: Annualization factor. Default 252.

    Returns:
        Annualized volatility as a fraction (0.25 = 25%). Exactly 0 for a
        constant series.

    Raises:
        InsufficientDataError: Fewer than 2 closes, or fewer than 2 returns.
    """
    if len(closes) < 2:
        raise InsufficientDataError(
            f"Volatility needs at least 2 prices, got {len(closes)}"
        )

    returns = daily_returns(closes)
    if len(returns) < 2:
        raise InsufficientDataError(
            f"Volatility needs at least 2 returns, got {len(returns)}"
        )

    n = Decimal(len(returns))
    mean = sum(returns, _ZERO) / n
    variance = sum(((r - mean) ** 2 for r in returns), _ZERO) / (n - Decimal("1"))
    if variance == _ZERO:
        return _ZERO
    return variance.sqrt() * Decimal(trading_days_per_year).sqrt()
