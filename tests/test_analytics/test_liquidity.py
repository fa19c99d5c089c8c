"""Tests for the liquidity score blend."""

from decimal import Decimal

import pytest

from oracle.analytics.liquidity import (
    coefficient_of_variation,
    compute_liquidity_score,
    price_stability,
)
from oracle.config import AnalyticsSettings


@pytest.fixture
def settings() -> AnalyticsSettings:
    return AnalyticsSettings()


class TestStability:
    def test_constant_series_fully_stable(self) -> None:
        assert coefficient_of_variation([Decimal("10")] * 3) == Decimal("0")
        assert price_stability([Decimal("10")] * 3) == Decimal("1")

    def test_cv_half_is_zero_stability(self) -> None:
        prices = [Decimal("50"), Decimal("150")]
        assert coefficient_of_variation(prices) == Decimal("0.5")
        assert price_stability(prices) == Decimal("0")

    def test_single_point_has_no_stability(self) -> None:
        assert price_stability([Decimal("10")]) is None

    def test_non_positive_mean(self) -> None:
        assert coefficient_of_variation([Decimal("0"), Decimal("0")]) is None


class TestLiquidityScore:
    def test_no_data_returns_default(self, settings) -> None:
        assert compute_liquidity_score([], 0, settings) == Decimal("0.5")

    def test_full_constant_history_scores_one(self, settings) -> None:
        assert compute_liquidity_score([Decimal("100")] * 30, 7, settings) == Decimal("1")

    def test_single_point_availability_only(self, settings) -> None:
        score = compute_liquidity_score([Decimal("100")], 1, settings)
        assert score == Decimal("0.3") * (Decimal(1) / Decimal(30))

    def test_blend(self, settings) -> None:
        score = compute_liquidity_score([Decimal("50"), Decimal("150")], 2, settings)
        expected = Decimal("0.3") * (Decimal(2) / Decimal(30)) + Decimal("0.2") * (Decimal(2) / Decimal(7))
        assert abs(score - expected) < Decimal("1e-20")

    def test_bounded(self, settings) -> None:
        score = compute_liquidity_score([Decimal("100")] * 90, 40, settings)
        assert Decimal("0") <= score <= Decimal("1")
