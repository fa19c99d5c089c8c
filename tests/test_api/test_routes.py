"""Tests for the JSON API.

Components on app.state are replaced with mocks; the tests check request
parsing, Decimal-as-string serialization and the error -> status mapping.
"""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from oracle.api.app import create_app, status_for
from oracle.corporate_actions.adjustment import AdjustmentStep
from oracle.exceptions import (
    BadRequestError,
    ConflictError,
    InsufficientDataError,
    InternalError,
    NotFoundError,
    OracleError,
)
from oracle.models import (
    CorporateAction,
    CorporateActionType,
    FundingRateComponents,
    FundingRateRecord,
    Position,
    PriceQuote,
    SourcePrice,
    SplitDetails,
)
from oracle.risk.models import RiskAssessment, RiskLevel

NOW = datetime(2024, 6, 3, 15, 0, tzinfo=timezone.utc)


def _make_quote() -> PriceQuote:
    return PriceQuote(
        symbol="AAPL",
        raw_price=Decimal("500.00"),
        adjusted_price=Decimal("125.00"),
        confidence=Decimal("0.925"),
        price_date=NOW,
        sources=[SourcePrice("IEX Cloud", Decimal("500.00"), NOW, Decimal("0.95"))],
    )


def _make_action() -> CorporateAction:
    day = date(2020, 8, 31)
    return CorporateAction(
        symbol="AAPL",
        action_type=CorporateActionType.STOCK_SPLIT,
        ex_date=day,
        record_date=day,
        effective_date=day,
        details=SplitDetails(Decimal("4")),
        source="manual",
    )


def _make_funding() -> FundingRateRecord:
    return FundingRateRecord(
        symbol="AAPL",
        rate=Decimal("0.16"),
        hourly_rate=Decimal("0.16") / Decimal(8760),
        mark_price=Decimal("101"),
        spot_price=Decimal("400"),
        adjusted_spot_price=Decimal("100"),
        premium=Decimal("1"),
        premium_percentage=Decimal("1"),
        components=FundingRateComponents(Decimal("0.1"), Decimal("0"), Decimal("0.05"), Decimal("0.01")),
        calculated_at=NOW,
        valid_until=NOW + timedelta(hours=1),
    )


@pytest.fixture
def app():
    app = create_app()
    for name in (
        "aggregator",
        "adjustment",
        "corporate_actions",
        "funding",
        "risk_windows",
        "risk_assessor",
        "recommendations",
    ):
        setattr(app.state, name, MagicMock())
    return app


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


class TestStatusMapping:
    @pytest.mark.parametrize(
        "exc, status",
        [
            (NotFoundError("x"), 404),
            (ConflictError("x"), 409),
            (BadRequestError("x"), 400),
            (InsufficientDataError("x"), 422),
            (InternalError("x"), 500),
            (OracleError("x"), 500),
        ],
    )
    def test_status_for(self, exc, status) -> None:
        assert status_for(exc) == status


# ---------------------------------------------------------------------------
# Prices
# ---------------------------------------------------------------------------


class TestPriceRoutes:
    def test_get_price_serializes_decimals(self, app, client) -> None:
        app.state.aggregator.get_price = AsyncMock(return_value=_make_quote())

        resp = client.get("/api/prices/aapl?adjusted=false")

        assert resp.status_code == 200
        body = resp.json()
        assert body["raw_price"] == "500.00"
        assert body["adjusted_price"] == "125.00"
        assert body["sources"][0]["reliability"] == "0.95"
        assert body["price_date"] == NOW.isoformat()
        app.state.aggregator.get_price.assert_awaited_once_with("aapl", adjusted=False)

    def test_not_found_maps_to_404(self, app, client) -> None:
        app.state.aggregator.get_price = AsyncMock(side_effect=NotFoundError("No price available for ZZZZ"))
        resp = client.get("/api/prices/ZZZZ")
        assert resp.status_code == 404
        assert resp.json() == {"error": "No price available for ZZZZ"}

    def test_batch_requires_symbols(self, client) -> None:
        resp = client.get("/api/prices?symbols=")
        assert resp.status_code == 400

    def test_batch_parses_symbol_list(self, app, client) -> None:
        app.state.aggregator.get_batch_prices = AsyncMock(return_value={"AAPL": _make_quote()})
        resp = client.get("/api/prices?symbols=aapl, msft")
        assert resp.status_code == 200
        assert list(resp.json()) == ["AAPL"]
        app.state.aggregator.get_batch_prices.assert_awaited_once_with(["AAPL", "MSFT"], adjusted=True)

    def test_price_at_date_rejects_bad_date(self, client) -> None:
        assert client.get("/api/prices/AAPL/at/2024-13-40").status_code == 400

    def test_adjustments(self, app, client) -> None:
        app.state.adjustment.adjustment_history = AsyncMock(return_value=[])
        resp = client.get("/api/prices/aapl/adjustments?from=2020-01-01&to=2021-01-01")
        assert resp.status_code == 200
        assert resp.json() == {"symbol": "AAPL", "cumulative_factor": "1", "steps": []}

    def test_adjustments_factor_covers_action_on_start_day(self, app, client) -> None:
        steps = [
            AdjustmentStep(
                action_id="split-1",
                action_type=CorporateActionType.STOCK_SPLIT,
                effective_date=date(2020, 1, 1),
                price_before=Decimal("100"),
                price_after=Decimal("50"),
                adjustment_factor=Decimal("0.5"),
            ),
            AdjustmentStep(
                action_id="merger-1",
                action_type=CorporateActionType.MERGER,
                effective_date=date(2020, 6, 1),
                price_before=Decimal("50"),
                price_after=Decimal("75"),
                adjustment_factor=Decimal("1.5"),
            ),
        ]
        app.state.adjustment.adjustment_history = AsyncMock(return_value=steps)

        resp = client.get("/api/prices/AAPL/adjustments?from=2020-01-01&to=2021-01-01")

        body = resp.json()
        assert body["cumulative_factor"] == "0.75"
        assert [s["effective_date"] for s in body["steps"]] == ["2020-01-01", "2020-06-01"]
        app.state.adjustment.adjustment_history.assert_awaited_once_with(
            "AAPL", date(2020, 1, 1), date(2021, 1, 1)
        )


# ---------------------------------------------------------------------------
# Funding rates
# ---------------------------------------------------------------------------


class TestFundingRoutes:
    def test_calculate_created(self, app, client) -> None:
        app.state.funding.calculate = AsyncMock(return_value=_make_funding())

        resp = client.post("/api/funding-rates/AAPL/calculate", json={"mark_price": "101"})

        assert resp.status_code == 201
        body = resp.json()
        assert body["rate"] == "0.16"
        assert body["components"]["liquidity_adjustment"] == "0.05"
        app.state.funding.calculate.assert_awaited_once_with("AAPL", Decimal("101"))

    @pytest.mark.parametrize("body", [{}, {"mark_price": "abc"}, {"mark_price": "NaN"}])
    def test_calculate_rejects_bad_mark_price(self, client, body) -> None:
        resp = client.post("/api/funding-rates/AAPL/calculate", json=body)
        assert resp.status_code == 400

    def test_current_not_found(self, app, client) -> None:
        app.state.funding.get_current = AsyncMock(side_effect=NotFoundError("none"))
        assert client.get("/api/funding-rates/AAPL").status_code == 404


# ---------------------------------------------------------------------------
# Corporate actions
# ---------------------------------------------------------------------------


class TestCorporateActionRoutes:
    def test_create(self, app, client) -> None:
        app.state.corporate_actions.create_action = AsyncMock(return_value=_make_action())

        resp = client.post(
            "/api/corporate-actions",
            json={
                "symbol": "aapl",
                "action_type": "stock_split",
                "effective_date": "2020-08-31",
                "split_ratio": "4",
            },
        )

        assert resp.status_code == 201
        assert resp.json()["details"] == {"ratio": "4"}
        raw = app.state.corporate_actions.create_action.await_args.args[0]
        assert raw.split_ratio == Decimal("4")
        assert raw.source == "manual"

    def test_create_conflict(self, app, client) -> None:
        app.state.corporate_actions.create_action = AsyncMock(side_effect=ConflictError("exists"))
        resp = client.post(
            "/api/corporate-actions",
            json={"symbol": "AAPL", "action_type": "stock_split", "effective_date": "2020-08-31"},
        )
        assert resp.status_code == 409

    def test_create_missing_field(self, client) -> None:
        resp = client.post("/api/corporate-actions", json={"symbol": "AAPL"})
        assert resp.status_code == 400
        assert "action_type" in resp.json()["error"]

    def test_list_pages(self, app, client) -> None:
        app.state.corporate_actions.list_actions = AsyncMock(return_value=([_make_action()], 7))
        resp = client.get("/api/corporate-actions/AAPL?type=stock_split&page=2&page_size=5")
        assert resp.status_code == 200
        body = resp.json()
        assert (body["total"], body["page"], body["page_size"]) == (7, 2, 5)
        kwargs = app.state.corporate_actions.list_actions.await_args.kwargs
        assert kwargs["action_type"] == CorporateActionType.STOCK_SPLIT

    def test_list_unknown_type(self, client) -> None:
        assert client.get("/api/corporate-actions/AAPL?type=bogus").status_code == 400

    def test_delete(self, app, client) -> None:
        app.state.corporate_actions.soft_delete = AsyncMock(return_value=_make_action())
        resp = client.delete("/api/corporate-actions/abc")
        assert resp.status_code == 200
        assert resp.json()["deleted"] is True


# ---------------------------------------------------------------------------
# Leverage risk
# ---------------------------------------------------------------------------


class TestRiskRoutes:
    def test_assessment_with_position(self, app, client) -> None:
        app.state.risk_assessor.assess_risk = AsyncMock(
            return_value=RiskAssessment(
                symbol="AAPL",
                level=RiskLevel.CRITICAL,
                current_leverage=Decimal("5"),
                recommended_leverage=Decimal("1.5"),
                risk_score=Decimal("100"),
                assessed_at=NOW,
            )
        )

        resp = client.get("/api/risk/aapl/assessment?leverage=5&position_id=p1")

        assert resp.status_code == 200
        assert resp.json()["level"] == "critical"
        assert resp.json()["recommended_leverage"] == "1.5"
        symbol, position = app.state.risk_assessor.assess_risk.await_args.args
        assert position == Position(id="p1", symbol="AAPL", leverage=Decimal("5"))

    def test_assessment_rejects_non_positive_leverage(self, client) -> None:
        assert client.get("/api/risk/AAPL/assessment?leverage=0").status_code == 400

    def test_generate_without_body(self, app, client) -> None:
        app.state.recommendations.generate_recommendations = AsyncMock(return_value=[])
        resp = client.post("/api/risk/AAPL/recommendations/generate")
        assert resp.status_code == 201
        assert resp.json() == []
        app.state.recommendations.generate_recommendations.assert_awaited_once_with("AAPL", None)

    def test_acknowledge_unknown(self, app, client) -> None:
        app.state.recommendations.acknowledge = AsyncMock(side_effect=NotFoundError("missing"))
        resp = client.post("/api/risk/recommendations/xyz/acknowledge", json={"acknowledged_by": "desk"})
        assert resp.status_code == 404

    def test_active_windows_requires_symbols(self, client) -> None:
        assert client.get("/api/risk/windows/active").status_code == 400
