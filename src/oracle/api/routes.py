"""JSON API endpoints for prices, funding rates, corporate actions and leverage risk.

Every Decimal is returned as a string. Oracle errors raised by the
components are mapped to HTTP status codes by the app-level handler.
"""

from __future__ import annotations

import dataclasses
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

import structlog
from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse

from oracle.corporate_actions.adjustment import cumulative_factor
from oracle.exceptions import BadRequestError
from oracle.models import CorporateActionType, Position, RawCorporateAction, utc_now

log = structlog.get_logger(__name__)

router = APIRouter()


def _decimal_to_str(obj: Any) -> Any:
    """Recursively convert Decimal, date and enum values for JSON serialization."""
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return _decimal_to_str(dataclasses.asdict(obj))
    if isinstance(obj, dict):
        return {k: _decimal_to_str(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_decimal_to_str(item) for item in obj]
    return obj


def _json(obj: Any, status_code: int = 200) -> JSONResponse:
    return JSONResponse(content=_decimal_to_str(obj), status_code=status_code)


def _page(items: list[Any], total: int, page: int, page_size: int) -> dict[str, Any]:
    return {"items": items, "total": total, "page": page, "page_size": page_size}


# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------


def _parse_symbols(raw: str) -> list[str]:
    symbols = [s.strip().upper() for s in raw.split(",") if s.strip()]
    if not symbols:
        raise BadRequestError("At least one symbol is required")
    return symbols


def _parse_decimal(value: Any, field: str) -> Decimal:
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise BadRequestError(f"Invalid decimal for {field}: {value}") from exc
    if not result.is_finite():
        raise BadRequestError(f"Invalid decimal for {field}: {value}")
    return result


def _parse_optional_decimal(value: Any, field: str) -> Decimal | None:
    if value is None or value == "":
        return None
    return _parse_decimal(value, field)


def _parse_day(value: str, field: str) -> date:
    try:
        return date.fromisoformat(value[:10])
    except ValueError as exc:
        raise BadRequestError(f"Invalid date for {field}: {value} (expected YYYY-MM-DD)") from exc


def _parse_moment(value: str, field: str) -> datetime:
    try:
        moment = datetime.fromisoformat(value)
    except ValueError as exc:
        raise BadRequestError(f"Invalid timestamp for {field}: {value}") from exc
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def _parse_action_type(value: str) -> CorporateActionType:
    try:
        return CorporateActionType(value)
    except ValueError as exc:
        raise BadRequestError(f"Unknown corporate action type: {value}") from exc


def _position(symbol: str, leverage: str | None, position_id: str | None) -> Position | None:
    if leverage is None:
        return None
    value = _parse_decimal(leverage, "leverage")
    if value <= 0:
        raise BadRequestError("leverage must be greater than 0")
    return Position(id=position_id or symbol.upper(), symbol=symbol.upper(), leverage=value)


async def _json_body(request: Request) -> dict[str, Any]:
    body_bytes = await request.body()
    if not body_bytes:
        return {}
    try:
        body = await request.json()
    except Exception as exc:
        raise BadRequestError("Invalid JSON body") from exc
    if not isinstance(body, dict):
        raise BadRequestError("JSON body must be an object")
    return body


# ---------------------------------------------------------------------------
# Prices
# ---------------------------------------------------------------------------


@router.get("/prices")
async def get_batch_prices(request: Request, symbols: str = "", adjusted: bool = True) -> JSONResponse:
    """Consensus prices for a comma-separated symbol list (max 50). Failing symbols are omitted."""
    aggregator = request.app.state.aggregator
    quotes = await aggregator.get_batch_prices(_parse_symbols(symbols), adjusted=adjusted)
    return _json(quotes)


@router.get("/prices/{symbol}")
async def get_price(request: Request, symbol: str, adjusted: bool = True) -> JSONResponse:
    aggregator = request.app.state.aggregator
    quote = await aggregator.get_price(symbol, adjusted=adjusted)
    return _json(quote)


@router.get("/prices/{symbol}/history")
async def get_price_history(
    request: Request,
    symbol: str,
    from_: str | None = Query(None, alias="from"),
    to: str | None = None,
) -> JSONResponse:
    """Persisted snapshots between from and to (ISO timestamps). Defaults to the last 30 days."""
    end = _parse_moment(to, "to") if to else utc_now()
    start = _parse_moment(from_, "from") if from_ else end - timedelta(days=30)
    aggregator = request.app.state.aggregator
    history = await aggregator.get_price_history(symbol, start, end)
    return _json(history)


@router.get("/prices/{symbol}/at/{day}")
async def get_price_at_date(request: Request, symbol: str, day: str) -> JSONResponse:
    aggregator = request.app.state.aggregator
    quote = await aggregator.get_price_at_date(symbol, _parse_day(day, "date"))
    return _json(quote)


@router.get("/prices/{symbol}/adjustments")
async def get_adjustment_history(
    request: Request,
    symbol: str,
    from_: str | None = Query(None, alias="from"),
    to: str | None = None,
) -> JSONResponse:
    """Per-action adjustment steps from a base price of 100."""
    start = _parse_day(from_, "from") if from_ else date(1970, 1, 1)
    end = _parse_day(to, "to") if to else utc_now().date()
    if start > end:
        raise BadRequestError("from date must not be after to date")
    adjustment = request.app.state.adjustment
    steps = await adjustment.adjustment_history(symbol.upper(), start, end)
    factor = cumulative_factor(steps)
    return _json({"symbol": symbol.upper(), "cumulative_factor": factor, "steps": steps})


# ---------------------------------------------------------------------------
# Funding rates
# ---------------------------------------------------------------------------


@router.get("/funding-rates")
async def get_batch_funding_rates(request: Request, symbols: str = "") -> JSONResponse:
    funding = request.app.state.funding
    rates = await funding.get_batch(_parse_symbols(symbols))
    return _json(rates)


@router.get("/funding-rates/{symbol}")
async def get_funding_rate(request: Request, symbol: str) -> JSONResponse:
    funding = request.app.state.funding
    return _json(await funding.get_current(symbol))


@router.get("/funding-rates/{symbol}/history")
async def get_funding_rate_history(request: Request, symbol: str, hours: int = 24) -> JSONResponse:
    funding = request.app.state.funding
    return _json(await funding.get_history(symbol, hours=hours))


@router.post("/funding-rates/{symbol}/calculate")
async def calculate_funding_rate(request: Request, symbol: str) -> JSONResponse:
    """Compute and persist a funding rate. Body: {"mark_price": "..."}."""
    body = await _json_body(request)
    if "mark_price" not in body:
        raise BadRequestError("Missing required field: mark_price")
    mark_price = _parse_decimal(body["mark_price"], "mark_price")
    funding = request.app.state.funding
    record = await funding.calculate(symbol, mark_price)
    return _json(record, status_code=201)


# ---------------------------------------------------------------------------
# Corporate actions
# ---------------------------------------------------------------------------


@router.get("/corporate-actions/{symbol}")
async def list_corporate_actions(
    request: Request,
    symbol: str,
    from_: str | None = Query(None, alias="from"),
    to: str | None = None,
    type: str | None = None,
    page: int = 1,
    page_size: int = 20,
) -> JSONResponse:
    service = request.app.state.corporate_actions
    items, total = await service.list_actions(
        symbol,
        start=_parse_day(from_, "from") if from_ else None,
        end=_parse_day(to, "to") if to else None,
        action_type=_parse_action_type(type) if type else None,
        page=page,
        page_size=page_size,
    )
    return _json(_page(items, total, page, page_size))


@router.get("/corporate-actions/{symbol}/upcoming")
async def get_upcoming_corporate_actions(request: Request, symbol: str, days: int = 30) -> JSONResponse:
    service = request.app.state.corporate_actions
    return _json(await service.get_upcoming_actions(symbol, days_ahead=days))


@router.post("/corporate-actions/{symbol}/refresh")
async def refresh_corporate_actions(request: Request, symbol: str, since: str | None = None) -> JSONResponse:
    """Re-fetch every provider and reconcile. Defaults to the last two years."""
    today = utc_now().date()
    start = _parse_day(since, "since") if since else today - timedelta(days=730)
    service = request.app.state.corporate_actions
    actions = await service.fetch_and_reconcile(symbol, start)
    log.info("corporate_actions_refreshed_via_api", symbol=symbol.upper(), count=len(actions))
    return _json(actions)


@router.post("/corporate-actions")
async def create_corporate_action(request: Request) -> JSONResponse:
    """Manual entry. Required: symbol, action_type, effective_date plus the per-type details."""
    body = await _json_body(request)
    for field in ("symbol", "action_type", "effective_date"):
        if field not in body:
            raise BadRequestError(f"Missing required field: {field}")

    raw = RawCorporateAction(
        symbol=str(body["symbol"]),
        action_type=_parse_action_type(str(body["action_type"])),
        effective_date=_parse_day(str(body["effective_date"]), "effective_date"),
        source=str(body.get("source") or "manual"),
        ex_date=_parse_day(str(body["ex_date"]), "ex_date") if body.get("ex_date") else None,
        record_date=(
            _parse_day(str(body["record_date"]), "record_date") if body.get("record_date") else None
        ),
        split_ratio=_parse_optional_decimal(body.get("split_ratio"), "split_ratio"),
        dividend_amount=_parse_optional_decimal(body.get("dividend_amount"), "dividend_amount"),
        dividend_currency=body.get("dividend_currency"),
        acquiring_symbol=body.get("acquiring_symbol"),
        exchange_ratio=_parse_optional_decimal(body.get("exchange_ratio"), "exchange_ratio"),
        verified=bool(body.get("verified", False)),
        external_id=body.get("external_id"),
    )
    service = request.app.state.corporate_actions
    action = await service.create_action(raw)
    return _json(action, status_code=201)


@router.delete("/corporate-actions/{action_id}")
async def delete_corporate_action(request: Request, action_id: str) -> JSONResponse:
    service = request.app.state.corporate_actions
    action = await service.soft_delete(action_id)
    return _json({"id": action.id, "deleted": True})


# ---------------------------------------------------------------------------
# Leverage risk
# ---------------------------------------------------------------------------


@router.get("/risk/windows/active")
async def get_active_risk_windows(request: Request, symbols: str = "") -> JSONResponse:
    identifier = request.app.state.risk_windows
    return _json(await identifier.get_active_windows(_parse_symbols(symbols)))


@router.get("/risk/{symbol}/assessment")
async def get_risk_assessment(
    request: Request,
    symbol: str,
    leverage: str | None = None,
    position_id: str | None = None,
) -> JSONResponse:
    assessor = request.app.state.risk_assessor
    assessment = await assessor.assess_risk(symbol, _position(symbol, leverage, position_id))
    return _json(assessment)


@router.get("/risk/{symbol}/window")
async def get_risk_window(request: Request, symbol: str) -> JSONResponse:
    identifier = request.app.state.risk_windows
    return _json(await identifier.identify_window(symbol))


@router.get("/risk/{symbol}/recommendations")
async def get_risk_recommendations(
    request: Request, symbol: str, page: int = 1, page_size: int = 20
) -> JSONResponse:
    engine = request.app.state.recommendations
    items, total = await engine.get_recommendations(symbol, page=page, page_size=page_size)
    return _json(_page(items, total, page, page_size))


@router.post("/risk/{symbol}/recommendations/generate")
async def generate_risk_recommendations(request: Request, symbol: str) -> JSONResponse:
    """Body (optional): {"leverage": "...", "position_id": "..."}."""
    body = await _json_body(request)
    leverage = body.get("leverage")
    position = _position(
        symbol, str(leverage) if leverage is not None else None, body.get("position_id")
    )
    engine = request.app.state.recommendations
    created = await engine.generate_recommendations(symbol, position)
    return _json(created, status_code=201)


@router.post("/risk/recommendations/{recommendation_id}/acknowledge")
async def acknowledge_recommendation(request: Request, recommendation_id: str) -> JSONResponse:
    body = await _json_body(request)
    engine = request.app.state.recommendations
    rec = await engine.acknowledge(recommendation_id, acknowledged_by=body.get("acknowledged_by"))
    return _json(rec)
