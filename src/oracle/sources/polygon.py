"""Polygon.io adapters: spot prices (historical-capable) and corporate actions.

Prices come from the aggregates endpoints; "c" is the close of the bar.
Splits and dividends come from the v2 reference endpoints.
"""

from __future__ import annotations

import asyncio
import time
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any

from oracle.exceptions import SourceError
from oracle.models import CorporateActionType, RawCorporateAction, SourceQuote
from oracle.sources.base import CorporateActionSource, SpotPriceSource
from oracle.sources.http import JsonHttpClient, parse_date, parse_decimal

SOURCE_NAME = "Polygon.io"
RELIABILITY = Decimal("0.90")


def _close_from_aggregates(payload: Any, symbol: str) -> tuple[Decimal, datetime]:
    results = payload.get("results") if isinstance(payload, dict) else None
    if not results:
        raise SourceError(f"{SOURCE_NAME} returned no bars for {symbol}")
    bar = results[0]
    close = parse_decimal(bar.get("c"))
    if close is None or close <= 0:
        raise SourceError(f"{SOURCE_NAME} returned an invalid close for {symbol}")
    ts = bar.get("t")
    moment = (
        datetime.fromtimestamp(ts / 1000, tz=timezone.utc)
        if isinstance(ts, (int, float))
        else datetime.now(timezone.utc)
    )
    return close, moment


class PolygonPriceSource(SpotPriceSource):
    """Previous-close quotes with point-in-time support."""

    name = SOURCE_NAME
    reliability_score = RELIABILITY
    supports_history = True

    def __init__(self, api_key: str, base_url: str, http: JsonHttpClient) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._http = http

    async def fetch(self, symbol: str) -> SourceQuote:
        started = time.perf_counter()
        payload = await self._http.get_json(
            f"{self._base_url}/v2/aggs/ticker/{symbol}/prev",
            params={"adjusted": "true", "apikey": self._api_key},
        )
        price, moment = _close_from_aggregates(payload, symbol)
        return SourceQuote(
            symbol=symbol,
            price=price,
            source_name=self.name,
            timestamp=moment,
            latency_ms=(time.perf_counter() - started) * 1000,
        )

    async def fetch_at_date(self, symbol: str, day: date) -> SourceQuote:
        started = time.perf_counter()
        day_str = day.isoformat()
        payload = await self._http.get_json(
            f"{self._base_url}/v2/aggs/ticker/{symbol}/range/1/day/{day_str}/{day_str}",
            params={"adjusted": "true", "apikey": self._api_key},
        )
        price, moment = _close_from_aggregates(payload, symbol)
        return SourceQuote(
            symbol=symbol,
            price=price,
            source_name=self.name,
            timestamp=moment,
            latency_ms=(time.perf_counter() - started) * 1000,
        )

    async def close(self) -> None:
        await self._http.close()


class PolygonCorporateActionSource(CorporateActionSource):
    """Splits and dividends from the Polygon reference API."""

    name = SOURCE_NAME
    reliability_score = RELIABILITY

    def __init__(self, api_key: str, base_url: str, http: JsonHttpClient) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._http = http

    async def fetch_actions(self, symbol: str, since: date) -> list[RawCorporateAction]:
        splits, dividends = await asyncio.gather(
            self._fetch("splits", symbol),
            self._fetch("dividends", symbol),
        )
        actions = [
            *self._parse(splits, symbol, CorporateActionType.STOCK_SPLIT),
            *self._parse(dividends, symbol, CorporateActionType.DIVIDEND),
        ]
        return [a for a in actions if a.effective_date >= since]

    async def _fetch(self, kind: str, symbol: str) -> list[dict]:
        payload = await self._http.get_json(
            f"{self._base_url}/v2/reference/{kind}/{symbol}",
            params={"apikey": self._api_key},
        )
        if not isinstance(payload, dict) or payload.get("status", "OK") != "OK":
            raise SourceError(f"{SOURCE_NAME} {kind} request for {symbol} was not OK")
        return [r for r in payload.get("results") or [] if isinstance(r, dict)]

    def _parse(
        self,
        records: list[dict],
        symbol: str,
        action_type: CorporateActionType,
    ) -> list[RawCorporateAction]:
        actions = []
        for record in records:
            ex_date = parse_date(record.get("exDate"))
            effective = parse_date(record.get("payableDate") or record.get("paymentDate")) or ex_date
            if effective is None:
                continue
            raw = RawCorporateAction(
                symbol=symbol,
                action_type=action_type,
                effective_date=effective,
                source=self.name,
                ex_date=ex_date,
                record_date=parse_date(record.get("recordDate")),
            )
            if action_type.is_split:
                raw.split_ratio = parse_decimal(record.get("ratio"))
            else:
                raw.dividend_amount = parse_decimal(record.get("amount"))
                raw.dividend_currency = record.get("currency") or None
            actions.append(raw)
        return actions

    async def close(self) -> None:
        await self._http.close()
