"""Alpha Vantage adapters.

The query API signals failures in-band: an "Error Message" key for bad
requests and a "Note" key when the free-tier rate limit is hit. Both are
raised as SourceError.
"""

from __future__ import annotations

import asyncio
import time
from datetime import date
from decimal import Decimal
from typing import Any

from oracle.exceptions import SourceError
from oracle.models import CorporateActionType, RawCorporateAction, SourceQuote
from oracle.sources.base import CorporateActionSource, SpotPriceSource
from oracle.sources.http import JsonHttpClient, parse_date, parse_decimal

SOURCE_NAME = "Alpha Vantage"
RELIABILITY = Decimal("0.75")


def _check_payload(payload: Any, symbol: str) -> dict:
    if not isinstance(payload, dict):
        raise SourceError(f"{SOURCE_NAME} returned an unexpected payload for {symbol}")
    if "Error Message" in payload:
        raise SourceError(f"{SOURCE_NAME} error for {symbol}: {payload['Error Message']}")
    if "Note" in payload:
        raise SourceError(f"{SOURCE_NAME} rate limit reached")
    return payload


class AlphaVantagePriceSource(SpotPriceSource):
    name = SOURCE_NAME
    reliability_score = RELIABILITY

    def __init__(self, api_key: str, base_url: str, http: JsonHttpClient) -> None:
        self._api_key = api_key
        self._base_url = base_url
        self._http = http

    async def fetch(self, symbol: str) -> SourceQuote:
        started = time.perf_counter()
        payload = _check_payload(
            await self._http.get_json(
                self._base_url,
                params={"function": "GLOBAL_QUOTE", "symbol": symbol, "apikey": self._api_key},
            ),
            symbol,
        )
        quote = payload.get("Global Quote") or {}
        price = parse_decimal(quote.get("05. price"))
        if price is None or price <= 0:
            raise SourceError(f"{SOURCE_NAME} returned no price for {symbol}")
        return SourceQuote(
            symbol=symbol,
            price=price,
            source_name=self.name,
            latency_ms=(time.perf_counter() - started) * 1000,
        )

    async def close(self) -> None:
        await self._http.close()


class AlphaVantageCorporateActionSource(CorporateActionSource):
    name = SOURCE_NAME
    reliability_score = RELIABILITY

    def __init__(self, api_key: str, base_url: str, http: JsonHttpClient) -> None:
        self._api_key = api_key
        self._base_url = base_url
        self._http = http

    async def fetch_actions(self, symbol: str, since: date) -> list[RawCorporateAction]:
        splits, dividends = await asyncio.gather(
            self._fetch("SPLIT", "splits", symbol),
            self._fetch("DIVIDEND", "dividends", symbol),
        )
        actions: list[RawCorporateAction] = []
        for record in splits:
            day = parse_date(record.get("date"))
            if day is None:
                continue
            actions.append(
                RawCorporateAction(
                    symbol=symbol,
                    action_type=CorporateActionType.STOCK_SPLIT,
                    effective_date=day,
                    source=self.name,
                    ex_date=day,
                    split_ratio=parse_decimal(record.get("split")),
                )
            )
        for record in dividends:
            day = parse_date(record.get("date"))
            if day is None:
                continue
            actions.append(
                RawCorporateAction(
                    symbol=symbol,
                    action_type=CorporateActionType.DIVIDEND,
                    effective_date=day,
                    source=self.name,
                    ex_date=day,
                    dividend_amount=parse_decimal(record.get("dividend")),
                    dividend_currency="USD",
                )
            )
        return [a for a in actions if a.effective_date >= since]

    async def _fetch(self, function: str, key: str, symbol: str) -> list[dict]:
        payload = _check_payload(
            await self._http.get_json(
                self._base_url,
                params={"function": function, "symbol": symbol, "apikey": self._api_key},
            ),
            symbol,
        )
        return [r for r in payload.get(key) or [] if isinstance(r, dict)]

    async def close(self) -> None:
        await self._http.close()
