"""IEX Cloud adapters: latest quotes, splits and dividends."""

from __future__ import annotations

import asyncio
import time
from datetime import date, datetime, timezone
from decimal import Decimal

from oracle.exceptions import SourceError
from oracle.models import CorporateActionType, RawCorporateAction, SourceQuote
from oracle.sources.base import CorporateActionSource, SpotPriceSource
from oracle.sources.http import JsonHttpClient, parse_date, parse_decimal

SOURCE_NAME = "IEX Cloud"
RELIABILITY = Decimal("0.95")


class IexCloudPriceSource(SpotPriceSource):
    name = SOURCE_NAME
    reliability_score = RELIABILITY

    def __init__(self, api_key: str, base_url: str, http: JsonHttpClient) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._http = http

    async def fetch(self, symbol: str) -> SourceQuote:
        started = time.perf_counter()
        payload = await self._http.get_json(
            f"{self._base_url}/stock/{symbol}/quote",
            params={"token": self._api_key},
        )
        price = parse_decimal(payload.get("latestPrice")) if isinstance(payload, dict) else None
        if price is None or price <= 0:
            raise SourceError(f"{SOURCE_NAME} returned no latestPrice for {symbol}")

        updated = payload.get("latestUpdate")
        moment = (
            datetime.fromtimestamp(updated / 1000, tz=timezone.utc)
            if isinstance(updated, (int, float))
            else datetime.now(timezone.utc)
        )
        return SourceQuote(
            symbol=symbol,
            price=price,
            source_name=self.name,
            timestamp=moment,
            latency_ms=(time.perf_counter() - started) * 1000,
        )

    async def close(self) -> None:
        await self._http.close()


class IexCloudCorporateActionSource(CorporateActionSource):
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
        actions: list[RawCorporateAction] = []
        for record in splits:
            ex_date = parse_date(record.get("exDate"))
            effective = (
                parse_date(record.get("paymentDate"))
                or parse_date(record.get("declaredDate"))
                or ex_date
            )
            if effective is None:
                continue
            actions.append(
                RawCorporateAction(
                    symbol=symbol,
                    action_type=CorporateActionType.STOCK_SPLIT,
                    effective_date=effective,
                    source=self.name,
                    ex_date=ex_date,
                    record_date=parse_date(record.get("recordDate")),
                    split_ratio=parse_decimal(record.get("ratio")),
                )
            )
        for record in dividends:
            ex_date = parse_date(record.get("exDate"))
            effective = parse_date(record.get("paymentDate")) or ex_date
            if effective is None:
                continue
            actions.append(
                RawCorporateAction(
                    symbol=symbol,
                    action_type=CorporateActionType.DIVIDEND,
                    effective_date=effective,
                    source=self.name,
                    ex_date=ex_date,
                    record_date=parse_date(record.get("recordDate")),
                    dividend_amount=parse_decimal(record.get("amount")),
                    dividend_currency=record.get("currency") or None,
                )
            )
        return [a for a in actions if a.effective_date >= since]

    async def _fetch(self, kind: str, symbol: str) -> list[dict]:
        payload = await self._http.get_json(
            f"{self._base_url}/stock/{symbol}/{kind}",
            params={"token": self._api_key},
        )
        if not isinstance(payload, list):
            raise SourceError(f"{SOURCE_NAME} {kind} response for {symbol} is not a list")
        return [r for r in payload if isinstance(r, dict)]

    async def close(self) -> None:
        await self._http.close()
