"""Shared aiohttp JSON client for the provider adapters."""

from __future__ import annotations

from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any

import aiohttp

from oracle.exceptions import SourceError
from oracle.logging import get_logger

logger = get_logger(__name__)


class JsonHttpClient:
    """Lazily-opened aiohttp session returning parsed JSON.

    One client is shared by all adapters of a provider. Every non-200
    response, transport error or non-JSON body is raised as SourceError.
    """

    def __init__(self, provider: str, timeout_seconds: float = 10.0) -> None:
        self._provider = provider
        self._timeout_seconds = timeout_seconds
        self._session: aiohttp.ClientSession | None = None

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self._timeout_seconds)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    async def get_json(self, url: str, params: dict[str, str] | None = None) -> Any:
        session = await self._ensure_session()
        try:
            async with session.get(url, params=params) as resp:
                if resp.status != 200:
                    raise SourceError(
                        f"{self._provider} returned HTTP {resp.status} for {url}"
                    )
                return await resp.json(content_type=None)
        except aiohttp.ClientError as exc:
            raise SourceError(f"{self._provider} request failed: {exc}") from exc
        except ValueError as exc:
            raise SourceError(f"{self._provider} returned invalid JSON") from exc

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
            logger.debug("http_session_closed", provider=self._provider)
        self._session = None


def parse_decimal(value: Any) -> Decimal | None:
    """Parse a JSON number or numeric string into Decimal; None if unparseable.

    Ratios written as "4:1" or "4/1" are parsed as 4 / 1.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        text = value.strip()
        for sep in (":", "/"):
            if sep in text:
                left, _, right = text.partition(sep)
                numerator, denominator = parse_decimal(left), parse_decimal(right)
                if numerator is None or not denominator:
                    return None
                return numerator / denominator
        value = text
    try:
        result = Decimal(str(value))
    except InvalidOperation:
        return None
    return result if result.is_finite() else None


def parse_date(value: Any) -> date | None:
    """Parse "YYYY-MM-DD" (optionally followed by a time part) into a date."""
    if not isinstance(value, str) or len(value) < 10:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None
