"""Corporate action store and multi-source reconciliation.

fetch_and_reconcile pulls every configured provider concurrently, merges the
results with what is already stored, and upserts one validated record per
(symbol, type, effective day). Runs for the same symbol are serialized with a
per-symbol asyncio.Lock so two refreshes never insert the same key twice.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from datetime import date, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING

from oracle.corporate_actions.adjustment import chronological
from oracle.corporate_actions.reconciler import reconcile, widen
from oracle.exceptions import BadRequestError, ConflictError, NotFoundError
from oracle.logging import get_logger
from oracle.models import (
    CorporateAction,
    CorporateActionType,
    RawCorporateAction,
    as_day,
    utc_now,
)

if TYPE_CHECKING:
    from datetime import datetime

    from oracle.data.store import OracleDataStore
    from oracle.sources.base import CorporateActionSource

logger = get_logger(__name__)

MAX_UPCOMING_DAYS = 90
MAX_PAGE_SIZE = 100


class CorporateActionService:
    """Reconciles, stores and serves corporate actions.

    Args:
        sources: Corporate action providers. Empty = stored/manual data only.
        store: Persistence for corporate actions.
        source_timeout_seconds: Per-provider call timeout.
        default_reliability: Weight for sources without a known reliability
            (manual entries, providers that were removed from configuration).
    """

    def __init__(
        self,
        sources: list[CorporateActionSource],
        store: OracleDataStore,
        source_timeout_seconds: float = 15.0,
        default_reliability: Decimal = Decimal("0.5"),
    ) -> None:
        self._sources = sources
        self._store = store
        self._timeout = source_timeout_seconds
        self._default_reliability = default_reliability
        self._reliabilities = {s.name: s.reliability_score for s in sources}
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def reliability(self, source_name: str) -> Decimal:
        return self._reliabilities.get(source_name, self._default_reliability)

    # ──────────────────────────────────────────────
    # Reconciliation
    # ──────────────────────────────────────────────

    async def fetch_and_reconcile(self, symbol: str, since: date) -> list[CorporateAction]:
        """Fetch, deduplicate, validate and upsert actions effective on or after since.

        A failing provider contributes nothing. A record that fails validation
        is logged and skipped without affecting the others.

        Returns:
            The stored actions for the symbol since the given date, oldest first.
        """
        symbol = symbol.upper()
        async with self._locks[symbol]:
            fetched = await self._fetch_all(symbol, since)
            stored = await self._store.get_corporate_actions(symbol, start=since)
            combined = [RawCorporateAction.from_action(a) for a in stored] + fetched

            inserted = updated = rejected = 0
            for representative in reconcile(combined, self.reliability):
                try:
                    action = representative.to_corporate_action()
                except BadRequestError as exc:
                    rejected += 1
                    logger.warning(
                        "corporate_action_rejected",
                        symbol=symbol,
                        action_type=representative.action_type.value,
                        effective_date=representative.effective_date.isoformat(),
                        source=representative.source,
                        reason=str(exc),
                    )
                    continue

                existing = await self._store.get_corporate_action_by_key(
                    action.symbol, action.action_type, action.effective_date, include_deleted=True
                )
                if existing is None:
                    await self._store.insert_corporate_action(action)
                    inserted += 1
                elif existing.is_deleted:
                    continue
                elif widen(existing, action, self.reliability):
                    existing.updated_at = utc_now()
                    await self._store.update_corporate_action_state(existing)
                    updated += 1

            logger.info(
                "corporate_actions_reconciled",
                symbol=symbol,
                fetched=len(fetched),
                inserted=inserted,
                updated=updated,
                rejected=rejected,
            )
            return await self._store.get_corporate_actions(symbol, start=since)

    async def _fetch_all(self, symbol: str, since: date) -> list[RawCorporateAction]:
        results = await asyncio.gather(
            *(
                asyncio.wait_for(source.fetch_actions(symbol, since), timeout=self._timeout)
                for source in self._sources
            ),
            return_exceptions=True,
        )
        fetched: list[RawCorporateAction] = []
        for source, result in zip(self._sources, results):
            if isinstance(result, BaseException):
                logger.warning(
                    "corporate_action_source_failed",
                    source=source.name,
                    symbol=symbol,
                    error=repr(result),
                )
                continue
            fetched.extend(result)
        return fetched

    # ──────────────────────────────────────────────
    # Reads
    # ──────────────────────────────────────────────

    async def get_actions(self, symbol: str, since: date | None = None) -> list[CorporateAction]:
        return chronological(await self._store.get_corporate_actions(symbol.upper(), start=since))

    async def get_upcoming_actions(
        self,
        symbol: str,
        days_ahead: int = 30,
        as_of: date | datetime | None = None,
    ) -> list[CorporateAction]:
        """Actions effective within [today, today + days_ahead], capped at 90 days."""
        if days_ahead < 0:
            raise BadRequestError("days_ahead must not be negative")
        today = as_day(as_of) if as_of is not None else utc_now().date()
        horizon = today + timedelta(days=min(days_ahead, MAX_UPCOMING_DAYS))
        return await self._store.get_corporate_actions(symbol.upper(), start=today, end=horizon)

    async def list_actions(
        self,
        symbol: str,
        start: date | None = None,
        end: date | None = None,
        action_type: CorporateActionType | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[CorporateAction], int]:
        """One page of actions and the total count matching the filters."""
        if page < 1:
            raise BadRequestError("page must be at least 1")
        if not 1 <= page_size <= MAX_PAGE_SIZE:
            raise BadRequestError(f"page_size must be between 1 and {MAX_PAGE_SIZE}")
        if start is not None and end is not None and start > end:
            raise BadRequestError("from date must not be after to date")

        symbol = symbol.upper()
        items = await self._store.get_corporate_actions(
            symbol,
            start=start,
            end=end,
            action_type=action_type,
            limit=page_size,
            offset=(page - 1) * page_size,
        )
        total = await self._store.count_corporate_actions(
            symbol, start=start, end=end, action_type=action_type
        )
        return items, total

    async def get_action(self, action_id: str) -> CorporateAction:
        action = await self._store.get_corporate_action(action_id)
        if action is None:
            raise NotFoundError(f"Corporate action {action_id} not found")
        return action

    # ──────────────────────────────────────────────
    # Manual entry
    # ──────────────────────────────────────────────

    async def create_action(self, raw: RawCorporateAction) -> CorporateAction:
        """Validate and store a manually entered action.

        Raises:
            BadRequestError: If the record violates its per-type invariants.
            ConflictError: If a non-deleted action with the same key exists.
        """
        action = raw.to_corporate_action()
        async with self._locks[action.symbol]:
            existing = await self._store.get_corporate_action_by_key(
                action.symbol, action.action_type, action.effective_date
            )
            if existing is not None:
                raise ConflictError(
                    f"{action.action_type.value} for {action.symbol} effective "
                    f"{action.effective_date.isoformat()} already exists"
                )
            await self._store.insert_corporate_action(action)

        logger.info(
            "corporate_action_created",
            id=action.id,
            symbol=action.symbol,
            action_type=action.action_type.value,
            effective_date=action.effective_date.isoformat(),
        )
        return action

    async def soft_delete(self, action_id: str) -> CorporateAction:
        """Hide an action from every read. Rows are never physically removed."""
        action = await self.get_action(action_id)
        action.is_deleted = True
        action.updated_at = utc_now()
        await self._store.update_corporate_action_state(action)
        logger.info("corporate_action_deleted", id=action_id, symbol=action.symbol)
        return action
