"""Typed SQLite read/write abstraction for oracle state.

Provides OracleDataStore with typed methods for price snapshots, corporate
actions, funding rates, risk windows and risk recommendations. All SQL is
isolated behind this interface.

CRITICAL: All monetary/rate values stored as TEXT in SQLite, restored as Decimal on read.
Timestamps are stored as UTC epoch milliseconds, calendar dates as ISO "YYYY-MM-DD".
"""

import json
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any

from oracle.data.database import OracleDatabase
from oracle.logging import get_logger
from oracle.models import (
    CorporateAction,
    CorporateActionType,
    DividendDetails,
    EquityPriceSnapshot,
    FundingRateComponents,
    FundingRateRecord,
    MergerDetails,
    SourcePrice,
    SplitDetails,
)
from oracle.risk.models import (
    Priority,
    RiskAction,
    RiskFactor,
    RiskFactorType,
    RiskLevel,
    RiskRecommendation,
    RiskWindow,
)

logger = get_logger(__name__)


def _to_ms(moment: datetime) -> int:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return int(moment.timestamp() * 1000)


def _from_ms(value: int) -> datetime:
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def _opt_ms(moment: datetime | None) -> int | None:
    return _to_ms(moment) if moment is not None else None


def _opt_dt(value: int | None) -> datetime | None:
    return _from_ms(value) if value is not None else None


def _opt_str(value: Decimal | None) -> str | None:
    return str(value) if value is not None else None


def _opt_dec(value: str | None) -> Decimal | None:
    return Decimal(value) if value is not None else None


def _utc_day(moment: datetime) -> str:
    return _from_ms(_to_ms(moment)).date().isoformat()


def _sources_to_json(sources: list[SourcePrice]) -> str:
    return json.dumps(
        [
            {
                "source_name": s.source_name,
                "price": str(s.price),
                "timestamp_ms": _to_ms(s.timestamp),
                "reliability": str(s.reliability),
                "latency_ms": s.latency_ms,
                "excluded": s.excluded,
            }
            for s in sources
        ]
    )


def _sources_from_json(raw: str) -> list[SourcePrice]:
    return [
        SourcePrice(
            source_name=item["source_name"],
            price=Decimal(item["price"]),
            timestamp=_from_ms(item["timestamp_ms"]),
            reliability=Decimal(item["reliability"]),
            latency_ms=item.get("latency_ms", 0.0),
            excluded=item.get("excluded", False),
        )
        for item in json.loads(raw)
    ]


_SNAPSHOT_COLUMNS = (
    "id, symbol, raw_price, adjusted_price, confidence, price_date_ms, "
    "sources, created_at_ms, updated_at_ms"
)

_ACTION_COLUMNS = (
    "id, symbol, action_type, ex_date, record_date, effective_date, split_ratio, "
    "dividend_amount, dividend_currency, acquiring_symbol, exchange_ratio, verified, "
    "source, external_id, is_deleted, created_at_ms, updated_at_ms"
)

_FUNDING_COLUMNS = (
    "id, symbol, rate, hourly_rate, mark_price, spot_price, adjusted_spot_price, "
    "premium, premium_percentage, base_rate, corporate_action_adjustment, "
    "liquidity_adjustment, volatility_adjustment, calculated_at_ms, valid_until_ms, "
    "onchain_tx_hash"
)

_RECOMMENDATION_COLUMNS = (
    "id, symbol, position_id, action, current_leverage, target_leverage, "
    "reduction_percentage, increase_percentage, reason, priority, "
    "recommended_at_ms, valid_until_ms, acknowledged, acknowledged_at_ms, acknowledged_by"
)


class OracleDataStore:
    """Async SQLite store for every persisted oracle entity.

    Wraps OracleDatabase with typed read/write methods. All SQL access
    goes through self._database.db (the aiosqlite Connection).

    Usage:
        async with OracleDatabase("data/oracle.db") as database:
            store = OracleDataStore(database)
            await store.insert_price_snapshot(snapshot)
    """

    def __init__(self, database: OracleDatabase) -> None:
        self._database = database

    # ──────────────────────────────────────────────
    # Price snapshots
    # ──────────────────────────────────────────────

    async def insert_price_snapshot(self, snapshot: EquityPriceSnapshot) -> None:
        """Append a consensus snapshot. Snapshots are never updated."""
        await self._database.db.execute(
            f"INSERT INTO equity_prices ({_SNAPSHOT_COLUMNS}, price_day) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                snapshot.id,
                snapshot.symbol,
                str(snapshot.raw_price),
                str(snapshot.adjusted_price),
                str(snapshot.confidence),
                _to_ms(snapshot.price_date),
                _sources_to_json(snapshot.sources),
                _to_ms(snapshot.created_at),
                _to_ms(snapshot.updated_at),
                _utc_day(snapshot.price_date),
            ),
        )
        await self._database.db.commit()

    async def get_latest_price_snapshot(self, symbol: str) -> EquityPriceSnapshot | None:
        """Most recent snapshot for a symbol, or None if it was never priced."""
        cursor = await self._database.db.execute(
            f"SELECT {_SNAPSHOT_COLUMNS} FROM equity_prices WHERE symbol = ? "
            "ORDER BY price_date_ms DESC, created_at_ms DESC LIMIT 1",
            (symbol,),
        )
        row = await cursor.fetchone()
        return self._row_to_snapshot(row) if row is not None else None

    async def get_price_snapshot_on(self, symbol: str, day: date) -> EquityPriceSnapshot | None:
        """Latest snapshot whose price date falls on the given UTC day."""
        cursor = await self._database.db.execute(
            f"SELECT {_SNAPSHOT_COLUMNS} FROM equity_prices "
            "WHERE symbol = ? AND price_day = ? "
            "ORDER BY price_date_ms DESC, created_at_ms DESC LIMIT 1",
            (symbol, day.isoformat()),
        )
        row = await cursor.fetchone()
        return self._row_to_snapshot(row) if row is not None else None

    async def get_price_snapshots(
        self,
        symbol: str,
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> list[EquityPriceSnapshot]:
        """Snapshots for a symbol within an optional inclusive range, ordered by price date ASC."""
        conditions = ["symbol = ?"]
        params: list[Any] = [symbol]

        if since is not None:
            conditions.append("price_date_ms >= ?")
            params.append(_to_ms(since))
        if until is not None:
            conditions.append("price_date_ms <= ?")
            params.append(_to_ms(until))

        where = " AND ".join(conditions)
        cursor = await self._database.db.execute(
            f"SELECT {_SNAPSHOT_COLUMNS} FROM equity_prices WHERE {where} "
            "ORDER BY price_date_ms ASC, created_at_ms ASC",
            params,
        )
        rows = await cursor.fetchall()
        return [self._row_to_snapshot(row) for row in rows]

    @staticmethod
    def _row_to_snapshot(row: Any) -> EquityPriceSnapshot:
        return EquityPriceSnapshot(
            id=row[0],
            symbol=row[1],
            raw_price=Decimal(row[2]),
            adjusted_price=Decimal(row[3]),
            confidence=Decimal(row[4]),
            price_date=_from_ms(row[5]),
            sources=_sources_from_json(row[6]),
            created_at=_from_ms(row[7]),
            updated_at=_from_ms(row[8]),
        )

    # ──────────────────────────────────────────────
    # Corporate actions
    # ──────────────────────────────────────────────

    async def insert_corporate_action(self, action: CorporateAction) -> None:
        split_ratio = dividend_amount = exchange_ratio = None
        dividend_currency = acquiring_symbol = None
        details = action.details
        if isinstance(details, SplitDetails):
            split_ratio = details.ratio
        elif isinstance(details, DividendDetails):
            dividend_amount = details.amount
            dividend_currency = details.currency
        elif isinstance(details, MergerDetails):
            acquiring_symbol = details.acquiring_symbol
            exchange_ratio = details.exchange_ratio

        await self._database.db.execute(
            f"INSERT INTO corporate_actions ({_ACTION_COLUMNS}) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                action.id,
                action.symbol,
                action.action_type.value,
                action.ex_date.isoformat(),
                action.record_date.isoformat(),
                action.effective_date.isoformat(),
                _opt_str(split_ratio),
                _opt_str(dividend_amount),
                dividend_currency,
                acquiring_symbol,
                _opt_str(exchange_ratio),
                1 if action.verified else 0,
                action.source,
                action.external_id,
                1 if action.is_deleted else 0,
                _to_ms(action.created_at),
                _to_ms(action.updated_at),
            ),
        )
        await self._database.db.commit()

    async def update_corporate_action_state(self, action: CorporateAction) -> None:
        """Persist the mutable state of a stored action: verification, source, deletion."""
        await self._database.db.execute(
            "UPDATE corporate_actions SET verified = ?, source = ?, external_id = ?, "
            "is_deleted = ?, updated_at_ms = ? WHERE id = ?",
            (
                1 if action.verified else 0,
                action.source,
                action.external_id,
                1 if action.is_deleted else 0,
                _to_ms(action.updated_at),
                action.id,
            ),
        )
        await self._database.db.commit()

    async def get_corporate_action(self, action_id: str) -> CorporateAction | None:
        """Non-deleted action by id."""
        cursor = await self._database.db.execute(
            f"SELECT {_ACTION_COLUMNS} FROM corporate_actions "
            "WHERE id = ? AND is_deleted = 0",
            (action_id,),
        )
        row = await cursor.fetchone()
        return self._row_to_action(row) if row is not None else None

    async def get_corporate_action_by_key(
        self,
        symbol: str,
        action_type: CorporateActionType,
        effective_date: date,
        include_deleted: bool = False,
    ) -> CorporateAction | None:
        """Action matching the deduplication key (non-deleted unless include_deleted)."""
        deleted_clause = "" if include_deleted else " AND is_deleted = 0"
        cursor = await self._database.db.execute(
            f"SELECT {_ACTION_COLUMNS} FROM corporate_actions "
            f"WHERE symbol = ? AND action_type = ? AND effective_date = ?{deleted_clause} "
            "ORDER BY is_deleted ASC, verified DESC, created_at_ms ASC LIMIT 1",
            (symbol, action_type.value, effective_date.isoformat()),
        )
        row = await cursor.fetchone()
        return self._row_to_action(row) if row is not None else None

    async def get_corporate_actions(
        self,
        symbol: str,
        start: date | None = None,
        end: date | None = None,
        action_type: CorporateActionType | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[CorporateAction]:
        """Non-deleted actions with start <= effective_date <= end, ordered by effective date ASC."""
        where, params = self._action_filter(symbol, start, end, action_type)
        sql = (
            f"SELECT {_ACTION_COLUMNS} FROM corporate_actions WHERE {where} "
            "ORDER BY effective_date ASC, created_at_ms ASC"
        )
        if limit is not None:
            sql += " LIMIT ? OFFSET ?"
            params.extend([limit, offset])
        cursor = await self._database.db.execute(sql, params)
        rows = await cursor.fetchall()
        return [self._row_to_action(row) for row in rows]

    async def count_corporate_actions(
        self,
        symbol: str,
        start: date | None = None,
        end: date | None = None,
        action_type: CorporateActionType | None = None,
    ) -> int:
        where, params = self._action_filter(symbol, start, end, action_type)
        cursor = await self._database.db.execute(
            f"SELECT COUNT(*) FROM corporate_actions WHERE {where}", params
        )
        row = await cursor.fetchone()
        return int(row[0]) if row is not None else 0

    @staticmethod
    def _action_filter(
        symbol: str,
        start: date | None,
        end: date | None,
        action_type: CorporateActionType | None,
    ) -> tuple[str, list[Any]]:
        conditions = ["symbol = ?", "is_deleted = 0"]
        params: list[Any] = [symbol]
        if start is not None:
            conditions.append("effective_date >= ?")
            params.append(start.isoformat())
        if end is not None:
            conditions.append("effective_date <= ?")
            params.append(end.isoformat())
        if action_type is not None:
            conditions.append("action_type = ?")
            params.append(action_type.value)
        return " AND ".join(conditions), params

    @staticmethod
    def _row_to_action(row: Any) -> CorporateAction:
        action_type = CorporateActionType(row[2])
        details: SplitDetails | DividendDetails | MergerDetails
        if action_type.is_split:
            details = SplitDetails(ratio=Decimal(row[6]))
        elif action_type.is_dividend:
            details = DividendDetails(amount=Decimal(row[7]), currency=row[8] or "USD")
        else:
            details = MergerDetails(acquiring_symbol=row[9], exchange_ratio=Decimal(row[10]))
        return CorporateAction(
            id=row[0],
            symbol=row[1],
            action_type=action_type,
            ex_date=date.fromisoformat(row[3]),
            record_date=date.fromisoformat(row[4]),
            effective_date=date.fromisoformat(row[5]),
            details=details,
            verified=bool(row[11]),
            source=row[12],
            external_id=row[13],
            is_deleted=bool(row[14]),
            created_at=_from_ms(row[15]),
            updated_at=_from_ms(row[16]),
        )

    # ──────────────────────────────────────────────
    # Funding rates
    # ──────────────────────────────────────────────

    async def insert_funding_rate(self, record: FundingRateRecord) -> None:
        c = record.components
        await self._database.db.execute(
            f"INSERT INTO funding_rates ({_FUNDING_COLUMNS}) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                record.id,
                record.symbol,
                str(record.rate),
                str(record.hourly_rate),
                str(record.mark_price),
                str(record.spot_price),
                str(record.adjusted_spot_price),
                str(record.premium),
                str(record.premium_percentage),
                str(c.base_rate),
                str(c.corporate_action_adjustment),
                str(c.liquidity_adjustment),
                str(c.volatility_adjustment),
                _to_ms(record.calculated_at),
                _to_ms(record.valid_until),
                record.onchain_tx_hash,
            ),
        )
        await self._database.db.commit()

    async def get_current_funding_rate(
        self, symbol: str, now: datetime
    ) -> FundingRateRecord | None:
        """Most recent funding rate whose validity extends past now."""
        cursor = await self._database.db.execute(
            f"SELECT {_FUNDING_COLUMNS} FROM funding_rates "
            "WHERE symbol = ? AND valid_until_ms > ? "
            "ORDER BY calculated_at_ms DESC LIMIT 1",
            (symbol, _to_ms(now)),
        )
        row = await cursor.fetchone()
        return self._row_to_funding(row) if row is not None else None

    async def get_funding_rates(
        self, symbol: str, since: datetime | None = None
    ) -> list[FundingRateRecord]:
        """Funding rate history ordered by calculation time DESC."""
        params: list[Any] = [symbol]
        sql = f"SELECT {_FUNDING_COLUMNS} FROM funding_rates WHERE symbol = ?"
        if since is not None:
            sql += " AND calculated_at_ms >= ?"
            params.append(_to_ms(since))
        sql += " ORDER BY calculated_at_ms DESC"
        cursor = await self._database.db.execute(sql, params)
        rows = await cursor.fetchall()
        return [self._row_to_funding(row) for row in rows]

    @staticmethod
    def _row_to_funding(row: Any) -> FundingRateRecord:
        return FundingRateRecord(
            id=row[0],
            symbol=row[1],
            rate=Decimal(row[2]),
            hourly_rate=Decimal(row[3]),
            mark_price=Decimal(row[4]),
            spot_price=Decimal(row[5]),
            adjusted_spot_price=Decimal(row[6]),
            premium=Decimal(row[7]),
            premium_percentage=Decimal(row[8]),
            components=FundingRateComponents(
                base_rate=Decimal(row[9]),
                corporate_action_adjustment=Decimal(row[10]),
                liquidity_adjustment=Decimal(row[11]),
                volatility_adjustment=Decimal(row[12]),
            ),
            calculated_at=_from_ms(row[13]),
            valid_until=_from_ms(row[14]),
            onchain_tx_hash=row[15],
        )

    # ──────────────────────────────────────────────
    # Risk windows
    # ──────────────────────────────────────────────

    async def insert_risk_window(self, window: RiskWindow) -> None:
        """Persist a window together with its ordered factors."""
        db = self._database.db
        await db.execute(
            "INSERT INTO risk_windows "
            "(id, symbol, level, level_rank, start_ms, end_ms, created_at_ms) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            (
                window.id,
                window.symbol,
                window.level.value,
                window.level.rank,
                _to_ms(window.start_date),
                _to_ms(window.end_date),
                _to_ms(window.created_at),
            ),
        )
        await db.executemany(
            "INSERT INTO risk_factors "
            "(window_id, position, factor_type, description, impact, effective_ms, "
            "level, start_ms, end_ms, details) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            [
                (
                    window.id,
                    i,
                    f.factor_type.value,
                    f.description,
                    str(f.impact),
                    _to_ms(f.effective_date),
                    f.level.value,
                    _opt_ms(f.start_date),
                    _opt_ms(f.end_date),
                    json.dumps(f.details) if f.details is not None else None,
                )
                for i, f in enumerate(window.factors)
            ],
        )
        await db.commit()

    async def get_active_risk_windows(
        self, symbols: list[str], now: datetime
    ) -> list[RiskWindow]:
        """Windows with start <= now <= end, most severe first."""
        if not symbols:
            return []
        placeholders = ", ".join("?" for _ in symbols)
        now_ms = _to_ms(now)
        return await self._query_windows(
            f"symbol IN ({placeholders}) AND start_ms <= ? AND end_ms >= ?",
            [*symbols, now_ms, now_ms],
            "level_rank DESC, start_ms ASC",
        )

    async def get_upcoming_risk_windows(
        self, symbols: list[str], now: datetime, until: datetime
    ) -> list[RiskWindow]:
        """Windows starting in (now, until], soonest first."""
        if not symbols:
            return []
        placeholders = ", ".join("?" for _ in symbols)
        return await self._query_windows(
            f"symbol IN ({placeholders}) AND start_ms > ? AND start_ms <= ?",
            [*symbols, _to_ms(now), _to_ms(until)],
            "start_ms ASC, level_rank DESC",
        )

    async def get_recent_risk_window(
        self, symbol: str, since: datetime, now: datetime
    ) -> RiskWindow | None:
        """The window that ended most recently within [since, now]."""
        windows = await self._query_windows(
            "symbol = ? AND end_ms >= ? AND end_ms <= ?",
            [symbol, _to_ms(since), _to_ms(now)],
            "end_ms DESC",
            limit=1,
        )
        return windows[0] if windows else None

    async def _query_windows(
        self,
        where: str,
        params: list[Any],
        order_by: str,
        limit: int | None = None,
    ) -> list[RiskWindow]:
        sql = (
            "SELECT id, symbol, level, start_ms, end_ms, created_at_ms "
            f"FROM risk_windows WHERE {where} ORDER BY {order_by}"
        )
        if limit is not None:
            sql += f" LIMIT {int(limit)}"
        cursor = await self._database.db.execute(sql, params)
        rows = await cursor.fetchall()

        windows = []
        for row in rows:
            windows.append(
                RiskWindow(
                    id=row[0],
                    symbol=row[1],
                    level=RiskLevel(row[2]),
                    start_date=_from_ms(row[3]),
                    end_date=_from_ms(row[4]),
                    created_at=_from_ms(row[5]),
                    factors=await self._get_risk_factors(row[0]),
                )
            )
        return windows

    async def _get_risk_factors(self, window_id: str) -> list[RiskFactor]:
        cursor = await self._database.db.execute(
            "SELECT factor_type, description, impact, effective_ms, level, "
            "start_ms, end_ms, details FROM risk_factors "
            "WHERE window_id = ? ORDER BY position ASC",
            (window_id,),
        )
        rows = await cursor.fetchall()
        return [
            RiskFactor(
                factor_type=RiskFactorType(row[0]),
                description=row[1],
                impact=Decimal(row[2]),
                effective_date=_from_ms(row[3]),
                level=RiskLevel(row[4]),
                start_date=_opt_dt(row[5]),
                end_date=_opt_dt(row[6]),
                details=json.loads(row[7]) if row[7] is not None else None,
            )
            for row in rows
        ]

    # ──────────────────────────────────────────────
    # Risk recommendations
    # ──────────────────────────────────────────────

    async def insert_recommendations(self, recommendations: list[RiskRecommendation]) -> None:
        if not recommendations:
            return
        await self._database.db.executemany(
            f"INSERT INTO risk_recommendations ({_RECOMMENDATION_COLUMNS}, priority_rank) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            [
                (
                    r.id,
                    r.symbol,
                    r.position_id,
                    r.action.value,
                    str(r.current_leverage),
                    str(r.target_leverage),
                    _opt_str(r.reduction_percentage),
                    _opt_str(r.increase_percentage),
                    r.reason,
                    r.priority.value,
                    _to_ms(r.recommended_at),
                    _opt_ms(r.valid_until),
                    1 if r.acknowledged else 0,
                    _opt_ms(r.acknowledged_at),
                    r.acknowledged_by,
                    r.priority.rank,
                )
                for r in recommendations
            ],
        )
        await self._database.db.commit()
        logger.debug("inserted_recommendations", count=len(recommendations))

    async def get_recommendation(self, recommendation_id: str) -> RiskRecommendation | None:
        cursor = await self._database.db.execute(
            f"SELECT {_RECOMMENDATION_COLUMNS} FROM risk_recommendations WHERE id = ?",
            (recommendation_id,),
        )
        row = await cursor.fetchone()
        return self._row_to_recommendation(row) if row is not None else None

    async def get_open_recommendations(
        self,
        symbol: str,
        now: datetime,
        action: RiskAction | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[RiskRecommendation]:
        """Unacknowledged, unexpired recommendations, highest priority first."""
        where, params = self._open_filter(symbol, now, action)
        sql = (
            f"SELECT {_RECOMMENDATION_COLUMNS} FROM risk_recommendations WHERE {where} "
            "ORDER BY priority_rank DESC, recommended_at_ms ASC"
        )
        if limit is not None:
            sql += " LIMIT ? OFFSET ?"
            params.extend([limit, offset])
        cursor = await self._database.db.execute(sql, params)
        rows = await cursor.fetchall()
        return [self._row_to_recommendation(row) for row in rows]

    async def count_open_recommendations(self, symbol: str, now: datetime) -> int:
        where, params = self._open_filter(symbol, now, None)
        cursor = await self._database.db.execute(
            f"SELECT COUNT(*) FROM risk_recommendations WHERE {where}", params
        )
        row = await cursor.fetchone()
        return int(row[0]) if row is not None else 0

    @staticmethod
    def _open_filter(
        symbol: str, now: datetime, action: RiskAction | None
    ) -> tuple[str, list[Any]]:
        conditions = [
            "symbol = ?",
            "acknowledged = 0",
            "(valid_until_ms IS NULL OR valid_until_ms >= ?)",
        ]
        params: list[Any] = [symbol, _to_ms(now)]
        if action is not None:
            conditions.append("action = ?")
            params.append(action.value)
        return " AND ".join(conditions), params

    async def find_recommendations(
        self,
        symbol: str,
        action: RiskAction,
        position_id: str | None,
    ) -> list[RiskRecommendation]:
        """All recommendations (acknowledged or not) for symbol+action+position, newest first."""
        if position_id is None:
            position_clause = "position_id IS NULL"
            params: list[Any] = [symbol, action.value]
        else:
            position_clause = "position_id = ?"
            params = [symbol, action.value, position_id]
        cursor = await self._database.db.execute(
            f"SELECT {_RECOMMENDATION_COLUMNS} FROM risk_recommendations "
            f"WHERE symbol = ? AND action = ? AND {position_clause} "
            "ORDER BY recommended_at_ms DESC",
            params,
        )
        rows = await cursor.fetchall()
        return [self._row_to_recommendation(row) for row in rows]

    async def acknowledge_recommendation(
        self,
        recommendation_id: str,
        acknowledged_at: datetime,
        acknowledged_by: str | None,
    ) -> bool:
        """Mark a recommendation acknowledged. Returns False if it does not exist."""
        cursor = await self._database.db.execute(
            "UPDATE risk_recommendations SET acknowledged = 1, acknowledged_at_ms = ?, "
            "acknowledged_by = ? WHERE id = ?",
            (_to_ms(acknowledged_at), acknowledged_by, recommendation_id),
        )
        await self._database.db.commit()
        return cursor.rowcount > 0

    @staticmethod
    def _row_to_recommendation(row: Any) -> RiskRecommendation:
        return RiskRecommendation(
            id=row[0],
            symbol=row[1],
            position_id=row[2],
            action=RiskAction(row[3]),
            current_leverage=Decimal(row[4]),
            target_leverage=Decimal(row[5]),
            reduction_percentage=_opt_dec(row[6]),
            increase_percentage=_opt_dec(row[7]),
            reason=row[8],
            priority=Priority(row[9]),
            recommended_at=_from_ms(row[10]),
            valid_until=_opt_dt(row[11]),
            acknowledged=bool(row[12]),
            acknowledged_at=_opt_dt(row[13]),
            acknowledged_by=row[14],
        )
