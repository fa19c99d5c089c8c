"""Async SQLite database manager for oracle persistence.

One aiosqlite connection shared by OracleDataStore. The schema is idempotent
(CREATE ... IF NOT EXISTS) and is applied on every connect.
"""

import os
from typing import Self

import aiosqlite

from oracle.logging import get_logger

logger = get_logger(__name__)

SCHEMA_VERSION = 1

_CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS equity_prices (
    id TEXT PRIMARY KEY,
    symbol TEXT NOT NULL,
    raw_price TEXT NOT NULL,
    adjusted_price TEXT NOT NULL,
    confidence TEXT NOT NULL,
    price_date_ms INTEGER NOT NULL,
    price_day TEXT NOT NULL,
    sources TEXT NOT NULL DEFAULT '[]',
    created_at_ms INTEGER NOT NULL,
    updated_at_ms INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS corporate_actions (
    id TEXT PRIMARY KEY,
    symbol TEXT NOT NULL,
    action_type TEXT NOT NULL,
    ex_date TEXT NOT NULL,
    record_date TEXT NOT NULL,
    effective_date TEXT NOT NULL,
    split_ratio TEXT,
    dividend_amount TEXT,
    dividend_currency TEXT,
    acquiring_symbol TEXT,
    exchange_ratio TEXT,
    verified INTEGER NOT NULL DEFAULT 0,
    source TEXT NOT NULL,
    external_id TEXT,
    is_deleted INTEGER NOT NULL DEFAULT 0,
    created_at_ms INTEGER NOT NULL,
    updated_at_ms INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS funding_rates (
    id TEXT PRIMARY KEY,
    symbol TEXT NOT NULL,
    rate TEXT NOT NULL,
    hourly_rate TEXT NOT NULL,
    mark_price TEXT NOT NULL,
    spot_price TEXT NOT NULL,
    adjusted_spot_price TEXT NOT NULL,
    premium TEXT NOT NULL,
    premium_percentage TEXT NOT NULL,
    base_rate TEXT NOT NULL,
    corporate_action_adjustment TEXT NOT NULL,
    liquidity_adjustment TEXT NOT NULL,
    volatility_adjustment TEXT NOT NULL,
    calculated_at_ms INTEGER NOT NULL,
    valid_until_ms INTEGER NOT NULL,
    onchain_tx_hash TEXT
);

CREATE TABLE IF NOT EXISTS risk_windows (
    id TEXT PRIMARY KEY,
    symbol TEXT NOT NULL,
    level TEXT NOT NULL,
    level_rank INTEGER NOT NULL,
    start_ms INTEGER NOT NULL,
    end_ms INTEGER NOT NULL,
    created_at_ms INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS risk_factors (
    window_id TEXT NOT NULL REFERENCES risk_windows(id),
    position INTEGER NOT NULL,
    factor_type TEXT NOT NULL,
    description TEXT NOT NULL,
    impact TEXT NOT NULL,
    effective_ms INTEGER NOT NULL,
    level TEXT NOT NULL,
    start_ms INTEGER,
    end_ms INTEGER,
    details TEXT,
    PRIMARY KEY (window_id, position)
);

CREATE TABLE IF NOT EXISTS risk_recommendations (
    id TEXT PRIMARY KEY,
    symbol TEXT NOT NULL,
    position_id TEXT,
    action TEXT NOT NULL,
    current_leverage TEXT NOT NULL,
    target_leverage TEXT NOT NULL,
    reduction_percentage TEXT,
    increase_percentage TEXT,
    reason TEXT NOT NULL,
    priority TEXT NOT NULL,
    priority_rank INTEGER NOT NULL,
    recommended_at_ms INTEGER NOT NULL,
    valid_until_ms INTEGER,
    acknowledged INTEGER NOT NULL DEFAULT 0,
    acknowledged_at_ms INTEGER,
    acknowledged_by TEXT
);
"""

_CREATE_INDEXES_SQL = """
CREATE INDEX IF NOT EXISTS idx_prices_symbol_date
    ON equity_prices(symbol, price_date_ms);

CREATE INDEX IF NOT EXISTS idx_prices_symbol_day
    ON equity_prices(symbol, price_day);

CREATE INDEX IF NOT EXISTS idx_actions_key
    ON corporate_actions(symbol, action_type, effective_date);

CREATE INDEX IF NOT EXISTS idx_funding_symbol_calc
    ON funding_rates(symbol, calculated_at_ms);

CREATE INDEX IF NOT EXISTS idx_windows_symbol_range
    ON risk_windows(symbol, start_ms, end_ms);

CREATE INDEX IF NOT EXISTS idx_recommendations_symbol
    ON risk_recommendations(symbol, acknowledged);
"""


_PRAGMAS = (
    "PRAGMA journal_mode=WAL",
    "PRAGMA synchronous=NORMAL",
    "PRAGMA foreign_keys=ON",
)


class OracleDatabase:
    """Owns the SQLite file behind the oracle store.

    Usage:
        async with OracleDatabase("data/oracle.db") as database:
            store = OracleDataStore(database)
    """

    def __init__(self, db_path: str = "data/oracle.db") -> None:
        self._db_path = db_path
        self._connection: aiosqlite.Connection | None = None

    @property
    def db(self) -> aiosqlite.Connection:
        if self._connection is None:
            raise RuntimeError(f"{self._db_path} is not open; await connect() first")
        return self._connection

    @property
    def is_connected(self) -> bool:
        return self._connection is not None

    async def connect(self) -> None:
        """Open the file (creating its directory), set pragmas and apply the schema."""
        if self._connection is not None:
            return
        parent = os.path.dirname(self._db_path)
        if parent:
            os.makedirs(parent, exist_ok=True)

        connection = await aiosqlite.connect(self._db_path)
        for pragma in _PRAGMAS:
            await connection.execute(pragma)
        self._connection = connection

        version = await self._migrate()
        logger.info("oracle_db_connected", db_path=self._db_path, schema_version=version)

    async def _migrate(self) -> int:
        """Create missing tables and indexes; record the schema version once."""
        db = self.db
        await db.executescript(_CREATE_TABLES_SQL + _CREATE_INDEXES_SQL)
        async with db.execute("SELECT MAX(version) FROM schema_version") as cursor:
            row = await cursor.fetchone()
        current = row[0] if row is not None else None
        if current is None:
            await db.execute("INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
            current = SCHEMA_VERSION
        await db.commit()
        return current

    async def close(self) -> None:
        connection, self._connection = self._connection, None
        if connection is None:
            return
        await connection.close()
        logger.info("oracle_db_closed", db_path=self._db_path)

    async def __aenter__(self) -> Self:
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
