"""Oracle persistence layer.

Provides SQLite database management and the typed read/write store for
price snapshots, corporate actions, funding rates, risk windows and
recommendations.
"""

from oracle.data.database import OracleDatabase
from oracle.data.store import OracleDataStore

__all__ = [
    "OracleDatabase",
    "OracleDataStore",
]
