"""
Trade Ledger

Append-only store of sampled quotes (trades) and accepted orders. The trades
table feeds the trailing momentum window on the next run; the orders table
sizes sells from the last recorded buy.
"""

import asyncio
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import List, Optional, Protocol

from momentum_rebalancer.data.models import OrderRecord, OrderSide, TradeRecord
from momentum_rebalancer.errors import LedgerError
from momentum_rebalancer.monitoring.logging import get_logger

logger = get_logger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS trades (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    pair TEXT NOT NULL,
    buy REAL NOT NULL,
    sell REAL NOT NULL,
    timestamp INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_trades_pair_ts ON trades (pair, timestamp);

CREATE TABLE IF NOT EXISTS orders (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    pair TEXT NOT NULL,
    volume REAL NOT NULL,
    price REAL NOT NULL,
    type TEXT NOT NULL CHECK (type IN ('buy', 'sell')),
    timestamp INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_orders_pair_type_ts ON orders (pair, type, timestamp);
"""


class TradeLedger(Protocol):
    """Operations the rebalancer needs from the ledger."""

    async def append_trade(self, record: TradeRecord) -> None: ...

    async def append_order(self, record: OrderRecord) -> None: ...

    async def get_last_trades(self, pair: str, n: int) -> List[TradeRecord]: ...

    async def get_last_order(self, pair: str, type: OrderSide) -> Optional[OrderRecord]: ...


class SQLiteTradeLedger:
    """
    SQLite-backed TradeLedger.

    Blocking sqlite calls run in a worker thread so the event loop is only
    suspended while waiting for them; a lock keeps them one at a time.
    """

    def __init__(self, db_path: str = "data/ledger.sqlite3"):
        self.db_path = Path(db_path)
        self._lock = threading.Lock()
        if str(db_path) != ":memory:":
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(db_path), check_same_thread=False)
        with self._transaction() as conn:
            conn.executescript(_SCHEMA)

    @contextmanager
    def _transaction(self):
        with self._lock:
            try:
                with self._conn:
                    yield self._conn
            except sqlite3.Error as e:
                raise LedgerError(f"ledger operation failed: {e}") from e

    def _append_trade(self, record: TradeRecord) -> None:
        with self._transaction() as conn:
            conn.execute(
                "INSERT INTO trades (pair, buy, sell, timestamp) VALUES (?, ?, ?, ?)",
                (record.pair, record.buy, record.sell, record.timestamp),
            )

    def _append_order(self, record: OrderRecord) -> None:
        with self._transaction() as conn:
            conn.execute(
                "INSERT INTO orders (pair, volume, price, type, timestamp) VALUES (?, ?, ?, ?, ?)",
                (record.pair, record.volume, record.price, record.type, record.timestamp),
            )

    def _last_trades(self, pair: str, n: int) -> List[TradeRecord]:
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT pair, buy, sell, timestamp FROM trades WHERE pair = ? "
                "ORDER BY timestamp DESC, id DESC LIMIT ?",
                (pair, n),
            ).fetchall()
        return [TradeRecord(pair=r[0], buy=r[1], sell=r[2], timestamp=r[3]) for r in rows]

    def _last_order(self, pair: str, type: OrderSide) -> Optional[OrderRecord]:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT pair, volume, price, type, timestamp FROM orders WHERE pair = ? AND type = ? "
                "ORDER BY timestamp DESC, id DESC LIMIT 1",
                (pair, type),
            ).fetchone()
        if row is None:
            return None
        return OrderRecord(pair=row[0], volume=row[1], price=row[2], type=row[3], timestamp=row[4])

    async def append_trade(self, record: TradeRecord) -> None:
        await asyncio.to_thread(self._append_trade, record)

    async def append_order(self, record: OrderRecord) -> None:
        await asyncio.to_thread(self._append_order, record)
        logger.debug("Order recorded", pair=record.pair, type=record.type,
                     volume=record.volume, price=record.price)

    async def get_last_trades(self, pair: str, n: int) -> List[TradeRecord]:
        """Last n trade records for a pair, most recent first."""
        return await asyncio.to_thread(self._last_trades, pair, n)

    async def get_last_order(self, pair: str, type: OrderSide) -> Optional[OrderRecord]:
        """Most recent order of the given type for a pair, or None."""
        return await asyncio.to_thread(self._last_order, pair, type)

    def close(self) -> None:
        with self._lock:
            self._conn.close()
