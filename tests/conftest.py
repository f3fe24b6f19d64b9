"""Pytest configuration and shared fixtures."""

import asyncio
from typing import Dict, List, Optional

import pytest

from momentum_rebalancer.core.config import Config
from momentum_rebalancer.data.gateway import OrderRequest, WithdrawalRequest
from momentum_rebalancer.data.models import OrderRecord, Quote, TradeRecord
from momentum_rebalancer.errors import GatewayError, LedgerError


class FakeGateway:
    """In-memory exchange. ``fail_plan`` maps pair/asset -> number of calls to fail."""

    def __init__(
        self,
        balance: Optional[Dict[str, float]] = None,
        quotes: Optional[Dict[str, Quote]] = None,
        pairs: Optional[List[str]] = None,
        recent_trades: Optional[Dict[str, List[dict]]] = None,
        events: Optional[list] = None,
    ):
        self.balance = balance or {}
        self.quotes = quotes or {}
        self.pairs = set(pairs or [])
        self.recent_trades = recent_trades or {}
        self.events = events if events is not None else []
        self.fail_plan: Dict[str, int] = {}
        self.balance_failures = 0
        self.call_delay = 0.0
        self.orders: List[OrderRequest] = []
        self.withdrawals: List[WithdrawalRequest] = []
        self.order_attempts = 0
        self.in_flight = 0
        self.max_in_flight = 0
        self.balance_calls = 0
        self.closed = False

    async def _enter(self, label: Optional[str] = None, key: Optional[str] = None):
        """Every call suspends while counted as in flight; mutations are logged and may fail."""
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if label is not None:
                self.events.append(label)
            await asyncio.sleep(self.call_delay)
            if key is not None and self.fail_plan.get(key, 0) > 0:
                self.fail_plan[key] -= 1
                raise GatewayError(f"{label} rejected", operation=label)
        finally:
            self.in_flight -= 1

    async def get_balance(self):
        self.balance_calls += 1
        await self._enter()
        if self.balance_failures:
            self.balance_failures -= 1
            raise GatewayError("balance unavailable", operation="get_balance")
        return dict(self.balance)

    async def get_tickers(self, pairs):
        await self._enter()
        return {p: self.quotes[p] for p in pairs if p in self.quotes}

    async def get_tradable_pairs(self, base_currency):
        await self._enter()
        return {p for p in self.pairs if p.endswith("/" + base_currency)}

    async def get_recent_trades(self, pair, since=None):
        await self._enter()
        return list(self.recent_trades.get(pair, []))

    async def place_order(self, request: OrderRequest):
        self.order_attempts += 1
        await self._enter(f"{request.side}:{request.pair}", request.pair)
        self.orders.append(request)
        return f"O{len(self.orders)}"

    async def withdraw(self, request: WithdrawalRequest):
        await self._enter(f"withdraw:{request.asset}", request.asset)
        self.withdrawals.append(request)
        return f"W{len(self.withdrawals)}"

    async def close(self):
        self.closed = True


class FakeLedger:
    """In-memory TradeLedger."""

    def __init__(self, events: Optional[list] = None):
        self.trades: List[TradeRecord] = []
        self.orders: List[OrderRecord] = []
        self.events = events if events is not None else []
        self.fail_order_writes = False

    async def append_trade(self, record: TradeRecord):
        self.trades.append(record)

    async def append_order(self, record: OrderRecord):
        if self.fail_order_writes:
            raise LedgerError("disk full", operation="append_order")
        self.orders.append(record)

    async def get_last_trades(self, pair, n):
        rows = [t for t in self.trades if t.pair == pair]
        rows.sort(key=lambda t: t.timestamp, reverse=True)
        return rows[:n]

    async def get_last_order(self, pair, type):
        self.events.append(f"last_order:{pair}")
        rows = [o for o in self.orders if o.pair == pair and o.type == type]
        if not rows:
            return None
        return max(rows, key=lambda o: o.timestamp)

    def seed_window(self, pair: str, buys: List[float], start: int = 1_000):
        for i, price in enumerate(buys):
            self.trades.append(TradeRecord(pair=pair, buy=price, sell=price - 0.5, timestamp=start + i))


WINDOW = [100.0, 102.0, 101.0, 99.0, 100.0, 101.0]  # mean 100.5


@pytest.fixture
def config(monkeypatch) -> Config:
    """Valid config with credentials and no retry delays."""
    monkeypatch.delenv("KRAKEN_API_KEY", raising=False)
    monkeypatch.delenv("KRAKEN_API_SECRET", raising=False)
    monkeypatch.delenv("REBALANCER_EXCHANGE", raising=False)
    monkeypatch.delenv("REBALANCER_LEDGER_PATH", raising=False)
    return Config.from_dict({
        "currencies": {
            "BTC": {"percentage": 50, "address": "Bitcoin Wallet", "withdraw_minimum": 0.01},
            "ETH": {"percentage": 50, "address": "Ether Wallet", "withdraw_minimum": 1.0},
        },
        "exchange": {"api_key": "key", "api_secret": "secret"},
        "trading": {"base_currency": "EUR", "trade_fraction": 0.25},
        "retry": {"backoff_sec": 0.0, "call_timeout_sec": 5.0},
    })


@pytest.fixture
def events() -> list:
    return []


@pytest.fixture
def gateway(events) -> FakeGateway:
    return FakeGateway(events=events)


@pytest.fixture
def ledger(events) -> FakeLedger:
    return FakeLedger(events=events)
