"""
Market and ledger data structures (Quote, TradeRecord, OrderRecord).

Prices and volumes are floats; timestamps are epoch milliseconds (UTC).
"""

import time
from dataclasses import dataclass
from typing import Dict, Literal

OrderSide = Literal["buy", "sell"]

# symbol -> free amount, point-in-time snapshot taken at run start
Balance = Dict[str, float]


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def make_pair(symbol: str, base_currency: str) -> str:
    """Unified pair name, e.g. ``make_pair("BTC", "EUR") == "BTC/EUR"``."""
    return f"{symbol}/{base_currency}"


@dataclass(frozen=True)
class Quote:
    """Best ask/bid for a trading pair."""

    pair: str
    ask: float
    bid: float


@dataclass(frozen=True)
class TradeRecord:
    """Observed quote, appended every run for every sampled pair."""

    pair: str
    buy: float  # ask at sampling time
    sell: float  # bid at sampling time
    timestamp: int


@dataclass(frozen=True)
class OrderRecord:
    """Order accepted by the exchange."""

    pair: str
    volume: float  # asset units
    price: float
    type: OrderSide
    timestamp: int
