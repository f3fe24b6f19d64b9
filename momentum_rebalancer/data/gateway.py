"""
Exchange Gateway

Balances, tickers, tradable pairs, recent trades, order placement and
withdrawals through ccxt's asyncio client. Every exchange failure surfaces
as GatewayError so the execution queue can retry it.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Protocol, Set

import ccxt.async_support as ccxt

from momentum_rebalancer.core.config import Config
from momentum_rebalancer.data.models import Balance, OrderSide, Quote
from momentum_rebalancer.errors import GatewayError
from momentum_rebalancer.monitoring.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class OrderRequest:
    """Order to place on the exchange."""

    pair: str
    side: OrderSide
    volume: float  # asset units
    price: Optional[float] = None  # required for limit orders
    type: str = "limit"


@dataclass(frozen=True)
class WithdrawalRequest:
    """Withdrawal of an asset to a pre-registered address."""

    asset: str
    address: str
    amount: float


class ExchangeGateway(Protocol):
    """Operations the rebalancer needs from an exchange."""

    async def get_balance(self) -> Balance: ...

    async def get_tickers(self, pairs: Iterable[str]) -> Dict[str, Quote]: ...

    async def get_tradable_pairs(self, base_currency: str) -> Set[str]: ...

    async def get_recent_trades(self, pair: str, since: Optional[int] = None) -> List[Dict[str, Any]]: ...

    async def place_order(self, request: OrderRequest) -> Optional[str]: ...

    async def withdraw(self, request: WithdrawalRequest) -> Optional[str]: ...

    async def close(self) -> None: ...


class CcxtGateway:
    """
    ExchangeGateway backed by a ccxt async exchange (Kraken by default).

    In dry-run mode, orders and withdrawals are logged and reported as
    accepted without being sent; reads still hit the exchange.
    """

    def __init__(self, config: Config, exchange: Optional[Any] = None, dry_run: bool = False):
        """
        Initialize gateway.

        Args:
            config: System configuration
            exchange: Pre-built ccxt exchange (tests); built from config when omitted
            dry_run: Skip order placement and withdrawals
        """
        self.config = config
        self.dry_run = dry_run
        if exchange is None:
            exchange_class = getattr(ccxt, config.exchange.exchange_id)
            exchange = exchange_class({
                "apiKey": config.exchange.api_key,
                "secret": config.exchange.api_secret,
                "enableRateLimit": True,
                "timeout": int(config.retry.call_timeout_sec * 1000),
            })
            if config.exchange.sandbox:
                exchange.set_sandbox_mode(True)
        self.exchange = exchange

    async def _call(self, operation: str, method, *args, **kwargs):
        try:
            return await method(*args, **kwargs)
        except ccxt.BaseError as e:
            raise GatewayError(f"{operation} failed: {e}", operation=operation) from e

    async def get_balance(self) -> Balance:
        """
        Fetch free balances.

        Returns:
            Mapping symbol -> available amount (zero balances dropped)
        """
        resp = await self._call("get_balance", self.exchange.fetch_balance)
        free = resp.get("free") or {}
        balance: Balance = {}
        for symbol, amount in free.items():
            if amount is None:
                continue
            amount = float(amount)
            if amount > 0:
                balance[symbol] = amount
        return balance

    async def get_tickers(self, pairs: Iterable[str]) -> Dict[str, Quote]:
        """
        Fetch best ask/bid for each pair.

        Pairs without a usable ask and bid are left out of the result.
        """
        pairs = list(pairs)
        if not pairs:
            return {}
        resp = await self._call("get_tickers", self.exchange.fetch_tickers, pairs)
        quotes: Dict[str, Quote] = {}
        for pair in pairs:
            ticker = resp.get(pair) or {}
            ask, bid = ticker.get("ask"), ticker.get("bid")
            if ask is None or bid is None or float(ask) <= 0:
                continue
            quotes[pair] = Quote(pair=pair, ask=float(ask), bid=float(bid))
        return quotes

    async def get_tradable_pairs(self, base_currency: str) -> Set[str]:
        """Active spot markets quoted in the base currency."""
        markets = await self._call("get_tradable_pairs", self.exchange.load_markets)
        return {
            m["symbol"]
            for m in markets.values()
            if m.get("quote") == base_currency
            and m.get("spot", True)
            and m.get("active") is not False
        }

    async def get_recent_trades(self, pair: str, since: Optional[int] = None) -> List[Dict[str, Any]]:
        """
        Fetch public trades for a pair.

        Returns:
            List of {price, amount, side, timestamp}, oldest first
        """
        resp = await self._call("get_recent_trades", self.exchange.fetch_trades, pair, since)
        trades: List[Dict[str, Any]] = []
        for t in resp or []:
            if t.get("price") is None or t.get("timestamp") is None:
                continue
            trades.append({
                "price": float(t["price"]),
                "amount": float(t.get("amount") or 0.0),
                "side": t.get("side"),
                "timestamp": int(t["timestamp"]),
            })
        trades.sort(key=lambda x: x["timestamp"])
        return trades

    async def place_order(self, request: OrderRequest) -> Optional[str]:
        """
        Place an order.

        Returns:
            Exchange order id ("dry-run" in dry-run mode)

        Raises:
            GatewayError: order rejected or request failed
        """
        if self.dry_run:
            logger.info("Dry run: order not sent", pair=request.pair, side=request.side,
                        volume=request.volume, price=request.price)
            return "dry-run"
        price = request.price if request.type == "limit" else None
        resp = await self._call(
            "place_order",
            self.exchange.create_order,
            request.pair,
            request.type,
            request.side,
            request.volume,
            price,
        )
        return (resp or {}).get("id")

    async def withdraw(self, request: WithdrawalRequest) -> Optional[str]:
        """
        Withdraw to a withdrawal key registered on the exchange.

        ``request.address`` is the key name as set up on the account; Kraken
        resolves the destination from it and rejects calls without it.

        Returns:
            Exchange reference id ("dry-run" in dry-run mode)
        """
        if self.dry_run:
            logger.info("Dry run: withdrawal not sent", asset=request.asset,
                        amount=request.amount, address=request.address)
            return "dry-run"
        resp = await self._call(
            "withdraw",
            self.exchange.withdraw,
            request.asset,
            request.amount,
            request.address,
            params={"key": request.address},
        )
        return (resp or {}).get("id")

    async def close(self) -> None:
        """Release the underlying HTTP session."""
        await self.exchange.close()
