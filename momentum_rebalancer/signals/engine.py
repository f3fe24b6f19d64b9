"""
Signal Engine

Classifies each tradable pair as buy / sell / hold by comparing the current
ask with the mean buy price of the trailing window of sampled quotes, records
the new sample, and sizes the resulting orders.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Literal, Optional

from momentum_rebalancer.core.config import Config
from momentum_rebalancer.data.gateway import ExchangeGateway
from momentum_rebalancer.data.ledger import TradeLedger
from momentum_rebalancer.data.models import Quote, TradeRecord, now_ms
from momentum_rebalancer.errors import GatewayError, LedgerError
from momentum_rebalancer.execution.orders import OrderTask
from momentum_rebalancer.monitoring.logging import get_logger
from momentum_rebalancer.utils.math_helpers import trailing_mean
from momentum_rebalancer.utils.precision import floor_to_decimals

logger = get_logger(__name__)


@dataclass(frozen=True)
class SignalRecord:
    """Momentum classification for one pair."""

    pair: str
    action: Literal["buy", "sell", "hold"]
    price: float  # ask for buys, bid for sells
    momentum: float  # ask - trailing average
    trailing_average: float


@dataclass
class MomentumDecision:
    """Classified pairs of one evaluation."""

    buys: List[SignalRecord] = field(default_factory=list)
    sells: List[SignalRecord] = field(default_factory=list)
    holds: List[SignalRecord] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)  # no quote or not enough history


def classify(pair: str, quote: Quote, window: List[TradeRecord]) -> SignalRecord:
    """
    Classify a pair from its quote and trailing window.

    momentum = ask - mean(window buy prices):
    > 0 buy at the ask, < 0 sell at the bid, == 0 hold.
    """
    average = trailing_mean([r.buy for r in window])
    momentum = quote.ask - average
    if momentum > 0:
        return SignalRecord(pair, "buy", quote.ask, momentum, average)
    if momentum < 0:
        return SignalRecord(pair, "sell", quote.bid, momentum, average)
    return SignalRecord(pair, "hold", quote.ask, momentum, average)


class SignalEngine:
    """
    Momentum decision engine.

    Evaluation per run:
    1. Fetch quotes for all tradable pairs (one batched gateway call)
    2. Read each pair's trailing window from the ledger (concurrently)
    3. Classify pairs with a full window
    4. Append a new TradeRecord for every quoted pair, whatever the outcome
    """

    def __init__(
        self,
        config: Config,
        gateway: ExchangeGateway,
        ledger: TradeLedger,
        clock: Callable[[], int] = now_ms,
    ):
        """
        Initialize signal engine.

        Args:
            config: System configuration
            gateway: Exchange gateway (quotes)
            ledger: Trade ledger (trailing window, last buy orders)
            clock: Epoch-millisecond clock
        """
        self.config = config
        self.gateway = gateway
        self.ledger = ledger
        self.clock = clock

    async def evaluate(self, pairs: Iterable[str]) -> MomentumDecision:
        """
        Classify every pair.

        Args:
            pairs: Tradable pairs quoted in the base currency

        Returns:
            MomentumDecision (buys / sells / holds / skipped)
        """
        pairs = sorted(set(pairs))
        decision = MomentumDecision()
        if not pairs:
            return decision

        try:
            quotes = await self.gateway.get_tickers(pairs)
        except GatewayError as e:
            logger.error("Failed to fetch rates, no momentum decisions this run", error=str(e))
            decision.skipped.extend(pairs)
            return decision

        sampled_at = self.clock()
        results = await asyncio.gather(*(
            self._evaluate_pair(pair, quotes.get(pair), sampled_at) for pair in pairs
        ))

        for pair, signal in zip(pairs, results):
            if signal is None:
                decision.skipped.append(pair)
            elif signal.action == "buy":
                decision.buys.append(signal)
            elif signal.action == "sell":
                decision.sells.append(signal)
            else:
                decision.holds.append(signal)

        logger.info("Momentum evaluated", buys=len(decision.buys), sells=len(decision.sells),
                    holds=len(decision.holds), skipped=len(decision.skipped))
        return decision

    async def _evaluate_pair(self, pair: str, quote: Optional[Quote], sampled_at: int) -> Optional[SignalRecord]:
        if quote is None:
            logger.warning("No quote for pair, skipping", pair=pair)
            return None

        window_size = self.config.trading.window_size
        signal: Optional[SignalRecord] = None
        try:
            window = await self.ledger.get_last_trades(pair, window_size)
        except LedgerError as e:
            logger.error("Failed to read trade window", pair=pair, error=str(e))
            window = []

        if len(window) < window_size:
            logger.debug("Not enough history for pair", pair=pair, records=len(window), needed=window_size)
        else:
            signal = classify(pair, quote, window)
            logger.debug("Pair classified", pair=pair, action=signal.action,
                         momentum=signal.momentum, average=signal.trailing_average)

        # The window advances every run, traded or not
        try:
            await self.ledger.append_trade(TradeRecord(pair=pair, buy=quote.ask, sell=quote.bid, timestamp=sampled_at))
        except LedgerError as e:
            logger.error("Failed to record trade sample", pair=pair, error=str(e))

        return signal

    def size_buys(self, buys: List[SignalRecord], trade_amount: float) -> List[OrderTask]:
        """
        Split the momentum budget evenly across buy candidates.

        Args:
            buys: Buy signals
            trade_amount: Base-currency budget for momentum buys

        Returns:
            Buy tasks (empty when each share is below the minimum notional)
        """
        if not buys or trade_amount <= 0:
            return []

        share = floor_to_decimals(trade_amount / len(buys), 2)
        base = self.config.trading.base_currency
        if share < self.config.trading.min_order_notional:
            logger.info(f"{share} {base} per pair is not enough for momentum buys",
                        candidates=len(buys), trade_amount=trade_amount)
            return []

        return [
            OrderTask.buy(
                pair=signal.pair,
                volume=share / signal.price,
                price=signal.price,
                retries=self.config.retry.order_retries,
                order_type=self.config.trading.order_type,
                notional=share,
            )
            for signal in buys
        ]

    async def size_sells(self, sells: List[SignalRecord], evaluated_at: Optional[int] = None) -> List[OrderTask]:
        """
        Size sells from the last recorded buy of each pair.

        A sell goes ahead only if a buy order older than ``evaluated_at``
        exists and sell_price / buy_price >= profit_threshold; it then sells
        that buy's volume. Everything else is dropped.
        """
        if evaluated_at is None:
            evaluated_at = self.clock()
        threshold = self.config.trading.profit_threshold
        tasks: List[OrderTask] = []

        for signal in sells:
            try:
                last_buy = await self.ledger.get_last_order(signal.pair, "buy")
            except LedgerError as e:
                logger.error("Failed to read last buy order", pair=signal.pair, error=str(e))
                continue

            if last_buy is None or last_buy.timestamp >= evaluated_at:
                logger.debug("No prior buy order, not selling", pair=signal.pair)
                continue

            if last_buy.price <= 0 or signal.price / last_buy.price < threshold:
                logger.info("Sell below profit threshold, holding", pair=signal.pair,
                            bid=signal.price, bought_at=last_buy.price, threshold=threshold)
                continue

            tasks.append(OrderTask.sell(
                pair=signal.pair,
                volume=last_buy.volume,
                price=signal.price,
                retries=self.config.retry.order_retries,
                order_type=self.config.trading.order_type,
            ))

        return tasks
