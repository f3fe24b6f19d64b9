"""
Run Orchestrator

One batch run: fetch balance → split spend → momentum trades → allocation
buys → withdrawals → drain the execution queue. The run never exits the
process; it returns a RunReport once the queue has drained.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from momentum_rebalancer.allocation.calculator import AllocationPlan, compute_allocation
from momentum_rebalancer.core.config import Config
from momentum_rebalancer.data.gateway import ExchangeGateway
from momentum_rebalancer.data.ledger import TradeLedger
from momentum_rebalancer.data.models import Balance, TradeRecord, make_pair, now_ms
from momentum_rebalancer.errors import GatewayError, LedgerError
from momentum_rebalancer.execution.orders import OrderTask, TaskOutcome
from momentum_rebalancer.execution.queue import ExecutionQueue
from momentum_rebalancer.monitoring.logging import get_logger
from momentum_rebalancer.monitoring.metrics import RunMetrics
from momentum_rebalancer.signals.engine import MomentumDecision, SignalEngine
from momentum_rebalancer.utils.precision import floor_to_decimals

logger = get_logger(__name__)


@dataclass(frozen=True)
class SpendPlan:
    """Split of the base-currency balance for one run."""

    available: float  # balance minus fee reserve
    trade_spend: float  # momentum buys
    allocation_spend: float  # fixed-percentage buys


@dataclass
class RunReport:
    """Result of one completed run."""

    started_at: int
    finished_at: Optional[int] = None
    stages: List[str] = field(default_factory=list)
    balance: Balance = field(default_factory=dict)
    spend: Optional[SpendPlan] = None
    decision: Optional[MomentumDecision] = None
    allocation: Optional[AllocationPlan] = None
    outcomes: List[TaskOutcome] = field(default_factory=list)
    metrics: Dict[str, int] = field(default_factory=dict)

    @property
    def succeeded(self) -> List[TaskOutcome]:
        return [o for o in self.outcomes if o.succeeded]

    @property
    def abandoned(self) -> List[TaskOutcome]:
        return [o for o in self.outcomes if not o.succeeded]


class RunOrchestrator:
    """
    Sequences a single run.

    Gateway and ledger are injected; every state-changing call goes
    through the execution queue. Stages:
    start → fetch_balance → compute_spend → momentum → allocation →
    withdrawals → drain → done
    """

    def __init__(
        self,
        config: Config,
        gateway: ExchangeGateway,
        ledger: TradeLedger,
        clock: Callable[[], int] = now_ms,
    ):
        """
        Initialize orchestrator.

        Args:
            config: Validated system configuration
            gateway: Exchange gateway
            ledger: Trade ledger
            clock: Epoch-millisecond clock
        """
        self.config = config
        self.gateway = gateway
        self.ledger = ledger
        self.clock = clock
        self.metrics = RunMetrics()
        self.queue = ExecutionQueue(gateway, ledger, config.retry, self.metrics, clock)
        self.signal_engine = SignalEngine(config, gateway, ledger, clock)
        self.report: Optional[RunReport] = None

    def _enter(self, stage: str):
        self.report.stages.append(stage)
        logger.info("Run stage", stage=stage)

    def compute_spend(self, base_balance: float) -> SpendPlan:
        """
        Split the base balance into momentum and allocation budgets.

        Both budgets are zero when the balance after the fee reserve is below
        ``min_balance``. A budget that falls below ``min_balance`` on its own
        is zeroed; a zeroed momentum budget goes to allocation.
        """
        trading = self.config.trading
        available = base_balance - trading.fee_reserve
        if available < trading.min_balance:
            return SpendPlan(available=max(available, 0.0), trade_spend=0.0, allocation_spend=0.0)

        trade_spend = floor_to_decimals(available * trading.trade_fraction, 2)
        if trade_spend < trading.min_balance:
            trade_spend = 0.0

        allocation_spend = floor_to_decimals(available - trade_spend, 2)
        if allocation_spend < trading.min_balance:
            allocation_spend = 0.0

        return SpendPlan(available=available, trade_spend=trade_spend, allocation_spend=allocation_spend)

    async def execute(self) -> RunReport:
        """
        Run one pass to completion.

        Returns:
            RunReport; individual task failures never raise
        """
        self.report = RunReport(started_at=self.clock())
        base = self.config.trading.base_currency
        self._enter("start")

        try:
            self._enter("fetch_balance")
            try:
                balance = await self._read("get_balance", self.gateway.get_balance)
            except GatewayError as e:
                logger.error("Failed to fetch balances", error=str(e))
                return self.report
            self.report.balance = dict(balance)

            self._enter("compute_spend")
            spend = self.compute_spend(balance.get(base, 0.0))
            self.report.spend = spend
            logger.info("Spend computed", base=base, balance=balance.get(base, 0.0),
                        trade_spend=spend.trade_spend, allocation_spend=spend.allocation_spend)

            self._enter("momentum")
            await self._run_momentum(spend.trade_spend)

            self._enter("allocation")
            await self._enqueue_allocation(spend.allocation_spend)

            self._enter("withdrawals")
            self._enqueue_withdrawals(balance)
        finally:
            self._enter("drain")
            await self.queue.close()
            self.report.outcomes = list(self.queue.outcomes)
            self.report.metrics = self.metrics.snapshot()
            self.report.finished_at = self.clock()
            self._enter("done")
            logger.info("Run complete", succeeded=len(self.report.succeeded),
                        abandoned=len(self.report.abandoned), **self.report.metrics)

        return self.report

    async def _run_momentum(self, trade_spend: float):
        """
        Evaluate momentum, place buys, then size and place sells.

        Buys are drained before sells are sized so a sell sees every buy
        order this run recorded. Sells are drained before returning so the
        allocation rate lookup never overlaps a queued order.
        """
        base = self.config.trading.base_currency
        try:
            pairs = await self._read("get_tradable_pairs", self.gateway.get_tradable_pairs, base)
        except GatewayError as e:
            logger.error("Failed to fetch tradable pairs, skipping momentum", error=str(e))
            return

        decision = await self.signal_engine.evaluate(pairs)
        self.report.decision = decision
        self.metrics.incr("pairs_skipped", len(decision.skipped))

        if trade_spend > 0:
            for task in self.signal_engine.size_buys(decision.buys, trade_spend):
                self.queue.submit(task)
        elif decision.buys:
            logger.info("No momentum budget this run, not buying", candidates=len(decision.buys))

        await self.queue.join()

        # Orders recorded by the drained buys must count as older than the sells
        evaluated_at = max(self.clock(), self.queue.last_recorded_at + 1)
        for task in await self.signal_engine.size_sells(decision.sells, evaluated_at):
            self.queue.submit(task)

        await self.queue.join()

    async def _enqueue_allocation(self, allocation_spend: float):
        base = self.config.trading.base_currency
        if allocation_spend <= 0:
            logger.info("Allocation spend below minimum, not buying", base=base)
            return

        pairs = [make_pair(symbol, base) for symbol in self.config.currencies]
        try:
            quotes = await self._read("get_tickers", self.gateway.get_tickers, pairs)
        except GatewayError as e:
            logger.error("Failed to fetch rates", error=str(e))
            quotes = {}

        logger.info(f"Buying crypto for {allocation_spend} {base}")
        plan = compute_allocation(
            allocation_spend,
            self.config.currencies,
            quotes,
            base,
            min_notional=self.config.trading.min_order_notional,
        )
        self.report.allocation = plan

        for buy in plan.buys:
            self.queue.submit(OrderTask.buy(
                pair=buy.pair,
                volume=buy.asset_volume,
                price=buy.price,
                retries=self.config.retry.order_retries,
                order_type=self.config.trading.order_type,
                notional=buy.volume,
            ))

    def _enqueue_withdrawals(self, balance: Balance):
        base = self.config.trading.base_currency
        for asset, amount in balance.items():
            if asset == base:
                continue
            allocation = self.config.currencies.get(asset)
            if allocation is None or not allocation.address:
                continue
            if amount > 0 and amount >= allocation.withdraw_minimum:
                self.queue.submit(OrderTask.withdrawal(
                    asset=asset,
                    address=allocation.address,
                    amount=amount,
                    retries=self.config.retry.withdrawal_retries,
                ))

    async def _read(self, operation: str, func, *args):
        """Read-only gateway call with timeout and bounded retry."""
        retry = self.config.retry
        max_attempts = retry.read_retries + 1
        delay = retry.backoff_sec
        for attempt in range(1, max_attempts + 1):
            try:
                return await asyncio.wait_for(func(*args), timeout=retry.call_timeout_sec)
            except (GatewayError, asyncio.TimeoutError) as e:
                if attempt == max_attempts:
                    raise GatewayError(f"{operation} failed after {attempt} attempts: {e}",
                                       operation=operation) from e
                logger.warning("Read failed, retrying", operation=operation, attempt=attempt, error=str(e))
                if delay > 0:
                    await asyncio.sleep(delay)
                    delay *= retry.backoff_multiplier


async def backfill_trade_history(
    config: Config,
    gateway: ExchangeGateway,
    ledger: TradeLedger,
    since: Optional[int] = None,
) -> Dict[str, int]:
    """
    Seed the trailing window from the exchange's recent public trades.

    Only pairs holding fewer records than the window get seeded, each with
    its most recent ``window_size`` trades (buy = sell = trade price).

    Returns:
        Mapping pair -> records written
    """
    window = config.trading.window_size
    pairs = await gateway.get_tradable_pairs(config.trading.base_currency)
    written: Dict[str, int] = {}

    for pair in sorted(pairs):
        try:
            if len(await ledger.get_last_trades(pair, window)) >= window:
                continue
            trades = await gateway.get_recent_trades(pair, since)
        except (GatewayError, LedgerError) as e:
            logger.error("Backfill failed for pair", pair=pair, error=str(e))
            continue

        count = 0
        for trade in trades[-window:]:
            try:
                await ledger.append_trade(TradeRecord(
                    pair=pair, buy=trade["price"], sell=trade["price"], timestamp=trade["timestamp"],
                ))
                count += 1
            except LedgerError as e:
                logger.error("Backfill write failed", pair=pair, error=str(e))
                break
        written[pair] = count
        logger.info("Backfilled pair", pair=pair, records=count)

    return written
