"""
Execution Queue

Single-worker FIFO queue in front of the exchange: exactly one order or
withdrawal is in flight at any time. A failing task keeps its slot and is
retried up to its own bound before the next task runs; successful orders
are written to the trade ledger.
"""

import asyncio
from typing import Callable, List, Optional

from momentum_rebalancer.core.config import RetryConfig
from momentum_rebalancer.data.gateway import ExchangeGateway, WithdrawalRequest
from momentum_rebalancer.data.ledger import TradeLedger
from momentum_rebalancer.data.models import OrderRecord, now_ms
from momentum_rebalancer.errors import GatewayError, LedgerError
from momentum_rebalancer.execution.orders import OrderTask, TaskOutcome
from momentum_rebalancer.monitoring.logging import get_logger
from momentum_rebalancer.monitoring.metrics import RunMetrics

logger = get_logger(__name__)


class ExecutionQueue:
    """
    Serialized task runner.

    Tasks run in submission order. Each task gets 1 + task.retries attempts;
    every gateway call is bounded by retry.call_timeout_sec and a timeout
    counts as a failed attempt. Exhausted tasks are abandoned and the queue
    moves on, so one bad task never stalls the run.
    """

    def __init__(
        self,
        gateway: ExchangeGateway,
        ledger: TradeLedger,
        retry: RetryConfig,
        metrics: Optional[RunMetrics] = None,
        clock: Callable[[], int] = now_ms,
    ):
        """
        Initialize queue.

        Args:
            gateway: Exchange gateway (shared with the orchestrator)
            ledger: Trade ledger for accepted orders
            retry: Backoff and timeout policy
            metrics: Run counters
            clock: Epoch-millisecond clock stamped on order records
        """
        self.gateway = gateway
        self.ledger = ledger
        self.retry = retry
        self.metrics = metrics or RunMetrics()
        self.clock = clock
        self.outcomes: List[TaskOutcome] = []
        self.last_recorded_at = 0  # timestamp of the latest order written to the ledger
        self._queue: asyncio.Queue = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None

    def submit(self, task: OrderTask):
        """Enqueue a task; starts the worker on first use."""
        if self._worker is None:
            self._worker = asyncio.create_task(self._run())
        self._queue.put_nowait(task)
        self.metrics.incr(f"{task.kind}_submitted")
        logger.info("Task queued", kind=task.kind, task=task.describe(), position=self._queue.qsize())

    async def join(self):
        """Wait until every task submitted so far has settled."""
        await self._queue.join()

    async def close(self):
        """Drain the queue, then stop the worker."""
        await self.join()
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None

    async def _run(self):
        while True:
            task = await self._queue.get()
            try:
                try:
                    outcome = await self._execute(task)
                except Exception as e:
                    logger.exception("Task crashed", kind=task.kind, task=task.describe())
                    outcome = TaskOutcome(task=task, status="abandoned", attempts=task.attempts, error=str(e))
                self.outcomes.append(outcome)
                self.metrics.incr(f"tasks_{outcome.status}")
            finally:
                self._queue.task_done()

    async def _execute(self, task: OrderTask) -> TaskOutcome:
        max_attempts = task.retries + 1
        delay = self.retry.backoff_sec
        last_error = None

        for attempt in range(1, max_attempts + 1):
            task.attempts = attempt
            try:
                reference = await asyncio.wait_for(self._dispatch(task), timeout=self.retry.call_timeout_sec)
            except asyncio.TimeoutError:
                last_error = f"timed out after {self.retry.call_timeout_sec}s"
            except GatewayError as e:
                last_error = str(e)
            else:
                logger.info("Task done", kind=task.kind, task=task.describe(), attempt=attempt)
                if task.is_order:
                    await self._record(task)
                return TaskOutcome(task=task, status="succeeded", attempts=attempt, reference=reference)

            if attempt < max_attempts:
                logger.warning("Task failed, retrying", kind=task.kind, task=task.describe(),
                               attempt=attempt, remaining=max_attempts - attempt, error=last_error)
                if delay > 0:
                    await asyncio.sleep(delay)
                    delay *= self.retry.backoff_multiplier

        logger.error("Task abandoned", kind=task.kind, task=task.describe(),
                     attempts=max_attempts, error=last_error)
        return TaskOutcome(task=task, status="abandoned", attempts=max_attempts, error=last_error)

    async def _dispatch(self, task: OrderTask) -> Optional[str]:
        if isinstance(task.request, WithdrawalRequest):
            return await self.gateway.withdraw(task.request)
        return await self.gateway.place_order(task.request)

    async def _record(self, task: OrderTask):
        """Persist an accepted order; a lost record is logged, not retried."""
        request = task.request
        record = OrderRecord(
            pair=request.pair,
            volume=request.volume,
            price=request.price or 0.0,
            type=request.side,
            timestamp=self.clock(),
        )
        try:
            await self.ledger.append_order(record)
        except LedgerError as e:
            self.metrics.incr("ledger_failures")
            logger.error("Order accepted but not recorded", pair=record.pair, type=record.type,
                         volume=record.volume, price=record.price, error=str(e))
        else:
            self.last_recorded_at = max(self.last_recorded_at, record.timestamp)
