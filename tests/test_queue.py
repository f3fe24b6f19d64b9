"""Tests for the serialized execution queue."""

import asyncio

from momentum_rebalancer.core.config import RetryConfig
from momentum_rebalancer.execution.orders import OrderTask
from momentum_rebalancer.execution.queue import ExecutionQueue


def make_queue(gateway, ledger, **retry):
    retry.setdefault("backoff_sec", 0.0)
    return ExecutionQueue(gateway, ledger, RetryConfig(**retry))


def buy(pair="BTC/EUR", retries=5, volume=0.1, price=100.0):
    return OrderTask.buy(pair=pair, volume=volume, price=price, retries=retries)


async def drain(queue, *tasks):
    for task in tasks:
        queue.submit(task)
    await queue.close()
    return queue.outcomes


class TestRetry:

    def test_exhausted_task_attempted_retries_plus_one(self, gateway, ledger):
        gateway.fail_plan["BTC/EUR"] = 100
        queue = make_queue(gateway, ledger)

        outcomes = asyncio.run(drain(queue, buy(retries=5)))

        assert gateway.order_attempts == 6
        assert outcomes[0].status == "abandoned"
        assert outcomes[0].attempts == 6
        assert "rejected" in outcomes[0].error
        assert ledger.orders == []

    def test_zero_retries_single_attempt(self, gateway, ledger):
        gateway.fail_plan["BTC/EUR"] = 1
        queue = make_queue(gateway, ledger)

        outcomes = asyncio.run(drain(queue, buy(retries=0)))

        assert gateway.order_attempts == 1
        assert outcomes[0].status == "abandoned"

    def test_success_on_third_attempt_writes_one_record(self, gateway, ledger):
        gateway.fail_plan["BTC/EUR"] = 2
        queue = make_queue(gateway, ledger)

        outcomes = asyncio.run(drain(queue, buy(retries=5, volume=0.25, price=120.0)))

        assert gateway.order_attempts == 3
        assert outcomes[0].status == "succeeded"
        assert outcomes[0].attempts == 3
        assert outcomes[0].reference == "O1"
        assert len(ledger.orders) == 1
        record = ledger.orders[0]
        assert (record.pair, record.volume, record.price, record.type) == ("BTC/EUR", 0.25, 120.0, "buy")

    def test_timeout_counts_as_failed_attempt(self, gateway, ledger):
        gateway.call_delay = 1.0
        queue = make_queue(gateway, ledger, call_timeout_sec=0.01)

        outcomes = asyncio.run(drain(queue, buy(retries=1)))

        assert gateway.order_attempts == 2
        assert outcomes[0].status == "abandoned"
        assert "timed out" in outcomes[0].error
        assert ledger.orders == []

    def test_backoff_grows_between_attempts(self, gateway, ledger, monkeypatch):
        delays = []
        real_sleep = asyncio.sleep

        async def fake_sleep(delay, *args, **kwargs):
            if delay:
                delays.append(delay)
            await real_sleep(0)

        monkeypatch.setattr(asyncio, "sleep", fake_sleep)
        gateway.fail_plan["BTC/EUR"] = 3
        queue = make_queue(gateway, ledger, backoff_sec=0.5, backoff_multiplier=2.0)

        asyncio.run(drain(queue, buy(retries=5)))

        assert delays == [0.5, 1.0, 2.0]


class TestOrdering:

    def test_fifo_with_one_call_in_flight(self, gateway, ledger, events):
        queue = make_queue(gateway, ledger)
        tasks = [buy(pair=p) for p in ("A/EUR", "B/EUR", "C/EUR")]
        tasks.append(OrderTask.withdrawal(asset="BTC", address="cold", amount=0.5, retries=5))

        outcomes = asyncio.run(drain(queue, *tasks))

        assert events == ["buy:A/EUR", "buy:B/EUR", "buy:C/EUR", "withdraw:BTC"]
        assert gateway.max_in_flight == 1
        assert [o.status for o in outcomes] == ["succeeded"] * 4

    def test_retrying_task_keeps_its_slot(self, gateway, ledger, events):
        gateway.fail_plan["A/EUR"] = 2
        queue = make_queue(gateway, ledger)

        asyncio.run(drain(queue, buy(pair="A/EUR"), buy(pair="B/EUR")))

        assert events == ["buy:A/EUR", "buy:A/EUR", "buy:A/EUR", "buy:B/EUR"]

    def test_abandoned_task_does_not_stop_queue(self, gateway, ledger):
        gateway.fail_plan["A/EUR"] = 100
        queue = make_queue(gateway, ledger)

        outcomes = asyncio.run(drain(queue, buy(pair="A/EUR", retries=1), buy(pair="B/EUR")))

        assert [o.status for o in outcomes] == ["abandoned", "succeeded"]
        assert [r.pair for r in ledger.orders] == ["B/EUR"]
        assert queue.metrics.get("tasks_abandoned") == 1
        assert queue.metrics.get("tasks_succeeded") == 1

    def test_join_waits_for_submitted_tasks_only(self, gateway, ledger):
        async def scenario():
            queue = make_queue(gateway, ledger)
            queue.submit(buy(pair="A/EUR"))
            await queue.join()
            settled_after_join = len(queue.outcomes)
            queue.submit(buy(pair="B/EUR"))
            await queue.close()
            return settled_after_join, len(queue.outcomes)

        assert asyncio.run(scenario()) == (1, 2)


def test_describe_formats_amounts():
    assert buy(volume=0.123456789, price=100.0).describe() == "buy 0.12345678 BTC/EUR @ 100.0"
    withdrawal = OrderTask.withdrawal(asset="BTC", address="cold", amount=0.5, retries=0)
    assert withdrawal.describe() == "withdraw 0.5 BTC to cold"


class TestPersistence:

    def test_withdrawal_writes_no_order_record(self, gateway, ledger):
        queue = make_queue(gateway, ledger)

        outcomes = asyncio.run(drain(queue, OrderTask.withdrawal(asset="ETH", address="w", amount=2.0, retries=0)))

        assert outcomes[0].succeeded
        assert gateway.withdrawals[0].amount == 2.0
        assert ledger.orders == []

    def test_order_record_uses_injected_clock(self, gateway, ledger):
        queue = ExecutionQueue(gateway, ledger, RetryConfig(backoff_sec=0.0), clock=lambda: 42_000)

        asyncio.run(drain(queue, buy(pair="A/EUR")))

        assert ledger.orders[0].timestamp == 42_000
        assert queue.last_recorded_at == 42_000

    def test_ledger_failure_does_not_stall_or_retry(self, gateway, ledger):
        ledger.fail_order_writes = True
        queue = make_queue(gateway, ledger)

        outcomes = asyncio.run(drain(queue, buy(pair="A/EUR"), buy(pair="B/EUR")))

        assert [o.status for o in outcomes] == ["succeeded", "succeeded"]
        assert gateway.order_attempts == 2
        assert queue.metrics.get("ledger_failures") == 2
        assert queue.last_recorded_at == 0
