"""Execution: order tasks and the serialized execution queue."""

from momentum_rebalancer.execution.orders import OrderTask, TaskOutcome
from momentum_rebalancer.execution.queue import ExecutionQueue

__all__ = ["ExecutionQueue", "OrderTask", "TaskOutcome"]
