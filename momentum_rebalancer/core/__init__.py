"""Core system components: config, scheduler, orchestrator."""

from momentum_rebalancer.core.config import Config, CurrencyAllocation
from momentum_rebalancer.core.scheduler import Scheduler

__all__ = [
    "Config",
    "CurrencyAllocation",
    "Scheduler",
]
