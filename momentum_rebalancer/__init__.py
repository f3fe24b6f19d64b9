"""
Momentum Rebalancer

Keeps a multi-asset crypto portfolio on a fixed percentage allocation and
trades short-term momentum against a trailing average of sampled quotes.

Components:
- Allocation Calculator: Splits the fiat balance by the allocation table
- Signal Engine: Classifies pairs as buy/sell from a 6-sample trailing mean
- Execution Queue: Single-worker order/withdrawal queue with bounded retry
- Run Orchestrator: Balance → spend split → momentum → allocation → withdrawals → drain
- Exchange Gateway: ccxt (Kraken) client
- Trade Ledger: SQLite store of sampled quotes and accepted orders
- Scheduler: Optional fixed-interval loop of batch runs
"""

__version__ = "0.1.0"

from momentum_rebalancer.core.config import Config
from momentum_rebalancer.core.orchestrator import RunOrchestrator, RunReport
from momentum_rebalancer.core.scheduler import Scheduler

__all__ = [
    "Config",
    "RunOrchestrator",
    "RunReport",
    "Scheduler",
]
