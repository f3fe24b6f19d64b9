"""
Error taxonomy for the rebalancer.

Configuration errors are fatal and raised before any network call.
Gateway errors are transient and retried by the execution queue.
Ledger errors are logged and only ever skip the affected item.
"""

from typing import Any, Dict, List, Optional


class RebalancerError(Exception):
    """Base class for all rebalancer errors."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.context = context or {}


class ConfigError(RebalancerError):
    """Invalid configuration. Aborts the process before a run starts."""

    def __init__(self, problems: List[str]):
        super().__init__("Configuration validation failed: " + "; ".join(problems))
        self.problems = list(problems)


class GatewayError(RebalancerError):
    """Exchange call failed (network, rate limit, rejected order, timeout)."""

    def __init__(self, message: str, operation: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.operation = operation


class LedgerError(RebalancerError):
    """Trade ledger read or write failed."""

    def __init__(self, message: str, operation: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.operation = operation
