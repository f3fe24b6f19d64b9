"""
Run Metrics

Counters collected during one run and logged when the run completes:
task counts by kind and outcome, plus skipped pairs and ledger failures.
"""

from collections import Counter
from typing import Dict


class RunMetrics:
    """Per-run counters."""

    def __init__(self):
        self.counters: Counter = Counter()

    def incr(self, name: str, amount: int = 1):
        self.counters[name] += amount

    def get(self, name: str) -> int:
        return self.counters.get(name, 0)

    def snapshot(self) -> Dict[str, int]:
        return dict(self.counters)
