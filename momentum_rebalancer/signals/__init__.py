"""Signal Engine: trailing-average momentum classification and order sizing."""

from momentum_rebalancer.signals.engine import MomentumDecision, SignalEngine, SignalRecord, classify

__all__ = ["MomentumDecision", "SignalEngine", "SignalRecord", "classify"]
