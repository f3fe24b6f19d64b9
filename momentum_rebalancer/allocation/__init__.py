"""Allocation Calculator: fixed-percentage split of the fiat balance."""

from momentum_rebalancer.allocation.calculator import (
    AllocationBuy,
    AllocationPlan,
    SkippedAllocation,
    compute_allocation,
    target_volume,
)

__all__ = [
    "AllocationBuy",
    "AllocationPlan",
    "SkippedAllocation",
    "compute_allocation",
    "target_volume",
]
