"""Utilities: precision helpers, math functions."""

from momentum_rebalancer.utils.precision import floor_to_decimals, format_amount
from momentum_rebalancer.utils.math_helpers import trailing_mean

__all__ = [
    "floor_to_decimals",
    "format_amount",
    "trailing_mean",
]
