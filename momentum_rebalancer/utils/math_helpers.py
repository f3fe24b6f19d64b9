"""
Mathematical helper functions.

Trailing mean for the fixed-window momentum signal.
"""

from typing import Sequence

import numpy as np


def trailing_mean(values: Sequence[float]) -> float:
    """
    Arithmetic mean of a trailing window.

    Args:
        values: Window values (any order)

    Returns:
        Mean of the values
    """
    arr = np.asarray(values, dtype=float)
    if arr.size == 0:
        raise ValueError("trailing window is empty")
    return float(np.mean(arr))
