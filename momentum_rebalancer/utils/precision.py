"""
Precision helpers for fiat and asset amounts.

Amounts are always rounded down so an order never spends more than was allocated.
"""

from decimal import Decimal, ROUND_DOWN


def floor_to_decimals(value: float, decimals: int = 2) -> float:
    """
    Round a non-negative amount down to a fixed number of decimal places.

    Goes through the shortest repr of the float so that e.g. 0.29 stays 0.29
    instead of becoming 0.28 from binary representation error.

    Args:
        value: Amount to round
        decimals: Decimal places to keep

    Returns:
        Rounded-down amount
    """
    if value < 0:
        raise ValueError(f"amount must be >= 0, got {value}")
    quantum = Decimal(1).scaleb(-decimals)
    return float(Decimal(repr(value)).quantize(quantum, rounding=ROUND_DOWN))


def format_amount(value: float, decimals: int = 8) -> str:
    """
    Format an amount for logging / exchange requests.

    Args:
        value: Amount
        decimals: Max decimal places (trailing zeros stripped)

    Returns:
        Formatted string
    """
    text = f"{floor_to_decimals(value, decimals):.{decimals}f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text
