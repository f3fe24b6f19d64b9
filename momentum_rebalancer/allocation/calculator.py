"""
Allocation Calculator

Splits a fiat balance across the configured currencies by their fixed
percentage and converts each share into an asset volume at the current ask.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Literal

from momentum_rebalancer.core.config import CurrencyAllocation
from momentum_rebalancer.data.models import Quote, make_pair
from momentum_rebalancer.monitoring.logging import get_logger
from momentum_rebalancer.utils.precision import floor_to_decimals

logger = get_logger(__name__)


@dataclass(frozen=True)
class AllocationBuy:
    """Target buy for one currency."""

    symbol: str
    pair: str
    volume: float  # base currency
    asset_volume: float
    price: float  # ask used for conversion and as the limit price


@dataclass(frozen=True)
class SkippedAllocation:
    symbol: str
    reason: Literal["insufficient", "missing_quote"]
    volume: float = 0.0


@dataclass
class AllocationPlan:
    buys: List[AllocationBuy] = field(default_factory=list)
    skipped: List[SkippedAllocation] = field(default_factory=list)


def target_volume(balance: float, percentage: float) -> float:
    """Fiat share of the balance, rounded down to cents."""
    return floor_to_decimals(balance * percentage / 100, 2)


def compute_allocation(
    balance: float,
    currencies: Dict[str, CurrencyAllocation],
    quotes: Dict[str, Quote],
    base_currency: str,
    min_notional: float = 1.0,
) -> AllocationPlan:
    """
    Compute per-currency buys for a spendable balance.

    Currencies whose share is below the minimum order notional, or whose
    ``SYMBOL/BASE`` quote is missing, are skipped without affecting the rest.

    Args:
        balance: Spendable base-currency amount
        currencies: Allocation table (percentages sum to 100)
        quotes: Current quotes keyed by pair
        base_currency: Fiat currency the balance is denominated in
        min_notional: Smallest order in base currency

    Returns:
        AllocationPlan with buys and skipped currencies
    """
    plan = AllocationPlan()

    for symbol, allocation in currencies.items():
        volume = target_volume(balance, allocation.percentage)
        if volume < min_notional:
            logger.info(f"{volume} {base_currency} is not enough to buy {symbol}",
                        symbol=symbol, volume=volume)
            plan.skipped.append(SkippedAllocation(symbol=symbol, reason="insufficient", volume=volume))
            continue

        pair = make_pair(symbol, base_currency)
        quote = quotes.get(pair)
        if quote is None or quote.ask <= 0:
            logger.error("No quote for allocation currency, skipping", symbol=symbol, pair=pair)
            plan.skipped.append(SkippedAllocation(symbol=symbol, reason="missing_quote", volume=volume))
            continue

        plan.buys.append(AllocationBuy(
            symbol=symbol,
            pair=pair,
            volume=volume,
            asset_volume=volume / quote.ask,
            price=quote.ask,
        ))

    return plan
