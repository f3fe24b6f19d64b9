"""
Order task data structures (OrderTask, TaskOutcome).
"""

from dataclasses import dataclass
from typing import Literal, Optional, Union

from momentum_rebalancer.data.gateway import OrderRequest, WithdrawalRequest
from momentum_rebalancer.utils.precision import format_amount

TaskKind = Literal["buy", "sell", "withdrawal"]


@dataclass
class OrderTask:
    """
    One unit of work for the execution queue.

    Owned by the queue from submission until it succeeds or exhausts its
    retries; never persisted.
    """

    kind: TaskKind
    request: Union[OrderRequest, WithdrawalRequest]
    retries: int = 0  # Extra attempts after the first one
    notional: Optional[float] = None  # Base-currency value, for logging
    attempts: int = 0

    @classmethod
    def buy(cls, pair: str, volume: float, price: float, retries: int,
            order_type: str = "limit", notional: Optional[float] = None) -> "OrderTask":
        request = OrderRequest(pair=pair, side="buy", volume=volume, price=price, type=order_type)
        return cls(kind="buy", request=request, retries=retries, notional=notional)

    @classmethod
    def sell(cls, pair: str, volume: float, price: float, retries: int,
             order_type: str = "limit") -> "OrderTask":
        request = OrderRequest(pair=pair, side="sell", volume=volume, price=price, type=order_type)
        return cls(kind="sell", request=request, retries=retries, notional=volume * price)

    @classmethod
    def withdrawal(cls, asset: str, address: str, amount: float, retries: int) -> "OrderTask":
        request = WithdrawalRequest(asset=asset, address=address, amount=amount)
        return cls(kind="withdrawal", request=request, retries=retries)

    @property
    def is_order(self) -> bool:
        return self.kind in ("buy", "sell")

    def describe(self) -> str:
        if isinstance(self.request, WithdrawalRequest):
            return f"withdraw {format_amount(self.request.amount)} {self.request.asset} to {self.request.address}"
        return f"{self.request.side} {format_amount(self.request.volume)} {self.request.pair} @ {self.request.price}"


@dataclass
class TaskOutcome:
    """Result of a settled task."""

    task: OrderTask
    status: Literal["succeeded", "abandoned"]
    attempts: int
    reference: Optional[str] = None  # Exchange order / withdrawal id
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == "succeeded"
