"""Exchange gateway, trade ledger and shared data structures."""

from momentum_rebalancer.data.models import Quote, TradeRecord, OrderRecord, Balance
from momentum_rebalancer.data.gateway import ExchangeGateway, CcxtGateway, OrderRequest, WithdrawalRequest
from momentum_rebalancer.data.ledger import TradeLedger, SQLiteTradeLedger

__all__ = [
    "Quote",
    "TradeRecord",
    "OrderRecord",
    "Balance",
    "ExchangeGateway",
    "CcxtGateway",
    "OrderRequest",
    "WithdrawalRequest",
    "TradeLedger",
    "SQLiteTradeLedger",
]
