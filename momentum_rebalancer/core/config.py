"""
Configuration management for the rebalancer.

Allocation table, trading thresholds, retry policy and collaborator settings.
Supports loading from YAML/dict and environment variable overrides.
"""

import math
import os
from dataclasses import dataclass, field, fields, is_dataclass
from typing import Dict, Literal


@dataclass
class CurrencyAllocation:
    """Target share of the fiat balance for one asset."""

    percentage: float = 0.0  # 0..100, table must sum to exactly 100
    address: str = ""  # Withdrawal address key (empty = never withdraw)
    withdraw_minimum: float = 0.0  # Only withdraw once the balance reaches this amount


@dataclass
class ExchangeConfig:
    """Exchange connection settings."""

    exchange_id: str = "kraken"  # ccxt exchange id
    api_key: str = ""  # From env
    api_secret: str = ""  # From env
    sandbox: bool = False


@dataclass
class TradingConfig:
    """Spend split and momentum thresholds."""

    base_currency: str = "EUR"
    fee_reserve: float = 1.0  # Kept back from the base balance to pay fees
    min_balance: float = 10.0  # Skip a spend bucket below this amount
    min_order_notional: float = 1.0  # Smallest order, in base currency
    trade_fraction: float = 0.25  # Share of the available balance used for momentum trades
    window_size: int = 6  # Trailing trade records averaged for momentum
    profit_threshold: float = 1.01  # sell_price / last_buy_price required to sell
    order_type: Literal["limit", "market"] = "limit"


@dataclass
class RetryConfig:
    """Execution queue retry policy, per task kind."""

    order_retries: int = 5
    withdrawal_retries: int = 5
    read_retries: int = 5  # Balance, pairs and rate lookups outside the queue
    backoff_sec: float = 0.5  # Delay before first retry (0 = retry immediately)
    backoff_multiplier: float = 2.0
    call_timeout_sec: float = 30.0  # Per gateway call; expiry counts as a failed attempt


@dataclass
class LedgerConfig:
    """Trade ledger storage."""

    path: str = "data/ledger.sqlite3"


@dataclass
class MonitoringConfig:
    """Logging."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_json: bool = False


@dataclass
class SchedulerConfig:
    """Recurring mode (``loop`` command)."""

    interval_minutes: int = 60


def _default_currencies() -> Dict[str, CurrencyAllocation]:
    return {
        "BTC": CurrencyAllocation(percentage=40),
        "ETH": CurrencyAllocation(percentage=40),
        "LTC": CurrencyAllocation(percentage=10),
        "ZEC": CurrencyAllocation(percentage=10),
    }


@dataclass
class Config:
    """
    Complete system configuration.

    Load from YAML/environment variables.

    Environment variables (override config file):
    - KRAKEN_API_KEY / KRAKEN_API_SECRET: Exchange credentials
    - REBALANCER_EXCHANGE: ccxt exchange id
    - REBALANCER_LEDGER_PATH: SQLite ledger file
    """

    currencies: Dict[str, CurrencyAllocation] = field(default_factory=_default_currencies)
    exchange: ExchangeConfig = field(default_factory=ExchangeConfig)
    trading: TradingConfig = field(default_factory=TradingConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)

    def __post_init__(self):
        """Load environment variable overrides."""
        if os.getenv("KRAKEN_API_KEY"):
            self.exchange.api_key = os.getenv("KRAKEN_API_KEY", "")

        if os.getenv("KRAKEN_API_SECRET"):
            self.exchange.api_secret = os.getenv("KRAKEN_API_SECRET", "")

        if os.getenv("REBALANCER_EXCHANGE"):
            self.exchange.exchange_id = os.getenv("REBALANCER_EXCHANGE", "kraken")

        if os.getenv("REBALANCER_LEDGER_PATH"):
            self.ledger.path = os.getenv("REBALANCER_LEDGER_PATH", self.ledger.path)

    @classmethod
    def from_yaml(cls, path: str) -> "Config":
        """Load config from YAML file."""
        import yaml

        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict) -> "Config":
        """
        Load config from dictionary.

        ``currencies`` maps symbol -> CurrencyAllocation fields; every other
        top-level key maps to the section dataclass of the same name.
        Numeric fields are converted from strings (``percentage: "40"``);
        unconvertible values raise ValueError or TypeError.
        """
        def coerce(f, value):
            if isinstance(f.default, bool) or value is None:
                return value
            if isinstance(f.default, float):
                return float(value)
            if isinstance(f.default, int):
                return int(value)
            return value

        def build(dc_type, values):
            if not is_dataclass(dc_type):
                return values
            return dc_type(**{f.name: coerce(f, values[f.name]) for f in fields(dc_type) if f.name in values})

        kwargs = {}
        for f in fields(cls):
            if f.name not in data:
                continue
            if f.name == "currencies":
                kwargs["currencies"] = {
                    str(symbol).upper(): build(CurrencyAllocation, entry or {})
                    for symbol, entry in (data["currencies"] or {}).items()
                }
            else:
                kwargs[f.name] = build(f.default_factory, data[f.name] or {})
        return cls(**kwargs)

    def validate(self) -> list[str]:
        """
        Validate configuration parameters.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        if not self.exchange.api_key:
            errors.append("KRAKEN_API_KEY environment variable required")

        if not self.exchange.api_secret:
            errors.append("KRAKEN_API_SECRET environment variable required")

        if not self.currencies:
            errors.append("currencies: at least one currency must be configured")

        total = 0.0
        for symbol, allocation in self.currencies.items():
            if not (0 <= allocation.percentage <= 100):
                errors.append(f"currencies.{symbol}.percentage must be in [0, 100]")
            if allocation.withdraw_minimum < 0:
                errors.append(f"currencies.{symbol}.withdraw_minimum must be >= 0")
            total += float(allocation.percentage)

        # Reject, never normalise: float sums only get an epsilon of slack
        if self.currencies and not math.isclose(total, 100.0, rel_tol=0.0, abs_tol=1e-9):
            errors.append(f"Currency distribution needs to be 100% (is: {total:g}%)")

        if self.trading.base_currency.upper() in self.currencies:
            errors.append("base currency cannot also be an allocation currency")

        if self.trading.fee_reserve < 0:
            errors.append("trading.fee_reserve must be >= 0")

        if self.trading.min_balance < 0:
            errors.append("trading.min_balance must be >= 0")

        if self.trading.min_order_notional < 0:
            errors.append("trading.min_order_notional must be >= 0")

        if not (0.0 <= self.trading.trade_fraction <= 1.0):
            errors.append("trading.trade_fraction must be in [0, 1]")

        if self.trading.window_size < 1:
            errors.append("trading.window_size must be >= 1")

        if self.trading.profit_threshold < 1.0:
            errors.append("trading.profit_threshold must be >= 1.0")

        if min(self.retry.order_retries, self.retry.withdrawal_retries, self.retry.read_retries) < 0:
            errors.append("retry counts must be >= 0")

        if self.retry.backoff_sec < 0 or self.retry.backoff_multiplier < 1.0:
            errors.append("retry.backoff_sec must be >= 0 and retry.backoff_multiplier >= 1")

        if self.retry.call_timeout_sec <= 0:
            errors.append("retry.call_timeout_sec must be > 0")

        if self.scheduler.interval_minutes < 1:
            errors.append("scheduler.interval_minutes must be >= 1")

        return errors
