"""
Main entry point for the rebalancer.

Validates configuration before any network call, then runs one batch
(``run``), runs on an interval (``loop``) or seeds the ledger (``backfill``).
Exit code 1 on configuration errors, 0 once a run has drained.
"""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import List, Optional

import yaml
from dotenv import load_dotenv

from momentum_rebalancer.core.config import Config
from momentum_rebalancer.core.orchestrator import RunOrchestrator, RunReport, backfill_trade_history
from momentum_rebalancer.core.scheduler import Scheduler
from momentum_rebalancer.data.gateway import CcxtGateway
from momentum_rebalancer.data.ledger import SQLiteTradeLedger
from momentum_rebalancer.errors import ConfigError
from momentum_rebalancer.monitoring.logging import configure_logging, get_logger

logger = get_logger(__name__)


def load_config(path: str = "") -> Config:
    """
    Load and validate configuration.

    Raises:
        ConfigError: unreadable file or failed validation
    """
    try:
        config = Config.from_yaml(path) if path else Config()
    except (OSError, ValueError, TypeError, yaml.YAMLError) as e:
        raise ConfigError([f"cannot load config {path!r}: {e}"]) from e
    errors = config.validate()
    if errors:
        raise ConfigError(errors)
    return config


class RebalancerApp:
    """Owns the exchange and ledger handles for the lifetime of the process."""

    def __init__(self, config: Config, dry_run: bool = False):
        self.config = config
        self.gateway = CcxtGateway(config, dry_run=dry_run)
        self.ledger = SQLiteTradeLedger(config.ledger.path)

    async def run_once(self) -> RunReport:
        return await RunOrchestrator(self.config, self.gateway, self.ledger).execute()

    async def run_loop(self):
        scheduler = Scheduler(self.config, self.run_once)
        try:
            await scheduler.run_forever()
        finally:
            scheduler.stop()

    async def backfill(self):
        return await backfill_trade_history(self.config, self.gateway, self.ledger)

    async def close(self):
        await self.gateway.close()
        self.ledger.close()


async def _dispatch(command: str, config: Config, dry_run: bool):
    app = RebalancerApp(config, dry_run=dry_run)
    try:
        if command == "loop":
            await app.run_loop()
        elif command == "backfill":
            await app.backfill()
        else:
            await app.run_once()
    finally:
        await app.close()


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    parser = argparse.ArgumentParser(prog="momentum-rebalancer")
    parser.add_argument("command", nargs="?", default="run", choices=["run", "loop", "backfill"],
                        help="run once (default), run on an interval, or seed the trade ledger")
    parser.add_argument("--config", type=str, default="", help="Path to YAML config file")
    parser.add_argument("--dry-run", action="store_true", help="Run without placing orders or withdrawals")
    parser.add_argument("--log-level", type=str, default="", help="Override monitoring.log_level")
    parser.add_argument("--json-logs", action="store_true", help="Emit JSON log lines")
    args = parser.parse_args(argv)

    # Load .env if present (before Config) to populate credentials
    load_dotenv(dotenv_path=Path.cwd() / ".env")

    try:
        config = load_config(args.config)
    except ConfigError as e:
        configure_logging(level=args.log_level or "INFO", format_json=args.json_logs)
        for problem in e.problems:
            logger.error("Configuration invalid", problem=problem)
        return 1

    configure_logging(level=args.log_level or config.monitoring.log_level,
                      format_json=args.json_logs or config.monitoring.log_json)

    logger.info("Starting", command=args.command, exchange=config.exchange.exchange_id,
                base=config.trading.base_currency, dry_run=args.dry_run)
    try:
        asyncio.run(_dispatch(args.command, config, args.dry_run))
    except KeyboardInterrupt:
        logger.info("Shutdown signal received")
    return 0


if __name__ == "__main__":
    sys.exit(main())
