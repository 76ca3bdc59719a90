"""
Attendance store command line entry point.

Maintenance commands for the cache layer, run against the configured
remote store:

    attendance-store warmup                  preload roster and today's table
    attendance-store init-daily [--date D]   create/seed a daily table, add new employees
    attendance-store stats                   warm up, then print cache statistics

Configuration is entirely via environment variables.
See config.py for all available settings.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from datetime import date

import json_log_formatter

from .config import StoreConfig
from .remote.base import RemoteStoreError
from .service import AttendanceStore

logger = logging.getLogger(__name__)


def setup_logging(config: StoreConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Store configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("gspread").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("google").setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="attendance-store",
        description="Attendance store cache maintenance",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("warmup", help="Preload the roster and today's table")

    init_daily = subparsers.add_parser(
        "init-daily",
        help="Create and seed a daily table, adding employees it lacks",
    )
    init_daily.add_argument(
        "--date",
        type=date.fromisoformat,
        default=None,
        help="Day to initialize (YYYY-MM-DD, default: today in TIMEZONE)",
    )

    subparsers.add_parser("stats", help="Warm up and print cache statistics")
    return parser


async def run_command(store: AttendanceStore, args: argparse.Namespace) -> int:
    """Run one subcommand against a connected store; returns the exit code."""
    if args.command == "warmup":
        ok = await store.warmup()
        print(json.dumps({"warmed_up": ok}))
        return 0 if ok else 1

    if args.command == "init-daily":
        table = store.daily_table_name(args.date)
        ok = await store.initialize_daily_table(args.date)
        print(json.dumps({"table": table, "initialized": ok}))
        return 0 if ok else 2

    if args.command == "stats":
        await store.warmup()
        print(json.dumps(store.cache_stats(), indent=2, default=str))
        return 0

    raise ValueError(f"Unknown command: {args.command}")


async def _run(config: StoreConfig, args: argparse.Namespace) -> int:
    async with AttendanceStore.from_config(config) as store:
        return await run_command(store, args)


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    try:
        config = StoreConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config)
    config.log_config()

    try:
        code = asyncio.run(_run(config, args))
    except RemoteStoreError as e:
        logger.error(f"Command failed: {e}", extra={"code": e.code}, exc_info=True)
        sys.exit(1)
    sys.exit(code)


if __name__ == "__main__":
    main()
