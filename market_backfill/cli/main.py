"""
Main CLI entry point for the market data backfill system.

This module provides the command-line interface with argument parsing
and dispatching to the appropriate command handlers.
"""

import argparse
import sys
from typing import NoReturn, Optional, Sequence

from ..backfill import SentinelPolicy
from ..config import config
from ..utils.logging import setup_logging
from .commands import (
    schedule_command,
    run_task_command,
    list_tasks_command,
    load_stocks_command,
    fetch_holidays_command,
    db_info_command
)


def create_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser."""
    parser = argparse.ArgumentParser(
        description="Market Data Backfill - scheduled, idempotent backfills of market data",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s schedule --max-concurrent-requests 8
  %(prog)s run-task --name financial_statement_quarter
  %(prog)s list-tasks
  %(prog)s load-stocks --file ./stocks.csv
  %(prog)s fetch-holidays --year 2026
  %(prog)s db-info

Environment Variables:
  MARKET_BACKFILL_DB_PATH                  Database file path (default: market_data.db)
  MARKET_BACKFILL_REDIS_URL                Sentinel cache URL (default: redis://localhost:6379/0)
  MARKET_BACKFILL_MAX_CONCURRENT_REQUESTS  Outbound request cap (default: 4 x CPU count)
  MARKET_BACKFILL_TIMEZONE                 Scheduler timezone (default: UTC)
  MARKET_BACKFILL_LOG_LEVEL                Log level (default: INFO)
  MARKET_BACKFILL_LOG_FILE                 Log file path (optional)
        """
    )

    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose logging (DEBUG level)'
    )

    parser.add_argument(
        '--log-file',
        help='Log file path (overrides environment variable)'
    )

    subparsers = parser.add_subparsers(
        dest='command',
        help='Available commands',
        required=True
    )

    policies = [policy.value for policy in SentinelPolicy]

    # schedule command
    schedule_parser = subparsers.add_parser(
        'schedule',
        help='Start the cron scheduler and run backfills until interrupted'
    )
    schedule_parser.add_argument(
        '--max-concurrent-requests',
        type=int,
        help='Maximum concurrent outbound requests across all sources'
    )
    schedule_parser.add_argument(
        '--sentinel-policy',
        choices=policies,
        default=SentinelPolicy.ATTEMPTED.value,
        help='Mark a run done once attempted, or only when every item succeeded'
    )
    schedule_parser.add_argument(
        '--workers',
        type=int,
        default=1,
        help='Worker threads per task run (default: 1, sequential)'
    )

    # run-task command
    run_parser = subparsers.add_parser(
        'run-task',
        help='Run one backfill task now'
    )
    run_parser.add_argument(
        '--name',
        required=True,
        help='Task name (see list-tasks)'
    )
    run_parser.add_argument(
        '--max-concurrent-requests',
        type=int,
        help='Maximum concurrent outbound requests'
    )
    run_parser.add_argument(
        '--sentinel-policy',
        choices=policies,
        default=SentinelPolicy.ATTEMPTED.value
    )
    run_parser.add_argument(
        '--workers',
        type=int,
        default=1
    )

    # list-tasks command
    subparsers.add_parser(
        'list-tasks',
        help='Show scheduled triggers and their tasks'
    )

    # load-stocks command
    load_parser = subparsers.add_parser(
        'load-stocks',
        help='Load listed stocks from a CSV file'
    )
    load_parser.add_argument(
        '--file',
        required=True,
        help='CSV with security_code, name and optional suspend_listing columns'
    )

    # fetch-holidays command
    holidays_parser = subparsers.add_parser(
        'fetch-holidays',
        help='Show TWSE market holidays for a year'
    )
    holidays_parser.add_argument(
        '--year',
        type=int,
        help='Calendar year (defaults to the current year)'
    )

    # db-info command
    subparsers.add_parser(
        'db-info',
        help='Show database row counts'
    )

    return parser


def main(argv: Optional[Sequence[str]] = None) -> NoReturn:
    """Main CLI entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    log_level = 'DEBUG' if args.verbose else config.log_level
    setup_logging(log_level, args.log_file or config.log_file)

    try:
        if args.command == 'schedule':
            exit_code = schedule_command(
                max_concurrent_requests=args.max_concurrent_requests,
                sentinel_policy=args.sentinel_policy,
                workers=args.workers
            )
        elif args.command == 'run-task':
            exit_code = run_task_command(
                name=args.name,
                max_concurrent_requests=args.max_concurrent_requests,
                sentinel_policy=args.sentinel_policy,
                workers=args.workers
            )
        elif args.command == 'list-tasks':
            exit_code = list_tasks_command()
        elif args.command == 'load-stocks':
            exit_code = load_stocks_command(file_path=args.file)
        elif args.command == 'fetch-holidays':
            exit_code = fetch_holidays_command(year=args.year)
        elif args.command == 'db-info':
            exit_code = db_info_command()
        else:
            print(f"ERROR: Unknown command: {args.command}")
            exit_code = 1

        sys.exit(exit_code)

    except KeyboardInterrupt:
        print("\nOperation cancelled by user.")
        sys.exit(1)


if __name__ == '__main__':
    main()
