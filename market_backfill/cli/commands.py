"""
CLI command implementations for market data backfill operations.

This module contains the actual command logic separated from
argument parsing for better testability and organization.
"""

import threading
from datetime import date
from typing import Optional

import pandas as pd

from ..backfill import SentinelPolicy
from ..config import config
from ..data.fetchers import TwseHolidayScheduleFetcher
from ..data.gate import FetchGate
from ..data.window import utc_now
from ..database.manager import DatabaseManager
from ..notify import send_quietly, startup_message
from ..scheduler.jobs import BackfillContext, build_tasks, build_scheduler, DEFAULT_JOB_TABLE
from ..scheduler.scheduler import parse_cron_expression
from ..utils.error_handlers import SUCCESS_EXIT_CODE, ERROR_EXIT_CODE, handle_cli_command_errors
from ..utils.exceptions import ValidationError
from ..utils.logging import get_logger
from ..utils.validation import validate_year

logger = get_logger(__name__)

REQUIRED_STOCK_COLUMNS = {'security_code'}


def _sentinel_policy(value: str) -> SentinelPolicy:
    try:
        return SentinelPolicy(value)
    except ValueError:
        choices = ", ".join(policy.value for policy in SentinelPolicy)
        raise ValidationError(f"Unknown sentinel policy '{value}', expected one of: {choices}")


@handle_cli_command_errors("schedule_command")
def schedule_command(
    max_concurrent_requests: Optional[int] = None,
    sentinel_policy: str = SentinelPolicy.ATTEMPTED.value,
    workers: int = 1,
    stop_event: Optional[threading.Event] = None
) -> int:
    """
    Start the cron scheduler and block until interrupted.

    Args:
        max_concurrent_requests: Overrides the configured fetch cap
        sentinel_policy: 'attempted' or 'all_succeeded'
        workers: Threads per task run (outbound calls stay bounded by the fetch gate)
        stop_event: Event that ends the blocking wait (defaults to waiting forever)

    Returns:
        Exit code (0 for success, 1 for error)
    """
    context = BackfillContext.from_config(config, max_concurrent_requests)
    tasks = build_tasks(context, sentinel_policy=_sentinel_policy(sentinel_policy), max_workers=workers)
    scheduler = build_scheduler(tasks, config)

    scheduler.start()
    send_quietly(context.notifier, startup_message())
    for expression, next_time in scheduler.next_fire_times().items():
        logger.info(f"Trigger '{expression}' next fires at {next_time}")

    stop_event = stop_event or threading.Event()
    try:
        stop_event.wait()
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down scheduler")
    finally:
        scheduler.shutdown(wait=False)
        context.gate.close()

    return SUCCESS_EXIT_CODE


@handle_cli_command_errors("run_task_command")
def run_task_command(
    name: str,
    max_concurrent_requests: Optional[int] = None,
    sentinel_policy: str = SentinelPolicy.ATTEMPTED.value,
    workers: int = 1
) -> int:
    """
    Run a single backfill task once, honoring its sentinel.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    context = BackfillContext.from_config(config, max_concurrent_requests)
    tasks = build_tasks(context, sentinel_policy=_sentinel_policy(sentinel_policy), max_workers=workers)

    if name not in tasks:
        logger.error(f"Unknown task '{name}'. Available: {', '.join(sorted(tasks))}")
        return ERROR_EXIT_CODE

    try:
        report = tasks[name].run()
    finally:
        context.gate.close()

    print(report.summary())
    for outcome in report.failures:
        print(f"  FAILED {outcome.item.security_code}: {outcome.reason}")
    return SUCCESS_EXIT_CODE


@handle_cli_command_errors("list_tasks_command")
def list_tasks_command() -> int:
    """Print the job table with the next fire time of each trigger."""
    timezone = config.scheduler.timezone
    print(f"Scheduled backfills ({timezone}):")
    for expression, task_names in DEFAULT_JOB_TABLE:
        cron = parse_cron_expression(expression, timezone)
        next_time = cron.get_next_fire_time(None, utc_now())
        print(f"  {expression:<16} next {next_time:%Y-%m-%d %H:%M %Z}  {', '.join(task_names)}")
    return SUCCESS_EXIT_CODE


@handle_cli_command_errors("load_stocks_command")
def load_stocks_command(file_path: str) -> int:
    """
    Load listed stocks from a CSV with security_code[,name,suspend_listing] columns.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    frame = pd.read_csv(file_path, dtype=str).fillna('')
    missing = REQUIRED_STOCK_COLUMNS - set(frame.columns)
    if missing:
        raise ValidationError(f"CSV file is missing columns: {', '.join(sorted(missing))}")

    rows = []
    for record in frame.to_dict(orient='records'):
        rows.append({
            'security_code': record['security_code'],
            'name': record.get('name', ''),
            'suspend_listing': str(record.get('suspend_listing', '')).strip().lower() in ('1', 'true', 'yes'),
        })

    stored = DatabaseManager(config.database.path).store_stocks(rows)
    print(f"Loaded {stored} stocks from {file_path}")
    return SUCCESS_EXIT_CODE


@handle_cli_command_errors("fetch_holidays_command")
def fetch_holidays_command(year: Optional[int] = None) -> int:
    """Print the exchange holidays of ``year`` (defaults to the current year)."""
    year = validate_year(year if year is not None else date.today().year)
    gate = FetchGate.from_config(config.fetch)
    try:
        holidays = TwseHolidayScheduleFetcher(gate).fetch(year)
    finally:
        gate.close()

    print(f"{len(holidays)} market holidays in {year}")
    for holiday in holidays:
        print(f"  {holiday.isoformat()}")
    return SUCCESS_EXIT_CODE


@handle_cli_command_errors("db_info_command")
def db_info_command() -> int:
    summary = DatabaseManager(config.database.path).get_summary()
    print(f"Database: {config.database.path}")
    for table, count in summary.items():
        print(f"  {table}: {count} rows")
    return SUCCESS_EXIT_CODE
