"""
Default job table and the wiring of tasks to their collaborators.

All times are UTC:
    17:00  quarterly financial statements
    19:00  zero net asset values, then annual financial statements
"""

from dataclasses import dataclass
from typing import Dict, Optional, Sequence, Tuple

from ..backfill import (
    BackfillTask, SentinelPolicy, QuarterlyFinancialStatementBackfill,
    AnnualFinancialStatementBackfill, ZeroNetAssetValueBackfill
)
from ..cache.sentinel import SentinelCache
from ..config import Config
from ..data.fetchers import YahooFinancialStatementFetcher
from ..data.gate import FetchGate
from ..database.manager import DatabaseManager
from ..notify import Notifier, LogNotifier
from ..utils.exceptions import SchedulerConfigError
from .scheduler import BackfillScheduler

JobTable = Sequence[Tuple[str, Tuple[str, ...]]]

DEFAULT_JOB_TABLE: JobTable = (
    ("0 0 17 * * *", (QuarterlyFinancialStatementBackfill.name,)),
    ("0 0 19 * * *", (ZeroNetAssetValueBackfill.name, AnnualFinancialStatementBackfill.name)),
)


@dataclass
class BackfillContext:
    """Shared collaborators injected into every task."""
    db: DatabaseManager
    gate: FetchGate
    sentinel: SentinelCache
    notifier: Notifier
    config: Config

    @classmethod
    def from_config(cls, app_config: Config, max_concurrent_requests: Optional[int] = None) -> "BackfillContext":
        return cls(
            db=DatabaseManager(app_config.database.path),
            gate=FetchGate.from_config(app_config.fetch, max_concurrent_requests),
            sentinel=SentinelCache.from_config(app_config.sentinel),
            notifier=LogNotifier(),
            config=app_config
        )


def build_tasks(
    context: BackfillContext,
    sentinel_policy: SentinelPolicy = SentinelPolicy.ATTEMPTED,
    max_workers: int = 1
) -> Dict[str, BackfillTask]:
    """Instantiate every known backfill task, keyed by task name."""
    quarterly_source = YahooFinancialStatementFetcher(context.gate, annual=False)
    annual_source = YahooFinancialStatementFetcher(context.gate, annual=True)

    tasks = [
        QuarterlyFinancialStatementBackfill(
            context.db, quarterly_source, context.sentinel,
            sentinel_policy=sentinel_policy, max_workers=max_workers
        ),
        AnnualFinancialStatementBackfill(
            context.db, annual_source, context.sentinel,
            sentinel_policy=sentinel_policy, max_workers=max_workers
        ),
        ZeroNetAssetValueBackfill(
            context.db, quarterly_source, context.sentinel,
            sentinel_policy=sentinel_policy, max_workers=max_workers
        ),
    ]
    return {task.name: task for task in tasks}


def build_scheduler(
    tasks: Dict[str, BackfillTask],
    app_config: Config,
    job_table: JobTable = DEFAULT_JOB_TABLE
) -> BackfillScheduler:
    """
    Register every job table entry on a new scheduler.

    Raises:
        SchedulerConfigError: If an expression is invalid or names an unknown task
    """
    scheduler = BackfillScheduler(
        timezone=app_config.scheduler.timezone,
        max_instances=app_config.scheduler.max_instances,
        max_workers=app_config.scheduler.max_workers
    )
    for expression, task_names in job_table:
        unknown = [name for name in task_names if name not in tasks]
        if unknown:
            raise SchedulerConfigError(f"Trigger '{expression}' references unknown tasks: {', '.join(unknown)}")
        scheduler.register(expression, *(tasks[name] for name in task_names))
    return scheduler
