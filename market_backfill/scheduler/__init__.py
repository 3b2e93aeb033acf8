"""Scheduler module: cron triggers and the default job table."""

from .scheduler import BackfillScheduler, SchedulerState, Trigger, parse_cron_expression, run_and_log_task
from .jobs import BackfillContext, build_tasks, build_scheduler, DEFAULT_JOB_TABLE

__all__ = [
    "BackfillScheduler", "SchedulerState", "Trigger", "parse_cron_expression", "run_and_log_task",
    "BackfillContext", "build_tasks", "build_scheduler", "DEFAULT_JOB_TABLE"
]
