"""
Cron scheduler for backfill tasks.

Triggers are six-field cron expressions
(``second minute hour day month day_of_week``) evaluated in a fixed
timezone. Each trigger is bound to one or more task callables, which run
in order on every fire. A failing task is logged and never affects
other tasks or the schedule itself.
"""

import enum
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from ..data.window import utc_now
from ..utils.exceptions import SchedulerConfigError
from ..utils.logging import get_logger

logger = get_logger(__name__)

CRON_FIELDS = ('second', 'minute', 'hour', 'day', 'month', 'day_of_week')


class SchedulerState(enum.Enum):
    REGISTERED = "registered"
    RUNNING = "running"
    STOPPED = "stopped"


@dataclass(frozen=True)
class Trigger:
    """A cron expression bound to the tasks it fires. Identity is the expression."""
    expression: str
    tasks: Tuple[Callable, ...] = field(compare=False)
    name: str = field(default="", compare=False)
    cron: CronTrigger = field(default=None, compare=False, repr=False)

    def task_names(self) -> List[str]:
        return [task_name(task) for task in self.tasks]


def task_name(task: Callable) -> str:
    return getattr(task, "name", None) or getattr(task, "__name__", None) or type(task).__name__


def parse_cron_expression(expression: str, timezone: str = "UTC") -> CronTrigger:
    """
    Build an APScheduler CronTrigger from a six-field expression.

    Raises:
        SchedulerConfigError: If the expression does not have six fields
            or any field is rejected by APScheduler
    """
    if not isinstance(expression, str):
        raise SchedulerConfigError(f"Cron expression must be a string, got {expression!r}")

    parts = expression.split()
    if len(parts) != len(CRON_FIELDS):
        raise SchedulerConfigError(
            f"Cron expression '{expression}' must have {len(CRON_FIELDS)} fields "
            f"({' '.join(CRON_FIELDS)}), got {len(parts)}"
        )

    try:
        return CronTrigger(timezone=timezone, **dict(zip(CRON_FIELDS, parts)))
    except (ValueError, TypeError, LookupError) as e:
        raise SchedulerConfigError(f"Invalid cron expression '{expression}': {e}") from e


def run_and_log_task(name: str, task: Callable) -> bool:
    """
    Run one task, logging start, outcome and finish.

    Returns:
        True if the task completed without raising
    """
    logger.info(f"Starting {name}")
    try:
        task()
    except Exception as e:
        logger.error(f"Failed to run {name}: {e}", exc_info=True)
        succeeded = False
    else:
        logger.info(f"{name} executed successfully")
        succeeded = True
    logger.info(f"Finished {name}")
    return succeeded


class BackfillScheduler:
    """
    Registry of cron triggers dispatched by an APScheduler BackgroundScheduler.

    Lifecycle is one-directional: REGISTERED -> RUNNING -> STOPPED.
    Overlapping fires of the same trigger are limited by ``max_instances``.
    """

    def __init__(
        self,
        timezone: str = "UTC",
        max_instances: int = 1,
        max_workers: int = 10,
        scheduler: Optional[BackgroundScheduler] = None
    ):
        self.timezone = timezone
        self.max_instances = max_instances
        self._scheduler = scheduler or BackgroundScheduler(
            timezone=timezone,
            executors={'default': ThreadPoolExecutor(max_workers)},
            job_defaults={'coalesce': True, 'max_instances': max_instances}
        )
        self._triggers: Dict[str, Trigger] = {}
        self._state = SchedulerState.REGISTERED
        self._lock = threading.Lock()

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def triggers(self) -> List[Trigger]:
        return list(self._triggers.values())

    def register(self, expression: str, *tasks: Callable, name: Optional[str] = None) -> Trigger:
        """
        Bind tasks to a cron expression.

        Args:
            expression: Six-field cron expression
            *tasks: Callables run in order on every fire
            name: Optional label for logs

        Raises:
            SchedulerConfigError: On invalid or duplicate expressions, missing or
                non-callable tasks, or registration after start
        """
        with self._lock:
            if self._state is not SchedulerState.REGISTERED:
                raise SchedulerConfigError(f"Cannot register '{expression}' while scheduler is {self._state.value}")
            if not tasks:
                raise SchedulerConfigError(f"Trigger '{expression}' has no tasks")
            for task in tasks:
                if not callable(task):
                    raise SchedulerConfigError(f"Task {task!r} bound to '{expression}' is not callable")

            expression = " ".join(expression.split()) if isinstance(expression, str) else expression
            cron = parse_cron_expression(expression, self.timezone)
            if expression in self._triggers:
                raise SchedulerConfigError(f"Trigger '{expression}' is already registered")

            trigger = Trigger(
                expression=expression,
                tasks=tuple(tasks),
                name=name or ", ".join(task_name(task) for task in tasks),
                cron=cron
            )
            self._scheduler.add_job(
                self.fire,
                trigger=cron,
                args=[trigger],
                id=expression,
                name=trigger.name,
                replace_existing=False
            )
            self._triggers[expression] = trigger

        logger.info(f"Registered trigger '{expression}' ({self.timezone}) -> {trigger.name}")
        return trigger

    def fire(self, trigger: Trigger) -> Dict[str, bool]:
        """Run every task bound to ``trigger`` in order; one failure does not stop the rest."""
        return {task_name(task): run_and_log_task(task_name(task), task) for task in trigger.tasks}

    def start(self) -> None:
        with self._lock:
            if self._state is not SchedulerState.REGISTERED:
                raise SchedulerConfigError(f"Scheduler cannot start from state {self._state.value}")
            self._scheduler.start()
            self._state = SchedulerState.RUNNING
        logger.info(f"Scheduler started with {len(self._triggers)} triggers")

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            if self._state is SchedulerState.RUNNING:
                self._scheduler.shutdown(wait=wait)
            self._state = SchedulerState.STOPPED
        logger.info("Scheduler stopped")

    def next_fire_times(self, now: Optional[datetime] = None) -> Dict[str, Optional[datetime]]:
        """Next fire time of each trigger after ``now``."""
        now = now or utc_now()
        return {
            expression: trigger.cron.get_next_fire_time(None, now)
            for expression, trigger in self._triggers.items()
        }
