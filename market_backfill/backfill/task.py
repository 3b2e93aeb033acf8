"""
Generic backfill task.

A backfill brings a set of entities into consistency with an external
source for one reporting window:

1. compute the window from the current time
2. skip entirely while the task's sentinel is set
3. read the work set (a read failure aborts the run, no sentinel)
4. fetch each item through its source adapter
5. reject records for any other window
6. upsert; a write failure only skips that item
7. run the optional secondary update for the item
8. run the completion hook when anything was written
9. set the sentinel according to the task's SentinelPolicy

Concrete tasks subclass BackfillTask and fill in the hooks.
"""

import enum
import time
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Optional, Sequence

from ..cache.sentinel import SentinelCache
from ..data.models import WorkItem
from ..data.window import ReportingWindow, utc_now
from ..utils.exceptions import (
    PersistenceReadError, PersistenceWriteError, ValidationMismatch, FetchError
)
from ..utils.logging import get_logger


class SentinelPolicy(enum.Enum):
    """When a completed run marks the task as done."""
    ATTEMPTED = "attempted"
    ALL_SUCCEEDED = "all_succeeded"


class OutcomeStatus(enum.Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class BackfillOutcome:
    """Result of processing one work item."""
    item: WorkItem
    status: OutcomeStatus
    record: Any = None
    reason: str = ""
    error: Optional[Exception] = None

    @classmethod
    def success(cls, item: WorkItem, record: Any) -> "BackfillOutcome":
        return cls(item, OutcomeStatus.SUCCESS, record=record)

    @classmethod
    def skipped(cls, item: WorkItem, reason: str) -> "BackfillOutcome":
        return cls(item, OutcomeStatus.SKIPPED, reason=reason)

    @classmethod
    def failed(cls, item: WorkItem, error: Exception) -> "BackfillOutcome":
        return cls(item, OutcomeStatus.FAILED, reason=str(error), error=error)


@dataclass
class BackfillReport:
    """Aggregated outcomes of one task run."""
    task_name: str
    window: ReportingWindow
    outcomes: List[BackfillOutcome] = field(default_factory=list)
    skipped_by_sentinel: bool = False
    sentinel_set: bool = False
    elapsed_seconds: float = 0.0

    def _count(self, status: OutcomeStatus) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status is status)

    @property
    def success_count(self) -> int:
        return self._count(OutcomeStatus.SUCCESS)

    @property
    def skipped_count(self) -> int:
        return self._count(OutcomeStatus.SKIPPED)

    @property
    def failed_count(self) -> int:
        return self._count(OutcomeStatus.FAILED)

    @property
    def failures(self) -> List[BackfillOutcome]:
        return [outcome for outcome in self.outcomes if outcome.status is OutcomeStatus.FAILED]

    def summary(self) -> str:
        if self.skipped_by_sentinel:
            return f"{self.task_name} [{self.window}]: skipped, sentinel still set"
        return (
            f"{self.task_name} [{self.window}]: {len(self.outcomes)} items, "
            f"{self.success_count} succeeded, {self.skipped_count} skipped, "
            f"{self.failed_count} failed in {self.elapsed_seconds:.1f}s"
        )


class BackfillTask(ABC):
    """
    Base class for sentinel-guarded, idempotent backfills.

    Subclasses define ``name``, ``sentinel_key``, ``sentinel_ttl`` and the
    window/work/fetch/persist hooks. Instances are callable so they can be
    bound to scheduler triggers directly.
    """

    name: str = "backfill"
    sentinel_key: str = ""
    sentinel_ttl: int = 60 * 60 * 24

    def __init__(
        self,
        sentinel: SentinelCache,
        sentinel_policy: SentinelPolicy = SentinelPolicy.ATTEMPTED,
        max_workers: int = 1
    ):
        self.sentinel = sentinel
        self.sentinel_policy = sentinel_policy
        self.max_workers = max(1, max_workers)
        self.logger = get_logger(f"{__name__}.{self.name}")

    # =============================================================================
    # HOOKS
    # =============================================================================

    @abstractmethod
    def target_window(self, now: datetime) -> ReportingWindow:
        """Reporting window this run should fill, derived only from ``now``."""

    @abstractmethod
    def find_work(self, window: ReportingWindow) -> Sequence[WorkItem]:
        """Entities still missing data for ``window``."""

    @abstractmethod
    def fetch(self, item: WorkItem) -> Any:
        """Fetch the record for one item from the source adapter."""

    @abstractmethod
    def persist(self, record: Any) -> None:
        """Idempotently write one validated record."""

    def ineligible_reason(self, item: WorkItem) -> Optional[str]:
        """Reason to skip an item without fetching it, or None."""
        return None

    def validate(self, item: WorkItem, record: Any, window: ReportingWindow) -> None:
        """
        Reject records that do not belong to the requested window.

        Raises:
            ValidationMismatch: If the record's window differs from ``window``
        """
        if record.window != window:
            raise ValidationMismatch(
                f"{item.security_code}: source returned {record.window}, requested {window}",
                requested=window,
                received=record.window
            )

    def after_persist(self, item: WorkItem, record: Any) -> None:
        """Secondary update derived from a persisted record."""

    def on_complete(self, report: BackfillReport) -> None:
        """Dependent update run once when at least one item succeeded."""

    # =============================================================================
    # EXECUTION
    # =============================================================================

    def __call__(self) -> BackfillReport:
        return self.run()

    def run(self, now: Optional[datetime] = None) -> BackfillReport:
        """
        Execute one backfill run.

        Args:
            now: Reference time; defaults to the current UTC time

        Returns:
            BackfillReport with per-item outcomes

        Raises:
            PersistenceReadError: If the work set could not be read
        """
        started = time.monotonic()
        window = self.target_window(now or utc_now())
        report = BackfillReport(task_name=self.name, window=window)

        if self.sentinel.get_bool(self.sentinel_key):
            self.logger.info(f"{self.name}: sentinel {self.sentinel_key} is set, nothing to do")
            report.skipped_by_sentinel = True
            return report

        try:
            items = list(self.find_work(window))
        except PersistenceReadError:
            raise
        except Exception as e:
            raise PersistenceReadError(f"{self.name}: failed to read work set for {window}: {e}") from e

        self.logger.info(f"{self.name}: {len(items)} items to backfill for {window}")

        if self.max_workers > 1 and len(items) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix=self.name) as pool:
                report.outcomes = list(pool.map(lambda item: self.process_item(item, window), items))
        else:
            report.outcomes = [self.process_item(item, window) for item in items]

        if report.success_count > 0:
            try:
                self.on_complete(report)
            except Exception as e:
                self.logger.error(f"{self.name}: completion update failed: {e}", exc_info=True)

        if self.should_set_sentinel(report):
            report.sentinel_set = self.sentinel.set(self.sentinel_key, True, self.sentinel_ttl)
        else:
            self.logger.warning(
                f"{self.name}: {report.failed_count} items failed, sentinel left unset so the next trigger retries"
            )

        report.elapsed_seconds = time.monotonic() - started
        self.logger.info(report.summary())
        return report

    def should_set_sentinel(self, report: BackfillReport) -> bool:
        if self.sentinel_policy is SentinelPolicy.ALL_SUCCEEDED:
            return report.failed_count == 0
        return True

    def process_item(self, item: WorkItem, window: ReportingWindow) -> BackfillOutcome:
        """Fetch, validate, persist and post-process one item; never raises."""
        reason = self.ineligible_reason(item)
        if reason:
            self.logger.debug(f"{self.name}: skipping {item.security_code}: {reason}")
            return BackfillOutcome.skipped(item, reason)

        try:
            record = self.fetch(item)
        except FetchError as e:
            self.logger.error(f"{self.name}: failed to fetch {item.security_code}: {e}")
            return BackfillOutcome.failed(item, e)
        except Exception as e:
            self.logger.error(f"{self.name}: unexpected error fetching {item.security_code}: {e}", exc_info=True)
            return BackfillOutcome.failed(item, e)

        try:
            self.validate(item, record, window)
        except ValidationMismatch as e:
            self.logger.warning(f"{self.name}: window mismatch, not stored: {e}")
            return BackfillOutcome.failed(item, e)
        except Exception as e:
            self.logger.error(f"{self.name}: invalid record for {item.security_code}, not stored: {e}", exc_info=True)
            return BackfillOutcome.failed(item, e)

        try:
            self.persist(record)
        except Exception as e:
            error = e if isinstance(e, PersistenceWriteError) else PersistenceWriteError(str(e))
            self.logger.error(f"{self.name}: failed to store {item.security_code}: {e}")
            return BackfillOutcome.failed(item, error)

        self.logger.info(f"{self.name}: stored {item.security_code} for {record.window}")

        try:
            self.after_persist(item, record)
        except Exception as e:
            self.logger.error(f"{self.name}: secondary update for {item.security_code} failed: {e}")

        return BackfillOutcome.success(item, record)
