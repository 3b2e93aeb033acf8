"""Backfill of zero net asset values per share for listed stocks."""

from datetime import datetime
from typing import Sequence

from ..cache.sentinel import SentinelCache
from ..data.fetchers import SourceAdapter
from ..data.models import FinancialStatementRecord, WorkItem
from ..data.window import ReportingWindow, previous_quarter_window, DEFAULT_REPORT_LAG_DAYS
from ..database.manager import DatabaseManager
from ..utils.exceptions import ValidationMismatch
from .task import BackfillTask, SentinelPolicy

ONE_DAY = 60 * 60 * 24


class ZeroNetAssetValueBackfill(BackfillTask):
    """
    Update stocks whose stored net asset value per share is zero.

    Any statement at least as recent as the target quarter is accepted,
    since only the balance sheet value is used.
    """

    name = "net_asset_value_zero_value"
    sentinel_key = "net_asset_value_per_share::zero_value"
    sentinel_ttl = ONE_DAY

    def __init__(
        self,
        db: DatabaseManager,
        source: SourceAdapter,
        sentinel: SentinelCache,
        sentinel_policy: SentinelPolicy = SentinelPolicy.ATTEMPTED,
        max_workers: int = 1,
        lag_days: int = DEFAULT_REPORT_LAG_DAYS
    ):
        super().__init__(sentinel, sentinel_policy=sentinel_policy, max_workers=max_workers)
        self.db = db
        self.source = source
        self.lag_days = lag_days

    def target_window(self, now: datetime) -> ReportingWindow:
        return previous_quarter_window(now, self.lag_days)

    def find_work(self, window: ReportingWindow) -> Sequence[WorkItem]:
        return self.db.find_stocks_with_zero_net_asset_value()

    def ineligible_reason(self, item: WorkItem):
        if item.is_preference_shares():
            return "preference shares have no financial statements"
        return None

    def fetch(self, item: WorkItem) -> FinancialStatementRecord:
        return self.source.fetch(item.security_code)

    def validate(self, item: WorkItem, record: FinancialStatementRecord, window: ReportingWindow) -> None:
        if record.window < window:
            raise ValidationMismatch(
                f"{item.security_code}: source returned {record.window}, older than {window}",
                requested=window,
                received=record.window
            )
        if record.net_asset_value_per_share == 0:
            raise ValidationMismatch(f"{item.security_code}: source has no net asset value for {record.window}")

    def persist(self, record: FinancialStatementRecord) -> None:
        self.db.update_net_asset_value_per_share(record.security_code, record.net_asset_value_per_share)
