"""
Financial statement backfills.

Stocks without a statement (or with a zero EPS placeholder) for the
latest published period are looked up on Yahoo Finance and written
back to the financial_statements table.
"""

from datetime import datetime
from typing import Sequence

from ..cache.sentinel import SentinelCache
from ..data.fetchers import SourceAdapter
from ..data.models import FinancialStatementRecord, WorkItem
from ..data.window import ReportingWindow, previous_quarter_window, annual_window, DEFAULT_REPORT_LAG_DAYS
from ..database.manager import DatabaseManager
from .task import BackfillTask, BackfillReport, SentinelPolicy

ONE_WEEK = 60 * 60 * 24 * 7


class QuarterlyFinancialStatementBackfill(BackfillTask):
    """
    Fill in the most recent quarter's statements.

    Also fills a stock's zero net asset value from the fetched statement,
    and recomputes trailing EPS when any statement was written.
    """

    name = "financial_statement_quarter"
    sentinel_key = "financial_statement::yahoo"
    sentinel_ttl = ONE_WEEK

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
        return self.db.find_missing_financial_statements(window)

    def ineligible_reason(self, item: WorkItem):
        if item.is_preference_shares():
            return "preference shares have no financial statements"
        return None

    def fetch(self, item: WorkItem) -> FinancialStatementRecord:
        return self.source.fetch(item.security_code)

    def persist(self, record: FinancialStatementRecord) -> None:
        self.db.upsert_financial_statement(record)

    def after_persist(self, item: WorkItem, record: FinancialStatementRecord) -> None:
        if item.net_asset_value_per_share == 0 and record.net_asset_value_per_share != 0:
            self.db.update_net_asset_value_per_share(item.security_code, record.net_asset_value_per_share)
            self.logger.info(
                f"{self.name}: net asset value of {item.security_code} set to {record.net_asset_value_per_share}"
            )

    def on_complete(self, report: BackfillReport) -> None:
        self.db.update_last_eps()


class AnnualFinancialStatementBackfill(QuarterlyFinancialStatementBackfill):
    """Fill in last fiscal year's annual statements."""

    name = "financial_statement_annual"
    sentinel_key = "financial_statement::annual::yahoo"
    sentinel_ttl = ONE_WEEK

    def target_window(self, now: datetime) -> ReportingWindow:
        return annual_window(now, self.lag_days)

    def after_persist(self, item: WorkItem, record: FinancialStatementRecord) -> None:
        pass

    def on_complete(self, report: BackfillReport) -> None:
        pass
