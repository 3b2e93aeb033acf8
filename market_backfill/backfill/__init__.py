"""Backfill tasks: the generic pattern and its concrete instances."""

from .task import BackfillTask, BackfillOutcome, BackfillReport, OutcomeStatus, SentinelPolicy
from .financial_statement import QuarterlyFinancialStatementBackfill, AnnualFinancialStatementBackfill
from .net_asset_value import ZeroNetAssetValueBackfill

__all__ = [
    "BackfillTask", "BackfillOutcome", "BackfillReport", "OutcomeStatus", "SentinelPolicy",
    "QuarterlyFinancialStatementBackfill", "AnnualFinancialStatementBackfill",
    "ZeroNetAssetValueBackfill"
]
