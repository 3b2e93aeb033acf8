"""
Market Data Backfill - scheduled, idempotent backfills of market data.

This package provides tools to:
- Fire backfill tasks from six-field cron expressions (UTC)
- Find records missing for the latest closed reporting window
- Fetch financial statements from Yahoo Finance through a bounded fetch gate
- Upsert results into SQLite with SQLAlchemy on a natural key
- Skip work already done with a Redis-backed sentinel

Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
__license__ = "MIT"

from .backfill import BackfillTask, BackfillReport, SentinelPolicy
from .cache.sentinel import SentinelCache
from .data.gate import FetchGate
from .database.manager import DatabaseManager
from .scheduler.scheduler import BackfillScheduler
from .utils.exceptions import MarketBackfillError

__all__ = [
    "BackfillTask",
    "BackfillReport",
    "SentinelPolicy",
    "SentinelCache",
    "FetchGate",
    "DatabaseManager",
    "BackfillScheduler",
    "MarketBackfillError"
]
