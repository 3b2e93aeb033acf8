"""Data module: fetch gate, source adapters, models and reporting windows."""

from .gate import FetchGate, FetchPermit
from .fetchers import SourceAdapter, YahooFinancialStatementFetcher, TwseHolidayScheduleFetcher
from .models import Base, Stock, FinancialStatement, FinancialStatementRecord, WorkItem
from .window import ReportingWindow

__all__ = [
    "FetchGate", "FetchPermit", "SourceAdapter", "YahooFinancialStatementFetcher",
    "TwseHolidayScheduleFetcher", "Base", "Stock", "FinancialStatement",
    "FinancialStatementRecord", "WorkItem", "ReportingWindow"
]
