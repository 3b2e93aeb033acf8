"""
Reporting window arithmetic.

A reporting window identifies one financial report period:
a year plus ``Q1``..``Q4`` for quarterly reports, or an empty
quarter for the annual report.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Optional, Union

# Financial statements are typically published well after the quarter closes
DEFAULT_REPORT_LAG_DAYS = 125

ANNUAL = ""


def month_to_quarter(month: int) -> int:
    """Map a calendar month (1-12) to its quarter (1-4)."""
    if month < 1 or month > 12:
        raise ValueError(f"Month must be between 1 and 12, got {month}")
    return (month - 1) // 3 + 1


@dataclass(frozen=True, order=True)
class ReportingWindow:
    year: int
    quarter: str = ANNUAL

    @property
    def is_annual(self) -> bool:
        return self.quarter == ANNUAL

    @classmethod
    def for_date(cls, day: Union[date, datetime]) -> "ReportingWindow":
        """Quarterly window containing ``day``."""
        return cls(day.year, f"Q{month_to_quarter(day.month)}")

    def __str__(self) -> str:
        return f"{self.year}" if self.is_annual else f"{self.year}{self.quarter}"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def previous_quarter_window(
    now: Optional[datetime] = None,
    lag_days: int = DEFAULT_REPORT_LAG_DAYS
) -> ReportingWindow:
    """
    Most recent quarter whose report should be published by ``now``.

    This is the quarter containing ``now - lag_days``.
    """
    reference = (now or utc_now()) - timedelta(days=lag_days)
    return ReportingWindow.for_date(reference)


def annual_window(
    now: Optional[datetime] = None,
    lag_days: int = DEFAULT_REPORT_LAG_DAYS
) -> ReportingWindow:
    """
    Most recent fiscal year whose annual report should be published by ``now``.

    This is the year before the one containing ``now - lag_days``.
    """
    reference = (now or utc_now()) - timedelta(days=lag_days)
    return ReportingWindow(reference.year - 1, ANNUAL)
