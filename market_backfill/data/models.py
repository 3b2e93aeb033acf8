"""
Database models and transfer records for market data backfills.

This module defines the database schema for storing:
- Listed stocks with their net asset value and trailing EPS rollup
- Quarterly and annual financial statements keyed by
  (security_code, year, quarter)

and the plain records that flow between source adapters, backfill
tasks and the database manager.
"""

from sqlalchemy import Column, Integer, String, Float, Boolean, DateTime, UniqueConstraint, Index
from sqlalchemy.orm import declarative_base
from dataclasses import dataclass, asdict, field
from datetime import datetime, timezone
from typing import Any, Dict

from .window import ReportingWindow

Base = declarative_base()


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Stock(Base):
    """
    A listed security tracked by the backfill jobs.

    ``net_asset_value_per_share`` and ``last_eps`` are derived fields
    maintained by backfills; zero means "not known yet".
    """
    __tablename__ = 'stocks'

    id = Column(Integer, primary_key=True)
    security_code = Column(String(10), unique=True, nullable=False, index=True)
    name = Column(String(200), nullable=False, default='')
    suspend_listing = Column(Boolean, nullable=False, default=False)
    net_asset_value_per_share = Column(Float, nullable=False, default=0.0)
    last_eps = Column(Float, nullable=False, default=0.0)
    created_at = Column(DateTime, default=_utc_now)
    updated_at = Column(DateTime, default=_utc_now, onupdate=_utc_now)


class FinancialStatement(Base):
    """
    Financial statement ratios for one security and reporting window.

    ``quarter`` holds Q1..Q4 for quarterly reports and an empty string
    for the annual report. Ratios are percentages; per-share values
    are in the reporting currency.
    """
    __tablename__ = 'financial_statements'

    id = Column(Integer, primary_key=True)
    security_code = Column(String(10), nullable=False)
    year = Column(Integer, nullable=False)
    quarter = Column(String(2), nullable=False, default='')

    gross_profit = Column(Float, nullable=False, default=0.0)
    operating_profit_margin = Column(Float, nullable=False, default=0.0)
    pre_tax_income = Column(Float, nullable=False, default=0.0)
    net_income = Column(Float, nullable=False, default=0.0)
    net_asset_value_per_share = Column(Float, nullable=False, default=0.0)
    sales_per_share = Column(Float, nullable=False, default=0.0)
    earnings_per_share = Column(Float, nullable=False, default=0.0)
    profit_before_tax = Column(Float, nullable=False, default=0.0)
    return_on_equity = Column(Float, nullable=False, default=0.0)
    return_on_assets = Column(Float, nullable=False, default=0.0)

    created_at = Column(DateTime, default=_utc_now)
    updated_at = Column(DateTime, default=_utc_now, onupdate=_utc_now)

    __table_args__ = (
        UniqueConstraint('security_code', 'year', 'quarter', name='uq_financial_statements_natural_key'),
        Index('ix_financial_statements_year_quarter', 'year', 'quarter'),
    )


# Columns overwritten by a full upsert; the natural key and created_at never change
FINANCIAL_STATEMENT_MUTABLE_FIELDS = (
    'gross_profit',
    'operating_profit_margin',
    'pre_tax_income',
    'net_income',
    'net_asset_value_per_share',
    'sales_per_share',
    'earnings_per_share',
    'profit_before_tax',
    'return_on_equity',
    'return_on_assets',
)


@dataclass(frozen=True)
class WorkItem:
    """A security that a backfill task must resolve against a source."""
    security_code: str
    net_asset_value_per_share: float = 0.0

    def is_preference_shares(self) -> bool:
        """Preference shares carry a letter suffix, e.g. 2881A."""
        return len(self.security_code) > 4 and self.security_code[-1].isalpha()


@dataclass
class FinancialStatementRecord:
    """Normalized financial statement as returned by a source adapter."""
    security_code: str
    year: int
    quarter: str = ''
    gross_profit: float = 0.0
    operating_profit_margin: float = 0.0
    pre_tax_income: float = 0.0
    net_income: float = 0.0
    net_asset_value_per_share: float = 0.0
    sales_per_share: float = 0.0
    earnings_per_share: float = 0.0
    profit_before_tax: float = 0.0
    return_on_equity: float = 0.0
    return_on_assets: float = 0.0
    source: str = field(default='', compare=False)

    @property
    def window(self) -> ReportingWindow:
        return ReportingWindow(self.year, self.quarter)

    def to_row(self) -> Dict[str, Any]:
        """Column values for the financial_statements table."""
        row = asdict(self)
        row.pop('source')
        return row
