"""
Source adapters for market data providers.

Every adapter implements ``fetch(identifier)`` and performs its network
calls through the shared FetchGate. Provider-specific parsing stays
behind that interface so backfill tasks only see normalized records.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd
import yfinance as yf

from ..notify import send_quietly
from ..utils.exceptions import FetchError, TransientFetchError
from ..utils.error_handlers import handle_api_request_errors
from ..utils.logging import get_logger
from ..utils.validation import check_response_stat, validate_year
from .gate import FetchGate
from .models import FinancialStatementRecord
from .window import ANNUAL, month_to_quarter


class SourceAdapter(ABC):
    """
    Base class for all data sources.

    Subclasses resolve one identifier into one typed record or raise
    FetchError (TransientFetchError for network level failures).
    """

    source_name: str = "source"

    def __init__(self, gate: FetchGate):
        self.gate = gate
        self.logger = get_logger(__name__)

    @abstractmethod
    def fetch(self, identifier: Any) -> Any:
        raise NotImplementedError


# =============================================================================
# YAHOO FINANCE STATEMENTS
# =============================================================================

# yfinance row labels, first match wins
REVENUE_LABELS = ('Total Revenue', 'Operating Revenue')
GROSS_PROFIT_LABELS = ('Gross Profit',)
OPERATING_INCOME_LABELS = ('Operating Income', 'Total Operating Income As Reported')
PRETAX_INCOME_LABELS = ('Pretax Income',)
NET_INCOME_LABELS = ('Net Income', 'Net Income Common Stockholders')
EPS_LABELS = ('Diluted EPS', 'Basic EPS')
AVERAGE_SHARES_LABELS = ('Diluted Average Shares', 'Basic Average Shares')
EQUITY_LABELS = ('Stockholders Equity', 'Common Stock Equity')
TOTAL_ASSETS_LABELS = ('Total Assets',)
SHARES_OUTSTANDING_LABELS = ('Ordinary Shares Number', 'Share Issued')


def _statement_value(column: Optional[pd.Series], labels: Iterable[str]) -> float:
    """First non-null value among ``labels`` in a statement column, else 0."""
    if column is None:
        return 0.0
    for label in labels:
        if label in column.index:
            value = column[label]
            if pd.notna(value):
                return float(value)
    return 0.0


def _ratio(numerator: float, denominator: float, scale: float = 1.0) -> float:
    if not denominator:
        return 0.0
    return round(numerator / denominator * scale, 4)


def _columns_by_period(statement: pd.DataFrame) -> Dict[pd.Timestamp, Any]:
    return {pd.Timestamp(column): column for column in statement.columns}


def build_financial_statement_record(
    security_code: str,
    income_statement: pd.DataFrame,
    balance_sheet: Optional[pd.DataFrame] = None,
    annual: bool = False,
    source: str = "yahoo"
) -> FinancialStatementRecord:
    """
    Normalize yfinance statement frames into a FinancialStatementRecord.

    yfinance returns one column per period end date and one row per line
    item. The most recent period is used; the reporting window is derived
    from its period end date so callers can validate it.

    Args:
        security_code: Security code the statements belong to
        income_statement: Income statement frame (rows = line items)
        balance_sheet: Balance sheet frame for the same periods (optional)
        annual: Whether the frames hold annual rather than quarterly periods
        source: Source label stored on the record

    Raises:
        FetchError: If the income statement is empty
    """
    if income_statement is None or income_statement.empty:
        raise FetchError(f"No income statement data for {security_code}")

    income_columns = _columns_by_period(income_statement)
    period = max(income_columns)
    income = income_statement[income_columns[period]]

    balance = None
    if balance_sheet is not None and not balance_sheet.empty:
        balance_columns = _columns_by_period(balance_sheet)
        balance = balance_sheet[balance_columns.get(period, balance_columns[max(balance_columns)])]

    revenue = _statement_value(income, REVENUE_LABELS)
    net_income = _statement_value(income, NET_INCOME_LABELS)
    pretax_income = _statement_value(income, PRETAX_INCOME_LABELS)
    average_shares = _statement_value(income, AVERAGE_SHARES_LABELS)
    equity = _statement_value(balance, EQUITY_LABELS)
    total_assets = _statement_value(balance, TOTAL_ASSETS_LABELS)
    shares_outstanding = _statement_value(balance, SHARES_OUTSTANDING_LABELS) or average_shares

    return FinancialStatementRecord(
        security_code=security_code,
        year=period.year,
        quarter=ANNUAL if annual else f"Q{month_to_quarter(period.month)}",
        gross_profit=_ratio(_statement_value(income, GROSS_PROFIT_LABELS), revenue, 100),
        operating_profit_margin=_ratio(_statement_value(income, OPERATING_INCOME_LABELS), revenue, 100),
        pre_tax_income=_ratio(pretax_income, revenue, 100),
        net_income=_ratio(net_income, revenue, 100),
        net_asset_value_per_share=_ratio(equity, shares_outstanding),
        sales_per_share=_ratio(revenue, average_shares),
        earnings_per_share=round(_statement_value(income, EPS_LABELS), 4),
        profit_before_tax=_ratio(pretax_income, average_shares),
        return_on_equity=_ratio(net_income, equity, 100),
        return_on_assets=_ratio(net_income, total_assets, 100),
        source=source
    )


class YahooFinancialStatementFetcher(SourceAdapter):
    """
    Fetches the latest quarterly or annual statements from Yahoo Finance.

    Security codes are mapped to Yahoo symbols with ``symbol_suffix``
    (``.TW`` for listed Taiwan stocks).
    """

    source_name = "Yahoo Finance"

    def __init__(self, gate: FetchGate, annual: bool = False, symbol_suffix: str = ".TW"):
        super().__init__(gate)
        self.annual = annual
        self.symbol_suffix = symbol_suffix

    def symbol_for(self, security_code: str) -> str:
        return f"{security_code}{self.symbol_suffix}"

    def fetch(self, security_code: str) -> FinancialStatementRecord:
        """
        Fetch and normalize the most recent statement for a security.

        Raises:
            TransientFetchError: If Yahoo cannot be reached
            FetchError: If Yahoo has no statements for the symbol
        """
        symbol = self.symbol_for(security_code)
        self.logger.debug(f"Fetching {'annual' if self.annual else 'quarterly'} statements for {symbol}")

        with self.gate.permit():
            try:
                ticker = yf.Ticker(symbol)
                if self.annual:
                    income_statement = ticker.income_stmt
                    balance_sheet = ticker.balance_sheet
                else:
                    income_statement = ticker.quarterly_income_stmt
                    balance_sheet = ticker.quarterly_balance_sheet
            except Exception as e:
                raise TransientFetchError(f"{self.source_name} request for {symbol} failed: {e}") from e

        return build_financial_statement_record(
            security_code,
            income_statement,
            balance_sheet,
            annual=self.annual,
            source="yahoo"
        )


# =============================================================================
# TWSE HOLIDAY SCHEDULE
# =============================================================================

TWSE_HOST = "www.twse.com.tw"
TRADING_START_MARKER = "開始交易"


class TwseHolidayScheduleFetcher(SourceAdapter):
    """
    Fetches market holidays for one year from the Taiwan Stock Exchange.

    A response whose ``stat`` is not OK is reported through the notifier
    and yields an empty list rather than an error.
    """

    source_name = "TWSE"

    def __init__(self, gate: FetchGate, notifier=None):
        super().__init__(gate)
        self.notifier = notifier

    @handle_api_request_errors("TWSE")
    def fetch(self, year: int) -> List[date]:
        year = validate_year(year)
        timestamp = int(datetime.now(timezone.utc).timestamp() * 1000)
        url = (
            f"https://{TWSE_HOST}/rwd/zh/holidaySchedule/holidaySchedule"
            f"?date={year}&response=json&_={timestamp}"
        )
        payload = self.gate.get_json(url)

        check = check_response_stat(payload)
        if not check.ok:
            self._report_error(f"HolidaySchedule response rejected ({check.status.value}): {check.detail}")
            return []

        return parse_holiday_rows(payload.get("data") or [])

    def _report_error(self, message: str) -> None:
        self.logger.warning(message)
        if self.notifier is not None:
            send_quietly(self.notifier, message)


def parse_holiday_rows(rows: Iterable[List[str]]) -> List[date]:
    """
    Extract holiday dates from TWSE rows of ``[date, name, description, ...]``.

    Rows with fewer than three columns or describing the first trading
    day are ignored, as are rows with unparseable dates.
    """
    holidays = []
    for row in rows:
        if len(row) < 3 or TRADING_START_MARKER in row[2]:
            continue
        try:
            holidays.append(datetime.strptime(row[0], "%Y-%m-%d").date())
        except (TypeError, ValueError):
            continue
    return holidays
