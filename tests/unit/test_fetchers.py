"""
Tests for source adapters.

Yahoo Finance is replaced by prepared statement frames and the TWSE
endpoint by a mocked fetch gate, so no network access is needed.
"""

from datetime import date
from unittest.mock import MagicMock, patch

import pandas as pd
import pytest

from market_backfill.data.fetchers import (
    TwseHolidayScheduleFetcher, YahooFinancialStatementFetcher,
    build_financial_statement_record, parse_holiday_rows
)
from market_backfill.data.gate import FetchGate
from market_backfill.data.window import ReportingWindow
from market_backfill.utils.exceptions import FetchError, TransientFetchError


def income_statement(periods=("2026-06-30", "2026-03-31")):
    """Two quarters of a yfinance-style income statement (rows = line items)."""
    columns = [pd.Timestamp(period) for period in periods]
    return pd.DataFrame(
        {
            columns[0]: [1000.0, 550.0, 420.0, 450.0, 380.0, 3.8, 100.0],
            columns[1]: [900.0, 480.0, 350.0, 380.0, 320.0, 3.2, 100.0],
        },
        index=['Total Revenue', 'Gross Profit', 'Operating Income', 'Pretax Income',
               'Net Income', 'Diluted EPS', 'Diluted Average Shares']
    )


def balance_sheet(periods=("2026-06-30", "2026-03-31")):
    columns = [pd.Timestamp(period) for period in periods]
    return pd.DataFrame(
        {
            columns[0]: [4000.0, 8000.0, 100.0],
            columns[1]: [3800.0, 7600.0, 100.0],
        },
        index=['Stockholders Equity', 'Total Assets', 'Ordinary Shares Number']
    )


class TestBuildFinancialStatementRecord:

    def test_latest_quarter_is_used(self):
        record = build_financial_statement_record("2330", income_statement(), balance_sheet())

        assert record.window == ReportingWindow(2026, "Q2")
        assert record.security_code == "2330"
        assert record.earnings_per_share == 3.8
        assert record.gross_profit == 55.0
        assert record.operating_profit_margin == 42.0
        assert record.pre_tax_income == 45.0
        assert record.net_income == 38.0
        assert record.net_asset_value_per_share == 40.0
        assert record.sales_per_share == 10.0
        assert record.profit_before_tax == 4.5
        assert record.return_on_equity == 9.5
        assert record.return_on_assets == 4.75
        assert record.source == "yahoo"

    def test_annual_record_has_empty_quarter(self):
        record = build_financial_statement_record(
            "2330", income_statement(("2025-12-31", "2024-12-31")),
            balance_sheet(("2025-12-31", "2024-12-31")), annual=True
        )
        assert record.window == ReportingWindow(2025)

    def test_missing_balance_sheet_leaves_zero_ratios(self):
        record = build_financial_statement_record("2330", income_statement())
        assert record.net_asset_value_per_share == 0.0
        assert record.return_on_equity == 0.0
        assert record.earnings_per_share == 3.8

    def test_basic_eps_fallback(self):
        frame = income_statement().rename(index={'Diluted EPS': 'Basic EPS'})
        record = build_financial_statement_record("2330", frame)
        assert record.earnings_per_share == 3.8

    def test_nan_values_treated_as_missing(self):
        frame = income_statement()
        frame.loc['Total Revenue'] = float('nan')
        record = build_financial_statement_record("2330", frame)
        assert record.gross_profit == 0.0
        assert record.sales_per_share == 0.0

    def test_empty_statement_raises(self):
        with pytest.raises(FetchError):
            build_financial_statement_record("2330", pd.DataFrame())


class TestYahooFinancialStatementFetcher:

    @pytest.fixture
    def gate(self):
        return FetchGate(max_concurrent_requests=2, session=MagicMock())

    @patch('market_backfill.data.fetchers.yf.Ticker')
    def test_quarterly_fetch(self, mock_ticker, gate):
        ticker = MagicMock()
        ticker.quarterly_income_stmt = income_statement()
        ticker.quarterly_balance_sheet = balance_sheet()
        mock_ticker.return_value = ticker

        record = YahooFinancialStatementFetcher(gate).fetch("2330")

        mock_ticker.assert_called_once_with("2330.TW")
        assert record.window == ReportingWindow(2026, "Q2")
        assert gate.outstanding == 0
        assert gate.peak_outstanding == 1

    @patch('market_backfill.data.fetchers.yf.Ticker')
    def test_annual_fetch_uses_annual_statements(self, mock_ticker, gate):
        ticker = MagicMock()
        ticker.income_stmt = income_statement(("2025-12-31", "2024-12-31"))
        ticker.balance_sheet = balance_sheet(("2025-12-31", "2024-12-31"))
        mock_ticker.return_value = ticker

        record = YahooFinancialStatementFetcher(gate, annual=True).fetch("2330")

        assert record.window == ReportingWindow(2025)

    @patch('market_backfill.data.fetchers.yf.Ticker')
    def test_provider_error_is_transient(self, mock_ticker, gate):
        mock_ticker.side_effect = RuntimeError("rate limited")

        with pytest.raises(TransientFetchError):
            YahooFinancialStatementFetcher(gate).fetch("2330")
        assert gate.outstanding == 0

    @patch('market_backfill.data.fetchers.yf.Ticker')
    def test_empty_statements_raise_fetch_error(self, mock_ticker, gate):
        ticker = MagicMock()
        ticker.quarterly_income_stmt = pd.DataFrame()
        ticker.quarterly_balance_sheet = pd.DataFrame()
        mock_ticker.return_value = ticker

        with pytest.raises(FetchError):
            YahooFinancialStatementFetcher(gate).fetch("9999")

    def test_symbol_suffix(self, gate):
        assert YahooFinancialStatementFetcher(gate, symbol_suffix=".TWO").symbol_for("6488") == "6488.TWO"


class TestTwseHolidayScheduleFetcher:

    ROWS = [
        ["2026-01-01", "中華民國開國紀念日", "依規定放假1日。"],
        ["2026-01-02", "國曆新年開始交易日", "國曆新年開始交易。"],
        ["2026-02-16", "農曆除夕前一日", "市場無交易，僅辦理結算交割作業。"],
        ["not-a-date", "x", "y"],
        ["2026-04-03"],
    ]

    def test_parse_rows_skips_trading_start_and_bad_rows(self):
        assert parse_holiday_rows(self.ROWS) == [date(2026, 1, 1), date(2026, 2, 16)]

    def test_fetch_ok(self):
        gate = MagicMock()
        gate.get_json.return_value = {"stat": "ok", "data": self.ROWS}

        holidays = TwseHolidayScheduleFetcher(gate).fetch(2026)

        assert holidays == [date(2026, 1, 1), date(2026, 2, 16)]
        url = gate.get_json.call_args[0][0]
        assert "holidaySchedule?date=2026&response=json" in url

    def test_bad_stat_notifies_and_returns_empty(self):
        gate = MagicMock()
        gate.get_json.return_value = {"stat": "查詢日期小於81年1月4日，請重新查詢!"}
        notifier = MagicMock()

        assert TwseHolidayScheduleFetcher(gate, notifier=notifier).fetch(2026) == []
        notifier.send.assert_called_once()
        assert "bad_status" in notifier.send.call_args[0][0]

    def test_missing_stat_is_malformed(self):
        gate = MagicMock()
        gate.get_json.return_value = {"data": []}
        notifier = MagicMock()

        assert TwseHolidayScheduleFetcher(gate, notifier=notifier).fetch(2026) == []
        assert "malformed" in notifier.send.call_args[0][0]

    def test_notifier_failure_does_not_escape(self):
        gate = MagicMock()
        gate.get_json.return_value = {"stat": "FAIL"}
        notifier = MagicMock()
        notifier.send.side_effect = RuntimeError("webhook down")

        assert TwseHolidayScheduleFetcher(gate, notifier=notifier).fetch(2026) == []

    def test_transport_error_propagates(self):
        gate = MagicMock()
        gate.get_json.side_effect = TransientFetchError("timeout")

        with pytest.raises(TransientFetchError):
            TwseHolidayScheduleFetcher(gate).fetch(2026)
