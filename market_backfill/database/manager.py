"""
Database manager for backfilled market data.

This module provides the persistence operations the backfill tasks rely on:
- "missing" queries that produce the work set for a reporting window
- idempotent financial statement upserts keyed by (security_code, year, quarter)
- narrow updates of derived stock fields (net asset value, trailing EPS)

Reads raise PersistenceReadError and writes raise PersistenceWriteError so
backfill tasks can abort on the former and skip items on the latter.
"""

from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import create_engine, and_, or_
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import sessionmaker, Session

from ..config import config
from ..utils.logging import get_logger
from ..utils.exceptions import PersistenceReadError, PersistenceWriteError
from ..utils.error_handlers import handle_database_errors
from ..utils.validation import validate_security_code
from ..data.models import (
    Base, Stock, FinancialStatement, FinancialStatementRecord, WorkItem,
    FINANCIAL_STATEMENT_MUTABLE_FIELDS
)
from ..data.window import ReportingWindow


NATURAL_KEY = ('security_code', 'year', 'quarter')
TRAILING_EPS_QUARTERS = 4


class DatabaseManager:
    """
    SQLite-backed persistence port for backfill tasks.

    Sessions are short-lived and created per operation, so one manager
    can be shared by concurrently running tasks.
    """

    def __init__(self, db_path: Optional[str] = None) -> None:
        self.logger = get_logger(__name__)

        self.db_path = db_path or config.database.path
        self.engine = create_engine(
            f"sqlite:///{self.db_path}",
            echo=config.database.echo,
            connect_args={"check_same_thread": False, "timeout": 30}
        )

        Base.metadata.create_all(self.engine)

        self.Session = sessionmaker(bind=self.engine)

        self.logger.info(f"Database manager initialized with {self.db_path}")

    def get_session(self) -> Session:
        """
        Get a new database session.

        Returns:
            SQLAlchemy session object
        """
        return self.Session()

    # =============================================================================
    # STOCKS
    # =============================================================================

    @handle_database_errors("store_stocks", PersistenceWriteError)
    def store_stocks(self, rows: Iterable[Dict[str, Any]]) -> int:
        """
        Insert or update listed stocks.

        Only identity fields (name, suspend_listing) are updated on conflict;
        derived fields maintained by backfills are left untouched.

        Args:
            rows: Dicts with security_code, and optionally name and suspend_listing

        Returns:
            Number of rows written
        """
        count = 0
        with self.get_session() as session:
            for row in rows:
                code = validate_security_code(row['security_code'])
                values = {
                    'security_code': code,
                    'name': row.get('name') or '',
                    'suspend_listing': bool(row.get('suspend_listing', False)),
                }
                stmt = sqlite_insert(Stock).values(**values)
                stmt = stmt.on_conflict_do_update(
                    index_elements=['security_code'],
                    set_={
                        'name': stmt.excluded.name,
                        'suspend_listing': stmt.excluded.suspend_listing,
                        'updated_at': datetime.now(timezone.utc),
                    }
                )
                session.execute(stmt)
                count += 1
            session.commit()
        self.logger.info(f"Stored {count} stocks")
        return count

    @handle_database_errors("get_stock", PersistenceReadError)
    def get_stock(self, security_code: str) -> Optional[Stock]:
        with self.get_session() as session:
            stock = session.query(Stock).filter(Stock.security_code == security_code).first()
            if stock is not None:
                session.expunge(stock)
            return stock

    @handle_database_errors("find_stocks_with_zero_net_asset_value", PersistenceReadError)
    def find_stocks_with_zero_net_asset_value(self) -> List[WorkItem]:
        """Listed stocks whose net asset value per share is still zero."""
        with self.get_session() as session:
            rows = session.query(Stock.security_code, Stock.net_asset_value_per_share).filter(
                Stock.suspend_listing.is_(False),
                Stock.net_asset_value_per_share == 0
            ).order_by(Stock.security_code).all()
        return [WorkItem(code, nav) for code, nav in rows]

    @handle_database_errors("update_net_asset_value_per_share", PersistenceWriteError)
    def update_net_asset_value_per_share(self, security_code: str, value: float) -> bool:
        """
        Set a stock's net asset value per share.

        Returns:
            True if a stock row was updated
        """
        with self.get_session() as session:
            updated = session.query(Stock).filter(Stock.security_code == security_code).update(
                {
                    Stock.net_asset_value_per_share: value,
                    Stock.updated_at: datetime.now(timezone.utc),
                },
                synchronize_session=False
            )
            session.commit()
        return updated > 0

    @handle_database_errors("update_last_eps", PersistenceWriteError)
    def update_last_eps(self) -> int:
        """
        Recompute each stock's trailing EPS from its latest quarterly statements.

        ``last_eps`` becomes the sum of the four most recent quarterly EPS
        values; stocks without quarterly statements are left unchanged.

        Returns:
            Number of stocks updated
        """
        with self.get_session() as session:
            statements = session.query(
                FinancialStatement.security_code,
                FinancialStatement.earnings_per_share
            ).filter(
                FinancialStatement.quarter != ''
            ).order_by(
                FinancialStatement.security_code,
                FinancialStatement.year.desc(),
                FinancialStatement.quarter.desc()
            ).all()

            latest: Dict[str, List[float]] = defaultdict(list)
            for code, eps in statements:
                if len(latest[code]) < TRAILING_EPS_QUARTERS:
                    latest[code].append(eps or 0.0)

            updated = 0
            for stock in session.query(Stock).filter(Stock.security_code.in_(list(latest))):
                stock.last_eps = round(sum(latest[stock.security_code]), 4)
                updated += 1
            session.commit()

        self.logger.info(f"Updated trailing EPS for {updated} stocks")
        return updated

    # =============================================================================
    # FINANCIAL STATEMENTS
    # =============================================================================

    @handle_database_errors("find_missing_financial_statements", PersistenceReadError)
    def find_missing_financial_statements(self, window: ReportingWindow) -> List[WorkItem]:
        """
        Listed stocks with no usable statement for ``window``.

        A statement is missing when no row exists for the natural key or the
        stored row still has a zero EPS placeholder.

        Args:
            window: Reporting window to check

        Returns:
            Work items ordered by security code
        """
        with self.get_session() as session:
            rows = session.query(Stock.security_code, Stock.net_asset_value_per_share).outerjoin(
                FinancialStatement,
                and_(
                    FinancialStatement.security_code == Stock.security_code,
                    FinancialStatement.year == window.year,
                    FinancialStatement.quarter == window.quarter
                )
            ).filter(
                Stock.suspend_listing.is_(False),
                or_(
                    FinancialStatement.id.is_(None),
                    FinancialStatement.earnings_per_share == 0
                )
            ).order_by(Stock.security_code).all()

        self.logger.debug(f"{len(rows)} stocks missing financial statements for {window}")
        return [WorkItem(code, nav) for code, nav in rows]

    @handle_database_errors("upsert_financial_statement", PersistenceWriteError)
    def upsert_financial_statement(self, record: FinancialStatementRecord) -> None:
        """
        Insert a statement or overwrite every mutable field of the existing row.

        Applying the same record twice leaves the stored state unchanged.
        """
        now = datetime.now(timezone.utc)
        values = record.to_row()
        values['security_code'] = validate_security_code(values['security_code'])
        values.update(created_at=now, updated_at=now)

        stmt = sqlite_insert(FinancialStatement).values(**values)
        update_columns = {name: stmt.excluded[name] for name in FINANCIAL_STATEMENT_MUTABLE_FIELDS}
        update_columns['updated_at'] = stmt.excluded.updated_at
        stmt = stmt.on_conflict_do_update(index_elements=list(NATURAL_KEY), set_=update_columns)

        with self.get_session() as session:
            session.execute(stmt)
            session.commit()

    @handle_database_errors("upsert_earnings_per_share", PersistenceWriteError)
    def upsert_earnings_per_share(self, record: FinancialStatementRecord) -> bool:
        """
        Insert only the EPS of a statement; never overwrite an existing row.

        Use this when the caller may hold older data than what is stored.

        Returns:
            True if a new row was inserted
        """
        now = datetime.now(timezone.utc)
        stmt = sqlite_insert(FinancialStatement).values(
            security_code=validate_security_code(record.security_code),
            year=record.year,
            quarter=record.quarter,
            earnings_per_share=record.earnings_per_share,
            created_at=now,
            updated_at=now
        ).on_conflict_do_nothing(index_elements=list(NATURAL_KEY))

        with self.get_session() as session:
            result = session.execute(stmt)
            session.commit()
        return result.rowcount > 0

    @handle_database_errors("get_financial_statement", PersistenceReadError)
    def get_financial_statement(self, security_code: str, window: ReportingWindow) -> Optional[FinancialStatementRecord]:
        with self.get_session() as session:
            row = session.query(FinancialStatement).filter(
                FinancialStatement.security_code == security_code,
                FinancialStatement.year == window.year,
                FinancialStatement.quarter == window.quarter
            ).first()
            if row is None:
                return None
            return FinancialStatementRecord(
                security_code=row.security_code,
                year=row.year,
                quarter=row.quarter,
                **{name: getattr(row, name) for name in FINANCIAL_STATEMENT_MUTABLE_FIELDS}
            )

    @handle_database_errors("get_summary", PersistenceReadError)
    def get_summary(self) -> Dict[str, int]:
        """Row counts used by the CLI."""
        with self.get_session() as session:
            return {
                'stocks': session.query(Stock).count(),
                'financial_statements': session.query(FinancialStatement).count(),
            }
