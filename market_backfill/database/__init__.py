"""Database module: SQLAlchemy-backed persistence for backfills."""

from .manager import DatabaseManager

__all__ = ["DatabaseManager"]
