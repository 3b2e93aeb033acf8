"""
Custom exceptions for the market data backfill package.

The hierarchy mirrors how failures are handled by a backfill run:
fetch and validation errors are isolated per work item, persistence
read errors abort the run, and configuration errors are fatal at startup.
"""


class MarketBackfillError(Exception):
    """Base exception class for all market data backfill errors."""
    pass


class FetchError(MarketBackfillError):
    """Exception raised when a source adapter cannot produce a record."""
    pass


class TransientFetchError(FetchError):
    """Network, timeout or HTTP status failure talking to a data source."""
    pass


class ValidationError(MarketBackfillError):
    """Exception raised when input validation fails."""
    pass


class ValidationMismatch(ValidationError):
    """A source returned data for a reporting window other than the one requested."""

    def __init__(self, message: str, requested=None, received=None):
        super().__init__(message)
        self.requested = requested
        self.received = received


class DatabaseError(MarketBackfillError):
    """Exception raised when database operations fail."""
    pass


class PersistenceReadError(DatabaseError):
    """Reading the work set failed; the whole backfill run is aborted."""
    pass


class PersistenceWriteError(DatabaseError):
    """Writing a single record failed; only that work item is skipped."""
    pass


class ConfigurationError(MarketBackfillError):
    """Exception raised when configuration is invalid or missing."""
    pass


class SchedulerConfigError(ConfigurationError):
    """Invalid trigger registration. The process must not start with it."""
    pass
