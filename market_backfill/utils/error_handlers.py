"""
Unified error handling utilities.

This module provides the error handling patterns shared by source
adapters, the database manager and the CLI so that each failure is
mapped onto the backfill error taxonomy in one place.
"""

from typing import Callable, Any, Type
from functools import wraps
import json
import requests

from ..utils.exceptions import (
    FetchError, TransientFetchError, ValidationError, DatabaseError,
    ConfigurationError, MarketBackfillError
)
from ..utils.logging import get_logger

logger = get_logger(__name__)

# Exit codes
SUCCESS_EXIT_CODE = 0
ERROR_EXIT_CODE = 1


def handle_api_request_errors(source_name: str):
    """
    Decorator for unified API request error handling.

    Handles common patterns:
    - requests.exceptions.RequestException -> TransientFetchError
    - JSON decode errors -> FetchError
    - Package errors pass through unchanged

    Args:
        source_name: Name of the data source for error messages (e.g., "Yahoo", "TWSE")

    Usage:
        @handle_api_request_errors("TWSE")
        def fetch(self, year):
            return self.gate.get_json(url)
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except MarketBackfillError:
                raise
            except (requests.exceptions.JSONDecodeError, json.JSONDecodeError) as e:
                raise FetchError(f"{source_name} JSON decode error: {e}") from e
            except requests.exceptions.RequestException as e:
                raise TransientFetchError(f"{source_name} API request failed: {e}") from e
        return wrapper
    return decorator


def handle_cli_command_errors(command_name: str):
    """
    Decorator for unified CLI command error handling.

    Handles common patterns:
    - ValidationError / ConfigurationError -> log + ERROR_EXIT_CODE
    - FetchError / DatabaseError -> log specific error + ERROR_EXIT_CODE
    - Generic Exception -> log with traceback + ERROR_EXIT_CODE

    Args:
        command_name: Name of the CLI command for logging
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except (ValidationError, ConfigurationError) as e:
                logger.error(f"Invalid input for {command_name}: {e}")
                return ERROR_EXIT_CODE
            except FetchError as e:
                logger.error(f"Source error in {command_name}: {e}")
                return ERROR_EXIT_CODE
            except DatabaseError as e:
                logger.error(f"Database error in {command_name}: {e}")
                return ERROR_EXIT_CODE
            except Exception as e:
                logger.error(f"Unexpected error in {command_name}: {e}", exc_info=True)
                return ERROR_EXIT_CODE
        return wrapper
    return decorator


def handle_database_errors(operation_name: str, error_cls: Type[DatabaseError] = DatabaseError):
    """
    Decorator for unified database operation error handling.

    Logs the failure with the instance logger when available and
    re-raises it as ``error_cls`` so callers can tell read failures
    (abort the run) from write failures (skip the item).

    Args:
        operation_name: Name of the database operation for logging
        error_cls: DatabaseError subclass to raise
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except DatabaseError:
                raise
            except Exception as e:
                instance = args[0] if args else None
                if hasattr(instance, 'logger'):
                    instance.logger.error(f"Error in {operation_name}: {e}")
                else:
                    logger.error(f"Error in {operation_name}: {e}")
                raise error_cls(f"{operation_name} failed: {e}") from e
        return wrapper
    return decorator


def safe_execute(
    operation: Callable,
    error_message: str = "Operation failed",
    default_return: Any = None,
    log_errors: bool = True
) -> Any:
    """
    Safely execute an operation with consistent error handling.

    Args:
        operation: Function to execute
        error_message: Custom error message for logging
        default_return: Value to return if operation fails
        log_errors: Whether to log errors

    Returns:
        Operation result or default_return on failure
    """
    try:
        return operation()
    except Exception as e:
        if log_errors:
            logger.error(f"{error_message}: {e}", exc_info=True)
        return default_return
