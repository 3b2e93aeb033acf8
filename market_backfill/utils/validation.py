"""
Validation utilities for market data backfill operations.

This module provides reusable validation functions to ensure
data integrity and consistency across the application.
"""

import enum
import re
from dataclasses import dataclass
from typing import Any, Mapping

from .exceptions import ValidationError


# Constants
MAX_SECURITY_CODE_LENGTH = 10
VALID_SECURITY_CODE_CHARS = r'^[A-Z0-9]+$'
MIN_YEAR = 1900
MAX_YEAR = 2100


def validate_security_code(security_code: str) -> str:
    """
    Validate and normalize a security code (e.g. 2330, 00878, 2881A).

    Args:
        security_code: Security code to validate

    Returns:
        Validated and normalized security code

    Raises:
        ValidationError: If the code format is invalid
    """
    if security_code is None or not str(security_code).strip():
        raise ValidationError("Security code cannot be empty")

    code = str(security_code).strip().upper()

    if len(code) > MAX_SECURITY_CODE_LENGTH:
        raise ValidationError(
            f"Security code length must be at most {MAX_SECURITY_CODE_LENGTH} characters"
        )

    if not re.match(VALID_SECURITY_CODE_CHARS, code):
        raise ValidationError(f"Invalid security code format: {code}. Only letters and numbers are allowed")

    return code


def validate_year(year: Any) -> int:
    """
    Validate a calendar year parameter.

    Raises:
        ValidationError: If the year is not an integer within range
    """
    try:
        value = int(year)
    except (TypeError, ValueError):
        raise ValidationError(f"Year must be an integer, got {year!r}")

    if value < MIN_YEAR or value > MAX_YEAR:
        raise ValidationError(f"Year must be between {MIN_YEAR} and {MAX_YEAR}, got {value}")

    return value


class StatStatus(enum.Enum):
    """Result of checking a provider's ``stat`` field."""
    OK = "ok"
    BAD_STATUS = "bad_status"
    MALFORMED = "malformed"


@dataclass(frozen=True)
class StatCheck:
    status: StatStatus
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.status is StatStatus.OK


def check_response_stat(payload: Any, field: str = "stat") -> StatCheck:
    """
    Check the status marker of an exchange JSON response.

    The stat value is compared case-insensitively against ``OK``.

    Args:
        payload: Decoded JSON response
        field: Name of the status field

    Returns:
        StatCheck with OK, BAD_STATUS (stat present but not OK) or
        MALFORMED (payload is not an object or stat is missing/not a string)
    """
    if not isinstance(payload, Mapping):
        return StatCheck(StatStatus.MALFORMED, f"response is not an object: {type(payload).__name__}")

    stat = payload.get(field)
    if stat is None:
        return StatCheck(StatStatus.MALFORMED, f"response has no '{field}' field")
    if not isinstance(stat, str):
        return StatCheck(StatStatus.MALFORMED, f"'{field}' is not a string: {stat!r}")

    if stat.strip().upper() != "OK":
        return StatCheck(StatStatus.BAD_STATUS, stat)

    return StatCheck(StatStatus.OK)
