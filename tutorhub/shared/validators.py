"""Shared validation utilities"""

import re
import uuid

PERIOD_PATTERN = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


def validate_uuid(value: str) -> bool:
    """Validate UUID format"""
    try:
        uuid.UUID(value)
        return True
    except (ValueError, AttributeError, TypeError):
        return False


def validate_period(value: str) -> bool:
    """Validate a YYYY-MM billing period key"""
    return bool(value) and bool(PERIOD_PATTERN.match(value))
