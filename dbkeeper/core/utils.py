"""
dbkeeper Core Utilities

Shared helpers for validating raw configuration values and keeping secrets
out of logs and terminal output.
"""

import math
import re
from typing import Optional

IDENTIFIER_PATTERN = re.compile(r'^[A-Za-z0-9_]+$')
SERVICE_NAME_PATTERN = re.compile(r'^[a-zA-Z0-9][a-zA-Z0-9_.-]*$')
MEMORY_PATTERN = re.compile(r'^\d+[bkmg]?$', re.IGNORECASE)
RESTART_POLICY_PATTERN = re.compile(r'^(no|always|unless-stopped|on-failure(:\d+)?)$')


def mask_secret(value: Optional[str]) -> str:
    """Mask a secret for display, keeping only its length class."""
    if not value:
        return ''
    return '*' * min(len(value), 8)


def validate_identifier(value: str, max_length: int) -> Optional[str]:
    """Check a MySQL identifier; returns a reason string when invalid."""
    if not IDENTIFIER_PATTERN.match(value):
        return "only letters, digits and underscore are allowed"
    if len(value) > max_length:
        return f"must be at most {max_length} characters"
    return None


def validate_port(value: str) -> Optional[str]:
    try:
        port = int(value)
    except ValueError:
        return "must be an integer"
    if not 1 <= port <= 65535:
        return "must be between 1 and 65535"
    return None


def parse_positive_number(value: str, cast=float):
    """Parse a strictly positive, finite number, raising ValueError otherwise."""
    number = cast(value)
    if not math.isfinite(number) or number <= 0:
        raise ValueError(f"{value} is not a positive finite number")
    return number
