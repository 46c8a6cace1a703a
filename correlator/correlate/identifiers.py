"""ASIN validation and normalization."""

import re
from typing import Optional

from correlator.errors import InvalidIdentifier

ASIN_PATTERN = re.compile(r"^B[0-9A-Z]{9}$")


def is_valid_asin(value: Optional[str]) -> bool:
    """Check an ASIN without raising (case-insensitive)."""
    if not value:
        return False
    return bool(ASIN_PATTERN.match(value.strip().upper()))


def normalize_asin(value: Optional[str]) -> str:
    """
    Return the upper-cased ASIN.

    Raises:
        InvalidIdentifier: If the value is not ``B`` followed by 9 alphanumerics
    """
    if not is_valid_asin(value):
        raise InvalidIdentifier(value)
    return value.strip().upper()
