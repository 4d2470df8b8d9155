"""Lenient readers for numbers typed into the editor.

Blank, unreadable or non-finite input never fails: the caller's default is
used instead. A comma works as decimal separator.
"""
import math
from typing import Optional

DEFAULT_PRICE = 0.0
MIN_COUNT = 1


def to_number_or_none(value) -> Optional[float]:
    """Read a user-typed number. Accepts a comma as decimal separator."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip().replace(",", ".")
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    if not math.isfinite(number):
        return None
    return number


def to_price(value, default: Optional[float] = DEFAULT_PRICE) -> Optional[float]:
    number = to_number_or_none(value)
    if number is None:
        return default
    return max(0.0, number)


def to_count(value, default: int = MIN_COUNT) -> int:
    number = to_number_or_none(value)
    if number is None:
        return max(MIN_COUNT, default)
    return max(MIN_COUNT, int(number))
