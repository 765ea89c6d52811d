"""Scalar conversion and comparison functions."""

from __future__ import annotations

import math
from datetime import date, datetime, time, timedelta
from decimal import Decimal, InvalidOperation
from enum import Enum
from fractions import Fraction
from typing import Any, Optional
from uuid import UUID


NEAR_LENGTH = 3


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ('true', '1', 'yes', 'on'):
            return True
        if lowered in ('false', '0', 'no', 'off'):
            return False
        raise ValueError(f"Cannot convert {value!r} to bool")
    if isinstance(value, (int, float, Decimal)):
        return bool(value)
    raise TypeError(f"Cannot convert {type(value).__name__} to bool")


def _to_int(value: Any) -> int:
    if isinstance(value, str):
        return int(value.strip())
    if isinstance(value, float) and not value.is_integer():
        raise ValueError(f"Cannot convert {value!r} to int without losing precision")
    return int(value)


def _to_datetime(value: Any) -> datetime:
    if isinstance(value, str):
        return datetime.fromisoformat(value.strip().replace('Z', '+00:00'))
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    raise TypeError(f"Cannot convert {type(value).__name__} to datetime")


def _to_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, str):
        return date.fromisoformat(value.strip())
    raise TypeError(f"Cannot convert {type(value).__name__} to date")


def _to_time(value: Any) -> time:
    if isinstance(value, str):
        return time.fromisoformat(value.strip())
    raise TypeError(f"Cannot convert {type(value).__name__} to time")


def _to_timedelta(value: Any) -> timedelta:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return timedelta(seconds=value)
    raise TypeError(f"Cannot convert {type(value).__name__} to timedelta")


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value.strip() if isinstance(value, str) else value)


def _to_uuid(value: Any) -> UUID:
    if isinstance(value, str):
        return UUID(value.strip())
    raise TypeError(f"Cannot convert {type(value).__name__} to UUID")


CONVERTERS = {
    bool: _to_bool,
    int: _to_int,
    float: float,
    complex: complex,
    str: str,
    Decimal: _to_decimal,
    Fraction: Fraction,
    datetime: _to_datetime,
    date: _to_date,
    time: _to_time,
    timedelta: _to_timedelta,
    UUID: _to_uuid,
}


def try_convert(value: Any, target_type: type) -> tuple[bool, Any]:
    """
    Try to convert a value to the specified type.

    Args:
        value: The value to convert
        target_type: The type to convert to

    Returns:
        Tuple of (converted, value); the original value when conversion failed
    """
    if value is None:
        return False, value
    if isinstance(value, target_type) and not isinstance(value, Enum):
        return True, value

    converter = None
    for candidate in target_type.__mro__:
        converter = CONVERTERS.get(candidate)
        if converter is not None:
            break

    if converter is None:
        return False, value

    try:
        return True, converter(value)
    except (ValueError, TypeError, ArithmeticError, InvalidOperation):
        return False, value


def scalars_equal(subject: Any, expectation: Any) -> bool:
    """Check if two scalar values are equal (NaN is equal to NaN)."""
    if _is_nan(subject) and _is_nan(expectation):
        return True
    try:
        return bool(subject == expectation)
    except (TypeError, ValueError):
        # e.g. numpy arrays hiding behind a scalar interface
        return False


def _is_nan(value: Any) -> bool:
    if isinstance(value, float):
        return math.isnan(value)
    if isinstance(value, Decimal):
        return value.is_nan()
    return False


def compare_scalars(subject: Any, expectation: Any) -> tuple[bool, bool]:
    """
    Compare two scalar values, converting the subject when the types differ.

    Returns:
        Tuple of (is_match, types_compatible)
    """
    if scalars_equal(subject, expectation):
        return True, True

    if type(subject) is type(expectation):
        return False, True

    converted, value = try_convert(subject, type(expectation))
    if not converted:
        return False, False
    return scalars_equal(value, expectation), True


def first_difference(subject: str, expectation: str) -> Optional[int]:
    """Index of the first differing character, or None for equal strings."""
    for i, (s, e) in enumerate(zip(subject, expectation)):
        if s != e:
            return i
    if len(subject) != len(expectation):
        return min(len(subject), len(expectation))
    return None


def describe_string_difference(subject: str, expectation: str) -> str:
    """
    Describe where two strings differ.

    Returns:
        A phrase such as 'differs near "es" (index 4)'
    """
    index = first_difference(subject, expectation)
    if index is None:
        return ""
    near = subject[index:index + NEAR_LENGTH]
    return f'differs near "{near}" (index {index})'
