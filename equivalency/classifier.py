"""Value classification for the equivalency engine."""

from __future__ import annotations

import sys
import types
from collections.abc import Collection, Mapping
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from enum import Enum
from fractions import Fraction
from functools import lru_cache
from typing import Any, Optional
from uuid import UUID

from .models import ValueKind


PRIMITIVE_TYPES = (
    bool, int, float, complex, bytes, bytearray,
    Decimal, Fraction, datetime, date, time, timedelta, UUID,
)

# Standard library types that still carry a structure worth comparing.
STRUCTURAL_STDLIB_TYPES = (object, types.SimpleNamespace)

_CONVERSION_PROTOCOL = ("__index__", "__int__", "__float__", "__complex__")


@lru_cache(maxsize=512)
def is_stdlib_type(cls: type) -> bool:
    """Check if a type is defined by the interpreter or its standard library."""
    module = getattr(cls, "__module__", None) or ""
    top_level = module.split(".", 1)[0]
    if top_level == "__main__":
        return False
    if top_level in ("builtins", "__builtin__"):
        return True
    return top_level in sys.stdlib_module_names


def is_named_tuple(value: Any) -> bool:
    return isinstance(value, tuple) and hasattr(type(value), "_fields")


class TypeClassifier:
    """
    Decides how a value takes part in a comparison.

    Handles:
    - Nulls, strings, enums and built-in scalars
    - Dictionaries and other collections
    - Overrides registered through comparing_by_value / comparing_by_members
    - Everything else as a structural (complex) object
    """

    def __init__(self, value_types: tuple = (), member_types: tuple = ()):
        self.value_types = tuple(value_types)
        self.member_types = tuple(member_types)

    @classmethod
    def for_strategy(cls, strategy) -> "TypeClassifier":
        return cls(strategy.value_types, strategy.member_types)

    def classify(self, value: Any) -> ValueKind:
        """
        Classify a value.

        Args:
            value: The subject or expectation value

        Returns:
            The ValueKind that decides which comparison step applies
        """
        if value is None:
            return ValueKind.NULL

        override = self._override(type(value))
        if override is not None:
            return override

        if isinstance(value, Enum):
            return ValueKind.ENUM
        if isinstance(value, str):
            return ValueKind.STRING
        if isinstance(value, PRIMITIVE_TYPES):
            return ValueKind.PRIMITIVE
        if isinstance(value, Mapping):
            return ValueKind.DICTIONARY
        if is_named_tuple(value):
            return ValueKind.COMPLEX
        if isinstance(value, Collection):
            return ValueKind.COLLECTION

        cls = type(value)
        if cls in STRUCTURAL_STDLIB_TYPES:
            return ValueKind.COMPLEX
        if is_stdlib_type(cls):
            return ValueKind.PRIMITIVE
        if any(hasattr(cls, name) for name in _CONVERSION_PROTOCOL):
            return ValueKind.CONVERTIBLE_SCALAR

        return ValueKind.COMPLEX

    def _override(self, cls: type) -> Optional[ValueKind]:
        """Kind forced by the strategy; most specific registration wins."""
        for candidate in cls.__mro__:
            if candidate in self.value_types:
                return ValueKind.PRIMITIVE
            if candidate in self.member_types:
                return ValueKind.COMPLEX
        return None


def classify(value: Any, strategy=None) -> ValueKind:
    """Convenience function to classify a value under a strategy."""
    if strategy is None:
        return TypeClassifier().classify(value)
    return TypeClassifier.for_strategy(strategy).classify(value)
