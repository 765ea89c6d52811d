"""Discrepancy rendering for the equivalency engine."""

from __future__ import annotations

from collections.abc import Collection, Mapping, Set
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from .members import MemberGraph, read_member
from .models import REASON_PLACEHOLDER, Discrepancy, format_reason


NULL = "<null>"
MAX_ITEMS = 32
MAX_NESTING = 3


def describe(value: Any) -> str:
    """
    Render a value the way failure messages show it.

    Strings are quoted, None is <null>, dates are <2013-12-09 15:58:00>,
    enums are Type.NAME, collections are rendered item by item and plain
    objects as TypeName { member = value }.
    """
    return _describe(value, 0, set())


def _describe(value: Any, nesting: int, seen: set) -> str:
    if value is None:
        return NULL
    if isinstance(value, Enum):
        return f"{type(value).__name__}.{value.name}"
    if isinstance(value, str):
        return f'"{value}"'
    if isinstance(value, (bool, int, float, complex, Decimal)):
        return str(value)
    if isinstance(value, datetime):
        fmt = "%Y-%m-%d %H:%M:%S.%f" if value.microsecond else "%Y-%m-%d %H:%M:%S"
        return f"<{value.strftime(fmt)}>"
    if isinstance(value, date):
        return f"<{value.isoformat()}>"
    if isinstance(value, time):
        return f"<{value.isoformat()}>"
    if isinstance(value, (bytes, bytearray)):
        return repr(value)

    if id(value) in seen:
        return f"<cyclic reference to {type(value).__name__}>"
    if nesting >= MAX_NESTING:
        return f"{type(value).__name__} {{...}}"

    seen = seen | {id(value)}

    if isinstance(value, Mapping):
        items = [
            f"{_describe(k, nesting + 1, seen)}: {_describe(v, nesting + 1, seen)}"
            for k, v in list(value.items())[:MAX_ITEMS]
        ]
        return "{" + _join(items, len(value)) + "}"

    if _has_custom_repr(value):
        return repr(value)

    if isinstance(value, Collection):
        items = [_describe(item, nesting + 1, seen) for item in list(value)[:MAX_ITEMS]]
        body = _join(items, len(value))
        if isinstance(value, Set):
            return "{" + body + "}"
        if isinstance(value, tuple):
            return "(" + body + ")"
        return "[" + body + "]"

    return _describe_object(value, nesting, seen)


def _join(items: list[str], total: int) -> str:
    if total > len(items):
        items = items + [f"…{total - len(items)} more"]
    return ", ".join(items)


def _has_custom_repr(value: Any) -> bool:
    return type(value).__repr__ is not object.__repr__ and not isinstance(value, (list, tuple, set, frozenset))


def _describe_object(value: Any, nesting: int, seen: set) -> str:
    members = MemberGraph().all_members(value)
    if not members:
        return type(value).__name__
    parts = []
    for member in members:
        try:
            rendered = _describe(read_member(value, member), nesting + 1, seen)
        except Exception as e:  # a failing getter is rendered, not raised
            rendered = f"<{type(e).__name__}>"
        parts.append(f"{member.name} = {rendered}")
    return f"{type(value).__name__} {{ {', '.join(parts)} }}"


class DiscrepancyReporter:
    """Aggregates the discrepancies of one comparison into a single message."""

    def render(
        self,
        discrepancies: list[Discrepancy],
        reason: Optional[str] = None,
        configuration: Optional[str] = None
    ) -> str:
        """
        Render all discrepancies, one line each, in traversal order.

        Args:
            discrepancies: Discrepancies found by one comparison
            reason: "because" clause overriding the one recorded per discrepancy
            configuration: Description of the strategy used

        Returns:
            The aggregate failure message
        """
        lines = []
        for discrepancy in discrepancies:
            because = reason if reason is not None else discrepancy.reason
            lines.append(discrepancy.template.replace(REASON_PLACEHOLDER, format_reason(because)))

        message = "\n".join(lines)
        if configuration:
            message += "\n\nWith configuration:\n" + configuration
        return message

    @staticmethod
    def has_failures(discrepancies: list[Discrepancy]) -> bool:
        return len(discrepancies) > 0
