"""Cyclic reference detection for the equivalency engine."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator


class CycleGuard:
    """
    Tracks the identities of the subject objects on the active recursion path.

    An object is cyclic only when the same object (not an equal one) is
    entered again while it is still being compared. Entries are pushed on
    descent and popped on every exit path.
    """

    def __init__(self):
        self._active: dict[int, int] = {}

    def is_cyclic(self, obj: Any) -> bool:
        """Check if an object is already being compared further up the path."""
        return id(obj) in self._active

    @contextmanager
    def visit(self, obj: Any) -> Iterator[None]:
        """Keep an object on the active path for the duration of the block."""
        key = id(obj)
        self._active[key] = self._active.get(key, 0) + 1
        try:
            yield
        finally:
            remaining = self._active[key] - 1
            if remaining:
                self._active[key] = remaining
            else:
                del self._active[key]

    def __len__(self) -> int:
        return sum(self._active.values())
