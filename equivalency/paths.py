"""Member path utilities for the equivalency engine."""

from __future__ import annotations

import re
from typing import Any, Callable, Union

from jsonpath_ng import parse as jsonpath_parse
from jsonpath_ng.exceptions import JsonPathLexerError, JsonPathParserError

from .exceptions import ConfigurationError, MemberSelectorError


_IDENTIFIER = re.compile(r'^[a-zA-Z_][a-zA-Z0-9_]*$')
_INDEX = re.compile(r"\[(?:'[^']*'|\"[^\"]*\"|[^\]])*\]")


def member_path(parent_path: str, name: str) -> str:
    """Build the path of a member below its owner."""
    if not parent_path:
        return name
    return f"{parent_path}.{name}"


def index_path(parent_path: str, index: int) -> str:
    """Build the path of a collection item."""
    return f"{parent_path}[{index}]"


def key_path(parent_path: str, key: Any) -> str:
    """Build the path of a dictionary entry."""
    if isinstance(key, str) and _IDENTIFIER.match(key):
        return f"{parent_path}[{key}]"
    return f"{parent_path}[{key!r}]"


def strip_indices(path: str) -> str:
    """
    Remove collection indices and dictionary keys from a path.

    Selection rules are written against members, not against particular
    items: 'Customers[1].Name' is selected by 'Customers.Name'.
    """
    stripped = _INDEX.sub("", path)
    stripped = re.sub(r'\.{2,}', '.', stripped)
    return stripped.strip(".")


def path_relates_to(selected_path: str, candidate: str) -> bool:
    """
    Check whether a member path is the selected path, one of its ancestors or
    one of its descendants.

    Ancestors must stay selected, otherwise the traversal never reaches the
    selected member. Descendants of a selected member come along with it.
    """
    if candidate == selected_path:
        return True
    if selected_path.startswith(candidate + "."):
        return True
    return candidate.startswith(selected_path + ".")


def _wildcards_to_regex(pattern: str) -> str:
    """Translate [*] and * in a path pattern into a regular expression."""
    regex_pattern = re.escape(pattern)
    regex_pattern = regex_pattern.replace(r'\[\*\]', r'\[[^\]]+\]')
    return regex_pattern.replace(r'\*', r'[^.\[]+')


class PathPattern:
    """
    A JSONPath-like pattern matched against concrete member paths.

    Supports:
    - Exact match: $.level.text
    - Recursive descent: $..timestamp
    - Wildcard: $.items[*].name
    """

    # Cache for validated expressions
    _cache: dict = {}

    def __init__(self, pattern: str):
        if not pattern or not isinstance(pattern, str):
            raise ConfigurationError("A path pattern must be a non-empty string", {"pattern": pattern})
        if not pattern.startswith("$"):
            pattern = "$." + pattern
        self.pattern = pattern
        self._validate(pattern)

    @classmethod
    def _validate(cls, pattern: str):
        """Validate and cache a JSONPath expression."""
        if pattern not in cls._cache:
            try:
                cls._cache[pattern] = jsonpath_parse(pattern)
            except (JsonPathLexerError, JsonPathParserError) as e:
                raise ConfigurationError(
                    f"Invalid path pattern '{pattern}': {e}",
                    {"pattern": pattern}
                ) from e
        return cls._cache[pattern]

    def matches(self, path: str) -> bool:
        """Check if a concrete member path matches this pattern."""
        concrete_path = "$." + path if path else "$"
        pattern = self.pattern

        # Handle recursive descent patterns
        if '..' in pattern:
            head, *tails = pattern.split('..')
            regex_pattern = _wildcards_to_regex(head)
            for tail in tails:
                regex_pattern += r'(?:[.\[].*)?\.' + _wildcards_to_regex(tail)
            return bool(re.match(rf'^{regex_pattern}(\[.*\])?$', concrete_path))

        # Handle wildcards
        if '*' in pattern:
            return bool(re.match(f'^{_wildcards_to_regex(pattern)}$', concrete_path))

        return concrete_path == pattern

    def __eq__(self, other):
        return isinstance(other, PathPattern) and other.pattern == self.pattern

    def __hash__(self):
        return hash(self.pattern)

    def __repr__(self):
        return f"PathPattern({self.pattern!r})"


class _PathRecorder:
    """Records the attribute chain a selector lambda walks through."""

    __slots__ = ("_segments",)

    def __init__(self, segments: tuple = ()):
        object.__setattr__(self, "_segments", segments)

    def __getattr__(self, name: str):
        if name.startswith("__"):
            raise AttributeError(name)
        return _PathRecorder(self._segments + (name,))

    def __getitem__(self, index):
        # Items are not part of a selected member path.
        return self

    def __setattr__(self, name, value):
        raise MemberSelectorError(f"A member selector cannot assign {name}", name)

    def __call__(self, *args, **kwargs):
        path = ".".join(self._segments)
        raise MemberSelectorError(
            f"Expected a member expression, but found a call to {path}()",
            path,
        )

    @property
    def recorded_path(self) -> str:
        return ".".join(self._segments)


Selector = Union[str, Callable[[Any], Any]]


def resolve_selector(selector: Selector) -> str:
    """
    Turn a member selector into a member path.

    Accepts a dotted path ('level.text', '$.level.text') or a lambda that walks
    the members of its argument (lambda o: o.level.text).
    """
    if selector is None:
        raise MemberSelectorError("Expected a member expression, but found None.", selector)

    if isinstance(selector, str):
        path = selector.strip()
        if path.startswith("$"):
            path = path[1:].lstrip(".")
        path = strip_indices(path)
        if not path or not all(_IDENTIFIER.match(part) for part in path.split(".")):
            raise MemberSelectorError(
                f"Expected a member path, but found {selector!r}.", selector
            )
        return path

    if not callable(selector):
        raise MemberSelectorError(
            f"Expected a member expression, but found {selector!r}.", selector
        )

    try:
        result = selector(_PathRecorder())
    except TypeError as e:
        raise MemberSelectorError(
            f"Expected a member expression, but the selector failed: {e}", selector
        ) from e

    if not isinstance(result, _PathRecorder) or not result.recorded_path:
        raise MemberSelectorError(
            f"Expected a member expression, but the selector returned {result!r}.",
            selector,
        )
    return result.recorded_path
