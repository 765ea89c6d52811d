"""
Equivalency - Structural equivalence engine for Python object graphs

Decides whether two object graphs are equivalent member by member rather than
by == or identity, with configurable member selection, matching, enum and
cyclic reference handling, and reports every discrepancy in one message.
"""

from .engine import (
    ComparisonPass,
    EquivalencyComparer,
    assert_all_equivalent,
    assert_equivalent,
    compare,
)
from .exceptions import (
    ConfigurationError,
    EquivalencyAssertionError,
    EquivalencyError,
    MemberSelectorError,
    NoComparableMembersError,
)
from .models import (
    CyclicReferenceHandling,
    Discrepancy,
    DiscrepancyKind,
    EngineConfig,
    EnumEquivalencyMode,
    EquivalencyReport,
    LogLevel,
    MemberContext,
    MemberKind,
    ValueKind,
)
from .options import (
    EquivalencyOptions,
    EquivalencyStrategy,
)
from .classifier import TypeClassifier, classify
from .members import MemberGraph
from .reporter import DiscrepancyReporter, describe
from .rules import (
    AssertionContext,
    MatchingRule,
    SelectionRule,
)
from .steps import EquivalencyStep

__version__ = "1.0.0"
__all__ = [
    # Engine
    "EquivalencyComparer",
    "ComparisonPass",
    "EngineConfig",
    "compare",
    "assert_equivalent",
    "assert_all_equivalent",
    # Options
    "EquivalencyOptions",
    "EquivalencyStrategy",
    "EquivalencyStep",
    "SelectionRule",
    "MatchingRule",
    "AssertionContext",
    "MemberContext",
    "EnumEquivalencyMode",
    "CyclicReferenceHandling",
    # Inspection
    "TypeClassifier",
    "classify",
    "ValueKind",
    "MemberGraph",
    "MemberKind",
    # Reports
    "EquivalencyReport",
    "Discrepancy",
    "DiscrepancyKind",
    "DiscrepancyReporter",
    "describe",
    "LogLevel",
    # Errors
    "EquivalencyError",
    "ConfigurationError",
    "MemberSelectorError",
    "NoComparableMembersError",
    "EquivalencyAssertionError",
]
