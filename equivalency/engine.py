"""Main comparison engine for equivalency."""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Union

from .classifier import TypeClassifier
from .cycles import CycleGuard
from .exceptions import ConfigurationError, EquivalencyAssertionError
from .members import MemberGraph
from .models import (
    REASON_PLACEHOLDER,
    ComparisonNode,
    CyclicReferenceHandling,
    Discrepancy,
    DiscrepancyKind,
    EngineConfig,
    EquivalencyReport,
    ExecutionInfo,
    MemberDescriptor,
    Summary,
    TraceEntry,
)
from .options import EquivalencyOptions, EquivalencyStrategy, build_strategy
from .reporter import DiscrepancyReporter, describe
from .steps import default_steps


logger = logging.getLogger(__name__)

Configuration = Union[None, EquivalencyStrategy, EquivalencyOptions, Callable[[EquivalencyOptions], EquivalencyOptions]]


class ComparisonPass:
    """
    State of one top-level comparison.

    Owns the visited stack, the member cache and the discrepancies found, so
    that concurrent comparisons never share mutable state.
    """

    def __init__(
        self,
        strategy: EquivalencyStrategy,
        reason: Optional[str] = None,
        fail_fast: bool = False,
        trace_rules: bool = False,
        cycles: Optional[CycleGuard] = None,
        members: Optional[MemberGraph] = None
    ):
        self.strategy = strategy
        self.reason = reason
        self.fail_fast = fail_fast
        self.trace_rules = trace_rules
        self.cycles = cycles or CycleGuard()
        self.members = members or MemberGraph()
        self.classifier = TypeClassifier.for_strategy(strategy)
        self.steps = list(strategy.user_steps) + default_steps()

        self.discrepancies: list[Discrepancy] = []
        self.traces: list[TraceEntry] = []
        self.members_checked = 0
        self.members_ignored = 0
        self._aborted = False

    @property
    def aborted(self) -> bool:
        return self._aborted

    def node(
        self,
        path: str,
        subject: Any,
        expectation: Any,
        depth: int = 0,
        declared_type: Any = None,
        member: Optional[MemberDescriptor] = None
    ) -> ComparisonNode:
        return ComparisonNode(
            path=path,
            subject=subject,
            expectation=expectation,
            subject_kind=self.classifier.classify(subject),
            expectation_kind=self.classifier.classify(expectation),
            depth=depth,
            declared_type=declared_type,
            member=member,
        )

    def compare_node(self, node: ComparisonNode) -> bool:
        """
        Run the step pipeline over a node.

        Returns:
            True if no discrepancy was found below the node
        """
        if self._aborted:
            return False

        found = len(self.discrepancies)
        for step in self.steps:
            if step.handle(node, self):
                break
        return len(self.discrepancies) == found

    def compare_child(
        self,
        parent: ComparisonNode,
        path: str,
        subject: Any,
        expectation: Any,
        declared_type: Any = None,
        member: Optional[MemberDescriptor] = None
    ) -> bool:
        """Compare a member, item or entry of a node being compared."""
        if self.strategy.use_runtime_types:
            declared_type = None
        child = self.node(path, subject, expectation, parent.depth + 1, declared_type, member)
        return self.compare_node(child)

    def trial(
        self,
        path: str,
        subject: Any,
        expectation: Any,
        declared_type: Any = None,
        depth: int = 0
    ) -> bool:
        """Check if two values are equivalent without recording anything."""
        # Create a temporary pass to avoid polluting our discrepancies
        temp_pass = ComparisonPass(
            self.strategy,
            self.reason,
            fail_fast=True,
            trace_rules=False,
            cycles=self.cycles,
            members=self.members,
        )
        if self.strategy.use_runtime_types:
            declared_type = None
        return temp_pass.compare_node(temp_pass.node(path, subject, expectation, depth, declared_type))

    def is_cyclic(self, node: ComparisonNode) -> bool:
        """
        Check if the subject of a node is already being compared further up.

        Reports the cyclic reference unless the strategy ignores them.
        """
        if not self.cycles.is_cyclic(node.subject):
            return False

        if self.strategy.cyclic_reference_handling is CyclicReferenceHandling.IGNORE:
            logger.debug("Ignoring cyclic reference at %s", node.path or "<root>")
            self.count_ignored()
            self.trace(node.path, "cyclic-references", "ignored")
        else:
            logger.debug("Cyclic reference at %s", node.path or "<root>")
            self.report(
                node,
                DiscrepancyKind.CYCLIC_REFERENCE,
                f"Expected {node.description} to be {describe(node.expectation)}{REASON_PLACEHOLDER}, "
                f"but it contains a cyclic reference.",
            )
        return True

    def can_descend(self, node: ComparisonNode) -> bool:
        """Check if the members or items of a node may be compared."""
        if self.is_cyclic(node):
            return False

        max_depth = self.strategy.max_depth
        if max_depth is not None and node.depth > max_depth:
            logger.debug("Maximum depth %d reached at %s", max_depth, node.path)
            self.report(
                node,
                DiscrepancyKind.DEPTH_LIMIT_REACHED,
                f"The maximum recursion depth of {max_depth} was reached at {node.description}"
                f"{REASON_PLACEHOLDER}. Use with_max_depth() or allowing_infinite_recursion() "
                f"to compare deeper object graphs.",
            )
            return False
        return True

    def count_checked(self):
        self.members_checked += 1

    def count_ignored(self, count: int = 1):
        self.members_ignored += count

    def report(
        self,
        node: ComparisonNode,
        kind: DiscrepancyKind,
        template: str,
        path: Optional[str] = None
    ):
        """Add a discrepancy."""
        self.discrepancies.append(Discrepancy(
            path=node.path if path is None else path,
            kind=kind,
            subject_description=describe(node.subject),
            expectation_description=describe(node.expectation),
            template=template,
            reason=self.reason,
        ))

        if self.fail_fast:
            self._aborted = True

    def trace(
        self,
        path: str,
        rule: str,
        action: str,
        details: dict = None
    ):
        """Add a trace entry if tracing is enabled."""
        if self.trace_rules:
            self.traces.append(TraceEntry(
                path=path,
                rule=rule,
                action=action,
                details=details
            ))


class EquivalencyComparer:
    """
    Compares object graphs for structural equivalence.

    One comparer can be reused for any number of comparisons, from any
    number of threads.
    """

    VERSION = "1.0.0"

    def __init__(self, config: Optional[EngineConfig] = None):
        """
        Initialize the comparer.

        Args:
            config: Engine configuration (uses defaults if not provided)
        """
        self.config = config or EngineConfig()
        self.reporter = DiscrepancyReporter()
        if self.config.log_level is not None:
            logging.getLogger(__package__).setLevel(self.config.log_level.value)

    def strategy_for(self, config: Configuration = None) -> EquivalencyStrategy:
        return build_strategy(config, self.config.default_max_depth)

    def compare(
        self,
        subject: Any,
        expectation: Any,
        config: Configuration = None,
        *,
        declared_type: Any = None,
        reason: Optional[str] = None
    ) -> EquivalencyReport:
        """
        Compare a subject with an expectation.

        Args:
            subject: The object under test
            expectation: The object it should be equivalent to
            config: Strategy, options builder or callback configuring the options
            declared_type: Type the subject is declared as; drives member discovery
            reason: Optional "because" clause for the messages

        Returns:
            EquivalencyReport

        Raises:
            ConfigurationError: If the options are invalid or the objects have
                no members to compare
        """
        start_time = time.time()
        strategy = self.strategy_for(config)

        logger.debug(
            "Comparing %s with %s",
            type(subject).__name__,
            type(expectation).__name__,
        )

        comparison = ComparisonPass(
            strategy,
            reason=reason,
            fail_fast=self.config.fail_fast,
            trace_rules=self.config.trace_rule_application,
        )
        root = comparison.node("", subject, expectation, 0, declared_type)
        comparison.compare_node(root)

        duration_ms = int((time.time() - start_time) * 1000)
        logger.debug(
            "Comparison finished with %d discrepancies in %d ms",
            len(comparison.discrepancies),
            duration_ms,
        )

        return EquivalencyReport(
            is_match=not self.reporter.has_failures(comparison.discrepancies),
            execution=ExecutionInfo(
                duration_ms=duration_ms,
                timestamp=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
                engine_version=self.VERSION
            ),
            summary=Summary(
                members_checked=comparison.members_checked,
                discrepancies_found=len(comparison.discrepancies),
                members_ignored=comparison.members_ignored
            ),
            discrepancies=comparison.discrepancies,
            trace=comparison.traces if self.config.trace_rule_application else [],
            configuration=str(strategy),
            reason=reason,
        )

    def assert_equivalent(
        self,
        subject: Any,
        expectation: Any,
        config: Configuration = None,
        because: str = "",
        *because_args,
        declared_type: Any = None
    ) -> EquivalencyReport:
        """
        Assert that a subject is equivalent to an expectation.

        Raises:
            EquivalencyAssertionError: With every discrepancy in one message
        """
        reason = _format_because(because, because_args)
        report = self.compare(subject, expectation, config, declared_type=declared_type, reason=reason)
        if not report.is_match:
            raise EquivalencyAssertionError(
                self.reporter.render(report.discrepancies, configuration=report.configuration),
                report,
            )
        return report

    def assert_all_equivalent(
        self,
        subjects: Iterable,
        expectation: Any,
        config: Configuration = None,
        because: str = "",
        *because_args,
        declared_type: Any = None
    ) -> EquivalencyReport:
        """Assert that every item of a collection is equivalent to the same expectation."""
        if subjects is None or isinstance(subjects, (str, bytes)) or not isinstance(subjects, Iterable):
            raise ConfigurationError(
                "Expected a collection of subjects",
                {"type": type(subjects).__name__}
            )
        items = list(subjects)
        return self.assert_equivalent(
            items,
            [expectation] * len(items),
            config,
            because,
            *because_args,
            declared_type=list[declared_type] if declared_type is not None else None,
        )


def _format_because(because: str, because_args: tuple) -> Optional[str]:
    if not because:
        return None
    if because_args:
        return because.format(*because_args)
    return because


_default_comparer: Optional[EquivalencyComparer] = None


def _comparer() -> EquivalencyComparer:
    global _default_comparer
    if _default_comparer is None:
        _default_comparer = EquivalencyComparer()
    return _default_comparer


def compare(
    subject: Any,
    expectation: Any,
    config: Configuration = None,
    *,
    declared_type: Any = None
) -> EquivalencyReport:
    """
    Convenience function to compare two object graphs.

    Args:
        subject: The object under test
        expectation: The object it should be equivalent to
        config: Strategy, options builder or callback configuring the options
        declared_type: Type the subject is declared as

    Returns:
        EquivalencyReport
    """
    return _comparer().compare(subject, expectation, config, declared_type=declared_type)


def assert_equivalent(
    subject: Any,
    expectation: Any,
    config: Configuration = None,
    because: str = "",
    *because_args,
    declared_type: Any = None
) -> EquivalencyReport:
    """Convenience function raising EquivalencyAssertionError on any discrepancy."""
    return _comparer().assert_equivalent(
        subject, expectation, config, because, *because_args, declared_type=declared_type
    )


def assert_all_equivalent(
    subjects: Iterable,
    expectation: Any,
    config: Configuration = None,
    because: str = "",
    *because_args,
    declared_type: Any = None
) -> EquivalencyReport:
    """Convenience function asserting every subject is equivalent to one expectation."""
    return _comparer().assert_all_equivalent(
        subjects, expectation, config, because, *because_args, declared_type=declared_type
    )
