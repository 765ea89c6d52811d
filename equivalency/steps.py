"""Comparison steps: each one knows how to compare one kind of value."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping, Set
from enum import Enum
from typing import TYPE_CHECKING, Any

from .conversion import compare_scalars, describe_string_difference, scalars_equal
from .exceptions import NoComparableMembersError
from .members import element_type, read_member
from .models import REASON_PLACEHOLDER, ComparisonNode, DiscrepancyKind, EnumEquivalencyMode, ValueKind
from .paths import index_path, key_path, member_path
from .reporter import describe
from .rules import AssertionContext, SelectionContext, apply_selection_rules, is_strictly_ordered

if TYPE_CHECKING:
    from .engine import ComparisonPass


R = REASON_PLACEHOLDER


class EquivalencyStep(ABC):
    """
    One step of the comparison pipeline.

    Steps are tried in order; the first one whose handle() returns True has
    compared the node and no later step sees it.
    """

    @abstractmethod
    def handle(self, node: ComparisonNode, comparison: "ComparisonPass") -> bool:
        pass

    def __str__(self):
        return f"Invoke step {type(self).__name__}"


def _mismatch(node: ComparisonNode, comparison: "ComparisonPass", kind: DiscrepancyKind = DiscrepancyKind.VALUE_MISMATCH):
    comparison.report(
        node,
        kind,
        f"Expected {node.description} to be {describe(node.expectation)}{R}, "
        f"but found {describe(node.subject)}.",
    )


def _type_mismatch(node: ComparisonNode, comparison: "ComparisonPass", expected_what: str):
    comparison.report(
        node,
        DiscrepancyKind.TYPE_MISMATCH,
        f"Expected {node.description} to be {expected_what}{R}, "
        f"but found {describe(node.subject)} of type {type(node.subject).__name__}.",
    )


class RunAssertionRulesStep(EquivalencyStep):
    """Applies the actions registered with using(...).when(...)."""

    def handle(self, node, comparison):
        if node.is_root or not comparison.strategy.assertion_rules:
            return False

        context = node.context()
        for rule in comparison.strategy.assertion_rules:
            if not rule.applies_to(context):
                continue
            comparison.trace(node.path, str(rule), "applied")
            failure = rule.execute(AssertionContext(
                subject=node.subject,
                expectation=node.expectation,
                path=node.path,
                reason=comparison.reason,
            ))
            comparison.count_checked()
            if failure is not None:
                comparison.report(node, DiscrepancyKind.VALUE_MISMATCH, failure)
            return True
        return False


class ReferenceEqualityStep(EquivalencyStep):
    def handle(self, node, comparison):
        if node.subject is node.expectation:
            comparison.count_checked()
            return True
        return False


class NullStep(EquivalencyStep):
    def handle(self, node, comparison):
        if node.subject is not None and node.expectation is not None:
            return False
        comparison.count_checked()
        _mismatch(node, comparison)
        return True


class EnumStep(EquivalencyStep):
    """Compares enum members according to the strategy's enum mode."""

    def handle(self, node, comparison):
        subject_is_enum = node.subject_kind is ValueKind.ENUM
        expectation_is_enum = node.expectation_kind is ValueKind.ENUM
        if not (subject_is_enum or expectation_is_enum):
            return False

        mode = comparison.strategy.enum_mode
        if mode is EnumEquivalencyMode.DEFAULT and not (subject_is_enum and expectation_is_enum):
            # enum against a plain value is a scalar comparison
            return False

        comparison.count_checked()
        if mode is EnumEquivalencyMode.BY_NAME:
            self._compare_by_name(node, comparison)
        else:
            self._compare_by_value(node, comparison)
        return True

    @staticmethod
    def _compare_by_value(node, comparison):
        subject = node.subject.value if isinstance(node.subject, Enum) else node.subject
        expectation = node.expectation.value if isinstance(node.expectation, Enum) else node.expectation
        is_match, _ = compare_scalars(subject, expectation)
        if not is_match:
            comparison.report(
                node,
                DiscrepancyKind.VALUE_MISMATCH,
                f"Expected {node.description} to be {_enum_text(node.expectation)}{R}, "
                f"but found {_enum_text(node.subject)}.",
            )

    @staticmethod
    def _compare_by_name(node, comparison):
        subject_name = _enum_name(node.subject)
        expectation_name = _enum_name(node.expectation)
        if subject_name is None or expectation_name is None:
            _type_mismatch(node, comparison, f"an enum member named {expectation_name or describe(node.expectation)}")
            return
        if subject_name != expectation_name:
            comparison.report(
                node,
                DiscrepancyKind.VALUE_MISMATCH,
                f"Expected {node.description} to be {describe(node.expectation)}{R}, "
                f"but found {describe(node.subject)}.",
            )


def _enum_name(value: Any):
    if isinstance(value, Enum):
        return value.name
    if isinstance(value, str):
        return value
    return None


def _enum_text(value: Any) -> str:
    if isinstance(value, Enum):
        return f"{describe(value)} {{value: {describe(value.value)}}}"
    return describe(value)


class StringStep(EquivalencyStep):
    def handle(self, node, comparison):
        if node.expectation_kind is not ValueKind.STRING:
            return False

        comparison.count_checked()
        if not node.subject_kind.is_scalar:
            _type_mismatch(node, comparison, f"a string {describe(node.expectation)}")
            return True

        subject = node.subject if isinstance(node.subject, str) else str(node.subject)
        expectation = node.expectation
        if subject == expectation:
            return True

        if len(subject) != len(expectation):
            comparison.report(
                node,
                DiscrepancyKind.VALUE_MISMATCH,
                f"Expected {node.description} to be {describe(expectation)} with a length of "
                f"{len(expectation)}{R}, but {describe(subject)} has a length of {len(subject)}.",
            )
        else:
            comparison.report(
                node,
                DiscrepancyKind.VALUE_MISMATCH,
                f"Expected {node.description} to be {describe(expectation)}{R}, "
                f"but {describe(subject)} {describe_string_difference(subject, expectation)}.",
            )
        return True


class ScalarStep(EquivalencyStep):
    """Compares primitives with ==, converting the subject when the types differ."""

    def handle(self, node, comparison):
        if not node.expectation_kind.is_scalar:
            return False

        comparison.count_checked()
        if not node.subject_kind.is_scalar:
            _type_mismatch(node, comparison, describe(node.expectation))
            return True

        is_match, compatible = compare_scalars(node.subject, node.expectation)
        if type(node.subject) is not type(node.expectation) and compatible:
            comparison.trace(node.path, "conversion", "converted", {
                "from": type(node.subject).__name__,
                "to": type(node.expectation).__name__,
            })

        if not compatible:
            comparison.report(
                node,
                DiscrepancyKind.TYPE_MISMATCH,
                f"Expected {node.description} to be {describe(node.expectation)}{R}, "
                f"but found {describe(node.subject)}, which cannot be converted to "
                f"{type(node.expectation).__name__}.",
            )
        elif not is_match:
            _mismatch(node, comparison)
        return True


class DictionaryStep(EquivalencyStep):
    """Compares mappings key by key."""

    def handle(self, node, comparison):
        if node.expectation_kind is not ValueKind.DICTIONARY:
            return False

        if node.subject_kind is not ValueKind.DICTIONARY:
            comparison.count_checked()
            _type_mismatch(node, comparison, f"a dictionary with {len(node.expectation)} item(s)")
            return True

        if not comparison.can_descend(node):
            return True

        with comparison.cycles.visit(node.subject):
            self._compare_entries(node, comparison)
        return True

    @staticmethod
    def _compare_entries(node, comparison):
        subject: Mapping = node.subject
        expectation: Mapping = node.expectation
        value_type = element_type(node.declared_type)

        if len(subject) != len(expectation):
            comparison.report(
                node,
                DiscrepancyKind.COLLECTION_LENGTH_MISMATCH,
                f"Expected {node.description} to be a dictionary with {len(expectation)} item(s){R}, "
                f"but it has {len(subject)} item(s).",
            )

        for key, expected_value in expectation.items():
            if comparison.aborted:
                return
            child_path = key_path(node.path, key)
            if key not in subject:
                comparison.report(
                    node,
                    DiscrepancyKind.MISSING_KEY,
                    f"Expected {node.description} to contain key {describe(key)}{R}, "
                    f"but it was not found.",
                    path=child_path,
                )
                continue
            comparison.compare_child(node, child_path, subject[key], expected_value, value_type)

        for key in subject:
            if comparison.aborted:
                return
            if key not in expectation:
                comparison.report(
                    node,
                    DiscrepancyKind.UNEXPECTED_KEY,
                    f"Expected {node.description} not to contain key {describe(key)}{R}, "
                    f"but it does.",
                    path=key_path(node.path, key),
                )


class CollectionStep(EquivalencyStep):
    """Compares collections item by item, in order or as a bag."""

    def handle(self, node, comparison):
        if node.expectation_kind is not ValueKind.COLLECTION:
            return False

        if node.subject_kind is not ValueKind.COLLECTION:
            comparison.count_checked()
            _type_mismatch(node, comparison, f"a collection with {len(node.expectation)} item(s)")
            return True

        if not comparison.can_descend(node):
            return True

        subject = list(node.subject)
        expectation = list(node.expectation)
        item_type = element_type(node.declared_type)

        with comparison.cycles.visit(node.subject):
            if len(subject) != len(expectation):
                difference = len(subject) - len(expectation)
                comparison.report(
                    node,
                    DiscrepancyKind.COLLECTION_LENGTH_MISMATCH,
                    f"Expected {node.description} to be a collection with {len(expectation)} item(s){R}, "
                    f"but {describe(node.subject)} contains {abs(difference)} item(s) "
                    f"{'more' if difference > 0 else 'less'} than {describe(node.expectation)}.",
                )

            if self._is_ordered(node, comparison):
                self._compare_in_order(node, comparison, subject, expectation, item_type)
            else:
                self._compare_in_any_order(node, comparison, subject, expectation, item_type)
        return True

    @staticmethod
    def _is_ordered(node, comparison) -> bool:
        if isinstance(node.subject, Set) or isinstance(node.expectation, Set):
            return False
        return is_strictly_ordered(comparison.strategy.ordering_rules, node.context())

    @staticmethod
    def _compare_in_order(node, comparison, subject, expectation, item_type):
        for i in range(min(len(subject), len(expectation))):
            if comparison.aborted:
                return
            comparison.compare_child(node, index_path(node.path, i), subject[i], expectation[i], item_type)

    @staticmethod
    def _compare_in_any_order(node, comparison, subject, expectation, item_type):
        subject_matched = [False] * len(subject)
        unmatched: list[int] = []

        # Try to match each expected item with any subject item
        for j, expected_item in enumerate(expectation):
            for i, subject_item in enumerate(subject):
                if subject_matched[i]:
                    continue
                if comparison.trial(index_path(node.path, j), subject_item, expected_item, item_type, node.depth + 1):
                    subject_matched[i] = True
                    comparison.count_checked()
                    break
            else:
                unmatched.append(j)

        remaining = [i for i, matched in enumerate(subject_matched) if not matched]
        comparison.trace(node.path, "ordering", "matched without strict ordering", {
            "matched": len(expectation) - len(unmatched),
            "unmatched": len(unmatched),
        })

        # Pair leftovers to report what differs between them
        for j in unmatched:
            if comparison.aborted:
                return
            child_path = index_path(node.path, j)
            if remaining:
                i = remaining.pop(0)
                comparison.compare_child(node, child_path, subject[i], expectation[j], item_type)
            else:
                comparison.report(
                    node,
                    DiscrepancyKind.VALUE_MISMATCH,
                    f"Expected {node.description} to contain an item equivalent to "
                    f"{describe(expectation[j])}{R}, but no such item was found.",
                    path=child_path,
                )


class StructuralStep(EquivalencyStep):
    """Compares complex objects member by member."""

    def handle(self, node, comparison):
        if node.expectation_kind is not ValueKind.COMPLEX:
            return False

        if node.subject_kind is not ValueKind.COMPLEX:
            comparison.count_checked()
            _type_mismatch(node, comparison, describe(node.expectation))
            return True

        if comparison.is_cyclic(node):
            return True

        if not node.is_root and not comparison.strategy.recursive:
            comparison.count_checked()
            if not scalars_equal(node.subject, node.expectation):
                _mismatch(node, comparison)
            return True

        if not comparison.can_descend(node):
            return True

        with comparison.cycles.visit(node.subject):
            self._compare_members(node, comparison)
        return True

    @staticmethod
    def _compare_members(node, comparison):
        strategy = comparison.strategy
        graph = comparison.members

        subject_candidates = graph.enumerate_members(
            node.subject, node.declared_type, strategy.use_runtime_types,
            strategy.include_fields, strategy.include_properties,
        )
        expectation_candidates = graph.enumerate_members(
            node.expectation, node.declared_type, strategy.use_runtime_types,
            strategy.include_fields, strategy.include_properties,
        )

        subject_context = SelectionContext(node.path, node.selected_path, type(node.subject))
        expectation_context = SelectionContext(node.path, node.selected_path, type(node.expectation))
        subject_selected = apply_selection_rules(strategy.selection_rules, subject_candidates, subject_context)
        expectation_selected = apply_selection_rules(
            strategy.selection_rules, expectation_candidates, expectation_context
        )

        if (
            (not subject_selected and not expectation_selected)
            or (subject_candidates and not subject_selected)
            or (expectation_candidates and not expectation_selected)
        ):
            raise NoComparableMembersError(node.path, type(node.subject), type(node.expectation))

        ignored = len(expectation_candidates) - len(expectation_selected)
        if ignored:
            comparison.count_ignored(ignored)
            for member in expectation_candidates:
                if member not in expectation_selected:
                    comparison.trace(member_path(node.path, member.name), "selection", "excluded")

        available = {m.name: m for m in expectation_selected}
        candidate_names = {m.name for m in expectation_candidates}
        pairs = []

        for subject_member in subject_selected:
            match = None
            for rule in strategy.matching_rules:
                match = rule.match(subject_member, available, expectation_context)
                if match is not None:
                    break

            if match is not None:
                del available[match.name]
                pairs.append((subject_member, match))
            elif strategy.reports_missing_members and subject_member.name not in candidate_names:
                comparison.report(
                    node,
                    DiscrepancyKind.MISSING_ON_EXPECTATION,
                    f"Subject has member {member_path(node.path, subject_member.name)} "
                    f"that the other object does not have{R}.",
                    path=member_path(node.path, subject_member.name),
                )
            else:
                comparison.count_ignored()

        for expectation_member in available.values():
            if strategy.reports_missing_members:
                comparison.report(
                    node,
                    DiscrepancyKind.MISSING_ON_SUBJECT,
                    f"Expectation has member {member_path(node.path, expectation_member.name)} "
                    f"that the other object does not have{R}.",
                    path=member_path(node.path, expectation_member.name),
                )
            else:
                comparison.count_ignored()

        for subject_member, expectation_member in pairs:
            if comparison.aborted:
                return
            if subject_member.name != expectation_member.name:
                comparison.trace(
                    member_path(node.path, expectation_member.name),
                    "matching",
                    "mapped",
                    {"subject": subject_member.name},
                )
            comparison.compare_child(
                node,
                member_path(node.path, expectation_member.name),
                read_member(node.subject, subject_member),
                read_member(node.expectation, expectation_member),
                expectation_member.value_type,
                expectation_member,
            )


def default_steps() -> list[EquivalencyStep]:
    """The built-in steps, in the order they are tried."""
    return [
        RunAssertionRulesStep(),
        ReferenceEqualityStep(),
        NullStep(),
        EnumStep(),
        StringStep(),
        ScalarStep(),
        DictionaryStep(),
        CollectionStep(),
        StructuralStep(),
    ]
