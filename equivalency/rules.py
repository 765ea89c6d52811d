"""Selection, matching, ordering and assertion rules."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Optional

from .models import MemberContext, MemberDescriptor, MemberKind
from .paths import PathPattern, member_path, path_relates_to


MemberPredicate = Callable[[MemberContext], bool]


@dataclass(frozen=True)
class SelectionContext:
    """Where in the graph a set of members is being selected."""
    path: str
    selected_path: str
    owner_type: type

    def member_context(self, member: MemberDescriptor) -> MemberContext:
        return MemberContext.for_member(member, member_path(self.selected_path, member.name))

    def concrete_path(self, member: MemberDescriptor) -> str:
        return member_path(self.path, member.name)


# ---------------------------------------------------------------------------
# Selection rules
# ---------------------------------------------------------------------------

class SelectionRule(ABC):
    """
    Decides which members take part in a comparison.

    Inclusive rules add members from the candidates; the others remove
    members from the selection. All inclusive rules run before the others, so
    an exclusion always wins over an inclusion of the same member.
    """

    includes_members = False

    @abstractmethod
    def select(
        self,
        selected: list[MemberDescriptor],
        candidates: list[MemberDescriptor],
        context: SelectionContext
    ) -> list[MemberDescriptor]:
        pass

    @staticmethod
    def _add(selected: list[MemberDescriptor], members) -> list[MemberDescriptor]:
        names = {m.name for m in selected}
        return selected + [m for m in members if m.name not in names]


class AllPublicPropertiesSelectionRule(SelectionRule):
    includes_members = True

    def select(self, selected, candidates, context):
        return self._add(selected, (m for m in candidates if m.kind is MemberKind.PROPERTY))

    def __str__(self):
        return "Include all non-private properties"


class AllPublicFieldsSelectionRule(SelectionRule):
    includes_members = True

    def select(self, selected, candidates, context):
        return self._add(selected, (m for m in candidates if m.kind is MemberKind.FIELD))

    def __str__(self):
        return "Include all non-private fields"


class IncludeMemberByPathSelectionRule(SelectionRule):
    includes_members = True

    def __init__(self, path: str):
        self.path = path

    def select(self, selected, candidates, context):
        return self._add(
            selected,
            (m for m in candidates
             if path_relates_to(self.path, member_path(context.selected_path, m.name)))
        )

    def __str__(self):
        return f"Include member root.{self.path}"


class IncludeMemberByPredicateSelectionRule(SelectionRule):
    includes_members = True

    def __init__(self, predicate: MemberPredicate, description: str = ""):
        self.predicate = predicate
        self.description = description or getattr(predicate, "__name__", repr(predicate))

    def select(self, selected, candidates, context):
        return self._add(
            selected,
            (m for m in candidates if self.predicate(context.member_context(m)))
        )

    def __str__(self):
        return f"Include member when {self.description}"


class ExcludeMemberByPathSelectionRule(SelectionRule):
    def __init__(self, path: str):
        self.path = path

    def select(self, selected, candidates, context):
        return [
            m for m in selected
            if member_path(context.selected_path, m.name) != self.path
        ]

    def __str__(self):
        return f"Exclude member root.{self.path}"


class ExcludeMemberByPredicateSelectionRule(SelectionRule):
    def __init__(self, predicate: MemberPredicate, description: str = ""):
        self.predicate = predicate
        self.description = description or getattr(predicate, "__name__", repr(predicate))

    def select(self, selected, candidates, context):
        return [m for m in selected if not self.predicate(context.member_context(m))]

    def __str__(self):
        return f"Exclude member when {self.description}"


class ExcludeMemberByPatternSelectionRule(SelectionRule):
    def __init__(self, pattern: str):
        self.pattern = PathPattern(pattern)

    def select(self, selected, candidates, context):
        return [m for m in selected if not self.pattern.matches(context.concrete_path(m))]

    def __str__(self):
        return f"Exclude members matching {self.pattern.pattern}"


def apply_selection_rules(
    rules: tuple,
    candidates: list[MemberDescriptor],
    context: SelectionContext
) -> list[MemberDescriptor]:
    """
    Run the selection rules over the candidate members.

    Returns:
        The selected members in candidate order
    """
    selected: list[MemberDescriptor] = []
    for rule in rules:
        if rule.includes_members:
            selected = rule.select(selected, candidates, context)
    for rule in rules:
        if not rule.includes_members:
            selected = rule.select(selected, candidates, context)

    order = {m.name: i for i, m in enumerate(candidates)}
    return sorted(selected, key=lambda m: order.get(m.name, len(order)))


# ---------------------------------------------------------------------------
# Matching rules
# ---------------------------------------------------------------------------

class MatchingRule(ABC):
    """Finds the expectation member that corresponds to a subject member."""

    requires_match = False

    @abstractmethod
    def match(
        self,
        subject_member: MemberDescriptor,
        expectation_members: dict[str, MemberDescriptor],
        context: SelectionContext
    ) -> Optional[MemberDescriptor]:
        pass


class MustMatchByNameRule(MatchingRule):
    requires_match = True

    def match(self, subject_member, expectation_members, context):
        return expectation_members.get(subject_member.name)

    def __str__(self):
        return "Match member by name (or throw)"


class TryMatchByNameRule(MatchingRule):
    def match(self, subject_member, expectation_members, context):
        return expectation_members.get(subject_member.name)

    def __str__(self):
        return "Match member by name"


class MapMemberByNameRule(MatchingRule):
    """Matches a subject member with a differently named expectation member."""

    def __init__(self, subject_name: str, expectation_name: str):
        self.subject_name = subject_name
        self.expectation_name = expectation_name

    def match(self, subject_member, expectation_members, context):
        if subject_member.name != self.subject_name:
            return None
        return expectation_members.get(self.expectation_name)

    def __str__(self):
        return f"Map member {self.subject_name} to {self.expectation_name}"


# ---------------------------------------------------------------------------
# Ordering rules
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class OrderingRule:
    """Decides whether the order of a collection's items matters."""
    strict: bool
    predicate: Optional[MemberPredicate] = None
    description: str = ""

    def applies_to(self, context: MemberContext) -> bool:
        return self.predicate is None or bool(self.predicate(context))

    def __str__(self):
        scope = f" when {self.description}" if self.predicate is not None else ""
        if self.strict:
            return f"Use strict ordering{scope}"
        return f"Ignore ordering{scope}"


def is_strictly_ordered(rules: tuple, context: MemberContext) -> bool:
    """The last applicable ordering rule decides; strict by default."""
    strict = True
    for rule in rules:
        if rule.applies_to(context):
            strict = rule.strict
    return strict


# ---------------------------------------------------------------------------
# Assertion rules
# ---------------------------------------------------------------------------

@dataclass
class AssertionContext:
    """What a custom assertion action gets to compare."""
    subject: Any
    expectation: Any
    path: str
    reason: Optional[str] = None


class AssertionRule:
    """
    Overrides how a member is compared.

    The action raises AssertionError (or returns False) when the subject does
    not satisfy the expectation.
    """

    def __init__(
        self,
        predicate: MemberPredicate,
        action: Callable[[AssertionContext], Any],
        description: str = ""
    ):
        self.predicate = predicate
        self.action = action
        self.description = description or getattr(predicate, "__name__", repr(predicate))

    def applies_to(self, context: MemberContext) -> bool:
        return bool(self.predicate(context))

    def execute(self, context: AssertionContext) -> Optional[str]:
        """
        Run the action.

        Returns:
            None when the assertion holds, otherwise the failure message
        """
        try:
            outcome = self.action(context)
        except AssertionError as e:
            return str(e) or f"Custom assertion on {context.path or 'subject'} failed"
        if outcome is False:
            return f"Custom assertion on {context.path or 'subject'} failed"
        return None

    def __str__(self):
        return f"Invoke action {getattr(self.action, '__name__', 'action')} when {self.description}"


def type_predicate(member_type: type) -> MemberPredicate:
    """Predicate matching members whose runtime type is (a subclass of) member_type."""
    def predicate(context: MemberContext) -> bool:
        return context.runtime_type is not None and issubclass(context.runtime_type, member_type)
    predicate.__name__ = f"type is {member_type.__name__}"
    return predicate
