"""Equivalency options: the fluent builder and the frozen strategy it builds."""

from __future__ import annotations

import importlib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional, Union

import yaml

from .exceptions import ConfigurationError
from .models import CyclicReferenceHandling, EnumEquivalencyMode
from .paths import Selector, resolve_selector
from .rules import (
    AllPublicFieldsSelectionRule,
    AllPublicPropertiesSelectionRule,
    AssertionContext,
    AssertionRule,
    ExcludeMemberByPathSelectionRule,
    ExcludeMemberByPatternSelectionRule,
    ExcludeMemberByPredicateSelectionRule,
    IncludeMemberByPathSelectionRule,
    IncludeMemberByPredicateSelectionRule,
    MapMemberByNameRule,
    MatchingRule,
    MemberPredicate,
    MustMatchByNameRule,
    OrderingRule,
    SelectionRule,
    TryMatchByNameRule,
    type_predicate,
)


DEFAULT_MAX_DEPTH = 10


@dataclass(frozen=True)
class EquivalencyStrategy:
    """
    Immutable configuration of one comparison.

    Built by EquivalencyOptions and never changed afterwards, so a single
    instance can be shared by comparisons running on different threads.
    """
    include_fields: bool = True
    include_properties: bool = True
    use_runtime_types: bool = False
    selection_rules: tuple = ()
    matching_rules: tuple = (MustMatchByNameRule(),)
    ordering_rules: tuple = ()
    assertion_rules: tuple = ()
    user_steps: tuple = ()
    enum_mode: EnumEquivalencyMode = EnumEquivalencyMode.DEFAULT
    value_types: tuple = ()
    member_types: tuple = ()
    cyclic_reference_handling: CyclicReferenceHandling = CyclicReferenceHandling.THROW
    max_depth: Optional[int] = DEFAULT_MAX_DEPTH
    recursive: bool = True

    @property
    def reports_missing_members(self) -> bool:
        return any(rule.requires_match for rule in self.matching_rules)

    @property
    def ignores_cyclic_references(self) -> bool:
        return self.cyclic_reference_handling is CyclicReferenceHandling.IGNORE

    def __str__(self):
        lines = [f"- Use {'runtime' if self.use_runtime_types else 'declared'} types and members"]
        lines += [f"- {rule}" for rule in self.selection_rules]
        lines += [f"- {rule}" for rule in self.matching_rules]
        lines += [f"- {rule}" for rule in self.ordering_rules]
        lines += [f"- {rule}" for rule in self.assertion_rules]
        lines += [f"- {step}" for step in self.user_steps]
        if self.enum_mode is not EnumEquivalencyMode.DEFAULT:
            lines.append(f"- Compare enums {self.enum_mode.value.replace('_', ' ')}")
        for value_type in self.value_types:
            lines.append(f"- Compare {value_type.__name__} by value")
        for member_type in self.member_types:
            lines.append(f"- Compare {member_type.__name__} by its members")
        if self.ignores_cyclic_references:
            lines.append("- Ignore cyclic references")
        if not self.recursive:
            lines.append("- Compare nested objects by value")
        if self.max_depth is None:
            lines.append("- Allow infinite recursion")
        else:
            lines.append(f"- Limit recursion to depth {self.max_depth}")
        return "\n".join(lines)


class Restriction:
    """Scopes a custom assertion action to particular members."""

    def __init__(self, options: "EquivalencyOptions", action: Callable[[AssertionContext], Any]):
        self.options = options
        self.action = action

    def when(self, predicate: MemberPredicate, description: str = "") -> "EquivalencyOptions":
        """Apply the action to the members matching a predicate."""
        if predicate is None:
            raise ConfigurationError("A predicate is required to restrict an assertion rule")
        return self.options.using_assertion_rule(AssertionRule(predicate, self.action, description))

    def when_type_is(self, member_type: type) -> "EquivalencyOptions":
        """Apply the action to (nested) objects of the given type."""
        return self.when(type_predicate(member_type))


class EquivalencyOptions:
    """
    Fluent builder for an EquivalencyStrategy.

    Usage:
        options = (EquivalencyOptions()
                   .excluding(lambda o: o.level.text)
                   .ignoring_cyclic_references())
        strategy = options.build()
    """

    def __init__(self):
        self._include_fields = True
        self._include_properties = True
        self._use_runtime_types = False
        self._selection_rules: list[SelectionRule] = []
        self._add_standard_rules = True
        self._matching_rules: list[MatchingRule] = [MustMatchByNameRule()]
        self._ordering_rules: list[OrderingRule] = []
        self._assertion_rules: list[AssertionRule] = []
        self._user_steps: list = []
        self._enum_mode = EnumEquivalencyMode.DEFAULT
        self._value_types: list[type] = []
        self._member_types: list[type] = []
        self._cyclic_reference_handling = CyclicReferenceHandling.THROW
        self._max_depth: Optional[int] = DEFAULT_MAX_DEPTH
        self._max_depth_configured = False
        self._recursive = True

    # -- member selection -------------------------------------------------

    def including(self, selector: Selector) -> "EquivalencyOptions":
        """Compare only the selected members (and whatever else is included)."""
        return self.using_selection_rule(IncludeMemberByPathSelectionRule(resolve_selector(selector)))

    def including_where(self, predicate: MemberPredicate, description: str = "") -> "EquivalencyOptions":
        if predicate is None:
            raise ConfigurationError("A predicate is required to include members")
        return self.using_selection_rule(IncludeMemberByPredicateSelectionRule(predicate, description))

    def excluding(self, selector: Selector) -> "EquivalencyOptions":
        """Leave a (nested) member out of the comparison."""
        return self.using_selection_rule(ExcludeMemberByPathSelectionRule(resolve_selector(selector)))

    def excluding_where(self, predicate: MemberPredicate, description: str = "") -> "EquivalencyOptions":
        if predicate is None:
            raise ConfigurationError("A predicate is required to exclude members")
        return self.using_selection_rule(ExcludeMemberByPredicateSelectionRule(predicate, description))

    def excluding_pattern(self, pattern: str) -> "EquivalencyOptions":
        """Leave out every member whose path matches a pattern such as '$..timestamp'."""
        return self.using_selection_rule(ExcludeMemberByPatternSelectionRule(pattern))

    def including_fields(self) -> "EquivalencyOptions":
        self._include_fields = True
        return self

    def excluding_fields(self) -> "EquivalencyOptions":
        self._include_fields = False
        return self

    def including_properties(self) -> "EquivalencyOptions":
        self._include_properties = True
        return self

    def excluding_properties(self) -> "EquivalencyOptions":
        self._include_properties = False
        return self

    def including_all_declared_properties(self) -> "EquivalencyOptions":
        """Only properties, as far as the declared type defines them. Clears selection rules."""
        self.respecting_declared_types()
        return self._reconfigure_properties_only()

    def including_all_runtime_properties(self) -> "EquivalencyOptions":
        """Only properties, based on the runtime type. Clears selection rules."""
        self.respecting_runtime_types()
        return self._reconfigure_properties_only()

    def _reconfigure_properties_only(self) -> "EquivalencyOptions":
        self._include_fields = False
        self._include_properties = True
        self._selection_rules.clear()
        self._add_standard_rules = True
        return self

    def respecting_runtime_types(self) -> "EquivalencyOptions":
        self._use_runtime_types = True
        return self

    def respecting_declared_types(self) -> "EquivalencyOptions":
        self._use_runtime_types = False
        return self

    def using_selection_rule(self, rule: SelectionRule) -> "EquivalencyOptions":
        """Add a selection rule; it is evaluated after all existing rules."""
        self._selection_rules.append(rule)
        return self

    def without_selection_rules(self) -> "EquivalencyOptions":
        """Clear all selection rules, including the default ones."""
        self._selection_rules.clear()
        self._add_standard_rules = False
        return self

    # -- member matching --------------------------------------------------

    def excluding_missing_members(self) -> "EquivalencyOptions":
        """Skip members that only one of the objects has."""
        self._matching_rules = [TryMatchByNameRule()]
        return self

    def throwing_on_missing_members(self) -> "EquivalencyOptions":
        self._matching_rules = [MustMatchByNameRule()]
        return self

    def with_mapping(self, subject_name: str, expectation_name: str) -> "EquivalencyOptions":
        """Compare a subject member with a differently named expectation member."""
        if not subject_name or not expectation_name:
            raise ConfigurationError("A mapping needs both a subject and an expectation member name")
        return self.using_matching_rule(MapMemberByNameRule(subject_name, expectation_name))

    def using_matching_rule(self, rule: MatchingRule) -> "EquivalencyOptions":
        """Add a matching rule; it precedes all existing rules."""
        self._matching_rules.insert(0, rule)
        return self

    def without_matching_rules(self) -> "EquivalencyOptions":
        self._matching_rules.clear()
        return self

    # -- collections ------------------------------------------------------

    def with_strict_ordering(
        self,
        predicate: Optional[MemberPredicate] = None,
        description: str = ""
    ) -> "EquivalencyOptions":
        self._ordering_rules.append(OrderingRule(True, predicate, description))
        return self

    def without_strict_ordering(
        self,
        predicate: Optional[MemberPredicate] = None,
        description: str = ""
    ) -> "EquivalencyOptions":
        """Match collection items regardless of their position."""
        self._ordering_rules.append(OrderingRule(False, predicate, description))
        return self

    # -- value semantics --------------------------------------------------

    def comparing_enums_by_name(self) -> "EquivalencyOptions":
        self._enum_mode = EnumEquivalencyMode.BY_NAME
        return self

    def comparing_enums_by_value(self) -> "EquivalencyOptions":
        self._enum_mode = EnumEquivalencyMode.BY_VALUE
        return self

    def comparing_by_value(self, *types_: type) -> "EquivalencyOptions":
        """Compare instances of these types with == instead of member by member."""
        for value_type in types_:
            self._check_type(value_type)
            if value_type in self._member_types:
                self._member_types.remove(value_type)
            if value_type not in self._value_types:
                self._value_types.append(value_type)
        return self

    def comparing_by_members(self, *types_: type) -> "EquivalencyOptions":
        """Compare instances of these types member by member."""
        for member_type in types_:
            self._check_type(member_type)
            if member_type in self._value_types:
                self._value_types.remove(member_type)
            if member_type not in self._member_types:
                self._member_types.append(member_type)
        return self

    @staticmethod
    def _check_type(value_type: Any):
        if not isinstance(value_type, type):
            raise ConfigurationError(f"Expected a type, but found {value_type!r}")

    def using(self, action: Callable[[AssertionContext], Any]) -> Restriction:
        """Override how the members selected by .when()/.when_type_is() are compared."""
        if action is None or not callable(action):
            raise ConfigurationError("An assertion action must be callable")
        return Restriction(self, action)

    def using_assertion_rule(self, rule: AssertionRule) -> "EquivalencyOptions":
        """Add an assertion rule; it precedes all existing rules."""
        self._assertion_rules.insert(0, rule)
        return self

    def using_step(self, step) -> "EquivalencyOptions":
        """Add a custom equivalency step; user steps run before the built-in ones."""
        self._user_steps.append(step)
        return self

    # -- graph traversal --------------------------------------------------

    def ignoring_cyclic_references(self) -> "EquivalencyOptions":
        self._cyclic_reference_handling = CyclicReferenceHandling.IGNORE
        return self

    def throwing_on_cyclic_references(self) -> "EquivalencyOptions":
        self._cyclic_reference_handling = CyclicReferenceHandling.THROW
        return self

    def with_max_depth(self, max_depth: int) -> "EquivalencyOptions":
        if not isinstance(max_depth, int) or isinstance(max_depth, bool) or max_depth < 1:
            raise ConfigurationError(
                "The maximum recursion depth must be a positive integer",
                {"max_depth": max_depth}
            )
        self._max_depth = max_depth
        self._max_depth_configured = True
        return self

    def allowing_infinite_recursion(self) -> "EquivalencyOptions":
        """Disable the recursion depth limit."""
        self._max_depth = None
        self._max_depth_configured = True
        return self

    def including_nested_objects(self) -> "EquivalencyOptions":
        self._recursive = True
        return self

    def excluding_nested_objects(self) -> "EquivalencyOptions":
        """
        Compare nested objects with == instead of recursing into their members.

        Collections and dictionaries are still compared item by item, so the
        objects inside them are compared with == as well.
        """
        self._recursive = False
        return self

    # -- building ---------------------------------------------------------

    def build(self, default_max_depth: Optional[int] = DEFAULT_MAX_DEPTH) -> EquivalencyStrategy:
        """
        Freeze the options into a strategy.

        Args:
            default_max_depth: Depth limit used when none was configured

        Returns:
            EquivalencyStrategy
        """
        selection_rules = list(self._selection_rules)
        has_inclusive_rule = any(rule.includes_members for rule in selection_rules)
        if self._add_standard_rules and not has_inclusive_rule:
            standard: list[SelectionRule] = []
            if self._include_properties:
                standard.append(AllPublicPropertiesSelectionRule())
            if self._include_fields:
                standard.append(AllPublicFieldsSelectionRule())
            selection_rules = standard + selection_rules

        return EquivalencyStrategy(
            include_fields=self._include_fields,
            include_properties=self._include_properties,
            use_runtime_types=self._use_runtime_types,
            selection_rules=tuple(selection_rules),
            matching_rules=tuple(self._matching_rules),
            ordering_rules=tuple(self._ordering_rules),
            assertion_rules=tuple(self._assertion_rules),
            user_steps=tuple(self._user_steps),
            enum_mode=self._enum_mode,
            value_types=tuple(self._value_types),
            member_types=tuple(self._member_types),
            cyclic_reference_handling=self._cyclic_reference_handling,
            max_depth=self._max_depth if self._max_depth_configured else default_max_depth,
            recursive=self._recursive,
        )

    # -- profiles ---------------------------------------------------------

    PROFILE_KEYS = {
        "include_fields", "include_properties", "runtime_types", "including",
        "excluding", "excluding_patterns", "excluding_missing_members",
        "enum_comparison", "cyclic_references", "max_depth", "nested_objects",
        "strict_ordering", "comparing_by_value", "mappings",
    }

    @classmethod
    def from_dict(cls, profile: dict) -> "EquivalencyOptions":
        """
        Create options from a profile dictionary.

        Args:
            profile: Mapping using the keys in PROFILE_KEYS

        Returns:
            EquivalencyOptions
        """
        if profile is None:
            return cls()
        if not isinstance(profile, dict):
            raise ConfigurationError(
                "An equivalency profile must be a mapping",
                {"type": type(profile).__name__}
            )

        unknown = sorted(set(profile) - cls.PROFILE_KEYS)
        if unknown:
            raise ConfigurationError(f"Unknown profile keys: {', '.join(unknown)}", {"keys": unknown})

        options = cls()

        if profile.get("include_fields") is False:
            options.excluding_fields()
        if profile.get("include_properties") is False:
            options.excluding_properties()
        if profile.get("runtime_types"):
            options.respecting_runtime_types()

        for path in profile.get("including", []) or []:
            options.including(path)
        for path in profile.get("excluding", []) or []:
            options.excluding(path)
        for pattern in profile.get("excluding_patterns", []) or []:
            options.excluding_pattern(pattern)

        if profile.get("excluding_missing_members"):
            options.excluding_missing_members()
        for subject_name, expectation_name in (profile.get("mappings") or {}).items():
            options.with_mapping(subject_name, expectation_name)

        enum_comparison = profile.get("enum_comparison", "default")
        try:
            mode = EnumEquivalencyMode(enum_comparison)
        except ValueError as e:
            raise ConfigurationError(
                f"Invalid enum_comparison '{enum_comparison}'",
                {"allowed": [m.value for m in EnumEquivalencyMode]}
            ) from e
        options._enum_mode = mode

        cyclic = profile.get("cyclic_references", "throw")
        try:
            options._cyclic_reference_handling = CyclicReferenceHandling(cyclic)
        except ValueError as e:
            raise ConfigurationError(
                f"Invalid cyclic_references '{cyclic}'",
                {"allowed": [m.value for m in CyclicReferenceHandling]}
            ) from e

        if "max_depth" in profile:
            if profile["max_depth"] is None:
                options.allowing_infinite_recursion()
            else:
                options.with_max_depth(profile["max_depth"])

        if profile.get("nested_objects") is False:
            options.excluding_nested_objects()
        if profile.get("strict_ordering") is False:
            options.without_strict_ordering()

        for dotted_name in profile.get("comparing_by_value", []) or []:
            options.comparing_by_value(_import_type(dotted_name))

        return options

    @classmethod
    def from_yaml(cls, source: Union[str, Path]) -> "EquivalencyOptions":
        """Load options from a YAML (or JSON) profile file."""
        path = Path(source)
        if not path.exists():
            raise FileNotFoundError(f"Equivalency profile not found: {path}")

        with open(path, 'r') as f:
            content = f.read()

        # JSON is valid YAML, so this handles both
        try:
            profile = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Failed to parse equivalency profile: {e}", {"path": str(path)}) from e

        return cls.from_dict(profile or {})


def _import_type(dotted_name: str) -> type:
    """Resolve 'package.module.Type' to the type it names."""
    module_name, _, type_name = str(dotted_name).rpartition(".")
    if not module_name:
        module_name = "builtins"
    try:
        resolved = getattr(importlib.import_module(module_name), type_name)
    except (ImportError, AttributeError) as e:
        raise ConfigurationError(f"Cannot resolve type '{dotted_name}'", {"type": dotted_name}) from e
    if not isinstance(resolved, type):
        raise ConfigurationError(f"'{dotted_name}' is not a type", {"type": dotted_name})
    return resolved


def build_strategy(
    config: Union[None, EquivalencyStrategy, EquivalencyOptions, Callable] = None,
    default_max_depth: Optional[int] = DEFAULT_MAX_DEPTH
) -> EquivalencyStrategy:
    """
    Turn whatever the caller passed as configuration into a strategy.

    Args:
        config: None, a strategy, an options builder, or a callback that
            receives fresh options and returns them

    Returns:
        EquivalencyStrategy
    """
    if config is None:
        return EquivalencyOptions().build(default_max_depth)
    if isinstance(config, EquivalencyStrategy):
        return config
    if isinstance(config, EquivalencyOptions):
        return config.build(default_max_depth)
    if callable(config):
        options = config(EquivalencyOptions())
        if not isinstance(options, EquivalencyOptions):
            raise ConfigurationError(
                "The configuration callback must return the options it was given",
                {"returned": type(options).__name__}
            )
        return options.build(default_max_depth)
    raise ConfigurationError(
        "Expected equivalency options, a strategy or a configuration callback",
        {"type": type(config).__name__}
    )
