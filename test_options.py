"""Tests for equivalency options, strategies and profiles."""

import json
from decimal import Decimal

import pytest
from equivalency import (
    ConfigurationError,
    CyclicReferenceHandling,
    EnumEquivalencyMode,
    EquivalencyOptions,
    MemberSelectorError,
)
from equivalency.paths import PathPattern, resolve_selector
from equivalency.rules import (
    AllPublicFieldsSelectionRule,
    AllPublicPropertiesSelectionRule,
    ExcludeMemberByPathSelectionRule,
    IncludeMemberByPathSelectionRule,
    MapMemberByNameRule,
    MustMatchByNameRule,
    TryMatchByNameRule,
)


class TestBuilder:
    """Test the fluent options builder."""

    def test_defaults(self):
        """Test the default strategy."""
        strategy = EquivalencyOptions().build()

        assert strategy.include_fields is True
        assert strategy.include_properties is True
        assert strategy.use_runtime_types is False
        assert strategy.enum_mode == EnumEquivalencyMode.DEFAULT
        assert strategy.cyclic_reference_handling == CyclicReferenceHandling.THROW
        assert strategy.max_depth == 10
        assert strategy.recursive is True
        assert strategy.reports_missing_members is True

    def test_default_selection_rules(self):
        """Test that both member kinds are selected by default."""
        rules = EquivalencyOptions().build().selection_rules

        assert isinstance(rules[0], AllPublicPropertiesSelectionRule)
        assert isinstance(rules[1], AllPublicFieldsSelectionRule)

    def test_excluding_fields_drops_field_rule(self):
        """Test that excluding fields leaves only the property rule."""
        rules = EquivalencyOptions().excluding_fields().build().selection_rules
        assert [type(r) for r in rules] == [AllPublicPropertiesSelectionRule]

    def test_including_replaces_default_rules(self):
        """Test that an include rule replaces the default selection."""
        rules = EquivalencyOptions().including("age").build().selection_rules
        assert [type(r) for r in rules] == [IncludeMemberByPathSelectionRule]

    def test_exclude_rules_follow_defaults(self):
        """Test that exclude rules are evaluated after existing rules."""
        rules = EquivalencyOptions().excluding("name").build().selection_rules
        assert isinstance(rules[-1], ExcludeMemberByPathSelectionRule)
        assert rules[-1].path == "name"

    def test_without_selection_rules(self):
        """Test that all selection rules can be cleared."""
        assert EquivalencyOptions().without_selection_rules().build().selection_rules == ()

    def test_including_all_runtime_properties(self):
        """Test that runtime properties mode selects properties of the runtime type."""
        strategy = EquivalencyOptions().excluding("name").including_all_runtime_properties().build()

        assert strategy.use_runtime_types is True
        assert strategy.include_fields is False
        assert [type(r) for r in strategy.selection_rules] == [AllPublicPropertiesSelectionRule]

    def test_matching_rules(self):
        """Test that matching rules are replaced and prepended."""
        strategy = EquivalencyOptions().excluding_missing_members().with_mapping("a", "b").build()

        assert isinstance(strategy.matching_rules[0], MapMemberByNameRule)
        assert isinstance(strategy.matching_rules[1], TryMatchByNameRule)
        assert strategy.reports_missing_members is False

    def test_throwing_on_missing_members(self):
        """Test that missing members can be reported again."""
        strategy = EquivalencyOptions().excluding_missing_members().throwing_on_missing_members().build()
        assert [type(r) for r in strategy.matching_rules] == [MustMatchByNameRule]

    def test_assertion_rules_are_prepended(self):
        """Test that later assertion rules take precedence."""
        def first(ctx):
            return True

        def second(ctx):
            return True

        options = EquivalencyOptions()
        options.using(first).when_type_is(int)
        options.using(second).when_type_is(int)

        rules = options.build().assertion_rules
        assert rules[0].action is second

    def test_value_and_member_types_are_exclusive(self):
        """Test that a type is compared either by value or by members."""
        strategy = EquivalencyOptions().comparing_by_value(Decimal).comparing_by_members(Decimal).build()

        assert strategy.value_types == ()
        assert strategy.member_types == (Decimal,)

    def test_comparing_by_value_requires_types(self):
        """Test that only types can be compared by value."""
        with pytest.raises(ConfigurationError):
            EquivalencyOptions().comparing_by_value("Decimal")

    def test_invalid_max_depth(self):
        """Test that the depth limit must be positive."""
        with pytest.raises(ConfigurationError):
            EquivalencyOptions().with_max_depth(0)

    def test_infinite_recursion(self):
        """Test that the depth limit can be disabled."""
        assert EquivalencyOptions().allowing_infinite_recursion().build().max_depth is None

    def test_default_depth_from_engine(self):
        """Test that an unconfigured depth takes the supplied default."""
        assert EquivalencyOptions().build(default_max_depth=4).max_depth == 4
        assert EquivalencyOptions().with_max_depth(7).build(default_max_depth=4).max_depth == 7

    def test_strategy_is_frozen(self):
        """Test that a built strategy cannot be changed."""
        strategy = EquivalencyOptions().build()
        with pytest.raises(AttributeError):
            strategy.max_depth = 3

    def test_builder_changes_do_not_affect_built_strategy(self):
        """Test that a strategy is a snapshot of the options."""
        options = EquivalencyOptions()
        strategy = options.build()
        options.excluding("name")

        assert len(strategy.selection_rules) == 2

    def test_configuration_description(self):
        """Test that a strategy describes its configuration."""
        description = str(EquivalencyOptions().excluding("name").comparing_enums_by_name().build())

        assert "- Use declared types and members" in description
        assert "- Exclude member root.name" in description
        assert "- Compare enums by name" in description
        assert "- Limit recursion to depth 10" in description


class TestSelectors:
    """Test member selectors."""

    def test_lambda_selector(self):
        """Test that a lambda selector records the member path."""
        assert resolve_selector(lambda o: o.level.text) == "level.text"

    def test_lambda_selector_through_items(self):
        """Test that indexing in a selector is not part of the path."""
        assert resolve_selector(lambda o: o.lines[0].name) == "lines.name"

    def test_string_selector(self):
        """Test that dotted and JSONPath-like strings are accepted."""
        assert resolve_selector("level.text") == "level.text"
        assert resolve_selector("$.lines[*].name") == "lines.name"

    def test_none_selector(self):
        """Test that a None selector is rejected."""
        with pytest.raises(MemberSelectorError, match="found None"):
            EquivalencyOptions().excluding(None)

    def test_method_call_selector(self):
        """Test that a selector calling a method is rejected."""
        with pytest.raises(MemberSelectorError, match="call to name.upper"):
            EquivalencyOptions().excluding(lambda o: o.name.upper())

    def test_non_member_selector(self):
        """Test that a selector not returning a member is rejected."""
        with pytest.raises(MemberSelectorError):
            EquivalencyOptions().including(lambda o: 5)

    def test_invalid_string_selector(self):
        """Test that a malformed path is rejected."""
        with pytest.raises(MemberSelectorError):
            EquivalencyOptions().excluding("level text")

    def test_invalid_pattern(self):
        """Test that an invalid path pattern is rejected."""
        with pytest.raises(ConfigurationError):
            EquivalencyOptions().excluding_pattern("$.[")


class TestPathPattern:
    """Test JSONPath-like member path patterns."""

    def test_recursive_descent(self):
        """Test that recursive descent matches the member at any depth."""
        pattern = PathPattern("$..timestamp")

        assert pattern.matches("timestamp")
        assert pattern.matches("meta.timestamp")
        assert pattern.matches("lines[2].timestamp")
        assert not pattern.matches("timestamps")

    def test_recursive_descent_with_wildcard(self):
        """Test that wildcards after recursive descent match any item."""
        pattern = PathPattern("$..items[*].n")

        assert pattern.matches("items[0].n")
        assert pattern.matches("holder.items[3].n")
        assert not pattern.matches("items[0].label")
        assert not pattern.matches("items.n")

    def test_recursive_descent_below_member(self):
        """Test that recursive descent can start below a member."""
        pattern = PathPattern("$.orders..id")

        assert pattern.matches("orders.id")
        assert pattern.matches("orders[1].lines[0].id")
        assert not pattern.matches("customers.id")

    def test_wildcard(self):
        """Test that a wildcard matches any item."""
        pattern = PathPattern("$.lines[*].id")

        assert pattern.matches("lines[0].id")
        assert not pattern.matches("lines[0].name")

    def test_exact(self):
        """Test that a plain pattern matches one path."""
        pattern = PathPattern("meta.source")

        assert pattern.matches("meta.source")
        assert not pattern.matches("source")


class TestProfiles:
    """Test loading options from profiles."""

    def test_from_dict(self):
        """Test that a profile dictionary configures the options."""
        strategy = EquivalencyOptions.from_dict({
            "excluding": ["name"],
            "enum_comparison": "by_name",
            "cyclic_references": "ignore",
            "max_depth": 5,
            "nested_objects": False,
            "comparing_by_value": ["decimal.Decimal"],
            "mappings": {"full_name": "name"},
        }).build()

        assert strategy.enum_mode == EnumEquivalencyMode.BY_NAME
        assert strategy.cyclic_reference_handling == CyclicReferenceHandling.IGNORE
        assert strategy.max_depth == 5
        assert strategy.recursive is False
        assert strategy.value_types == (Decimal,)
        assert isinstance(strategy.matching_rules[0], MapMemberByNameRule)

    def test_null_max_depth(self):
        """Test that a null depth disables the limit."""
        assert EquivalencyOptions.from_dict({"max_depth": None}).build().max_depth is None

    def test_unknown_key(self):
        """Test that unknown profile keys are rejected."""
        with pytest.raises(ConfigurationError, match="Unknown profile keys"):
            EquivalencyOptions.from_dict({"exclude": ["name"]})

    def test_invalid_enum_comparison(self):
        """Test that an invalid enum mode is rejected."""
        with pytest.raises(ConfigurationError):
            EquivalencyOptions.from_dict({"enum_comparison": "by_ordinal"})

    def test_unresolvable_type(self):
        """Test that an unknown type name is rejected."""
        with pytest.raises(ConfigurationError):
            EquivalencyOptions.from_dict({"comparing_by_value": ["decimal.Nope"]})

    def test_profile_must_be_mapping(self):
        """Test that a profile must be a mapping."""
        with pytest.raises(ConfigurationError):
            EquivalencyOptions.from_dict(["name"])

    def test_from_yaml_matches_fluent_options(self, tmp_path):
        """Test that a YAML profile builds the same strategy as the fluent options."""
        profile = tmp_path / "profile.yaml"
        profile.write_text(
            "excluding:\n"
            "  - level.text\n"
            "excluding_patterns:\n"
            "  - $..timestamp\n"
            "excluding_missing_members: true\n"
            "enum_comparison: by_value\n"
            "strict_ordering: false\n"
        )

        loaded = EquivalencyOptions.from_yaml(profile).build()
        fluent = (EquivalencyOptions()
                  .excluding("level.text")
                  .excluding_pattern("$..timestamp")
                  .excluding_missing_members()
                  .comparing_enums_by_value()
                  .without_strict_ordering()
                  .build())

        assert str(loaded) == str(fluent)
        assert loaded.enum_mode == fluent.enum_mode

    def test_from_json(self, tmp_path):
        """Test that JSON profiles load as well."""
        profile = tmp_path / "profile.json"
        profile.write_text(json.dumps({"runtime_types": True, "include_fields": False}))

        strategy = EquivalencyOptions.from_yaml(profile).build()
        assert strategy.use_runtime_types is True
        assert strategy.include_fields is False

    def test_empty_yaml(self, tmp_path):
        """Test that an empty profile gives the default options."""
        profile = tmp_path / "empty.yaml"
        profile.write_text("")

        assert str(EquivalencyOptions.from_yaml(profile).build()) == str(EquivalencyOptions().build())

    def test_invalid_yaml(self, tmp_path):
        """Test that malformed YAML is a configuration error."""
        profile = tmp_path / "broken.yaml"
        profile.write_text("excluding: [name\n")

        with pytest.raises(ConfigurationError):
            EquivalencyOptions.from_yaml(profile)

    def test_missing_file(self, tmp_path):
        """Test that a missing profile file is reported."""
        with pytest.raises(FileNotFoundError):
            EquivalencyOptions.from_yaml(tmp_path / "missing.yaml")
