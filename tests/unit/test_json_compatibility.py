"""Unit tests for JSON Schema structural comparison.

Tests cover:
- Self-compatibility and boolean schemas
- String, number and array rules
- Object properties, required and additionalProperties
- Dependencies
- Enum widening and narrowing
- Combined schemas (allOf/anyOf/oneOf)
- Malformed documents
"""

import pytest

from sregistry.core.schema_registry import (
    BreakingChange,
    JsonSchemaComparator,
    MalformedSchemaError,
    UnsupportedKeywordCombinationError,
)


PERSON = {
    "type": "object",
    "properties": {
        "name": {"type": "string", "minLength": 1},
        "age": {"type": "integer", "minimum": 0},
        "tags": {"type": "array", "items": {"type": "string"}, "uniqueItems": True},
    },
    "required": ["name"],
    "additionalProperties": False,
}


class TestSelfCompatibility:
    """A schema is always compatible with itself."""

    @pytest.mark.parametrize(
        "schema",
        [
            True,
            False,
            {},
            {"type": "string", "minLength": 3, "maxLength": 10, "pattern": "^[a-z]+$"},
            {"type": "number", "minimum": 0, "exclusiveMaximum": 100, "multipleOf": 0.5},
            {"type": "integer", "maximum": 5, "exclusiveMaximum": True},
            {"type": "array", "items": [{"type": "string"}, {"type": "number"}], "additionalItems": False},
            {"type": "array", "items": {"type": "string"}, "minItems": 1, "maxItems": 4},
            {"type": ["string", "null"]},
            {"enum": ["red", "amber", "green"]},
            {"anyOf": [{"type": "string"}, {"type": "number"}]},
            {"allOf": [{"type": "object"}, {"required": ["id"]}]},
            {
                "type": "object",
                "properties": {"a": {"type": "string"}, "b": {"type": "string"}},
                "additionalProperties": {"type": "number"},
                "dependencies": {"a": ["b"], "b": {"properties": {"c": {"type": "string"}}}},
                "minProperties": 1,
                "maxProperties": 5,
            },
            PERSON,
        ],
    )
    def test_compare_with_itself(self, comparator, schema):
        """Test compare(s, s) reports nothing."""
        assert comparator.compare(schema, schema) is None

    def test_boolean_schemas(self, comparator):
        """Test true/false schemas on either side."""
        assert comparator.compare(True, {"type": "string"}) is None
        assert comparator.compare({"type": "string"}, False) is None
        assert comparator.compare(False, {"type": "string"}) == BreakingChange.SCHEMA_DISALLOWS_ALL


class TestConcreteScenarios:
    """Documented end-to-end comparison scenarios."""

    def test_min_length_added(self, comparator):
        """Test adding minLength to a plain string."""
        change = comparator.compare({"type": "string", "minLength": 3}, {"type": "string"})
        assert change == BreakingChange.MIN_LENGTH_ADDED

    def test_property_removed_from_closed_object(self, comparator):
        """Test removing a property from additionalProperties:false."""
        baseline = {
            "type": "object",
            "properties": {"a": {"type": "string"}},
            "additionalProperties": False,
        }
        candidate = {"type": "object", "properties": {}, "additionalProperties": False}

        change = comparator.compare(candidate, baseline)
        assert change == BreakingChange.PROPERTY_REMOVED_FROM_STATIC_PROPERTY_SET

    def test_enum_narrowed(self, comparator):
        """Test dropping a value from an enum."""
        baseline = {"type": "string", "enum": ["red", "amber", "green"]}
        candidate = {"type": "string", "enum": ["red", "amber"]}

        assert comparator.compare(candidate, baseline) == BreakingChange.ENUM_ARRAY_NARROWED


class TestStringRules:
    """Test string keyword rules."""

    @pytest.mark.parametrize(
        "candidate,baseline,expected",
        [
            ({"minLength": 5}, {"minLength": 2}, BreakingChange.MIN_LENGTH_INCREASED),
            ({"minLength": 1}, {"minLength": 2}, None),
            ({"maxLength": 5}, {}, BreakingChange.MAX_LENGTH_ADDED),
            ({"maxLength": 5}, {"maxLength": 8}, BreakingChange.MAX_LENGTH_DECREASED),
            ({"maxLength": 9}, {"maxLength": 8}, None),
            ({"pattern": "^a"}, {}, BreakingChange.PATTERN_ADDED),
            ({"pattern": "^a"}, {"pattern": "^b"}, BreakingChange.PATTERN_CHANGED),
            ({}, {"pattern": "^b", "maxLength": 3}, None),
        ],
    )
    def test_string_rules(self, comparator, candidate, baseline, expected):
        """Test each string rule in isolation."""
        change = comparator.compare({"type": "string", **candidate}, {"type": "string", **baseline})
        assert change == expected

    def test_untyped_string_keywords(self, comparator):
        """Test rules apply to nodes that only imply their kind."""
        assert comparator.compare({"maxLength": 3}, {}) == BreakingChange.MAX_LENGTH_ADDED


class TestNumberRules:
    """Test number and integer keyword rules."""

    @pytest.mark.parametrize(
        "candidate,baseline,expected",
        [
            ({"maximum": 10}, {}, BreakingChange.MAXIMUM_ADDED),
            ({"maximum": 5}, {"maximum": 10}, BreakingChange.MAXIMUM_DECREASED),
            ({"maximum": 15}, {"maximum": 10}, None),
            ({"minimum": 0}, {}, BreakingChange.MINIMUM_ADDED),
            ({"minimum": 3}, {"minimum": 0}, BreakingChange.MINIMUM_INCREASED),
            ({"minimum": -3}, {"minimum": 0}, None),
            ({"exclusiveMaximum": 10}, {}, BreakingChange.EXCLUSIVE_MAXIMUM_ADDED),
            ({"exclusiveMaximum": 5}, {"exclusiveMaximum": 10}, BreakingChange.EXCLUSIVE_MAXIMUM_DECREASED),
            ({"exclusiveMinimum": 1}, {}, BreakingChange.EXCLUSIVE_MINIMUM_ADDED),
            ({"exclusiveMinimum": 2}, {"exclusiveMinimum": 1}, BreakingChange.EXCLUSIVE_MINIMUM_INCREASED),
            ({"exclusiveMinimum": 0}, {"exclusiveMinimum": 1}, None),
        ],
    )
    def test_bounds(self, comparator, candidate, baseline, expected):
        """Test inclusive and numeric exclusive bounds."""
        change = comparator.compare({"type": "number", **candidate}, {"type": "number", **baseline})
        assert change == expected

    def test_boolean_exclusive_bound_flips_on(self, comparator):
        """Test exclusiveMaximum flipping from false to true."""
        baseline = {"type": "number", "maximum": 10, "exclusiveMaximum": False}
        candidate = {"type": "number", "maximum": 10, "exclusiveMaximum": True}

        assert comparator.compare(candidate, baseline) == BreakingChange.EXCLUSIVE_MAXIMUM_ADDED
        assert comparator.compare(baseline, candidate) is None

    def test_exclusive_bound_across_forms(self, comparator):
        """Test a numeric exclusive bound against a boolean one."""
        baseline = {"type": "number", "minimum": 0, "exclusiveMinimum": True}

        tighter = {"type": "number", "exclusiveMinimum": 5}
        assert comparator.compare(tighter, baseline) == BreakingChange.EXCLUSIVE_MINIMUM_INCREASED
        same = {"type": "number", "exclusiveMinimum": 0}
        assert comparator.compare(same, baseline) is None

    def test_boolean_exclusive_without_bound(self, comparator):
        """Test a boolean exclusive flag with no inclusive bound leaves numbers unbounded."""
        baseline = {"type": "number", "exclusiveMaximum": True}

        assert comparator.compare({"type": "number", "exclusiveMaximum": 5}, baseline) == (
            BreakingChange.EXCLUSIVE_MAXIMUM_ADDED
        )
        flagged = {"type": "number", "exclusiveMinimum": True}
        assert comparator.compare({"type": "number", "exclusiveMinimum": 0}, flagged) == (
            BreakingChange.EXCLUSIVE_MINIMUM_ADDED
        )

    def test_multiple_of(self, comparator):
        """Test multipleOf added, increased and non-divisible changes."""
        def number(**kw):
            return {"type": "number", **kw}

        assert comparator.compare(number(multipleOf=2), number()) == BreakingChange.MULTIPLE_OF_ADDED
        assert comparator.compare(number(multipleOf=4), number(multipleOf=2)) == BreakingChange.MULTIPLE_OF_INCREASED
        assert (
            comparator.compare(number(multipleOf=6), number(multipleOf=4))
            == BreakingChange.MULTIPLE_OF_NON_DIVISIBLE_CHANGE
        )
        assert comparator.compare(number(multipleOf=2), number(multipleOf=4)) is None

    def test_multiple_of_decimal_steps(self, comparator):
        """Test multipleOf is compared without float rounding."""
        change = comparator.compare(
            {"type": "number", "multipleOf": 0.3},
            {"type": "number", "multipleOf": 0.1},
        )
        assert change == BreakingChange.MULTIPLE_OF_INCREASED
        assert change.is_weak

    def test_integer_narrows_number(self, comparator):
        """Test integer narrowing a number baseline and the safe reverse."""
        assert comparator.compare({"type": "integer"}, {"type": "number"}) == BreakingChange.TYPE_NARROWED
        assert comparator.compare({"type": "number"}, {"type": "integer"}) is None


class TestTypeChanges:
    """Test handling of declared type changes."""

    def test_type_change_is_breaking_by_default(self, comparator):
        """Test unrelated types are reported."""
        assert comparator.compare({"type": "number"}, {"type": "string"}) == BreakingChange.TYPE_CHANGED

    def test_type_change_can_be_ignored(self):
        """Test the type-change rule can be switched off."""
        comparator = JsonSchemaComparator(type_change_is_breaking=False)
        assert comparator.compare({"type": "number"}, {"type": "string"}) is None

    def test_type_change_setting(self, monkeypatch):
        """Test the default comes from settings."""
        from sregistry.core.config import reset_settings

        monkeypatch.setenv("JSON_TYPE_CHANGE_IS_BREAKING", "false")
        reset_settings()

        assert JsonSchemaComparator().type_change_is_breaking is False

    def test_widening_type_list(self, comparator):
        """Test adding a type to the accepted list is safe."""
        assert comparator.compare({"type": ["string", "null"]}, {"type": "string"}) is None
        assert comparator.compare({"type": "string"}, {"type": ["string", "null"]}) == BreakingChange.TYPE_CHANGED

    def test_widening_keeps_kind_rules(self, comparator):
        """Test rules of the baseline kind still apply after widening."""
        change = comparator.compare(
            {"type": ["string", "null"], "maxLength": 4},
            {"type": "string", "maxLength": 8},
        )
        assert change == BreakingChange.MAX_LENGTH_DECREASED


class TestArrayRules:
    """Test array keyword rules."""

    def test_tuple_items_length(self, comparator):
        """Test tuple elements added and removed."""
        two = {"type": "array", "items": [{"type": "string"}, {"type": "number"}]}
        one = {"type": "array", "items": [{"type": "string"}]}

        assert comparator.compare(one, two) == BreakingChange.ARRAY_ITEM_REMOVED
        assert comparator.compare(two, one) == BreakingChange.ARRAY_ITEM_ADDED

    def test_tuple_items_positional(self, comparator):
        """Test tuple elements are compared position by position."""
        baseline = {"type": "array", "items": [{"type": "string"}]}
        candidate = {"type": "array", "items": [{"type": "string", "pattern": "^x"}]}

        assert comparator.compare(candidate, baseline) == BreakingChange.PATTERN_ADDED

    @pytest.mark.parametrize(
        "candidate,baseline,expected",
        [
            ({"uniqueItems": True}, {}, BreakingChange.UNIQUE_ITEMS_ADDED),
            ({"uniqueItems": False}, {"uniqueItems": True}, None),
            ({"maxItems": 3}, {}, BreakingChange.MAX_ITEMS_ADDED),
            ({"maxItems": 3}, {"maxItems": 4}, BreakingChange.MAX_ITEMS_DECREASED),
            ({"minItems": 1}, {}, BreakingChange.MIN_ITEMS_ADDED),
            ({"minItems": 2}, {"minItems": 1}, BreakingChange.MIN_ITEMS_INCREASED),
            ({"minItems": 0}, {"minItems": 1}, None),
        ],
    )
    def test_array_constraints(self, comparator, candidate, baseline, expected):
        """Test uniqueness and item-count rules."""
        change = comparator.compare({"type": "array", **candidate}, {"type": "array", **baseline})
        assert change == expected

    def test_additional_items(self, comparator):
        """Test additionalItems closed and narrowed."""
        tuple_form = {"type": "array", "items": [{"type": "string"}]}

        closed = {**tuple_form, "additionalItems": False}
        assert comparator.compare(closed, tuple_form) == BreakingChange.ADDITIONAL_ITEMS_REMOVED

        typed = {**tuple_form, "additionalItems": {"type": "number"}}
        assert comparator.compare(typed, tuple_form) == BreakingChange.ADDITIONAL_ITEMS_NARROWED
        assert comparator.compare(typed, {**tuple_form, "additionalItems": True}) == (
            BreakingChange.ADDITIONAL_ITEMS_NARROWED
        )

        narrower = {**tuple_form, "additionalItems": {"type": "number", "maximum": 1}}
        assert comparator.compare(narrower, typed) == BreakingChange.ADDITIONAL_ITEMS_NARROWED
        assert comparator.compare(typed, narrower) is None

    def test_items_schema(self, comparator):
        """Test the single items schema is compared recursively."""
        baseline = {"type": "array", "items": {"type": "string"}}
        candidate = {"type": "array", "items": {"type": "string", "maxLength": 5}}

        assert comparator.compare(candidate, baseline) == BreakingChange.MAX_LENGTH_ADDED
        assert comparator.compare(candidate, {"type": "array"}) == BreakingChange.ITEMS_NARROWED
        assert comparator.compare({"type": "array", "items": {}}, {"type": "array"}) is None

    def test_items_schema_to_tuple(self, comparator):
        """Test switching from one items schema to the tuple form."""
        strings = {"type": "array", "items": {"type": "string"}}

        integers = {"type": "array", "items": [{"type": "integer"}]}
        assert comparator.compare(integers, strings) == BreakingChange.ITEMS_NARROWED
        # Tuple positions and the open tail still accept every string
        assert comparator.compare({"type": "array", "items": [{"type": "string"}]}, strings) is None
        tail = {"type": "array", "items": [{"type": "string"}], "additionalItems": {"type": "integer"}}
        assert comparator.compare(tail, strings) == BreakingChange.ITEMS_NARROWED

    def test_tuple_to_items_schema(self, comparator):
        """Test switching from the tuple form to one items schema."""
        pair = {"type": "array", "items": [{"type": "integer"}]}

        assert comparator.compare({"type": "array", "items": {"type": "string"}}, pair) == (
            BreakingChange.ITEMS_NARROWED
        )
        closed = {**pair, "additionalItems": False}
        assert comparator.compare({"type": "array", "items": {"type": "integer"}}, closed) is None
        # The open tail of the tuple accepted anything
        assert comparator.compare({"type": "array", "items": {"type": "integer"}}, pair) == (
            BreakingChange.ITEMS_NARROWED
        )

    def test_tuple_against_missing_items(self, comparator):
        """Test a tuple added where items were unconstrained."""
        assert comparator.compare({"type": "array", "items": [{"type": "string"}]}, {"type": "array"}) == (
            BreakingChange.ITEMS_NARROWED
        )
        assert comparator.compare({"type": "array", "items": [{}]}, {"type": "array"}) is None


class TestPropertyRules:
    """Test object property rules."""

    def test_property_added_to_dynamic_set(self, comparator):
        """Test adding a property where any property was already allowed."""
        baseline = {"type": "object", "properties": {"name": {"type": "string"}}}
        candidate = {
            "type": "object",
            "properties": {"name": {"type": "string"}, "city": {"type": "string"}},
        }

        assert comparator.compare(candidate, baseline) == BreakingChange.PROPERTY_ADDED_TO_DYNAMIC_PROPERTY_SET

    def test_required_property_added_to_closed_object(self, comparator):
        """Test adding a required property without default to a closed object."""
        baseline = {
            "type": "object",
            "properties": {"name": {"type": "string"}},
            "additionalProperties": False,
        }
        candidate = {
            "type": "object",
            "properties": {"name": {"type": "string"}, "city": {"type": "string"}},
            "required": ["city"],
        }

        assert comparator.compare(candidate, baseline) == BreakingChange.REQUIRED_PROPERTY_ADDED_WITHOUT_DEFAULT

    def test_property_added_outside_additional_schema(self, comparator):
        """Test an added property must satisfy the baseline additionalProperties schema."""
        baseline = {
            "type": "object",
            "properties": {"name": {"type": "string"}},
            "additionalProperties": {"type": "number"},
        }
        candidate = {
            "type": "object",
            "properties": {"name": {"type": "string"}, "city": {"type": "string"}},
            "additionalProperties": {"type": "number"},
        }

        change = comparator.compare(candidate, baseline)
        assert change == BreakingChange.PROPERTY_ADDED_NOT_PART_OF_DYNAMIC_PROPERTY_SET_WITH_CONDITION

    def test_property_added_inside_additional_schema(self, comparator):
        """Test an added property matching additionalProperties is safe."""
        baseline = {"type": "object", "additionalProperties": {"type": "number"}}
        candidate = {
            "type": "object",
            "properties": {"count": {"type": "number"}},
            "additionalProperties": {"type": "number"},
        }

        assert comparator.compare(candidate, baseline) is None

    def test_property_removed_outside_additional_schema(self, comparator):
        """Test a removed property must fit the candidate additionalProperties schema."""
        baseline = {
            "type": "object",
            "properties": {"name": {"type": "string"}, "city": {"type": "string"}},
            "additionalProperties": {"type": "number"},
        }
        candidate = {
            "type": "object",
            "properties": {"name": {"type": "string"}},
            "additionalProperties": {"type": "number"},
        }

        change = comparator.compare(candidate, baseline)
        assert change == BreakingChange.PROPERTY_REMOVED_NOT_PART_OF_DYNAMIC_PROPERTY_SET_WITH_CONDITION

    def test_property_removed_from_open_object(self, comparator):
        """Test removing a property from an open object is safe."""
        baseline = {"type": "object", "properties": {"a": {"type": "string"}, "b": {"type": "string"}}}
        candidate = {"type": "object", "properties": {"a": {"type": "string"}}}

        assert comparator.compare(candidate, baseline) is None

    @pytest.mark.parametrize("removed_type", ["string", "number", "object", "array", "boolean"])
    def test_closed_object_removal_always_breaks(self, comparator, removed_type):
        """Test removal from a closed object regardless of the property's type."""
        baseline = {
            "type": "object",
            "properties": {"keep": {"type": "string"}, "gone": {"type": removed_type}},
            "additionalProperties": False,
        }
        candidate = {
            "type": "object",
            "properties": {"keep": {"type": "string"}},
            "additionalProperties": False,
        }

        assert comparator.compare(candidate, baseline) == BreakingChange.PROPERTY_REMOVED_FROM_STATIC_PROPERTY_SET

    def test_shared_property_recurses(self, comparator):
        """Test a property present on both sides is compared recursively."""
        baseline = {"type": "object", "properties": {"age": {"type": "integer"}}}
        candidate = {"type": "object", "properties": {"age": {"type": "integer", "minimum": 18}}}

        assert comparator.compare(candidate, baseline) == BreakingChange.MINIMUM_ADDED

    def test_property_counts(self, comparator):
        """Test minProperties and maxProperties rules."""
        def obj(**kw):
            return {"type": "object", **kw}

        assert comparator.compare(obj(minProperties=1), obj()) == BreakingChange.MIN_PROPERTIES_ADDED
        assert comparator.compare(obj(minProperties=2), obj(minProperties=1)) == (
            BreakingChange.MIN_PROPERTIES_LIMIT_INCREASED
        )
        assert comparator.compare(obj(maxProperties=3), obj()) == BreakingChange.MAX_PROPERTIES_ADDED
        assert comparator.compare(obj(maxProperties=3), obj(maxProperties=4)) == (
            BreakingChange.MAX_PROPERTIES_LIMIT_DECREASED
        )
        assert comparator.compare(obj(maxProperties=5), obj(maxProperties=4)) is None

    def test_additional_properties(self, comparator):
        """Test additionalProperties removed and narrowed."""
        typed = {"type": "object", "additionalProperties": {"type": "string"}}
        narrower = {"type": "object", "additionalProperties": {"type": "string", "maxLength": 2}}

        assert comparator.compare({"type": "object"}, typed) == BreakingChange.ADDITIONAL_PROPERTIES_REMOVED
        assert comparator.compare(narrower, typed) == BreakingChange.ADDITIONAL_PROPERTIES_NARROWED
        assert comparator.compare(typed, narrower) is None
        assert comparator.compare({"type": "object"}, {"type": "object", "additionalProperties": True}) is None

    def test_additional_properties_closed(self, comparator):
        """Test closing an object that had no declared properties."""
        change = comparator.compare({"type": "object", "additionalProperties": False}, {"type": "object"})
        assert change == BreakingChange.ADDITIONAL_PROPERTIES_NARROWED

    def test_pattern_properties(self, comparator):
        """Test names matching a pattern keep accepting what they accepted."""
        strings = {"type": "object", "patternProperties": {"^s_": {"type": "string"}}}
        integers = {"type": "object", "patternProperties": {"^s_": {"type": "integer"}}}
        short = {"type": "object", "patternProperties": {"^s_": {"type": "string", "maxLength": 3}}}

        assert comparator.compare(integers, strings) == BreakingChange.PROPERTY_PATTERN_NARROWED
        assert comparator.compare(short, strings) == BreakingChange.PROPERTY_PATTERN_NARROWED
        assert comparator.compare(strings, short) is None

    def test_new_pattern_against_additional_properties(self, comparator):
        """Test a new pattern is held to what additionalProperties allowed before."""
        open_object = {"type": "object"}
        typed = {"type": "object", "additionalProperties": {"type": "string"}}
        pattern = {"type": "object", "patternProperties": {"^s_": {"type": "string"}}}

        assert comparator.compare(pattern, open_object) == BreakingChange.PROPERTY_PATTERN_NARROWED
        assert comparator.compare({**pattern, "additionalProperties": {"type": "string"}}, typed) is None


class TestRequiredRule:
    """Test the required-without-default rule."""

    BASELINE = {
        "type": "object",
        "properties": {"name": {"type": "string"}, "nickname": {"type": "string"}},
        "required": ["name"],
    }

    def test_required_without_default(self, comparator):
        """Test newly requiring a property without a default."""
        candidate = {**self.BASELINE, "required": ["name", "nickname"]}
        assert comparator.compare(candidate, self.BASELINE) == BreakingChange.REQUIRED_PROPERTY_ADDED_WITHOUT_DEFAULT

    def test_required_with_default(self, comparator):
        """Test newly requiring a property that has a default."""
        candidate = {
            "type": "object",
            "properties": {"name": {"type": "string"}, "nickname": {"type": "string", "default": ""}},
            "required": ["name", "nickname"],
        }
        assert comparator.compare(candidate, self.BASELINE) is None

    def test_already_required(self, comparator):
        """Test properties required on both sides are not flagged."""
        assert comparator.compare(self.BASELINE, self.BASELINE) is None


class TestDependencyRules:
    """Test dependency rules."""

    BASE = {
        "type": "object",
        "properties": {"a": {"type": "string"}, "b": {"type": "string"}, "c": {"type": "string"}},
    }

    def _with(self, dependencies):
        return {**self.BASE, "dependencies": dependencies}

    def test_section_added(self, comparator):
        """Test introducing a dependencies section."""
        assert comparator.compare(self._with({"a": ["b"]}), self.BASE) == BreakingChange.DEPENDENCY_SECTION_ADDED

    def test_dependency_added(self, comparator):
        """Test adding a new dependency key in either form."""
        baseline = self._with({"a": ["b"]})

        array_form = self._with({"a": ["b"], "c": ["a"]})
        assert comparator.compare(array_form, baseline) == BreakingChange.DEPENDENCY_ADDED_IN_ARRAY_FORM

        schema_form = self._with({"a": ["b"], "c": {"required": ["a"]}})
        assert comparator.compare(schema_form, baseline) == BreakingChange.DEPENDENCY_ADDED_IN_SCHEMA_FORM

    def test_array_dependency_must_be_superset(self, comparator):
        """Test an array dependency losing an element."""
        wide = self._with({"a": ["b", "c"]})
        narrow = self._with({"a": ["b"]})

        assert comparator.compare(narrow, wide) == BreakingChange.DEPENDENCY_ARRAY_NARROWED
        assert comparator.compare(wide, narrow) is None

    def test_schema_dependency_modified(self, comparator):
        """Test a schema dependency compared through the property rules."""
        baseline = self._with({"a": {"properties": {"b": {"type": "string"}}}})
        candidate = self._with({"a": {"properties": {"b": {"type": "integer"}}}})

        assert comparator.compare(candidate, baseline) == BreakingChange.DEPENDENCY_IN_SCHEMA_FORM_MODIFIED

    def test_dependency_form_changed(self, comparator):
        """Test switching a dependency between array and schema form."""
        baseline = self._with({"a": ["b"]})
        candidate = self._with({"a": {"required": ["b"]}})

        assert comparator.compare(candidate, baseline) == BreakingChange.DEPENDENCY_FORM_CHANGED

    def test_dependencies_removed(self, comparator):
        """Test dropping the dependencies section is safe."""
        assert comparator.compare(self.BASE, self._with({"a": ["b"]})) is None


class TestEnumRules:
    """Test enum rules."""

    @pytest.mark.parametrize(
        "smaller,larger",
        [
            (["a"], ["a", "b"]),
            ([1, 2], [1, 2, 3]),
            ([{"k": 1}], [{"k": 1}, None]),
            ([], ["x"]),
        ],
    )
    def test_enum_widening_is_monotonic(self, comparator, smaller, larger):
        """Test widening is compatible and narrowing is not."""
        assert comparator.compare({"enum": larger}, {"enum": smaller}) is None
        assert comparator.compare({"enum": smaller}, {"enum": larger}) == BreakingChange.ENUM_ARRAY_NARROWED

    def test_enum_added(self, comparator):
        """Test adding an enum to an unconstrained string."""
        assert comparator.compare({"type": "string", "enum": ["x"]}, {"type": "string"}) == BreakingChange.ENUM_ADDED

    def test_enum_removed(self, comparator):
        """Test dropping the enum is safe."""
        assert comparator.compare({"type": "string"}, {"type": "string", "enum": ["x"]}) is None

    def test_enum_checked_before_type_rules(self, comparator):
        """Test the enum rule wins over string rules."""
        baseline = {"type": "string", "enum": ["ab", "cd"]}
        candidate = {"type": "string", "enum": ["ab"], "maxLength": 1}

        assert comparator.compare(candidate, baseline) == BreakingChange.ENUM_ARRAY_NARROWED


class TestCombinedRules:
    """Test allOf/anyOf/oneOf rules."""

    STRING = {"type": "string"}
    NUMBER = {"type": "number"}
    BOOLEAN = {"type": "boolean"}

    def test_combined_type_added(self, comparator):
        """Test introducing a composition keyword."""
        candidate = {"anyOf": [self.STRING, self.NUMBER]}
        assert comparator.compare(candidate, self.STRING) == BreakingChange.COMBINED_TYPE_ADDED

    def test_composition_method_changed(self, comparator):
        """Test switching composition keyword."""
        change = comparator.compare({"oneOf": [self.STRING]}, {"anyOf": [self.STRING]})
        assert change == BreakingChange.COMPOSITION_METHOD_CHANGED

    def test_sum_type(self, comparator):
        """Test anyOf alternatives added and removed."""
        two = {"anyOf": [self.STRING, self.NUMBER]}
        three = {"anyOf": [self.STRING, self.NUMBER, self.BOOLEAN]}

        assert comparator.compare(three, two) is None
        assert comparator.compare(two, three) == BreakingChange.SUM_TYPE_NARROWED

    def test_sum_type_branch_changed(self, comparator):
        """Test an alternative replaced by an incompatible one."""
        baseline = {"oneOf": [self.STRING, self.NUMBER]}
        candidate = {"oneOf": [self.STRING, self.BOOLEAN]}

        assert comparator.compare(candidate, baseline) == BreakingChange.COMBINED_TYPE_SUBSCHEMAS_CHANGED

    def test_product_type(self, comparator):
        """Test allOf conjuncts extended and changed."""
        baseline = {"allOf": [self.STRING]}

        extended = {"allOf": [self.STRING, {"maxLength": 3}]}
        assert comparator.compare(extended, baseline) == BreakingChange.PRODUCT_TYPE_EXTENDED

        changed = {"allOf": [{"type": "string", "minLength": 1}]}
        assert comparator.compare(changed, baseline) == BreakingChange.COMBINED_TYPE_SUBSCHEMAS_CHANGED

    def test_composition_removed(self, comparator):
        """Test dropping a composition keyword."""
        assert comparator.compare({}, {"anyOf": [self.STRING, self.NUMBER]}) is None


class TestMalformedDocuments:
    """Test malformed documents are reported as errors, not verdicts."""

    @pytest.mark.parametrize(
        "document",
        [
            {"type": "text"},
            {"minLength": -1},
            {"maximum": "ten"},
            {"multipleOf": 0},
            {"pattern": "("},
            {"required": "name"},
            {"properties": []},
            {"anyOf": []},
            {"items": [1]},
        ],
    )
    def test_malformed(self, comparator, document):
        """Test a malformed candidate raises."""
        with pytest.raises(MalformedSchemaError):
            comparator.compare(document, {})

    def test_malformed_baseline(self, comparator):
        """Test a malformed baseline raises too."""
        with pytest.raises(MalformedSchemaError):
            comparator.compare({}, {"type": 5})

    def test_ambiguous_dependency(self, comparator):
        """Test a dependency that is neither an array nor a schema."""
        document = {"type": "object", "dependencies": {"a": 3}}

        with pytest.raises(UnsupportedKeywordCombinationError) as exc_info:
            comparator.compare(document, document)
        assert "dependencies/a" in exc_info.value.errors[0]

    def test_documents_not_mutated(self, comparator):
        """Test comparison leaves both documents untouched."""
        import copy

        baseline = copy.deepcopy(PERSON)
        candidate = copy.deepcopy(PERSON)
        candidate["properties"]["name"]["maxLength"] = 3

        comparator.compare(candidate, baseline)
        assert baseline == PERSON
        assert candidate["properties"]["name"] == {"type": "string", "minLength": 1, "maxLength": 3}
