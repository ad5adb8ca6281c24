"""Breaking change taxonomy.

A closed catalogue of the structural edits that make a candidate schema
unsafe with respect to a baseline. Comparators report at most one member per
pairwise comparison. New kinds are only ever appended.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet


class ChangeCategory(str, Enum):
    """Keyword family a breaking change belongs to."""
    STRING = "string"
    NUMBER = "number"
    ARRAY = "array"
    PROPERTIES = "properties"
    DEPENDENCIES = "dependencies"
    ENUM = "enum"
    COMBINED = "combined"
    TYPE = "type"
    RECORD = "record"
    MESSAGE = "message"


class BreakingChange(str, Enum):
    """Named structural violation."""

    # Strings
    MAX_LENGTH_ADDED = "MAX_LENGTH_ADDED"
    MAX_LENGTH_DECREASED = "MAX_LENGTH_DECREASED"
    MIN_LENGTH_ADDED = "MIN_LENGTH_ADDED"
    MIN_LENGTH_INCREASED = "MIN_LENGTH_INCREASED"
    PATTERN_ADDED = "PATTERN_ADDED"
    PATTERN_CHANGED = "PATTERN_CHANGED"

    # Numbers
    MAXIMUM_ADDED = "MAXIMUM_ADDED"
    MAXIMUM_DECREASED = "MAXIMUM_DECREASED"
    EXCLUSIVE_MAXIMUM_ADDED = "EXCLUSIVE_MAXIMUM_ADDED"
    EXCLUSIVE_MAXIMUM_DECREASED = "EXCLUSIVE_MAXIMUM_DECREASED"
    MINIMUM_ADDED = "MINIMUM_ADDED"
    MINIMUM_INCREASED = "MINIMUM_INCREASED"
    EXCLUSIVE_MINIMUM_ADDED = "EXCLUSIVE_MINIMUM_ADDED"
    EXCLUSIVE_MINIMUM_INCREASED = "EXCLUSIVE_MINIMUM_INCREASED"
    MULTIPLE_OF_ADDED = "MULTIPLE_OF_ADDED"
    MULTIPLE_OF_INCREASED = "MULTIPLE_OF_INCREASED"
    MULTIPLE_OF_NON_DIVISIBLE_CHANGE = "MULTIPLE_OF_NON_DIVISIBLE_CHANGE"
    TYPE_NARROWED = "TYPE_NARROWED"

    # Arrays
    MAX_ITEMS_ADDED = "MAX_ITEMS_ADDED"
    MAX_ITEMS_DECREASED = "MAX_ITEMS_DECREASED"
    MIN_ITEMS_ADDED = "MIN_ITEMS_ADDED"
    MIN_ITEMS_INCREASED = "MIN_ITEMS_INCREASED"
    UNIQUE_ITEMS_ADDED = "UNIQUE_ITEMS_ADDED"
    ADDITIONAL_ITEMS_REMOVED = "ADDITIONAL_ITEMS_REMOVED"
    ADDITIONAL_ITEMS_NARROWED = "ADDITIONAL_ITEMS_NARROWED"
    ARRAY_ITEM_ADDED = "ARRAY_ITEM_ADDED"
    ARRAY_ITEM_REMOVED = "ARRAY_ITEM_REMOVED"
    ITEMS_NARROWED = "ITEMS_NARROWED"

    # Properties
    PROPERTY_REMOVED_NOT_PART_OF_DYNAMIC_PROPERTY_SET_WITH_CONDITION = (
        "PROPERTY_REMOVED_NOT_PART_OF_DYNAMIC_PROPERTY_SET_WITH_CONDITION"
    )
    PROPERTY_REMOVED_FROM_STATIC_PROPERTY_SET = "PROPERTY_REMOVED_FROM_STATIC_PROPERTY_SET"
    PROPERTY_ADDED_TO_DYNAMIC_PROPERTY_SET = "PROPERTY_ADDED_TO_DYNAMIC_PROPERTY_SET"
    PROPERTY_ADDED_NOT_PART_OF_DYNAMIC_PROPERTY_SET_WITH_CONDITION = (
        "PROPERTY_ADDED_NOT_PART_OF_DYNAMIC_PROPERTY_SET_WITH_CONDITION"
    )
    REQUIRED_PROPERTY_ADDED_WITHOUT_DEFAULT = "REQUIRED_PROPERTY_ADDED_WITHOUT_DEFAULT"
    MAX_PROPERTIES_ADDED = "MAX_PROPERTIES_ADDED"
    MAX_PROPERTIES_LIMIT_DECREASED = "MAX_PROPERTIES_LIMIT_DECREASED"
    MIN_PROPERTIES_ADDED = "MIN_PROPERTIES_ADDED"
    MIN_PROPERTIES_LIMIT_INCREASED = "MIN_PROPERTIES_LIMIT_INCREASED"
    ADDITIONAL_PROPERTIES_REMOVED = "ADDITIONAL_PROPERTIES_REMOVED"
    ADDITIONAL_PROPERTIES_NARROWED = "ADDITIONAL_PROPERTIES_NARROWED"
    PROPERTY_PATTERN_NARROWED = "PROPERTY_PATTERN_NARROWED"

    # Dependencies
    DEPENDENCY_SECTION_ADDED = "DEPENDENCY_SECTION_ADDED"
    DEPENDENCY_ADDED_IN_ARRAY_FORM = "DEPENDENCY_ADDED_IN_ARRAY_FORM"
    DEPENDENCY_ARRAY_NARROWED = "DEPENDENCY_ARRAY_NARROWED"
    DEPENDENCY_ADDED_IN_SCHEMA_FORM = "DEPENDENCY_ADDED_IN_SCHEMA_FORM"
    DEPENDENCY_IN_SCHEMA_FORM_MODIFIED = "DEPENDENCY_IN_SCHEMA_FORM_MODIFIED"
    DEPENDENCY_FORM_CHANGED = "DEPENDENCY_FORM_CHANGED"

    # Enum
    ENUM_ADDED = "ENUM_ADDED"
    ENUM_ARRAY_NARROWED = "ENUM_ARRAY_NARROWED"

    # Combined (allOf / anyOf / oneOf)
    COMBINED_TYPE_ADDED = "COMBINED_TYPE_ADDED"
    COMBINED_TYPE_SUBSCHEMAS_CHANGED = "COMBINED_TYPE_SUBSCHEMAS_CHANGED"
    COMPOSITION_METHOD_CHANGED = "COMPOSITION_METHOD_CHANGED"
    PRODUCT_TYPE_EXTENDED = "PRODUCT_TYPE_EXTENDED"
    SUM_TYPE_NARROWED = "SUM_TYPE_NARROWED"

    # Type level
    TYPE_CHANGED = "TYPE_CHANGED"
    FORMAT_CHANGED = "FORMAT_CHANGED"
    SCHEMA_DISALLOWS_ALL = "SCHEMA_DISALLOWS_ALL"

    # Avro records
    FIELD_REMOVED = "FIELD_REMOVED"
    FIELD_ADDED_WITHOUT_DEFAULT = "FIELD_ADDED_WITHOUT_DEFAULT"
    FIELD_TYPE_CHANGED = "FIELD_TYPE_CHANGED"
    ENUM_SYMBOL_REMOVED = "ENUM_SYMBOL_REMOVED"

    # Protobuf messages
    MESSAGE_REMOVED = "MESSAGE_REMOVED"
    FIELD_LABEL_CHANGED = "FIELD_LABEL_CHANGED"
    FIELD_NUMBER_REUSED = "FIELD_NUMBER_REUSED"

    @property
    def category(self) -> ChangeCategory:
        return _CATEGORIES[self]

    @property
    def is_weak(self) -> bool:
        """Milder variant of a stricter sibling kind; still breaking."""
        return self in _WEAK_CHANGES


def _categorize() -> Dict[BreakingChange, ChangeCategory]:
    prefixes = [
        (("MAX_LENGTH", "MIN_LENGTH", "PATTERN"), ChangeCategory.STRING),
        (("MAXIMUM", "MINIMUM", "EXCLUSIVE", "MULTIPLE_OF", "TYPE_NARROWED"), ChangeCategory.NUMBER),
        (("MAX_ITEMS", "MIN_ITEMS", "UNIQUE_ITEMS", "ADDITIONAL_ITEMS", "ARRAY_ITEM", "ITEMS"), ChangeCategory.ARRAY),
        (("PROPERTY", "REQUIRED", "MAX_PROPERTIES", "MIN_PROPERTIES", "ADDITIONAL_PROPERTIES"), ChangeCategory.PROPERTIES),
        (("DEPENDENCY",), ChangeCategory.DEPENDENCIES),
        (("ENUM_ADDED", "ENUM_ARRAY"), ChangeCategory.ENUM),
        (("COMBINED", "COMPOSITION", "PRODUCT", "SUM"), ChangeCategory.COMBINED),
        (("FIELD", "ENUM_SYMBOL"), ChangeCategory.RECORD),
        (("MESSAGE",), ChangeCategory.MESSAGE),
    ]
    categories: Dict[BreakingChange, ChangeCategory] = {}
    for change in BreakingChange:
        categories[change] = ChangeCategory.TYPE
        for names, category in prefixes:
            if change.name.startswith(names):
                categories[change] = category
                break
    # Protobuf-only kinds share the FIELD prefix with Avro records
    categories[BreakingChange.FIELD_LABEL_CHANGED] = ChangeCategory.MESSAGE
    categories[BreakingChange.FIELD_NUMBER_REUSED] = ChangeCategory.MESSAGE
    return categories


_CATEGORIES = _categorize()

_WEAK_CHANGES: FrozenSet[BreakingChange] = frozenset({
    BreakingChange.MULTIPLE_OF_INCREASED,
})


def changes_in(category: ChangeCategory) -> FrozenSet[BreakingChange]:
    """All kinds belonging to a keyword family."""
    return frozenset(c for c, cat in _CATEGORIES.items() if cat == category)
