"""JSON Schema structural comparison.

Compares a candidate JSON Schema against a baseline one and reports the first
breaking change found. Rules are grouped per keyword family (string, number,
array, object properties, dependencies, enum and combined schemas); each
family returns as soon as one of its rules fires.

Dispatch order for a node pair:

1. ``enum`` when either side declares it.
2. ``allOf``/``anyOf``/``oneOf`` when either side declares one of them.
3. The rule tables of the declared ``type`` (or, for untyped nodes, of the
   keyword families that appear on either side).
"""

from __future__ import annotations

import json
import logging
from decimal import Decimal
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional

from sregistry.core.config import get_settings
from sregistry.core.schema_registry.breaking_changes import BreakingChange
from sregistry.core.schema_registry.compatibility import StructuralComparator
from sregistry.core.schema_registry.schema import JSONSchemaParser, SerializationFormat

logger = logging.getLogger(__name__)

Rule = Callable[[Dict[str, Any], Dict[str, Any]], Optional[BreakingChange]]

NUMERIC_TYPES = frozenset({"number", "integer"})
COMPOSITION_KEYWORDS = ("anyOf", "oneOf", "allOf")

# Keyword families used to infer the kind of an untyped node
KIND_KEYWORDS: Dict[str, FrozenSet[str]] = {
    "string": frozenset({"minLength", "maxLength", "pattern"}),
    "number": frozenset({"minimum", "maximum", "exclusiveMinimum", "exclusiveMaximum", "multipleOf"}),
    "array": frozenset({"items", "additionalItems", "uniqueItems", "minItems", "maxItems"}),
    "object": frozenset({
        "properties", "patternProperties", "additionalProperties", "required",
        "minProperties", "maxProperties", "dependencies",
    }),
}


def _dec(value: Any) -> Decimal:
    # str() keeps 0.1 as 0.1 instead of its binary expansion
    return Decimal(str(value))


def _canonical(value: Any) -> str:
    return json.dumps(value, sort_keys=True)


def has_dynamic_property_set(node: Dict[str, Any]) -> bool:
    """Object accepts any extra property (no closing keyword, or ``additionalProperties: true``)."""
    if "patternProperties" in node:
        return False
    return node.get("additionalProperties", True) is True


def has_static_property_set(node: Dict[str, Any]) -> bool:
    """Object accepts exactly its declared properties."""
    return "patternProperties" not in node and node.get("additionalProperties") is False


def _has_default(subschema: Any) -> bool:
    return isinstance(subschema, dict) and "default" in subschema


class JsonSchemaComparator(StructuralComparator):
    """Structural comparator for the JSON Schema vocabulary.

    ``compare`` is pure: it never mutates either document and keeps no state
    between calls, so one instance may be shared across threads.

    Args:
        type_change_is_breaking: report ``TYPE_CHANGED`` when the declared
            ``type`` sets are unrelated. Defaults to
            ``Settings.JSON_TYPE_CHANGE_IS_BREAKING``.
    """

    serialization_format = SerializationFormat.JSON

    def __init__(self, type_change_is_breaking: Optional[bool] = None):
        if type_change_is_breaking is None:
            type_change_is_breaking = get_settings().JSON_TYPE_CHANGE_IS_BREAKING
        self.type_change_is_breaking = type_change_is_breaking
        self._parser = JSONSchemaParser()
        self._kind_rules: Dict[str, Rule] = {
            "string": self._check_string,
            "number": self._check_number,
            "array": self._check_array,
            "object": self._check_object,
        }

    def compare(self, candidate: Any, baseline: Any) -> Optional[BreakingChange]:
        """Compare two parsed JSON Schema documents.

        Raises:
            MalformedSchemaError: either document uses a keyword with the wrong shape.
        """
        self._parser.check_document(candidate)
        self._parser.check_document(baseline)
        change = self._compare(candidate, baseline)
        if change is not None:
            logger.debug(f"JSON schema comparison found {change.value}")
        return change

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def _compare(self, candidate: Any, baseline: Any) -> Optional[BreakingChange]:
        # Boolean schemas: true accepts everything, false accepts nothing
        if candidate is True:
            return None
        if baseline is False:
            return None
        if candidate is False:
            return BreakingChange.SCHEMA_DISALLOWS_ALL
        if baseline is True:
            baseline = {}

        if "enum" in candidate or "enum" in baseline:
            change = self._check_enum(candidate, baseline)
            if change is not None:
                return change

        if any(k in candidate or k in baseline for k in COMPOSITION_KEYWORDS):
            change = self._check_combined(candidate, baseline)
            if change is not None:
                return change

        return self._check_types(candidate, baseline)

    def _declared_types(self, node: Dict[str, Any]) -> Optional[FrozenSet[str]]:
        declared = node.get("type")
        if declared is None:
            return None
        if isinstance(declared, str):
            return frozenset({declared})
        return frozenset(declared)

    def _covers(self, wider: FrozenSet[str], narrower: FrozenSet[str]) -> bool:
        return all(t in wider or (t == "integer" and "number" in wider) for t in narrower)

    def _implied_kinds(self, *nodes: Dict[str, Any]) -> List[str]:
        present = set()
        for node in nodes:
            present.update(node)
        return [kind for kind, keywords in KIND_KEYWORDS.items() if present & keywords]

    def _rule_kinds(self, types: Iterable[str]) -> List[str]:
        kinds = []
        for t in sorted(types):
            kind = "number" if t in NUMERIC_TYPES else t
            if kind in self._kind_rules and kind not in kinds:
                kinds.append(kind)
        return kinds

    def _check_types(
        self,
        candidate: Dict[str, Any],
        baseline: Dict[str, Any],
    ) -> Optional[BreakingChange]:
        candidate_types = self._declared_types(candidate)
        baseline_types = self._declared_types(baseline)

        if candidate_types is None and baseline_types is None:
            kinds = self._implied_kinds(candidate, baseline)
        elif candidate_types == baseline_types:
            kinds = self._rule_kinds(candidate_types)
        elif (
            candidate_types is not None
            and baseline_types is not None
            and candidate_types <= NUMERIC_TYPES
            and baseline_types <= NUMERIC_TYPES
        ):
            # number <-> integer is handled by the number rules
            kinds = ["number"]
        elif baseline_types is not None and (
            candidate_types is None or self._covers(candidate_types, baseline_types)
        ):
            # Candidate accepts every type the baseline did
            kinds = self._rule_kinds(baseline_types)
        elif self.type_change_is_breaking:
            return BreakingChange.TYPE_CHANGED
        else:
            return None

        for kind in kinds:
            change = self._kind_rules[kind](candidate, baseline)
            if change is not None:
                return change
        return None

    def _first_change(
        self,
        rules: Iterable[Rule],
        candidate: Dict[str, Any],
        baseline: Dict[str, Any],
    ) -> Optional[BreakingChange]:
        for rule in rules:
            change = rule(candidate, baseline)
            if change is not None:
                return change
        return None

    # ------------------------------------------------------------------
    # Strings
    # ------------------------------------------------------------------

    def _check_string(self, candidate: Dict[str, Any], baseline: Dict[str, Any]) -> Optional[BreakingChange]:
        if "minLength" in candidate:
            if "minLength" not in baseline:
                return BreakingChange.MIN_LENGTH_ADDED
            if candidate["minLength"] > baseline["minLength"]:
                return BreakingChange.MIN_LENGTH_INCREASED
        if "maxLength" in candidate:
            if "maxLength" not in baseline:
                return BreakingChange.MAX_LENGTH_ADDED
            if candidate["maxLength"] < baseline["maxLength"]:
                return BreakingChange.MAX_LENGTH_DECREASED
        if "pattern" in candidate:
            if "pattern" not in baseline:
                return BreakingChange.PATTERN_ADDED
            if candidate["pattern"] != baseline["pattern"]:
                return BreakingChange.PATTERN_CHANGED
        return None

    # ------------------------------------------------------------------
    # Numbers
    # ------------------------------------------------------------------

    def _check_number(self, candidate: Dict[str, Any], baseline: Dict[str, Any]) -> Optional[BreakingChange]:
        return self._first_change(
            (self._check_maximum, self._check_minimum, self._check_multiple_of, self._check_integer_narrowing),
            candidate,
            baseline,
        )

    def _check_maximum(self, candidate: Dict[str, Any], baseline: Dict[str, Any]) -> Optional[BreakingChange]:
        if "maximum" in candidate:
            if "maximum" not in baseline:
                return BreakingChange.MAXIMUM_ADDED
            if _dec(candidate["maximum"]) < _dec(baseline["maximum"]):
                return BreakingChange.MAXIMUM_DECREASED
        return self._check_exclusive_bound(
            candidate,
            baseline,
            keyword="exclusiveMaximum",
            inclusive_keyword="maximum",
            tighter=lambda new, old: new < old,
            added=BreakingChange.EXCLUSIVE_MAXIMUM_ADDED,
            tightened=BreakingChange.EXCLUSIVE_MAXIMUM_DECREASED,
        )

    def _check_minimum(self, candidate: Dict[str, Any], baseline: Dict[str, Any]) -> Optional[BreakingChange]:
        if "minimum" in candidate:
            if "minimum" not in baseline:
                return BreakingChange.MINIMUM_ADDED
            if _dec(candidate["minimum"]) > _dec(baseline["minimum"]):
                return BreakingChange.MINIMUM_INCREASED
        return self._check_exclusive_bound(
            candidate,
            baseline,
            keyword="exclusiveMinimum",
            inclusive_keyword="minimum",
            tighter=lambda new, old: new > old,
            added=BreakingChange.EXCLUSIVE_MINIMUM_ADDED,
            tightened=BreakingChange.EXCLUSIVE_MINIMUM_INCREASED,
        )

    def _check_exclusive_bound(
        self,
        candidate: Dict[str, Any],
        baseline: Dict[str, Any],
        keyword: str,
        inclusive_keyword: str,
        tighter: Callable[[Decimal, Decimal], bool],
        added: BreakingChange,
        tightened: BreakingChange,
    ) -> Optional[BreakingChange]:
        """Exclusive bounds come in two forms: a boolean modifier of the
        inclusive keyword (draft 4) or a number of their own (draft 6+)."""
        new = candidate.get(keyword)
        old = baseline.get(keyword)
        if new is None or new is False:
            return None

        if new is True:
            # Boolean form: the inclusive bound becomes exclusive
            return None if old is True else added

        if old is None or old is False:
            return added
        if old is True:
            # Baseline bound lives in the inclusive keyword, exclusive since before
            if inclusive_keyword not in baseline:
                return added
            if tighter(_dec(new), _dec(baseline[inclusive_keyword])):
                return tightened
            return None
        if tighter(_dec(new), _dec(old)):
            return tightened
        return None

    def _check_multiple_of(self, candidate: Dict[str, Any], baseline: Dict[str, Any]) -> Optional[BreakingChange]:
        if "multipleOf" not in candidate:
            return None
        if "multipleOf" not in baseline:
            return BreakingChange.MULTIPLE_OF_ADDED
        new, old = _dec(candidate["multipleOf"]), _dec(baseline["multipleOf"])
        if new == old:
            return None
        if new % old == 0:
            return BreakingChange.MULTIPLE_OF_INCREASED
        if old % new != 0:
            return BreakingChange.MULTIPLE_OF_NON_DIVISIBLE_CHANGE
        # The new step divides the old one: every old value is still accepted
        return None

    def _check_integer_narrowing(
        self,
        candidate: Dict[str, Any],
        baseline: Dict[str, Any],
    ) -> Optional[BreakingChange]:
        candidate_types = self._declared_types(candidate) or frozenset()
        baseline_types = self._declared_types(baseline) or frozenset()
        if (
            "integer" in candidate_types
            and "number" not in candidate_types
            and "number" in baseline_types
        ):
            return BreakingChange.TYPE_NARROWED
        return None

    # ------------------------------------------------------------------
    # Arrays
    # ------------------------------------------------------------------

    def _check_array(self, candidate: Dict[str, Any], baseline: Dict[str, Any]) -> Optional[BreakingChange]:
        return self._first_change(
            (self._check_tuple_items, self._check_items_form_change, self._check_unique_items,
             self._check_item_counts, self._check_additional_items, self._check_items_schema),
            candidate,
            baseline,
        )

    def _check_tuple_items(self, candidate: Dict[str, Any], baseline: Dict[str, Any]) -> Optional[BreakingChange]:
        new_items, old_items = candidate.get("items"), baseline.get("items")
        if not isinstance(new_items, list) or not isinstance(old_items, list):
            return None
        if len(new_items) < len(old_items):
            return BreakingChange.ARRAY_ITEM_REMOVED
        if len(new_items) > len(old_items):
            return BreakingChange.ARRAY_ITEM_ADDED
        for new_item, old_item in zip(new_items, old_items):
            change = self._compare(new_item, old_item)
            if change is not None:
                return change
        return None

    def _check_items_form_change(
        self,
        candidate: Dict[str, Any],
        baseline: Dict[str, Any],
    ) -> Optional[BreakingChange]:
        new_items, old_items = candidate.get("items"), baseline.get("items")
        if new_items is None or isinstance(new_items, list) == isinstance(old_items, list):
            return None

        # Positions past a tuple fall to additionalItems; absent means true
        if isinstance(new_items, list):
            old_schema = True if old_items is None else old_items
            pairs = [(item, old_schema) for item in new_items]
            pairs.append((candidate.get("additionalItems", True), old_schema))
        else:
            pairs = [(new_items, item) for item in old_items]
            pairs.append((new_items, baseline.get("additionalItems", True)))

        for new_item, old_item in pairs:
            if self._compare(new_item, old_item) is not None:
                return BreakingChange.ITEMS_NARROWED
        return None

    def _check_unique_items(self, candidate: Dict[str, Any], baseline: Dict[str, Any]) -> Optional[BreakingChange]:
        if candidate.get("uniqueItems") is True and baseline.get("uniqueItems") is not True:
            return BreakingChange.UNIQUE_ITEMS_ADDED
        return None

    def _check_item_counts(self, candidate: Dict[str, Any], baseline: Dict[str, Any]) -> Optional[BreakingChange]:
        if "maxItems" in candidate:
            if "maxItems" not in baseline:
                return BreakingChange.MAX_ITEMS_ADDED
            if candidate["maxItems"] < baseline["maxItems"]:
                return BreakingChange.MAX_ITEMS_DECREASED
        if "minItems" in candidate:
            if "minItems" not in baseline:
                return BreakingChange.MIN_ITEMS_ADDED
            if candidate["minItems"] > baseline["minItems"]:
                return BreakingChange.MIN_ITEMS_INCREASED
        return None

    def _check_additional_items(
        self,
        candidate: Dict[str, Any],
        baseline: Dict[str, Any],
    ) -> Optional[BreakingChange]:
        new = candidate.get("additionalItems")
        old = baseline.get("additionalItems")
        if new is False:
            return None if old is False else BreakingChange.ADDITIONAL_ITEMS_REMOVED
        if isinstance(new, dict):
            if old is None or old is True:
                return BreakingChange.ADDITIONAL_ITEMS_NARROWED
            if isinstance(old, dict) and self._compare(new, old) is not None:
                return BreakingChange.ADDITIONAL_ITEMS_NARROWED
        return None

    def _check_items_schema(self, candidate: Dict[str, Any], baseline: Dict[str, Any]) -> Optional[BreakingChange]:
        new, old = candidate.get("items"), baseline.get("items")
        if new is None or isinstance(new, list) or isinstance(old, list):
            return None
        if old is None:
            return BreakingChange.ITEMS_NARROWED if self._compare(new, True) is not None else None
        return self._compare(new, old)

    # ------------------------------------------------------------------
    # Objects
    # ------------------------------------------------------------------

    def _check_object(self, candidate: Dict[str, Any], baseline: Dict[str, Any]) -> Optional[BreakingChange]:
        change = self._check_properties(candidate, baseline)
        if change is not None:
            return change
        return self._check_dependencies(candidate, baseline)

    def _check_properties(self, candidate: Dict[str, Any], baseline: Dict[str, Any]) -> Optional[BreakingChange]:
        new_props = candidate.get("properties", {})
        old_props = baseline.get("properties", {})
        new_required = set(candidate.get("required", []))

        # Candidate's properties first, then the ones only the baseline knows
        for name in dict.fromkeys([*new_props, *old_props]):
            if name not in new_props:
                change = self._check_removed_property(candidate, old_props[name])
            elif name not in old_props:
                change = self._check_added_property(
                    baseline, new_props[name], required=name in new_required,
                )
            else:
                change = self._compare(new_props[name], old_props[name])
            if change is not None:
                return change

        return self._first_change(
            (self._check_property_counts, self._check_additional_properties,
             self._check_pattern_properties, self._check_required),
            candidate,
            baseline,
        )

    def _check_removed_property(
        self,
        candidate: Dict[str, Any],
        removed: Any,
    ) -> Optional[BreakingChange]:
        if has_static_property_set(candidate):
            return BreakingChange.PROPERTY_REMOVED_FROM_STATIC_PROPERTY_SET
        additional = candidate.get("additionalProperties")
        # Pattern properties are assumed to match the removed name
        if isinstance(additional, dict) and self._compare(additional, removed) is not None:
            return BreakingChange.PROPERTY_REMOVED_NOT_PART_OF_DYNAMIC_PROPERTY_SET_WITH_CONDITION
        return None

    def _check_added_property(
        self,
        baseline: Dict[str, Any],
        added: Any,
        required: bool,
    ) -> Optional[BreakingChange]:
        if has_dynamic_property_set(baseline):
            return BreakingChange.PROPERTY_ADDED_TO_DYNAMIC_PROPERTY_SET
        if required and not _has_default(added):
            return BreakingChange.REQUIRED_PROPERTY_ADDED_WITHOUT_DEFAULT
        additional = baseline.get("additionalProperties")
        if isinstance(additional, dict) and self._compare(added, additional) is not None:
            return BreakingChange.PROPERTY_ADDED_NOT_PART_OF_DYNAMIC_PROPERTY_SET_WITH_CONDITION
        return None

    def _check_property_counts(
        self,
        candidate: Dict[str, Any],
        baseline: Dict[str, Any],
    ) -> Optional[BreakingChange]:
        if "minProperties" in candidate:
            if "minProperties" not in baseline:
                return BreakingChange.MIN_PROPERTIES_ADDED
            if candidate["minProperties"] > baseline["minProperties"]:
                return BreakingChange.MIN_PROPERTIES_LIMIT_INCREASED
        if "maxProperties" in candidate:
            if "maxProperties" not in baseline:
                return BreakingChange.MAX_PROPERTIES_ADDED
            if candidate["maxProperties"] < baseline["maxProperties"]:
                return BreakingChange.MAX_PROPERTIES_LIMIT_DECREASED
        return None

    def _check_additional_properties(
        self,
        candidate: Dict[str, Any],
        baseline: Dict[str, Any],
    ) -> Optional[BreakingChange]:
        new = candidate.get("additionalProperties")
        old = baseline.get("additionalProperties")
        if new is None:
            # Absent and ``true`` mean the same thing
            if old is not None and old is not True:
                return BreakingChange.ADDITIONAL_PROPERTIES_REMOVED
            return None
        if self._compare(new, True if old is None else old) is not None:
            return BreakingChange.ADDITIONAL_PROPERTIES_NARROWED
        return None

    def _check_pattern_properties(
        self,
        candidate: Dict[str, Any],
        baseline: Dict[str, Any],
    ) -> Optional[BreakingChange]:
        """Names matching a pattern must still be accepted.

        A pattern kept from the baseline is compared with its old sub-schema.
        A new pattern is compared with the baseline's ``additionalProperties``,
        which governed those names before.
        """
        new_patterns = candidate.get("patternProperties", {})
        old_patterns = baseline.get("patternProperties", {})
        old_additional = baseline.get("additionalProperties", True)
        for pattern, subschema in new_patterns.items():
            previous = old_patterns.get(pattern, old_additional)
            if self._compare(subschema, previous) is not None:
                return BreakingChange.PROPERTY_PATTERN_NARROWED
        return None

    def _check_required(self, candidate: Dict[str, Any], baseline: Dict[str, Any]) -> Optional[BreakingChange]:
        new_props = candidate.get("properties", {})
        old_required = set(baseline.get("required", []))
        for name in candidate.get("required", []):
            if name not in old_required and not _has_default(new_props.get(name)):
                return BreakingChange.REQUIRED_PROPERTY_ADDED_WITHOUT_DEFAULT
        return None

    # ------------------------------------------------------------------
    # Dependencies
    # ------------------------------------------------------------------

    def _check_dependencies(self, candidate: Dict[str, Any], baseline: Dict[str, Any]) -> Optional[BreakingChange]:
        new_deps = candidate.get("dependencies")
        old_deps = baseline.get("dependencies")
        if not new_deps:
            return None
        if old_deps is None:
            return BreakingChange.DEPENDENCY_SECTION_ADDED

        for name, new_dep in new_deps.items():
            if name not in old_deps:
                if isinstance(new_dep, list):
                    return BreakingChange.DEPENDENCY_ADDED_IN_ARRAY_FORM
                return BreakingChange.DEPENDENCY_ADDED_IN_SCHEMA_FORM

            old_dep = old_deps[name]
            if isinstance(new_dep, list) != isinstance(old_dep, list):
                return BreakingChange.DEPENDENCY_FORM_CHANGED

            if isinstance(new_dep, list):
                if not set(new_dep).issuperset(old_dep):
                    return BreakingChange.DEPENDENCY_ARRAY_NARROWED
            elif isinstance(new_dep, dict) and isinstance(old_dep, dict):
                if self._check_properties(new_dep, old_dep) is not None:
                    return BreakingChange.DEPENDENCY_IN_SCHEMA_FORM_MODIFIED
            elif self._compare(new_dep, old_dep) is not None:
                return BreakingChange.DEPENDENCY_IN_SCHEMA_FORM_MODIFIED
        return None

    # ------------------------------------------------------------------
    # Enum
    # ------------------------------------------------------------------

    def _check_enum(self, candidate: Dict[str, Any], baseline: Dict[str, Any]) -> Optional[BreakingChange]:
        if "enum" not in candidate:
            return None
        if "enum" not in baseline:
            return BreakingChange.ENUM_ADDED
        allowed = {_canonical(v) for v in candidate["enum"]}
        if any(_canonical(v) not in allowed for v in baseline["enum"]):
            return BreakingChange.ENUM_ARRAY_NARROWED
        return None

    # ------------------------------------------------------------------
    # Combined schemas
    # ------------------------------------------------------------------

    def _composition(self, node: Dict[str, Any]) -> Optional[str]:
        for keyword in COMPOSITION_KEYWORDS:
            if keyword in node:
                return keyword
        return None

    def _check_combined(self, candidate: Dict[str, Any], baseline: Dict[str, Any]) -> Optional[BreakingChange]:
        new_keyword = self._composition(candidate)
        old_keyword = self._composition(baseline)
        if new_keyword is None:
            return None
        if old_keyword is None:
            return BreakingChange.COMBINED_TYPE_ADDED
        if new_keyword != old_keyword:
            return BreakingChange.COMPOSITION_METHOD_CHANGED

        new_branches = candidate[new_keyword]
        old_branches = baseline[old_keyword]

        if new_keyword == "allOf":
            # Data must satisfy every candidate branch
            if len(new_branches) > len(old_branches):
                return BreakingChange.PRODUCT_TYPE_EXTENDED
            for new_branch in new_branches:
                if not any(self._compare(new_branch, old) is None for old in old_branches):
                    return BreakingChange.COMBINED_TYPE_SUBSCHEMAS_CHANGED
            return None

        # anyOf / oneOf: every old alternative must still be accepted somewhere
        if len(new_branches) < len(old_branches):
            return BreakingChange.SUM_TYPE_NARROWED
        for old_branch in old_branches:
            if not any(self._compare(new, old_branch) is None for new in new_branches):
                return BreakingChange.COMBINED_TYPE_SUBSCHEMAS_CHANGED
        return None
