"""Compatibility Policy Evaluation.

Decides whether a candidate schema may join a group's history under a
compatibility policy. The evaluator only reads: it is handed the history and
never touches the store.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from sregistry.core.schema_registry.breaking_changes import BreakingChange
from sregistry.core.schema_registry.compatibility import (
    StructuralComparator,
    get_comparator,
)
from sregistry.core.schema_registry.schema import (
    CompatibilityMode,
    CompatibilityPolicy,
    SchemaInfo,
    SchemaWithVersion,
    SerializationFormat,
    VersionInfo,
)
from sregistry.utils import metrics

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompatibilityVerdict:
    """Outcome of a policy evaluation.

    A rejected verdict names the breaking change and the historical version
    it conflicts with, or is flagged ``policy_rejected`` when the policy
    itself forbids new versions.
    """
    admitted: bool
    reason: Optional[BreakingChange] = None
    failing_version: Optional[VersionInfo] = None
    policy_rejected: bool = False

    def __bool__(self) -> bool:
        return self.admitted

    @classmethod
    def admit(cls) -> "CompatibilityVerdict":
        return cls(admitted=True)

    @classmethod
    def reject(cls, reason: BreakingChange, failing_version: VersionInfo) -> "CompatibilityVerdict":
        return cls(admitted=False, reason=reason, failing_version=failing_version)

    @classmethod
    def deny(cls) -> "CompatibilityVerdict":
        return cls(admitted=False, policy_rejected=True)

    def describe(self) -> str:
        if self.admitted:
            return "compatible"
        if self.policy_rejected:
            return "policy denies new versions"
        reason = self.reason.value if self.reason else "incompatible"
        if self.failing_version is None:
            return reason
        return (
            f"{reason} against {self.failing_version.type} "
            f"v{self.failing_version.version} (ordinal {self.failing_version.ordinal})"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "admitted": self.admitted,
            "reason": self.reason.value if self.reason else None,
            "failing_version": self.failing_version.to_dict() if self.failing_version else None,
            "policy_rejected": self.policy_rejected,
        }


class CompatibilityPolicyEvaluator:
    """Selects the history a policy applies to and runs pairwise comparisons.

    One comparator is used per serialization format, chosen by the
    candidate's declared format.
    """

    def __init__(
        self,
        comparators: Optional[Dict[SerializationFormat, StructuralComparator]] = None,
        **comparator_options: Any,
    ):
        self._comparators: Dict[SerializationFormat, StructuralComparator] = dict(comparators or {})
        self._comparator_options = comparator_options

    def comparator_for(self, serialization_format: SerializationFormat) -> StructuralComparator:
        comparator = self._comparators.get(serialization_format)
        if comparator is None:
            options = self._comparator_options if serialization_format == SerializationFormat.JSON else {}
            comparator = get_comparator(serialization_format, **options)
            self._comparators[serialization_format] = comparator
        return comparator

    def evaluate(
        self,
        candidate: SchemaInfo,
        history: Sequence[SchemaWithVersion],
        policy: CompatibilityPolicy,
    ) -> CompatibilityVerdict:
        """Evaluate ``candidate`` against ``history`` (oldest first, live versions only).

        Raises:
            MalformedSchemaError: the candidate or a selected historical schema
                cannot be parsed.
        """
        start = time.perf_counter()
        verdict = self._evaluate(candidate, history, policy)
        metrics.compatibility_evaluation_seconds.labels(mode=policy.mode.value).observe(
            time.perf_counter() - start
        )
        metrics.compatibility_checks_total.labels(
            mode=policy.mode.value,
            verdict="admitted" if verdict.admitted else "rejected",
        ).inc()
        if verdict.reason is not None:
            metrics.breaking_changes_total.labels(
                kind=verdict.reason.value, category=verdict.reason.category.value
            ).inc()

        if verdict.admitted:
            logger.debug(f"Schema {candidate.type} admitted under {policy.mode.value}")
        else:
            logger.info(f"Schema {candidate.type} rejected under {policy.mode.value}: {verdict.describe()}")
        return verdict

    def select_history(
        self,
        history: Sequence[SchemaWithVersion],
        policy: CompatibilityPolicy,
    ) -> List[SchemaWithVersion]:
        """Historical versions a policy compares against, oldest first."""
        if policy.mode in (CompatibilityMode.ALLOW_ANY, CompatibilityMode.DENY_ALL):
            return []
        if policy.till is not None:
            return [h for h in history if h.version.ordinal >= policy.till.ordinal]
        if policy.is_transitive:
            return list(history)
        return list(history[-1:])

    def _evaluate(
        self,
        candidate: SchemaInfo,
        history: Sequence[SchemaWithVersion],
        policy: CompatibilityPolicy,
    ) -> CompatibilityVerdict:
        if policy.mode == CompatibilityMode.ALLOW_ANY:
            return CompatibilityVerdict.admit()
        if policy.mode == CompatibilityMode.DENY_ALL:
            # The first version of a group has nothing to be compatible with
            return CompatibilityVerdict.deny() if history else CompatibilityVerdict.admit()

        comparator = self.comparator_for(candidate.serialization_format)
        for entry in self.select_history(history, policy):
            if policy.checks_backward:
                change = self._pair_change(comparator, candidate, entry.schema)
                if change is not None:
                    return CompatibilityVerdict.reject(change, entry.version)
            if policy.checks_forward:
                change = self._pair_change(comparator, entry.schema, candidate)
                if change is not None:
                    return CompatibilityVerdict.reject(change, entry.version)
        return CompatibilityVerdict.admit()

    def _pair_change(
        self,
        comparator: StructuralComparator,
        reader: SchemaInfo,
        writer: SchemaInfo,
    ) -> Optional[BreakingChange]:
        return comparator.compare_schemas(reader, writer)

    def can_read(self, reader: SchemaInfo, writers: Sequence[SchemaInfo]) -> bool:
        """Whether ``reader`` can read data written with every one of ``writers``."""
        comparator = self.comparator_for(reader.serialization_format)
        return all(self._pair_change(comparator, reader, writer) is None for writer in writers)

    def can_be_read(self, writer: SchemaInfo, readers: Sequence[SchemaInfo]) -> bool:
        """Whether data written with ``writer`` can be read by every one of ``readers``."""
        comparator = self.comparator_for(writer.serialization_format)
        return all(self._pair_change(comparator, reader, writer) is None for reader in readers)

    def can_mutually_read(self, schema: SchemaInfo, others: Sequence[SchemaInfo]) -> bool:
        return self.can_read(schema, others) and self.can_be_read(schema, others)
