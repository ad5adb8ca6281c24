"""Prometheus metrics registration for the schema registry.

All metric objects are defined at import time on the default registry.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

schema_registrations_total = Counter(
    "schema_registrations_total",
    "Schema registration attempts by outcome",
    ["format", "outcome"],
)

compatibility_checks_total = Counter(
    "compatibility_checks_total",
    "Compatibility evaluations by policy mode and verdict",
    ["mode", "verdict"],
)

breaking_changes_total = Counter(
    "breaking_changes_total",
    "Breaking changes reported by structural comparison",
    ["kind", "category"],
)

compatibility_evaluation_seconds = Histogram(
    "compatibility_evaluation_seconds",
    "Duration of one policy evaluation",
    ["mode"],
    buckets=[0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5],
)

store_conflicts_total = Counter(
    "store_conflicts_total",
    "Conditional appends that lost the race on a group tip",
)

store_groups = Gauge(
    "store_groups",
    "Number of groups held by the in-memory store",
)
