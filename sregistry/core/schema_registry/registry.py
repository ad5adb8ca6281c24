"""Schema Registry Service.

Provides schema registry functionality:
- Group creation and policy management
- Schema registration under a compatibility policy
- Version lookup and soft delete
- Encoding ids
"""

from __future__ import annotations

import asyncio
from typing import List, Mapping, Optional, Tuple, Union

from sregistry.core.config import get_settings
from sregistry.core.errors import ErrorCode
from sregistry.core.logging.structured import (
    get_logger,
    request_context,
    setup_logging_from_settings,
)
from sregistry.core.resilience.retry import RetryError, async_retrying, conflict_retry_config
from sregistry.core.schema_registry.evaluator import (
    CompatibilityPolicyEvaluator,
    CompatibilityVerdict,
)
from sregistry.core.schema_registry.schema import (
    CompatibilityPolicy,
    EncodingId,
    EncodingInfo,
    GroupHistoryRecord,
    GroupProperties,
    MalformedSchemaError,
    SchemaInfo,
    SchemaWithVersion,
    SerializationFormat,
    VersionInfo,
    get_parser,
)
from sregistry.core.schema_registry.store import (
    InMemorySchemaStore,
    IncompatibleSchemaTypeError,
    SchemaStore,
    StoreConflictError,
    StoreUnavailableError,
)
from sregistry.utils import metrics

logger = get_logger(__name__)


class SchemaRegistryError(Exception):
    """Base exception for schema registry errors."""

    code = ErrorCode.INTERNAL_ERROR


class IncompatibleSchemaError(SchemaRegistryError):
    """Schema is incompatible with the group's history under its policy."""

    code = ErrorCode.POLICY_VIOLATION

    def __init__(self, message: str, verdict: CompatibilityVerdict):
        super().__init__(message)
        self.verdict = verdict


class InvalidSchemaError(SchemaRegistryError):
    """Schema is invalid."""

    code = ErrorCode.MALFORMED_SCHEMA

    def __init__(self, message: str, errors: List[str], code: Optional[ErrorCode] = None):
        super().__init__(message)
        self.errors = errors
        if code is not None:
            self.code = code


class InvalidGroupPropertiesError(SchemaRegistryError):
    """Group properties violate their limits."""

    code = ErrorCode.INVALID_GROUP_PROPERTIES


class RegistryTimeoutError(SchemaRegistryError):
    """Operation did not complete within its deadline."""

    code = ErrorCode.TIMEOUT


class SchemaRegistryService:
    """Registers schemas into groups, enforcing each group's compatibility policy.

    The evaluator runs between the history read and the conditional append,
    with no store lock held. A writer that loses the race on the group tip
    re-reads history and evaluates again.
    """

    def __init__(
        self,
        store: Optional[SchemaStore] = None,
        evaluator: Optional[CompatibilityPolicyEvaluator] = None,
    ):
        self.store = store or InMemorySchemaStore()
        self.evaluator = evaluator or CompatibilityPolicyEvaluator()

    @classmethod
    def from_settings(cls, store: Optional[SchemaStore] = None) -> "SchemaRegistryService":
        """Build a service for an application process.

        Configures root logging from ``Settings`` and sizes the JSON type
        rule from ``JSON_TYPE_CHANGE_IS_BREAKING``.
        """
        setup_logging_from_settings()
        settings = get_settings()
        evaluator = CompatibilityPolicyEvaluator(
            type_change_is_breaking=settings.JSON_TYPE_CHANGE_IS_BREAKING
        )
        logger.info(
            "Schema registry service configured",
            service=settings.SERVICE_NAME,
            default_compatibility=settings.REGISTRY_DEFAULT_COMPATIBILITY,
        )
        return cls(store=store, evaluator=evaluator)

    # Groups

    async def create_group(
        self,
        group: str,
        serialization_format: SerializationFormat,
        policy: Optional[CompatibilityPolicy] = None,
        allow_multiple_types: bool = False,
        properties: Optional[Mapping[str, str]] = None,
    ) -> bool:
        """Create a group. Returns False if it already exists.

        Without an explicit policy the group gets
        ``Settings.REGISTRY_DEFAULT_COMPATIBILITY``.
        """
        if policy is None:
            policy = CompatibilityPolicy.from_name(get_settings().REGISTRY_DEFAULT_COMPATIBILITY)
        try:
            group_properties = GroupProperties(
                serialization_format=serialization_format,
                compatibility=policy,
                allow_multiple_types=allow_multiple_types,
                properties=dict(properties or {}),
            )
        except ValueError as exc:
            raise InvalidGroupPropertiesError(str(exc)) from exc
        return await self.store.create_group(group, group_properties)

    async def update_policy(self, group: str, policy: CompatibilityPolicy) -> None:
        if policy.till is not None:
            # Anchor must be a version of this group
            await self.store.get_schema(group, policy.till)
        await self.store.update_policy(group, policy)
        logger.info("Updated compatibility policy", group=group, mode=policy.mode.value)

    async def get_group_history(self, group: str) -> List[GroupHistoryRecord]:
        return await self.store.get_group_history(group)

    # Registration

    async def add_schema(
        self,
        group: str,
        schema: SchemaInfo,
        policy: Optional[CompatibilityPolicy] = None,
        timeout: Optional[float] = None,
    ) -> VersionInfo:
        """Register ``schema`` as the next version of its type in ``group``.

        Identical content already registered returns the existing version.

        Args:
            group: Target group.
            schema: Candidate schema.
            policy: Overrides the group policy for this call only.
            timeout: Deadline for the whole call, store I/O included.

        Raises:
            InvalidSchemaError: the schema cannot be parsed.
            IncompatibleSchemaError: the policy rejects the schema.
            StoreUnavailableError: the store is down, or conflict retries were
                exhausted.
            RegistryTimeoutError: the deadline passed; nothing was appended.
        """
        if timeout is None:
            timeout = get_settings().REGISTRY_OPERATION_TIMEOUT_S
        with request_context(group=group):
            try:
                return await asyncio.wait_for(self._add_schema(group, schema, policy), timeout)
            except asyncio.TimeoutError as exc:
                metrics.schema_registrations_total.labels(
                    format=schema.serialization_format.value, outcome="timeout"
                ).inc()
                raise RegistryTimeoutError(
                    f"Registering {schema.type} in {group} timed out after {timeout}s"
                ) from exc

    async def _add_schema(
        self,
        group: str,
        schema: SchemaInfo,
        policy: Optional[CompatibilityPolicy],
    ) -> VersionInfo:
        schema = self._prepare(schema)
        config = conflict_retry_config((StoreConflictError,))
        try:
            async for attempt in async_retrying(config):
                with attempt:
                    return await self._register_once(group, schema, policy)
        except RetryError as exc:
            metrics.schema_registrations_total.labels(
                format=schema.serialization_format.value, outcome="conflict"
            ).inc()
            raise StoreUnavailableError(
                f"Gave up registering {schema.type} in {group} after {config.max_attempts} conflicts"
            ) from exc
        raise SchemaRegistryError("Retry loop exited without a result")

    async def _register_once(
        self,
        group: str,
        schema: SchemaInfo,
        policy: Optional[CompatibilityPolicy],
    ) -> VersionInfo:
        fmt = schema.serialization_format.value
        properties = await self.store.get_group_properties(group)
        self._check_format(group, properties, schema)

        existing = await self.store.find_version(group, schema)
        if existing is not None:
            metrics.schema_registrations_total.labels(format=fmt, outcome="deduplicated").inc()
            return existing

        # Tip first: a history read that races past it fails the append below
        tip = await self.store.get_tip(group, schema.type)
        history = await self._history_for(group, properties, schema)
        verdict = self.evaluator.evaluate(schema, history, policy or properties.compatibility)
        if not verdict:
            metrics.schema_registrations_total.labels(format=fmt, outcome="rejected").inc()
            raise IncompatibleSchemaError(
                f"Schema {schema.type} is incompatible in {group}: {verdict.describe()}",
                verdict,
            )

        version = await self.store.append_version(group, schema.type, schema, tip)
        metrics.schema_registrations_total.labels(format=fmt, outcome="registered").inc()
        logger.info(
            "Registered schema",
            group=group,
            type=schema.type,
            version=version.version,
            ordinal=version.ordinal,
        )
        return version

    async def validate_schema(
        self,
        group: str,
        schema: SchemaInfo,
        policy: Optional[CompatibilityPolicy] = None,
    ) -> CompatibilityVerdict:
        """Evaluate ``schema`` against the group without registering it."""
        with request_context(group=group):
            schema = self._prepare(schema)
            properties = await self.store.get_group_properties(group)
            self._check_format(group, properties, schema)
            history = await self._history_for(group, properties, schema)
            return self.evaluator.evaluate(schema, history, policy or properties.compatibility)

    async def can_read(self, group: str, schema: SchemaInfo) -> bool:
        """Whether ``schema`` can read data written with every live version of its type."""
        with request_context(group=group):
            schema = self._prepare(schema)
            history = await self.store.list_history(group, type=schema.type)
            return self.evaluator.can_read(schema, [entry.schema for entry in history])

    async def can_be_read(self, group: str, schema: SchemaInfo) -> bool:
        """Whether every live version of its type can read data written with ``schema``."""
        with request_context(group=group):
            schema = self._prepare(schema)
            history = await self.store.list_history(group, type=schema.type)
            return self.evaluator.can_be_read(schema, [entry.schema for entry in history])

    # Versions

    async def get_schema_version(self, group: str, version: Union[VersionInfo, int]) -> SchemaInfo:
        return await self.store.get_schema(group, version)

    async def get_latest_schema(
        self,
        group: str,
        type: Optional[str] = None,
    ) -> Optional[SchemaWithVersion]:
        return await self.store.get_latest(group, type)

    async def delete_schema_version(self, group: str, version: Union[VersionInfo, int]) -> None:
        await self.store.delete_version(group, version)

    async def get_schema_references(self, schema: SchemaInfo) -> List[Tuple[str, VersionInfo]]:
        return await self.store.get_schema_references(schema)

    # Encodings

    async def add_codec_type(self, group: str, codec: str) -> None:
        await self.store.add_codec_type(group, codec)

    async def get_encoding_id(self, group: str, version: VersionInfo, codec: str) -> EncodingId:
        return await self.store.get_or_create_encoding_id(group, version, codec)

    async def get_encoding_info(self, group: str, encoding_id: EncodingId) -> EncodingInfo:
        return await self.store.get_encoding_info(group, encoding_id)

    # Helpers

    def _prepare(self, schema: SchemaInfo) -> SchemaInfo:
        """Parse the schema, and canonicalize JSON text when configured to."""
        parser = get_parser(schema.serialization_format)
        try:
            parser.parse_valid(schema.schema_data)
        except MalformedSchemaError as exc:
            raise InvalidSchemaError(str(exc), exc.errors, exc.code) from exc

        if schema.serialization_format == SerializationFormat.JSON and get_settings().REGISTRY_NORMALIZE_JSON:
            normalized = parser.normalize(schema.schema_data).encode("utf-8")
            if normalized != schema.schema_data:
                schema = SchemaInfo(
                    schema.type,
                    schema.serialization_format,
                    normalized,
                    dict(schema.properties),
                )
        return schema

    def _check_format(self, group: str, properties: GroupProperties, schema: SchemaInfo) -> None:
        expected = properties.serialization_format
        if expected != SerializationFormat.ANY and schema.serialization_format != expected:
            raise IncompatibleSchemaTypeError(
                f"Group {group} holds {expected.value} schemas, "
                f"got {schema.serialization_format.value}"
            )

    async def _history_for(
        self,
        group: str,
        properties: GroupProperties,
        schema: SchemaInfo,
    ) -> List[SchemaWithVersion]:
        if properties.allow_multiple_types:
            return await self.store.list_history(group, type=schema.type)
        return await self.store.list_history(group)
