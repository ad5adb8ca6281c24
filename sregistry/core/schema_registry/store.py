"""Schema Store.

Provides the persistence contract the registry depends on:
- Groups and their properties
- Versioned schema history with soft delete
- Conditional (compare-and-swap) appends keyed by (group, type) tip
- Encoding ids binding a version to a codec
- Cross-group fingerprint index
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Union

from sregistry.core.errors import ErrorCode
from sregistry.core.schema_registry.schema import (
    CodecType,
    CompatibilityPolicy,
    EncodingId,
    EncodingInfo,
    GroupHistoryRecord,
    GroupProperties,
    PolicyChangeRecord,
    SchemaInfo,
    SchemaWithVersion,
    SerializationFormat,
    VersionInfo,
)
from sregistry.utils import metrics

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Base exception for schema store errors."""

    code = ErrorCode.INTERNAL_ERROR


class StoreConflictError(StoreError):
    """Conditional append lost the race: the (group, type) tip moved."""

    code = ErrorCode.STORE_CONFLICT

    def __init__(self, group: str, type: str, expected: Optional[VersionInfo], actual: Optional[VersionInfo]):
        super().__init__(
            f"Tip of {group}/{type} moved: expected {expected.version if expected else None}, "
            f"found {actual.version if actual else None}"
        )
        self.group = group
        self.type = type
        self.expected = expected
        self.actual = actual


class StoreUnavailableError(StoreError):
    """The backing store cannot serve the request."""

    code = ErrorCode.STORE_UNAVAILABLE


class GroupNotFoundError(StoreError):
    """Group does not exist."""

    code = ErrorCode.GROUP_NOT_FOUND


class VersionNotFoundError(StoreError):
    """Version does not exist in the group (or was deleted)."""

    code = ErrorCode.VERSION_NOT_FOUND


class EncodingNotFoundError(StoreError):
    """Encoding id is unknown to the group."""

    code = ErrorCode.ENCODING_NOT_FOUND


class CodecNotRegisteredError(StoreError):
    """Codec type has not been added to the group."""

    code = ErrorCode.CODEC_NOT_REGISTERED


class IncompatibleSchemaTypeError(StoreError):
    """Schema format or type is not allowed in the group."""

    code = ErrorCode.INCOMPATIBLE_SCHEMA_TYPE


VersionRef = Union[VersionInfo, int]


class SchemaStore(ABC):
    """Abstract base class for schema stores.

    Every mutation is atomic. ``append_version`` is the only way a schema
    enters a group.
    """

    @abstractmethod
    async def create_group(self, group: str, properties: GroupProperties) -> bool:
        """Create a group. Returns False if it already exists."""
        pass

    @abstractmethod
    async def delete_group(self, group: str) -> None:
        """Delete a group and everything registered under it."""
        pass

    @abstractmethod
    async def list_groups(self) -> List[str]:
        pass

    @abstractmethod
    async def get_group_properties(self, group: str) -> GroupProperties:
        pass

    @abstractmethod
    async def list_history(
        self,
        group: str,
        type: Optional[str] = None,
        include_deleted: bool = False,
    ) -> List[SchemaWithVersion]:
        """Versions of a group, oldest first, optionally restricted to one type."""
        pass

    @abstractmethod
    async def get_tip(self, group: str, type: str) -> Optional[VersionInfo]:
        """Latest version of a type, deleted or not. The token for ``append_version``."""
        pass

    @abstractmethod
    async def append_version(
        self,
        group: str,
        type: str,
        schema: SchemaInfo,
        expected_tip: Optional[VersionInfo],
    ) -> VersionInfo:
        """Append ``schema`` as the next version of ``type``.

        Returns the existing version when identical content is already live.
        Otherwise appends only if the tip still equals ``expected_tip``.

        Raises:
            StoreConflictError: the tip moved since it was read.
        """
        pass

    @abstractmethod
    async def find_version(self, group: str, schema: SchemaInfo) -> Optional[VersionInfo]:
        """Live version holding byte-identical content, if any."""
        pass

    @abstractmethod
    async def get_schema(self, group: str, version: VersionRef) -> SchemaInfo:
        """Schema at a version or group ordinal. Deleted versions stay retrievable."""
        pass

    @abstractmethod
    async def get_latest(self, group: str, type: Optional[str] = None) -> Optional[SchemaWithVersion]:
        pass

    @abstractmethod
    async def delete_version(self, group: str, version: VersionRef) -> None:
        """Soft delete: excluded from listings and future checks."""
        pass

    @abstractmethod
    async def get_policy(self, group: str) -> CompatibilityPolicy:
        pass

    @abstractmethod
    async def update_policy(self, group: str, policy: CompatibilityPolicy) -> None:
        """Replace the group policy and record the change."""
        pass

    @abstractmethod
    async def get_group_history(self, group: str) -> List[GroupHistoryRecord]:
        pass

    @abstractmethod
    async def get_policy_changes(self, group: str) -> List[PolicyChangeRecord]:
        pass

    def fingerprint(self, schema: SchemaInfo) -> str:
        """Content hash used for cross-group dedup."""
        return schema.fingerprint

    @abstractmethod
    async def get_schema_references(self, schema: SchemaInfo) -> List[Tuple[str, VersionInfo]]:
        """Every live (group, version) holding this exact schema."""
        pass

    @abstractmethod
    async def add_codec_type(self, group: str, codec: str) -> None:
        pass

    @abstractmethod
    async def list_codec_types(self, group: str) -> List[str]:
        pass

    @abstractmethod
    async def get_or_create_encoding_id(
        self,
        group: str,
        version: VersionInfo,
        codec: str,
    ) -> EncodingId:
        """Stable id for a (version, codec) pair; created on first request."""
        pass

    @abstractmethod
    async def get_encoding_info(self, group: str, encoding_id: EncodingId) -> EncodingInfo:
        pass


@dataclass
class _VersionRecord:
    schema: SchemaInfo
    version: VersionInfo
    fingerprint: str
    deleted: bool = False

    def as_entry(self) -> SchemaWithVersion:
        return SchemaWithVersion(self.schema, self.version)


@dataclass
class _GroupState:
    properties: GroupProperties
    records: List[_VersionRecord] = field(default_factory=list)  # index == ordinal
    tips: Dict[str, VersionInfo] = field(default_factory=dict)
    by_fingerprint: Dict[str, int] = field(default_factory=dict)  # fingerprint -> ordinal
    history: List[GroupHistoryRecord] = field(default_factory=list)
    policy_changes: List[PolicyChangeRecord] = field(default_factory=list)
    codecs: List[str] = field(default_factory=lambda: [CodecType.NONE.value])
    encodings: Dict[int, EncodingInfo] = field(default_factory=dict)
    encoding_index: Dict[Tuple[int, str], int] = field(default_factory=dict)


class InMemorySchemaStore(SchemaStore):
    """In-memory schema store implementation."""

    def __init__(self) -> None:
        self._groups: Dict[str, _GroupState] = {}
        self._references: Dict[str, List[Tuple[str, int]]] = {}  # fingerprint -> (group, ordinal)
        self._available = True
        self._lock: Optional[asyncio.Lock] = None

    def _get_lock(self) -> asyncio.Lock:
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    def set_available(self, available: bool) -> None:
        """Simulate an outage of the backing store."""
        self._available = available

    def _group_unlocked(self, group: str) -> _GroupState:
        if not self._available:
            raise StoreUnavailableError("Schema store is unavailable")
        state = self._groups.get(group)
        if state is None:
            raise GroupNotFoundError(f"Group not found: {group}")
        return state

    def _record_unlocked(self, state: _GroupState, version: VersionRef) -> _VersionRecord:
        ordinal = version.ordinal if isinstance(version, VersionInfo) else version
        if not 0 <= ordinal < len(state.records):
            raise VersionNotFoundError(f"Version not found: {version}")
        record = state.records[ordinal]
        if isinstance(version, VersionInfo) and record.version != version:
            raise VersionNotFoundError(f"Version not found: {version}")
        return record

    async def create_group(self, group: str, properties: GroupProperties) -> bool:
        async with self._get_lock():
            if not self._available:
                raise StoreUnavailableError("Schema store is unavailable")
            if group in self._groups:
                return False
            self._groups[group] = _GroupState(properties=properties)
            metrics.store_groups.set(len(self._groups))
            logger.info(
                f"Created group {group} ({properties.serialization_format.value}, "
                f"{properties.compatibility.mode.value})"
            )
            return True

    async def delete_group(self, group: str) -> None:
        async with self._get_lock():
            state = self._group_unlocked(group)
            for record in state.records:
                refs = self._references.get(record.fingerprint, [])
                self._references[record.fingerprint] = [r for r in refs if r[0] != group]
            del self._groups[group]
            metrics.store_groups.set(len(self._groups))
            logger.info(f"Deleted group {group} ({len(state.records)} versions)")

    async def list_groups(self) -> List[str]:
        async with self._get_lock():
            if not self._available:
                raise StoreUnavailableError("Schema store is unavailable")
            return sorted(self._groups)

    async def get_group_properties(self, group: str) -> GroupProperties:
        async with self._get_lock():
            return self._group_unlocked(group).properties

    async def list_history(
        self,
        group: str,
        type: Optional[str] = None,
        include_deleted: bool = False,
    ) -> List[SchemaWithVersion]:
        async with self._get_lock():
            state = self._group_unlocked(group)
            return [
                record.as_entry()
                for record in state.records
                if (include_deleted or not record.deleted)
                and (type is None or record.version.type == type)
            ]

    async def get_tip(self, group: str, type: str) -> Optional[VersionInfo]:
        async with self._get_lock():
            return self._group_unlocked(group).tips.get(type)

    async def append_version(
        self,
        group: str,
        type: str,
        schema: SchemaInfo,
        expected_tip: Optional[VersionInfo],
    ) -> VersionInfo:
        async with self._get_lock():
            state = self._group_unlocked(group)
            if schema.type != type:
                raise IncompatibleSchemaTypeError(
                    f"Schema type {schema.type} does not match {type}"
                )

            fingerprint = schema.fingerprint
            existing = state.by_fingerprint.get(fingerprint)
            if existing is not None and not state.records[existing].deleted:
                return state.records[existing].version

            group_format = state.properties.serialization_format
            if group_format != SerializationFormat.ANY and schema.serialization_format != group_format:
                raise IncompatibleSchemaTypeError(
                    f"Group {group} holds {group_format.value} schemas, "
                    f"got {schema.serialization_format.value}"
                )
            if not state.properties.allow_multiple_types and any(t != type for t in state.tips):
                raise IncompatibleSchemaTypeError(
                    f"Group {group} does not allow multiple schema types"
                )

            tip = state.tips.get(type)
            if tip != expected_tip:
                metrics.store_conflicts_total.inc()
                raise StoreConflictError(group, type, expected_tip, tip)

            version = VersionInfo(
                type=type,
                version=tip.version + 1 if tip else 0,
                ordinal=len(state.records),
            )
            state.records.append(_VersionRecord(schema, version, fingerprint))
            state.tips[type] = version
            state.by_fingerprint[fingerprint] = version.ordinal
            state.history.append(
                GroupHistoryRecord(schema, version, state.properties.compatibility)
            )
            self._references.setdefault(fingerprint, []).append((group, version.ordinal))

            logger.info(f"Appended {group}/{type} v{version.version} (ordinal {version.ordinal})")
            return version

    async def find_version(self, group: str, schema: SchemaInfo) -> Optional[VersionInfo]:
        async with self._get_lock():
            state = self._group_unlocked(group)
            ordinal = state.by_fingerprint.get(schema.fingerprint)
            if ordinal is None or state.records[ordinal].deleted:
                return None
            return state.records[ordinal].version

    async def get_schema(self, group: str, version: VersionRef) -> SchemaInfo:
        async with self._get_lock():
            state = self._group_unlocked(group)
            return self._record_unlocked(state, version).schema

    async def get_latest(self, group: str, type: Optional[str] = None) -> Optional[SchemaWithVersion]:
        async with self._get_lock():
            state = self._group_unlocked(group)
            for record in reversed(state.records):
                if not record.deleted and (type is None or record.version.type == type):
                    return record.as_entry()
            return None

    async def delete_version(self, group: str, version: VersionRef) -> None:
        async with self._get_lock():
            state = self._group_unlocked(group)
            record = self._record_unlocked(state, version)
            if record.deleted:
                raise VersionNotFoundError(f"Version already deleted: {version}")
            record.deleted = True
            logger.info(
                f"Deleted {group}/{record.version.type} v{record.version.version} "
                f"(ordinal {record.version.ordinal})"
            )

    async def get_policy(self, group: str) -> CompatibilityPolicy:
        async with self._get_lock():
            return self._group_unlocked(group).properties.compatibility

    async def update_policy(self, group: str, policy: CompatibilityPolicy) -> None:
        async with self._get_lock():
            state = self._group_unlocked(group)
            previous = state.properties.compatibility
            state.properties = state.properties.with_compatibility(policy)
            state.policy_changes.append(PolicyChangeRecord(previous, policy))
            logger.info(f"Group {group} policy changed {previous.mode.value} -> {policy.mode.value}")

    async def get_group_history(self, group: str) -> List[GroupHistoryRecord]:
        async with self._get_lock():
            return list(self._group_unlocked(group).history)

    async def get_policy_changes(self, group: str) -> List[PolicyChangeRecord]:
        async with self._get_lock():
            return list(self._group_unlocked(group).policy_changes)

    async def get_schema_references(self, schema: SchemaInfo) -> List[Tuple[str, VersionInfo]]:
        async with self._get_lock():
            if not self._available:
                raise StoreUnavailableError("Schema store is unavailable")
            references = []
            for group, ordinal in self._references.get(self.fingerprint(schema), []):
                record = self._groups[group].records[ordinal]
                if not record.deleted:
                    references.append((group, record.version))
            return references

    async def add_codec_type(self, group: str, codec: str) -> None:
        async with self._get_lock():
            state = self._group_unlocked(group)
            if codec not in state.codecs:
                state.codecs.append(codec)

    async def list_codec_types(self, group: str) -> List[str]:
        async with self._get_lock():
            return list(self._group_unlocked(group).codecs)

    async def get_or_create_encoding_id(
        self,
        group: str,
        version: VersionInfo,
        codec: str,
    ) -> EncodingId:
        async with self._get_lock():
            state = self._group_unlocked(group)
            record = self._record_unlocked(state, version)
            if record.deleted:
                raise VersionNotFoundError(f"Version was deleted: {version}")
            if codec not in state.codecs:
                raise CodecNotRegisteredError(f"Codec {codec} is not registered for {group}")

            key = (version.ordinal, codec)
            encoding_id = state.encoding_index.get(key)
            if encoding_id is None:
                encoding_id = len(state.encodings)
                state.encoding_index[key] = encoding_id
                state.encodings[encoding_id] = EncodingInfo(record.version, record.schema, codec)
                logger.debug(f"Encoding id {encoding_id} -> {group} ordinal {version.ordinal} / {codec}")
            return EncodingId(encoding_id)

    async def get_encoding_info(self, group: str, encoding_id: EncodingId) -> EncodingInfo:
        async with self._get_lock():
            state = self._group_unlocked(group)
            info = state.encodings.get(encoding_id)
            if info is None:
                raise EncodingNotFoundError(f"Encoding id {encoding_id} not found in {group}")
            return info
