"""Schema Definition and Types.

Provides the registry data model:
- Schema identity (SchemaInfo) and version coordinates (VersionInfo)
- Compatibility policies and group properties
- Encoding ids, codecs and history records
- Parsers for JSON Schema, Avro and Protobuf documents
"""

from __future__ import annotations

import hashlib
import json
import math
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, NewType, Optional, Union

from sregistry.core.errors import ErrorCode


class MalformedSchemaError(ValueError):
    """Schema document cannot be read as its declared format."""

    code = ErrorCode.MALFORMED_SCHEMA

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = errors or [message]


class UnsupportedKeywordCombinationError(MalformedSchemaError):
    """A keyword is structurally ambiguous (e.g. a dependency that is neither array nor object)."""

    code = ErrorCode.UNSUPPORTED_KEYWORD_COMBINATION


class SerializationFormat(Enum):
    """Supported serialization formats."""
    AVRO = "avro"
    PROTOBUF = "protobuf"
    JSON = "json"
    ANY = "any"
    CUSTOM = "custom"


class CompatibilityMode(Enum):
    """Schema compatibility modes."""
    ALLOW_ANY = "allow_any"                      # No checks, always admit
    DENY_ALL = "deny_all"                        # Never admit a new version
    BACKWARD = "backward"                        # New schema can read old data
    FORWARD = "forward"                          # Old schema can read new data
    FULL = "full"                                # Both backward and forward
    BACKWARD_TRANSITIVE = "backward_transitive"  # Backward with all versions
    FORWARD_TRANSITIVE = "forward_transitive"    # Forward with all versions
    FULL_TRANSITIVE = "full_transitive"          # Full with all versions


_BACKWARD_MODES = {
    CompatibilityMode.BACKWARD,
    CompatibilityMode.BACKWARD_TRANSITIVE,
    CompatibilityMode.FULL,
    CompatibilityMode.FULL_TRANSITIVE,
}
_FORWARD_MODES = {
    CompatibilityMode.FORWARD,
    CompatibilityMode.FORWARD_TRANSITIVE,
    CompatibilityMode.FULL,
    CompatibilityMode.FULL_TRANSITIVE,
}
_TRANSITIVE_MODES = {
    CompatibilityMode.BACKWARD_TRANSITIVE,
    CompatibilityMode.FORWARD_TRANSITIVE,
    CompatibilityMode.FULL_TRANSITIVE,
}
_ANCHORABLE_MODES = {
    CompatibilityMode.BACKWARD,
    CompatibilityMode.FORWARD,
    CompatibilityMode.FULL,
}


class CodecType(str, Enum):
    """Built-in codec names. Groups may register custom names as plain strings."""
    NONE = "none"
    SNAPPY = "snappy"
    GZIP = "gzip"


EncodingId = NewType("EncodingId", int)


@dataclass(frozen=True)
class VersionInfo:
    """Coordinates of a registered schema inside its group.

    ``version`` counts per schema type, ``ordinal`` counts across the group.
    """
    type: str
    version: int
    ordinal: int

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "version": self.version, "ordinal": self.ordinal}


@dataclass(frozen=True)
class SchemaInfo:
    """A schema as submitted: name, format and raw bytes.

    Two values are the same schema iff type, format and bytes are equal;
    ``properties`` are informational and excluded from identity.
    """
    type: str
    serialization_format: SerializationFormat
    schema_data: bytes
    properties: Mapping[str, str] = field(default_factory=dict, compare=False, hash=False)

    @classmethod
    def from_str(
        cls,
        type: str,
        serialization_format: SerializationFormat,
        schema_str: str,
        properties: Optional[Mapping[str, str]] = None,
    ) -> "SchemaInfo":
        return cls(type, serialization_format, schema_str.encode("utf-8"), dict(properties or {}))

    @classmethod
    def from_document(cls, type: str, document: Any) -> "SchemaInfo":
        """Build a JSON schema from an in-memory document."""
        return cls.from_str(type, SerializationFormat.JSON, json.dumps(document))

    @property
    def schema_str(self) -> str:
        return self.schema_data.decode("utf-8", errors="replace")

    @property
    def fingerprint(self) -> str:
        """Content hash over format, type and bytes."""
        digest = hashlib.sha256()
        digest.update(self.serialization_format.value.encode())
        digest.update(b"\x00")
        digest.update(self.type.encode("utf-8"))
        digest.update(b"\x00")
        digest.update(self.schema_data)
        return digest.hexdigest()

    def as_document(self) -> Any:
        """Parse the raw bytes with the parser for the declared format."""
        return get_parser(self.serialization_format).parse(self.schema_data)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "serialization_format": self.serialization_format.value,
            "schema": self.schema_str,
            "fingerprint": self.fingerprint,
            "properties": dict(self.properties),
        }


@dataclass(frozen=True)
class SchemaWithVersion:
    """A historical schema together with its version coordinates."""
    schema: SchemaInfo
    version: VersionInfo


@dataclass(frozen=True)
class CompatibilityPolicy:
    """Compatibility mode, optionally anchored at a historical version.

    An anchored ("till") policy checks every live version from the anchor's
    ordinal up to the latest one.
    """
    mode: CompatibilityMode
    till: Optional[VersionInfo] = None

    def __post_init__(self) -> None:
        if self.till is not None and self.mode not in _ANCHORABLE_MODES:
            raise ValueError(f"Policy {self.mode.value} cannot be anchored to a version")

    @property
    def checks_backward(self) -> bool:
        return self.mode in _BACKWARD_MODES

    @property
    def checks_forward(self) -> bool:
        return self.mode in _FORWARD_MODES

    @property
    def is_transitive(self) -> bool:
        return self.mode in _TRANSITIVE_MODES

    @classmethod
    def allow_any(cls) -> "CompatibilityPolicy":
        return cls(CompatibilityMode.ALLOW_ANY)

    @classmethod
    def deny_all(cls) -> "CompatibilityPolicy":
        return cls(CompatibilityMode.DENY_ALL)

    @classmethod
    def backward(cls) -> "CompatibilityPolicy":
        return cls(CompatibilityMode.BACKWARD)

    @classmethod
    def forward(cls) -> "CompatibilityPolicy":
        return cls(CompatibilityMode.FORWARD)

    @classmethod
    def full(cls) -> "CompatibilityPolicy":
        return cls(CompatibilityMode.FULL)

    @classmethod
    def backward_transitive(cls) -> "CompatibilityPolicy":
        return cls(CompatibilityMode.BACKWARD_TRANSITIVE)

    @classmethod
    def forward_transitive(cls) -> "CompatibilityPolicy":
        return cls(CompatibilityMode.FORWARD_TRANSITIVE)

    @classmethod
    def full_transitive(cls) -> "CompatibilityPolicy":
        return cls(CompatibilityMode.FULL_TRANSITIVE)

    @classmethod
    def backward_till(cls, version: VersionInfo) -> "CompatibilityPolicy":
        return cls(CompatibilityMode.BACKWARD, till=version)

    @classmethod
    def forward_till(cls, version: VersionInfo) -> "CompatibilityPolicy":
        return cls(CompatibilityMode.FORWARD, till=version)

    @classmethod
    def full_till(cls, version: VersionInfo) -> "CompatibilityPolicy":
        return cls(CompatibilityMode.FULL, till=version)

    @classmethod
    def from_name(cls, name: str) -> "CompatibilityPolicy":
        """Parse a mode name such as ``"backward_transitive"`` or ``"FULL"``."""
        try:
            return cls(CompatibilityMode(name.strip().lower()))
        except ValueError as exc:
            raise ValueError(f"Unknown compatibility mode: {name}") from exc

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode.value,
            "till": self.till.to_dict() if self.till else None,
        }


MAX_GROUP_PROPERTIES = 100
MAX_GROUP_PROPERTY_LENGTH = 200


@dataclass(frozen=True)
class GroupProperties:
    """Immutable configuration of a group, fixed at creation except for its policy."""
    serialization_format: SerializationFormat
    compatibility: CompatibilityPolicy = field(default_factory=CompatibilityPolicy.full_transitive)
    allow_multiple_types: bool = False
    properties: Mapping[str, str] = field(default_factory=dict, compare=False, hash=False)

    def __post_init__(self) -> None:
        if len(self.properties) > MAX_GROUP_PROPERTIES:
            raise ValueError(f"At most {MAX_GROUP_PROPERTIES} group properties are allowed")
        for key, value in self.properties.items():
            if len(key) > MAX_GROUP_PROPERTY_LENGTH or len(value) > MAX_GROUP_PROPERTY_LENGTH:
                raise ValueError(
                    f"Group property '{key[:20]}' exceeds {MAX_GROUP_PROPERTY_LENGTH} characters"
                )

    def with_compatibility(self, policy: CompatibilityPolicy) -> "GroupProperties":
        return GroupProperties(
            serialization_format=self.serialization_format,
            compatibility=policy,
            allow_multiple_types=self.allow_multiple_types,
            properties=dict(self.properties),
        )


@dataclass(frozen=True)
class EncodingInfo:
    """What an encoding id stands for."""
    version: VersionInfo
    schema: SchemaInfo
    codec: str


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class GroupHistoryRecord:
    """One admitted version and the policy in force when it was admitted."""
    schema: SchemaInfo
    version: VersionInfo
    policy: CompatibilityPolicy
    timestamp: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class PolicyChangeRecord:
    """Audit entry written by an explicit policy update."""
    previous: CompatibilityPolicy
    current: CompatibilityPolicy
    timestamp: datetime = field(default_factory=_utcnow)


RawSchema = Union[str, bytes]


def _as_text(schema: RawSchema) -> str:
    if isinstance(schema, bytes):
        try:
            return schema.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MalformedSchemaError(f"Schema is not valid UTF-8: {exc}") from exc
    return schema


class SchemaParser(ABC):
    """Abstract base class for schema parsers."""

    @abstractmethod
    def parse(self, schema: RawSchema) -> Any:
        """Parse raw schema text into its document form."""
        pass

    @abstractmethod
    def validate(self, schema: RawSchema) -> List[str]:
        """Validate schema syntax. Returns list of errors."""
        pass

    @abstractmethod
    def normalize(self, schema: RawSchema) -> str:
        """Normalize schema to canonical form."""
        pass

    def parse_valid(self, schema: RawSchema) -> Any:
        """Parse and raise ``MalformedSchemaError`` carrying every validation error."""
        errors = self.validate(schema)
        if errors:
            raise MalformedSchemaError(f"Invalid schema: {errors[0]}", errors)
        return self.parse(schema)


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def _is_count(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


_AMBIGUOUS_DEPENDENCY = "dependency must be an array or a schema"


class JSONSchemaParser(SchemaParser):
    """Parser for JSON Schema documents."""

    SUPPORTED_TYPES = {"string", "number", "integer", "boolean", "array", "object", "null"}

    COUNT_KEYWORDS = (
        "minLength", "maxLength", "minItems", "maxItems", "minProperties", "maxProperties",
    )
    NUMBER_KEYWORDS = ("minimum", "maximum")
    SCHEMA_MAP_KEYWORDS = ("properties", "patternProperties")
    SUBSCHEMA_KEYWORDS = ("additionalProperties", "additionalItems", "not")
    COMPOSITION_KEYWORDS = ("allOf", "anyOf", "oneOf")

    def parse(self, schema: RawSchema) -> Any:
        text = _as_text(schema)
        try:
            document = json.loads(text)
        except json.JSONDecodeError as e:
            raise MalformedSchemaError(f"Invalid JSON: {e}") from e
        if not isinstance(document, (dict, bool)):
            raise MalformedSchemaError("Schema must be an object or a boolean")
        return document

    def validate(self, schema: RawSchema) -> List[str]:
        try:
            document = self.parse(schema)
        except MalformedSchemaError as e:
            return list(e.errors)
        return self.validate_document(document)

    def parse_valid(self, schema: RawSchema) -> Any:
        document = self.parse(schema)
        self.check_document(document)
        return document

    def check_document(self, document: Any) -> None:
        """Raise ``MalformedSchemaError`` if an in-memory document is ill-formed."""
        errors = self.validate_document(document)
        if errors:
            error_cls = MalformedSchemaError
            if any(e.endswith(_AMBIGUOUS_DEPENDENCY) for e in errors):
                error_cls = UnsupportedKeywordCombinationError
            raise error_cls(f"Invalid schema: {errors[0]}", errors)

    def validate_document(self, document: Any, path: str = "#") -> List[str]:
        errors: List[str] = []
        if isinstance(document, bool):
            return errors
        if not isinstance(document, dict):
            return [f"{path}: schema must be an object or a boolean"]

        if "type" in document:
            declared = document["type"]
            names = declared if isinstance(declared, list) else [declared]
            if not names:
                errors.append(f"{path}/type: must not be empty")
            for t in names:
                if not isinstance(t, str) or t not in self.SUPPORTED_TYPES:
                    errors.append(f"{path}/type: unsupported type {t!r}")

        for keyword in self.COUNT_KEYWORDS:
            if keyword in document and not _is_count(document[keyword]):
                errors.append(f"{path}/{keyword}: must be a non-negative integer")

        for keyword in self.NUMBER_KEYWORDS:
            if keyword in document and not _is_number(document[keyword]):
                errors.append(f"{path}/{keyword}: must be a number")

        for keyword in ("exclusiveMinimum", "exclusiveMaximum"):
            value = document.get(keyword)
            if keyword in document and not (isinstance(value, bool) or _is_number(value)):
                errors.append(f"{path}/{keyword}: must be a number or a boolean")

        if "multipleOf" in document:
            value = document["multipleOf"]
            if not _is_number(value) or value <= 0:
                errors.append(f"{path}/multipleOf: must be a number greater than 0")

        if "pattern" in document:
            if not isinstance(document["pattern"], str):
                errors.append(f"{path}/pattern: must be a string")
            else:
                try:
                    re.compile(document["pattern"])
                except re.error as e:
                    errors.append(f"{path}/pattern: invalid regular expression ({e})")

        if "uniqueItems" in document and not isinstance(document["uniqueItems"], bool):
            errors.append(f"{path}/uniqueItems: must be a boolean")

        if "required" in document:
            required = document["required"]
            if not isinstance(required, list) or not all(isinstance(r, str) for r in required):
                errors.append(f"{path}/required: must be an array of strings")

        if "enum" in document and not isinstance(document["enum"], list):
            errors.append(f"{path}/enum: must be an array")

        for keyword in self.SCHEMA_MAP_KEYWORDS:
            if keyword not in document:
                continue
            members = document[keyword]
            if not isinstance(members, dict):
                errors.append(f"{path}/{keyword}: must be an object")
                continue
            for name, sub in members.items():
                errors.extend(self.validate_document(sub, f"{path}/{keyword}/{name}"))

        for keyword in self.SUBSCHEMA_KEYWORDS:
            if keyword in document:
                errors.extend(self.validate_document(document[keyword], f"{path}/{keyword}"))

        if "items" in document:
            items = document["items"]
            if isinstance(items, list):
                for i, sub in enumerate(items):
                    errors.extend(self.validate_document(sub, f"{path}/items/{i}"))
            else:
                errors.extend(self.validate_document(items, f"{path}/items"))

        for keyword in self.COMPOSITION_KEYWORDS:
            if keyword not in document:
                continue
            branches = document[keyword]
            if not isinstance(branches, list) or not branches:
                errors.append(f"{path}/{keyword}: must be a non-empty array")
                continue
            for i, sub in enumerate(branches):
                errors.extend(self.validate_document(sub, f"{path}/{keyword}/{i}"))

        if "dependencies" in document:
            dependencies = document["dependencies"]
            if not isinstance(dependencies, dict):
                errors.append(f"{path}/dependencies: must be an object")
            else:
                for name, value in dependencies.items():
                    if isinstance(value, list):
                        if not all(isinstance(v, str) for v in value):
                            errors.append(
                                f"{path}/dependencies/{name}: array dependency must list property names"
                            )
                    elif isinstance(value, (dict, bool)):
                        errors.extend(self.validate_document(value, f"{path}/dependencies/{name}"))
                    else:
                        errors.append(
                            f"{path}/dependencies/{name}: {_AMBIGUOUS_DEPENDENCY}"
                        )

        return errors

    def normalize(self, schema: RawSchema) -> str:
        """Normalize JSON schema to canonical form."""
        document = self.parse(schema)
        return json.dumps(document, sort_keys=True, separators=(',', ':'))


class AvroSchemaParser(SchemaParser):
    """Parser for Avro schema."""

    PRIMITIVE_TYPES = {"null", "boolean", "int", "long", "float", "double", "bytes", "string"}

    def parse(self, schema: RawSchema) -> Any:
        text = _as_text(schema)
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            # A bare primitive name such as ``string`` is a valid Avro schema
            stripped = text.strip()
            if stripped in self.PRIMITIVE_TYPES:
                return stripped
            raise MalformedSchemaError(f"Invalid Avro schema: {stripped[:40]!r}")

    def validate(self, schema: RawSchema) -> List[str]:
        try:
            document = self.parse(schema)
        except MalformedSchemaError as e:
            return list(e.errors)
        return self._validate_type(document, "root")

    def _validate_type(self, schema: Any, path: str) -> List[str]:
        errors = []

        if isinstance(schema, str):
            # Primitive type or named type reference
            pass
        elif isinstance(schema, list):
            # Union type
            for i, item in enumerate(schema):
                errors.extend(self._validate_type(item, f"{path}[{i}]"))
        elif isinstance(schema, dict):
            schema_type = schema.get("type")
            if schema_type == "record":
                if "name" not in schema:
                    errors.append(f"{path}: record type requires 'name'")
                if "fields" not in schema:
                    errors.append(f"{path}: record type requires 'fields'")
                elif isinstance(schema["fields"], list):
                    for i, field_def in enumerate(schema["fields"]):
                        if not isinstance(field_def, dict) or "name" not in field_def:
                            errors.append(f"{path}.fields[{i}]: field requires 'name'")
                            continue
                        if "type" not in field_def:
                            errors.append(f"{path}.fields[{i}]: field requires 'type'")
                        else:
                            errors.extend(self._validate_type(
                                field_def["type"],
                                f"{path}.fields[{i}].type"
                            ))
                else:
                    errors.append(f"{path}: 'fields' must be an array")
            elif schema_type == "array":
                if "items" not in schema:
                    errors.append(f"{path}: array type requires 'items'")
                else:
                    errors.extend(self._validate_type(schema["items"], f"{path}.items"))
            elif schema_type == "map":
                if "values" not in schema:
                    errors.append(f"{path}: map type requires 'values'")
                else:
                    errors.extend(self._validate_type(schema["values"], f"{path}.values"))
            elif schema_type == "enum":
                if "name" not in schema:
                    errors.append(f"{path}: enum type requires 'name'")
                if not isinstance(schema.get("symbols"), list):
                    errors.append(f"{path}: enum type requires 'symbols'")
            elif schema_type == "fixed":
                if "name" not in schema:
                    errors.append(f"{path}: fixed type requires 'name'")
                if "size" not in schema:
                    errors.append(f"{path}: fixed type requires 'size'")
            elif schema_type in self.PRIMITIVE_TYPES:
                pass
            elif schema_type is None:
                errors.append(f"{path}: schema object requires 'type'")
            elif isinstance(schema_type, (dict, list)):
                errors.extend(self._validate_type(schema_type, f"{path}.type"))
            elif not isinstance(schema_type, str):
                errors.append(f"{path}: unknown type '{schema_type}'")
        else:
            errors.append(f"{path}: invalid schema type")

        return errors

    def normalize(self, schema: RawSchema) -> str:
        document = self.parse(schema)
        return json.dumps(document, sort_keys=True, separators=(',', ':'))


class ProtobufSchemaParser(SchemaParser):
    """Parser for Protocol Buffers schema.

    A lightweight reading of ``.proto`` text: messages, their scalar fields and
    top-level enums. Nested declarations are flattened by name.
    """

    MESSAGE_PATTERN = re.compile(r'message\s+(\w+)\s*\{([^{}]*)\}')
    ENUM_PATTERN = re.compile(r'enum\s+(\w+)\s*\{([^{}]*)\}')
    FIELD_PATTERN = re.compile(r'(repeated\s+|optional\s+|required\s+)?([\w.]+)\s+(\w+)\s*=\s*(\d+)\s*;')
    ENUM_VALUE_PATTERN = re.compile(r'(\w+)\s*=\s*(-?\d+)\s*;')

    def parse(self, schema: RawSchema) -> Dict[str, Any]:
        """Parse protobuf schema to internal representation."""
        text = _as_text(schema)
        result: Dict[str, Any] = {
            "syntax": "proto3",
            "messages": [],
            "enums": [],
        }

        syntax_match = re.search(r'syntax\s*=\s*"(proto2|proto3)"\s*;', text)
        if syntax_match:
            result["syntax"] = syntax_match.group(1)

        for match in self.MESSAGE_PATTERN.finditer(text):
            result["messages"].append({
                "name": match.group(1),
                "fields": self._parse_fields(match.group(2)),
            })

        for match in self.ENUM_PATTERN.finditer(text):
            result["enums"].append({
                "name": match.group(1),
                "values": self._parse_enum_values(match.group(2)),
            })

        if text.strip() and not result["messages"] and not result["enums"]:
            raise MalformedSchemaError("Protobuf schema declares no message or enum")

        return result

    def _parse_fields(self, body: str) -> List[Dict[str, Any]]:
        fields = []
        for match in self.FIELD_PATTERN.finditer(body):
            label = (match.group(1) or "").strip()
            fields.append({
                "name": match.group(3),
                "type": match.group(2),
                "number": int(match.group(4)),
                "repeated": label == "repeated",
            })
        return fields

    def _parse_enum_values(self, body: str) -> List[Dict[str, Any]]:
        return [
            {"name": match.group(1), "number": int(match.group(2))}
            for match in self.ENUM_VALUE_PATTERN.finditer(body)
        ]

    def validate(self, schema: RawSchema) -> List[str]:
        errors = []
        try:
            parsed = self.parse(schema)
        except MalformedSchemaError as e:
            return list(e.errors)

        message_names = [m["name"] for m in parsed["messages"]]
        if len(message_names) != len(set(message_names)):
            errors.append("Duplicate message names found")

        for message in parsed["messages"]:
            field_numbers = [f["number"] for f in message["fields"]]
            if len(field_numbers) != len(set(field_numbers)):
                errors.append(f"Duplicate field numbers in message {message['name']}")

        return errors

    def normalize(self, schema: RawSchema) -> str:
        return re.sub(r'\s+', ' ', _as_text(schema).strip())


class OpaqueSchemaParser(SchemaParser):
    """Parser for ``ANY`` and ``CUSTOM`` formats: the bytes are the document."""

    def parse(self, schema: RawSchema) -> Any:
        return schema if isinstance(schema, bytes) else schema.encode("utf-8")

    def validate(self, schema: RawSchema) -> List[str]:
        return []

    def normalize(self, schema: RawSchema) -> str:
        return _as_text(schema)


def get_parser(serialization_format: SerializationFormat) -> SchemaParser:
    """Get parser for a serialization format."""
    parsers = {
        SerializationFormat.JSON: JSONSchemaParser,
        SerializationFormat.AVRO: AvroSchemaParser,
        SerializationFormat.PROTOBUF: ProtobufSchemaParser,
        SerializationFormat.ANY: OpaqueSchemaParser,
        SerializationFormat.CUSTOM: OpaqueSchemaParser,
    }
    return parsers[serialization_format]()
