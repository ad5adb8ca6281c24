"""Structural Schema Comparison.

Provides one comparator per serialization format:
- JSON Schema (see ``json_compatibility``)
- Avro reader/writer resolution (simplified)
- Protobuf wire compatibility (simplified)
- Opaque formats, which are always compatible

Direction convention for every comparator: ``baseline`` already has data
written under it, ``candidate`` is proposed. A non-None result names the
change that makes ``candidate`` unsafe for ``baseline`` data.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Set

from sregistry.core.schema_registry.breaking_changes import BreakingChange
from sregistry.core.schema_registry.schema import (
    SchemaInfo,
    SerializationFormat,
    get_parser,
)

logger = logging.getLogger(__name__)


class StructuralComparator(ABC):
    """Pure comparison of two documents of the same serialization format."""

    serialization_format: SerializationFormat

    @abstractmethod
    def compare(self, candidate: Any, baseline: Any) -> Optional[BreakingChange]:
        """Return the first breaking change of ``candidate`` against ``baseline``."""
        pass

    def compare_schemas(
        self,
        candidate: SchemaInfo,
        baseline: SchemaInfo,
    ) -> Optional[BreakingChange]:
        """Parse both schemas with their format's parser and compare them.

        Raises:
            MalformedSchemaError: either schema cannot be parsed.
        """
        if candidate.serialization_format != baseline.serialization_format:
            return BreakingChange.FORMAT_CHANGED
        parser = get_parser(candidate.serialization_format)
        return self.compare(
            parser.parse_valid(candidate.schema_data),
            parser.parse_valid(baseline.schema_data),
        )


class AlwaysCompatibleComparator(StructuralComparator):
    """Comparator for formats the registry cannot introspect."""

    def __init__(self, serialization_format: SerializationFormat = SerializationFormat.ANY):
        self.serialization_format = serialization_format

    def compare(self, candidate: Any, baseline: Any) -> Optional[BreakingChange]:
        return None

    def compare_schemas(
        self,
        candidate: SchemaInfo,
        baseline: SchemaInfo,
    ) -> Optional[BreakingChange]:
        # Opaque groups may mix formats; nothing to resolve either way
        return None


class AvroComparator(StructuralComparator):
    """Avro comparator: ``candidate`` reads data written with ``baseline``."""

    serialization_format = SerializationFormat.AVRO

    # writer type -> reader types it can be promoted to
    PROMOTIONS: Dict[str, Set[str]] = {
        "int": {"long", "float", "double"},
        "long": {"float", "double"},
        "float": {"double"},
        "string": {"bytes"},
        "bytes": {"string"},
    }

    def compare(self, candidate: Any, baseline: Any) -> Optional[BreakingChange]:
        return self._check_readable(candidate, baseline)

    def _type_name(self, node: Any) -> str:
        if isinstance(node, list):
            return "union"
        if isinstance(node, dict):
            inner = node.get("type")
            if isinstance(inner, (dict, list)):
                return self._type_name(inner)
            return str(inner)
        return str(node)

    def _unwrap(self, node: Any) -> Any:
        if isinstance(node, dict) and isinstance(node.get("type"), (dict, list)):
            return node["type"]
        return node

    def _check_readable(self, reader: Any, writer: Any) -> Optional[BreakingChange]:
        reader, writer = self._unwrap(reader), self._unwrap(writer)
        reader_type, writer_type = self._type_name(reader), self._type_name(writer)

        if writer_type == "union":
            # Every branch the writer may have used must be readable
            for branch in writer:
                change = self._check_readable(reader, branch)
                if change is not None:
                    return change
            return None

        if reader_type == "union":
            if any(self._check_readable(branch, writer) is None for branch in reader):
                return None
            return BreakingChange.FIELD_TYPE_CHANGED

        if reader_type != writer_type:
            if reader_type in self.PROMOTIONS.get(writer_type, set()):
                return None
            if "record" in (reader_type, writer_type):
                return BreakingChange.TYPE_CHANGED
            return BreakingChange.FIELD_TYPE_CHANGED

        if reader_type == "record":
            return self._check_record(reader, writer)
        if reader_type == "enum":
            missing = set(writer.get("symbols", [])) - set(reader.get("symbols", []))
            if missing and "default" not in reader:
                return BreakingChange.ENUM_SYMBOL_REMOVED
            return None
        if reader_type == "array":
            return self._check_readable(reader.get("items"), writer.get("items"))
        if reader_type == "map":
            return self._check_readable(reader.get("values"), writer.get("values"))
        if reader_type == "fixed" and reader.get("size") != writer.get("size"):
            return BreakingChange.FIELD_TYPE_CHANGED
        return None

    def _check_record(
        self,
        reader: Dict[str, Any],
        writer: Dict[str, Any],
    ) -> Optional[BreakingChange]:
        reader_fields = {f["name"]: f for f in reader.get("fields", [])}
        writer_fields = {f["name"]: f for f in writer.get("fields", [])}

        for name, field_def in writer_fields.items():
            if name not in reader_fields and "default" not in field_def:
                return BreakingChange.FIELD_REMOVED

        for name, field_def in reader_fields.items():
            if name not in writer_fields:
                if "default" not in field_def:
                    return BreakingChange.FIELD_ADDED_WITHOUT_DEFAULT
                continue
            change = self._check_readable(field_def["type"], writer_fields[name]["type"])
            if change is not None:
                return change
        return None


class ProtobufComparator(StructuralComparator):
    """Protobuf comparator over the lightweight parsed form."""

    serialization_format = SerializationFormat.PROTOBUF

    def compare(self, candidate: Any, baseline: Any) -> Optional[BreakingChange]:
        candidate_messages = {m["name"]: m for m in candidate.get("messages", [])}

        for old_message in baseline.get("messages", []):
            new_message = candidate_messages.get(old_message["name"])
            if new_message is None:
                return BreakingChange.MESSAGE_REMOVED

            change = self._check_fields(new_message["fields"], old_message["fields"])
            if change is not None:
                return change

        candidate_enums = {e["name"]: e for e in candidate.get("enums", [])}
        for old_enum in baseline.get("enums", []):
            new_enum = candidate_enums.get(old_enum["name"])
            if new_enum is None:
                return BreakingChange.MESSAGE_REMOVED
            new_numbers = {v["number"] for v in new_enum["values"]}
            if any(v["number"] not in new_numbers for v in old_enum["values"]):
                return BreakingChange.ENUM_SYMBOL_REMOVED
        return None

    def _check_fields(
        self,
        new_fields_list: List[Dict[str, Any]],
        old_fields_list: List[Dict[str, Any]],
    ) -> Optional[BreakingChange]:
        old_fields = {f["number"]: f for f in old_fields_list}
        new_fields = {f["number"]: f for f in new_fields_list}

        for field_num, old_field in old_fields.items():
            new_field = new_fields.get(field_num)
            if new_field is None:
                continue
            # Field number reuse is forbidden
            if old_field["name"] != new_field["name"]:
                return BreakingChange.FIELD_NUMBER_REUSED
            if old_field["type"] != new_field["type"]:
                return BreakingChange.FIELD_TYPE_CHANGED
            if old_field["repeated"] != new_field["repeated"]:
                return BreakingChange.FIELD_LABEL_CHANGED
        return None


def get_comparator(
    serialization_format: SerializationFormat,
    **options: Any,
) -> StructuralComparator:
    """Get the comparator for a serialization format."""
    from sregistry.core.schema_registry.json_compatibility import JsonSchemaComparator

    if serialization_format == SerializationFormat.JSON:
        return JsonSchemaComparator(**options)
    comparators = {
        SerializationFormat.AVRO: AvroComparator,
        SerializationFormat.PROTOBUF: ProtobufComparator,
    }
    comparator_cls = comparators.get(serialization_format)
    if comparator_cls is None:
        logger.debug(f"No structural rules for {serialization_format.value}; schemas are always compatible")
        return AlwaysCompatibleComparator(serialization_format)
    return comparator_cls()
