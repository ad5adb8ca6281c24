"""Schema Registry Module.

Provides schema registry capabilities:
- Schema definition and parsing
- Breaking change taxonomy and structural comparison
- Compatibility policy evaluation
- Versioned storage and registration
"""

from sregistry.core.schema_registry.schema import (
    SerializationFormat,
    CompatibilityMode,
    CompatibilityPolicy,
    CodecType,
    EncodingId,
    EncodingInfo,
    GroupHistoryRecord,
    GroupProperties,
    PolicyChangeRecord,
    SchemaInfo,
    SchemaWithVersion,
    VersionInfo,
    MalformedSchemaError,
    UnsupportedKeywordCombinationError,
    SchemaParser,
    JSONSchemaParser,
    AvroSchemaParser,
    ProtobufSchemaParser,
    get_parser,
)
from sregistry.core.schema_registry.breaking_changes import (
    BreakingChange,
    ChangeCategory,
)
from sregistry.core.schema_registry.compatibility import (
    StructuralComparator,
    AlwaysCompatibleComparator,
    AvroComparator,
    ProtobufComparator,
    get_comparator,
)
from sregistry.core.schema_registry.json_compatibility import JsonSchemaComparator
from sregistry.core.schema_registry.evaluator import (
    CompatibilityVerdict,
    CompatibilityPolicyEvaluator,
)
from sregistry.core.schema_registry.store import (
    StoreError,
    StoreConflictError,
    StoreUnavailableError,
    GroupNotFoundError,
    VersionNotFoundError,
    EncodingNotFoundError,
    CodecNotRegisteredError,
    IncompatibleSchemaTypeError,
    SchemaStore,
    InMemorySchemaStore,
)
from sregistry.core.schema_registry.registry import (
    SchemaRegistryError,
    IncompatibleSchemaError,
    InvalidSchemaError,
    InvalidGroupPropertiesError,
    RegistryTimeoutError,
    SchemaRegistryService,
)

__all__ = [
    # Schema
    "SerializationFormat",
    "CompatibilityMode",
    "CompatibilityPolicy",
    "CodecType",
    "EncodingId",
    "EncodingInfo",
    "GroupHistoryRecord",
    "GroupProperties",
    "PolicyChangeRecord",
    "SchemaInfo",
    "SchemaWithVersion",
    "VersionInfo",
    "MalformedSchemaError",
    "UnsupportedKeywordCombinationError",
    "SchemaParser",
    "JSONSchemaParser",
    "AvroSchemaParser",
    "ProtobufSchemaParser",
    "get_parser",
    # Taxonomy
    "BreakingChange",
    "ChangeCategory",
    # Comparison
    "StructuralComparator",
    "AlwaysCompatibleComparator",
    "AvroComparator",
    "ProtobufComparator",
    "JsonSchemaComparator",
    "get_comparator",
    # Evaluation
    "CompatibilityVerdict",
    "CompatibilityPolicyEvaluator",
    # Store
    "StoreError",
    "StoreConflictError",
    "StoreUnavailableError",
    "GroupNotFoundError",
    "VersionNotFoundError",
    "EncodingNotFoundError",
    "CodecNotRegisteredError",
    "IncompatibleSchemaTypeError",
    "SchemaStore",
    "InMemorySchemaStore",
    # Registry
    "SchemaRegistryError",
    "IncompatibleSchemaError",
    "InvalidSchemaError",
    "InvalidGroupPropertiesError",
    "RegistryTimeoutError",
    "SchemaRegistryService",
]
