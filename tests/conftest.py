import os
import pytest

from sregistry.core.config import reset_settings


# List of environment variables that may be modified by tests
_ENV_VARS_TO_ISOLATE = [
    "LOG_LEVEL",
    "LOG_JSON",
    "REGISTRY_DEFAULT_COMPATIBILITY",
    "REGISTRY_MAX_CONFLICT_RETRIES",
    "REGISTRY_RETRY_MIN_WAIT_S",
    "REGISTRY_RETRY_MAX_WAIT_S",
    "REGISTRY_OPERATION_TIMEOUT_S",
    "REGISTRY_NORMALIZE_JSON",
    "JSON_TYPE_CHANGE_IS_BREAKING",
]


@pytest.fixture(autouse=True)
def env_isolation():
    """Isolate environment variables and cached settings between tests."""
    backup = {k: os.environ.get(k) for k in _ENV_VARS_TO_ISOLATE}
    # Keep conflict backoff short
    os.environ["REGISTRY_RETRY_MIN_WAIT_S"] = "0"
    os.environ["REGISTRY_RETRY_MAX_WAIT_S"] = "0"
    reset_settings()
    try:
        yield
    finally:
        for k, v in backup.items():
            if v is None:
                os.environ.pop(k, None)
            else:
                os.environ[k] = v
        reset_settings()


@pytest.fixture
def comparator():
    from sregistry.core.schema_registry import JsonSchemaComparator

    return JsonSchemaComparator()


@pytest.fixture
def store():
    from sregistry.core.schema_registry import InMemorySchemaStore

    return InMemorySchemaStore()


@pytest.fixture
def service(store):
    from sregistry.core.schema_registry import SchemaRegistryService

    return SchemaRegistryService(store=store)
