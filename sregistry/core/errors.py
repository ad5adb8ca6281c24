"""Shared error codes for registry failures.

Every exception raised across the registry boundary carries one of these
codes so callers can branch without matching on exception classes.
"""

from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    INTERNAL_ERROR = "INTERNAL_ERROR"
    MALFORMED_SCHEMA = "MALFORMED_SCHEMA"
    UNSUPPORTED_KEYWORD_COMBINATION = "UNSUPPORTED_KEYWORD_COMBINATION"
    POLICY_VIOLATION = "POLICY_VIOLATION"  # Structural or policy-level rejection
    STORE_CONFLICT = "STORE_CONFLICT"  # Lost an optimistic-concurrency race
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"
    GROUP_NOT_FOUND = "GROUP_NOT_FOUND"
    VERSION_NOT_FOUND = "VERSION_NOT_FOUND"
    ENCODING_NOT_FOUND = "ENCODING_NOT_FOUND"
    CODEC_NOT_REGISTERED = "CODEC_NOT_REGISTERED"
    INCOMPATIBLE_SCHEMA_TYPE = "INCOMPATIBLE_SCHEMA_TYPE"  # Format or type not allowed in group
    INVALID_GROUP_PROPERTIES = "INVALID_GROUP_PROPERTIES"
    TIMEOUT = "TIMEOUT"


__all__ = ["ErrorCode"]
