"""
Contracts shared by every polygenea layer.
"""

from .base import (
    ErrorCode,
    PolygeneaError,
    MalformedInput,
    CanonicalizationError,
    UnknownVariant,
    SchemaViolation,
    IdentityError,
    DanglingReference,
    UnknownReference,
    ValidationFailure,
    DuplicateIdentity,
    UnsupportedPattern,
    ConfigurationError,
    ValidationIssue,
    AuditEventType,
    AuditLogEntry,
    utc_now,
)

__all__ = [
    "ErrorCode",
    "PolygeneaError",
    "MalformedInput",
    "CanonicalizationError",
    "UnknownVariant",
    "SchemaViolation",
    "IdentityError",
    "DanglingReference",
    "UnknownReference",
    "ValidationFailure",
    "DuplicateIdentity",
    "UnsupportedPattern",
    "ConfigurationError",
    "ValidationIssue",
    "AuditEventType",
    "AuditLogEntry",
    "utc_now",
]
