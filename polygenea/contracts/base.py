"""
Base Contracts and Shared Types

These are the foundational types used across all layers.
Error types, validation records and audit entries live here so that
every layer reports failure in the same vocabulary.

BOUNDARY ENFORCEMENT:
=====================
- This module imports nothing from other polygenea layers
- Layers may import types but MUST NOT modify this module
- Record types are frozen dataclasses for immutability guarantee
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Tuple
from enum import Enum, auto


# =============================================================================
# ERROR STATES (Explicit, never silent)
# =============================================================================

class ErrorCode(Enum):
    """
    Explicit error codes for deterministic error handling.
    No silent fallbacks - every error state is enumerated.
    """
    # Canonical value errors
    MALFORMED_INPUT = auto()
    NOT_CANONICAL = auto()

    # Node construction errors
    UNKNOWN_VARIANT = auto()
    SCHEMA_VIOLATION = auto()
    IDENTITY_MISMATCH = auto()
    VALIDATION_FAILED = auto()
    DUPLICATE_IDENTITY = auto()

    # Store errors
    DANGLING_REFERENCE = auto()
    UNKNOWN_REFERENCE = auto()

    # Inference errors
    UNSUPPORTED_PATTERN = auto()

    # Configuration errors
    INVALID_CONFIGURATION = auto()


class PolygeneaError(Exception):
    """
    Root of every failure raised by polygenea.

    Each subclass pins a single ErrorCode; callers branch on the class
    or on `code`, never on the message text.
    """
    code: ErrorCode = ErrorCode.VALIDATION_FAILED

    def __init__(self, message: str, *context: Tuple[str, str]):
        super().__init__(message)
        self.message = message
        self.context: Tuple[Tuple[str, str], ...] = tuple(context)

    def __str__(self) -> str:
        if not self.context:
            return self.message
        details = ", ".join(f"{k}={v}" for k, v in self.context)
        return f"{self.message} ({details})"


class MalformedInput(PolygeneaError, ValueError):
    """Text could not be parsed as a canonical value."""
    code = ErrorCode.MALFORMED_INPUT

    def __init__(self, message: str, position: Optional[int] = None):
        if position is None:
            super().__init__(message)
        else:
            super().__init__(message, ("position", str(position)))
        self.position = position


class CanonicalizationError(PolygeneaError, ValueError):
    """A value has no canonical text form (NaN, huge ints, odd types)."""
    code = ErrorCode.NOT_CANONICAL


class UnknownVariant(PolygeneaError):
    """No node variant is registered under the given discriminator."""
    code = ErrorCode.UNKNOWN_VARIANT


class SchemaViolation(PolygeneaError):
    """Missing, mistyped or undeclared attribute, or discriminator mismatch."""
    code = ErrorCode.SCHEMA_VIOLATION


class IdentityError(PolygeneaError):
    """Supplied identity disagrees with the node's identity flavour or content."""
    code = ErrorCode.IDENTITY_MISMATCH


class DanglingReference(PolygeneaError):
    """A node refers to something the store does not hold."""
    code = ErrorCode.DANGLING_REFERENCE

    def __init__(self, missing: str, referrer: Optional[str] = None):
        context = [("missing", missing)]
        if referrer is not None:
            context.append(("referrer", referrer))
        super().__init__(f"reference to unknown node {missing}", *context)
        self.missing = missing


class UnknownReference(PolygeneaError, KeyError):
    """A lookup token could not be resolved to a node."""
    code = ErrorCode.UNKNOWN_REFERENCE

    def __init__(self, reference: object):
        super().__init__(f"cannot resolve reference {reference!r}")
        self.reference = reference

    # KeyError.__str__ would repr() the message
    __str__ = PolygeneaError.__str__


class ValidationFailure(PolygeneaError):
    """A node failed its semantic self-check; carries every issue found."""
    code = ErrorCode.VALIDATION_FAILED

    def __init__(self, subject: str, issues: List[ValidationIssue]):
        summary = "; ".join(issue.message for issue in issues)
        super().__init__(f"{subject} failed validation: {summary}")
        self.issues: Tuple[ValidationIssue, ...] = tuple(issues)


class DuplicateIdentity(PolygeneaError):
    """The same node appears twice where members must be distinct."""
    code = ErrorCode.DUPLICATE_IDENTITY


class UnsupportedPattern(PolygeneaError):
    """A rule pattern uses an operator the matcher does not understand."""
    code = ErrorCode.UNSUPPORTED_PATTERN


class ConfigurationError(PolygeneaError):
    """Configuration value is missing or out of range."""
    code = ErrorCode.INVALID_CONFIGURATION


# =============================================================================
# VALIDATION RECORDS (Collected, never thrown by validate)
# =============================================================================

@dataclass(frozen=True)
class ValidationIssue:
    """
    One problem found by a node's validate() pass.
    Issues are data, not exceptions - they are accumulated into a log.
    """
    code: ErrorCode
    message: str
    attribute: Optional[str] = None

    def __str__(self) -> str:
        if self.attribute:
            return f"[{self.code.name}] {self.attribute}: {self.message}"
        return f"[{self.code.name}] {self.message}"


# =============================================================================
# AUDIT TYPES (Append-only trail)
# =============================================================================

class AuditEventType(Enum):
    """Explicit audit event types."""
    STORE = "store"
    PERSISTENCE = "persistence"


def utc_now() -> datetime:
    """All timestamps are UTC, never local time."""
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class AuditLogEntry:
    """Immutable audit log entry."""
    entry_id: str
    event_type: AuditEventType
    timestamp: datetime
    layer: str
    action: str
    entity_id: Optional[str] = None
    metadata: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)
