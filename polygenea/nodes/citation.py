"""
Citation: where a piece of evidence can be found.
"""

from __future__ import annotations
from collections.abc import Mapping
from enum import Enum
from typing import Any, List, Optional
import unicodedata

from ..contracts.base import ErrorCode, ValidationIssue
from .base import Node, choice, mapping, node_class, register


class CitationKind(Enum):
    """How durable the cited location is."""
    TRANSIENT = "transient"  # conversation, memory, a page that may vanish
    PERSISTENT = "persistent"  # archived record, published work
    USER = "user"  # entered by the person using the tool


@register
@node_class
class Citation(Node):
    """
    Free-form citation details plus a durability kind.

    The details map must hold at least one entry; keys may not be empty,
    start with '!' or start with whitespace or a control character, and
    values may not be null.
    """
    details: Mapping = mapping()
    kind: CitationKind = choice(CitationKind)

    @classmethod
    def of(cls, kind: CitationKind, **details: Any) -> Citation:
        return cls(details=details, kind=kind)

    def validate(self, log: Optional[List[ValidationIssue]] = None) -> bool:
        if log is None:
            log = []
        ok = super().validate(log)

        if len(self.details) < 1:
            log.append(_issue("must have at least one entry"))
            ok = False
        for key, value in self.details.items():
            if not key:
                log.append(_issue("keys must not be empty"))
                ok = False
                continue
            if key.startswith("!"):
                log.append(_issue(f"key {key!r} must not start with '!'"))
                ok = False
            if key[0].isspace():
                log.append(_issue(f"key {key!r} must not start with white space"))
                ok = False
            if unicodedata.category(key[0]) == "Cc":
                log.append(_issue(f"key {key!r} must not start with a control character"))
                ok = False
            if value is None:
                log.append(_issue(f"value of {key!r} must not be null"))
                ok = False
        return ok


def _issue(message: str) -> ValidationIssue:
    return ValidationIssue(ErrorCode.VALIDATION_FAILED, message, "details")
