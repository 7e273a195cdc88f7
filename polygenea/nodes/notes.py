"""
Notes: free-text annotations that are not claims.
"""

from __future__ import annotations
from typing import List, Optional

from ..contracts.base import ErrorCode, ValidationIssue
from .base import Node, node_class, ref, register, text


@register
@node_class
class Note(Node):
    """Researcher commentary about any node."""
    about: Node = ref(Node)
    content: str = text()
    creator: Optional[str] = text(optional=True)

    def validate(self, log: Optional[List[ValidationIssue]] = None) -> bool:
        if log is None:
            log = []
        ok = super().validate(log)
        if not self.content:
            log.append(ValidationIssue(ErrorCode.VALIDATION_FAILED, "a note needs content", "content"))
            ok = False
        return ok


@register
@node_class
class ConnectingNote(Node):
    """Commentary relating two nodes, e.g. "these look like the same record"."""
    subject: Node = ref(Node)
    object_: Node = ref(Node, name="object")
    relation: str = text()
    creator: Optional[str] = text(optional=True)

    def validate(self, log: Optional[List[ValidationIssue]] = None) -> bool:
        if log is None:
            log = []
        ok = super().validate(log)
        if not self.relation:
            log.append(ValidationIssue(ErrorCode.VALIDATION_FAILED, "must not be empty", "relation"))
            ok = False
        return ok
