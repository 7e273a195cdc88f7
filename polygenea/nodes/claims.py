"""
Claim variants.

Thing is the only identity-bearing variant: it stands for a real-world
entity and keeps an assigned identifier. Match asserts that several
Things are the same entity; it behaves as a Thing for matching purposes
but its identity is derived from content like every other claim.
"""

from __future__ import annotations
from typing import List, Optional

from ..canonical.values import CanonicalSet
from ..contracts.base import ErrorCode, ValidationIssue
from .base import node_class, ref, refs, register, text
from .roles import Claim


@register
@node_class
class Thing(Claim):
    """A real-world entity (person, place, record...)."""
    has_identity = True


@register
@node_class
class Match(Thing):
    """Assertion that every member of `same` is one entity."""
    has_identity = False

    same: CanonicalSet = refs(Thing)

    def validate(self, log: Optional[List[ValidationIssue]] = None) -> bool:
        if log is None:
            log = []
        ok = super().validate(log)
        if len(self.same) < 2:
            log.append(ValidationIssue(
                ErrorCode.VALIDATION_FAILED,
                f"a match needs at least two members, not {len(self.same)}",
                "same",
            ))
            ok = False
        return ok


@register
@node_class
class Property(Claim):
    """A key/value fact about a subject."""
    subject: Claim = ref(Claim)
    key: str = text()
    value: str = text()

    def validate(self, log: Optional[List[ValidationIssue]] = None) -> bool:
        if log is None:
            log = []
        ok = super().validate(log)
        for name in ("key", "value"):
            if not getattr(self, name):
                log.append(ValidationIssue(ErrorCode.VALIDATION_FAILED, "must not be empty", name))
                ok = False
        return ok


@register
@node_class
class Connection(Claim):
    """A directed, named relation between two claims."""
    subject: Claim = ref(Claim)
    object_: Claim = ref(Claim, name="object")
    relation: str = text()

    def validate(self, log: Optional[List[ValidationIssue]] = None) -> bool:
        if log is None:
            log = []
        ok = super().validate(log)
        if not self.relation:
            log.append(ValidationIssue(ErrorCode.VALIDATION_FAILED, "must not be empty", "relation"))
            ok = False
        return ok


@register
@node_class
class Grouping(Claim):
    """An unordered set of claims sharing a relation (siblings, a household)."""
    subjects: CanonicalSet = refs(Claim)
    relation: str = text()

    def validate(self, log: Optional[List[ValidationIssue]] = None) -> bool:
        if log is None:
            log = []
        ok = super().validate(log)
        if len(self.subjects) < 2:
            log.append(ValidationIssue(
                ErrorCode.VALIDATION_FAILED,
                f"a group needs at least two subjects, not {len(self.subjects)}",
                "subjects",
            ))
            ok = False
        if not self.relation:
            log.append(ValidationIssue(ErrorCode.VALIDATION_FAILED, "must not be empty", "relation"))
            ok = False
        return ok
