"""
Source variants: external evidence and synthesized inferences.
"""

from __future__ import annotations
from typing import List, Optional, Tuple, Union

from ..canonical.values import CanonicalSet
from ..contracts.base import ErrorCode, ValidationIssue
from .base import node_class, ref, refs, register, text
from .citation import Citation
from .roles import Claim, Source
from .rules import InferenceRule


@register
@node_class
class ExternalSource(Source):
    """Content captured from outside the system, with its citation."""
    citation: Citation = ref(Citation)
    content: Optional[str] = text(optional=True)
    content_type: str = text(name="contentType", default="text/plain")


@register
@node_class
class Inference(Source):
    """
    A source synthesized from other claims.

    With a rule the antecedents are the ordered candidates the rule was
    applied to; without one they are a duplicate-free set.
    """
    antecedents: Union[Tuple[Claim, ...], CanonicalSet] = refs(Claim, ordered_when="rule")
    rule: Optional[InferenceRule] = ref(InferenceRule, optional=True)

    def validate(self, log: Optional[List[ValidationIssue]] = None) -> bool:
        if log is None:
            log = []
        ok = super().validate(log)
        if len(self.antecedents) < 1:
            log.append(ValidationIssue(
                ErrorCode.VALIDATION_FAILED, "an inference needs at least one antecedent", "antecedents",
            ))
            ok = False
        if self.rule is not None and len(self.antecedents) != self.rule.arity:
            log.append(ValidationIssue(
                ErrorCode.VALIDATION_FAILED,
                f"rule takes {self.rule.arity} antecedent(s), got {len(self.antecedents)}",
                "antecedents",
            ))
            ok = False
        return ok
