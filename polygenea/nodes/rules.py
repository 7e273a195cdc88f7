"""
InferenceRule: a declarative pattern for deriving claims from claims.

Antecedents and consequents are partial node maps in the ordinary
canonical form, with these constraints:

- Neither carries "!uuid"; a rule applies to many nodes
- Consequents carry "!class" and never "source" (the source of every
  consequent is the Inference produced by applying the rule)
- Node references inside patterns are integer positions into the
  virtual list  candidates + [inference] + earlier consequents
- Antecedent string values of the form "!kind:rest" are operators
  (see polygenea.inference)
"""

from __future__ import annotations
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

from ..contracts.base import ErrorCode, ValidationIssue
from .base import CLASS_KEY, IDENTITY_KEY, Node, node_class, patterns, register


@dataclass(frozen=True)
class PartialNode:
    """An antecedent pattern split into its variant constraint and attributes."""
    variant: Optional[str]
    attributes: Tuple[Tuple[str, Any], ...]


@register
@node_class
class InferenceRule(Node):
    antecedents: Tuple[Mapping, ...] = patterns()
    consequents: Tuple[Mapping, ...] = patterns()

    @property
    def arity(self) -> int:
        return len(self.antecedents)

    def antecedent_patterns(self) -> Tuple[PartialNode, ...]:
        result = []
        for pattern in self.antecedents:
            variant = pattern.get(CLASS_KEY)
            attributes = tuple(
                (key, value) for key, value in pattern.items() if not key.startswith("!")
            )
            result.append(PartialNode(variant, attributes))
        return tuple(result)

    def validate(self, log: Optional[List[ValidationIssue]] = None) -> bool:
        if log is None:
            log = []
        before = len(log)
        super().validate(log)

        def problem(message: str, attribute: str) -> None:
            log.append(ValidationIssue(ErrorCode.VALIDATION_FAILED, message, attribute))

        if len(self.antecedents) < 1:
            problem("a rule needs at least one antecedent", "antecedents")
        if len(self.consequents) < 1:
            problem("a rule needs at least one consequent", "consequents")
        for index, pattern in enumerate(self.antecedents):
            if IDENTITY_KEY in pattern:
                problem(f"antecedent {index} must not carry an identity", "antecedents")
            variant = pattern.get(CLASS_KEY)
            if variant is not None and not isinstance(variant, str):
                problem(f"antecedent {index} has a non-string {CLASS_KEY}", "antecedents")
        for index, pattern in enumerate(self.consequents):
            if IDENTITY_KEY in pattern:
                problem(f"consequent {index} must not carry an identity", "consequents")
            if "source" in pattern:
                problem(f"consequent {index} must not specify a source", "consequents")
            if not isinstance(pattern.get(CLASS_KEY), str):
                problem(f"consequent {index} must declare its {CLASS_KEY}", "consequents")
        return len(log) == before
