"""
Inference Layer

RESPONSIBILITY: Match rule antecedent patterns against candidate claims and
                synthesize the Inference and consequent claims they imply
ALLOWED INPUTS: An InferenceRule plus an ordered tuple of candidate Claims,
                or a GraphStore to draw candidates from
OUTPUTS: Derivation (inference + consequents), or None for no match

WHAT THIS LAYER MUST NOT DO:
============================
- Mutate the store, except through RuleEngine.derive_into
- Treat an ordinary mismatch as an error

PATTERN LANGUAGE:
=================
For every non-reserved attribute of an antecedent pattern, the candidate's
current value must match the pattern value:

- collection   -> candidate value is a collection of equal length whose
                  members match element-wise
- integer k    -> candidate value is the node candidates[k]
- "!re:R"      -> candidate value is a string fully matching regex R
- "!contains:V"-> candidate value is a collection with a member matching
                  the value parsed from V
- "!xref:K.A"  -> candidate value matches candidates[K]'s attribute A
- other "!x:"  -> UnsupportedPattern (a rule-authoring error)
- anything else-> canonical equality (a node also equals its identity string)

A pattern attribute the candidate's variant does not declare is a mismatch.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple
import itertools
import logging
import re

from ..canonical.parser import parse
from ..canonical.values import CanonicalSet, canonical_equal, identity_order
from ..contracts.base import (
    DuplicateIdentity,
    MalformedInput,
    UnknownReference,
    UnsupportedPattern,
    ValidationFailure,
)
from ..nodes import (
    CLASS_KEY,
    DEFAULT_REGISTRY,
    Claim,
    Inference,
    InferenceRule,
    Node,
    NodeLookup,
    NodeRegistry,
    Reference,
    node_from_canonical,
)

logger = logging.getLogger(__name__)

_OPERATOR = re.compile(r"!([^:]*):(.*)")
_COLLECTIONS = (tuple, list, CanonicalSet)


# =============================================================================
# MATCHING
# =============================================================================

def value_matches(value: Any, target: Any, candidates: Sequence[Node]) -> bool:
    """True if an attribute value satisfies a pattern value."""
    if isinstance(target, _COLLECTIONS):
        if not isinstance(value, _COLLECTIONS) or len(value) != len(target):
            return False
        return all(value_matches(v, t, candidates) for v, t in zip(value, target))

    if isinstance(target, int) and not isinstance(target, bool):
        if not 0 <= target < len(candidates):
            return False
        return isinstance(value, Node) and value == candidates[target]

    if isinstance(target, str):
        operator = _OPERATOR.fullmatch(target)
        if operator is not None:
            kind, rest = operator.groups()
            return _apply_operator(kind, rest, value, candidates)
        if isinstance(value, Node):
            return str(value.identity) == target

    if isinstance(value, Enum):
        value = value.name
    if isinstance(value, Node) or isinstance(target, Node):
        return isinstance(value, Node) and value == target
    return canonical_equal(value, target)


def _apply_operator(kind: str, rest: str, value: Any, candidates: Sequence[Node]) -> bool:
    if kind == "re":
        if isinstance(value, Enum):
            value = value.name
        if not isinstance(value, str):
            return False
        try:
            return re.fullmatch(rest, value) is not None
        except re.error as exc:
            raise UnsupportedPattern(f"bad regular expression {rest!r}: {exc}")

    if kind == "contains":
        if not isinstance(value, _COLLECTIONS):
            return False
        try:
            wanted = parse(rest)
        except MalformedInput as exc:
            raise UnsupportedPattern(f"!contains: operand is not a value: {exc}")
        return any(value_matches(member, wanted, candidates) for member in value)

    if kind == "xref":
        index_text, dot, attribute = rest.partition(".")
        if not dot or not index_text.isdigit() or not attribute:
            raise UnsupportedPattern(f"!xref: operand must be <index>.<attribute>, got {rest!r}")
        index = int(index_text)
        if index >= len(candidates):
            return False
        other = candidates[index]
        if other.attribute_spec(attribute) is None:
            return False
        return value_matches(value, other.get_attribute(attribute), candidates)

    raise UnsupportedPattern(f"unknown pattern operator !{kind}:")


def antecedents_match(rule: InferenceRule, candidates: Sequence[Node]) -> bool:
    """True if the candidates satisfy every antecedent pattern, in order."""
    if len(candidates) != rule.arity:
        return False
    for pattern, candidate in zip(rule.antecedent_patterns(), candidates):
        if pattern.variant is not None and pattern.variant != candidate.variant:
            return False
        for name, target in pattern.attributes:
            if candidate.attribute_spec(name) is None:
                return False
            if not value_matches(candidate.get_attribute(name), target, candidates):
                return False
    return True


# =============================================================================
# CONSEQUENT SYNTHESIS
# =============================================================================

class ConsequentLookup(NodeLookup):
    """
    Resolves integer references inside consequent templates.

    0..arity-1 are the candidates, arity is the new Inference, and higher
    positions are consequents instantiated earlier in the same application.
    """

    def __init__(self, candidates: Sequence[Node], inference: Inference):
        self._candidates = tuple(candidates)
        self._inference = inference
        self._consequents: List[Node] = []

    def append(self, node: Node) -> None:
        self._consequents.append(node)

    def lookup(self, reference: Reference) -> Node:
        if isinstance(reference, Node):
            return reference
        if isinstance(reference, int) and not isinstance(reference, bool) and reference >= 0:
            arity = len(self._candidates)
            if reference < arity:
                return self._candidates[reference]
            if reference == arity:
                return self._inference
            offset = reference - arity - 1
            if offset < len(self._consequents):
                return self._consequents[offset]
        raise UnknownReference(reference)


@dataclass(frozen=True)
class Derivation:
    """Result of a successful rule application."""
    inference: Inference
    consequents: Tuple[Node, ...]

    @property
    def nodes(self) -> Tuple[Node, ...]:
        return (self.inference,) + self.consequents


def apply_rule(
    rule: InferenceRule,
    candidates: Sequence[Node],
    registry: Optional[NodeRegistry] = None,
) -> Optional[Derivation]:
    """
    Apply a rule to an ordered tuple of candidate claims.

    Returns None when the candidates do not match, or when the consequents
    they produce are not valid nodes (a set naming the same claim twice).
    Consequents without an explicit source are sourced to the new Inference.
    """
    registry = registry or DEFAULT_REGISTRY
    candidates = tuple(candidates)
    if not all(isinstance(candidate, Claim) for candidate in candidates):
        return None
    if not antecedents_match(rule, candidates):
        return None

    inference = Inference(rule=rule, antecedents=candidates)
    lookup = ConsequentLookup(candidates, inference)
    consequents: List[Node] = []
    for template in rule.consequents:
        body: Dict[str, Any] = dict(template)
        variant = registry.resolve(body[CLASS_KEY])
        if variant.attribute_spec("source") is not None:
            body["source"] = len(candidates)
        try:
            node = node_from_canonical(body, lookup, registry)
        except (DuplicateIdentity, ValidationFailure) as exc:
            logger.debug("rule %s: candidates %s give no valid %s: %s",
                         rule.identity, candidates, variant.variant, exc)
            return None
        lookup.append(node)
        consequents.append(node)
    return Derivation(inference, tuple(consequents))


# =============================================================================
# STORE-WIDE APPLICATION
# =============================================================================

@dataclass
class InferenceConfig:
    """Configuration for store-wide rule application."""
    max_combinations: int = 100_000  # candidate tuples examined per rule
    registry: Optional[NodeRegistry] = None


class RuleEngine:
    """
    Applies rules to every compatible tuple of claims in a store.

    Candidates for each antecedent position are the stored claims whose
    variant satisfies that position's "!class" constraint.
    """

    def __init__(self, config: Optional[InferenceConfig] = None):
        self._config = config or InferenceConfig()
        self._registry = self._config.registry or DEFAULT_REGISTRY

    def apply(self, rule: InferenceRule, candidates: Sequence[Node]) -> Optional[Derivation]:
        return apply_rule(rule, candidates, self._registry)

    def candidate_pools(self, store, rule: InferenceRule) -> List[List[Claim]]:
        claims = sorted(
            (node for node in store.all_nodes() if isinstance(node, Claim)),
            key=lambda node: (node.height,) + identity_order(node.identity),
        )
        pools = []
        for pattern in rule.antecedent_patterns():
            if pattern.variant is None:
                pools.append(list(claims))
            else:
                pools.append([claim for claim in claims if claim.variant == pattern.variant])
        return pools

    def iter_derivations(self, store, rule: InferenceRule) -> Iterator[Derivation]:
        examined = 0
        for candidates in itertools.product(*self.candidate_pools(store, rule)):
            if examined >= self._config.max_combinations:
                logger.warning(
                    "rule %s: stopped after %d candidate tuples",
                    rule.identity, self._config.max_combinations,
                )
                return
            examined += 1
            derivation = self.apply(rule, candidates)
            if derivation is not None:
                yield derivation

    def derive(self, store, rule: InferenceRule) -> List[Derivation]:
        """Every derivation the rule yields over the store's current claims."""
        derivations = list(self.iter_derivations(store, rule))
        logger.info("rule %s matched %d candidate tuple(s)", rule.identity, len(derivations))
        return derivations

    def derive_into(self, store, rule: InferenceRule) -> List[Derivation]:
        """
        Derive and add the results to the store.

        Returns only the derivations whose Inference was not stored yet.
        """
        store.add(rule)
        fresh = []
        for derivation in self.derive(store, rule):
            if derivation.inference in store:
                continue
            store.add(*derivation.nodes)
            fresh.append(derivation)
        return fresh
