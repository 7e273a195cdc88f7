"""
Canonical Value Layer

RESPONSIBILITY: Ordering, parsing and deterministic text encoding of values
ALLOWED INPUTS: Text, or Python values built from None/bool/int/float/str,
                tuples, sets, mappings and node references
OUTPUTS: Frozen values and their canonical text

WHAT THIS LAYER MUST NOT DO:
============================
- Know about concrete node variants
- Hash anything (identity is a separate layer)
"""

from .values import (
    CanonicalReference,
    CanonicalSet,
    canonical_equal,
    canonical_key,
    compare_values,
    freeze,
    identity_order,
    thaw,
)
from .parser import ParserConfig, SetPolicy, parse, parse_file, parse_stream
from .serializer import quote, serialize

__all__ = [
    "CanonicalReference",
    "CanonicalSet",
    "canonical_equal",
    "canonical_key",
    "compare_values",
    "freeze",
    "identity_order",
    "thaw",
    "ParserConfig",
    "SetPolicy",
    "parse",
    "parse_file",
    "parse_stream",
    "quote",
    "serialize",
]
