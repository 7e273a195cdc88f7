"""
Polygenea

A content-addressed, append-only graph store for small factual claims,
plus a declarative inference engine that derives new claims from
existing ones by structural pattern matching.

LAYER STRUCTURE:
================

1. CONTRACTS (contracts/)
   - Responsibility: Error taxonomy, validation records, audit entries
   - MUST NOT: Import any other layer

2. CANONICAL VALUES (canonical/)
   - Responsibility: Total order, strict parsing, byte-exact serialization
   - Outputs: Frozen values and canonical text
   - MUST NOT: Know about node variants or hashing

3. IDENTITY (identity.py)
   - Responsibility: SHA-1 name-based identifiers
   - Outputs: Version-5 identities, the polygenea namespace

4. NODES (nodes/)
   - Responsibility: Variant schemas, identity, out-edges, validation
   - Outputs: Immutable Node instances
   - MUST NOT: Store nodes or track reverse edges

5. STORAGE (storage/)
   - Responsibility: Referential integrity, reverse-edge index,
     topological and compressed serialization
   - MUST NOT: Delete or replace nodes

6. INFERENCE (inference/)
   - Responsibility: Pattern matching and consequent synthesis
   - MUST NOT: Treat an ordinary mismatch as an error

CONSTRAINTS ENFORCED:
=====================
- Immutability-first: values and nodes are frozen
- Append-only: the store only grows
- Deterministic: identical content always yields identical identity
- Explicit errors: every failure is a PolygeneaError with an ErrorCode
"""

from .contracts import (
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
)
from .canonical import CanonicalSet, SetPolicy, canonical_equal, compare_values, parse, serialize
from .identity import NIL_NAMESPACE, POLYGENEA_NAMESPACE, derive
from .nodes import (
    Citation,
    CitationKind,
    Claim,
    ConnectingNote,
    Connection,
    ExternalSource,
    Grouping,
    Inference,
    InferenceRule,
    Match,
    Node,
    NodeLookup,
    Note,
    Property,
    Source,
    Thing,
)
from .storage import GraphStore, GraphStoreConfig, compressed_serialize
from .inference import Derivation, InferenceConfig, RuleEngine, apply_rule, value_matches
from .engine import PolygeneaConfig, PolygeneaEngine

__version__ = "0.1.0"
