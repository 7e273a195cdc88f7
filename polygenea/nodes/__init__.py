"""
Node Layer

RESPONSIBILITY: Variant schemas, content identity, graph structure, validation
ALLOWED INPUTS: Python values, or canonical maps plus a NodeLookup
OUTPUTS: Immutable Node instances

WHAT THIS LAYER MUST NOT DO:
============================
- Store nodes or maintain reverse edges (storage/)
- Apply inference rules (inference/)

Importing this package registers the built-in variant catalog in
DEFAULT_REGISTRY.
"""

from .base import (
    CLASS_KEY,
    DEFAULT_REGISTRY,
    IDENTITY_KEY,
    AttributeKind,
    AttributeSpec,
    MappingLookup,
    Node,
    NodeLookup,
    NodeRegistry,
    Reference,
    choice,
    mapping,
    node_class,
    node_from_canonical,
    patterns,
    ref,
    refs,
    register,
    schema_of,
    text,
)
from .roles import Claim, Source
from .citation import Citation, CitationKind
from .rules import InferenceRule, PartialNode
from .sources import ExternalSource, Inference
from .claims import Connection, Grouping, Match, Property, Thing
from .notes import ConnectingNote, Note

__all__ = [
    "CLASS_KEY",
    "DEFAULT_REGISTRY",
    "IDENTITY_KEY",
    "AttributeKind",
    "AttributeSpec",
    "MappingLookup",
    "Node",
    "NodeLookup",
    "NodeRegistry",
    "Reference",
    "choice",
    "mapping",
    "node_class",
    "node_from_canonical",
    "patterns",
    "ref",
    "refs",
    "register",
    "schema_of",
    "text",
    "Claim",
    "Source",
    "Citation",
    "CitationKind",
    "InferenceRule",
    "PartialNode",
    "ExternalSource",
    "Inference",
    "Connection",
    "Grouping",
    "Match",
    "Property",
    "Thing",
    "ConnectingNote",
    "Note",
]
