"""
Node Abstraction

A Node is an immutable claim, source or annotation. Each variant declares
its attributes explicitly through dataclass field metadata; that table,
not live object inspection, drives canonicalization, reference discovery
and construction from parsed maps.

INVARIANTS:
===========
- Nodes are frozen after __post_init__
- Content-derived identity == derive(POLYGENEA_NAMESPACE, hashable text)
- height(leaf) == 0, otherwise 1 + max(height of out-edges)
- Equality, hashing and ordering use (variant, identity) only

BOUNDARY ENFORCEMENT:
=====================
- Construction fails fast (SchemaViolation, IdentityError,
  DuplicateIdentity, ValidationFailure from the closing self-check);
  no partial node is ever produced
- validate() never raises; it appends ValidationIssue records to a log
"""

from __future__ import annotations
from collections.abc import Mapping
from dataclasses import MISSING, dataclass, field, fields
from enum import Enum
from typing import Any, ClassVar, Dict, Iterator, List, Optional, Tuple, Type, Union
from uuid import UUID

from ..canonical.serializer import ReferenceRenderer, serialize
from ..canonical.values import CanonicalReference, CanonicalSet, freeze
from ..contracts.base import (
    ErrorCode,
    IdentityError,
    SchemaViolation,
    UnknownReference,
    UnknownVariant,
    ValidationFailure,
    ValidationIssue,
)
from ..identity import (
    check_identity_flavor,
    coerce_identity,
    content_identity,
    new_assigned_identity,
)


CLASS_KEY = "!class"
IDENTITY_KEY = "!uuid"
RESERVED_KEYS = (CLASS_KEY, IDENTITY_KEY)


# =============================================================================
# ATTRIBUTE DECLARATIONS
# =============================================================================

class AttributeKind(Enum):
    """How an attribute's value is typed, frozen and serialized."""
    TEXT = "text"
    CHOICE = "choice"  # Enum member, serialized by name
    MAP = "map"
    PATTERNS = "patterns"  # list of partial node maps
    NODE = "node"
    NODES = "nodes"


@dataclass(frozen=True)
class AttributeSpec:
    """One row of a variant's attribute table."""
    name: str
    canonical: str
    kind: AttributeKind
    required: bool
    target: Optional[type] = None
    choices: Optional[Type[Enum]] = None
    ordered: bool = False
    ordered_when: Optional[str] = None

    @property
    def is_reference(self) -> bool:
        return self.kind in (AttributeKind.NODE, AttributeKind.NODES)


_META = "polygenea"


def _attribute(kind: AttributeKind, *, name=None, optional=False, default=MISSING, **extra):
    metadata = {_META: dict(kind=kind, canonical=name, **extra)}
    if default is not MISSING:
        return field(default=default, metadata=metadata)
    if optional:
        return field(default=None, metadata=metadata)
    return field(metadata=metadata)


def text(*, name=None, optional=False, default=MISSING):
    """A string attribute."""
    return _attribute(AttributeKind.TEXT, name=name, optional=optional, default=default)


def choice(enum_type: Type[Enum], *, name=None, optional=False):
    """An enumerated attribute; accepts a member or its name."""
    return _attribute(AttributeKind.CHOICE, name=name, optional=optional, choices=enum_type)


def mapping(*, name=None, optional=False):
    """A string-keyed map of plain values."""
    return _attribute(AttributeKind.MAP, name=name, optional=optional)


def patterns(*, name=None):
    """An ordered list of partial node maps (rule antecedents/consequents)."""
    return _attribute(AttributeKind.PATTERNS, name=name)


def ref(target: type, *, name=None, optional=False):
    """A single reference to a node of the given role."""
    return _attribute(AttributeKind.NODE, name=name, optional=optional, target=target)


def refs(target: type, *, name=None, ordered=False, ordered_when=None):
    """
    A collection of references.

    Unordered collections become a CanonicalSet and reject repeats.
    `ordered_when` names a sibling attribute whose presence makes the
    collection an ordered list instead.
    """
    return _attribute(
        AttributeKind.NODES, name=name, target=target,
        ordered=ordered, ordered_when=ordered_when,
    )


_schemas: Dict[type, Tuple[AttributeSpec, ...]] = {}


def schema_of(cls: type) -> Tuple[AttributeSpec, ...]:
    """The attribute table of a node class (cached)."""
    cached = _schemas.get(cls)
    if cached is None:
        specs = []
        for f in fields(cls):
            meta = f.metadata.get(_META)
            if meta is None:
                continue
            meta = dict(meta)
            required = f.default is MISSING and f.default_factory is MISSING
            specs.append(AttributeSpec(
                name=f.name,
                canonical=meta.pop("canonical") or f.name,
                kind=meta.pop("kind"),
                required=required,
                **meta,
            ))
        cached = _schemas[cls] = tuple(specs)
    return cached


# =============================================================================
# NODE
# =============================================================================

# Every variant and role class is declared with this decorator
node_class = dataclass(frozen=True, eq=False, kw_only=True, repr=False)


@node_class
class Node(CanonicalReference):
    """
    Base of every node variant.

    Identity-bearing variants (has_identity = True) keep an externally
    assigned version 1/4 identifier; every other variant's identity is
    derived from its own content.
    """
    variant: ClassVar[str] = ""
    has_identity: ClassVar[bool] = False

    identity: Optional[UUID] = None
    height: int = field(init=False, default=0)

    def __post_init__(self):
        cls = type(self)
        if "variant" not in cls.__dict__ or not cls.variant:
            raise SchemaViolation(f"{cls.__name__} is not a registered node variant")

        for spec in schema_of(cls):
            value = self._normalize(spec, getattr(self, spec.name))
            object.__setattr__(self, spec.name, value)

        object.__setattr__(self, "identity", self._resolve_identity())
        heights = [child.height for child in self.out_edges()]
        object.__setattr__(self, "height", 1 + max(heights) if heights else 0)
        self.check()

    def _normalize(self, spec: AttributeSpec, value: Any) -> Any:
        if value is None:
            if spec.required:
                raise SchemaViolation(
                    f"{self.variant} requires attribute {spec.canonical!r}",
                    ("attribute", spec.canonical),
                )
            return None

        kind = spec.kind
        if kind is AttributeKind.TEXT:
            if not isinstance(value, str):
                raise self._mistyped(spec, "a string", value)
            return value
        if kind is AttributeKind.CHOICE:
            if isinstance(value, spec.choices):
                return value
            if isinstance(value, str) and value in spec.choices.__members__:
                return spec.choices[value]
            raise self._mistyped(spec, f"one of {list(spec.choices.__members__)}", value)
        if kind is AttributeKind.MAP:
            if not isinstance(value, Mapping):
                raise self._mistyped(spec, "a map", value)
            return freeze(value)
        if kind is AttributeKind.PATTERNS:
            if isinstance(value, (str, Mapping)) or not _is_collection(value):
                raise self._mistyped(spec, "a list of maps", value)
            if not all(isinstance(item, Mapping) for item in value):
                raise self._mistyped(spec, "a list of maps", value)
            return tuple(freeze(item) for item in value)
        if kind is AttributeKind.NODE:
            self._check_target(spec, value)
            return value

        if isinstance(value, (str, Mapping)) or not _is_collection(value):
            raise self._mistyped(spec, "a collection of nodes", value)
        members = list(value)
        for member in members:
            self._check_target(spec, member)
        if self._is_ordered(spec):
            return tuple(members)
        return CanonicalSet(members)

    def _is_ordered(self, spec: AttributeSpec) -> bool:
        if spec.ordered_when is not None:
            return getattr(self, spec.ordered_when) is not None
        return spec.ordered

    def _check_target(self, spec: AttributeSpec, value: Any) -> None:
        if not isinstance(value, spec.target):
            raise self._mistyped(spec, f"a {spec.target.__name__} node", value)

    def _mistyped(self, spec: AttributeSpec, expected: str, value: Any) -> SchemaViolation:
        return SchemaViolation(
            f"{self.variant}.{spec.canonical} must be {expected}, got {type(value).__name__}",
            ("attribute", spec.canonical),
        )

    def _resolve_identity(self) -> UUID:
        supplied = self.identity
        if supplied is not None:
            supplied = coerce_identity(supplied)
            check_identity_flavor(supplied, self.has_identity)
        if self.has_identity:
            return supplied or new_assigned_identity()
        computed = content_identity(self.hashable_text())
        if supplied is not None and supplied != computed:
            raise IdentityError(
                f"{self.variant} identity {supplied} does not match its content",
                ("expected", str(computed)),
            )
        return computed

    # =========================================================================
    # CANONICAL FORM
    # =========================================================================

    @classmethod
    def schema(cls) -> Tuple[AttributeSpec, ...]:
        return schema_of(cls)

    def attributes(self) -> Iterator[Tuple[AttributeSpec, Any]]:
        """Present (non-None) attributes in declaration order."""
        for spec in schema_of(type(self)):
            value = getattr(self, spec.name)
            if value is not None:
                yield spec, value

    @classmethod
    def attribute_spec(cls, canonical: str) -> Optional[AttributeSpec]:
        """Declared attribute by canonical name, or None if the variant lacks it."""
        for spec in schema_of(cls):
            if spec.canonical == canonical:
                return spec
        return None

    def get_attribute(self, canonical: str) -> Any:
        """Current value of a declared attribute; KeyError if undeclared."""
        spec = self.attribute_spec(canonical)
        if spec is None:
            raise KeyError(canonical)
        return getattr(self, spec.name)

    def to_canonical(self, with_identity: bool = True) -> Mapping:
        """Canonical map: discriminator, optional identity, every present attribute."""
        result: Dict[str, Any] = {CLASS_KEY: self.variant}
        if with_identity:
            result[IDENTITY_KEY] = str(self.identity)
        for spec, value in self.attributes():
            if spec.kind is AttributeKind.CHOICE:
                value = value.name
            result[spec.canonical] = value
        return freeze(result)

    def canonical_text(self, reference: Optional[ReferenceRenderer] = None) -> str:
        """Stand-alone serialization, including the identity."""
        return serialize(self.to_canonical(True), reference)

    def hashable_text(self) -> str:
        """The text content-derived identity is computed over."""
        return serialize(self.to_canonical(False))

    # =========================================================================
    # GRAPH STRUCTURE
    # =========================================================================

    def out_edges(self) -> Tuple[Node, ...]:
        """Nodes referenced directly, unwrapping one level of collections."""
        found: List[Node] = []
        for _, value in self.attributes():
            if isinstance(value, Node):
                found.append(value)
            elif isinstance(value, Mapping):
                found.extend(v for v in value.values() if isinstance(v, Node))
            elif isinstance(value, (tuple, CanonicalSet)):
                found.extend(v for v in value if isinstance(v, Node))
        return tuple(found)

    def depends_on(self) -> List[Node]:
        """Transitive closure of out_edges (repeats are possible)."""
        result: List[Node] = []
        pending = list(reversed(self.out_edges()))
        while pending:
            node = pending.pop()
            result.append(node)
            pending.extend(reversed(node.out_edges()))
        return result

    # =========================================================================
    # VALIDATION
    # =========================================================================

    def validate(self, log: Optional[List[ValidationIssue]] = None) -> bool:
        """
        Append every problem found to `log`; True when none were found.

        Subclasses extend this and must call super().validate(log).
        """
        if log is None:
            log = []
        before = len(log)

        identity = self.identity
        if self.has_identity:
            if identity.version not in (1, 4):
                log.append(ValidationIssue(
                    ErrorCode.IDENTITY_MISMATCH,
                    f"assigned identity must be version 1 or 4, not {identity.version}",
                ))
        else:
            if identity.version != 5:
                log.append(ValidationIssue(
                    ErrorCode.IDENTITY_MISMATCH,
                    f"content identity must be version 5, not {identity.version}",
                ))
            elif identity != content_identity(self.hashable_text()):
                log.append(ValidationIssue(
                    ErrorCode.IDENTITY_MISMATCH, "identity does not match content",
                ))

        for spec in schema_of(type(self)):
            if spec.required and getattr(self, spec.name) is None:
                log.append(ValidationIssue(
                    ErrorCode.SCHEMA_VIOLATION, "required attribute missing", spec.canonical,
                ))
        return len(log) == before

    def check(self) -> Node:
        """Raise ValidationFailure listing every issue, else return self."""
        issues: List[ValidationIssue] = []
        if not self.validate(issues):
            raise ValidationFailure(f"{self.variant} {self.identity}", issues)
        return self

    # =========================================================================
    # IDENTITY SEMANTICS
    # =========================================================================

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Node):
            return NotImplemented
        return self.variant == other.variant and self.identity == other.identity

    def __hash__(self) -> int:
        return hash((self.variant, self.identity))

    def __lt__(self, other: Node) -> bool:
        return self.reference_key() < other.reference_key()

    def __repr__(self) -> str:
        return f"{self.variant}({self.identity})"

    @classmethod
    def from_canonical(
        cls,
        value: Mapping,
        lookup: NodeLookup,
        registry: Optional[NodeRegistry] = None,
    ) -> Node:
        """Build a node of this class (or a subclass) from a canonical map."""
        return node_from_canonical(value, lookup, registry, expected=cls)


def _is_collection(value: Any) -> bool:
    return isinstance(value, (list, tuple, set, frozenset, CanonicalSet))


# =============================================================================
# LOOKUP CAPABILITY
# =============================================================================

Reference = Union[Node, UUID, str, int]


class NodeLookup:
    """
    Resolves a reference token to a Node.

    Tokens are identities (UUID or string), batch positions (int) or
    already-built nodes. Unresolvable tokens raise UnknownReference.
    """

    def lookup(self, reference: Reference) -> Node:
        raise NotImplementedError


class MappingLookup(NodeLookup):
    """Lookup over a plain identity -> node mapping."""

    def __init__(self, nodes: Optional[Dict[UUID, Node]] = None):
        self._nodes: Dict[UUID, Node] = dict(nodes or {})

    def lookup(self, reference: Reference) -> Node:
        if isinstance(reference, Node):
            return reference
        if isinstance(reference, (bool, int)):
            raise UnknownReference(reference)
        try:
            return self._nodes[coerce_identity(reference)]
        except (KeyError, IdentityError):
            raise UnknownReference(reference)


# =============================================================================
# VARIANT REGISTRY
# =============================================================================

class NodeRegistry:
    """
    Discriminator name -> node class.

    Open: third-party variants register with the same decorator the
    built-in catalog uses.
    """

    def __init__(self):
        self._variants: Dict[str, Type[Node]] = {}

    def register(self, cls: Optional[Type[Node]] = None, *, name: Optional[str] = None):
        def apply(node_cls: Type[Node]) -> Type[Node]:
            variant = name or node_cls.__name__
            existing = self._variants.get(variant)
            if existing is not None and existing is not node_cls:
                raise ValueError(f"variant {variant!r} is already registered")
            node_cls.variant = variant
            self._variants[variant] = node_cls
            return node_cls

        if cls is None:
            return apply
        return apply(cls)

    def resolve(self, variant: str) -> Type[Node]:
        try:
            return self._variants[variant]
        except KeyError:
            raise UnknownVariant(f"no node variant named {variant!r}")

    def names(self) -> Tuple[str, ...]:
        return tuple(sorted(self._variants))

    def __contains__(self, variant: object) -> bool:
        return variant in self._variants


DEFAULT_REGISTRY = NodeRegistry()
register = DEFAULT_REGISTRY.register


def node_from_canonical(
    value: Mapping,
    lookup: NodeLookup,
    registry: Optional[NodeRegistry] = None,
    expected: Optional[Type[Node]] = None,
) -> Node:
    """
    Construct a node from its canonical map, resolving references via lookup.

    Raises SchemaViolation, UnknownVariant, IdentityError or
    UnknownReference; nothing is constructed unless every check passes.
    """
    registry = registry or DEFAULT_REGISTRY
    if not isinstance(value, Mapping):
        raise SchemaViolation(f"a node must be a map, got {type(value).__name__}")
    variant = value.get(CLASS_KEY)
    if not isinstance(variant, str):
        raise SchemaViolation(f"a node map needs a string {CLASS_KEY!r} attribute")
    cls = registry.resolve(variant)
    if expected is not None and expected is not Node and not issubclass(cls, expected):
        raise SchemaViolation(
            f"discriminator {variant!r} is not a {expected.__name__}",
            ("attribute", CLASS_KEY),
        )

    specs = {spec.canonical: spec for spec in schema_of(cls)}
    undeclared = sorted(k for k in value if k not in specs and k not in RESERVED_KEYS)
    if undeclared:
        raise SchemaViolation(
            f"{variant} has no attribute(s) {', '.join(undeclared)}",
            ("attribute", undeclared[0]),
        )

    kwargs: Dict[str, Any] = {}
    for canonical, spec in specs.items():
        if canonical not in value or value[canonical] is None:
            if spec.required:
                raise SchemaViolation(
                    f"{variant} requires attribute {canonical!r}",
                    ("attribute", canonical),
                )
            continue
        raw = value[canonical]
        if spec.kind is AttributeKind.NODE:
            raw = lookup.lookup(raw)
        elif spec.kind is AttributeKind.NODES:
            if isinstance(raw, (str, Mapping)) or not _is_collection(raw):
                raise SchemaViolation(
                    f"{variant}.{canonical} must be a list of references",
                    ("attribute", canonical),
                )
            raw = [lookup.lookup(item) for item in raw]
        kwargs[spec.name] = raw

    if IDENTITY_KEY in value:
        kwargs["identity"] = coerce_identity(value[IDENTITY_KEY])
    return cls(**kwargs)
