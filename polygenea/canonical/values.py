"""
Canonical Value Model

A Value is one of: None, bool, number (int or float), str, an ordered
tuple of Values, a CanonicalSet of Values, a read-only mapping from str
to Value, or a reference to a node.

TOTAL ORDER:
============
None < False < True < Number < String < NodeReference < Array/Set < Map

- Numbers compare by numeric value (1 == 1.0)
- Strings compare by code point
- Node references compare by (variant name, identity), each identity
  half read as a signed 64-bit integer
- Arrays and sets compare element-wise, then by length
- Maps compare their sorted (key, value) pairs element-wise, then by length

GUARANTEES:
===========
- freeze() turns lists into tuples and dicts into read-only mappings,
  recursively, so a frozen value can be shared freely
- CanonicalSet iterates in canonical order and never holds duplicates
"""

from __future__ import annotations
from collections.abc import Mapping
from enum import Enum
from functools import cmp_to_key
from types import MappingProxyType
from typing import Any, Iterable, Iterator, Tuple
from uuid import UUID

from ..contracts.base import CanonicalizationError, DuplicateIdentity


_HALF_MASK = (1 << 64) - 1


class CanonicalReference:
    """
    Mixin for values that stand for a node inside another value.

    Subclasses provide `variant` (discriminator name) and `identity`.
    """
    variant: str = ""

    def reference_key(self) -> Tuple[str, int, int]:
        return (self.variant,) + identity_order(self.identity)  # type: ignore[attr-defined]


def identity_order(identity: UUID) -> Tuple[int, int]:
    """
    Sort key for an identifier: its two 64-bit halves read as signed.

    Identifiers at or above 8000... sort before those below it.
    """
    msb, lsb = identity.int >> 64, identity.int & _HALF_MASK
    return (_signed(msb), _signed(lsb))


def _signed(half: int) -> int:
    return half - (1 << 64) if half >> 63 else half


# =============================================================================
# ORDERING
# =============================================================================

_NULL, _FALSE, _TRUE, _NUMBER, _STRING, _NODE, _ARRAY, _MAP = range(8)


def _rank(value: Any) -> int:
    if value is None:
        return _NULL
    if value is False:
        return _FALSE
    if value is True:
        return _TRUE
    if isinstance(value, (int, float)):
        return _NUMBER
    if isinstance(value, (str, UUID, Enum)):
        return _STRING
    if isinstance(value, CanonicalReference):
        return _NODE
    if isinstance(value, (tuple, list, CanonicalSet)):
        return _ARRAY
    if isinstance(value, Mapping):
        return _MAP
    raise CanonicalizationError(f"not a canonical value: {type(value).__name__}")


def as_text(value: Any) -> str:
    """String form of the string-like scalars (str, UUID, Enum)."""
    if isinstance(value, Enum):
        return value.name
    return str(value)


def _sign(a: Any, b: Any) -> int:
    return (a > b) - (a < b)


def _compare_sequences(left: Iterable[Any], right: Iterable[Any]) -> int:
    left, right = list(left), list(right)
    for a, b in zip(left, right):
        result = compare_values(a, b)
        if result:
            return result
    return _sign(len(left), len(right))


def compare_values(a: Any, b: Any) -> int:
    """Three-way comparison under the canonical total order."""
    rank_a, rank_b = _rank(a), _rank(b)
    if rank_a != rank_b:
        return _sign(rank_a, rank_b)
    if rank_a in (_NULL, _FALSE, _TRUE):
        return 0
    if rank_a == _NUMBER:
        return _sign(a, b)
    if rank_a == _STRING:
        return _sign(as_text(a), as_text(b))
    if rank_a == _NODE:
        return _sign(a.reference_key(), b.reference_key())
    if rank_a == _ARRAY:
        return _compare_sequences(a, b)

    # Maps: sorted keys, key then value, pair by pair
    left = sorted(a.items())
    right = sorted(b.items())
    for (ka, va), (kb, vb) in zip(left, right):
        result = _sign(ka, kb) or compare_values(va, vb)
        if result:
            return result
    return _sign(len(left), len(right))


canonical_key = cmp_to_key(compare_values)


def canonical_equal(a: Any, b: Any) -> bool:
    """Equality under the canonical order (True is never equal to 1)."""
    return compare_values(a, b) == 0


# =============================================================================
# SETS
# =============================================================================

class CanonicalSet:
    """
    Immutable, duplicate-free collection kept in canonical order.

    Serializes exactly like an array, so two sets holding the same
    members always produce the same text regardless of insertion order.
    """

    __slots__ = ("_items",)

    def __init__(self, items: Iterable[Any] = ()):
        ordered = sorted((freeze(item) for item in items), key=canonical_key)
        for previous, current in zip(ordered, ordered[1:]):
            if canonical_equal(previous, current):
                raise DuplicateIdentity(f"duplicate set member {current!r}")
        self._items: Tuple[Any, ...] = tuple(ordered)

    @classmethod
    def unique(cls, items: Iterable[Any]) -> CanonicalSet:
        """Build a set, silently dropping repeated members."""
        kept = []
        for item in sorted((freeze(i) for i in items), key=canonical_key):
            if not kept or not canonical_equal(kept[-1], item):
                kept.append(item)
        result = cls.__new__(cls)
        result._items = tuple(kept)
        return result

    def __iter__(self) -> Iterator[Any]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __getitem__(self, index: int) -> Any:
        return self._items[index]

    def __contains__(self, value: Any) -> bool:
        return any(canonical_equal(value, item) for item in self._items)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CanonicalSet):
            return NotImplemented
        return (
            len(self) == len(other)
            and all(canonical_equal(a, b) for a, b in zip(self, other))
        )

    def __hash__(self) -> int:
        return hash(("CanonicalSet", tuple(hashable(item) for item in self._items)))

    def __repr__(self) -> str:
        return f"CanonicalSet({list(self._items)!r})"


# =============================================================================
# FREEZING
# =============================================================================

def freeze(value: Any) -> Any:
    """Return a deeply immutable equivalent of a canonical value."""
    if isinstance(value, CanonicalSet):
        return value
    if isinstance(value, (list, tuple)):
        return tuple(freeze(item) for item in value)
    if isinstance(value, (set, frozenset)):
        return CanonicalSet(value)
    if isinstance(value, Mapping):
        for key in value:
            if not isinstance(key, str):
                raise CanonicalizationError(f"map key must be a string, got {key!r}")
        return MappingProxyType({key: freeze(value[key]) for key in sorted(value)})
    return value


def thaw(value: Any) -> Any:
    """Inverse of freeze for display: tuples and sets become lists, maps dicts."""
    if isinstance(value, (tuple, list, CanonicalSet)):
        return [thaw(item) for item in value]
    if isinstance(value, Mapping):
        return {key: thaw(item) for key, item in value.items()}
    return value


def hashable(value: Any) -> Any:
    """Hashable stand-in for a frozen value (maps become item tuples)."""
    if isinstance(value, Mapping):
        return tuple((key, hashable(item)) for key, item in sorted(value.items()))
    if isinstance(value, (tuple, list)):
        return tuple(hashable(item) for item in value)
    if isinstance(value, bool):
        return ("bool", value)
    return value
