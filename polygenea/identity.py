"""
Content Identity

Name-based identifiers in the RFC 4122 layout, hashed with SHA-1.

    derive(namespace, name) = SHA-1(namespace.bytes || name)[:16]
                              with version nibble 5 and variant bits 10

POLYGENEA_NAMESPACE is derive(NIL_NAMESPACE, b"polygenea"); every
content-derived node identity lives under it.

INVARIANTS:
===========
- derive is pure: identical inputs always yield identical identifiers
- Content-derived identities are version 5
- Assigned identities (identity-bearing nodes) are version 1 or 4
"""

from __future__ import annotations
from typing import Optional, Union
from uuid import UUID
import hashlib
import uuid

from .contracts.base import IdentityError


NIL_NAMESPACE = UUID(int=0)

CONTENT_VERSION = 5
ASSIGNED_VERSIONS = (1, 4)


def _from_digest(digest: bytes) -> UUID:
    # uuid.UUID(version=5) rewrites the version nibble and variant bits
    return UUID(bytes=digest[:16], version=CONTENT_VERSION)


def derive(namespace: Optional[UUID], name: bytes) -> UUID:
    """Version-5 identifier of `name` inside `namespace` (None means nil)."""
    namespace = namespace or NIL_NAMESPACE
    return _from_digest(hashlib.sha1(namespace.bytes + name).digest())


def derive_text(namespace: Optional[UUID], text: str) -> UUID:
    return derive(namespace, text.encode("utf-8"))


def derive_bare(name: Union[bytes, str]) -> UUID:
    """
    Version-5 layout over SHA-1 of the name alone, with no namespace prefix.

    Differs from derive(NIL_NAMESPACE, name), which hashes sixteen zero
    bytes first.
    """
    if isinstance(name, str):
        name = name.encode("utf-8")
    return _from_digest(hashlib.sha1(name).digest())


POLYGENEA_NAMESPACE = derive(None, b"polygenea")


def content_identity(hashable_text: str) -> UUID:
    """Identity of a content-addressed node from its hash-input text."""
    return derive_text(POLYGENEA_NAMESPACE, hashable_text)


def new_assigned_identity() -> UUID:
    """Fresh random identifier for an identity-bearing node."""
    return uuid.uuid4()


def coerce_identity(value: Union[UUID, str]) -> UUID:
    """Accept a UUID or its string form; anything else is an IdentityError."""
    if isinstance(value, UUID):
        return value
    if isinstance(value, str):
        try:
            return UUID(value)
        except ValueError:
            raise IdentityError(f"not an identifier: {value!r}")
    raise IdentityError(f"not an identifier: {value!r}")


def check_identity_flavor(identity: UUID, has_identity: bool) -> None:
    """Raise IdentityError if the version does not fit the node's flavour."""
    if has_identity:
        if identity.version not in ASSIGNED_VERSIONS:
            raise IdentityError(
                f"assigned identity must be version 1 or 4, got version {identity.version}",
                ("identity", str(identity)),
            )
    elif identity.version != CONTENT_VERSION:
        raise IdentityError(
            f"content identity must be version 5, got version {identity.version}",
            ("identity", str(identity)),
        )

