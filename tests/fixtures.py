"""
Test Fixtures

Fixed, hashable fixtures for deterministic testing.
All fixtures are explicit - no random generation.
"""

from uuid import UUID

from polygenea.nodes import (
    Citation,
    CitationKind,
    ExternalSource,
    InferenceRule,
    Property,
    Thing,
)


# =============================================================================
# KNOWN IDENTITIES
# =============================================================================

NIL_EMPTY_ID = UUID("e129f27c-5103-5c5c-844b-cdf0a15e160d")
POLYGENEA_NAMESPACE_ID = UUID("954aac7d-47b2-5975-9a80-37eeed186527")
BARE_EMPTY_ID = UUID("da39a3ee-5e6b-5b0d-b255-bfef95601890")
BARE_POLYGENEA_ID = UUID("a0ed6102-497e-562a-86db-762638f9fc59")
NESTED_BARE_ID = UUID("736071f3-edeb-5c7a-afcc-b73417e0852f")
NESTED_NAMESPACE_ID = UUID("a282126e-598a-557b-adb9-7efa7dc5ac49")

CITATION_DETAILS = {"type": "imagination", "when": "2014-07-06 04:24:20+00:00"}
CITATION_ID = UUID("8a6b11fd-49af-52f0-8673-7056f0c77287")
CITATION_HASH_TEXT = (
    '{"!class":"Citation","details":{"type":"imagination",'
    '"when":"2014-07-06 04:24:20+00:00"},"kind":"TRANSIENT"}'
)

SOURCE_CONTENT = "My sister Jane is also my legal guardian"
SOURCE_ID = UUID("f67a64b3-53bf-5bf7-bd69-f39afd24e252")
SOURCE_HASH_TEXT = (
    '{"!class":"ExternalSource","citation":"8a6b11fd-49af-52f0-8673-7056f0c77287",'
    '"content":"My sister Jane is also my legal guardian","contentType":"text/plain"}'
)

# Citation + ExternalSource as a batch, the source citing position 0
SOURCE_BATCH_TEXT = (
    "[" + CITATION_HASH_TEXT
    + '\n,{"!class":"ExternalSource","citation":0,'
    '"content":"My sister Jane is also my legal guardian","contentType":"text/plain"}'
    + "\n]"
)

JANE_ID = UUID("0f8fad5b-d9cb-469f-a165-70867728950e")
GUARDIAN_ID = UUID("7c9e6679-7425-40de-944b-e07fc1f90ae7")
# High bit set: its first half is negative as a signed 64-bit integer
SIBLING_ID = UUID("9b2e3c4d-1a2b-4c3d-8e4f-5a6b7c8d9e0f")


# =============================================================================
# NODE BUILDERS
# =============================================================================

def create_citation() -> Citation:
    return Citation(details=CITATION_DETAILS, kind=CitationKind.TRANSIENT)


def create_source() -> ExternalSource:
    return ExternalSource(citation=create_citation(), content=SOURCE_CONTENT)


def create_thing(identity: UUID = JANE_ID, source=None) -> Thing:
    return Thing(source=source or create_source(), identity=identity)


def create_property(subject, key: str = "name", value: str = "Jane", source=None) -> Property:
    return Property(source=source or create_source(), subject=subject, key=key, value=value)


def create_name_rule() -> InferenceRule:
    """A Thing with a "name" Property gets a "hasName" Property."""
    return InferenceRule(
        antecedents=[
            {"!class": "Thing"},
            {"!class": "Property", "subject": 0, "key": "name"},
        ],
        consequents=[{"!class": "Property", "subject": 0, "key": "hasName", "value": "true"}],
    )
