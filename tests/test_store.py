"""
Graph Store Tests

AXIOMS UNDER TEST:
==================
1. Append-only: a failed add leaves the store exactly as it was
2. Closure: every stored node's out-edges are stored
3. Determinism: dump() depends on the stored set, not on insertion order
"""

import pytest
from hypothesis import given, strategies as st

from polygenea.canonical import SetPolicy
from polygenea.contracts import (
    AuditEventType,
    DanglingReference,
    DuplicateIdentity,
    IdentityError,
    SchemaViolation,
    UnknownReference,
    UnknownVariant,
)
from polygenea.nodes import Citation, ExternalSource, Grouping, Match, Thing
from polygenea.storage import GraphStore, GraphStoreConfig, compressed_serialize

from .fixtures import (
    CITATION_ID,
    GUARDIAN_ID,
    JANE_ID,
    SIBLING_ID,
    SOURCE_BATCH_TEXT,
    SOURCE_CONTENT,
    SOURCE_ID,
    create_citation,
    create_property,
    create_source,
    create_thing,
)


def build_family():
    """Citation, source, two Things and a name Property for Jane."""
    citation = create_citation()
    source = create_source()
    jane = create_thing(JANE_ID, source)
    guardian = create_thing(GUARDIAN_ID, source)
    name = create_property(jane, source=source)
    return [citation, source, jane, guardian, name]


# =============================================================================
# ADD
# =============================================================================

class TestAdd:

    def test_add_in_dependency_order(self):
        store = GraphStore()
        store.add(create_citation())
        store.add(create_source())
        assert len(store) == 2
        assert CITATION_ID in store
        assert str(SOURCE_ID) in store

    def test_add_batch_in_any_order(self):
        store = GraphStore()
        added = store.add(create_source(), create_citation())
        assert len(added) == 2
        assert len(store) == 2

    def test_re_adding_is_a_no_op(self):
        store = GraphStore()
        store.add(create_citation())
        assert store.add(create_citation()) == ()
        assert len(store) == 1

    def test_dangling_reference_rejected(self):
        store = GraphStore()
        with pytest.raises(DanglingReference) as info:
            store.add(create_source())
        assert info.value.missing == str(CITATION_ID)
        assert len(store) == 0

    def test_failed_add_leaves_store_untouched(self):
        store = GraphStore()
        citation = create_citation()
        store.add(citation)
        thing = create_thing()

        with pytest.raises(DanglingReference):
            store.add(create_property(thing))

        assert len(store) == 1
        assert store.incoming_edges(citation) == frozenset()

    def test_only_nodes_stored(self):
        with pytest.raises(SchemaViolation):
            GraphStore().add({"!class": "Citation"})

    def test_lookup_registers_dependencies(self):
        store = GraphStore()
        name = create_property(create_thing())
        assert store.lookup(name) == name
        assert len(store) == 4
        assert store.get(CITATION_ID) == create_citation()


class TestLookup:

    def test_get_or_fail_accepts_uuid_and_string(self):
        store = GraphStore()
        store.add(create_citation())
        assert store.get_or_fail(CITATION_ID) == create_citation()
        assert store.get_or_fail(str(CITATION_ID)) == create_citation()

    @pytest.mark.parametrize("reference", [0, True, "garbage", str(SOURCE_ID)])
    def test_unknown_references(self, reference):
        store = GraphStore()
        store.add(create_citation())
        with pytest.raises(UnknownReference):
            store.get_or_fail(reference)

    def test_integer_positions_mean_nothing_outside_a_batch(self):
        with pytest.raises(UnknownReference):
            GraphStore().lookup(0)

    def test_get_missing_returns_none(self):
        assert GraphStore().get(CITATION_ID) is None


# =============================================================================
# INCOMING EDGES
# =============================================================================

class TestIncomingEdges:

    def test_direct_referrers(self):
        store = GraphStore()
        nodes = build_family()
        store.add(*nodes)
        citation, source, jane, guardian, name = nodes
        assert store.incoming_edges(citation) == {source}
        assert store.incoming_edges(source) == {jane, guardian, name}
        assert store.incoming_edges(jane) == {name}
        assert store.incoming_edges(name) == frozenset()

    def test_unknown_node_has_none(self):
        assert GraphStore().incoming_edges(create_citation()) == frozenset()

    def test_match_aliases_share_referrers(self):
        store = GraphStore()
        citation, source, jane, guardian, name = build_family()
        occupation = create_property(guardian, key="occupation", value="Clerk", source=source)
        match = Match(source=source, same=[jane, guardian])
        store.add(citation, source, jane, guardian, name, occupation, match)

        assert store.incoming_edges(jane) == {name, occupation, match}
        assert store.incoming_edges(guardian) == {name, occupation, match}

    def test_alias_chain_through_matches(self):
        store = GraphStore()
        citation, source, jane, guardian, name = build_family()
        third = Thing(source=source)
        first_match = Match(source=source, same=[jane, guardian])
        second_match = Match(source=source, same=[guardian, third])
        store.add(citation, source, jane, guardian, third, name, first_match, second_match)

        assert name in store.incoming_edges(third)

    def test_grouping_members_see_the_group(self):
        store = GraphStore()
        citation, source, jane, guardian, name = build_family()
        household = Grouping(source=source, subjects=[jane, guardian], relation="household")
        store.add(citation, source, jane, guardian, household)
        assert household in store.incoming_edges(jane)
        assert household in store.incoming_edges(guardian)


# =============================================================================
# ORDERING AND SERIALIZATION
# =============================================================================

class TestTopologicalOrder:

    def test_dependencies_first(self):
        store = GraphStore()
        store.add(*build_family())
        order = store.topological_order()
        positions = {node.identity: index for index, node in enumerate(order)}
        assert len(order) == len(store)
        for node in order:
            for target in node.out_edges():
                assert positions[target.identity] < positions[node.identity]

    def test_order_is_deterministic(self):
        nodes = build_family()
        first, second = GraphStore(), GraphStore()
        first.add(*nodes)
        second.add(*reversed(nodes))
        assert first.topological_order() == second.topological_order()


class TestCompressedSerialization:

    def test_known_text(self):
        store = GraphStore()
        store.add(create_citation(), create_source())
        assert store.dump() == SOURCE_BATCH_TEXT

    def test_duplicates_rejected(self):
        with pytest.raises(DuplicateIdentity):
            compressed_serialize(create_citation(), create_citation())

    def test_assigned_identities_are_written(self):
        text = compressed_serialize(*build_family())
        assert '"!uuid":"%s"' % JANE_ID in text
        assert '"!uuid":"%s"' % CITATION_ID not in text

    def test_reference_outside_the_list_uses_identity(self):
        text = compressed_serialize(create_source())
        assert '"citation":"%s"' % CITATION_ID in text

    def test_same_height_in_signed_identity_order(self):
        source = create_source()
        jane = create_thing(JANE_ID, source)
        sibling = create_thing(SIBLING_ID, source)
        text = compressed_serialize(source.citation, source, jane, sibling)
        assert text.index(str(SIBLING_ID)) < text.index(str(JANE_ID))

    @given(st.permutations(range(5)))
    def test_insertion_order_irrelevant(self, order):
        nodes = build_family()
        reference = GraphStore()
        reference.add(*nodes)
        shuffled = GraphStore()
        shuffled.add(*[nodes[i] for i in order])
        assert shuffled.dump() == reference.dump()


# =============================================================================
# INGEST
# =============================================================================

class TestIngest:

    def test_ingest_known_text(self):
        store = GraphStore()
        citation, source = store.ingest_text(SOURCE_BATCH_TEXT)
        assert isinstance(citation, Citation)
        assert isinstance(source, ExternalSource)
        assert citation.identity == CITATION_ID
        assert source.identity == SOURCE_ID
        assert source.content == SOURCE_CONTENT

    def test_ingest_single_map(self):
        store = GraphStore()
        (citation,) = store.ingest(create_citation().to_canonical())
        assert citation == create_citation()

    def test_identity_string_references_resolve_against_store(self):
        store = GraphStore()
        store.add(create_citation())
        (source,) = store.ingest(dict(create_source().to_canonical(False), citation=str(CITATION_ID)))
        assert source.identity == SOURCE_ID

    def test_forward_position_rejected(self):
        store = GraphStore()
        text = (
            '[{"!class":"ExternalSource","citation":1,"content":"x"}'
            ',{"!class":"Citation","details":{"a":"b"},"kind":"USER"}]'
        )
        with pytest.raises(UnknownReference):
            store.ingest_text(text)
        assert len(store) == 0

    def test_failure_midway_adds_nothing(self):
        store = GraphStore()
        text = '[{"!class":"Citation","details":{"a":"b"},"kind":"USER"},{"!class":"Nope"}]'
        with pytest.raises(UnknownVariant):
            store.ingest_text(text)
        assert len(store) == 0

    def test_mismatching_identity_rejected(self):
        value = dict(create_citation().to_canonical(False), **{"!uuid": str(SOURCE_ID)})
        with pytest.raises(IdentityError):
            GraphStore().ingest(value)

    def test_stored_entries_reused(self):
        store = GraphStore()
        store.add(*build_family())
        before = len(store)
        nodes = store.ingest_text(store.dump())
        assert len(store) == before
        assert {node.identity for node in nodes} == {node.identity for node in store}

    def test_non_node_input_rejected(self):
        with pytest.raises(SchemaViolation):
            GraphStore().ingest("Citation")
        with pytest.raises(SchemaViolation):
            GraphStore().ingest([1, 2])

    def test_set_policy_applies_to_ingested_text(self):
        store = GraphStore(GraphStoreConfig(set_policy=SetPolicy.ALWAYS))
        citation, source = store.ingest_text(SOURCE_BATCH_TEXT)
        assert source.citation == citation


class TestRoundTrip:

    def test_dump_and_reload_preserves_identities(self):
        citation, source, jane, guardian, name = build_family()
        match = Match(source=source, same=[jane, guardian])
        original = GraphStore()
        original.add(citation, source, jane, guardian, name, match)

        reloaded = GraphStore()
        reloaded.ingest_text(original.dump())

        assert {node.identity for node in reloaded} == {node.identity for node in original}
        assert reloaded.get(JANE_ID) == jane
        assert reloaded.dump() == original.dump()

    def test_save_and_load(self, tmp_path):
        path = str(tmp_path / "store.json")
        original = GraphStore()
        original.add(*build_family())
        original.save(path)

        loaded = GraphStore.load(path)
        assert loaded.dump() == original.dump()

    def test_file_backend_persist_and_restore(self, tmp_path):
        config = GraphStoreConfig(backend_type="file", storage_path=str(tmp_path / "db" / "store.json"))
        first = GraphStore(config)
        first.add(*build_family())
        first.persist()

        second = GraphStore(config)
        assert second.restore() == len(first)
        assert second.dump() == first.dump()

    def test_restore_without_saved_text(self):
        assert GraphStore().restore() == 0


# =============================================================================
# AUDIT
# =============================================================================

class TestAudit:

    def test_every_added_node_is_audited(self):
        store = GraphStore()
        store.add(*build_family())
        added = [entry for entry in store.get_audit_log() if entry.action == "node_added"]
        assert len(added) == 5
        assert all(entry.event_type is AuditEventType.STORE for entry in added)
        assert {entry.entity_id for entry in added} == {str(node.identity) for node in store}

    def test_persistence_events(self):
        store = GraphStore()
        store.add(create_citation())
        store.persist()
        last = store.get_audit_log()[-1]
        assert last.action == "store_saved"
        assert last.event_type is AuditEventType.PERSISTENCE

    def test_failed_add_is_not_audited(self):
        store = GraphStore()
        with pytest.raises(DanglingReference):
            store.add(create_source())
        assert store.get_audit_log() == []

    def test_audit_log_is_a_copy(self):
        store = GraphStore()
        store.add(create_citation())
        store.get_audit_log().clear()
        assert len(store.get_audit_log()) == 1
