"""
Inference Tests

AXIOMS UNDER TEST:
==================
1. A mismatch is None, never an exception
2. Applying a rule twice to the same candidates yields the same nodes
3. Only rule-authoring errors (bad operators) raise UnsupportedPattern
"""

import pytest

from polygenea.contracts import UnknownReference, UnsupportedPattern
from polygenea.inference import (
    ConsequentLookup,
    InferenceConfig,
    RuleEngine,
    antecedents_match,
    apply_rule,
    value_matches,
)
from polygenea.nodes import Grouping, Inference, InferenceRule, Match, Property, Thing
from polygenea.storage import GraphStore

from .fixtures import (
    GUARDIAN_ID,
    JANE_ID,
    SIBLING_ID,
    create_name_rule,
    create_property,
    create_source,
    create_thing,
)


def single_rule(antecedent, consequent=None):
    """One-antecedent rule whose consequent is a Property about candidate 0."""
    return InferenceRule(
        antecedents=[antecedent],
        consequents=[consequent or {"!class": "Property", "subject": 0, "key": "matched", "value": "yes"}],
    )


# =============================================================================
# APPLY RULE
# =============================================================================

class TestApplyRule:

    def test_match_produces_inference_and_consequent(self):
        jane = create_thing()
        name = create_property(jane)
        rule = create_name_rule()

        derivation = apply_rule(rule, (jane, name))

        assert derivation is not None
        assert isinstance(derivation.inference, Inference)
        assert derivation.inference.rule == rule
        assert derivation.inference.antecedents == (jane, name)
        (consequent,) = derivation.consequents
        assert isinstance(consequent, Property)
        assert consequent.subject == jane
        assert consequent.key == "hasName"
        assert consequent.source == derivation.inference
        assert derivation.nodes == (derivation.inference, consequent)

    def test_reapplication_is_deterministic(self):
        jane = create_thing()
        name = create_property(jane)
        first = apply_rule(create_name_rule(), (jane, name))
        second = apply_rule(create_name_rule(), (jane, name))
        assert first.inference.identity == second.inference.identity
        assert first.consequents[0].identity == second.consequents[0].identity

    def test_wrong_value_is_no_match(self):
        jane = create_thing()
        age = create_property(jane, key="age", value="34")
        assert apply_rule(create_name_rule(), (jane, age)) is None

    def test_wrong_order_is_no_match(self):
        jane = create_thing()
        name = create_property(jane)
        assert apply_rule(create_name_rule(), (name, jane)) is None

    def test_wrong_arity_is_no_match(self):
        assert apply_rule(create_name_rule(), (create_thing(),)) is None

    def test_reference_to_other_candidate_must_agree(self):
        jane = create_thing(JANE_ID)
        guardian = create_thing(GUARDIAN_ID)
        name = create_property(jane)
        assert apply_rule(create_name_rule(), (guardian, name)) is None

    def test_non_claims_never_match(self):
        rule = single_rule({})
        assert apply_rule(rule, (create_source(),)) is None

    def test_undeclared_pattern_attribute_is_no_match(self):
        rule = single_rule({"key": "name"})
        assert apply_rule(rule, (create_thing(),)) is None
        assert apply_rule(rule, (create_property(create_thing()),)) is not None

    def test_consequent_may_reference_earlier_consequent(self):
        rule = InferenceRule(
            antecedents=[{"!class": "Property", "key": "name"}],
            consequents=[
                {"!class": "Thing"},
                {"!class": "Property", "subject": 2, "key": "derivedFrom", "value": "name"},
            ],
        )
        derivation = apply_rule(rule, (create_property(create_thing()),))
        thing, prop = derivation.consequents
        assert isinstance(thing, Thing)
        assert prop.subject == thing
        assert thing.source == derivation.inference

    def test_repeated_candidate_in_a_set_is_no_match(self):
        rule = InferenceRule(
            antecedents=[{"!class": "Thing"}, {"!class": "Thing"}],
            consequents=[{"!class": "Grouping", "subjects": [0, 1], "relation": "siblings"}],
        )
        source = create_source()
        jane = create_thing(JANE_ID, source)
        sibling = create_thing(SIBLING_ID, source)
        assert apply_rule(rule, (jane, jane)) is None
        assert apply_rule(rule, (jane, sibling)) is not None


# =============================================================================
# PATTERN OPERATORS
# =============================================================================

class TestOperators:

    def test_regex_full_match(self):
        rule = single_rule({"!class": "Property", "value": "!re:J.*e"})
        jane = create_thing()
        assert apply_rule(rule, (create_property(jane, value="Jane"),)) is not None
        assert apply_rule(rule, (create_property(jane, value="Janet"),)) is None

    def test_bad_regex_is_an_authoring_error(self):
        rule = single_rule({"!class": "Property", "value": "!re:("})
        with pytest.raises(UnsupportedPattern):
            apply_rule(rule, (create_property(create_thing()),))

    def test_contains_candidate(self):
        source = create_source()
        jane = create_thing(JANE_ID, source)
        guardian = create_thing(GUARDIAN_ID, source)
        household = Grouping(source=source, subjects=[jane, guardian], relation="household")
        rule = InferenceRule(
            antecedents=[{"!class": "Thing"}, {"!class": "Grouping", "subjects": "!contains:0"}],
            consequents=[{"!class": "Property", "subject": 0, "key": "household", "value": "yes"}],
        )
        assert apply_rule(rule, (jane, household)) is not None
        assert apply_rule(rule, (create_thing(SIBLING_ID, source), household)) is None

    def test_contains_with_bad_operand(self):
        with pytest.raises(UnsupportedPattern):
            value_matches(("a",), "!contains:[", ())

    def test_contains_on_scalar_is_no_match(self):
        assert not value_matches("abc", '!contains:"a"', ())

    def test_xref_compares_other_candidate(self):
        jane = create_thing()
        rule = InferenceRule(
            antecedents=[
                {"!class": "Property", "key": "name"},
                {"!class": "Property", "key": "alias", "value": "!xref:0.value"},
            ],
            consequents=[{"!class": "Property", "subject": 1, "key": "confirmed", "value": "true"}],
        )
        name = create_property(jane, key="name", value="Jane")
        alias = create_property(jane, key="alias", value="Jane")
        other = create_property(jane, key="alias", value="Jenny")
        assert apply_rule(rule, (name, alias)) is not None
        assert apply_rule(rule, (name, other)) is None

    def test_xref_out_of_range_is_no_match(self):
        assert not value_matches("x", "!xref:3.value", (create_thing(),))

    def test_xref_undeclared_attribute_is_no_match(self):
        assert not value_matches("x", "!xref:0.value", (create_thing(),))

    @pytest.mark.parametrize("operand", ["value", "x.value", "0."])
    def test_malformed_xref(self, operand):
        with pytest.raises(UnsupportedPattern):
            value_matches("x", "!xref:" + operand, (create_thing(),))

    def test_unknown_operator(self):
        with pytest.raises(UnsupportedPattern):
            value_matches("x", "!frob:x", ())

    def test_plain_bang_string_is_literal(self):
        assert value_matches("!important", "!important", ())


class TestValueMatches:

    def test_node_equals_its_identity_string(self):
        jane = create_thing()
        assert value_matches(jane, str(JANE_ID), ())
        assert not value_matches(jane, str(GUARDIAN_ID), ())

    def test_collections_match_element_wise(self):
        assert value_matches(("a", "b"), ["a", "b"], ())
        assert not value_matches(("a",), ["a", "b"], ())
        assert not value_matches("ab", ["a", "b"], ())

    def test_index_out_of_range(self):
        assert not value_matches(create_thing(), 0, ())

    def test_numbers_compare_canonically(self):
        assert value_matches(1, 1.0, ())
        assert not value_matches(True, 1, ())

    def test_antecedents_match_checks_class(self):
        rule = single_rule({"!class": "Property"})
        assert not antecedents_match(rule, (create_thing(),))


class TestConsequentLookup:

    def test_positions(self):
        jane = create_thing()
        name = create_property(jane)
        inference = Inference(rule=create_name_rule(), antecedents=[jane, name])
        lookup = ConsequentLookup((jane, name), inference)
        assert lookup.lookup(0) is jane
        assert lookup.lookup(1) is name
        assert lookup.lookup(2) is inference
        with pytest.raises(UnknownReference):
            lookup.lookup(3)
        with pytest.raises(UnknownReference):
            lookup.lookup(-1)


# =============================================================================
# STORE-WIDE APPLICATION
# =============================================================================

def populated_store():
    source = create_source()
    jane = create_thing(JANE_ID, source)
    guardian = create_thing(GUARDIAN_ID, source)
    name = create_property(jane, source=source)
    store = GraphStore()
    store.add(source.citation, source, jane, guardian, name)
    return store, jane, name


class TestRuleEngine:

    def test_derive_finds_every_match(self):
        store, jane, name = populated_store()
        derivations = RuleEngine().derive(store, create_name_rule())
        assert len(derivations) == 1
        assert derivations[0].inference.antecedents == (jane, name)

    def test_derive_does_not_mutate(self):
        store, _, _ = populated_store()
        before = len(store)
        RuleEngine().derive(store, create_name_rule())
        assert len(store) == before

    def test_derive_into_adds_results_once(self):
        store, _, _ = populated_store()
        engine = RuleEngine()
        rule = create_name_rule()

        fresh = engine.derive_into(store, rule)
        assert len(fresh) == 1
        assert rule in store
        for node in fresh[0].nodes:
            assert node in store

        assert engine.derive_into(store, rule) == []

    def test_combination_cap(self):
        store, _, _ = populated_store()
        engine = RuleEngine(InferenceConfig(max_combinations=1))
        assert len(list(engine.iter_derivations(store, create_name_rule()))) <= 1

    def test_record_linkage_skips_self_pairs(self):
        source = create_source()
        jane = create_thing(JANE_ID, source)
        sibling = create_thing(SIBLING_ID, source)
        store = GraphStore()
        store.add(
            source.citation, source, jane, sibling,
            create_property(jane, source=source),
            create_property(sibling, source=source),
        )
        rule = InferenceRule(
            antecedents=[
                {"!class": "Thing"},
                {"!class": "Thing"},
                {"!class": "Property", "subject": 0, "key": "name"},
                {"!class": "Property", "subject": 1, "key": "name", "value": "!xref:2.value"},
            ],
            consequents=[{"!class": "Match", "same": [0, 1]}],
        )

        derivations = RuleEngine().derive(store, rule)

        assert len(derivations) == 2
        for derivation in derivations:
            (match,) = derivation.consequents
            assert isinstance(match, Match)
            assert {member.identity for member in match.same} == {JANE_ID, SIBLING_ID}

    def test_candidate_pools_filter_by_class(self):
        store, jane, name = populated_store()
        things, properties = RuleEngine().candidate_pools(store, create_name_rule())
        assert {thing.identity for thing in things} == {JANE_ID, GUARDIAN_ID}
        assert properties == [name]
