"""
Invariant Checker Tests
=======================

GUARANTEES TESTED:
1. Output is ordered by rule, then position, then entity
2. first_only returns the single first violation
3. A rule subset evaluates only those rules
4. Identical snapshots give identical reports; the store is never mutated
"""

from storyloom.contracts.base import (
    EventId, MemoryId, InvariantRule, RelationshipState, Ability, ViolationKind, Witnessed,
)
from storyloom.contracts.effects import Belief, GoalAdded, KnowledgeGained
from storyloom.contracts.actions import (
    CreateCharacter, ChangeRelationship, CreateWitnessedMemory, TradeMemory,
    GrantKnowledge, GrantAbility, PerceiveAcrossTimelines, ViolateCausality,
    AddGoal, AppraiseBelief, DecayEmotions, KillCharacter,
)
from storyloom.core.causal import CausalIndex
from storyloom.invariants import validate_all

from ..fixtures import (
    T0, T1, KIM, PLAYER, ALICE, E0,
    apply_all, kim_dead_in_branch,
)


def corrupted_world():
    """
    kim_dead_in_branch() plus three corruptions:
      rule 1 - Memory#0 says Player witnessed Event#0
      rule 2 - dead Kim takes part in Event#4 (T1)
      rule 7 - Player's goal in T0 has utility 2.0
    """
    store = kim_dead_in_branch()
    store.create_memory(E0, PLAYER, Witnessed(PLAYER))
    store.append_event(T1, {KIM}, ())
    store.append_event(T0, {PLAYER}, (GoalAdded(PLAYER, "escape", 2.0, False),))
    return store


def honest_world():
    """Every kind of engine action, applied on top of kim_dead_in_branch()."""
    alice_intro = EventId(4)
    store, _ = apply_all(kim_dead_in_branch(), [
        CreateCharacter("Alice", T0),
        ChangeRelationship(KIM, ALICE, RelationshipState.ALLIED, T0),
        CreateWitnessedMemory(ALICE, alice_intro, T0),
        TradeMemory(MemoryId(0), ALICE, PLAYER, "dream link", T0),
        GrantKnowledge(KIM, "secret_door", T0),
        GrantKnowledge(PLAYER, "loop_count", T0),
        GrantAbility(PLAYER, Ability.TIMELINE_PERCEPTION, T1),
        PerceiveAcrossTimelines(PLAYER, "loop_count", T0, T1),
        ViolateCausality(T0, ViolationKind.EFFECT_BEFORE_CAUSE, "Living Gate", frozenset({KIM}), (E0,)),
        AddGoal(KIM, "survive", 1.0, True, T0),
        AppraiseBelief(KIM, Belief(0.2, ("survive",), (-1.0,), False, None), T0),
        DecayEmotions(KIM, 0.5, T0),
        KillCharacter(ALICE, T0),
    ])
    return store


class TestOrdering:

    def test_rule_order(self):
        found = validate_all(corrupted_world())
        assert [v.rule for v in found] == [
            InvariantRule.MEMORY_CONSISTENCY,
            InvariantRule.DEATH_FINALITY,
            InvariantRule.EMOTIONAL_BOUNDS,
        ]

    def test_position_order_within_rule(self):
        store = kim_dead_in_branch()
        store.append_event(T1, {KIM}, ())
        store.append_event(T1, {KIM}, ())
        found = validate_all(store)
        assert [v.event_index for v in found] == [4, 5]

    def test_unpositioned_violations_sort_first(self):
        store = kim_dead_in_branch()
        store.append_event(T0, {KIM}, (KnowledgeGained(KIM, "true_name", T0),))
        store.replace_character(store.character(PLAYER).with_knowledge(T0, "x"))
        found = validate_all(store, rules=[InvariantRule.KNOWLEDGE_PROPAGATION])
        assert [(v.entity_id, v.event_index) for v in found] == [("Char#1", None), ("Char#0", 3)]


class TestSelection:

    def test_first_only(self):
        store = corrupted_world()
        first = validate_all(store, first_only=True)
        assert first == validate_all(store)[:1]

    def test_rule_subset(self):
        found = validate_all(corrupted_world(), rules=[
            InvariantRule.EMOTIONAL_BOUNDS, InvariantRule.DEATH_FINALITY,
        ])
        assert [v.rule.value for v in found] == [2, 7]

    def test_first_only_within_subset(self):
        found = validate_all(corrupted_world(), first_only=True, rules=[InvariantRule.EMOTIONAL_BOUNDS])
        assert len(found) == 1
        assert found[0].entity_id == "Char#1"

    def test_empty_subset(self):
        assert validate_all(corrupted_world(), rules=[]) == []


class TestDeterminism:

    def test_identical_snapshots(self):
        store = corrupted_world()
        assert validate_all(store) == validate_all(store.copy())

    def test_store_untouched(self):
        store = corrupted_world()
        before = store.compute_state_hash()
        validate_all(store)
        assert store.compute_state_hash() == before

    def test_reused_index(self):
        store = corrupted_world()
        assert validate_all(store, index=CausalIndex.build(store)) == validate_all(store)


class TestHonestWorld:

    def test_engine_built_world_is_clean(self):
        assert validate_all(honest_world()) == []
