"""
Causal Index Tests
==================

INVARIANTS TESTED:
1. Dependencies point at the latest relevant touch of each involved character
2. Memory effects depend on the recalled / creating event
3. Retroactive influence reverses the edge and is the only source of
   backward edges
4. Incremental maintenance equals a full rebuild
"""

from storyloom.contracts.base import Ability, MemoryId, RelationshipState, ViolationKind
from storyloom.contracts.effects import RetroactiveInfluence
from storyloom.contracts.actions import (
    ChangeRelationship, KillCharacter, CreateWitnessedMemory, TradeMemory,
    GrantKnowledge, GrantAbility, PerceiveAcrossTimelines, ViolateCausality,
)
from storyloom.core.causal import CausalIndex

from ..fixtures import (
    T0, T1, KIM, PLAYER, E0, E1, E2, E3,
    apply_all, kim_and_player, branched_world,
)


class TestDependencies:
    """What each event depends on."""

    def test_latest_touches(self):
        store, _ = apply_all(kim_and_player(), [
            ChangeRelationship(KIM, PLAYER, RelationshipState.TRUSTING, T0),
            KillCharacter(KIM, T0),
        ])
        index = CausalIndex.build(store)

        assert index.dependencies(E0) == []
        assert index.dependencies(E2) == [E0, E1]
        assert index.dependencies(E3) == [E0, E2]
        assert index.dependents(E2) == [E3]
        assert index.transitive_dependents(E1) == [E2, E3]

    def test_memory_dependencies(self):
        store, _ = apply_all(kim_and_player(), [
            CreateWitnessedMemory(KIM, E0, T0),
            TradeMemory(MemoryId(0), KIM, PLAYER, "dream link", T0),
        ])
        index = CausalIndex.build(store)

        assert index.dependencies(E2) == [E0]
        assert index.dependencies(E3) == [E0, E1, E2]

    def test_perception_dependency(self):
        store, outcomes = apply_all(branched_world(), [
            GrantKnowledge(KIM, "secret_door", T1),
            GrantAbility(KIM, Ability.TIMELINE_PERCEPTION, T0),
            PerceiveAcrossTimelines(KIM, "secret_door", T1, T0),
        ])
        index = CausalIndex.build(store)
        grant, perceive = outcomes[1].event_id, outcomes[2].event_id

        assert index.perception_grant(KIM) == grant
        assert index.perception_grant(PLAYER) is None
        assert grant in index.dependencies(perceive)

    def test_engine_never_creates_backward_edges(self):
        store, _ = apply_all(branched_world(), [
            KillCharacter(KIM, T1),
            ChangeRelationship(KIM, PLAYER, RelationshipState.HOSTILE, T0),
            CreateWitnessedMemory(PLAYER, E1, T1),
        ])
        index = CausalIndex.build(store)
        assert index.backward_edges() == []
        assert index.unjustified_cycles(store) == []


class TestRetroactiveInfluence:
    """Backward edges and cycles."""

    def test_influence_reverses_edge(self):
        store, outcomes = apply_all(kim_and_player(), [
            ViolateCausality(T0, ViolationKind.EFFECT_BEFORE_CAUSE, "Living Gate", frozenset({KIM}), (E0,)),
        ])
        index = CausalIndex.build(store)
        influencer = outcomes[0].event_id

        assert influencer in index.dependencies(E0)
        assert index.backward_edges() == [(E0, influencer)]

    def test_marked_cycle_is_justified(self):
        store, _ = apply_all(kim_and_player(), [
            ViolateCausality(T0, ViolationKind.RETROACTIVE_CHANGE, "time weapon", frozenset({KIM}), (E0,)),
        ])
        assert CausalIndex.build(store).unjustified_cycles(store) == []

    def test_unmarked_cycle_is_reported(self):
        store = kim_and_player()
        influencer = store.append_event(T0, {KIM}, (RetroactiveInfluence(E0),))
        index = CausalIndex.build(store)

        assert (E0, influencer) in index.backward_edges()
        assert index.unjustified_cycles(store) == [(E0, influencer)]


class TestMaintenance:
    """Incremental updates."""

    def test_incremental_equals_rebuild(self):
        store, _ = apply_all(branched_world(), [
            CreateWitnessedMemory(KIM, E0, T1),
            TradeMemory(MemoryId(0), KIM, PLAYER, "dream link", T1),
            KillCharacter(PLAYER, T0),
        ])
        rebuilt = CausalIndex.build(store)
        incremental = CausalIndex()
        for event in store.events():
            incremental.add_event(store, event.event_id)

        for event in store.events():
            assert incremental.dependencies(event.event_id) == rebuilt.dependencies(event.event_id)
        assert incremental.edge_count == rebuilt.edge_count
        assert E3 in incremental
