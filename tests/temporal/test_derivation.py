"""
Per-Timeline Derivation Tests
=============================

Liveness, knowledge and relationships are read from a timeline's full
history only. A death in one branch must never leak into another.
"""

from storyloom.contracts.base import RelationshipState, CharacterId
from storyloom.contracts.actions import (
    BranchTimeline, ChangeRelationship, GrantKnowledge, KillCharacter, ResurrectCharacter,
)
from storyloom.temporal import (
    is_alive, is_present, liveness, derived_knowledge,
    derived_relationship, knowledge_grants,
)

from ..fixtures import (
    T0, T1, KIM, PLAYER, E1, E2,
    apply_all, kim_and_player, branched_world, kim_dead_in_branch,
)


class TestLiveness:
    """Liveness is derived, never stored."""

    def test_branch_death_stays_local(self):
        store = kim_dead_in_branch()
        assert is_alive(store, KIM, T0)
        assert not is_alive(store, KIM, T1)
        assert is_present(store, KIM, T1)

    def test_liveness_at_position(self):
        store = kim_dead_in_branch()
        assert is_alive(store, KIM, T1, position=2)
        assert not is_alive(store, KIM, T1, position=3)

    def test_not_yet_introduced(self):
        store = kim_and_player()
        assert liveness(store, PLAYER, T0, position=0) is None
        assert not is_present(store, PLAYER, T0, position=0)
        assert is_present(store, PLAYER, T0, position=1)

    def test_unknown_character_is_absent(self):
        store = kim_and_player()
        assert not is_present(store, CharacterId(9), T0)

    def test_resurrection(self):
        store, _ = apply_all(kim_dead_in_branch(), [
            ResurrectCharacter(KIM, T1, "Living Gate", False),
        ])
        assert is_alive(store, KIM, T1)
        assert not is_alive(store, KIM, T1, position=3)


class TestKnowledgeAndRelationships:
    """Knowledge flags and relationship values per timeline."""

    def test_knowledge_is_timeline_scoped(self):
        store, outcomes = apply_all(branched_world(), [
            GrantKnowledge(KIM, "secret_door", T1),
        ])
        assert derived_knowledge(store, KIM, T1) == frozenset({"secret_door"})
        assert derived_knowledge(store, KIM, T0) == frozenset()
        assert knowledge_grants(store, KIM, T1) == {"secret_door": [outcomes[0].event_id]}

    def test_knowledge_at_position(self):
        store, _ = apply_all(kim_and_player(), [
            GrantKnowledge(KIM, "true_name", T0),
            GrantKnowledge(PLAYER, "loop_count", T0),
        ])
        assert derived_knowledge(store, KIM, T0, position=E1.value) == frozenset()
        assert derived_knowledge(store, KIM, T0) == frozenset({"true_name"})
        assert derived_knowledge(store, PLAYER, T0) == frozenset({"loop_count"})

    def test_knowledge_before_branch_is_inherited(self):
        store, _ = apply_all(kim_and_player(), [
            GrantKnowledge(KIM, "true_name", T0),
        ])
        store, _ = apply_all(store, [BranchTimeline(T0)])
        assert derived_knowledge(store, KIM, T1) == frozenset({"true_name"})

    def test_relationship_defaults_to_neutral(self):
        store = kim_and_player()
        assert derived_relationship(store, KIM, PLAYER, T0) is RelationshipState.NEUTRAL

    def test_relationship_either_order(self):
        store, _ = apply_all(branched_world(), [
            ChangeRelationship(KIM, PLAYER, RelationshipState.HOSTILE, T1),
        ])
        assert derived_relationship(store, PLAYER, KIM, T1) is RelationshipState.HOSTILE
        assert derived_relationship(store, KIM, PLAYER, T0) is RelationshipState.NEUTRAL

    def test_relationship_latest_wins(self):
        store, _ = apply_all(kim_and_player(), [
            ChangeRelationship(KIM, PLAYER, RelationshipState.FRIENDLY, T0),
            ChangeRelationship(PLAYER, KIM, RelationshipState.DISTRUSTFUL, T0),
        ])
        assert derived_relationship(store, KIM, PLAYER, T0) is RelationshipState.DISTRUSTFUL
        assert derived_relationship(store, KIM, PLAYER, T0, position=E2.value) is RelationshipState.FRIENDLY

    def test_dead_character_keeps_relationships(self):
        store, _ = apply_all(kim_and_player(), [
            ChangeRelationship(KIM, PLAYER, RelationshipState.ALLIED, T0),
            KillCharacter(KIM, T0),
        ])
        assert derived_relationship(store, KIM, PLAYER, T0) is RelationshipState.ALLIED
