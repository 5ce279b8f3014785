"""
Story Fixtures

Explicit, hand-written worlds shared by the test modules.
All fixtures are built through the ActionEngine unless the name says
otherwise; adversarial fixtures are hydrated with EntityStore.from_records.
"""

from typing import List, Sequence, Tuple

from storyloom.contracts.base import TimelineId, CharacterId, EventId
from storyloom.contracts.actions import (
    Action, CreateCharacter, BranchTimeline, KillCharacter,
)
from storyloom.contracts.outcomes import ActionOutcome
from storyloom.core import ActionEngine
from storyloom.store import EntityStore


# =============================================================================
# FIXED IDENTIFIERS
# =============================================================================

T0 = TimelineId(0)
T1 = TimelineId(1)
T2 = TimelineId(2)

KIM = CharacterId(0)
PLAYER = CharacterId(1)
ALICE = CharacterId(2)

E0 = EventId(0)
E1 = EventId(1)
E2 = EventId(2)
E3 = EventId(3)


# =============================================================================
# BUILDERS
# =============================================================================

def apply_ok(store: EntityStore, action: Action, engine: ActionEngine = None) -> ActionOutcome:
    """Apply an action that must succeed."""
    engine = engine or ActionEngine()
    outcome = engine.apply(store, action)
    assert outcome.is_success, f"{action} rejected: {outcome.rejection}"
    return outcome


def apply_all(store: EntityStore, actions: Sequence[Action]) -> Tuple[EntityStore, List[ActionOutcome]]:
    """Apply actions in order, all of which must succeed."""
    engine = ActionEngine()
    outcomes = []
    for action in actions:
        outcome = apply_ok(store, action, engine)
        outcomes.append(outcome)
        store = outcome.store
    return store, outcomes


def kim_and_player() -> EntityStore:
    """
    T0: Event#0 introduces Kim (Char#0), Event#1 introduces Player (Char#1).
    """
    store, _ = apply_all(EntityStore.with_root_timeline(), [
        CreateCharacter("Kim", T0),
        CreateCharacter("Player", T0),
    ])
    return store


def branched_world() -> EntityStore:
    """
    kim_and_player() plus Event#2, the branch of T0 into T1.
    """
    store, _ = apply_all(kim_and_player(), [BranchTimeline(T0)])
    return store


def kim_dead_in_branch() -> EntityStore:
    """
    branched_world() plus Event#3: Kim dies in T1 only.
    """
    store, _ = apply_all(branched_world(), [KillCharacter(KIM, T1)])
    return store
