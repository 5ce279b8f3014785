"""
Per-Timeline Derivations
========================

Pure functions of (store, character, timeline, position).

INVARIANTS:
- Liveness is never stored: it is the result of the most recent
  introduction/death/resurrection of the character in the timeline's full
  history at or before the position
- Effects in other timelines never leak in: only the full history is read
- A character never introduced in a timeline is neither present nor alive

`position=None` means "at the tail of the timeline".
"""

from __future__ import annotations
from typing import Dict, FrozenSet, Iterator, List, Optional

from ..contracts.base import TimelineId, CharacterId, EventId, RelationshipState
from ..contracts.effects import (
    CharacterIntroduced, CharacterDeath, CharacterResurrection,
    KnowledgeGained, RelationshipChange,
)
from ..contracts.records import Event
from ..store import EntityStore
from .graph import full_history


def history_events(
    store: EntityStore,
    timeline: TimelineId,
    position: Optional[int] = None
) -> Iterator[Event]:
    """Events of the full history at or before `position`, in order."""
    history = full_history(store, timeline)
    if position is not None:
        history = history[:position + 1]
    for event_id in history:
        yield store.event(event_id)


def liveness(
    store: EntityStore,
    character: CharacterId,
    timeline: TimelineId,
    position: Optional[int] = None
) -> Optional[bool]:
    """None if never introduced, else whether the character is alive."""
    state = None
    for event in history_events(store, timeline, position):
        for effect in event.effects:
            if isinstance(effect, CharacterIntroduced) and effect.character == character:
                state = True
            elif isinstance(effect, CharacterDeath) and effect.character == character:
                state = False
            elif isinstance(effect, CharacterResurrection) and effect.character == character:
                state = True
    return state


def is_present(
    store: EntityStore,
    character: CharacterId,
    timeline: TimelineId,
    position: Optional[int] = None
) -> bool:
    return liveness(store, character, timeline, position) is not None


def is_alive(
    store: EntityStore,
    character: CharacterId,
    timeline: TimelineId,
    position: Optional[int] = None
) -> bool:
    return liveness(store, character, timeline, position) is True


def knowledge_grants(
    store: EntityStore,
    character: CharacterId,
    timeline: TimelineId,
    position: Optional[int] = None
) -> Dict[str, List[EventId]]:
    """flag -> events granting it to the character, in history order."""
    grants: Dict[str, List[EventId]] = {}
    for event in history_events(store, timeline, position):
        for effect in event.effects:
            if isinstance(effect, KnowledgeGained) and effect.character == character:
                grants.setdefault(effect.flag, []).append(event.event_id)
    return grants


def derived_knowledge(
    store: EntityStore,
    character: CharacterId,
    timeline: TimelineId,
    position: Optional[int] = None
) -> FrozenSet[str]:
    return frozenset(knowledge_grants(store, character, timeline, position))


def derived_relationship(
    store: EntityStore,
    character: CharacterId,
    other: CharacterId,
    timeline: TimelineId,
    position: Optional[int] = None
) -> RelationshipState:
    """Value set by the latest RelationshipChange between the pair (either order)."""
    state = RelationshipState.NEUTRAL
    pair = {character, other}
    for event in history_events(store, timeline, position):
        for effect in event.effects:
            if isinstance(effect, RelationshipChange) and {effect.character_a, effect.character_b} == pair:
                state = effect.new_state
    return state
