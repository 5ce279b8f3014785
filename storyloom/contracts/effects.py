"""
Event Effects
=============

The closed tagged union of everything an event can do to the world.

INVARIANTS:
- Every consumer dispatches over EFFECT_TYPES exhaustively
- An unknown variant is a programming error and raises TypeError
- Effects reference records by identifier only
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Tuple, Union

from .base import (
    TimelineId, CharacterId, MemoryId, EventId,
    Ability, RelationshipState, Provenance, Witnessed, Traded,
)


@dataclass(frozen=True)
class Belief:
    """
    An appraisable belief about the world.

    affected_goals and goal_congruences are aligned by index: congruence
    in [-1, 1] says how much the belief helps (+) or hurts (-) that goal.
    """
    likelihood: float
    affected_goals: Tuple[str, ...]
    goal_congruences: Tuple[float, ...]
    is_incremental: bool
    causal_agent: Optional[CharacterId]


# =============================================================================
# LIFECYCLE
# =============================================================================

@dataclass(frozen=True)
class CharacterIntroduced:
    character: CharacterId


@dataclass(frozen=True)
class CharacterDeath:
    character: CharacterId


@dataclass(frozen=True)
class CharacterResurrection:
    character: CharacterId
    mechanism: str


# =============================================================================
# SOCIAL AND EPISTEMIC
# =============================================================================

@dataclass(frozen=True)
class RelationshipChange:
    """Sets the relationship in both directions, in the event's timeline."""
    character_a: CharacterId
    character_b: CharacterId
    new_state: RelationshipState


@dataclass(frozen=True)
class KnowledgeGained:
    """source_timeline differs from the event's timeline for cross-timeline grants."""
    character: CharacterId
    flag: str
    source_timeline: TimelineId


@dataclass(frozen=True)
class MemoryCreated:
    memory: MemoryId
    holder: CharacterId
    provenance: Provenance


@dataclass(frozen=True)
class MemoryTransfer:
    memory: MemoryId
    from_character: CharacterId
    to_character: CharacterId
    mechanism: str


@dataclass(frozen=True)
class AbilityGranted:
    character: CharacterId
    ability: Ability


# =============================================================================
# STRUCTURE AND CAUSALITY
# =============================================================================

@dataclass(frozen=True)
class TimelineBranch:
    new_timeline: TimelineId


@dataclass(frozen=True)
class RetroactiveInfluence:
    """The target event now depends on the event carrying this effect."""
    target_event: EventId


# =============================================================================
# EMOTIONAL APPRAISAL
# =============================================================================

@dataclass(frozen=True)
class GoalAdded:
    character: CharacterId
    goal: str
    utility: float
    is_maintenance: bool


@dataclass(frozen=True)
class BeliefAppraised:
    character: CharacterId
    belief: Belief


@dataclass(frozen=True)
class EmotionsDecayed:
    character: CharacterId
    factor: float


Effect = Union[
    CharacterIntroduced, CharacterDeath, CharacterResurrection,
    RelationshipChange, KnowledgeGained, MemoryCreated, MemoryTransfer,
    AbilityGranted, TimelineBranch, RetroactiveInfluence,
    GoalAdded, BeliefAppraised, EmotionsDecayed,
]

EFFECT_TYPES = (
    CharacterIntroduced, CharacterDeath, CharacterResurrection,
    RelationshipChange, KnowledgeGained, MemoryCreated, MemoryTransfer,
    AbilityGranted, TimelineBranch, RetroactiveInfluence,
    GoalAdded, BeliefAppraised, EmotionsDecayed,
)

EMOTIONAL_EFFECTS = (GoalAdded, BeliefAppraised, EmotionsDecayed)


def characters_touched(effect: Effect) -> Tuple[CharacterId, ...]:
    """Characters whose state an effect changes, in field order."""
    if isinstance(effect, (CharacterIntroduced, CharacterDeath, CharacterResurrection,
                           KnowledgeGained, AbilityGranted, GoalAdded,
                           BeliefAppraised, EmotionsDecayed)):
        return (effect.character,)
    if isinstance(effect, RelationshipChange):
        return (effect.character_a, effect.character_b)
    if isinstance(effect, MemoryCreated):
        return (effect.holder,)
    if isinstance(effect, MemoryTransfer):
        return (effect.from_character, effect.to_character)
    if isinstance(effect, (TimelineBranch, RetroactiveInfluence)):
        return ()
    raise TypeError(f"Unknown effect variant: {type(effect).__name__}")


def referenced_ids(effect: Effect) -> Tuple[object, ...]:
    """
    Every identifier an effect points at, for reference checking.

    TimelineBranch.new_timeline is left out: it names a timeline that is
    created right after the branch event is appended.
    """
    if isinstance(effect, MemoryCreated):
        return (effect.memory, effect.holder) + provenance_ids(effect.provenance)
    if isinstance(effect, MemoryTransfer):
        return (effect.memory, effect.from_character, effect.to_character)
    if isinstance(effect, KnowledgeGained):
        return (effect.character, effect.source_timeline)
    if isinstance(effect, RetroactiveInfluence):
        return (effect.target_event,)
    if isinstance(effect, BeliefAppraised):
        agent = effect.belief.causal_agent
        return (effect.character,) if agent is None else (effect.character, agent)
    if isinstance(effect, TimelineBranch):
        return ()
    return characters_touched(effect)


def provenance_ids(provenance: Provenance) -> Tuple[object, ...]:
    if isinstance(provenance, Witnessed):
        return (provenance.character,)
    if isinstance(provenance, Traded):
        return (provenance.from_character,)
    return ()
