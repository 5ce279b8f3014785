"""
Action Records
==============

Fully parameterized requests submitted to the ActionEngine.

INVARIANTS:
- No field has a default: an action never relies on ambient state
- Actions are frozen and hashable so sequences can be replayed and shrunk
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import FrozenSet, Tuple, Union

from .base import (
    TimelineId, CharacterId, MemoryId, EventId,
    Ability, RelationshipState, ViolationKind,
)
from .effects import Belief


# =============================================================================
# CORE ACTIONS
# =============================================================================

@dataclass(frozen=True)
class CreateCharacter:
    name: str
    timeline: TimelineId


@dataclass(frozen=True)
class KillCharacter:
    character: CharacterId
    timeline: TimelineId


@dataclass(frozen=True)
class ResurrectCharacter:
    """extra_causal tags the resurrection event with a RETROACTIVE_CHANGE marker."""
    character: CharacterId
    timeline: TimelineId
    mechanism: str
    extra_causal: bool


@dataclass(frozen=True)
class TradeMemory:
    memory: MemoryId
    from_character: CharacterId
    to_character: CharacterId
    mechanism: str
    timeline: TimelineId


@dataclass(frozen=True)
class BranchTimeline:
    parent: TimelineId


@dataclass(frozen=True)
class ViolateCausality:
    """
    Append an event that breaks forward causality.
    Each retroactive target becomes dependent on the new event.
    """
    timeline: TimelineId
    kind: ViolationKind
    mechanism: str
    participants: FrozenSet[CharacterId]
    retroactive_targets: Tuple[EventId, ...]


@dataclass(frozen=True)
class GrantKnowledge:
    character: CharacterId
    flag: str
    timeline: TimelineId


@dataclass(frozen=True)
class ChangeRelationship:
    character_a: CharacterId
    character_b: CharacterId
    new_state: RelationshipState
    timeline: TimelineId


# =============================================================================
# MEMORY AND ABILITY ACTIONS
# =============================================================================

@dataclass(frozen=True)
class CreateWitnessedMemory:
    character: CharacterId
    event: EventId
    timeline: TimelineId


@dataclass(frozen=True)
class ForgeMemory:
    forger: str
    holder: CharacterId
    event: EventId
    timeline: TimelineId


@dataclass(frozen=True)
class InstallMemory:
    holder: CharacterId
    event: EventId
    mechanism: str
    timeline: TimelineId


@dataclass(frozen=True)
class GrantAbility:
    character: CharacterId
    ability: Ability
    timeline: TimelineId


@dataclass(frozen=True)
class PerceiveAcrossTimelines:
    """Carry a flag the character holds in source_timeline into target_timeline."""
    character: CharacterId
    flag: str
    source_timeline: TimelineId
    target_timeline: TimelineId


# =============================================================================
# EMOTIONAL ACTIONS
# =============================================================================

@dataclass(frozen=True)
class AddGoal:
    character: CharacterId
    goal: str
    utility: float
    is_maintenance: bool
    timeline: TimelineId


@dataclass(frozen=True)
class AppraiseBelief:
    character: CharacterId
    belief: Belief
    timeline: TimelineId


@dataclass(frozen=True)
class DecayEmotions:
    character: CharacterId
    factor: float
    timeline: TimelineId


Action = Union[
    CreateCharacter, KillCharacter, ResurrectCharacter, TradeMemory,
    BranchTimeline, ViolateCausality, GrantKnowledge, ChangeRelationship,
    CreateWitnessedMemory, ForgeMemory, InstallMemory, GrantAbility,
    PerceiveAcrossTimelines, AddGoal, AppraiseBelief, DecayEmotions,
]

ACTION_TYPES = (
    CreateCharacter, KillCharacter, ResurrectCharacter, TradeMemory,
    BranchTimeline, ViolateCausality, GrantKnowledge, ChangeRelationship,
    CreateWitnessedMemory, ForgeMemory, InstallMemory, GrantAbility,
    PerceiveAcrossTimelines, AddGoal, AppraiseBelief, DecayEmotions,
)
