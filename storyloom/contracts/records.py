"""
Entity Records
==============

Canonical records held by the EntityStore: Timeline, Character, Memory, Event.

INVARIANTS:
- Records are frozen; a change produces a new record (dataclasses.replace)
- Cross references are identifiers, never direct links
- Liveness is NOT a field anywhere: it is derived from timeline history
- Per-timeline tables are sorted tuples so records stay hashable and
  compare equal regardless of the order changes were made in
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from typing import FrozenSet, Optional, Tuple

from .base import (
    TimelineId, CharacterId, MemoryId, EventId,
    Ability, RelationshipState, CausalityViolation, Provenance,
)
from .effects import Effect


@dataclass(frozen=True)
class Timeline:
    """
    One branch of the narrative.

    `events` holds only the events OWNED by this timeline. The full history
    is the parent's full history up to and including `branch_event`,
    followed by `events` (see temporal.graph.full_history).
    """
    timeline_id: TimelineId
    parent: Optional[TimelineId] = None
    branch_event: Optional[EventId] = None
    events: Tuple[EventId, ...] = field(default_factory=tuple)

    @property
    def is_root(self) -> bool:
        return self.parent is None

    def with_event(self, event_id: EventId) -> Timeline:
        return replace(self, events=self.events + (event_id,))


@dataclass(frozen=True)
class Character:
    """
    A character and its timeline-scoped state.

    knowledge:     ((timeline, flags), ...) sorted by timeline
    relationships: ((timeline, other, state), ...) sorted by (timeline, other)
    """
    character_id: CharacterId
    name: str
    home_timeline: TimelineId
    memories: FrozenSet[MemoryId] = field(default_factory=frozenset)
    abilities: FrozenSet[Ability] = field(default_factory=frozenset)
    knowledge: Tuple[Tuple[TimelineId, FrozenSet[str]], ...] = field(default_factory=tuple)
    relationships: Tuple[Tuple[TimelineId, CharacterId, RelationshipState], ...] = field(
        default_factory=tuple
    )

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def has_ability(self, ability: Ability) -> bool:
        return ability in self.abilities

    def knowledge_in(self, timeline: TimelineId) -> FrozenSet[str]:
        for tid, flags in self.knowledge:
            if tid == timeline:
                return flags
        return frozenset()

    def relationship_in(self, timeline: TimelineId, other: CharacterId) -> RelationshipState:
        for tid, oid, state in self.relationships:
            if tid == timeline and oid == other:
                return state
        return RelationshipState.NEUTRAL

    def relationships_in(self, timeline: TimelineId) -> Tuple[Tuple[CharacterId, RelationshipState], ...]:
        return tuple((oid, state) for tid, oid, state in self.relationships if tid == timeline)

    # -------------------------------------------------------------------------
    # Copy-on-write updates (used only by the ActionEngine)
    # -------------------------------------------------------------------------

    def with_memory(self, memory: MemoryId) -> Character:
        return replace(self, memories=self.memories | {memory})

    def without_memory(self, memory: MemoryId) -> Character:
        return replace(self, memories=self.memories - {memory})

    def with_ability(self, ability: Ability) -> Character:
        return replace(self, abilities=self.abilities | {ability})

    def with_knowledge(self, timeline: TimelineId, flag: str) -> Character:
        flags = self.knowledge_in(timeline) | {flag}
        table = [(tid, f) for tid, f in self.knowledge if tid != timeline]
        table.append((timeline, frozenset(flags)))
        return replace(self, knowledge=tuple(sorted(table, key=lambda row: row[0])))

    def with_relationship(
        self,
        timeline: TimelineId,
        other: CharacterId,
        state: RelationshipState
    ) -> Character:
        table = [
            row for row in self.relationships
            if not (row[0] == timeline and row[1] == other)
        ]
        table.append((timeline, other, state))
        return replace(
            self,
            relationships=tuple(sorted(table, key=lambda row: (row[0], row[1])))
        )

    def with_timeline_copy(self, source: TimelineId, target: TimelineId) -> Character:
        """Copy the knowledge and relationship entries of `source` onto `target`."""
        knowledge = [(tid, f) for tid, f in self.knowledge if tid != target]
        flags = self.knowledge_in(source)
        if flags:
            knowledge.append((target, flags))
        relationships = [row for row in self.relationships if row[0] != target]
        relationships.extend(
            (target, oid, state) for oid, state in self.relationships_in(source)
        )
        return replace(
            self,
            knowledge=tuple(sorted(knowledge, key=lambda row: row[0])),
            relationships=tuple(sorted(relationships, key=lambda row: (row[0], row[1]))),
        )


@dataclass(frozen=True)
class Memory:
    """
    A memory of one event, held by one character.
    No memory exists without a provenance.
    """
    memory_id: MemoryId
    event: EventId
    holder: CharacterId
    source_timeline: TimelineId
    provenance: Provenance
    fidelity: float = 1.0


@dataclass(frozen=True)
class Event:
    """
    Something that happened in one timeline.

    position is the index of the event in its owning timeline's full
    history. Erased events are never removed from the store; they keep
    their id so later provenance chains still resolve.
    """
    event_id: EventId
    timeline: TimelineId
    position: int
    participants: FrozenSet[CharacterId] = field(default_factory=frozenset)
    effects: Tuple[Effect, ...] = field(default_factory=tuple)
    violation: Optional[CausalityViolation] = None
    description: str = ""
    erased: bool = False

    @property
    def is_marked(self) -> bool:
        """True when the event carries a marker that names a mechanism."""
        return self.violation is not None and self.violation.is_justified
