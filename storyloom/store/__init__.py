"""
Entity Store
============

Append-only arenas of canonical records keyed by stable identifiers.

RESPONSIBILITY: Own the records, allocate identifiers, resolve references
ALLOWED INPUTS: Records and identifiers from contracts
OUTPUTS: Identifiers, records, canonical snapshots

INVARIANTS:
- Identifiers are allocated sequentially; insertion order = id order
- Nothing is ever deleted; an erased event keeps its id
- Every reference is checked on write; a dangling one raises
  DanglingReferenceError (a bug in the caller, never a test outcome)
- Records are immutable, so copy() only duplicates the arena dicts

WHAT THIS LAYER MUST NOT DO:
============================
- Check narrative preconditions (ActionEngine's job)
- Evaluate invariants (invariants layer's job)
"""

from __future__ import annotations
from typing import Dict, Iterable, Iterator, Optional, Tuple
import hashlib
import logging

from ..contracts.base import (
    TimelineId, CharacterId, MemoryId, EventId,
    CausalityViolation, DanglingReferenceError, Provenance,
)
from ..contracts.effects import Effect, TimelineBranch, provenance_ids, referenced_ids
from ..contracts.records import Timeline, Character, Memory, Event
from ..serialization import canonical_json, to_plain

logger = logging.getLogger(__name__)


class EntityStore:
    """
    Canonical record arenas for one validation run.

    GUARANTEES:
    ===========
    1. NO deletes - arenas only grow
    2. Deterministic - same writes in same order -> same state hash
    3. Referentially closed - every stored id resolves
    """

    def __init__(self):
        self._timelines: Dict[TimelineId, Timeline] = {}
        self._characters: Dict[CharacterId, Character] = {}
        self._memories: Dict[MemoryId, Memory] = {}
        self._events: Dict[EventId, Event] = {}

    @classmethod
    def with_root_timeline(cls) -> EntityStore:
        """Fresh store holding only the root timeline, Timeline#0."""
        store = cls()
        store.create_timeline()
        return store

    @classmethod
    def from_records(
        cls,
        timelines: Iterable[Timeline] = (),
        characters: Iterable[Character] = (),
        memories: Iterable[Memory] = (),
        events: Iterable[Event] = ()
    ) -> EntityStore:
        """
        Hydrate a store from records.

        Used for snapshots and for hand-built adversarial fixtures, so no
        narrative rule is checked here. Ids must be dense (0..n-1) and a
        child timeline must have a lower-numbered parent, which keeps the
        timeline graph acyclic.
        """
        store = cls()
        store._timelines = _arena(timelines, lambda r: r.timeline_id)
        store._characters = _arena(characters, lambda r: r.character_id)
        store._memories = _arena(memories, lambda r: r.memory_id)
        store._events = _arena(events, lambda r: r.event_id)
        for timeline in store._timelines.values():
            if timeline.parent is not None and timeline.parent.value >= timeline.timeline_id.value:
                raise ValueError(
                    f"{timeline.timeline_id} must branch from an earlier timeline, "
                    f"not {timeline.parent}"
                )
        return store

    # =========================================================================
    # WRITES
    # =========================================================================

    def next_timeline_id(self) -> TimelineId:
        return TimelineId(len(self._timelines))

    def create_timeline(
        self,
        parent: Optional[TimelineId] = None,
        branch_event: Optional[EventId] = None
    ) -> TimelineId:
        if (parent is None) != (branch_event is None):
            raise ValueError("parent and branch_event must be given together")
        if parent is not None:
            self.timeline(parent)
            self.event(branch_event)
        timeline_id = self.next_timeline_id()
        self._timelines[timeline_id] = Timeline(
            timeline_id=timeline_id,
            parent=parent,
            branch_event=branch_event
        )
        logger.debug("Created %s (parent=%s, branch=%s)", timeline_id, parent, branch_event)
        return timeline_id

    def create_character(self, name: str, home_timeline: TimelineId) -> CharacterId:
        self.timeline(home_timeline)
        character_id = CharacterId(len(self._characters))
        self._characters[character_id] = Character(
            character_id=character_id,
            name=name,
            home_timeline=home_timeline
        )
        return character_id

    def create_memory(
        self,
        event: EventId,
        holder: CharacterId,
        provenance: Provenance,
        fidelity: float = 1.0
    ) -> MemoryId:
        """Create a memory and add it to the holder's held set."""
        recalled = self.event(event)
        holder_record = self.character(holder)
        for ref in provenance_ids(provenance):
            self._resolve(ref)
        memory_id = MemoryId(len(self._memories))
        self._memories[memory_id] = Memory(
            memory_id=memory_id,
            event=event,
            holder=holder,
            source_timeline=recalled.timeline,
            provenance=provenance,
            fidelity=fidelity
        )
        self._characters[holder] = holder_record.with_memory(memory_id)
        return memory_id

    def append_event(
        self,
        timeline: TimelineId,
        participants: Iterable[CharacterId],
        effects: Tuple[Effect, ...],
        violation: Optional[CausalityViolation] = None,
        description: str = ""
    ) -> EventId:
        """
        Append an event to the tail of a timeline.

        The position is the length of the timeline's full history before
        the append. A TimelineBranch effect must name the next timeline id,
        since that timeline is created right after this event.
        """
        owner = self.timeline(timeline)
        participants = frozenset(participants)
        for character in participants:
            self.character(character)
        for effect in effects:
            if isinstance(effect, TimelineBranch) and effect.new_timeline != self.next_timeline_id():
                raise DanglingReferenceError(
                    f"Branch effect names {effect.new_timeline}, "
                    f"next timeline is {self.next_timeline_id()}"
                )
            for ref in referenced_ids(effect):
                self._resolve(ref)

        event_id = EventId(len(self._events))
        self._events[event_id] = Event(
            event_id=event_id,
            timeline=timeline,
            position=self._history_length(owner),
            participants=participants,
            effects=tuple(effects),
            violation=violation,
            description=description
        )
        self._timelines[timeline] = owner.with_event(event_id)
        return event_id

    def replace_character(self, record: Character) -> None:
        """Explicit field mutation. Called only by the ActionEngine."""
        self.character(record.character_id)
        self._characters[record.character_id] = record

    def replace_memory(self, record: Memory) -> None:
        """Explicit field mutation. Called only by the ActionEngine."""
        self.memory(record.memory_id)
        self.character(record.holder)
        self._memories[record.memory_id] = record

    # =========================================================================
    # READS
    # =========================================================================

    def timeline(self, timeline_id: TimelineId) -> Timeline:
        try:
            return self._timelines[timeline_id]
        except KeyError:
            raise DanglingReferenceError(f"Unknown timeline {timeline_id}") from None

    def character(self, character_id: CharacterId) -> Character:
        try:
            return self._characters[character_id]
        except KeyError:
            raise DanglingReferenceError(f"Unknown character {character_id}") from None

    def memory(self, memory_id: MemoryId) -> Memory:
        try:
            return self._memories[memory_id]
        except KeyError:
            raise DanglingReferenceError(f"Unknown memory {memory_id}") from None

    def event(self, event_id: EventId) -> Event:
        try:
            return self._events[event_id]
        except KeyError:
            raise DanglingReferenceError(f"Unknown event {event_id}") from None

    def has_timeline(self, timeline_id: TimelineId) -> bool:
        return timeline_id in self._timelines

    def has_character(self, character_id: CharacterId) -> bool:
        return character_id in self._characters

    def has_memory(self, memory_id: MemoryId) -> bool:
        return memory_id in self._memories

    def has_event(self, event_id: EventId) -> bool:
        return event_id in self._events

    def timelines(self) -> Iterator[Timeline]:
        return iter(tuple(self._timelines.values()))

    def characters(self) -> Iterator[Character]:
        return iter(tuple(self._characters.values()))

    def memories(self) -> Iterator[Memory]:
        return iter(tuple(self._memories.values()))

    def events(self) -> Iterator[Event]:
        return iter(tuple(self._events.values()))

    @property
    def counts(self) -> Dict[str, int]:
        return {
            'timelines': len(self._timelines),
            'characters': len(self._characters),
            'memories': len(self._memories),
            'events': len(self._events),
        }

    # =========================================================================
    # SNAPSHOTS
    # =========================================================================

    def copy(self) -> EntityStore:
        """Cheap snapshot: records are immutable, only the arenas are copied."""
        clone = EntityStore()
        clone._timelines = dict(self._timelines)
        clone._characters = dict(self._characters)
        clone._memories = dict(self._memories)
        clone._events = dict(self._events)
        return clone

    def to_dict(self) -> Dict[str, list]:
        return {
            'timelines': [to_plain(r) for r in self._timelines.values()],
            'characters': [to_plain(r) for r in self._characters.values()],
            'memories': [to_plain(r) for r in self._memories.values()],
            'events': [to_plain(r) for r in self._events.values()],
        }

    def compute_state_hash(self) -> str:
        """sha256 of the canonical JSON form. Same writes -> same hash."""
        return hashlib.sha256(canonical_json(self.to_dict()).encode('utf-8')).hexdigest()

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _resolve(self, ref: object) -> None:
        if isinstance(ref, TimelineId):
            self.timeline(ref)
        elif isinstance(ref, CharacterId):
            self.character(ref)
        elif isinstance(ref, MemoryId):
            self.memory(ref)
        elif isinstance(ref, EventId):
            self.event(ref)
        else:
            raise TypeError(f"Not an identifier: {ref!r}")

    def _history_length(self, timeline: Timeline) -> int:
        if timeline.parent is None:
            return len(timeline.events)
        branch = self.event(timeline.branch_event)
        return branch.position + 1 + len(timeline.events)


def _arena(records: Iterable, key) -> dict:
    arena = {}
    for index, record in enumerate(records):
        record_id = key(record)
        if record_id.value != index:
            raise ValueError(f"Expected id {index}, got {record_id}")
        arena[record_id] = record
    return arena
