"""
Causal Index
============

Derived mapping from each event to the events it causally depends on,
with the reverse mapping kept alongside (as the graph's predecessors).

DEPENDENCIES OF AN EVENT:
- Per character it involves (participants and characters its effects
  touch): the latest introduction, the latest death/resurrection and the
  latest relationship change of that character earlier in the history
- MemoryCreated: the event the memory recalls
- MemoryTransfer: the event that created the memory
- Cross-timeline KnowledgeGained: the character's first
  AbilityGranted(TIMELINE_PERCEPTION) event, when one exists
- RetroactiveInfluence: reversed - the TARGET depends on the influencing event

An edge is BACKWARD when the two events lie on one line of history and
the dependency comes later than the dependent. Only marked events may
be the cause of a backward edge.
"""

from __future__ import annotations
from typing import Dict, List, Optional, Set, Tuple
import networkx as nx

from ..contracts.base import CharacterId, EventId, MemoryId, Ability
from ..contracts.effects import (
    CharacterIntroduced, CharacterDeath, CharacterResurrection,
    RelationshipChange, KnowledgeGained, MemoryCreated, MemoryTransfer,
    AbilityGranted, TimelineBranch, RetroactiveInfluence,
    GoalAdded, BeliefAppraised, EmotionsDecayed, characters_touched,
)
from ..contracts.records import Event
from ..store import EntityStore
from ..temporal.graph import full_history


class CausalIndex:
    """
    Event dependency graph (edge: dependent -> dependency).

    Built once with CausalIndex.build(store) and kept current with
    add_event() after each append. Events must be added in id order.
    """

    def __init__(self):
        self._graph = nx.DiGraph()
        self._memory_origin: Dict[MemoryId, EventId] = {}
        self._perception_grants: Dict[CharacterId, EventId] = {}

    @classmethod
    def build(cls, store: EntityStore) -> CausalIndex:
        index = cls()
        for event in store.events():
            index.add_event(store, event.event_id)
        return index

    def add_event(self, store: EntityStore, event_id: EventId) -> None:
        event = store.event(event_id)
        self._graph.add_node(event_id)

        for dependency in self._dependencies_of(store, event):
            self._add_edge(store, event, store.event(dependency))

        for effect in event.effects:
            if isinstance(effect, RetroactiveInfluence):
                self._add_edge(store, store.event(effect.target_event), event)
            elif isinstance(effect, MemoryCreated):
                self._memory_origin.setdefault(effect.memory, event_id)
            elif isinstance(effect, AbilityGranted) and effect.ability is Ability.TIMELINE_PERCEPTION:
                self._perception_grants.setdefault(effect.character, event_id)

    # =========================================================================
    # QUERIES
    # =========================================================================

    def __contains__(self, event_id: EventId) -> bool:
        return event_id in self._graph

    def dependencies(self, event_id: EventId) -> List[EventId]:
        return sorted(self._graph.successors(event_id))

    def dependents(self, event_id: EventId) -> List[EventId]:
        return sorted(self._graph.predecessors(event_id))

    def transitive_dependents(self, event_id: EventId) -> List[EventId]:
        """Every event with a dependency path to `event_id`."""
        return sorted(nx.ancestors(self._graph, event_id))

    def backward_edges(self) -> List[Tuple[EventId, EventId]]:
        """(dependent, dependency) pairs where the dependency comes later."""
        return sorted(
            (dependent, dependency)
            for dependent, dependency, backward in self._graph.edges(data="backward")
            if backward
        )

    def perception_grant(self, character: CharacterId) -> Optional[EventId]:
        """First AbilityGranted(TIMELINE_PERCEPTION) event of the character, or None."""
        return self._perception_grants.get(character)

    def unjustified_cycles(self, store: EntityStore) -> List[Tuple[EventId, ...]]:
        """
        Dependency cycles in which no event carries a justified marker.
        Each cycle is rotated to start at its lowest event id.
        """
        cycles = []
        for cycle in nx.simple_cycles(self._graph):
            if any(store.event(event_id).is_marked for event_id in cycle):
                continue
            start = cycle.index(min(cycle))
            cycles.append(tuple(cycle[start:] + cycle[:start]))
        return sorted(cycles)

    @property
    def edge_count(self) -> int:
        return self._graph.number_of_edges()

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _add_edge(self, store: EntityStore, dependent: Event, dependency: Event) -> None:
        if dependent.event_id == dependency.event_id:
            return
        self._graph.add_edge(
            dependent.event_id,
            dependency.event_id,
            backward=_is_backward(store, dependent, dependency)
        )

    def _dependencies_of(self, store: EntityStore, event: Event) -> Set[EventId]:
        involved = set(event.participants)
        for effect in event.effects:
            involved.update(characters_touched(effect))

        dependencies: Set[EventId] = set()
        prefix = full_history(store, event.timeline)[:event.position]
        for character in involved:
            dependencies.update(_latest_touches(store, prefix, character))

        for effect in event.effects:
            if isinstance(effect, MemoryCreated):
                dependencies.add(store.memory(effect.memory).event)
            elif isinstance(effect, MemoryTransfer):
                origin = self._memory_origin.get(effect.memory)
                if origin is not None:
                    dependencies.add(origin)
            elif isinstance(effect, KnowledgeGained):
                if effect.source_timeline != event.timeline:
                    grant = self._perception_grants.get(effect.character)
                    if grant is not None:
                        dependencies.add(grant)
            elif isinstance(effect, (CharacterIntroduced, CharacterDeath, CharacterResurrection,
                                     RelationshipChange, AbilityGranted, TimelineBranch,
                                     RetroactiveInfluence, GoalAdded, BeliefAppraised,
                                     EmotionsDecayed)):
                pass
            else:
                raise TypeError(f"Unknown effect variant: {type(effect).__name__}")
        dependencies.discard(event.event_id)
        return dependencies


def _latest_touches(
    store: EntityStore,
    prefix: Tuple[EventId, ...],
    character: CharacterId
) -> Set[EventId]:
    """Latest introduction, liveness change and relationship change of a character."""
    found: Dict[str, EventId] = {}
    for event_id in reversed(prefix):
        if len(found) == 3:
            break
        for effect in store.event(event_id).effects:
            if isinstance(effect, CharacterIntroduced) and effect.character == character:
                found.setdefault("introduced", event_id)
            elif isinstance(effect, (CharacterDeath, CharacterResurrection)) and effect.character == character:
                found.setdefault("liveness", event_id)
            elif isinstance(effect, RelationshipChange) and character in (effect.character_a, effect.character_b):
                found.setdefault("relationship", event_id)
    return set(found.values())


def _is_backward(store: EntityStore, dependent: Event, dependency: Event) -> bool:
    """Both events lie on one line of history and the dependency is later."""
    if dependency.position <= dependent.position:
        return False
    return (
        dependent.event_id in full_history(store, dependency.timeline)
        or dependency.event_id in full_history(store, dependent.timeline)
    )
