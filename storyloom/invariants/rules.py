"""
Invariant Rules
===============

Fixed battery of stateless predicates over a store snapshot. Each rule is
independently callable with just a store and returns every violation it
finds, unsorted; validate_all() orders them.

Events shared through an inherited prefix are judged once, in the
timeline that owns them, while the state they are judged against comes
from the judging timeline's full history.
"""

from __future__ import annotations
from typing import Dict, List, Optional, Set, Tuple

from ..contracts.base import (
    TimelineId, CharacterId, EventId,
    Ability, RelationshipState, InvariantRule, Violation,
    Witnessed, provenance_justification,
)
from ..contracts.effects import (
    CharacterIntroduced, CharacterDeath, CharacterResurrection,
    RelationshipChange, KnowledgeGained, AbilityGranted, EMOTIONAL_EFFECTS,
)
from ..contracts.records import Event
from ..store import EntityStore
from ..temporal.graph import TimelineGraph, full_history
from ..core.causal import CausalIndex
from ..core.emotion import derive_emotional_state


class SnapshotView:
    """
    Read-side cache shared by the rules during one validation pass.
    Histories and the causal index are computed at most once.
    """

    def __init__(self, store: EntityStore, index: Optional[CausalIndex] = None):
        self.store = store
        self._histories: Dict[TimelineId, Tuple[EventId, ...]] = {}
        self._index = index

    def history(self, timeline: TimelineId) -> Tuple[EventId, ...]:
        return full_history(self.store, timeline, self._histories)

    def history_events(self, timeline: TimelineId) -> List[Event]:
        return [self.store.event(event_id) for event_id in self.history(timeline)]

    @property
    def index(self) -> CausalIndex:
        if self._index is None:
            self._index = CausalIndex.build(self.store)
        return self._index


def _view(store: EntityStore, view: Optional[SnapshotView]) -> SnapshotView:
    return view if view is not None else SnapshotView(store)


def _violation(
    rule: InvariantRule,
    entity: object,
    message: str,
    event: Optional[Event] = None,
    timeline: Optional[TimelineId] = None
) -> Violation:
    return Violation(
        rule=rule,
        entity_id=str(entity),
        event_index=event.position if event is not None else None,
        timeline=timeline if timeline is not None else (event.timeline if event is not None else None),
        message=message
    )


# =============================================================================
# 1. MEMORY CONSISTENCY
# =============================================================================

def check_memory_consistency(store: EntityStore, view: Optional[SnapshotView] = None) -> List[Violation]:
    rule = InvariantRule.MEMORY_CONSISTENCY
    found = []

    for memory in store.memories():
        recalled = store.event(memory.event)
        provenance = memory.provenance
        if isinstance(provenance, Witnessed):
            if provenance.character not in recalled.participants:
                found.append(_violation(
                    rule, memory.memory_id,
                    f"{memory.memory_id} claims {provenance.character} witnessed "
                    f"{memory.event}, who did not take part in it",
                    recalled
                ).with_context("witness", str(provenance.character)))
            if memory.holder != provenance.character:
                found.append(_violation(
                    rule, memory.memory_id,
                    f"{memory.memory_id} is held by {memory.holder} but was witnessed by "
                    f"{provenance.character} and never traded",
                    recalled
                ))
        else:
            justification = provenance_justification(provenance)
            if not justification or not justification.strip():
                found.append(_violation(
                    rule, memory.memory_id,
                    f"{memory.memory_id} has {type(provenance).__name__} provenance "
                    f"without a justification",
                    recalled
                ))
        if memory.source_timeline != recalled.timeline:
            found.append(_violation(
                rule, memory.memory_id,
                f"{memory.memory_id} names {memory.source_timeline} as source, "
                f"but {memory.event} belongs to {recalled.timeline}",
                recalled
            ))
        if not 0.0 <= memory.fidelity <= 1.0:
            found.append(_violation(
                rule, memory.memory_id,
                f"{memory.memory_id} has fidelity {memory.fidelity} outside [0, 1]",
                recalled
            ))
        holder = store.character(memory.holder)
        if memory.memory_id not in holder.memories:
            found.append(_violation(
                rule, memory.memory_id,
                f"{memory.holder} holds {memory.memory_id} but does not list it",
                recalled
            ))

    for character in store.characters():
        for memory_id in sorted(character.memories):
            memory = store.memory(memory_id)
            if memory.holder != character.character_id:
                found.append(_violation(
                    rule, character.character_id,
                    f"{character.character_id} lists {memory_id}, which is held by {memory.holder}"
                ))
    return found


# =============================================================================
# 2. PER-TIMELINE DEATH FINALITY
# =============================================================================

def check_death_finality(store: EntityStore, view: Optional[SnapshotView] = None) -> List[Violation]:
    """
    Walk each timeline with a timeline-local alive set. A participant must
    be alive before the event unless the event introduces or resurrects them.
    """
    rule = InvariantRule.DEATH_FINALITY
    view = _view(store, view)
    found = []

    for timeline in store.timelines():
        alive: Dict[CharacterId, bool] = {}
        for event in view.history_events(timeline.timeline_id):
            owned = event.timeline == timeline.timeline_id
            exempt: Set[CharacterId] = set()
            for effect in event.effects:
                if isinstance(effect, (CharacterIntroduced, CharacterResurrection)):
                    exempt.add(effect.character)

            if owned:
                for participant in sorted(event.participants):
                    if participant in exempt or alive.get(participant, False):
                        continue
                    state = "dead" if participant in alive else "not yet introduced"
                    found.append(_violation(
                        rule, participant,
                        f"{participant} takes part in {event.event_id} while {state} "
                        f"in {timeline.timeline_id}",
                        event
                    ))

            for effect in event.effects:
                if isinstance(effect, CharacterIntroduced):
                    alive[effect.character] = True
                elif isinstance(effect, CharacterDeath):
                    if owned and not alive.get(effect.character, False):
                        found.append(_violation(
                            rule, effect.character,
                            f"{effect.character} dies in {event.event_id} without being alive",
                            event
                        ))
                    alive[effect.character] = False
                elif isinstance(effect, CharacterResurrection):
                    if owned and not (effect.mechanism and effect.mechanism.strip()):
                        found.append(_violation(
                            rule, effect.character,
                            f"{effect.character} is resurrected in {event.event_id} "
                            f"without a mechanism",
                            event
                        ))
                    alive[effect.character] = True
    return found


# =============================================================================
# 3. CAUSALITY JUSTIFICATION
# =============================================================================

def check_causality_justification(store: EntityStore, view: Optional[SnapshotView] = None) -> List[Violation]:
    rule = InvariantRule.CAUSALITY_JUSTIFICATION
    view = _view(store, view)
    index = view.index
    found = []

    for event in store.events():
        if event.violation is not None and not event.violation.is_justified:
            found.append(_violation(
                rule, event.event_id,
                f"{event.event_id} carries a {event.violation.kind.value} marker "
                f"without a mechanism",
                event
            ))

    reported: Set[EventId] = set()
    for dependent, dependency in index.backward_edges():
        cause = store.event(dependency)
        if cause.is_marked or dependency in reported:
            continue
        reported.add(dependency)
        found.append(_violation(
            rule, dependency,
            f"{dependency} affects earlier {dependent} without a causality-violation mechanism",
            cause
        ).with_context("dependent", str(dependent)))

    for event in store.events():
        for effect in event.effects:
            if not isinstance(effect, KnowledgeGained) or effect.source_timeline == event.timeline:
                continue
            grant = index.perception_grant(effect.character)
            perceived = grant is not None and grant < event.event_id
            if not perceived and not event.is_marked:
                found.append(_violation(
                    rule, event.event_id,
                    f"{effect.character} learns {effect.flag!r} from {effect.source_timeline} "
                    f"in {event.event_id} without timeline perception or a mechanism",
                    event
                ))

    for cycle in index.unjustified_cycles(store):
        head = store.event(cycle[0])
        found.append(_violation(
            rule, head.event_id,
            "Unjustified causal cycle: " + " -> ".join(str(e) for e in cycle),
            head
        ))

    for event in store.events():
        if not event.erased:
            continue
        for dependent_id in index.dependents(event.event_id):
            dependent = store.event(dependent_id)
            if not dependent.erased and not dependent.is_marked:
                found.append(_violation(
                    rule, dependent_id,
                    f"{dependent_id} depends on erased {event.event_id} and is neither "
                    f"erased nor re-justified",
                    dependent
                ))
    return found


# =============================================================================
# 4. BRANCH CONSISTENCY
# =============================================================================

def check_branch_consistency(store: EntityStore, view: Optional[SnapshotView] = None) -> List[Violation]:
    rule = InvariantRule.BRANCH_CONSISTENCY
    view = _view(store, view)
    graph = TimelineGraph(store)
    found = []

    if not graph.is_dag():
        found.append(_violation(rule, "Timeline#graph", "Timeline graph contains a cycle"))
        return found

    owners: Dict[EventId, TimelineId] = {}
    for timeline in store.timelines():
        tid = timeline.timeline_id
        history = view.history(tid)
        offset = len(history) - len(timeline.events)

        if timeline.parent is not None:
            parent_history = view.history(timeline.parent)
            if timeline.branch_event not in parent_history:
                found.append(_violation(
                    rule, tid,
                    f"{tid} branches at {timeline.branch_event}, which is not in the "
                    f"history of {timeline.parent}",
                    timeline=tid
                ))
            elif not graph.shares_history_until(timeline.parent, tid, timeline.branch_event):
                found.append(_violation(
                    rule, tid,
                    f"{tid} does not share the history of {timeline.parent} "
                    f"up to {timeline.branch_event}",
                    timeline=tid
                ))

        for offset_index, event_id in enumerate(timeline.events):
            event = store.event(event_id)
            if event_id in owners:
                found.append(_violation(
                    rule, event_id,
                    f"{event_id} is owned by both {owners[event_id]} and {tid}; "
                    f"histories after a branch point must diverge",
                    event, tid
                ))
                continue
            owners[event_id] = tid
            if event.timeline != tid:
                found.append(_violation(
                    rule, event_id,
                    f"{event_id} sits in {tid} but references {event.timeline}",
                    event, tid
                ))
            elif event.position != offset + offset_index:
                found.append(_violation(
                    rule, event_id,
                    f"{event_id} records position {event.position}, "
                    f"actual position is {offset + offset_index}",
                    event, tid
                ))

    for event in store.events():
        if event.event_id not in owners:
            found.append(_violation(
                rule, event.event_id,
                f"{event.event_id} is not in any timeline's history",
                event
            ))
    return found


# =============================================================================
# 5. RELATIONSHIP PERSISTENCE
# =============================================================================

def check_relationship_persistence(store: EntityStore, view: Optional[SnapshotView] = None) -> List[Violation]:
    """The stored table equals the latest change in the timeline (NEUTRAL if none)."""
    rule = InvariantRule.RELATIONSHIP_PERSISTENCE
    view = _view(store, view)
    found = []

    for timeline in store.timelines():
        tid = timeline.timeline_id
        latest: Dict[Tuple[CharacterId, CharacterId], Tuple[RelationshipState, Event]] = {}
        for event in view.history_events(tid):
            for effect in event.effects:
                if isinstance(effect, RelationshipChange):
                    latest[(effect.character_a, effect.character_b)] = (effect.new_state, event)
                    latest[(effect.character_b, effect.character_a)] = (effect.new_state, event)

        for character in store.characters():
            cid = character.character_id
            others = {oid for oid, _ in character.relationships_in(tid)}
            others.update(b for (a, b) in latest if a == cid)
            for other in sorted(others):
                stored = character.relationship_in(tid, other)
                derived, event = latest.get((cid, other), (RelationshipState.NEUTRAL, None))
                if stored != derived:
                    found.append(_violation(
                        rule, cid,
                        f"{cid} -> {other} is {stored.value} in {tid}, "
                        f"but the latest change says {derived.value}",
                        event, tid
                    ))
    return found


# =============================================================================
# 6. KNOWLEDGE PROPAGATION JUSTIFICATION
# =============================================================================

def check_knowledge_propagation(store: EntityStore, view: Optional[SnapshotView] = None) -> List[Violation]:
    rule = InvariantRule.KNOWLEDGE_PROPAGATION
    view = _view(store, view)
    found = []

    perception: Dict[CharacterId, EventId] = {}
    for event in store.events():
        for effect in event.effects:
            if isinstance(effect, AbilityGranted) and effect.ability is Ability.TIMELINE_PERCEPTION:
                perception.setdefault(effect.character, event.event_id)

    for timeline in store.timelines():
        tid = timeline.timeline_id
        grants: Dict[Tuple[CharacterId, str], List[Event]] = {}
        for event in view.history_events(tid):
            for effect in event.effects:
                if isinstance(effect, KnowledgeGained):
                    grants.setdefault((effect.character, effect.flag), []).append(event)

        for character in store.characters():
            cid = character.character_id
            held = character.knowledge_in(tid)
            for flag in sorted(held):
                if (cid, flag) not in grants:
                    found.append(_violation(
                        rule, cid,
                        f"{cid} knows {flag!r} in {tid} but nothing in its history granted it",
                        timeline=tid
                    ))
            for (grantee, flag), events in sorted(grants.items(), key=lambda item: (item[0][0], item[0][1])):
                if grantee == cid and flag not in held:
                    found.append(_violation(
                        rule, cid,
                        f"{cid} was granted {flag!r} in {tid} but no longer holds it",
                        events[-1], tid
                    ))

        for event in view.history_events(tid):
            if event.timeline != tid:
                continue
            for effect in event.effects:
                if not isinstance(effect, KnowledgeGained) or effect.source_timeline == tid:
                    continue
                grant = perception.get(effect.character)
                if (grant is None or grant > event.event_id) and not event.is_marked:
                    found.append(_violation(
                        rule, effect.character,
                        f"{effect.character} carries {effect.flag!r} from "
                        f"{effect.source_timeline} without timeline perception",
                        event
                    ))
                if not _held_before(store, view, effect.character, effect.flag,
                                    effect.source_timeline, event.event_id):
                    found.append(_violation(
                        rule, effect.character,
                        f"{effect.character} carries {effect.flag!r} from "
                        f"{effect.source_timeline}, where it was never known",
                        event
                    ))
    return found


def _held_before(
    store: EntityStore,
    view: SnapshotView,
    character: CharacterId,
    flag: str,
    timeline: TimelineId,
    before: EventId
) -> bool:
    if not store.has_timeline(timeline):
        return False
    for event in view.history_events(timeline):
        if event.event_id >= before:
            continue
        for effect in event.effects:
            if isinstance(effect, KnowledgeGained) and effect.character == character and effect.flag == flag:
                return True
    return False


# =============================================================================
# 7. EMOTIONAL BOUNDS
# =============================================================================

def check_emotional_bounds(store: EntityStore, view: Optional[SnapshotView] = None) -> List[Violation]:
    """PAD components, goal utilities and goal likelihoods stay within [-1, 1]."""
    rule = InvariantRule.EMOTIONAL_BOUNDS
    view = _view(store, view)
    found = []

    for timeline in store.timelines():
        tid = timeline.timeline_id
        feeling: Set[CharacterId] = set()
        for event in view.history_events(tid):
            for effect in event.effects:
                if isinstance(effect, EMOTIONAL_EFFECTS):
                    feeling.add(effect.character)

        for cid in sorted(feeling):
            state = derive_emotional_state(store, cid, tid)
            for axis, value in zip(("pleasure", "arousal", "dominance"), state.pad()):
                if not -1.0 <= float(value) <= 1.0:
                    found.append(_violation(
                        rule, cid, f"{cid} has {axis} {float(value)} in {tid}", timeline=tid
                    ))
            for goal in sorted(state.goals.values(), key=lambda g: g.name):
                if not -1.0 <= goal.utility <= 1.0:
                    found.append(_violation(
                        rule, cid, f"{cid} goal {goal.name!r} has utility {goal.utility} in {tid}",
                        timeline=tid
                    ))
                if not -1.0 <= goal.likelihood <= 1.0:
                    found.append(_violation(
                        rule, cid, f"{cid} goal {goal.name!r} has likelihood {goal.likelihood} in {tid}",
                        timeline=tid
                    ))
    return found


RULES = {
    InvariantRule.MEMORY_CONSISTENCY: check_memory_consistency,
    InvariantRule.DEATH_FINALITY: check_death_finality,
    InvariantRule.CAUSALITY_JUSTIFICATION: check_causality_justification,
    InvariantRule.BRANCH_CONSISTENCY: check_branch_consistency,
    InvariantRule.RELATIONSHIP_PERSISTENCE: check_relationship_persistence,
    InvariantRule.KNOWLEDGE_PROPAGATION: check_knowledge_propagation,
    InvariantRule.EMOTIONAL_BOUNDS: check_emotional_bounds,
}
