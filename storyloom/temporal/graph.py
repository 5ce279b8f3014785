"""
Timeline Graph
==============

DAG of timelines (parent -> child) over an EntityStore, and the
definition of a timeline's full history.

FULL HISTORY:
- Root timeline: its own events
- Child timeline: parent's full history up to and including the branch
  event, followed by the child's own events

A branch point missing from the parent's history contributes no inherited
prefix; BRANCH_CONSISTENCY reports it.
"""

from __future__ import annotations
from typing import Dict, List, Optional, Tuple
import networkx as nx

from ..contracts.base import TimelineId, EventId
from ..store import EntityStore


def full_history(
    store: EntityStore,
    timeline_id: TimelineId,
    cache: Optional[Dict[TimelineId, Tuple[EventId, ...]]] = None
) -> Tuple[EventId, ...]:
    """Ordered event ids of a timeline, inherited prefix included."""
    if cache is not None and timeline_id in cache:
        return cache[timeline_id]
    timeline = store.timeline(timeline_id)
    if timeline.parent is None:
        history = timeline.events
    else:
        inherited = full_history(store, timeline.parent, cache)
        history = _cut_at(inherited, timeline.branch_event) + timeline.events
    if cache is not None:
        cache[timeline_id] = history
    return history


def _cut_at(history: Tuple[EventId, ...], event_id: EventId) -> Tuple[EventId, ...]:
    try:
        return history[:history.index(event_id) + 1]
    except ValueError:
        return ()


class TimelineGraph:
    """
    Structural view of the timeline DAG.

    Wraps NetworkX for the graph questions (ancestry, acyclicity) and
    answers history questions from the store. The graph is built from a
    store snapshot; branch() keeps both in step.
    """

    def __init__(self, store: EntityStore):
        self._store = store
        self._graph = nx.DiGraph()
        for timeline in store.timelines():
            self._graph.add_node(timeline.timeline_id)
            if timeline.parent is not None:
                self._graph.add_edge(timeline.parent, timeline.timeline_id)

    @property
    def store(self) -> EntityStore:
        return self._store

    def branch(self, parent: TimelineId, at_event: EventId) -> TimelineId:
        """
        Create a child of `parent` branching at `at_event`.

        The event must be in the parent's full history.
        """
        if at_event not in self.history(parent):
            raise ValueError(f"{at_event} is not in the history of {parent}")
        child = self._store.create_timeline(parent, at_event)
        self._graph.add_edge(parent, child)
        return child

    # =========================================================================
    # HISTORY QUERIES
    # =========================================================================

    def history(self, timeline: TimelineId) -> Tuple[EventId, ...]:
        return full_history(self._store, timeline)

    def history_until(self, timeline: TimelineId, event: EventId) -> Tuple[EventId, ...]:
        """History up to and including `event`; empty if the event is not in it."""
        return _cut_at(self.history(timeline), event)

    def shares_history_until(self, a: TimelineId, b: TimelineId, event: EventId) -> bool:
        """True iff both histories contain `event` and are identical up to it."""
        prefix_a = self.history_until(a, event)
        return bool(prefix_a) and prefix_a == self.history_until(b, event)

    def position_of(self, timeline: TimelineId, event: EventId) -> Optional[int]:
        history = self.history(timeline)
        return history.index(event) if event in history else None

    def is_causality_stable(self, timeline: TimelineId) -> bool:
        """No event in the full history carries a causality-violation marker."""
        return all(
            self._store.event(event_id).violation is None
            for event_id in self.history(timeline)
        )

    # =========================================================================
    # STRUCTURE QUERIES
    # =========================================================================

    def ancestors(self, timeline: TimelineId) -> List[TimelineId]:
        return sorted(nx.ancestors(self._graph, timeline))

    def children(self, timeline: TimelineId) -> List[TimelineId]:
        return sorted(self._graph.successors(timeline))

    def descendants(self, timeline: TimelineId) -> List[TimelineId]:
        return sorted(nx.descendants(self._graph, timeline))

    def roots(self) -> List[TimelineId]:
        return sorted(node for node, degree in self._graph.in_degree() if degree == 0)

    def is_dag(self) -> bool:
        return nx.is_directed_acyclic_graph(self._graph)
