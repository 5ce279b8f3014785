"""
Temporal Layer
==============

Timeline DAG and per-timeline derived state.

INVARIANTS:
- A timeline's history up to its branch point IS its parent's (by event identity)
- Liveness, knowledge and relationships are read from full histories only
- Same store -> same derived state (pure functions)

Modules:
- graph: TimelineGraph (networkx) and full_history
- derivation: is_present, is_alive, derived_knowledge, derived_relationship
"""

from .graph import TimelineGraph, full_history
from .derivation import (
    is_present, is_alive, liveness,
    derived_knowledge, derived_relationship, knowledge_grants,
)

__all__ = [
    'TimelineGraph',
    'full_history',
    'is_present',
    'is_alive',
    'liveness',
    'derived_knowledge',
    'derived_relationship',
    'knowledge_grants',
]
