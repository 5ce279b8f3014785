"""
Storyloom: Narrative-State Consistency Engine

This package models a branching-timeline story world and checks a fixed
battery of invariants after every mutating action. Each layer communicates
only through the immutable records in contracts/, never through shared
mutable state.

LAYER STRUCTURE:
================

1. CONTRACTS (contracts/)
   - Identifiers, records, effects, actions, outcomes, errors-as-data
   - MUST NOT: Depend on any other layer

2. ENTITY STORE (store/)
   - Responsibility: Append-only arenas keyed by stable identifiers
   - MUST NOT: Check narrative rules (that's the engine's and checker's job)

3. TEMPORAL LAYER (temporal/)
   - Responsibility: Timeline DAG, full histories, per-timeline derivations
   - MUST NOT: Mutate records

4. CORE (core/)
   - Responsibility: ActionEngine (the only writer), CausalIndex, emotions
   - MUST NOT: Decide whether a rejection ends a run (harness policy)

5. INVARIANT CHECKER (invariants/)
   - Responsibility: Stateless rules evaluated against a store snapshot
   - MUST NOT: Repair what it finds

6. OBSERVABILITY (observability/)
   - Responsibility: Audit trail and metrics for harness runs
   - MUST NOT: Modify engine behavior

CONSTRAINTS ENFORCED:
=====================
- Immutability-first: records are frozen, stores are copied before writes
- Liveness is derived from history, never stored
- Deterministic: identical action sequences give identical state hashes
- Explicit errors: rejections and violations are values, not exceptions
"""

from .contracts.base import (
    TimelineId, CharacterId, MemoryId, EventId,
    Ability, RelationshipState, ViolationKind, CausalityViolation,
    Rejection, RejectionCode, Violation, InvariantRule,
    DanglingReferenceError,
)
from .store import EntityStore
from .core import ActionEngine
from .invariants import validate_all
from .harness import ValidationHarness, RunReport

__version__ = "0.1.0"

__all__ = [
    'TimelineId',
    'CharacterId',
    'MemoryId',
    'EventId',
    'Ability',
    'RelationshipState',
    'ViolationKind',
    'CausalityViolation',
    'Rejection',
    'RejectionCode',
    'Violation',
    'InvariantRule',
    'DanglingReferenceError',
    'EntityStore',
    'ActionEngine',
    'validate_all',
    'ValidationHarness',
    'RunReport',
]
