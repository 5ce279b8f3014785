"""
Invariant Checker
=================

Validates a store snapshot against the fixed battery of narrative rules.

GUARANTEES:
- Every rule is evaluated unless first_only is set
- Output is ordered by rule number, then event position, then entity id
- The store is never mutated
- Identical snapshots produce identical violation lists

WHAT THIS LAYER MUST NOT DO:
- Catch DanglingReferenceError (a dangling id is an engine bug)
- Reject actions (that is the Action Engine's job)
"""

from __future__ import annotations
from typing import Iterable, List, Optional
import logging

from ..contracts.base import InvariantRule, Violation
from ..store import EntityStore
from ..core.causal import CausalIndex
from .rules import (
    RULES, SnapshotView,
    check_memory_consistency, check_death_finality,
    check_causality_justification, check_branch_consistency,
    check_relationship_persistence, check_knowledge_propagation,
    check_emotional_bounds,
)

logger = logging.getLogger(__name__)


def validate_all(
    store: EntityStore,
    first_only: bool = False,
    rules: Optional[Iterable[InvariantRule]] = None,
    index: Optional[CausalIndex] = None
) -> List[Violation]:
    """
    Run the rules over a snapshot and return every violation found.

    Args:
        store: Snapshot to validate
        first_only: Stop at the first rule that reports anything and
            return only its first violation
        rules: Subset of rules to evaluate (all when None)
        index: Causal index already in step with the store, reused
            instead of being rebuilt

    Returns:
        Violations sorted by Violation.sort_key
    """
    selected = sorted(set(rules) if rules is not None else set(RULES), key=lambda r: r.value)
    view = SnapshotView(store, index)
    violations: List[Violation] = []

    for rule in selected:
        found = RULES[rule](store, view)
        if found and first_only:
            first = sorted(found, key=lambda v: v.sort_key)[0]
            logger.debug("First violation under %s: %s", rule.name, first.message)
            return [first]
        violations.extend(found)

    violations.sort(key=lambda v: v.sort_key)
    if violations:
        logger.debug("Snapshot has %d violation(s)", len(violations))
    return violations


__all__ = [
    "validate_all",
    "SnapshotView",
    "RULES",
    "check_memory_consistency",
    "check_death_finality",
    "check_causality_justification",
    "check_branch_consistency",
    "check_relationship_persistence",
    "check_knowledge_propagation",
    "check_emotional_bounds",
]
