"""
Validation Harness
==================

Feeds an ordered action sequence through the Action Engine and validates
the resulting snapshot after every applied action.

HARNESS CONTRACT:
=================
1. Start from a store with the root timeline (or a supplied store)
2. Apply each action in order; record its event id or rejection
3. After each applied action run validate_all()
4. Stop at the first non-empty result and report
   (failing_action_index, action prefix, violations)

Rejections are recorded and skipped unless HarnessConfig.stop_on_rejection
is set. DanglingReferenceError and TypeError are engine bugs and are never
caught here.

Minimization is not done here: hypothesis shrinks failing sequences by
re-running them through this same harness.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple
import logging

from .config import EngineConfig
from .contracts.base import EventId, Rejection, Violation
from .contracts.actions import Action
from .contracts.effects import Effect
from .contracts.outcomes import CreatedId
from .core import ActionEngine
from .core.causal import CausalIndex
from .invariants import validate_all
from .observability import ObservabilityEngine
from .store import EntityStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StepRecord:
    """One consumed action and what came of it."""
    index: int
    action: Action
    event_id: Optional[EventId] = None
    effects: Tuple[Effect, ...] = field(default_factory=tuple)
    created_id: Optional[CreatedId] = None
    rejection: Optional[Rejection] = None

    @property
    def applied(self) -> bool:
        return self.rejection is None


@dataclass(frozen=True)
class RunReport:
    """
    Outcome of one validation run.

    failing_action_index is the index of the action after which the run
    stopped (a violation, or a rejection under stop_on_rejection), or
    None when every action was consumed cleanly.
    """
    actions: Tuple[Action, ...]
    steps: Tuple[StepRecord, ...]
    failing_action_index: Optional[int]
    violations: Tuple[Violation, ...]
    store: EntityStore
    state_hash: str
    stopped_on_rejection: bool = False

    @property
    def passed(self) -> bool:
        return self.failing_action_index is None

    @property
    def prefix(self) -> Tuple[Action, ...]:
        """Actions up to and including the failing one (all of them on a pass)."""
        if self.failing_action_index is None:
            return self.actions
        return self.actions[:self.failing_action_index + 1]


class ValidationHarness:
    """
    Runs action sequences with a validation pass after every step.

    Each run owns a fresh store; runs share no mutable state apart from
    the observability trail.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        engine: Optional[ActionEngine] = None
    ):
        self._config = config or EngineConfig()
        self._engine = engine or ActionEngine()
        self._observability = ObservabilityEngine(self._config.observability)

    @property
    def observability(self) -> ObservabilityEngine:
        return self._observability

    def run(self, actions: Sequence[Action], store: Optional[EntityStore] = None) -> RunReport:
        """Apply `actions` in order, validating after each applied one."""
        actions = tuple(actions)
        store = store if store is not None else EntityStore.with_root_timeline()
        index = CausalIndex.build(store)
        steps: List[StepRecord] = []
        harness = self._config.harness

        self._observability.run_started(len(actions))

        for i, action in enumerate(actions):
            name = type(action).__name__
            outcome = self._engine.apply(store, action)

            if outcome.is_failure:
                steps.append(StepRecord(index=i, action=action, rejection=outcome.rejection))
                self._observability.action_rejected(i, name, outcome.rejection)
                if harness.stop_on_rejection:
                    return self._finish(actions, steps, i, [], store, stopped_on_rejection=True)
                if not harness.validate_after_rejection:
                    continue
            else:
                before = store.counts['events']
                store = outcome.store
                for value in range(before, store.counts['events']):
                    index.add_event(store, EventId(value))
                steps.append(StepRecord(
                    index=i,
                    action=action,
                    event_id=outcome.event_id,
                    effects=outcome.effects,
                    created_id=outcome.created_id
                ))
                self._observability.action_applied(i, name, str(outcome.event_id))

            violations = self._validate(store, index)
            if violations:
                self._observability.violations_detected(i, violations)
                return self._finish(actions, steps, i, violations, store)

        return self._finish(actions, steps, None, [], store)

    def verify_determinism(self, actions: Sequence[Action]) -> Tuple[bool, Optional[str]]:
        """
        Run the sequence twice and compare outcomes.

        Returns (is_deterministic, difference_description).
        """
        first = self.run(actions)
        second = self.run(actions)

        if first.state_hash != second.state_hash:
            return (False, f"Hash mismatch: {first.state_hash} != {second.state_hash}")

        if first.violations != second.violations:
            return (False, f"Violation mismatch: {len(first.violations)} != {len(second.violations)}")

        if first.failing_action_index != second.failing_action_index:
            return (False, f"Failing index mismatch: {first.failing_action_index} != {second.failing_action_index}")

        return (True, None)

    def _validate(self, store: EntityStore, index: CausalIndex) -> List[Violation]:
        checker = self._config.checker
        return validate_all(
            store,
            first_only=checker.first_violation_only,
            rules=checker.enabled_rules,
            index=index
        )

    def _finish(
        self,
        actions: Tuple[Action, ...],
        steps: List[StepRecord],
        failing_index: Optional[int],
        violations: List[Violation],
        store: EntityStore,
        stopped_on_rejection: bool = False
    ) -> RunReport:
        report = RunReport(
            actions=actions,
            steps=tuple(steps),
            failing_action_index=failing_index,
            violations=tuple(violations),
            store=store,
            state_hash=store.compute_state_hash(),
            stopped_on_rejection=stopped_on_rejection
        )
        self._observability.run_finished(len(steps), report.passed)
        if not report.passed:
            logger.info("Run stopped at action %d", failing_index)
        return report
