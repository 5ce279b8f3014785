"""
Stateful Sequence Tests
=======================

A hypothesis RuleBasedStateMachine drives the ActionEngine with actions
aimed at records that exist. After every step the checker must report
nothing; on failure hypothesis shrinks the step list to a minimal
counterexample.
"""

from hypothesis import settings, strategies as st
from hypothesis.stateful import RuleBasedStateMachine, invariant, precondition, rule

from storyloom.contracts.base import (
    TimelineId, CharacterId, MemoryId, EventId,
    Ability, RelationshipState, ViolationKind,
)
from storyloom.contracts.actions import (
    CreateCharacter, KillCharacter, ResurrectCharacter, TradeMemory,
    BranchTimeline, ViolateCausality, GrantKnowledge, ChangeRelationship,
    CreateWitnessedMemory, ForgeMemory, InstallMemory, GrantAbility,
    PerceiveAcrossTimelines, AddGoal, AppraiseBelief, DecayEmotions,
)
from storyloom.core import ActionEngine
from storyloom.invariants import validate_all
from storyloom.store import EntityStore

from ..strategies import beliefs, flags, goals, mechanisms, names, probability, unit


class NarrativeMachine(RuleBasedStateMachine):

    def __init__(self):
        super().__init__()
        self.engine = ActionEngine()
        self.store = EntityStore.with_root_timeline()
        self.rejections = 0

    # -------------------------------------------------------------------------
    # Pickers over live records
    # -------------------------------------------------------------------------

    def _timeline(self, data):
        return TimelineId(data.draw(st.integers(0, self.store.counts['timelines'] - 1)))

    def _character(self, data):
        return CharacterId(data.draw(st.integers(0, self.store.counts['characters'] - 1)))

    def _memory(self, data):
        return MemoryId(data.draw(st.integers(0, self.store.counts['memories'] - 1)))

    def _event(self, data):
        return EventId(data.draw(st.integers(0, self.store.counts['events'] - 1)))

    def _apply(self, action):
        outcome = self.engine.apply(self.store, action)
        if outcome.is_success:
            self.store = outcome.store
        else:
            self.rejections += 1

    def _has(self, kind):
        return self.store.counts[kind] > 0

    def _can_remember(self):
        # Events can exist before any character does (a branch of an empty world).
        return self._has('events') and self._has('characters')

    # -------------------------------------------------------------------------
    # Rules
    # -------------------------------------------------------------------------

    @rule(name=names, data=st.data())
    def create_character(self, name, data):
        self._apply(CreateCharacter(name, self._timeline(data)))

    @precondition(lambda self: self._has('characters'))
    @rule(data=st.data())
    def kill(self, data):
        self._apply(KillCharacter(self._character(data), self._timeline(data)))

    @precondition(lambda self: self._has('characters'))
    @rule(mechanism=mechanisms, extra_causal=st.booleans(), data=st.data())
    def resurrect(self, mechanism, extra_causal, data):
        self._apply(ResurrectCharacter(self._character(data), self._timeline(data), mechanism, extra_causal))

    @rule(data=st.data())
    def branch(self, data):
        self._apply(BranchTimeline(self._timeline(data)))

    @precondition(lambda self: self._has('characters'))
    @rule(flag=flags, data=st.data())
    def grant_knowledge(self, flag, data):
        self._apply(GrantKnowledge(self._character(data), flag, self._timeline(data)))

    @precondition(lambda self: self._has('characters'))
    @rule(state=st.sampled_from(RelationshipState), data=st.data())
    def change_relationship(self, state, data):
        self._apply(ChangeRelationship(
            self._character(data), self._character(data), state, self._timeline(data)
        ))

    @precondition(lambda self: self._can_remember())
    @rule(data=st.data())
    def witness(self, data):
        self._apply(CreateWitnessedMemory(self._character(data), self._event(data), self._timeline(data)))

    @precondition(lambda self: self._can_remember())
    @rule(forger=names, data=st.data())
    def forge(self, forger, data):
        self._apply(ForgeMemory(forger, self._character(data), self._event(data), self._timeline(data)))

    @precondition(lambda self: self._can_remember())
    @rule(mechanism=mechanisms, data=st.data())
    def install(self, mechanism, data):
        self._apply(InstallMemory(self._character(data), self._event(data), mechanism, self._timeline(data)))

    @precondition(lambda self: self._has('memories'))
    @rule(mechanism=mechanisms, data=st.data())
    def trade(self, mechanism, data):
        memory = self._memory(data)
        holder = self.store.memory(memory).holder
        self._apply(TradeMemory(memory, holder, self._character(data), mechanism, self._timeline(data)))

    @precondition(lambda self: self._has('events'))
    @rule(kind=st.sampled_from(ViolationKind), mechanism=mechanisms, data=st.data())
    def violate_causality(self, kind, mechanism, data):
        participants = frozenset(
            self._character(data) for _ in range(data.draw(st.integers(0, 2)))
        ) if self._has('characters') else frozenset()
        targets = tuple(self._event(data) for _ in range(data.draw(st.integers(0, 2))))
        self._apply(ViolateCausality(self._timeline(data), kind, mechanism, participants, targets))

    @precondition(lambda self: self._has('characters'))
    @rule(ability=st.sampled_from(Ability), data=st.data())
    def grant_ability(self, ability, data):
        self._apply(GrantAbility(self._character(data), ability, self._timeline(data)))

    @precondition(lambda self: self._has('characters'))
    @rule(flag=flags, data=st.data())
    def perceive(self, flag, data):
        self._apply(PerceiveAcrossTimelines(
            self._character(data), flag, self._timeline(data), self._timeline(data)
        ))

    @precondition(lambda self: self._has('characters'))
    @rule(goal=goals, utility=unit, maintenance=st.booleans(), data=st.data())
    def add_goal(self, goal, utility, maintenance, data):
        self._apply(AddGoal(self._character(data), goal, utility, maintenance, self._timeline(data)))

    @precondition(lambda self: self._has('characters'))
    @rule(belief=beliefs(), data=st.data())
    def appraise(self, belief, data):
        self._apply(AppraiseBelief(self._character(data), belief, self._timeline(data)))

    @precondition(lambda self: self._has('characters'))
    @rule(factor=probability, data=st.data())
    def decay(self, factor, data):
        self._apply(DecayEmotions(self._character(data), factor, self._timeline(data)))

    # -------------------------------------------------------------------------
    # Invariants
    # -------------------------------------------------------------------------

    @invariant()
    def no_violations(self):
        violations = validate_all(self.store)
        assert violations == [], "\n".join(f"{v.rule.name}: {v.message}" for v in violations)


NarrativeMachine.TestCase.settings = settings(max_examples=40, stateful_step_count=30, deadline=None)
TestNarrativeMachine = NarrativeMachine.TestCase


class TestMachinePreconditions:

    def test_branch_of_empty_world_has_no_memory_targets(self):
        machine = NarrativeMachine()
        machine._apply(BranchTimeline(TimelineId(0)))

        assert machine.store.counts['events'] == 1
        assert machine.store.counts['characters'] == 0
        assert not machine._can_remember()
        machine.no_violations()
