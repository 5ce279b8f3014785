"""
Core Action Engine

RESPONSIBILITY: The only component that changes entities
ALLOWED INPUTS: An EntityStore snapshot and one action record
OUTPUTS: ActionOutcome (new store + event + effects, or a Rejection)

WHAT THIS LAYER MUST NOT DO:
============================
- Mutate the store it was given (it works on a copy)
- Partially apply an action
- Silently ignore a failed precondition
- Decide whether a rejection ends a run (harness policy)
- Evaluate invariants (invariants layer's job)

BOUNDARY ENFORCEMENT:
=====================
- Every precondition is checked against the INPUT store before any write
- Every successful action appends exactly one event
- Record updates are driven by the appended effects, dispatched exhaustively
- Unknown references produce a Rejection; a DanglingReferenceError from
  the store therefore always means a bug here
"""

from __future__ import annotations
from dataclasses import replace
from typing import Callable, Dict, Iterable, Optional, Tuple
import logging
import math

from ..contracts.base import (
    TimelineId, CharacterId, EventId,
    Ability, CausalityViolation, ViolationKind,
    Rejection, RejectionCode, Witnessed, Traded, Forged, Installed,
)
from ..contracts.effects import (
    Effect, CharacterIntroduced, CharacterDeath, CharacterResurrection,
    RelationshipChange, KnowledgeGained, MemoryCreated, MemoryTransfer,
    AbilityGranted, TimelineBranch, RetroactiveInfluence,
    GoalAdded, BeliefAppraised, EmotionsDecayed,
)
from ..contracts.actions import (
    Action, CreateCharacter, KillCharacter, ResurrectCharacter, TradeMemory,
    BranchTimeline, ViolateCausality, GrantKnowledge, ChangeRelationship,
    CreateWitnessedMemory, ForgeMemory, InstallMemory, GrantAbility,
    PerceiveAcrossTimelines, AddGoal, AppraiseBelief, DecayEmotions,
)
from ..contracts.outcomes import ActionOutcome
from ..store import EntityStore
from ..temporal.graph import TimelineGraph, full_history
from ..temporal.derivation import liveness

logger = logging.getLogger(__name__)

FORGED_FIDELITY = 0.5


class PreconditionFailed(Exception):
    """Raised inside the engine to abort a check; surfaced as a Rejection."""

    def __init__(self, rejection: Rejection):
        super().__init__(rejection.message)
        self.rejection = rejection


def _reject(code: RejectionCode, message: str, **context: object) -> PreconditionFailed:
    rejection = Rejection(code=code, message=message)
    for key, value in context.items():
        rejection = rejection.with_context(key, str(value))
    return PreconditionFailed(rejection)


# =============================================================================
# PRECONDITION HELPERS (read-only against the input store)
# =============================================================================

def _require_timeline(store: EntityStore, timeline: TimelineId) -> None:
    if not store.has_timeline(timeline):
        raise _reject(RejectionCode.UNKNOWN_TIMELINE, f"{timeline} does not exist", timeline=timeline)


def _require_character(store: EntityStore, character: CharacterId) -> None:
    if not store.has_character(character):
        raise _reject(RejectionCode.UNKNOWN_CHARACTER, f"{character} does not exist", character=character)


def _require_event(store: EntityStore, event: EventId) -> None:
    if not store.has_event(event):
        raise _reject(RejectionCode.UNKNOWN_EVENT, f"{event} does not exist", event=event)


def _require_text(value: str, code: RejectionCode, what: str) -> None:
    if not value or not value.strip():
        raise _reject(code, f"{what} must be non-empty")


def _require_alive(store: EntityStore, character: CharacterId, timeline: TimelineId) -> None:
    _require_character(store, character)
    state = liveness(store, character, timeline)
    if state is None:
        raise _reject(
            RejectionCode.CHARACTER_ABSENT,
            f"{character} was never introduced in {timeline}",
            character=character, timeline=timeline
        )
    if not state:
        raise _reject(
            RejectionCode.CHARACTER_DEAD,
            f"{character} is dead in {timeline}",
            character=character, timeline=timeline
        )


def _require_receptive(store: EntityStore, character: CharacterId) -> None:
    if store.character(character).has_ability(Ability.MEMORY_IMMUNITY):
        raise _reject(
            RejectionCode.MEMORY_IMMUNE,
            f"{character} is immune to memory manipulation",
            character=character
        )


def _require_range(value: float, low: float, high: float, what: str, low_open: bool = False) -> None:
    if not isinstance(value, (int, float)) or math.isnan(value):
        raise _reject(RejectionCode.OUT_OF_RANGE, f"{what} must be a number", value=value)
    below = value <= low if low_open else value < low
    if below or value > high:
        bracket = "(" if low_open else "["
        raise _reject(
            RejectionCode.OUT_OF_RANGE,
            f"{what} must lie in {bracket}{low}, {high}]",
            value=value
        )


class ActionEngine:
    """
    Pure state transition: (store, action) -> ActionOutcome.

    Each action variant maps to a (check, apply) pair. check() only reads
    the input store and raises PreconditionFailed; apply() runs against a
    private copy and returns the new event id plus what it created.
    """

    def __init__(self):
        self._handlers: Dict[type, Tuple[Callable, Callable]] = {
            CreateCharacter: (self._check_create_character, self._apply_create_character),
            KillCharacter: (self._check_kill, self._apply_kill),
            ResurrectCharacter: (self._check_resurrect, self._apply_resurrect),
            TradeMemory: (self._check_trade_memory, self._apply_trade_memory),
            BranchTimeline: (self._check_branch, self._apply_branch),
            ViolateCausality: (self._check_violate_causality, self._apply_violate_causality),
            GrantKnowledge: (self._check_grant_knowledge, self._apply_grant_knowledge),
            ChangeRelationship: (self._check_change_relationship, self._apply_change_relationship),
            CreateWitnessedMemory: (self._check_witnessed_memory, self._apply_witnessed_memory),
            ForgeMemory: (self._check_forge_memory, self._apply_forge_memory),
            InstallMemory: (self._check_install_memory, self._apply_install_memory),
            GrantAbility: (self._check_grant_ability, self._apply_grant_ability),
            PerceiveAcrossTimelines: (self._check_perceive, self._apply_perceive),
            AddGoal: (self._check_add_goal, self._apply_add_goal),
            AppraiseBelief: (self._check_appraise, self._apply_appraise),
            DecayEmotions: (self._check_decay, self._apply_decay),
        }

    def apply(self, store: EntityStore, action: Action) -> ActionOutcome:
        """
        Apply one action.

        On success the outcome holds a NEW store; on rejection it holds the
        input store, untouched.
        """
        handler = self._handlers.get(type(action))
        if handler is None:
            raise TypeError(f"Unknown action variant: {type(action).__name__}")
        check, apply = handler

        try:
            check(store, action)
        except PreconditionFailed as failure:
            rejection = failure.rejection.with_context("action", type(action).__name__)
            logger.debug("Rejected %s: %s", type(action).__name__, rejection.message)
            return ActionOutcome.failure(store, rejection)

        working = store.copy()
        event_id, created = apply(working, action)
        event = working.event(event_id)
        logger.debug("Applied %s as %s in %s", type(action).__name__, event_id, event.timeline)
        return ActionOutcome.success(working, event_id, event.effects, created)

    # =========================================================================
    # RECORDING (the single write path)
    # =========================================================================

    def _record(
        self,
        store: EntityStore,
        timeline: TimelineId,
        participants: Iterable[CharacterId],
        effects: Tuple[Effect, ...],
        violation: Optional[CausalityViolation] = None,
        description: str = ""
    ) -> EventId:
        """Append the event, then bring records in line with its effects."""
        event_id = store.append_event(timeline, participants, effects, violation, description)
        for effect in effects:
            self._apply_effect(store, timeline, effect)
        return event_id

    def _apply_effect(self, store: EntityStore, timeline: TimelineId, effect: Effect) -> None:
        if isinstance(effect, RelationshipChange):
            a = store.character(effect.character_a)
            b = store.character(effect.character_b)
            store.replace_character(a.with_relationship(timeline, b.character_id, effect.new_state))
            store.replace_character(b.with_relationship(timeline, a.character_id, effect.new_state))
        elif isinstance(effect, KnowledgeGained):
            character = store.character(effect.character)
            store.replace_character(character.with_knowledge(timeline, effect.flag))
        elif isinstance(effect, MemoryTransfer):
            memory = store.memory(effect.memory)
            giver = store.character(effect.from_character)
            receiver = store.character(effect.to_character)
            store.replace_character(giver.without_memory(memory.memory_id))
            store.replace_character(receiver.with_memory(memory.memory_id))
            store.replace_memory(replace(
                memory,
                holder=receiver.character_id,
                provenance=Traded(from_character=giver.character_id, mechanism=effect.mechanism)
            ))
        elif isinstance(effect, AbilityGranted):
            character = store.character(effect.character)
            store.replace_character(character.with_ability(effect.ability))
        elif isinstance(effect, (CharacterIntroduced, CharacterDeath, CharacterResurrection,
                                 MemoryCreated, TimelineBranch, RetroactiveInfluence,
                                 GoalAdded, BeliefAppraised, EmotionsDecayed)):
            # Derived from history or already written by the store
            pass
        else:
            raise TypeError(f"Unknown effect variant: {type(effect).__name__}")

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def _check_create_character(self, store: EntityStore, action: CreateCharacter) -> None:
        _require_text(action.name, RejectionCode.EMPTY_NAME, "Character name")
        _require_timeline(store, action.timeline)

    def _apply_create_character(self, store: EntityStore, action: CreateCharacter):
        character = store.create_character(action.name, action.timeline)
        event_id = self._record(
            store, action.timeline, {character},
            (CharacterIntroduced(character),),
            description=f"{action.name} enters the story"
        )
        return event_id, character

    def _check_kill(self, store: EntityStore, action: KillCharacter) -> None:
        _require_timeline(store, action.timeline)
        _require_alive(store, action.character, action.timeline)

    def _apply_kill(self, store: EntityStore, action: KillCharacter):
        event_id = self._record(
            store, action.timeline, {action.character},
            (CharacterDeath(action.character),),
            description=f"{store.character(action.character).name} dies"
        )
        return event_id, None

    def _check_resurrect(self, store: EntityStore, action: ResurrectCharacter) -> None:
        _require_timeline(store, action.timeline)
        _require_character(store, action.character)
        _require_text(action.mechanism, RejectionCode.EMPTY_MECHANISM, "Resurrection mechanism")
        state = liveness(store, action.character, action.timeline)
        if state is None:
            raise _reject(
                RejectionCode.CHARACTER_ABSENT,
                f"{action.character} was never introduced in {action.timeline}",
                character=action.character, timeline=action.timeline
            )
        if state:
            raise _reject(
                RejectionCode.CHARACTER_ALIVE,
                f"{action.character} is not dead in {action.timeline}",
                character=action.character, timeline=action.timeline
            )

    def _apply_resurrect(self, store: EntityStore, action: ResurrectCharacter):
        marker = None
        if action.extra_causal:
            marker = CausalityViolation(ViolationKind.RETROACTIVE_CHANGE, action.mechanism)
        event_id = self._record(
            store, action.timeline, {action.character},
            (CharacterResurrection(action.character, action.mechanism),),
            violation=marker,
            description=f"{store.character(action.character).name} returns via {action.mechanism}"
        )
        return event_id, None

    # =========================================================================
    # MEMORY
    # =========================================================================

    def _check_trade_memory(self, store: EntityStore, action: TradeMemory) -> None:
        _require_timeline(store, action.timeline)
        if not store.has_memory(action.memory):
            raise _reject(RejectionCode.UNKNOWN_MEMORY, f"{action.memory} does not exist", memory=action.memory)
        _require_character(store, action.from_character)
        _require_character(store, action.to_character)
        if store.memory(action.memory).holder != action.from_character:
            raise _reject(
                RejectionCode.NOT_HOLDER,
                f"{action.memory} is not held by {action.from_character}",
                memory=action.memory, holder=store.memory(action.memory).holder
            )
        if action.from_character == action.to_character:
            raise _reject(RejectionCode.SAME_CHARACTER, "A memory cannot be traded to its holder")
        _require_text(action.mechanism, RejectionCode.EMPTY_MECHANISM, "Trade mechanism")
        _require_alive(store, action.from_character, action.timeline)
        _require_alive(store, action.to_character, action.timeline)
        _require_receptive(store, action.to_character)

    def _apply_trade_memory(self, store: EntityStore, action: TradeMemory):
        event_id = self._record(
            store, action.timeline, {action.from_character, action.to_character},
            (MemoryTransfer(action.memory, action.from_character, action.to_character, action.mechanism),),
            description=f"{action.memory} traded via {action.mechanism}"
        )
        return event_id, None

    def _check_witnessed_memory(self, store: EntityStore, action: CreateWitnessedMemory) -> None:
        _require_timeline(store, action.timeline)
        _require_event(store, action.event)
        _require_alive(store, action.character, action.timeline)
        if action.event not in full_history(store, action.timeline):
            raise _reject(
                RejectionCode.EVENT_NOT_IN_HISTORY,
                f"{action.event} is not in the history of {action.timeline}",
                event=action.event, timeline=action.timeline
            )
        if action.character not in store.event(action.event).participants:
            raise _reject(
                RejectionCode.NOT_A_PARTICIPANT,
                f"{action.character} did not take part in {action.event}",
                character=action.character, event=action.event
            )

    def _apply_witnessed_memory(self, store: EntityStore, action: CreateWitnessedMemory):
        provenance = Witnessed(action.character)
        memory = store.create_memory(action.event, action.character, provenance)
        event_id = self._record(
            store, action.timeline, {action.character},
            (MemoryCreated(memory, action.character, provenance),),
            description=f"{store.character(action.character).name} remembers {action.event}"
        )
        return event_id, memory

    def _check_forge_memory(self, store: EntityStore, action: ForgeMemory) -> None:
        _require_timeline(store, action.timeline)
        _require_text(action.forger, RejectionCode.EMPTY_NAME, "Forger")
        _require_event(store, action.event)
        _require_alive(store, action.holder, action.timeline)
        _require_receptive(store, action.holder)

    def _apply_forge_memory(self, store: EntityStore, action: ForgeMemory):
        provenance = Forged(action.forger)
        memory = store.create_memory(action.event, action.holder, provenance, FORGED_FIDELITY)
        event_id = self._record(
            store, action.timeline, {action.holder},
            (MemoryCreated(memory, action.holder, provenance),),
            description=f"{action.forger} forges a memory of {action.event}"
        )
        return event_id, memory

    def _check_install_memory(self, store: EntityStore, action: InstallMemory) -> None:
        _require_timeline(store, action.timeline)
        _require_text(action.mechanism, RejectionCode.EMPTY_MECHANISM, "Install mechanism")
        _require_event(store, action.event)
        _require_alive(store, action.holder, action.timeline)
        _require_receptive(store, action.holder)

    def _apply_install_memory(self, store: EntityStore, action: InstallMemory):
        provenance = Installed(action.mechanism)
        memory = store.create_memory(action.event, action.holder, provenance)
        event_id = self._record(
            store, action.timeline, {action.holder},
            (MemoryCreated(memory, action.holder, provenance),),
            description=f"Memory of {action.event} installed via {action.mechanism}"
        )
        return event_id, memory

    # =========================================================================
    # TIMELINES AND CAUSALITY
    # =========================================================================

    def _check_branch(self, store: EntityStore, action: BranchTimeline) -> None:
        _require_timeline(store, action.parent)

    def _apply_branch(self, store: EntityStore, action: BranchTimeline):
        """
        Append the branch event to the parent, then fork at it.

        The fork point is the parent's tail, so copying the parent's current
        knowledge and relationship entries gives their value at the fork.
        """
        graph = TimelineGraph(store)
        child_id = store.next_timeline_id()
        event_id = self._record(
            store, action.parent, frozenset(),
            (TimelineBranch(child_id),),
            description=f"{action.parent} splits into {child_id}"
        )
        graph.branch(action.parent, event_id)
        for character in store.characters():
            if character.knowledge_in(action.parent) or character.relationships_in(action.parent):
                store.replace_character(character.with_timeline_copy(action.parent, child_id))
        return event_id, child_id

    def _check_violate_causality(self, store: EntityStore, action: ViolateCausality) -> None:
        _require_timeline(store, action.timeline)
        _require_text(action.mechanism, RejectionCode.EMPTY_MECHANISM, "Causality violation mechanism")
        for character in sorted(action.participants):
            _require_alive(store, character, action.timeline)
        history = full_history(store, action.timeline)
        for target in action.retroactive_targets:
            _require_event(store, target)
            if target not in history:
                raise _reject(
                    RejectionCode.EVENT_NOT_IN_HISTORY,
                    f"{target} is not in the history of {action.timeline}",
                    event=target, timeline=action.timeline
                )

    def _apply_violate_causality(self, store: EntityStore, action: ViolateCausality):
        effects = tuple(RetroactiveInfluence(target) for target in dict.fromkeys(action.retroactive_targets))
        event_id = self._record(
            store, action.timeline, action.participants, effects,
            violation=CausalityViolation(action.kind, action.mechanism),
            description=f"Causality bent by {action.mechanism}"
        )
        return event_id, None

    # =========================================================================
    # KNOWLEDGE, RELATIONSHIPS, ABILITIES
    # =========================================================================

    def _check_grant_knowledge(self, store: EntityStore, action: GrantKnowledge) -> None:
        _require_timeline(store, action.timeline)
        _require_text(action.flag, RejectionCode.EMPTY_FLAG, "Knowledge flag")
        _require_alive(store, action.character, action.timeline)

    def _apply_grant_knowledge(self, store: EntityStore, action: GrantKnowledge):
        event_id = self._record(
            store, action.timeline, {action.character},
            (KnowledgeGained(action.character, action.flag, action.timeline),),
            description=f"{store.character(action.character).name} learns {action.flag}"
        )
        return event_id, None

    def _check_change_relationship(self, store: EntityStore, action: ChangeRelationship) -> None:
        _require_timeline(store, action.timeline)
        _require_character(store, action.character_a)
        _require_character(store, action.character_b)
        if action.character_a == action.character_b:
            raise _reject(
                RejectionCode.SAME_CHARACTER,
                "A character has no relationship with itself",
                character=action.character_a
            )
        _require_alive(store, action.character_a, action.timeline)
        _require_alive(store, action.character_b, action.timeline)

    def _apply_change_relationship(self, store: EntityStore, action: ChangeRelationship):
        event_id = self._record(
            store, action.timeline, {action.character_a, action.character_b},
            (RelationshipChange(action.character_a, action.character_b, action.new_state),),
            description=f"{action.character_a} and {action.character_b} become {action.new_state.value}"
        )
        return event_id, None

    def _check_grant_ability(self, store: EntityStore, action: GrantAbility) -> None:
        _require_timeline(store, action.timeline)
        _require_alive(store, action.character, action.timeline)
        if store.character(action.character).has_ability(action.ability):
            raise _reject(
                RejectionCode.ABILITY_ALREADY_HELD,
                f"{action.character} already has {action.ability.value}",
                character=action.character
            )

    def _apply_grant_ability(self, store: EntityStore, action: GrantAbility):
        event_id = self._record(
            store, action.timeline, {action.character},
            (AbilityGranted(action.character, action.ability),),
            description=f"{store.character(action.character).name} gains {action.ability.value}"
        )
        return event_id, None

    def _check_perceive(self, store: EntityStore, action: PerceiveAcrossTimelines) -> None:
        _require_timeline(store, action.source_timeline)
        _require_timeline(store, action.target_timeline)
        if action.source_timeline == action.target_timeline:
            raise _reject(
                RejectionCode.SAME_TIMELINE,
                "Perception needs two distinct timelines",
                timeline=action.source_timeline
            )
        _require_text(action.flag, RejectionCode.EMPTY_FLAG, "Knowledge flag")
        _require_alive(store, action.character, action.target_timeline)
        character = store.character(action.character)
        if not character.has_ability(Ability.TIMELINE_PERCEPTION):
            raise _reject(
                RejectionCode.MISSING_ABILITY,
                f"{action.character} cannot perceive other timelines",
                character=action.character
            )
        if action.flag not in character.knowledge_in(action.source_timeline):
            raise _reject(
                RejectionCode.FLAG_NOT_HELD,
                f"{action.character} does not know {action.flag!r} in {action.source_timeline}",
                character=action.character, timeline=action.source_timeline
            )

    def _apply_perceive(self, store: EntityStore, action: PerceiveAcrossTimelines):
        event_id = self._record(
            store, action.target_timeline, {action.character},
            (KnowledgeGained(action.character, action.flag, action.source_timeline),),
            description=f"{store.character(action.character).name} perceives {action.flag} "
                        f"across from {action.source_timeline}"
        )
        return event_id, None

    # =========================================================================
    # EMOTIONS
    # =========================================================================

    def _check_add_goal(self, store: EntityStore, action: AddGoal) -> None:
        _require_timeline(store, action.timeline)
        _require_text(action.goal, RejectionCode.EMPTY_NAME, "Goal name")
        _require_range(action.utility, -1.0, 1.0, "Goal utility")
        _require_alive(store, action.character, action.timeline)

    def _apply_add_goal(self, store: EntityStore, action: AddGoal):
        event_id = self._record(
            store, action.timeline, {action.character},
            (GoalAdded(action.character, action.goal, float(action.utility), action.is_maintenance),),
            description=f"{store.character(action.character).name} wants {action.goal}"
        )
        return event_id, None

    def _check_appraise(self, store: EntityStore, action: AppraiseBelief) -> None:
        _require_timeline(store, action.timeline)
        belief = action.belief
        _require_range(belief.likelihood, 0.0, 1.0, "Belief likelihood")
        if len(belief.affected_goals) != len(belief.goal_congruences):
            raise _reject(
                RejectionCode.MISALIGNED_BELIEF,
                "Each affected goal needs exactly one congruence",
                goals=len(belief.affected_goals), congruences=len(belief.goal_congruences)
            )
        for goal in belief.affected_goals:
            _require_text(goal, RejectionCode.EMPTY_NAME, "Goal name")
        for congruence in belief.goal_congruences:
            _require_range(congruence, -1.0, 1.0, "Goal congruence")
        if belief.causal_agent is not None:
            _require_character(store, belief.causal_agent)
        _require_alive(store, action.character, action.timeline)

    def _apply_appraise(self, store: EntityStore, action: AppraiseBelief):
        event_id = self._record(
            store, action.timeline, {action.character},
            (BeliefAppraised(action.character, action.belief),),
            description=f"{store.character(action.character).name} appraises a belief"
        )
        return event_id, None

    def _check_decay(self, store: EntityStore, action: DecayEmotions) -> None:
        _require_timeline(store, action.timeline)
        _require_range(action.factor, 0.0, 1.0, "Decay factor", low_open=True)
        _require_alive(store, action.character, action.timeline)

    def _apply_decay(self, store: EntityStore, action: DecayEmotions):
        event_id = self._record(
            store, action.timeline, {action.character},
            (EmotionsDecayed(action.character, float(action.factor)),),
            description=f"{store.character(action.character).name}'s feelings fade"
        )
        return event_id, None
