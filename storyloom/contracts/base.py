"""
Base Contracts and Shared Types

These are the foundational types used across all layers.
All types here are IMMUTABLE and represent pure data.
No behavior beyond small helpers, no side effects.

BOUNDARY ENFORCEMENT:
=====================
- This module is READ-ONLY from all layers
- Layers may import types but MUST NOT modify this module
- All types are frozen dataclasses for immutability guarantee
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Optional, Tuple, Union
from enum import Enum, auto


# =============================================================================
# IDENTITY TYPES (Immutable, allocated sequentially by the store)
# =============================================================================

@dataclass(frozen=True, order=True)
class TimelineId:
    """Stable timeline identifier. TimelineId(0) is the root timeline."""
    value: int

    def __str__(self) -> str:
        return f"Timeline#{self.value}"


@dataclass(frozen=True, order=True)
class CharacterId:
    """Stable character identifier."""
    value: int

    def __str__(self) -> str:
        return f"Char#{self.value}"


@dataclass(frozen=True, order=True)
class MemoryId:
    """Stable memory identifier."""
    value: int

    def __str__(self) -> str:
        return f"Memory#{self.value}"


@dataclass(frozen=True, order=True)
class EventId:
    """
    Stable event identifier.
    Event ids are global: a lower id was appended earlier, whatever its timeline.
    """
    value: int

    def __str__(self) -> str:
        return f"Event#{self.value}"


IDENTIFIER_TYPES = (TimelineId, CharacterId, MemoryId, EventId)


# =============================================================================
# WORLD ENUMERATIONS (Explicit, closed)
# =============================================================================

class Ability(Enum):
    """Abilities are global to a character, not scoped to a timeline."""
    TIMELINE_PERCEPTION = "timeline_perception"
    PRECOGNITION = "precognition"
    MEMORY_IMMUNITY = "memory_immunity"
    LOOP_MEMORY = "loop_memory"
    CAUSALITY_HACKING = "causality_hacking"


class RelationshipState(Enum):
    """
    Directed relationship value between two characters in one timeline.
    NEUTRAL is the value of any pair that was never changed.
    """
    HOSTILE = "hostile"
    DISTRUSTFUL = "distrustful"
    NEUTRAL = "neutral"
    TRUSTING = "trusting"
    FRIENDLY = "friendly"
    ALLIED = "allied"


class ViolationKind(Enum):
    """How an event breaks forward causality."""
    EFFECT_BEFORE_CAUSE = "effect_before_cause"
    RETROACTIVE_CHANGE = "retroactive_change"
    SUPERPOSITION = "superposition"


@dataclass(frozen=True)
class CausalityViolation:
    """
    Marker attached to an event that breaks forward causality.
    Only valid when it names the in-world mechanism ("Living Gate", "time weapon").
    """
    kind: ViolationKind
    mechanism: str

    @property
    def is_justified(self) -> bool:
        return bool(self.mechanism and self.mechanism.strip())


# =============================================================================
# MEMORY PROVENANCE (Closed union, every memory carries exactly one)
# =============================================================================

@dataclass(frozen=True)
class Witnessed:
    """Holder saw the recalled event. Valid only if `character` took part in it."""
    character: CharacterId


@dataclass(frozen=True)
class Traded:
    """Memory moved from another character through a named mechanism."""
    from_character: CharacterId
    mechanism: str


@dataclass(frozen=True)
class Forged:
    forger: str


@dataclass(frozen=True)
class Installed:
    mechanism: str


Provenance = Union[Witnessed, Traded, Forged, Installed]
PROVENANCE_TYPES = (Witnessed, Traded, Forged, Installed)


def provenance_justification(provenance: Provenance) -> Optional[str]:
    """
    Return the justification string a provenance must carry.

    Witnessed memories are justified by participation, not by a string,
    so they return None. Raises TypeError on an unknown variant.
    """
    if isinstance(provenance, Witnessed):
        return None
    if isinstance(provenance, Traded):
        return provenance.mechanism
    if isinstance(provenance, Forged):
        return provenance.forger
    if isinstance(provenance, Installed):
        return provenance.mechanism
    raise TypeError(f"Unknown provenance variant: {type(provenance).__name__}")


# =============================================================================
# ERROR STATES (Explicit, never silent)
# =============================================================================

class DanglingReferenceError(LookupError):
    """
    A record referenced an identifier the store does not hold.

    This is a bug in the caller (usually the ActionEngine), never an
    expected outcome of a run. It is not caught anywhere in the package.
    """


class RejectionCode(Enum):
    """
    Explicit precondition failures of the ActionEngine.
    No silent fallbacks - every rejection reason is enumerated.
    """
    # Unknown references
    UNKNOWN_TIMELINE = auto()
    UNKNOWN_CHARACTER = auto()
    UNKNOWN_MEMORY = auto()
    UNKNOWN_EVENT = auto()

    # Missing justification
    EMPTY_NAME = auto()
    EMPTY_MECHANISM = auto()
    EMPTY_FLAG = auto()

    # Per-timeline lifecycle
    CHARACTER_ABSENT = auto()
    CHARACTER_DEAD = auto()
    CHARACTER_ALIVE = auto()

    # Memory rules
    NOT_HOLDER = auto()
    NOT_A_PARTICIPANT = auto()
    MEMORY_IMMUNE = auto()

    # Structural
    SAME_CHARACTER = auto()
    SAME_TIMELINE = auto()
    EVENT_NOT_IN_HISTORY = auto()

    # Abilities and knowledge
    ABILITY_ALREADY_HELD = auto()
    MISSING_ABILITY = auto()
    FLAG_NOT_HELD = auto()

    # Emotional model
    OUT_OF_RANGE = auto()
    MISALIGNED_BELIEF = auto()


@dataclass(frozen=True)
class Rejection:
    """
    Immutable rejection of an action by the engine.
    Rejections are data, not exceptions - the harness decides what they mean.
    """
    code: RejectionCode
    message: str
    context: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)

    def with_context(self, key: str, value: str) -> Rejection:
        """Return new Rejection with additional context (immutable)."""
        return Rejection(
            code=self.code,
            message=self.message,
            context=self.context + ((key, value),)
        )


class InvariantRule(Enum):
    """
    The fixed battery of checker rules.
    Values are the rule numbers; reports are ordered by them.
    """
    MEMORY_CONSISTENCY = 1
    DEATH_FINALITY = 2
    CAUSALITY_JUSTIFICATION = 3
    BRANCH_CONSISTENCY = 4
    RELATIONSHIP_PERSISTENCE = 5
    KNOWLEDGE_PROPAGATION = 6
    EMOTIONAL_BOUNDS = 7


@dataclass(frozen=True)
class Violation:
    """
    Structured report of a broken invariant.

    entity_id is the rendered identifier of the offending record
    ("Char#3", "Event#7"); event_index is the offending event's position
    in its timeline's full history when one applies.
    """
    rule: InvariantRule
    entity_id: str
    event_index: Optional[int]
    timeline: Optional[TimelineId]
    message: str
    context: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)

    def with_context(self, key: str, value: str) -> Violation:
        """Return new Violation with additional context (immutable)."""
        return Violation(
            rule=self.rule,
            entity_id=self.entity_id,
            event_index=self.event_index,
            timeline=self.timeline,
            message=self.message,
            context=self.context + ((key, value),)
        )

    @property
    def sort_key(self) -> Tuple[int, int, str, int, int, str]:
        kind, _, number = self.entity_id.partition("#")
        return (
            self.rule.value,
            -1 if self.event_index is None else self.event_index,
            kind,
            int(number) if number.isdigit() else -1,
            -1 if self.timeline is None else self.timeline.value,
            self.message,
        )
