"""
Action Outcomes
===============

What the ActionEngine returns: either a new store plus the event it
appended, or a typed rejection with the input store untouched.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional, Tuple, Union

from .base import TimelineId, CharacterId, MemoryId, EventId, Rejection
from .effects import Effect

if TYPE_CHECKING:
    from ..store import EntityStore


CreatedId = Union[TimelineId, CharacterId, MemoryId]


@dataclass(frozen=True)
class ActionOutcome:
    """
    Result of applying one action.
    Either contains an event OR a rejection, never both.
    """
    store: EntityStore
    event_id: Optional[EventId] = None
    effects: Tuple[Effect, ...] = field(default_factory=tuple)
    created_id: Optional[CreatedId] = None
    rejection: Optional[Rejection] = None

    @property
    def is_success(self) -> bool:
        return self.rejection is None

    @property
    def is_failure(self) -> bool:
        return self.rejection is not None

    @staticmethod
    def success(
        store: EntityStore,
        event_id: EventId,
        effects: Tuple[Effect, ...],
        created_id: Optional[CreatedId] = None
    ) -> ActionOutcome:
        return ActionOutcome(
            store=store,
            event_id=event_id,
            effects=effects,
            created_id=created_id
        )

    @staticmethod
    def failure(store: EntityStore, rejection: Rejection) -> ActionOutcome:
        return ActionOutcome(store=store, rejection=rejection)
