"""
Emotional Appraisal
===================

Goal-based appraisal of beliefs into emotions, summarized as a
Pleasure/Arousal/Dominance (PAD) vector.

MODEL:
- Each goal has a utility in [-1, 1] and a likelihood (0.5 at creation)
- Appraising a belief moves goal likelihoods and emits emotions whose
  intensity is |utility * delta_likelihood|
- PAD = gain-transformed sum of intensity-weighted emotion vectors;
  the transform x -> g|x| / (g|x| + 1) keeps every component in (-1, 1)
- Decay multiplies intensities and drops those at or below 0.001

Emotional state is derived per (character, timeline) from GoalAdded,
BeliefAppraised and EmotionsDecayed effects, never stored.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional
import numpy as np

from ..contracts.base import CharacterId, TimelineId
from ..contracts.effects import (
    Belief, GoalAdded, BeliefAppraised, EmotionsDecayed, EMOTIONAL_EFFECTS,
)
from ..store import EntityStore
from ..temporal.derivation import history_events


class EmotionType(Enum):
    DISTRESS = "distress"
    FEAR = "fear"
    HOPE = "hope"
    JOY = "joy"
    SATISFACTION = "satisfaction"
    FEAR_CONFIRMED = "fear-confirmed"
    DISAPPOINTMENT = "disappointment"
    RELIEF = "relief"
    HAPPY_FOR = "happy-for"
    RESENTMENT = "resentment"
    PITY = "pity"
    GLOATING = "gloating"
    GRATITUDE = "gratitude"
    ANGER = "anger"
    GRATIFICATION = "gratification"
    REMORSE = "remorse"


# Rows follow EmotionType declaration order: (pleasure, arousal, dominance)
PAD_TABLE = np.array([
    [-0.61, 0.28, -0.36],
    [-0.64, 0.60, -0.43],
    [0.51, 0.23, 0.14],
    [0.76, 0.48, 0.35],
    [0.87, 0.20, 0.62],
    [-0.61, 0.06, -0.32],
    [-0.61, -0.15, -0.29],
    [0.29, -0.19, -0.28],
    [0.64, 0.35, 0.25],
    [-0.35, 0.35, 0.29],
    [-0.52, 0.02, -0.21],
    [-0.45, 0.48, 0.42],
    [0.64, 0.16, -0.21],
    [-0.51, 0.59, 0.25],
    [0.69, 0.57, 0.63],
    [-0.57, 0.28, -0.34],
])

_INDEX = {emotion: row for row, emotion in enumerate(EmotionType)}
_EPSILON = np.finfo(float).eps
DECAY_THRESHOLD = 0.001


@dataclass
class Goal:
    name: str
    utility: float
    likelihood: float = 0.5
    is_maintenance: bool = False


def gain_transform(raw: np.ndarray, gain: float) -> np.ndarray:
    """Squash raw PAD sums into (-1, 1), preserving sign."""
    scaled = gain * np.abs(raw)
    return np.sign(raw) * scaled / (scaled + 1.0)


class EmotionalState:
    """
    Mutable accumulator for one character in one timeline.
    Only derive_emotional_state() should drive it from store effects.
    """

    def __init__(self, gain: float = 1.0):
        self.gain = gain
        self.goals: Dict[str, Goal] = {}
        self._intensities = np.zeros(len(EmotionType))

    def add_goal(self, name: str, utility: float, is_maintenance: bool) -> None:
        self.goals[name] = Goal(name=name, utility=utility, is_maintenance=is_maintenance)

    def intensity(self, emotion: EmotionType) -> float:
        return float(self._intensities[_INDEX[emotion]])

    def active_emotions(self) -> Dict[EmotionType, float]:
        return {
            emotion: float(self._intensities[row])
            for emotion, row in _INDEX.items()
            if self._intensities[row] > 0.0
        }

    def pad(self) -> np.ndarray:
        return gain_transform(self._intensities @ PAD_TABLE, self.gain)

    def appraise(self, belief: Belief) -> None:
        """Update the affected goals' likelihoods and feel the consequences."""
        updates = []
        for name, congruence in zip(belief.affected_goals, belief.goal_congruences):
            goal = self.goals.get(name)
            if goal is None:
                continue
            delta = _update_likelihood(goal, congruence, belief.likelihood, belief.is_incremental)
            updates.append((goal.utility, delta, goal.likelihood))

        for utility, delta, likelihood in updates:
            for emotion in _internal_emotions(utility, delta, likelihood):
                self._intensities[_INDEX[emotion]] += abs(utility * delta)

    def decay(self, factor: float) -> None:
        self._intensities *= factor
        self._intensities[self._intensities <= DECAY_THRESHOLD] = 0.0


def _update_likelihood(goal: Goal, congruence: float, likelihood: float, is_incremental: bool) -> float:
    old = goal.likelihood
    if not goal.is_maintenance and (old >= 1.0 or old <= -1.0):
        return 0.0
    if is_incremental:
        new = min(1.0, max(-1.0, old + likelihood * congruence))
    else:
        new = (congruence * likelihood + 1.0) / 2.0
    goal.likelihood = new
    return new - old


def _internal_emotions(utility: float, delta: float, likelihood: float) -> List[EmotionType]:
    if abs(utility * delta) <= 0.0:
        return []
    positive = delta >= 0.0 if utility >= 0.0 else delta < 0.0

    if 0.0 < likelihood < 1.0:
        return [EmotionType.HOPE if positive else EmotionType.FEAR]

    emotions = []
    if abs(likelihood - 1.0) < _EPSILON:
        if utility >= 0.0:
            if delta < 0.5:
                emotions.append(EmotionType.SATISFACTION)
            emotions.append(EmotionType.JOY)
        else:
            if delta < 0.5:
                emotions.append(EmotionType.FEAR_CONFIRMED)
            emotions.append(EmotionType.DISTRESS)
    elif abs(likelihood) < _EPSILON:
        if utility >= 0.0:
            if delta > 0.5:
                emotions.append(EmotionType.DISAPPOINTMENT)
            emotions.append(EmotionType.DISTRESS)
        else:
            if delta > 0.5:
                emotions.append(EmotionType.RELIEF)
            emotions.append(EmotionType.JOY)
    return emotions


def derive_emotional_state(
    store: EntityStore,
    character: CharacterId,
    timeline: TimelineId,
    position: Optional[int] = None
) -> EmotionalState:
    """Replay the character's emotional effects along the timeline's full history."""
    state = EmotionalState()
    for event in history_events(store, timeline, position):
        for effect in event.effects:
            if not isinstance(effect, EMOTIONAL_EFFECTS) or effect.character != character:
                continue
            if isinstance(effect, GoalAdded):
                state.add_goal(effect.goal, effect.utility, effect.is_maintenance)
            elif isinstance(effect, BeliefAppraised):
                state.appraise(effect.belief)
            elif isinstance(effect, EmotionsDecayed):
                state.decay(effect.factor)
    return state
