"""
Emotional Appraisal Tests
=========================

PAD values stay inside [-1, 1] whatever is appraised; emotional state is
derived per (character, timeline).
"""

import numpy as np
import pytest
from hypothesis import given, strategies as st

from storyloom.contracts.effects import Belief
from storyloom.contracts.actions import AddGoal, AppraiseBelief, DecayEmotions
from storyloom.core.emotion import (
    EmotionType, EmotionalState, PAD_TABLE, gain_transform, derive_emotional_state,
)

from ..fixtures import T0, T1, KIM, PLAYER, apply_all, branched_world
from ..strategies import beliefs, unit


def belief(likelihood, goal="survive", congruence=1.0, incremental=False):
    return Belief(likelihood, (goal,), (congruence,), incremental, None)


def state_with_goal(utility=1.0, maintenance=False) -> EmotionalState:
    state = EmotionalState()
    state.add_goal("survive", utility, maintenance)
    return state


class TestAppraisal:
    """Belief -> likelihood change -> emotions."""

    def test_new_goal_likelihood(self):
        assert state_with_goal().goals["survive"].likelihood == 0.5

    def test_hope(self):
        state = state_with_goal()
        state.appraise(belief(0.5))
        assert state.goals["survive"].likelihood == pytest.approx(0.75)
        assert state.active_emotions() == {EmotionType.HOPE: pytest.approx(0.25)}

    def test_fear(self):
        state = state_with_goal()
        state.appraise(belief(0.5, congruence=-1.0))
        assert state.active_emotions() == {EmotionType.FEAR: pytest.approx(0.25)}

    def test_certain_success_is_joy(self):
        state = state_with_goal()
        state.appraise(belief(1.0))
        assert state.goals["survive"].likelihood == 1.0
        assert state.intensity(EmotionType.JOY) == pytest.approx(0.5)
        assert state.pad()[0] > 0.0

    def test_incremental_clamps(self):
        state = state_with_goal()
        state.appraise(belief(0.8, incremental=True))
        assert state.goals["survive"].likelihood == 1.0

    def test_settled_goal_stops_moving(self):
        state = state_with_goal()
        state.appraise(belief(1.0))
        before = state.active_emotions()
        state.appraise(belief(0.0))
        assert state.goals["survive"].likelihood == 1.0
        assert state.active_emotions() == before

    def test_unknown_goal_is_ignored(self):
        state = state_with_goal()
        state.appraise(belief(1.0, goal="escape"))
        assert state.active_emotions() == {}

    def test_decay(self):
        state = state_with_goal()
        state.appraise(belief(0.5))
        state.decay(0.5)
        assert state.intensity(EmotionType.HOPE) == pytest.approx(0.125)
        state.decay(0.001)
        assert state.active_emotions() == {}


class TestPadBounds:
    """The gain transform keeps PAD inside (-1, 1)."""

    def test_pad_table_shape(self):
        assert PAD_TABLE.shape == (len(EmotionType), 3)

    def test_gain_transform_preserves_sign(self):
        raw = np.array([-3.0, 0.0, 2.0])
        out = gain_transform(raw, 1.0)
        assert out[0] < 0.0 and out[1] == 0.0 and out[2] > 0.0
        assert out[2] == pytest.approx(2.0 / 3.0)

    @given(st.lists(st.tuples(unit, beliefs()), max_size=20))
    def test_pad_always_bounded(self, appraisals):
        state = EmotionalState()
        for utility, b in appraisals:
            for goal in b.affected_goals:
                if goal not in state.goals:
                    state.add_goal(goal, utility, False)
            state.appraise(b)
        pad = state.pad()
        assert np.all(pad >= -1.0) and np.all(pad <= 1.0)
        for goal in state.goals.values():
            assert -1.0 <= goal.likelihood <= 1.0


class TestDerivation:
    """Emotional state is replayed from history, per timeline."""

    def test_emotions_are_timeline_scoped(self):
        store, _ = apply_all(branched_world(), [
            AddGoal(KIM, "survive", 1.0, False, T1),
            AppraiseBelief(KIM, belief(0.5), T1),
        ])
        in_branch = derive_emotional_state(store, KIM, T1)
        in_root = derive_emotional_state(store, KIM, T0)

        assert in_branch.intensity(EmotionType.HOPE) == pytest.approx(0.25)
        assert in_root.active_emotions() == {}
        assert in_root.goals == {}

    def test_other_characters_are_untouched(self):
        store, _ = apply_all(branched_world(), [
            AddGoal(KIM, "survive", -1.0, False, T0),
            AppraiseBelief(KIM, belief(0.5), T0),
            DecayEmotions(KIM, 0.5, T0),
        ])
        assert derive_emotional_state(store, PLAYER, T0).active_emotions() == {}
        assert derive_emotional_state(store, KIM, T0).intensity(EmotionType.FEAR) == pytest.approx(0.125)
