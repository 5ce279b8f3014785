"""
Hypothesis Strategies (Generators)

Identifiers are drawn from small ranges so generated actions often point
at records that exist, and sometimes at records that do not.
"""

from hypothesis import strategies as st
from hypothesis.strategies import composite

from storyloom.contracts.base import (
    TimelineId, CharacterId, MemoryId, EventId,
    Ability, RelationshipState, ViolationKind,
)
from storyloom.contracts.effects import Belief
from storyloom.contracts.actions import (
    CreateCharacter, KillCharacter, ResurrectCharacter, TradeMemory,
    BranchTimeline, ViolateCausality, GrantKnowledge, ChangeRelationship,
    CreateWitnessedMemory, ForgeMemory, InstallMemory, GrantAbility,
    PerceiveAcrossTimelines, AddGoal, AppraiseBelief, DecayEmotions,
)

MAX_ID = 6

names = st.sampled_from(["Kim", "Player", "Alice", "Mara", "Oskar", "", "  "])
flags = st.sampled_from(["secret_door", "true_name", "loop_count", "the_gate", ""])
mechanisms = st.sampled_from(["Living Gate", "time weapon", "dream link", "", " "])
goals = st.sampled_from(["survive", "escape", "protect_kim", "find_truth"])

timeline_ids = st.integers(min_value=0, max_value=3).map(TimelineId)
character_ids = st.integers(min_value=0, max_value=MAX_ID).map(CharacterId)
memory_ids = st.integers(min_value=0, max_value=MAX_ID).map(MemoryId)
event_ids = st.integers(min_value=0, max_value=3 * MAX_ID).map(EventId)

unit = st.floats(min_value=-1.0, max_value=1.0, allow_nan=False)
probability = st.floats(min_value=0.0, max_value=1.0, allow_nan=False)


@composite
def beliefs(draw):
    """Generates aligned beliefs over known goal names."""
    affected = draw(st.lists(goals, min_size=1, max_size=3, unique=True))
    return Belief(
        likelihood=draw(probability),
        affected_goals=tuple(affected),
        goal_congruences=tuple(draw(unit) for _ in affected),
        is_incremental=draw(st.booleans()),
        causal_agent=draw(st.none() | character_ids)
    )


@composite
def actions(draw):
    """Generates one fully parameterized action of any kind."""
    return draw(st.one_of(
        st.builds(CreateCharacter, names, timeline_ids),
        st.builds(KillCharacter, character_ids, timeline_ids),
        st.builds(ResurrectCharacter, character_ids, timeline_ids, mechanisms, st.booleans()),
        st.builds(TradeMemory, memory_ids, character_ids, character_ids, mechanisms, timeline_ids),
        st.builds(BranchTimeline, timeline_ids),
        st.builds(
            ViolateCausality, timeline_ids, st.sampled_from(ViolationKind), mechanisms,
            st.frozensets(character_ids, max_size=2),
            st.lists(event_ids, max_size=2).map(tuple)
        ),
        st.builds(GrantKnowledge, character_ids, flags, timeline_ids),
        st.builds(
            ChangeRelationship, character_ids, character_ids,
            st.sampled_from(RelationshipState), timeline_ids
        ),
        st.builds(CreateWitnessedMemory, character_ids, event_ids, timeline_ids),
        st.builds(ForgeMemory, names, character_ids, event_ids, timeline_ids),
        st.builds(InstallMemory, character_ids, event_ids, mechanisms, timeline_ids),
        st.builds(GrantAbility, character_ids, st.sampled_from(Ability), timeline_ids),
        st.builds(PerceiveAcrossTimelines, character_ids, flags, timeline_ids, timeline_ids),
        st.builds(AddGoal, character_ids, goals, unit, st.booleans(), timeline_ids),
        st.builds(AppraiseBelief, character_ids, beliefs(), timeline_ids),
        st.builds(DecayEmotions, character_ids, probability, timeline_ids),
    ))


@composite
def action_sequences(draw, min_size=1, max_size=40):
    """
    Generates sequences that start by populating the world, so later
    actions have characters and events to refer to.
    """
    opening = [CreateCharacter(name, TimelineId(0)) for name in ("Kim", "Player", "Alice")]
    tail = draw(st.lists(actions(), min_size=min_size, max_size=max_size))
    return opening + tail
