import pytest

from scrum_progress.core.errors import (
    AlreadyAssigned,
    BoundaryViolation,
    Immutable,
    SprintFrozen,
    TerminalState,
)
from scrum_progress.core.transitions import Direction
from scrum_progress.models.sprint import SprintStatus
from scrum_progress.models.user_story import StoryStatus
from scrum_progress.services.assignment_policy import AssignmentPolicy
from scrum_progress.services.sprint_lifecycle import SprintLifecycle
from scrum_progress.services.story_lifecycle import SprintStatusRegistry, UserStoryLifecycle

from conftest import make_sprint, make_story


@pytest.fixture
def registry():
    return SprintStatusRegistry({1: SprintStatus.ACTIVE})


@pytest.fixture
def lifecycle(registry):
    return UserStoryLifecycle(registry)


def test_move_forward_and_back(lifecycle, story):
    moved = lifecycle.move_forward(story)
    assert moved.status == StoryStatus.IN_PROGRESS
    assert story.status == StoryStatus.TODO

    assert lifecycle.move_backward(moved).status == StoryStatus.TODO


@pytest.mark.parametrize("status", [StoryStatus.IN_PROGRESS, StoryStatus.IN_REVIEW])
def test_round_trip_from_inner_columns(lifecycle, status):
    story = make_story(status=status)
    assert lifecycle.move_backward(lifecycle.move_forward(story)).status == status


def test_edges_raise_terminal_state(lifecycle):
    with pytest.raises(TerminalState):
        lifecycle.move_forward(make_story(status=StoryStatus.DONE))
    # Also catchable as the transition-level boundary rejection
    with pytest.raises(BoundaryViolation):
        lifecycle.move_backward(make_story(status=StoryStatus.TODO))


def test_board_scenario_start_then_move():
    registry = SprintStatusRegistry()
    sprint = make_sprint()
    registry.set(sprint.id, sprint.status)
    stories = UserStoryLifecycle(registry)

    started = SprintLifecycle().start(sprint).sprint
    registry.set(started.id, started.status)
    assert started.status == SprintStatus.ACTIVE

    s1 = make_story(id=1, status=StoryStatus.TODO)
    s2 = make_story(id=2, status=StoryStatus.DONE)
    assert stories.move_forward(s1).status == StoryStatus.IN_PROGRESS
    with pytest.raises(BoundaryViolation):
        stories.move_forward(s2)


@pytest.mark.parametrize("sprint_status", [SprintStatus.COMPLETED, SprintStatus.CANCELLED])
def test_every_mutation_is_frozen_with_the_sprint(registry, lifecycle, sprint_status):
    story = make_story(status=StoryStatus.IN_PROGRESS, assignee_user_id=42)
    registry.set(1, sprint_status)

    operations = [
        lambda: lifecycle.move_forward(story),
        lambda: lifecycle.move_backward(story),
        lambda: lifecycle.assign(story, 7),
        lambda: lifecycle.unassign(story),
        lambda: lifecycle.delete(story),
    ]
    for operation in operations:
        with pytest.raises(SprintFrozen) as exc_info:
            operation()
        assert exc_info.value.sprint_id == 1
        assert exc_info.value.entity_id == story.id

    assert story.status == StoryStatus.IN_PROGRESS
    assert story.assignee_user_id == 42


def test_frozen_wins_over_story_level_rules(registry, lifecycle):
    registry.set(1, SprintStatus.COMPLETED)

    with pytest.raises(SprintFrozen):
        lifecycle.move_forward(make_story(status=StoryStatus.DONE))
    with pytest.raises(SprintFrozen):
        lifecycle.delete(make_story(status=StoryStatus.DONE))


def test_complete_then_assign_is_frozen(active_sprint):
    registry = SprintStatusRegistry({active_sprint.id: active_sprint.status})
    stories = UserStoryLifecycle(registry)

    completed = SprintLifecycle().complete(active_sprint).sprint
    registry.set(completed.id, completed.status)

    with pytest.raises(SprintFrozen):
        stories.assign(make_story(), 9)


def test_sprint_status_is_read_on_every_call(registry, lifecycle, story):
    assert lifecycle.can_move(story, Direction.FORWARD)
    registry.set(1, SprintStatus.CANCELLED)
    assert not lifecycle.can_move(story, Direction.FORWARD)
    assert lifecycle.is_frozen(story)


def test_assign_and_unassign(lifecycle, story):
    assigned = lifecycle.assign(story, 7)
    assert assigned.assignee_user_id == 7
    assert assigned.is_assigned

    with pytest.raises(AlreadyAssigned) as exc_info:
        lifecycle.assign(assigned, 8)
    assert exc_info.value.assignee_user_id == 7

    unassigned = lifecycle.unassign(assigned)
    assert unassigned.assignee_user_id is None
    assert lifecycle.assign(unassigned, 8).assignee_user_id == 8


def test_unassign_done_story_is_allowed(lifecycle):
    story = make_story(status=StoryStatus.DONE, assignee_user_id=3)
    assert lifecycle.unassign(story).assignee_user_id is None


def test_delete_done_story_is_immutable(lifecycle):
    with pytest.raises(Immutable):
        lifecycle.delete(make_story(status=StoryStatus.DONE))


def test_delete_open_story_passes(lifecycle, story):
    assert lifecycle.delete(story) is None


def test_strict_policy_drops_assignee_outside_active_columns(registry):
    lifecycle = UserStoryLifecycle(registry, AssignmentPolicy(strict_assignee_columns=True))
    story = make_story(status=StoryStatus.IN_REVIEW, assignee_user_id=4)

    done = lifecycle.move_forward(story)
    assert done.status == StoryStatus.DONE
    assert done.assignee_user_id is None

    in_progress = lifecycle.move_backward(story)
    assert in_progress.assignee_user_id == 4


def test_unknown_sprint_is_a_lookup_error(story):
    lifecycle = UserStoryLifecycle(SprintStatusRegistry())
    with pytest.raises(KeyError):
        lifecycle.move_forward(story)
