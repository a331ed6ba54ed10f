from datetime import date
import logging

import pytest

from scrum_progress.core.errors import IllegalTransition, LifecycleRejection
from scrum_progress.core.transitions import SprintAction
from scrum_progress.models.sprint import Sprint, SprintStatus
from scrum_progress.services.sprint_lifecycle import SprintLifecycle

from conftest import make_sprint


@pytest.fixture
def lifecycle():
    return SprintLifecycle()


def test_start_planned_sprint(lifecycle, sprint):
    result = lifecycle.start(sprint)

    assert result.sprint.status == SprintStatus.ACTIVE
    assert result.frozen_notice is None
    # The input is never mutated
    assert sprint.status == SprintStatus.PLANNED


def test_complete_active_sprint_publishes_frozen_notice(lifecycle, active_sprint):
    result = lifecycle.complete(active_sprint, completed_at=date(2024, 3, 15), team_mood="GOOD")

    assert result.sprint.status == SprintStatus.COMPLETED
    assert result.sprint.completed_at == date(2024, 3, 15)
    assert result.sprint.team_mood == "GOOD"
    assert result.frozen_notice is not None
    assert result.frozen_notice.sprint_id == active_sprint.id
    assert result.frozen_notice.status == SprintStatus.COMPLETED


def test_complete_defaults_completion_date_to_today(lifecycle, active_sprint):
    result = lifecycle.complete(active_sprint)
    assert result.sprint.completed_at == date.today()


@pytest.mark.parametrize("status", [SprintStatus.PLANNED, SprintStatus.ACTIVE])
def test_cancel_from_open_statuses(lifecycle, status):
    result = lifecycle.cancel(make_sprint(status=status))

    assert result.sprint.status == SprintStatus.CANCELLED
    assert result.sprint.is_frozen
    assert result.frozen_notice.status == SprintStatus.CANCELLED


@pytest.mark.parametrize(
    "status, action",
    [
        (SprintStatus.ACTIVE, SprintAction.START),
        (SprintStatus.COMPLETED, SprintAction.START),
        (SprintStatus.PLANNED, SprintAction.COMPLETE),
        (SprintStatus.CANCELLED, SprintAction.COMPLETE),
        (SprintStatus.COMPLETED, SprintAction.CANCEL),
        (SprintStatus.CANCELLED, SprintAction.CANCEL),
    ],
)
def test_preconditions_are_enforced(lifecycle, status, action):
    sprint = make_sprint(status=status)

    with pytest.raises(IllegalTransition) as exc_info:
        lifecycle.apply(sprint, action)

    assert isinstance(exc_info.value, LifecycleRejection)
    assert exc_info.value.entity_id == sprint.id
    assert not lifecycle.can_apply(sprint, action)


def test_terminal_sprint_never_reopens(lifecycle, active_sprint):
    completed = lifecycle.complete(active_sprint).sprint

    for action in SprintAction:
        with pytest.raises(IllegalTransition):
            lifecycle.apply(completed, action)


def test_legacy_in_progress_status_parses_as_active():
    sprint = Sprint.model_validate(
        {
            "id": 3,
            "sprintNumber": 2,
            "name": "Sprint Two",
            "startDate": "2024-03-18",
            "endDate": "2024-03-29",
            "status": "IN_PROGRESS",
        }
    )
    assert sprint.status == SprintStatus.ACTIVE


def test_sprint_dates_must_be_ordered():
    with pytest.raises(ValueError):
        make_sprint(start_date=date(2024, 3, 15), end_date=date(2024, 3, 4))


def test_sprint_calendar_helpers():
    sprint = make_sprint(status=SprintStatus.ACTIVE)

    assert sprint.display_name == "Sprint 1: Sprint One"
    assert sprint.duration_days == 11
    assert sprint.days_remaining(date(2024, 3, 10)) == 5
    assert sprint.days_remaining(date(2024, 4, 1)) == 0
    assert sprint.is_overdue(date(2024, 3, 16))
    assert sprint.time_progress_percentage(date(2024, 3, 3)) == 0.0
    assert sprint.time_progress_percentage(date(2024, 3, 9)) == 45.45
    assert sprint.time_progress_percentage(date(2024, 3, 20)) == 100.0
    assert sprint.status_description(date(2024, 3, 16)) == "Sprint is in progress but overdue"


def test_ready_to_start_picks_planned_sprints_that_have_begun(lifecycle):
    sprints = [
        make_sprint(id=1, start_date=date(2024, 3, 4), end_date=date(2024, 3, 15)),
        make_sprint(id=2, start_date=date(2024, 3, 18), end_date=date(2024, 3, 29)),
        make_sprint(id=3, status=SprintStatus.CANCELLED),
    ]

    results = lifecycle.ready_to_start(sprints, today=date(2024, 3, 4))

    assert [result.sprint.id for result in results] == [1]
    assert results[0].sprint.status == SprintStatus.ACTIVE


def test_ready_to_complete_stamps_today(lifecycle):
    sprints = [
        make_sprint(id=1, status=SprintStatus.ACTIVE, end_date=date(2024, 3, 15)),
        make_sprint(id=2, status=SprintStatus.ACTIVE, start_date=date(2024, 3, 4),
                    end_date=date(2024, 3, 20)),
        make_sprint(id=3, status=SprintStatus.PLANNED, end_date=date(2024, 3, 10)),
    ]

    results = lifecycle.ready_to_complete(sprints, today=date(2024, 3, 15))

    assert [result.sprint.id for result in results] == [1]
    assert results[0].sprint.status == SprintStatus.COMPLETED
    assert results[0].sprint.completed_at == date(2024, 3, 15)
    assert results[0].frozen_notice.status == SprintStatus.COMPLETED


def test_check_overdue_reports_active_sprints_past_their_end(lifecycle, caplog):
    sprints = [
        make_sprint(id=1, status=SprintStatus.ACTIVE, end_date=date(2024, 3, 15)),
        make_sprint(id=2, status=SprintStatus.ACTIVE, end_date=date(2024, 3, 16)),
        make_sprint(id=3, status=SprintStatus.COMPLETED, end_date=date(2024, 3, 10)),
        make_sprint(id=4, status=SprintStatus.PLANNED, end_date=date(2024, 3, 10)),
    ]

    with caplog.at_level(logging.WARNING):
        overdue = lifecycle.check_overdue(sprints, today=date(2024, 3, 16))

    assert [sprint.id for sprint in overdue] == [1]
    assert "Sprint overdue: id=1" in caplog.text
