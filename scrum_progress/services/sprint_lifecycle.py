from __future__ import annotations

from datetime import date
from typing import Dict, FrozenSet, Iterable, List, Optional
import logging

from ..core.errors import IllegalTransition
from ..core.transitions import EntityKind, SprintAction, next_state
from ..models.base import DomainModel, EntityId
from ..models.sprint import Sprint, SprintStatus


class FrozenNotice(DomainModel):
    """Published when a sprint reaches a terminal status.

    UI code uses it to disable every mutation control for the sprint's
    stories.
    """

    sprint_id: Optional[EntityId] = None
    status: SprintStatus
    frozen_on: Optional[date] = None


class SprintTransitionResult(DomainModel):
    sprint: Sprint
    frozen_notice: Optional[FrozenNotice] = None


# Statuses each action may start from
_PRECONDITIONS: Dict[SprintAction, FrozenSet[SprintStatus]] = {
    SprintAction.START: frozenset({SprintStatus.PLANNED}),
    SprintAction.COMPLETE: frozenset({SprintStatus.ACTIVE}),
    SprintAction.CANCEL: frozenset({SprintStatus.PLANNED, SprintStatus.ACTIVE}),
}


class SprintLifecycle:
    """
    Validates sprint status changes.

    Nothing is persisted here: every operation returns the new
    authoritative sprint for the caller to write through the API.
    """

    def __init__(self) -> None:
        self._logger = logging.getLogger(__name__)

    def start(self, sprint: Sprint) -> SprintTransitionResult:
        return self._apply(sprint, SprintAction.START)

    def complete(
        self,
        sprint: Sprint,
        completed_at: Optional[date] = None,
        team_mood: Optional[str] = None,
    ) -> SprintTransitionResult:
        """Close an active sprint, optionally recording when and how it ended."""
        return self._apply(
            sprint, SprintAction.COMPLETE, completed_at=completed_at, team_mood=team_mood
        )

    def cancel(self, sprint: Sprint) -> SprintTransitionResult:
        return self._apply(sprint, SprintAction.CANCEL)

    def apply(self, sprint: Sprint, action: SprintAction) -> SprintTransitionResult:
        return self._apply(sprint, SprintAction(action))

    def can_apply(self, sprint: Sprint, action: SprintAction) -> bool:
        return sprint.status in _PRECONDITIONS[SprintAction(action)]

    # Scheduled sweeps

    def ready_to_start(
        self, sprints: Iterable[Sprint], today: Optional[date] = None
    ) -> List[SprintTransitionResult]:
        """Start every planned sprint whose start date has been reached."""
        today = today or date.today()
        return [
            self.start(sprint)
            for sprint in sprints
            if sprint.status == SprintStatus.PLANNED and sprint.start_date <= today
        ]

    def ready_to_complete(
        self, sprints: Iterable[Sprint], today: Optional[date] = None
    ) -> List[SprintTransitionResult]:
        """Complete every active sprint whose end date has been reached.

        Completion is stamped with ``today``.
        """
        today = today or date.today()
        return [
            self.complete(sprint, completed_at=today)
            for sprint in sprints
            if sprint.status == SprintStatus.ACTIVE and sprint.end_date <= today
        ]

    def check_overdue(
        self, sprints: Iterable[Sprint], today: Optional[date] = None
    ) -> List[Sprint]:
        today = today or date.today()
        overdue = [
            sprint
            for sprint in sprints
            if sprint.status == SprintStatus.ACTIVE and sprint.is_overdue(today)
        ]
        for sprint in overdue:
            self._logger.warning(
                "Sprint overdue: id=%s, name=%s, end_date=%s",
                sprint.id, sprint.name, sprint.end_date.isoformat(),
            )
        return overdue

    def _apply(
        self,
        sprint: Sprint,
        action: SprintAction,
        completed_at: Optional[date] = None,
        team_mood: Optional[str] = None,
    ) -> SprintTransitionResult:
        allowed = _PRECONDITIONS[action]
        if sprint.status not in allowed:
            self._logger.info(
                "Rejected %s on sprint %s in status %s",
                action.value, sprint.id, sprint.status.value,
            )
            expected = " or ".join(sorted(status.value for status in allowed))
            raise IllegalTransition(
                sprint.status.value,
                action.value,
                sprint.id,
                f"sprint must be {expected}",
            )

        new_status = next_state(EntityKind.SPRINT, sprint.status, action, sprint.id)
        update: Dict[str, object] = {"status": new_status}
        if new_status == SprintStatus.COMPLETED:
            update["completed_at"] = completed_at or date.today()
            if team_mood is not None:
                update["team_mood"] = team_mood

        updated = sprint.model_copy(update=update)
        self._logger.info(
            "Sprint %s moved from %s to %s",
            sprint.id, sprint.status.value, new_status.value,
        )

        notice = None
        if updated.is_frozen:
            notice = FrozenNotice(
                sprint_id=updated.id,
                status=updated.status,
                frozen_on=updated.completed_at or date.today(),
            )
        return SprintTransitionResult(sprint=updated, frozen_notice=notice)


__all__ = [
    "FrozenNotice",
    "SprintTransitionResult",
    "SprintLifecycle",
]
