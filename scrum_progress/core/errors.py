from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from ..models.base import EntityId


class ScrumProgressError(Exception):
    """Base exception for everything raised by the scrum progress core."""

    def __init__(self, message: str, entity_id: Optional[EntityId] = None) -> None:
        super().__init__(message)
        self.message = message
        self.entity_id = entity_id


# Lifecycle rule violations. These are detected locally, before any
# request is sent to the remote API.

class LifecycleRejection(ScrumProgressError):
    """A requested mutation breaks a sprint or user story rule."""


class IllegalTransition(LifecycleRejection):
    """The requested move is not on the state graph."""

    def __init__(
        self,
        current: str,
        requested: str,
        entity_id: Optional[EntityId] = None,
        detail: Optional[str] = None,
    ) -> None:
        message = f"Invalid transition: {requested} is not allowed from {current}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message, entity_id)
        self.current = current
        self.requested = requested


class BoundaryViolation(LifecycleRejection):
    """The move would go past the first or last board column."""

    def __init__(self, current: str, direction: str, entity_id: Optional[EntityId] = None) -> None:
        super().__init__(
            f"Cannot move {direction.lower()} from {current}", entity_id
        )
        self.current = current
        self.direction = direction


class TerminalState(BoundaryViolation):
    """The story already sits at the edge of the board in that direction."""


class SprintFrozen(LifecycleRejection):
    """The story's sprint is completed or cancelled."""

    def __init__(
        self,
        sprint_id: Optional[EntityId],
        sprint_status: str,
        story_id: Optional[EntityId] = None,
    ) -> None:
        super().__init__(
            f"Sprint {sprint_id} is {sprint_status.lower()}; its stories are locked",
            story_id,
        )
        self.sprint_id = sprint_id
        self.sprint_status = sprint_status


class AlreadyAssigned(LifecycleRejection):
    def __init__(self, story_id: Optional[EntityId], assignee_user_id: EntityId) -> None:
        super().__init__(
            f"User story {story_id} is already assigned to user {assignee_user_id}; "
            "unassign it first",
            story_id,
        )
        self.assignee_user_id = assignee_user_id


class NotTeamMember(LifecycleRejection):
    def __init__(self, story_id: Optional[EntityId], user_id: EntityId, team_id: EntityId) -> None:
        super().__init__(
            f"User {user_id} is not an active member of team {team_id}", story_id
        )
        self.user_id = user_id
        self.team_id = team_id


class Immutable(LifecycleRejection):
    """A finished story can no longer be deleted."""

    def __init__(self, story_id: Optional[EntityId]) -> None:
        super().__init__(f"User story {story_id} is done and cannot be deleted", story_id)


# Transport

class TransportFailure(ScrumProgressError):
    """Wraps any failure of a call to the remote Scrum API."""

    def __init__(
        self,
        message: str,
        operation: str,
        status_code: Optional[int] = None,
        response_data: Optional[Dict[str, Any]] = None,
        entity_id: Optional[EntityId] = None,
    ) -> None:
        super().__init__(message, entity_id)
        self.operation = operation
        self.status_code = status_code
        self.response_data = response_data
        self.timestamp = datetime.now(timezone.utc)


__all__ = [
    "ScrumProgressError",
    "LifecycleRejection",
    "IllegalTransition",
    "BoundaryViolation",
    "TerminalState",
    "SprintFrozen",
    "AlreadyAssigned",
    "NotTeamMember",
    "Immutable",
    "TransportFailure",
]
