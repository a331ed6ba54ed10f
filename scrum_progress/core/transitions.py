from __future__ import annotations

from enum import Enum
from typing import Dict, Optional, Tuple, Union

from .errors import BoundaryViolation, IllegalTransition, LifecycleRejection
from ..models.base import EntityId
from ..models.sprint import SprintStatus
from ..models.user_story import STORY_COLUMNS, StoryStatus


class EntityKind(str, Enum):
    SPRINT = "SPRINT"
    USER_STORY = "USER_STORY"


class Direction(str, Enum):
    FORWARD = "FORWARD"
    BACKWARD = "BACKWARD"


class SprintAction(str, Enum):
    START = "start"
    COMPLETE = "complete"
    CANCEL = "cancel"


TransitionRequest = Union[Direction, SprintAction]
EntityState = Union[SprintStatus, StoryStatus]

# (current status, action) -> new status; anything missing is illegal
SPRINT_TRANSITIONS: Dict[Tuple[SprintStatus, SprintAction], SprintStatus] = {
    (SprintStatus.PLANNED, SprintAction.START): SprintStatus.ACTIVE,
    (SprintStatus.ACTIVE, SprintAction.COMPLETE): SprintStatus.COMPLETED,
    (SprintStatus.PLANNED, SprintAction.CANCEL): SprintStatus.CANCELLED,
    (SprintStatus.ACTIVE, SprintAction.CANCEL): SprintStatus.CANCELLED,
}

_STEP: Dict[Direction, int] = {Direction.FORWARD: 1, Direction.BACKWARD: -1}


def next_state(
    kind: EntityKind,
    current: EntityState,
    request: TransitionRequest,
    entity_id: Optional[EntityId] = None,
) -> EntityState:
    """Resolve the state an entity moves to, or raise the rejection.

    User stories move one column at a time in a :class:`Direction`;
    stepping off either end of the board raises :class:`BoundaryViolation`.
    Sprints only accept the named :class:`SprintAction` moves; everything
    else raises :class:`IllegalTransition`.
    """
    if kind == EntityKind.USER_STORY:
        return _next_story_status(StoryStatus(current), request, entity_id)
    return _next_sprint_status(SprintStatus(current), request, entity_id)


def can_transition(
    kind: EntityKind, current: EntityState, request: TransitionRequest
) -> bool:
    try:
        next_state(kind, current, request)
    except LifecycleRejection:
        return False
    return True


def _next_story_status(
    current: StoryStatus, request: TransitionRequest, entity_id: Optional[EntityId]
) -> StoryStatus:
    direction = _coerce(Direction, request)
    if direction is None:
        raise IllegalTransition(
            current.value, _name(request), entity_id, "user stories only move forward or backward"
        )

    index = STORY_COLUMNS.index(current) + _STEP[direction]
    if index < 0 or index >= len(STORY_COLUMNS):
        raise BoundaryViolation(current.value, direction.value, entity_id)
    return STORY_COLUMNS[index]


def _next_sprint_status(
    current: SprintStatus, request: TransitionRequest, entity_id: Optional[EntityId]
) -> SprintStatus:
    action = _coerce(SprintAction, request)
    if action is None:
        raise IllegalTransition(
            current.value, _name(request), entity_id, "sprints only start, complete or cancel"
        )

    new_status = SPRINT_TRANSITIONS.get((current, action))
    if new_status is None:
        raise IllegalTransition(current.value, action.value, entity_id)
    return new_status


def _coerce(enum_type, request):
    if isinstance(request, enum_type):
        return request
    try:
        return enum_type(request)
    except ValueError:
        return None


def _name(request: object) -> str:
    return str(getattr(request, "value", request))


__all__ = [
    "EntityKind",
    "Direction",
    "SprintAction",
    "SPRINT_TRANSITIONS",
    "next_state",
    "can_transition",
]
