from __future__ import annotations

from typing import Callable, Dict, Optional
import logging

from ..core.errors import (
    BoundaryViolation,
    Immutable,
    LifecycleRejection,
    SprintFrozen,
    TerminalState,
)
from ..core.transitions import Direction, EntityKind, next_state
from ..models.base import EntityId
from ..models.sprint import SprintStatus
from ..models.user_story import StoryStatus, UserStory
from .assignment_policy import AssignmentPolicy

# sprint_id -> current sprint status
SprintStatusLookup = Callable[[EntityId], SprintStatus]


class SprintStatusRegistry:
    """In-memory sprint status lookup.

    Handy for tests and for callers that already hold the sprint list.
    """

    def __init__(self, statuses: Optional[Dict[EntityId, SprintStatus]] = None) -> None:
        self._statuses: Dict[EntityId, SprintStatus] = dict(statuses or {})

    def set(self, sprint_id: EntityId, status: SprintStatus) -> None:
        self._statuses[sprint_id] = SprintStatus(status)

    def __call__(self, sprint_id: EntityId) -> SprintStatus:
        try:
            return self._statuses[sprint_id]
        except KeyError:
            raise KeyError(f"Unknown sprint {sprint_id}") from None


class UserStoryLifecycle:
    """
    Validates board moves, assignment and deletion of user stories.

    Legality depends on two pieces of state: the story's own column and
    the current status of its sprint. The sprint status is read through
    the injected lookup on every call, never cached.
    """

    def __init__(
        self,
        sprint_status_lookup: SprintStatusLookup,
        policy: Optional[AssignmentPolicy] = None,
    ) -> None:
        self.sprint_status_lookup = sprint_status_lookup
        self.policy = policy or AssignmentPolicy()
        self._logger = logging.getLogger(__name__)

    def move_forward(self, story: UserStory) -> UserStory:
        return self._move(story, Direction.FORWARD)

    def move_backward(self, story: UserStory) -> UserStory:
        return self._move(story, Direction.BACKWARD)

    def move(self, story: UserStory, direction: Direction) -> UserStory:
        return self._move(story, Direction(direction))

    def assign(self, story: UserStory, user_id: EntityId) -> UserStory:
        self._ensure_sprint_open(story)
        try:
            self.policy.check_assign(story, user_id)
        except LifecycleRejection as e:
            self._logger.info("Rejected assignment of story %s: %s", story.id, e.message)
            raise
        self._logger.info("Story %s assigned to user %s", story.id, user_id)
        return story.model_copy(update={"assignee_user_id": user_id})

    def unassign(self, story: UserStory) -> UserStory:
        self._ensure_sprint_open(story)
        return story.model_copy(update={"assignee_user_id": None})

    def delete(self, story: UserStory) -> None:
        """Check that the story may be deleted; raises when it may not."""
        self._ensure_sprint_open(story)
        if story.status == StoryStatus.DONE:
            self._logger.info("Rejected delete of done story %s", story.id)
            raise Immutable(story.id)

    def can_move(self, story: UserStory, direction: Direction) -> bool:
        try:
            self._move(story, Direction(direction))
        except LifecycleRejection:
            return False
        return True

    def is_frozen(self, story: UserStory) -> bool:
        return self.sprint_status_lookup(story.sprint_id).is_terminal

    def _move(self, story: UserStory, direction: Direction) -> UserStory:
        self._ensure_sprint_open(story)
        try:
            new_status = next_state(EntityKind.USER_STORY, story.status, direction, story.id)
        except BoundaryViolation as e:
            self._logger.info("Rejected %s move of story %s: %s", direction.value, story.id, e.message)
            raise TerminalState(story.status.value, direction.value, story.id) from e

        update: Dict[str, object] = {"status": new_status}
        if story.assignee_user_id is not None and self.policy.clears_assignee(new_status):
            update["assignee_user_id"] = None

        self._logger.info(
            "Story %s moved from %s to %s", story.id, story.status.value, new_status.value
        )
        return story.model_copy(update=update)

    def _ensure_sprint_open(self, story: UserStory) -> None:
        status = self.sprint_status_lookup(story.sprint_id)
        if status.is_terminal:
            self._logger.info(
                "Rejected change to story %s: sprint %s is %s",
                story.id, story.sprint_id, status.value,
            )
            raise SprintFrozen(story.sprint_id, status.value, story.id)


__all__ = [
    "SprintStatusLookup",
    "SprintStatusRegistry",
    "UserStoryLifecycle",
]
