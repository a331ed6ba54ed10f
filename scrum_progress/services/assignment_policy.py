from __future__ import annotations

from typing import Callable, Optional
import logging

from ..core.errors import AlreadyAssigned, IllegalTransition, NotTeamMember
from ..models.base import EntityId
from ..models.user_story import ACTIVE_STORY_COLUMNS, StoryStatus, UserStory

# (team_id, user_id) -> is the user an active member of the team
TeamMembershipLookup = Callable[[EntityId, EntityId], bool]


class AssignmentPolicy:
    """
    Rules for who may hold a user story.

    A story has at most one assignee, and reassignment needs an explicit
    unassign first. With ``strict_assignee_columns`` enabled, stories can
    only be held while in progress or in review.
    """

    def __init__(
        self,
        strict_assignee_columns: bool = False,
        team_membership: Optional[TeamMembershipLookup] = None,
    ) -> None:
        self.strict_assignee_columns = strict_assignee_columns
        self.team_membership = team_membership
        self._logger = logging.getLogger(__name__)

    def check_assign(self, story: UserStory, user_id: EntityId) -> None:
        if story.assignee_user_id is not None:
            self._logger.info(
                "Rejected assigning story %s to user %s, held by user %s",
                story.id, user_id, story.assignee_user_id,
            )
            raise AlreadyAssigned(story.id, story.assignee_user_id)

        if self.strict_assignee_columns and story.status not in ACTIVE_STORY_COLUMNS:
            self._logger.info(
                "Rejected assigning story %s in status %s", story.id, story.status.value
            )
            raise IllegalTransition(
                story.status.value,
                "assign",
                story.id,
                "only stories in progress or in review can be assigned",
            )

        if self.team_membership is not None and not self.team_membership(story.team_id, user_id):
            self._logger.info(
                "Rejected assigning story %s to user %s outside team %s",
                story.id, user_id, story.team_id,
            )
            raise NotTeamMember(story.id, user_id, story.team_id)

    def clears_assignee(self, new_status: StoryStatus) -> bool:
        """Whether moving into ``new_status`` must drop the current holder."""
        return self.strict_assignee_columns and new_status not in ACTIVE_STORY_COLUMNS


__all__ = [
    "TeamMembershipLookup",
    "AssignmentPolicy",
]
