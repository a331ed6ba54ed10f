from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import AliasChoices, Field, field_validator

from .base import DomainModel, EntityId


class StoryStatus(str, Enum):
    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    IN_REVIEW = "IN_REVIEW"
    DONE = "DONE"


class StoryPriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


# Board columns, left to right
STORY_COLUMNS = (
    StoryStatus.TODO,
    StoryStatus.IN_PROGRESS,
    StoryStatus.IN_REVIEW,
    StoryStatus.DONE,
)

# Columns that count as "being worked on"
ACTIVE_STORY_COLUMNS = frozenset({StoryStatus.IN_PROGRESS, StoryStatus.IN_REVIEW})

STORY_POINT_SCALE = (1, 2, 3, 5, 8, 13)

MAX_STORY_TITLE_LENGTH = 200


class UserStory(DomainModel):
    id: Optional[EntityId] = None
    title: str
    description: Optional[str] = None
    story_points: int
    priority: StoryPriority = StoryPriority.MEDIUM
    status: StoryStatus = StoryStatus.TODO
    sprint_id: EntityId
    team_id: EntityId
    assignee_user_id: Optional[EntityId] = Field(
        default=None,
        validation_alias=AliasChoices(
            "assignee_user_id", "assigneeUserId", "assignedToUserId"
        ),
    )

    @field_validator("title")
    @classmethod
    def _validate_title(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("User story title cannot be empty")
        if len(value) > MAX_STORY_TITLE_LENGTH:
            raise ValueError(
                f"User story title cannot exceed {MAX_STORY_TITLE_LENGTH} characters"
            )
        return value

    @field_validator("story_points")
    @classmethod
    def _validate_story_points(cls, value: int) -> int:
        if value not in STORY_POINT_SCALE:
            raise ValueError(
                f"Story points must be one of {', '.join(map(str, STORY_POINT_SCALE))}"
            )
        return value

    @property
    def is_assigned(self) -> bool:
        return self.assignee_user_id is not None

    @property
    def is_done(self) -> bool:
        return self.status == StoryStatus.DONE

    @property
    def can_move_forward(self) -> bool:
        return self.status != StoryStatus.DONE

    @property
    def can_move_backward(self) -> bool:
        return self.status != StoryStatus.TODO

    @property
    def effort_level(self) -> str:
        if self.story_points <= 3:
            return "Small"
        if self.story_points <= 8:
            return "Medium"
        return "Large"


__all__ = [
    "StoryStatus",
    "StoryPriority",
    "STORY_COLUMNS",
    "ACTIVE_STORY_COLUMNS",
    "STORY_POINT_SCALE",
    "UserStory",
]
