from datetime import date
from typing import Any, Dict, List, Optional

import pytest

from scrum_progress.core.errors import TransportFailure
from scrum_progress.core.transitions import Direction, SprintAction, next_state, EntityKind
from scrum_progress.models.analytics import AnalyticsSnapshot
from scrum_progress.models.sprint import Project, Sprint, SprintStatus
from scrum_progress.models.user_story import StoryStatus, UserStory


def make_sprint(**overrides: Any) -> Sprint:
    data: Dict[str, Any] = {
        "id": 1,
        "sprint_number": 1,
        "name": "Sprint One",
        "goal": "Ship the board",
        "start_date": date(2024, 3, 4),
        "end_date": date(2024, 3, 15),
        "status": SprintStatus.PLANNED,
        "project_id": 10,
    }
    data.update(overrides)
    return Sprint(**data)


def make_story(**overrides: Any) -> UserStory:
    data: Dict[str, Any] = {
        "id": 100,
        "title": "As a student I can see my sprint",
        "story_points": 3,
        "status": StoryStatus.TODO,
        "sprint_id": 1,
        "team_id": 5,
    }
    data.update(overrides)
    return UserStory(**data)


class FakeGateway:
    """In-memory stand-in for the remote Scrum API.

    Records every write so tests can assert that rejected mutations never
    reach it. Set ``fail`` to a set of operation names to make them raise.
    """

    def __init__(
        self,
        sprint: Sprint,
        stories: Optional[List[UserStory]] = None,
        project: Optional[Project] = None,
        snapshots: Optional[List[AnalyticsSnapshot]] = None,
    ) -> None:
        self.sprint = sprint
        self.stories = {story.id: story for story in stories or []}
        self.project = project or Project(id=10, name="Scrum Tracker")
        self.snapshots = list(snapshots or [])
        self.fail: set = set()
        self.writes: List[tuple] = []
        self.reads: List[str] = []

    def _check(self, operation: str) -> None:
        if operation in self.fail:
            raise TransportFailure(f"{operation} unavailable", operation, 503)

    async def fetch_sprint(self, sprint_id):
        self.reads.append("fetch_sprint")
        self._check("fetch_sprint")
        return self.sprint

    async def fetch_stories_by_sprint(self, sprint_id):
        self.reads.append("fetch_stories_by_sprint")
        self._check("fetch_stories_by_sprint")
        return [story for story in self.stories.values() if story.sprint_id == sprint_id]

    async def fetch_analytics_snapshots(self, project_id):
        self.reads.append("fetch_analytics_snapshots")
        self._check("fetch_analytics_snapshots")
        return list(self.snapshots)

    async def fetch_project(self, project_id):
        self.reads.append("fetch_project")
        self._check("fetch_project")
        return self.project

    async def persist_sprint_transition(self, sprint_id, action):
        self.writes.append(("sprint", sprint_id, SprintAction(action)))
        self._check("persist_sprint_transition")
        new_status = next_state(EntityKind.SPRINT, self.sprint.status, SprintAction(action))
        self.sprint = self.sprint.model_copy(update={"status": new_status})
        return self.sprint

    async def persist_story_transition(self, story_id, direction):
        self.writes.append(("move", story_id, Direction(direction)))
        self._check("persist_story_transition")
        story = self.stories[story_id]
        new_status = next_state(EntityKind.USER_STORY, story.status, Direction(direction))
        self.stories[story_id] = story.model_copy(update={"status": new_status})
        return self.stories[story_id]

    async def persist_assign(self, story_id, user_id):
        self.writes.append(("assign", story_id, user_id))
        self._check("persist_assign")
        self.stories[story_id] = self.stories[story_id].model_copy(
            update={"assignee_user_id": user_id}
        )
        return self.stories[story_id]

    async def persist_unassign(self, story_id):
        self.writes.append(("unassign", story_id))
        self._check("persist_unassign")
        self.stories[story_id] = self.stories[story_id].model_copy(
            update={"assignee_user_id": None}
        )
        return self.stories[story_id]

    async def persist_delete_story(self, story_id):
        self.writes.append(("delete", story_id))
        self._check("persist_delete_story")
        del self.stories[story_id]


@pytest.fixture
def sprint() -> Sprint:
    return make_sprint()


@pytest.fixture
def active_sprint() -> Sprint:
    return make_sprint(status=SprintStatus.ACTIVE)


@pytest.fixture
def story() -> UserStory:
    return make_story()
