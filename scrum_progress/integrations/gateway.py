from __future__ import annotations

from typing import List, Protocol, runtime_checkable

from ..core.transitions import Direction, SprintAction
from ..models.analytics import AnalyticsSnapshot
from ..models.base import EntityId
from ..models.sprint import Project, Sprint
from ..models.user_story import UserStory


@runtime_checkable
class ScrumGateway(Protocol):
    """Operations the board and analytics views need from the backing store.

    Any of them may raise ``TransportFailure``.
    """

    async def fetch_sprint(self, sprint_id: EntityId) -> Sprint: ...

    async def fetch_stories_by_sprint(self, sprint_id: EntityId) -> List[UserStory]: ...

    async def fetch_analytics_snapshots(self, project_id: EntityId) -> List[AnalyticsSnapshot]: ...

    async def fetch_project(self, project_id: EntityId) -> Project: ...

    async def persist_sprint_transition(self, sprint_id: EntityId, action: SprintAction) -> Sprint: ...

    async def persist_story_transition(self, story_id: EntityId, direction: Direction) -> UserStory: ...

    async def persist_assign(self, story_id: EntityId, user_id: EntityId) -> UserStory: ...

    async def persist_unassign(self, story_id: EntityId) -> UserStory: ...

    async def persist_delete_story(self, story_id: EntityId) -> None: ...


__all__ = ["ScrumGateway"]
