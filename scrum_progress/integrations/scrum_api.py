from __future__ import annotations

from typing import Any, List, Optional, Type, TypeVar

import httpx
from pydantic import ValidationError

from ..config import Settings, get_settings
from ..core.errors import TransportFailure
from ..core.transitions import Direction, SprintAction
from ..models.analytics import AnalyticsSnapshot
from ..models.base import DomainModel, EntityId
from ..models.sprint import Project, Sprint
from ..models.user_story import UserStory
from .base import ApiClientConfig, BaseApiClient

M = TypeVar("M", bound=DomainModel)

_STORY_DIRECTION_PATHS = {
    Direction.FORWARD: "next-status",
    Direction.BACKWARD: "previous-status",
}


class ScrumApiClient(BaseApiClient):
    """
    Client for the Scrum tracking REST API.

    Every call either returns validated models or raises
    :class:`TransportFailure`; the payload is checked here so that a
    malformed response never reaches the lifecycle rules.
    """

    # Reads

    async def fetch_sprint(self, sprint_id: EntityId) -> Sprint:
        operation = "fetch_sprint"
        response = await self._make_request("GET", f"/sprints/{sprint_id}", operation)
        return self._parse(response, Sprint, operation, sprint_id)

    async def fetch_stories_by_sprint(self, sprint_id: EntityId) -> List[UserStory]:
        operation = "fetch_stories_by_sprint"
        response = await self._make_request(
            "GET", f"/user-stories/sprint/{sprint_id}", operation
        )
        return self._parse_list(response, UserStory, operation, sprint_id)

    async def fetch_analytics_snapshots(self, project_id: EntityId) -> List[AnalyticsSnapshot]:
        """Raw analytics records for a project.

        Records are coerced leniently; a body that is not a list counts
        as no records at all.
        """
        operation = "fetch_analytics_snapshots"
        response = await self._make_request(
            "GET", f"/analytics/project/{project_id}", operation
        )
        data = self._json(response, operation, project_id)
        if not isinstance(data, list):
            self._logger.warning(
                "Analytics for project %s is not a list (%s)", project_id, type(data).__name__
            )
            return []
        return [AnalyticsSnapshot.from_raw(record) for record in data]

    async def fetch_project(self, project_id: EntityId) -> Project:
        operation = "fetch_project"
        response = await self._make_request("GET", f"/projects/{project_id}", operation)
        return self._parse(response, Project, operation, project_id)

    # Writes

    async def persist_sprint_transition(
        self, sprint_id: EntityId, action: SprintAction
    ) -> Sprint:
        action = SprintAction(action)
        operation = f"persist_sprint_transition:{action.value}"
        response = await self._make_request(
            "PATCH", f"/sprints/{sprint_id}/{action.value}", operation
        )
        return self._parse(response, Sprint, operation, sprint_id)

    async def persist_story_transition(
        self, story_id: EntityId, direction: Direction
    ) -> UserStory:
        direction = Direction(direction)
        operation = f"persist_story_transition:{direction.value.lower()}"
        response = await self._make_request(
            "PATCH",
            f"/user-stories/{story_id}/{_STORY_DIRECTION_PATHS[direction]}",
            operation,
        )
        return self._parse(response, UserStory, operation, story_id)

    async def persist_assign(self, story_id: EntityId, user_id: EntityId) -> UserStory:
        operation = "persist_assign"
        response = await self._make_request(
            "PATCH", f"/user-stories/{story_id}/assign/{user_id}", operation
        )
        return self._parse(response, UserStory, operation, story_id)

    async def persist_unassign(self, story_id: EntityId) -> UserStory:
        operation = "persist_unassign"
        response = await self._make_request(
            "PATCH", f"/user-stories/{story_id}/unassign", operation
        )
        return self._parse(response, UserStory, operation, story_id)

    async def persist_delete_story(self, story_id: EntityId) -> None:
        await self._make_request(
            "DELETE", f"/user-stories/{story_id}", "persist_delete_story"
        )

    # Response handling

    def _json(self, response: httpx.Response, operation: str, entity_id: EntityId) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise TransportFailure(
                "Response body is not valid JSON",
                operation,
                response.status_code,
                entity_id=entity_id,
            ) from e

    def _parse(
        self,
        response: httpx.Response,
        model: Type[M],
        operation: str,
        entity_id: EntityId,
    ) -> M:
        data = self._json(response, operation, entity_id)
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise TransportFailure(
                f"Invalid {model.__name__} in response: {e.error_count()} error(s)",
                operation,
                response.status_code,
                data if isinstance(data, dict) else None,
                entity_id=entity_id,
            ) from e

    def _parse_list(
        self,
        response: httpx.Response,
        model: Type[M],
        operation: str,
        entity_id: EntityId,
    ) -> List[M]:
        data = self._json(response, operation, entity_id)
        if not isinstance(data, list):
            raise TransportFailure(
                f"Expected a list of {model.__name__}",
                operation,
                response.status_code,
                data if isinstance(data, dict) else None,
                entity_id=entity_id,
            )
        try:
            return [model.model_validate(item) for item in data]
        except ValidationError as e:
            raise TransportFailure(
                f"Invalid {model.__name__} in response: {e.error_count()} error(s)",
                operation,
                response.status_code,
                entity_id=entity_id,
            ) from e


# Type-safe factory function
def create_scrum_api_client(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ScrumApiClient:
    """Create a client configured from application settings."""
    config = ApiClientConfig.from_settings(settings or get_settings())
    return ScrumApiClient(config, transport)


__all__ = ["ScrumApiClient", "create_scrum_api_client"]
