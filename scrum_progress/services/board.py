from __future__ import annotations

from datetime import date
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, TypeVar
import asyncio
import logging

from pydantic import Field

from ..config import Settings, get_settings
from ..core.errors import TransportFailure
from ..core.transitions import Direction, SprintAction
from ..integrations.gateway import ScrumGateway
from ..models.analytics import AnalyticsReport, SprintStoryStats
from ..models.base import DomainModel, EntityId
from ..models.sprint import Project, Sprint
from ..models.user_story import UserStory
from .analytics_aggregator import AnalyticsAggregator, summarize_stories
from .assignment_policy import AssignmentPolicy
from .sprint_lifecycle import FrozenNotice, SprintLifecycle
from .story_lifecycle import SprintStatusRegistry, UserStoryLifecycle

T = TypeVar("T")

FrozenCallback = Callable[[FrozenNotice], Any]

logger = logging.getLogger(__name__)


class SprintBoardView(DomainModel):
    sprint: Sprint
    stories: List[UserStory] = Field(default_factory=list)
    stats: SprintStoryStats = Field(default_factory=SprintStoryStats)
    stories_degraded: bool = False

    @property
    def is_frozen(self) -> bool:
        return self.sprint.is_frozen

    def story(self, story_id: EntityId) -> Optional[UserStory]:
        for story in self.stories:
            if story.id == story_id:
                return story
        return None


class ProjectAnalyticsView(DomainModel):
    project: Project
    report: AnalyticsReport = Field(default_factory=AnalyticsReport)
    snapshots_degraded: bool = False


async def load_sprint_board(gateway: ScrumGateway, sprint_id: EntityId) -> SprintBoardView:
    """Fetch a sprint and its stories in parallel.

    A failed sprint fetch is fatal; a failed story fetch leaves the board
    empty instead.
    """
    sprint_result, stories_result = await asyncio.gather(
        gateway.fetch_sprint(sprint_id),
        gateway.fetch_stories_by_sprint(sprint_id),
        return_exceptions=True,
    )
    if isinstance(sprint_result, BaseException):
        logger.error("Failed to load sprint %s: %s", sprint_id, sprint_result)
        raise sprint_result

    stories, degraded = _degrade(stories_result, [], "stories of sprint", sprint_id)
    return SprintBoardView(
        sprint=sprint_result,
        stories=stories,
        stats=summarize_stories(stories),
        stories_degraded=degraded,
    )


async def load_project_analytics(
    gateway: ScrumGateway,
    project_id: EntityId,
    aggregator: Optional[AnalyticsAggregator] = None,
) -> ProjectAnalyticsView:
    """Fetch a project and its analytics snapshots in parallel and aggregate them."""
    aggregator = aggregator or AnalyticsAggregator()
    project_result, snapshots_result = await asyncio.gather(
        gateway.fetch_project(project_id),
        gateway.fetch_analytics_snapshots(project_id),
        return_exceptions=True,
    )
    if isinstance(project_result, BaseException):
        logger.error("Failed to load project %s: %s", project_id, project_result)
        raise project_result

    snapshots, degraded = _degrade(snapshots_result, [], "analytics of project", project_id)
    return ProjectAnalyticsView(
        project=project_result,
        report=aggregator.aggregate(snapshots),
        snapshots_degraded=degraded,
    )


def _degrade(result: Any, fallback: T, what: str, entity_id: EntityId) -> Tuple[Any, bool]:
    if isinstance(result, TransportFailure):
        logger.warning("Could not load %s %s, showing none: %s", what, entity_id, result.message)
        return fallback, True
    if isinstance(result, BaseException):
        raise result
    return result, False


class RefreshSequencer:
    """
    Orders overlapping refreshes of the same view.

    Every refresh takes a token before it is sent. A response is applied
    only if its token is not older than the last one applied, so a slow
    stale read can never overwrite a newer one.
    """

    def __init__(self) -> None:
        self._issued = 0
        self._applied = 0

    @property
    def last_issued(self) -> int:
        return self._issued

    @property
    def last_applied(self) -> int:
        return self._applied

    def next_token(self) -> int:
        self._issued += 1
        return self._issued

    def try_apply(self, token: int) -> bool:
        if token < self._applied:
            return False
        self._applied = token
        return True


class SprintBoardSession:
    """
    Local view of one sprint board, kept in step with the remote API.

    Mutations follow validate, persist, refetch: rules are checked locally
    against a fresh read of the sprint, the change is written through the
    gateway, and the whole board is read back. Local copies are never
    edited in place.
    """

    def __init__(
        self,
        gateway: ScrumGateway,
        sprint_id: EntityId,
        policy: Optional[AssignmentPolicy] = None,
        sprint_lifecycle: Optional[SprintLifecycle] = None,
        on_frozen: Optional[FrozenCallback] = None,
    ) -> None:
        self.gateway = gateway
        self.sprint_id = sprint_id
        self.policy = policy or AssignmentPolicy()
        self.sprint_lifecycle = sprint_lifecycle or SprintLifecycle()
        self.on_frozen = on_frozen
        self.sequencer = RefreshSequencer()
        self.view: Optional[SprintBoardView] = None
        self._frozen_published = False
        self._logger = logging.getLogger(__name__)

    async def refresh(self) -> SprintBoardView:
        token = self.sequencer.next_token()
        view = await load_sprint_board(self.gateway, self.sprint_id)
        if self.sequencer.try_apply(token):
            self.view = view
            if view.is_frozen:
                self._publish_frozen(
                    FrozenNotice(
                        sprint_id=view.sprint.id,
                        status=view.sprint.status,
                        frozen_on=view.sprint.completed_at,
                    )
                )
        else:
            self._logger.debug(
                "Discarded stale refresh %d of sprint %s (last applied %d)",
                token, self.sprint_id, self.sequencer.last_applied,
            )
        return self.view

    # Sprint

    async def start_sprint(self) -> Sprint:
        return await self._transition_sprint(SprintAction.START)

    async def complete_sprint(self, completed_at: Optional[date] = None) -> Sprint:
        """Complete the sprint and publish its frozen notice.

        The complete endpoint takes no body, so the server stamps the
        persisted completion date and mood. ``completed_at`` only dates the
        frozen notice published here.
        """
        return await self._transition_sprint(SprintAction.COMPLETE, completed_at)

    async def cancel_sprint(self) -> Sprint:
        return await self._transition_sprint(SprintAction.CANCEL)

    async def _transition_sprint(
        self, action: SprintAction, completed_at: Optional[date] = None
    ) -> Sprint:
        sprint = await self.gateway.fetch_sprint(self.sprint_id)
        if action == SprintAction.COMPLETE:
            result = self.sprint_lifecycle.complete(sprint, completed_at=completed_at)
        else:
            result = self.sprint_lifecycle.apply(sprint, action)

        persisted = await self._write(
            f"{action.value} sprint {self.sprint_id}",
            self.gateway.persist_sprint_transition(self.sprint_id, action),
        )
        if result.frozen_notice is not None:
            self._publish_frozen(result.frozen_notice)

        await self.refresh()
        return persisted

    # Stories

    async def move_story_forward(self, story_id: EntityId) -> UserStory:
        return await self.move_story(story_id, Direction.FORWARD)

    async def move_story_backward(self, story_id: EntityId) -> UserStory:
        return await self.move_story(story_id, Direction.BACKWARD)

    async def move_story(self, story_id: EntityId, direction: Direction) -> UserStory:
        direction = Direction(direction)
        lifecycle, story = await self._prepare_story(story_id)
        lifecycle.move(story, direction)
        persisted = await self._write(
            f"move story {story_id} {direction.value.lower()}",
            self.gateway.persist_story_transition(story_id, direction),
        )
        await self.refresh()
        return persisted

    async def assign_story(self, story_id: EntityId, user_id: EntityId) -> UserStory:
        lifecycle, story = await self._prepare_story(story_id)
        lifecycle.assign(story, user_id)
        persisted = await self._write(
            f"assign story {story_id}",
            self.gateway.persist_assign(story_id, user_id),
        )
        await self.refresh()
        return persisted

    async def unassign_story(self, story_id: EntityId) -> UserStory:
        lifecycle, story = await self._prepare_story(story_id)
        lifecycle.unassign(story)
        persisted = await self._write(
            f"unassign story {story_id}",
            self.gateway.persist_unassign(story_id),
        )
        await self.refresh()
        return persisted

    async def delete_story(self, story_id: EntityId) -> None:
        lifecycle, story = await self._prepare_story(story_id)
        lifecycle.delete(story)
        await self._write(
            f"delete story {story_id}",
            self.gateway.persist_delete_story(story_id),
        )
        await self.refresh()

    async def _prepare_story(self, story_id: EntityId) -> Tuple[UserStoryLifecycle, UserStory]:
        """Read the sprint fresh and find the story to validate against."""
        view = await self.refresh()
        story = view.story(story_id)
        if story is None:
            raise KeyError(f"User story {story_id} is not on sprint {self.sprint_id}")

        registry = SprintStatusRegistry({story.sprint_id: view.sprint.status})
        return UserStoryLifecycle(registry, self.policy), story

    async def _write(self, description: str, request: Awaitable[T]) -> T:
        try:
            return await request
        except TransportFailure as e:
            self._logger.error("Failed to %s: %s", description, e.message)
            raise

    def _publish_frozen(self, notice: FrozenNotice) -> None:
        if self._frozen_published:
            return
        self._frozen_published = True
        if self.on_frozen is not None:
            self.on_frozen(notice)


# Factories


def create_analytics_aggregator(settings: Optional[Settings] = None) -> AnalyticsAggregator:
    settings = settings or get_settings()
    return AnalyticsAggregator(trend_granularity=settings.trend_granularity)


def create_board_session(
    gateway: ScrumGateway,
    sprint_id: EntityId,
    settings: Optional[Settings] = None,
    on_frozen: Optional[FrozenCallback] = None,
) -> SprintBoardSession:
    settings = settings or get_settings()
    policy = AssignmentPolicy(strict_assignee_columns=settings.strict_assignee_columns)
    return SprintBoardSession(gateway, sprint_id, policy=policy, on_frozen=on_frozen)


def headline_stats(
    view: ProjectAnalyticsView, settings: Optional[Settings] = None
) -> Dict[str, str]:
    """Rollup numbers formatted for the dashboard header."""
    settings = settings or get_settings()
    rollup = view.report.rollup
    return {
        "avgVelocity": rollup.velocity_display(settings.velocity_decimals),
        "avgCompletion": f"{rollup.completion_display(settings.completion_decimals)}%",
        "tasksDone": str(rollup.tasks_done),
        "sprintsTracked": str(rollup.sprints_tracked),
    }


__all__ = [
    "SprintBoardView",
    "ProjectAnalyticsView",
    "load_sprint_board",
    "load_project_analytics",
    "RefreshSequencer",
    "SprintBoardSession",
    "create_analytics_aggregator",
    "create_board_session",
    "headline_stats",
]
