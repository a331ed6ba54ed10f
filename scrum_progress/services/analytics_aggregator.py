from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
import logging

from ..models.analytics import (
    AnalyticsReport,
    AnalyticsRollup,
    AnalyticsSnapshot,
    BurndownPoint,
    DataQualityIssue,
    MoodSlice,
    StoryPointsBar,
    SprintStoryStats,
    TaskCompletionSlice,
    TeamMood,
    VelocityPoint,
)
from ..models.base import EntityId
from ..models.sprint import Sprint, SprintStatus
from ..models.user_story import StoryStatus, UserStory
from ..utils.numbers import finite_or_zero, percentage, round_half_up

TREND_GRANULARITIES = ("sprint", "day")

SnapshotKey = Callable[[AnalyticsSnapshot], str]

# Undated snapshots rank below every dated one
_EARLIEST = datetime.min.replace(tzinfo=timezone.utc)


class AnalyticsAggregator:
    """
    Reduces a raw analytics snapshot feed into dashboard projections.

    The feed is unordered and may repeat measurements of the same sprint.
    Each projection first keeps the latest snapshot per grouping key, then
    orders by recorded date. Nothing in here raises on bad input: records
    are coerced once at ingestion and missing numbers count as zero.
    """

    def __init__(self, trend_granularity: str = "sprint") -> None:
        if trend_granularity not in TREND_GRANULARITIES:
            raise ValueError(
                f"trend_granularity must be one of {', '.join(TREND_GRANULARITIES)}"
            )
        self.trend_granularity = trend_granularity
        self._logger = logging.getLogger(__name__)

    # Ingestion and ordering

    def ingest(self, raw: Any) -> List[AnalyticsSnapshot]:
        if raw is None or isinstance(raw, (str, bytes, Mapping)):
            return []
        if not isinstance(raw, Iterable):
            return []
        return [AnalyticsSnapshot.from_raw(record) for record in raw]

    def deduplicate_latest(
        self, snapshots: Sequence[AnalyticsSnapshot], key: Optional[SnapshotKey] = None
    ) -> List[AnalyticsSnapshot]:
        """Keep the latest snapshot of every group.

        Groups default to the sprint. Later dates win; on a missing or
        equal date the snapshot that arrived last wins. Survivors keep
        the input position of the snapshot that was retained.
        """
        key = key or sprint_key
        latest: Dict[str, Tuple[int, AnalyticsSnapshot]] = {}
        for index, snapshot in enumerate(snapshots):
            group = key(snapshot)
            held = latest.get(group)
            if held is None or _recorded(snapshot) >= _recorded(held[1]):
                latest[group] = (index, snapshot)

        return [snapshot for _, snapshot in sorted(latest.values(), key=lambda item: item[0])]

    def order(self, snapshots: Sequence[AnalyticsSnapshot]) -> List[AnalyticsSnapshot]:
        """Sort by recorded date, ascending.

        Undated snapshots keep their position; dated ones are sorted into
        the remaining slots.
        """
        dated = sorted(
            (snapshot for snapshot in snapshots if snapshot.recorded_date is not None),
            key=lambda snapshot: snapshot.recorded_date,
        )
        dated_iter = iter(dated)
        return [
            next(dated_iter) if snapshot.recorded_date is not None else snapshot
            for snapshot in snapshots
        ]

    def trend_key(self, snapshot: AnalyticsSnapshot) -> str:
        if self.trend_granularity == "day":
            if snapshot.recorded_date is not None:
                return snapshot.recorded_date.date().isoformat()
            return snapshot.sprint_name
        return snapshot.sprint_key

    # Projections

    def velocity_trend(self, raw: Any) -> List[VelocityPoint]:
        snapshots = self._snapshots(raw)
        retained = self.order(self.deduplicate_latest(snapshots, self.trend_key))
        return [
            VelocityPoint(
                name=snapshot.sprint_name,
                date=_format_date(snapshot.recorded_date),
                velocity=snapshot.velocity,
                completed_points=snapshot.story_points_completed,
                total_points=snapshot.total_story_points,
                completion_rate=_completion_rate(
                    snapshot.story_points_completed, snapshot.total_story_points
                ),
            )
            for snapshot in retained
        ]

    def story_points_by_sprint(self, raw: Any) -> List[StoryPointsBar]:
        bars, _ = self._story_points(self._snapshots(raw))
        return bars

    def task_completion(self, raw: Any) -> List[TaskCompletionSlice]:
        """Cumulative task completion over every snapshot, not only the latest."""
        snapshots = self._snapshots(raw)
        completed = sum(snapshot.completed_tasks for snapshot in snapshots)
        total = sum(snapshot.total_tasks for snapshot in snapshots)
        if total == 0:
            return []
        return [
            TaskCompletionSlice(name="Completed", value=completed),
            TaskCompletionSlice(name="Remaining", value=total - completed),
        ]

    def mood_distribution(self, raw: Any) -> List[MoodSlice]:
        counts: Dict[TeamMood, int] = {}
        for snapshot in self._snapshots(raw):
            if snapshot.team_mood is None:
                continue
            counts[snapshot.team_mood] = counts.get(snapshot.team_mood, 0) + 1
        return [MoodSlice(name=mood, value=count) for mood, count in counts.items()]

    def rollup(self, raw: Any) -> AnalyticsRollup:
        latest = self.deduplicate_latest(self._snapshots(raw), sprint_key)
        if not latest:
            return AnalyticsRollup()

        completed_tasks = sum(snapshot.completed_tasks for snapshot in latest)
        total_tasks = sum(snapshot.total_tasks for snapshot in latest)
        return AnalyticsRollup(
            avg_velocity=finite_or_zero(
                sum(snapshot.velocity for snapshot in latest) / len(latest)
            ),
            avg_completion=percentage(completed_tasks, total_tasks),
            tasks_done=completed_tasks,
            sprints_tracked=len(latest),
        )

    def sprint_burndown(
        self,
        raw: Any,
        sprint_id: Optional[EntityId] = None,
        sprint: Optional[Sprint] = None,
    ) -> List[BurndownPoint]:
        """Daily remaining story points for one sprint.

        Only dated snapshots take part, the latest one per day. When the
        sprint itself is given, each point also carries the ideal line
        from the first day's total down to zero at the end date.
        """
        if sprint_id is None and sprint is not None:
            sprint_id = sprint.id
        wanted = f"id:{sprint_id}"

        dated = [
            snapshot
            for snapshot in self._snapshots(raw)
            if snapshot.sprint_key == wanted and snapshot.recorded_date is not None
        ]
        daily = self.order(
            self.deduplicate_latest(dated, lambda snapshot: _format_date(snapshot.recorded_date))
        )
        if not daily:
            return []

        capacity = daily[0].total_story_points
        points: List[BurndownPoint] = []
        for snapshot in daily:
            day = snapshot.recorded_date.date()
            ideal = _ideal_remaining(sprint, day, capacity) if sprint is not None else None
            points.append(
                BurndownPoint(
                    day=day,
                    remaining_points=snapshot.remaining_story_points,
                    ideal_remaining=ideal,
                    is_weekend=day.weekday() >= 5,
                )
            )
        return points

    def aggregate(self, raw: Any) -> AnalyticsReport:
        snapshots = self._snapshots(raw)
        bars, issues = self._story_points(snapshots)
        return AnalyticsReport(
            velocity_trend=self.velocity_trend(snapshots),
            story_points_by_sprint=bars,
            task_completion=self.task_completion(snapshots),
            mood_distribution=self.mood_distribution(snapshots),
            rollup=self.rollup(snapshots),
            issues=issues,
        )

    def _snapshots(self, raw: Any) -> List[AnalyticsSnapshot]:
        if isinstance(raw, list) and all(isinstance(item, AnalyticsSnapshot) for item in raw):
            return raw
        return self.ingest(raw)

    def _story_points(
        self, snapshots: Sequence[AnalyticsSnapshot]
    ) -> Tuple[List[StoryPointsBar], List[DataQualityIssue]]:
        bars: List[StoryPointsBar] = []
        issues: List[DataQualityIssue] = []
        for snapshot in self.order(self.deduplicate_latest(snapshots, sprint_key)):
            remaining = snapshot.remaining_story_points
            bars.append(
                StoryPointsBar(
                    sprint_id=snapshot.sprint_id,
                    name=snapshot.sprint_name,
                    completed=snapshot.story_points_completed,
                    remaining=remaining,
                )
            )
            if remaining < 0:
                self._logger.warning(
                    "Sprint %s (%s) reports %s completed of %s total story points",
                    snapshot.sprint_id, snapshot.sprint_name,
                    snapshot.story_points_completed, snapshot.total_story_points,
                )
                issues.append(
                    DataQualityIssue(
                        sprint_id=snapshot.sprint_id,
                        sprint_name=snapshot.sprint_name,
                        kind="negative_remaining",
                        detail=f"remaining story points is {remaining:g}",
                    )
                )
        return bars, issues


def sprint_key(snapshot: AnalyticsSnapshot) -> str:
    return snapshot.sprint_key


def summarize_stories(stories: Iterable[UserStory]) -> SprintStoryStats:
    """Column counts and point totals for a sprint's stories."""
    counts: Dict[StoryStatus, int] = {status: 0 for status in StoryStatus}
    total_points = 0
    completed_points = 0
    for story in stories:
        counts[story.status] += 1
        total_points += story.story_points
        if story.status == StoryStatus.DONE:
            completed_points += story.story_points

    return SprintStoryStats(
        total_stories=sum(counts.values()),
        todo=counts[StoryStatus.TODO],
        in_progress=counts[StoryStatus.IN_PROGRESS],
        in_review=counts[StoryStatus.IN_REVIEW],
        done=counts[StoryStatus.DONE],
        total_points=total_points,
        completed_points=completed_points,
        remaining_points=total_points - completed_points,
        completion_percentage=round_half_up(percentage(completed_points, total_points), 2),
    )


def project_burndown(
    sprints: Iterable[Sprint], stories: Iterable[UserStory]
) -> Dict[str, int]:
    """Open story points left in each sprint, in sprint order."""
    remaining: Dict[EntityId, int] = {}
    for story in stories:
        if story.status != StoryStatus.DONE:
            remaining[story.sprint_id] = remaining.get(story.sprint_id, 0) + story.story_points

    ordered = sorted(sprints, key=lambda sprint: sprint.sprint_number)
    return {sprint.name: remaining.get(sprint.id, 0) for sprint in ordered}


def team_velocity(
    sprints: Iterable[Sprint],
    stories: Iterable[UserStory],
    team_id: Optional[EntityId] = None,
) -> float:
    """Mean done story points per completed sprint.

    Only completed sprints that finished at least one story count. Zero
    when there are none.
    """
    completed = {sprint.id for sprint in sprints if sprint.status == SprintStatus.COMPLETED}
    points: Dict[EntityId, int] = {}
    for story in stories:
        if team_id is not None and story.team_id != team_id:
            continue
        if story.status == StoryStatus.DONE and story.sprint_id in completed:
            points[story.sprint_id] = points.get(story.sprint_id, 0) + story.story_points

    if not points:
        return 0.0
    return sum(points.values()) / len(points)


def all_completed_on_time(sprints: Iterable[Sprint]) -> bool:
    """Whether every sprint was completed on or before its end date.

    A completed sprint with no completion date counts as late. No sprints
    at all is trivially on time.
    """
    for sprint in sprints:
        if sprint.status != SprintStatus.COMPLETED:
            return False
        if sprint.completed_at is None or sprint.completed_at > sprint.end_date:
            return False
    return True


def _recorded(snapshot: AnalyticsSnapshot) -> datetime:
    return snapshot.recorded_date or _EARLIEST


def _format_date(value: Optional[datetime]) -> str:
    if value is None:
        return ""
    return value.date().isoformat()


def _completion_rate(completed: float, total: float) -> int:
    if total <= 0:
        return 0
    return int(round_half_up(percentage(completed, total)))


def _ideal_remaining(sprint: Sprint, target_date: date, capacity: float) -> float:
    total_days = (sprint.end_date - sprint.start_date).days
    days_passed = (target_date - sprint.start_date).days

    if total_days <= 0:
        return 0.0

    progress = days_passed / total_days
    return max(0.0, capacity * (1.0 - progress))


__all__ = [
    "TREND_GRANULARITIES",
    "AnalyticsAggregator",
    "sprint_key",
    "summarize_stories",
    "project_burndown",
    "team_velocity",
    "all_completed_on_time",
]
