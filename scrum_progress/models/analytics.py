from __future__ import annotations

import math
from collections.abc import Mapping
from datetime import date, datetime, time, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import Field

from .base import DomainModel, EntityId
from ..utils.logging import get_logger
from ..utils.numbers import round_half_up

logger = get_logger(__name__)


class TeamMood(str, Enum):
    EXCELLENT = "EXCELLENT"
    GOOD = "GOOD"
    NEUTRAL = "NEUTRAL"
    CONCERNED = "CONCERNED"
    CRITICAL = "CRITICAL"


# Mood names used by older API versions
LEGACY_MOODS: Dict[str, TeamMood] = {
    "VERY_HAPPY": TeamMood.EXCELLENT,
    "HAPPY": TeamMood.GOOD,
    "SAD": TeamMood.CONCERNED,
    "VERY_SAD": TeamMood.CRITICAL,
}

# (python name, wire name)
_SNAPSHOT_FIELDS: Tuple[Tuple[str, str], ...] = (
    ("sprint_id", "sprintId"),
    ("sprint_name", "sprintName"),
    ("project_id", "projectId"),
    ("team_id", "teamId"),
    ("velocity", "velocity"),
    ("story_points_completed", "storyPointsCompleted"),
    ("total_story_points", "totalStoryPoints"),
    ("completed_tasks", "completedTasks"),
    ("total_tasks", "totalTasks"),
    ("team_mood", "teamMood"),
    ("recorded_date", "recordedDate"),
)


class AnalyticsSnapshot(DomainModel):
    """One periodic measurement of a sprint's progress.

    Snapshots are append-only: a newer snapshot for the same sprint
    supersedes an older one, nothing is ever edited in place. Build them
    from API payloads with :meth:`from_raw`, which never raises.
    """

    sprint_id: Optional[EntityId] = None
    sprint_name: str = ""
    project_id: Optional[EntityId] = None
    team_id: Optional[EntityId] = None
    velocity: float = 0.0
    story_points_completed: float = 0.0
    total_story_points: float = 0.0
    completed_tasks: int = 0
    total_tasks: int = 0
    team_mood: Optional[TeamMood] = None
    recorded_date: Optional[datetime] = None

    @property
    def sprint_key(self) -> str:
        """Grouping key identifying the sprint this snapshot measures."""
        if self.sprint_id is not None:
            return f"id:{self.sprint_id}"
        return f"name:{self.sprint_name}"

    @property
    def remaining_story_points(self) -> float:
        return self.total_story_points - self.story_points_completed

    @classmethod
    def from_raw(cls, raw: Any) -> "AnalyticsSnapshot":
        """Build a snapshot from a loosely-typed record.

        Missing or malformed numbers become zero, unknown moods and
        unparseable dates become ``None``. Anything that is not a mapping
        yields an all-zero snapshot.
        """
        if isinstance(raw, AnalyticsSnapshot):
            return raw
        if isinstance(raw, DomainModel):
            raw = raw.model_dump(by_alias=True)
        if not isinstance(raw, Mapping):
            logger.debug("Ignoring non-mapping analytics record of type %s", type(raw).__name__)
            return cls()

        values = {name: _lookup(raw, name, wire) for name, wire in _SNAPSHOT_FIELDS}
        return cls(
            sprint_id=_coerce_id(values["sprint_id"]),
            sprint_name=_coerce_text(values["sprint_name"]),
            project_id=_coerce_id(values["project_id"]),
            team_id=_coerce_id(values["team_id"]),
            velocity=_coerce_float(values["velocity"]),
            story_points_completed=_coerce_float(values["story_points_completed"]),
            total_story_points=_coerce_float(values["total_story_points"]),
            completed_tasks=_coerce_int(values["completed_tasks"]),
            total_tasks=_coerce_int(values["total_tasks"]),
            team_mood=parse_team_mood(values["team_mood"]),
            recorded_date=parse_recorded_date(values["recorded_date"]),
        )


def _lookup(raw: Mapping, name: str, wire: str) -> Any:
    if wire in raw:
        return raw[wire]
    return raw.get(name)


def _coerce_float(value: Any) -> float:
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float, Decimal)):
        try:
            number = float(value)
        except (OverflowError, ValueError):
            return 0.0
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return 0.0
    else:
        return 0.0
    return number if math.isfinite(number) else 0.0


def _coerce_int(value: Any) -> int:
    return int(_coerce_float(value))


def _coerce_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def _coerce_id(value: Any) -> Optional[EntityId]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        return int(text) if text.isdigit() else text
    return None


def parse_team_mood(value: Any) -> Optional[TeamMood]:
    if isinstance(value, TeamMood):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    name = value.strip().upper()
    if name in LEGACY_MOODS:
        return LEGACY_MOODS[name]
    try:
        return TeamMood(name)
    except ValueError:
        logger.debug("Unknown team mood %r dropped", value)
        return None


def parse_recorded_date(value: Any) -> Optional[datetime]:
    """Normalise a recorded date to an aware UTC datetime.

    Naive values are taken to be UTC already.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.min)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            try:
                parsed = datetime.combine(date.fromisoformat(text[:10]), time.min)
            except ValueError:
                logger.debug("Unparseable recorded date %r dropped", value)
                return None
    else:
        return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


# Projections


class VelocityPoint(DomainModel):
    name: str
    date: str = ""
    velocity: float = 0.0
    completed_points: float = 0.0
    total_points: float = 0.0
    completion_rate: int = 0


class StoryPointsBar(DomainModel):
    sprint_id: Optional[EntityId] = None
    name: str
    completed: float = 0.0
    remaining: float = 0.0


class TaskCompletionSlice(DomainModel):
    name: str
    value: int


class MoodSlice(DomainModel):
    name: TeamMood
    value: int


class BurndownPoint(DomainModel):
    day: date
    remaining_points: float
    ideal_remaining: Optional[float] = None
    is_weekend: bool = False


class DataQualityIssue(DomainModel):
    sprint_id: Optional[EntityId] = None
    sprint_name: str = ""
    kind: str
    detail: str


class AnalyticsRollup(DomainModel):
    """Headline numbers for a project; kept at full precision."""

    avg_velocity: float = 0.0
    avg_completion: float = 0.0
    tasks_done: int = 0
    sprints_tracked: int = 0

    def velocity_display(self, decimals: int = 1) -> str:
        return f"{round_half_up(self.avg_velocity, decimals):.{decimals}f}"

    def completion_display(self, decimals: int = 0) -> str:
        return f"{round_half_up(self.avg_completion, decimals):.{decimals}f}"


class AnalyticsReport(DomainModel):
    velocity_trend: List[VelocityPoint] = Field(default_factory=list)
    story_points_by_sprint: List[StoryPointsBar] = Field(default_factory=list)
    task_completion: List[TaskCompletionSlice] = Field(default_factory=list)
    mood_distribution: List[MoodSlice] = Field(default_factory=list)
    rollup: AnalyticsRollup = Field(default_factory=AnalyticsRollup)
    issues: List[DataQualityIssue] = Field(default_factory=list)


class SprintStoryStats(DomainModel):
    total_stories: int = 0
    todo: int = 0
    in_progress: int = 0
    in_review: int = 0
    done: int = 0
    total_points: int = 0
    completed_points: int = 0
    remaining_points: int = 0
    completion_percentage: float = 0.0


__all__ = [
    "TeamMood",
    "LEGACY_MOODS",
    "AnalyticsSnapshot",
    "parse_team_mood",
    "parse_recorded_date",
    "VelocityPoint",
    "StoryPointsBar",
    "TaskCompletionSlice",
    "MoodSlice",
    "BurndownPoint",
    "DataQualityIssue",
    "AnalyticsRollup",
    "AnalyticsReport",
    "SprintStoryStats",
]
