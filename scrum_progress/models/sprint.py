from __future__ import annotations

from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Optional

from pydantic import Field, field_validator, model_validator

from .base import DomainModel, EntityId


class SprintStatus(str, Enum):
    PLANNED = "PLANNED"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

    @classmethod
    def _missing_(cls, value: object) -> Optional["SprintStatus"]:
        # The REST API still reports running sprints as IN_PROGRESS
        if isinstance(value, str):
            normalized = value.strip().upper()
            if normalized == "IN_PROGRESS":
                return cls.ACTIVE
            for member in cls:
                if member.value == normalized:
                    return member
        return None

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_SPRINT_STATUSES


TERMINAL_SPRINT_STATUSES = frozenset({SprintStatus.COMPLETED, SprintStatus.CANCELLED})

MAX_SPRINT_NAME_LENGTH = 100


class Project(DomainModel):
    id: EntityId
    name: str = ""
    progress: float = 0.0


class Sprint(DomainModel):
    id: Optional[EntityId] = None
    sprint_number: int = Field(gt=0)
    name: str
    goal: Optional[str] = None
    start_date: date
    end_date: date
    status: SprintStatus = SprintStatus.PLANNED
    project_id: Optional[EntityId] = None
    completed_at: Optional[date] = None
    team_mood: Optional[str] = None

    @field_validator("name")
    @classmethod
    def _validate_name(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("Sprint name cannot be empty")
        if len(value) > MAX_SPRINT_NAME_LENGTH:
            raise ValueError(
                f"Sprint name cannot exceed {MAX_SPRINT_NAME_LENGTH} characters"
            )
        return value

    @model_validator(mode="after")
    def _validate_dates(self) -> "Sprint":
        if self.end_date < self.start_date:
            raise ValueError("End date cannot be before start date")
        return self

    @property
    def is_frozen(self) -> bool:
        """Completed and cancelled sprints lock their stories."""
        return self.status.is_terminal

    @property
    def display_name(self) -> str:
        return f"Sprint {self.sprint_number}: {self.name}"

    @property
    def duration_days(self) -> int:
        return (self.end_date - self.start_date).days

    def days_remaining(self, today: Optional[date] = None) -> int:
        today = today or date.today()
        if today > self.end_date:
            return 0
        return (self.end_date - today).days

    def is_overdue(self, today: Optional[date] = None) -> bool:
        today = today or date.today()
        return today > self.end_date and self.status != SprintStatus.COMPLETED

    def time_progress_percentage(self, today: Optional[date] = None) -> float:
        """Share of the sprint's calendar time already elapsed, 0-100."""
        today = today or date.today()
        if today < self.start_date:
            return 0.0
        if today > self.end_date:
            return 100.0
        if self.duration_days == 0:
            return 0.0

        elapsed = Decimal((today - self.start_date).days) / Decimal(self.duration_days)
        return float((elapsed * 100).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))

    def status_description(self, today: Optional[date] = None) -> str:
        if self.status == SprintStatus.PLANNED:
            return "Sprint is planned and waiting to start"
        if self.status == SprintStatus.ACTIVE:
            if self.is_overdue(today):
                return "Sprint is in progress but overdue"
            return "Sprint is currently in progress"
        if self.status == SprintStatus.COMPLETED:
            return "Sprint has been completed"
        return "Sprint was cancelled"


__all__ = [
    "SprintStatus",
    "TERMINAL_SPRINT_STATUSES",
    "Project",
    "Sprint",
]
