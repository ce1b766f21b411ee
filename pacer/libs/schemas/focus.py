"""Pydantic models for mood samples, modes, plans and goals."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from pacer.libs.errors import FallbackReason

EnergyLevel = Literal["low", "medium", "high"]


def new_id(prefix: str = "") -> str:
    token = uuid.uuid4().hex[:12]
    return f"{prefix}_{token}" if prefix else token


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Mode(str, Enum):
    """Affective/capacity classification driving which surface the user sees."""

    RECOVERY = "recovery"
    WARMING_UP = "warming_up"
    MAINTENANCE = "maintenance"
    GROWTH = "growth"


class DueDate(str, Enum):
    TODAY = "today"
    TOMORROW = "tomorrow"
    THIS_WEEK = "this_week"
    NO_RUSH = "no_rush"


DUE_DATE_ORDER = {
    DueDate.TODAY: 0,
    DueDate.TOMORROW: 1,
    DueDate.THIS_WEEK: 2,
    DueDate.NO_RUSH: 3,
}


class MoodSample(BaseModel):
    """A single self-reported check-in. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    created_at: datetime = Field(default_factory=utcnow)
    mood_score: int = Field(ge=0, le=10)
    energy_level: EnergyLevel | None = None
    note: str | None = None


class ModeState(BaseModel):
    """The single live mode record for a session."""

    model_config = ConfigDict(frozen=True)

    mode: Mode = Mode.MAINTENANCE
    manual_override: bool = False
    snooze_until: datetime | None = None
    entered_at: datetime = Field(default_factory=utcnow)

    def snoozed(self, now: datetime) -> bool:
        return self.snooze_until is not None and now < self.snooze_until


class MicroStep(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=lambda: new_id("step"))
    text: str
    due_by: str | None = Field(default=None, alias="dueBy")
    time_estimate: str | None = Field(default=None, alias="timeEstimate")
    completed: bool = False


class TaskPlan(BaseModel):
    """A persisted task with its ordered micro-steps.

    Progress fields are derived from ``steps`` on every read so they can never
    drift from the step list.
    """

    id: str = Field(default_factory=lambda: new_id("plan"))
    task_name: str
    steps: list[MicroStep] = Field(default_factory=list)
    due_date: DueDate | None = None
    energy_required: EnergyLevel | None = None
    related_goal_id: str | None = None
    related_step_id: str | None = None
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def completed_count(self) -> int:
        return sum(1 for step in self.steps if step.completed)

    @property
    def total_steps(self) -> int:
        return len(self.steps)

    @property
    def percent(self) -> int:
        if not self.steps:
            return 0
        return round(self.completed_count / len(self.steps) * 100)

    @property
    def is_completed(self) -> bool:
        return bool(self.steps) and self.completed_count == len(self.steps)

    def find_step(self, step_id: str) -> MicroStep | None:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    def as_row(self) -> dict[str, Any]:
        """Storage shape, including the denormalised progress columns."""

        return {
            "id": self.id,
            "task_name": self.task_name,
            "steps": [step.model_dump(mode="json", by_alias=True) for step in self.steps],
            "steps_completed": self.completed_count,
            "total_steps": self.total_steps,
            "is_completed": self.is_completed,
            "due_date": self.due_date.value if self.due_date else None,
            "energy_required": self.energy_required,
            "related_goal_id": self.related_goal_id,
            "related_step_id": self.related_step_id,
            "created_at": self.created_at,
        }


class GoalStep(BaseModel):
    id: str
    text: str
    completed: bool = False


class Goal(BaseModel):
    id: str = Field(default_factory=lambda: new_id("goal"))
    title: str
    micro_steps: list[GoalStep] = Field(default_factory=list)
    progress_percent: int = 0
    status: str = "active"
    celebration_message: str | None = None
    created_at: datetime = Field(default_factory=utcnow)

    def first_open_step(self) -> GoalStep | None:
        for step in self.micro_steps:
            if not step.completed:
                return step
        return None


class CandidateTask(BaseModel):
    id: str
    text: str


class ContextualizedTask(BaseModel):
    id: str
    text: str
    due_date: DueDate = DueDate.NO_RUSH
    energy_level: EnergyLevel = "medium"


class TaskBreakdown(BaseModel):
    task_name: str
    due_date: DueDate = DueDate.NO_RUSH
    energy_level: EnergyLevel = "medium"
    steps: list[MicroStep] = Field(default_factory=list)


class Degradation(BaseModel):
    """Marks a stage completed by local fallback instead of the advice service."""

    degraded: bool = False
    reason: FallbackReason | None = None

    @classmethod
    def fallback(cls, reason: FallbackReason) -> "Degradation":
        return cls(degraded=True, reason=reason)


__all__ = [
    "CandidateTask",
    "ContextualizedTask",
    "DUE_DATE_ORDER",
    "Degradation",
    "DueDate",
    "EnergyLevel",
    "Goal",
    "GoalStep",
    "MicroStep",
    "Mode",
    "ModeState",
    "MoodSample",
    "TaskBreakdown",
    "TaskPlan",
    "new_id",
    "utcnow",
]
