"""Entry-point routing for the task pipeline.

Rules are evaluated once, highest priority first:

(a) an unexpired, unfinished draft resumes where it was saved
(b) a handoff that names a task goes straight to context
(c) gentle mode with low energy goes straight to breakdown
    (sprint mode with high energy starts at brain_dump with the sprint flag)
(d) existing unfinished plans open the dashboard
(e) active goals with no plans seed context with the top goal
(f) everything else starts at brain_dump
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Literal, Sequence

from pacer.libs.schemas.drafts import (
    BreakdownPayload,
    BrainDumpPayload,
    ContextPayload,
    DashboardPayload,
    DraftFlags,
    SessionDraft,
    Stage,
)
from pacer.libs.schemas.focus import (
    CandidateTask,
    ContextualizedTask,
    DueDate,
    Goal,
    MicroStep,
    Mode,
    TaskBreakdown,
    TaskPlan,
)

GENTLE_TASK = "Just 5 minutes of low-demand work"
GENTLE_STEPS = (
    ("Pick the smallest thing on your list", "Now", "1 min"),
    ("Set a 5-minute timer", "Next", "1 min"),
    ("Work until the timer ends, then stop", "After that", "5 min"),
)


@dataclass(frozen=True)
class EntryRequest:
    """How the user arrived at the pipeline."""

    handoff_task: str | None = None
    handoff_goal_id: str | None = None
    handoff_step_id: str | None = None
    mode: Literal["sprint", "gentle"] | None = None
    energy: Literal["high", "low"] | None = None

    @property
    def sprint(self) -> bool:
        return self.mode == "sprint" and self.energy == "high"

    @property
    def gentle(self) -> bool:
        return self.mode == "gentle" and self.energy == "low"

    def flags(self) -> DraftFlags:
        mode = None
        if self.mode == "gentle":
            mode = Mode.RECOVERY
        elif self.mode == "sprint":
            mode = Mode.GROWTH
        return DraftFlags(
            mode=mode,
            energy=self.energy,
            sprint=self.sprint,
            gentle=self.gentle,
            handoff_goal_id=self.handoff_goal_id,
            handoff_step_id=self.handoff_step_id,
        )


@dataclass(frozen=True)
class Route:
    rule: str
    draft: SessionDraft

    @property
    def stage(self) -> Stage:
        return self.draft.stage


def draft_expired(draft: SessionDraft, now: datetime, max_age_seconds: float) -> bool:
    return (now - draft.saved_at).total_seconds() > max_age_seconds


def gentle_draft(flags: DraftFlags, now: datetime) -> SessionDraft:
    task = ContextualizedTask(id="gentle_1", text=GENTLE_TASK, due_date=DueDate.TODAY, energy_level="low")
    steps = [
        MicroStep(id=f"gentle_step_{index}", text=text, due_by=due_by, time_estimate=estimate)
        for index, (text, due_by, estimate) in enumerate(GENTLE_STEPS, start=1)
    ]
    breakdown = TaskBreakdown(task_name=task.text, due_date=task.due_date, energy_level="low", steps=steps)
    return SessionDraft(
        stage=Stage.BREAKDOWN,
        payload=BreakdownPayload(contextualized=[task], breakdowns=[breakdown]),
        flags=flags,
        saved_at=now,
    )


def route_entry(
    request: EntryRequest,
    *,
    draft: SessionDraft | None,
    plans: Sequence[TaskPlan],
    goals: Sequence[Goal],
    now: datetime,
) -> Route:
    """Pick the starting stage. ``draft`` must already be filtered for expiry."""

    if draft is not None and draft.stage != Stage.DASHBOARD:
        return Route("resume", draft)

    flags = request.flags()

    if request.handoff_task and request.handoff_task.strip():
        task = CandidateTask(id="handoff_1", text=request.handoff_task.strip())
        return Route(
            "handoff",
            SessionDraft(stage=Stage.CONTEXT, payload=ContextPayload(candidates=[task]), flags=flags, saved_at=now),
        )

    if request.gentle:
        return Route("gentle", gentle_draft(flags, now))

    if request.sprint:
        return Route(
            "sprint",
            SessionDraft(stage=Stage.BRAIN_DUMP, payload=BrainDumpPayload(), flags=flags, saved_at=now),
        )

    if plans:
        return Route(
            "plans",
            SessionDraft(stage=Stage.DASHBOARD, payload=DashboardPayload(), flags=flags, saved_at=now),
        )

    if goals:
        goal = goals[0]
        step = goal.first_open_step()
        text = step.text if step else goal.title
        seeded = flags.model_copy(
            update={"handoff_goal_id": goal.id, "handoff_step_id": step.id if step else None}
        )
        return Route(
            "goal",
            SessionDraft(
                stage=Stage.CONTEXT,
                payload=ContextPayload(candidates=[CandidateTask(id="goal_1", text=text)]),
                flags=seeded,
                saved_at=now,
            ),
        )

    return Route(
        "fresh",
        SessionDraft(stage=Stage.BRAIN_DUMP, payload=BrainDumpPayload(), flags=flags, saved_at=now),
    )


__all__ = [
    "EntryRequest",
    "GENTLE_STEPS",
    "GENTLE_TASK",
    "Route",
    "draft_expired",
    "gentle_draft",
    "route_entry",
]
