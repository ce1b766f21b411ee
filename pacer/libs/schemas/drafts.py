"""Resumable pipeline snapshot models.

A draft is the whole in-progress pipeline: the stage the user is on, the
payload that stage needs, and the mode/energy/handoff flags the flow was
entered with. The payload is a discriminated union keyed by ``stage`` so a
draft whose payload does not match its stage fails validation on load.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, model_validator

from .focus import (
    CandidateTask,
    ContextualizedTask,
    Degradation,
    Mode,
    TaskBreakdown,
    utcnow,
)


class Stage(str, Enum):
    BRAIN_DUMP = "brain_dump"
    TRIAGE = "triage"
    CONTEXT = "context"
    BREAKDOWN = "breakdown"
    DASHBOARD = "dashboard"


STAGE_ORDER = [
    Stage.BRAIN_DUMP,
    Stage.TRIAGE,
    Stage.CONTEXT,
    Stage.BREAKDOWN,
    Stage.DASHBOARD,
]


class BrainDumpPayload(BaseModel):
    stage: Literal["brain_dump"] = "brain_dump"
    raw_text: str = ""


class TriagePayload(BaseModel):
    stage: Literal["triage"] = "triage"
    raw_text: str
    candidates: list[CandidateTask] = Field(default_factory=list)
    # True while parse() has been requested but has not resolved yet.
    parse_pending: bool = False
    degradation: Degradation = Field(default_factory=Degradation)
    deferred: list[CandidateTask] = Field(default_factory=list)


class ContextPayload(BaseModel):
    stage: Literal["context"] = "context"
    candidates: list[CandidateTask]
    degradation: Degradation = Field(default_factory=Degradation)
    deferred: list[CandidateTask] = Field(default_factory=list)


class BreakdownPayload(BaseModel):
    stage: Literal["breakdown"] = "breakdown"
    contextualized: list[ContextualizedTask]
    breakdowns: list[TaskBreakdown] = Field(default_factory=list)
    breakdown_pending: bool = False
    degradation: Degradation = Field(default_factory=Degradation)
    deferred: list[CandidateTask] = Field(default_factory=list)


class DashboardPayload(BaseModel):
    stage: Literal["dashboard"] = "dashboard"


DraftPayload = Annotated[
    Union[BrainDumpPayload, TriagePayload, ContextPayload, BreakdownPayload, DashboardPayload],
    Field(discriminator="stage"),
]


class DraftFlags(BaseModel):
    """How the flow was entered; carried through every snapshot."""

    mode: Mode | None = None
    energy: Literal["high", "low"] | None = None
    sprint: bool = False
    gentle: bool = False
    handoff_goal_id: str | None = None
    handoff_step_id: str | None = None


class SessionDraft(BaseModel):
    stage: Stage
    payload: DraftPayload
    flags: DraftFlags = Field(default_factory=DraftFlags)
    saved_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def _payload_matches_stage(self) -> "SessionDraft":
        if self.payload.stage != self.stage.value:
            raise ValueError(
                f"draft payload for stage '{self.payload.stage}' saved under stage '{self.stage.value}'"
            )
        return self


__all__ = [
    "BreakdownPayload",
    "BrainDumpPayload",
    "ContextPayload",
    "DashboardPayload",
    "DraftFlags",
    "DraftPayload",
    "STAGE_ORDER",
    "SessionDraft",
    "Stage",
    "TriagePayload",
]
