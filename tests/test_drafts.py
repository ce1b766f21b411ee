from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from pacer.libs.schemas.drafts import (
    BreakdownPayload,
    ContextPayload,
    SessionDraft,
    Stage,
    TriagePayload,
)
from pacer.libs.schemas.focus import CandidateTask, ContextualizedTask, MicroStep, TaskPlan

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


def test_payload_must_match_stage():
    with pytest.raises(ValidationError):
        SessionDraft(stage=Stage.TRIAGE, payload=ContextPayload(candidates=[]), saved_at=NOW)


def test_payload_is_picked_by_discriminator():
    draft = SessionDraft.model_validate(
        {
            "stage": "triage",
            "payload": {"stage": "triage", "raw_text": "buy milk", "candidates": [{"id": "t1", "text": "Buy milk"}]},
            "saved_at": NOW.isoformat(),
        }
    )

    assert isinstance(draft.payload, TriagePayload)
    assert draft.payload.candidates == [CandidateTask(id="t1", text="Buy milk")]
    assert not draft.payload.parse_pending
    assert not draft.payload.degradation.degraded


def test_unknown_stage_payload_is_rejected():
    with pytest.raises(ValidationError):
        SessionDraft.model_validate({"stage": "triage", "payload": {"stage": "someday"}})


def test_breakdown_draft_survives_json_round_trip():
    draft = SessionDraft(
        stage=Stage.BREAKDOWN,
        payload=BreakdownPayload(
            contextualized=[ContextualizedTask(id="t1", text="Write report")],
            breakdowns=[],
            breakdown_pending=True,
        ),
        saved_at=NOW,
    )

    assert SessionDraft.model_validate_json(draft.model_dump_json()) == draft


def test_plan_progress_is_derived_from_steps():
    plan = TaskPlan(
        task_name="Write report",
        steps=[
            MicroStep(id="a", text="Open", completed=True),
            MicroStep(id="b", text="Write"),
            MicroStep(id="c", text="Send"),
        ],
    )

    assert plan.completed_count == 1
    assert plan.total_steps == 3
    assert plan.percent == 33
    assert not plan.is_completed
    assert not TaskPlan(task_name="Empty").is_completed


def test_micro_step_accepts_camel_case_aliases():
    step = MicroStep.model_validate({"id": "s", "text": "Open", "dueBy": "Now", "timeEstimate": "2 min"})

    assert step.due_by == "Now"
    assert step.model_dump(by_alias=True)["timeEstimate"] == "2 min"
