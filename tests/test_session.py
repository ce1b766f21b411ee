import asyncio
from datetime import timedelta

import pytest

from pacer.apps.core.signals import SignalKind
from pacer.apps.engine.focus_session import STAGNATION_TIMER
from pacer.apps.engine.mode import DWELL_TIMER, RECHECK_TIMER, FeelingBetter
from pacer.apps.engine.pipeline import EntryRequest
from pacer.apps.session import Session
from pacer.libs.errors import ValidationError
from pacer.libs.schemas.drafts import Stage
from pacer.libs.schemas.focus import ContextualizedTask, DueDate, MicroStep, Mode, MoodSample, TaskPlan

from conftest import USER


def _session(store, advice, policy, clock):
    return Session(user_id=USER, store=store, advice=advice, policy=policy, clock=clock, advice_timeout=1.0)


@pytest.mark.asyncio
async def test_open_restores_mode_from_history(store, advice, slow_policy, clock):
    for days_ago in range(4):
        await store.insert_mood_sample(
            USER, MoodSample(mood_score=9, created_at=clock() - timedelta(days=days_ago))
        )
    session = _session(store, advice, slow_policy, clock)

    draft = await session.open()

    assert session.mode.mode == Mode.GROWTH
    assert session.mode.streak_days == 4
    assert draft.stage == Stage.BRAIN_DUMP
    await session.close()


@pytest.mark.asyncio
async def test_low_mood_enters_recovery_and_arms_recheck(store, advice, slow_policy, clock):
    session = _session(store, advice, slow_policy, clock)
    await session.open()

    state = await session.log_mood(2, note="a bit flat")

    assert state.mode == Mode.RECOVERY
    assert session.scheduler.is_armed(RECHECK_TIMER)
    assert len(await store.recent_mood_samples(USER)) == 1

    session.snooze(clock() + timedelta(minutes=30))
    assert session.mode.mode == Mode.MAINTENANCE
    await session.close()
    assert session.scheduler.armed() == []


@pytest.mark.asyncio
async def test_mood_score_out_of_range(store, advice, slow_policy, clock):
    session = _session(store, advice, slow_policy, clock)

    with pytest.raises(ValidationError) as excinfo:
        await session.log_mood(11)
    assert excinfo.value.code == "out_of_range"


@pytest.mark.asyncio
async def test_full_flow_hands_plans_to_focus(store, advice, slow_policy, clock):
    session = _session(store, advice, slow_policy, clock)
    await session.open()

    await session.pipeline.submit_brain_dump("buy milk and call mom")
    context = await session.pipeline.confirm_triage()
    await session.pipeline.complete_context(
        [ContextualizedTask(id=t.id, text=t.text, due_date=DueDate.TODAY) for t in context.payload.candidates]
    )
    plans = await session.start_focusing()

    assert session.stage == Stage.DASHBOARD
    assert [p.task_name for p in plans] == ["Buy milk", "Call mom"]
    assert session.scheduler.is_armed(STAGNATION_TIMER)

    plan = plans[0]
    await session.focus.toggle_step(plan.id, plan.steps[0].id)
    assert bus_kinds(session).count(SignalKind.REWARD) == 1
    await session.close()


@pytest.mark.asyncio
async def test_existing_plans_open_dashboard(store, advice, slow_policy, clock):
    await store.insert_plan(USER, TaskPlan(task_name="Water plants"))
    session = _session(store, advice, slow_policy, clock)

    draft = await session.open()

    assert draft.stage == Stage.DASHBOARD
    assert [p.task_name for p in session.focus.visible_plans()] == ["Water plants"]
    await session.close()


@pytest.mark.asyncio
async def test_restart_rearms_stagnation(store, advice, fast_policy, clock):
    await store.insert_plan(USER, TaskPlan(task_name="Water plants"))
    session = _session(store, advice, fast_policy, clock)
    await session.open(EntryRequest(handoff_task="Call the bank"))

    await asyncio.sleep(fast_policy.stagnation + 0.05)
    assert len(session.bus.of_kind(SignalKind.STAGNATION_PROMPT)) == 1
    assert not session.scheduler.is_armed(STAGNATION_TIMER)

    await session.pipeline.restart()

    assert session.scheduler.is_armed(STAGNATION_TIMER)
    await session.close()


@pytest.mark.asyncio
async def test_focus_input_restarts_warming_up_dwell(store, advice, slow_policy, clock):
    plan = TaskPlan(task_name="Water plants", steps=[MicroStep(id="s1", text="Fill can"), MicroStep(id="s2", text="Water")])
    await store.insert_plan(USER, plan)
    session = _session(store, advice, slow_policy, clock)
    await session.open()
    await session.log_mood(2)
    session.mode.transition(FeelingBetter())
    assert session.mode.mode == Mode.WARMING_UP

    await asyncio.sleep(0.1)
    before = session.scheduler.remaining(DWELL_TIMER)
    await session.focus.toggle_step(plan.id, "s1")

    assert session.scheduler.remaining(DWELL_TIMER) > before
    await session.close()


def bus_kinds(session):
    return [signal.kind for signal in session.bus.history]
