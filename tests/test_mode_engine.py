import asyncio
from datetime import timedelta

import pytest

from pacer.apps.core.signals import SignalKind
from pacer.apps.engine.mode import (
    DWELL_TIMER,
    RECHECK_TIMER,
    SNOOZE_TIMER,
    FeelingBetter,
    ModeEngine,
    NeedMoreTime,
    OkayNow,
)
from pacer.libs.schemas.focus import Mode, MoodSample


def _engine(scheduler, bus, policy, clock):
    return ModeEngine(scheduler, bus, policy=policy, clock=clock)


def _sample(score, clock, note=None):
    return MoodSample(mood_score=score, note=note, created_at=clock())


@pytest.mark.asyncio
async def test_recovery_arms_exactly_one_recheck(scheduler, bus, slow_policy, clock):
    engine = _engine(scheduler, bus, slow_policy, clock)

    engine.record_sample(_sample(2, clock))
    engine.record_sample(_sample(1, clock))
    engine.record_activity()

    assert engine.mode == Mode.RECOVERY
    assert scheduler.armed("mode.") == [RECHECK_TIMER]
    engine.close()


@pytest.mark.asyncio
async def test_recheck_emits_signal_without_rearming(scheduler, bus, fast_policy, clock):
    engine = _engine(scheduler, bus, fast_policy, clock)
    engine.record_sample(_sample(2, clock))

    await asyncio.sleep(fast_policy.recovery_recheck + 0.1)

    assert bus.last(SignalKind.RECHECK_DUE) is not None
    assert not scheduler.is_armed(RECHECK_TIMER)
    assert engine.mode == Mode.RECOVERY


@pytest.mark.asyncio
async def test_leaving_recovery_cancels_recheck(scheduler, bus, slow_policy, clock):
    engine = _engine(scheduler, bus, slow_policy, clock)
    engine.record_sample(_sample(2, clock))

    engine.transition(FeelingBetter())

    assert engine.mode == Mode.WARMING_UP
    assert scheduler.armed("mode.") == [DWELL_TIMER]
    changed = bus.last(SignalKind.MODE_CHANGED)
    assert changed.payload == {"previous": "recovery", "mode": "warming_up", "manual_override": False}

    engine.transition(NeedMoreTime())
    assert engine.mode == Mode.RECOVERY
    assert scheduler.armed("mode.") == [RECHECK_TIMER]

    engine.transition(FeelingBetter())
    engine.transition(OkayNow())
    assert engine.mode == Mode.MAINTENANCE
    assert scheduler.armed("mode.") == []


@pytest.mark.asyncio
async def test_warming_up_dwell_moves_to_maintenance(scheduler, bus, fast_policy, clock):
    engine = _engine(scheduler, bus, fast_policy, clock)
    engine.record_sample(_sample(1, clock))
    engine.transition(FeelingBetter())

    await asyncio.sleep(fast_policy.warmup_dwell + 0.1)

    assert engine.mode == Mode.MAINTENANCE
    assert not scheduler.is_armed(DWELL_TIMER)


@pytest.mark.asyncio
async def test_ignored_event_leaves_state_untouched(scheduler, bus, slow_policy, clock):
    engine = _engine(scheduler, bus, slow_policy, clock)
    before = engine.state

    assert engine.transition(OkayNow()) is before
    assert bus.of_kind(SignalKind.MODE_CHANGED) == []


@pytest.mark.asyncio
async def test_override_pins_mode_and_disarms_timers(scheduler, bus, slow_policy, clock):
    engine = _engine(scheduler, bus, slow_policy, clock)
    engine.record_sample(_sample(2, clock))

    engine.apply_override(Mode.GROWTH)
    assert engine.mode == Mode.GROWTH
    assert engine.state.manual_override
    assert scheduler.armed("mode.") == []

    engine.record_sample(_sample(1, clock, "overwhelmed"))
    assert engine.mode == Mode.GROWTH

    engine.clear_override()
    assert engine.mode == Mode.RECOVERY
    assert not engine.state.manual_override
    assert scheduler.armed("mode.") == [RECHECK_TIMER]
    engine.close()


@pytest.mark.asyncio
async def test_snooze_holds_maintenance_until_window_ends(scheduler, bus, slow_policy, clock):
    engine = _engine(scheduler, bus, slow_policy, clock)
    engine.record_sample(_sample(2, clock))

    engine.snooze(clock() + timedelta(hours=1))
    assert engine.mode == Mode.MAINTENANCE
    assert scheduler.is_armed(SNOOZE_TIMER)

    engine.record_sample(_sample(0, clock))
    assert engine.mode == Mode.MAINTENANCE
    engine.close()
    assert scheduler.armed() == []


@pytest.mark.asyncio
async def test_snooze_expiry_reclassifies(scheduler, bus, slow_policy, clock):
    engine = _engine(scheduler, bus, slow_policy, clock)
    engine.record_sample(_sample(2, clock))

    # The window is measured against the injected clock; expiry fires immediately.
    engine.snooze(clock())
    await asyncio.sleep(0.05)

    assert engine.state.snooze_until is None
    assert engine.mode == Mode.RECOVERY
    engine.close()


@pytest.mark.asyncio
async def test_growth_needs_streak(scheduler, bus, slow_policy, clock):
    engine = _engine(scheduler, bus, slow_policy, clock)

    engine.record_sample(_sample(9, clock), streak_days=2)
    assert engine.mode == Mode.MAINTENANCE

    engine.record_sample(_sample(9, clock), streak_days=3)
    assert engine.mode == Mode.GROWTH
