from datetime import datetime, timedelta, timezone

import pytest

from pacer.apps.engine.mode import (
    DwellElapsed,
    FeelingBetter,
    MoodLogged,
    NeedMoreTime,
    OkayNow,
    OverrideCleared,
    OverrideSet,
    SnoozeExpired,
    Snoozed,
    classify,
    compute_streak,
    is_overwhelmed,
    reduce,
)
from pacer.libs.schemas.focus import Mode, ModeState, MoodSample

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


def sample(score, note=None, *, days_ago=0):
    return MoodSample(mood_score=score, note=note, created_at=NOW - timedelta(days=days_ago))


@pytest.mark.parametrize("score", [0, 1, 2, 3])
def test_low_scores_classify_as_recovery(score):
    assert classify(sample(score), 0, now=NOW) == Mode.RECOVERY


@pytest.mark.parametrize("score", [0, 3])
def test_snooze_turns_recovery_into_maintenance(score):
    until = NOW + timedelta(minutes=30)
    assert classify(sample(score), 5, now=NOW, snooze_until=until) == Mode.MAINTENANCE


def test_expired_snooze_no_longer_applies():
    until = NOW - timedelta(seconds=1)
    assert classify(sample(2), 0, now=NOW, snooze_until=until) == Mode.RECOVERY


def test_overwhelmed_note_wins_over_good_score():
    assert is_overwhelmed("Honestly it's all TOO MUCH today")
    assert classify(sample(9, "feeling overwhelmed"), 10, now=NOW) == Mode.RECOVERY


@pytest.mark.parametrize("score,streak", [(8, 3), (10, 14)])
def test_high_score_with_streak_is_growth(score, streak):
    assert classify(sample(score), streak, now=NOW) == Mode.GROWTH


@pytest.mark.parametrize("score,streak", [(8, 2), (7, 10), (5, 0)])
def test_everything_else_is_maintenance(score, streak):
    assert classify(sample(score), streak, now=NOW) == Mode.MAINTENANCE


def test_no_sample_defaults_to_maintenance():
    assert classify(None, 0, now=NOW) == Mode.MAINTENANCE


def test_streak_counts_consecutive_days():
    samples = [sample(5, days_ago=0), sample(6, days_ago=0), sample(7, days_ago=1), sample(7, days_ago=2)]
    assert compute_streak(samples) == 3


def test_streak_breaks_on_gap():
    samples = [sample(5, days_ago=0), sample(6, days_ago=1), sample(7, days_ago=3)]
    assert compute_streak(samples) == 2
    assert compute_streak([]) == 0
    assert compute_streak([sample(4)]) == 1


def test_reducer_explicit_edges():
    recovery = ModeState(mode=Mode.RECOVERY, entered_at=NOW)
    warming = reduce(recovery, FeelingBetter(), now=NOW)
    assert warming.mode == Mode.WARMING_UP

    assert reduce(warming, OkayNow(), now=NOW).mode == Mode.MAINTENANCE
    assert reduce(warming, DwellElapsed(), now=NOW).mode == Mode.MAINTENANCE
    assert reduce(warming, NeedMoreTime(), now=NOW).mode == Mode.RECOVERY


def test_reducer_ignores_events_that_are_not_edges():
    maintenance = ModeState(mode=Mode.MAINTENANCE, entered_at=NOW)
    assert reduce(maintenance, FeelingBetter(), now=NOW) is maintenance
    assert reduce(maintenance, DwellElapsed(), now=NOW) is maintenance


def test_override_pins_mode_until_cleared():
    state = reduce(ModeState(entered_at=NOW), OverrideSet(mode=Mode.GROWTH), now=NOW)
    assert state.mode == Mode.GROWTH and state.manual_override

    assert reduce(state, MoodLogged(sample=sample(1)), now=NOW) is state

    cleared = reduce(state, OverrideCleared(latest=sample(1)), now=NOW)
    assert cleared.mode == Mode.RECOVERY
    assert not cleared.manual_override


def test_snooze_forces_recovery_to_maintenance():
    recovery = ModeState(mode=Mode.RECOVERY, entered_at=NOW)
    until = NOW + timedelta(hours=1)
    snoozed = reduce(recovery, Snoozed(until=until), now=NOW)
    assert snoozed.mode == Mode.MAINTENANCE
    assert snoozed.snooze_until == until

    # A strong recovery trigger during the window still lands in maintenance.
    assert reduce(snoozed, MoodLogged(sample=sample(0, "overwhelmed")), now=NOW).mode == Mode.MAINTENANCE

    expired = reduce(snoozed, SnoozeExpired(latest=sample(0)), now=until)
    assert expired.mode == Mode.RECOVERY
    assert expired.snooze_until is None


def test_entered_at_only_moves_on_mode_change():
    state = ModeState(mode=Mode.MAINTENANCE, entered_at=NOW)
    later = NOW + timedelta(minutes=5)
    same = reduce(state, MoodLogged(sample=sample(6)), now=later)
    assert same.entered_at == NOW
    changed = reduce(state, MoodLogged(sample=sample(2)), now=later)
    assert changed.entered_at == later
