"""Pure ``(state, event) -> state`` reducer for the mode state machine.

Edges:

    recovery    --FeelingBetter-->  warming_up
    warming_up  --OkayNow-->        maintenance
    warming_up  --DwellElapsed-->   maintenance
    warming_up  --NeedMoreTime-->   recovery
    any         --MoodLogged-->     classify(sample)

A manual override pins the mode; everything except clearing the override,
another override, or a snooze is ignored while it is set. An event that is
not an edge from the current mode returns the input state object unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Union

from pacer.libs.schemas.focus import Mode, ModeState, MoodSample

from .classifier import classify


@dataclass(frozen=True)
class MoodLogged:
    sample: MoodSample
    streak_days: int = 0


@dataclass(frozen=True)
class FeelingBetter:
    pass


@dataclass(frozen=True)
class OkayNow:
    pass


@dataclass(frozen=True)
class NeedMoreTime:
    pass


@dataclass(frozen=True)
class DwellElapsed:
    pass


@dataclass(frozen=True)
class OverrideSet:
    mode: Mode


@dataclass(frozen=True)
class OverrideCleared:
    latest: MoodSample | None = None
    streak_days: int = 0


@dataclass(frozen=True)
class Snoozed:
    until: datetime


@dataclass(frozen=True)
class SnoozeExpired:
    latest: MoodSample | None = None
    streak_days: int = 0


ModeEvent = Union[
    MoodLogged,
    FeelingBetter,
    OkayNow,
    NeedMoreTime,
    DwellElapsed,
    OverrideSet,
    OverrideCleared,
    Snoozed,
    SnoozeExpired,
]

_EXPLICIT_EDGES: dict[tuple[Mode, type], Mode] = {
    (Mode.RECOVERY, FeelingBetter): Mode.WARMING_UP,
    (Mode.WARMING_UP, OkayNow): Mode.MAINTENANCE,
    (Mode.WARMING_UP, DwellElapsed): Mode.MAINTENANCE,
    (Mode.WARMING_UP, NeedMoreTime): Mode.RECOVERY,
}


def _move(state: ModeState, mode: Mode, now: datetime, **changes) -> ModeState:
    if mode != state.mode:
        changes["entered_at"] = now
    return state.model_copy(update={"mode": mode, **changes})


def reduce(state: ModeState, event: ModeEvent, *, now: datetime) -> ModeState:
    if isinstance(event, OverrideSet):
        return _move(state, event.mode, now, manual_override=True)

    if isinstance(event, OverrideCleared):
        mode = classify(event.latest, event.streak_days, now=now, snooze_until=state.snooze_until)
        return _move(state, mode, now, manual_override=False)

    if isinstance(event, Snoozed):
        mode = state.mode
        if not state.manual_override and mode == Mode.RECOVERY:
            mode = Mode.MAINTENANCE
        return _move(state, mode, now, snooze_until=event.until)

    if state.manual_override:
        if isinstance(event, SnoozeExpired):
            return state.model_copy(update={"snooze_until": None})
        return state

    if isinstance(event, SnoozeExpired):
        if state.snooze_until is None:
            return state
        mode = classify(event.latest, event.streak_days, now=now, snooze_until=None)
        return _move(state, mode, now, snooze_until=None)

    if isinstance(event, MoodLogged):
        mode = classify(event.sample, event.streak_days, now=now, snooze_until=state.snooze_until)
        return _move(state, mode, now)

    target = _EXPLICIT_EDGES.get((state.mode, type(event)))
    if target is None:
        return state
    return _move(state, target, now)


__all__ = [
    "DwellElapsed",
    "FeelingBetter",
    "ModeEvent",
    "MoodLogged",
    "NeedMoreTime",
    "OkayNow",
    "OverrideCleared",
    "OverrideSet",
    "SnoozeExpired",
    "Snoozed",
    "reduce",
]
