"""Affective mode classification and state machine."""

from .classifier import classify, is_overwhelmed
from .engine import DWELL_TIMER, RECHECK_TIMER, SNOOZE_TIMER, ModeEngine
from .reducer import (
    DwellElapsed,
    FeelingBetter,
    ModeEvent,
    MoodLogged,
    NeedMoreTime,
    OkayNow,
    OverrideCleared,
    OverrideSet,
    SnoozeExpired,
    Snoozed,
    reduce,
)
from .streak import compute_streak

__all__ = [
    "DWELL_TIMER",
    "DwellElapsed",
    "FeelingBetter",
    "ModeEngine",
    "ModeEvent",
    "MoodLogged",
    "NeedMoreTime",
    "OkayNow",
    "OverrideCleared",
    "OverrideSet",
    "RECHECK_TIMER",
    "SNOOZE_TIMER",
    "SnoozeExpired",
    "Snoozed",
    "classify",
    "compute_streak",
    "is_overwhelmed",
    "reduce",
]
