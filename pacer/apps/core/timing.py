"""Timer durations and time-budget defaults used across the engines."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from pacer.libs.schemas.focus import utcnow
from pacer.libs.schemas.settings import AppSettings

Clock = Callable[[], datetime]

RECOVERY_RECHECK_SECONDS = 15 * 60
WARMUP_DWELL_SECONDS = 10 * 60
IDLE_SECONDS = 3 * 60
SHORT_BURST_SECONDS = 5 * 60
STAGNATION_SECONDS = 5 * 60
DELETION_UNDO_SECONDS = 5.0
DRAFT_SAVE_DEBOUNCE_SECONDS = 1.0
DRAFT_MAX_AGE_SECONDS = 2 * 60 * 60
DAILY_CUTOFF_HOUR = 21
AFTER_CUTOFF_BUDGET_MINUTES = 60


@dataclass(frozen=True)
class TimingPolicy:
    recovery_recheck: float = RECOVERY_RECHECK_SECONDS
    warmup_dwell: float = WARMUP_DWELL_SECONDS
    idle: float = IDLE_SECONDS
    short_burst: float = SHORT_BURST_SECONDS
    stagnation: float = STAGNATION_SECONDS
    deletion_undo: float = DELETION_UNDO_SECONDS
    draft_save_debounce: float = DRAFT_SAVE_DEBOUNCE_SECONDS
    draft_max_age: float = DRAFT_MAX_AGE_SECONDS
    daily_cutoff_hour: int = DAILY_CUTOFF_HOUR
    after_cutoff_budget_minutes: int = AFTER_CUTOFF_BUDGET_MINUTES
    timezone: str = "UTC"

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "TimingPolicy":
        return cls(
            recovery_recheck=settings.recovery_recheck_seconds,
            warmup_dwell=settings.warmup_dwell_seconds,
            idle=settings.idle_seconds,
            short_burst=settings.short_burst_seconds,
            stagnation=settings.stagnation_seconds,
            deletion_undo=settings.deletion_undo_seconds,
            draft_save_debounce=settings.draft_save_debounce_seconds,
            draft_max_age=settings.draft_max_age_seconds,
            daily_cutoff_hour=settings.daily_cutoff_hour,
            after_cutoff_budget_minutes=settings.after_cutoff_budget_minutes,
            timezone=settings.timezone,
        )


def system_clock() -> datetime:
    return utcnow()


__all__ = ["Clock", "TimingPolicy", "system_clock"]
