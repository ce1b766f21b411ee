"""Mode engine: the live ``ModeState`` plus the timers each mode owns."""

from __future__ import annotations

import logging
from datetime import datetime

from pacer.apps.core.signals import SignalBus, SignalKind
from pacer.apps.core.timers import TimerScheduler
from pacer.apps.core.timing import Clock, TimingPolicy, system_clock
from pacer.libs.schemas.focus import Mode, ModeState, MoodSample

from .classifier import classify
from .reducer import (
    DwellElapsed,
    ModeEvent,
    MoodLogged,
    OverrideCleared,
    OverrideSet,
    SnoozeExpired,
    Snoozed,
    reduce,
)

logger = logging.getLogger(__name__)

RECHECK_TIMER = "mode.recheck"
DWELL_TIMER = "mode.dwell"
SNOOZE_TIMER = "mode.snooze"

# Timers that belong to whichever mode is current; the snooze timer belongs
# to the snooze window and survives mode changes.
_MODE_OWNED_TIMERS = (RECHECK_TIMER, DWELL_TIMER)


class ModeEngine:
    def __init__(
        self,
        scheduler: TimerScheduler,
        bus: SignalBus,
        *,
        policy: TimingPolicy | None = None,
        clock: Clock = system_clock,
    ) -> None:
        self._scheduler = scheduler
        self._bus = bus
        self._policy = policy or TimingPolicy()
        self._clock = clock
        self.state = ModeState(entered_at=clock())
        self.latest_sample: MoodSample | None = None
        self.streak_days = 0

    @property
    def mode(self) -> Mode:
        return self.state.mode

    def classify(self, sample: MoodSample | None, streak_days: int = 0) -> Mode:
        return classify(sample, streak_days, now=self._clock(), snooze_until=self.state.snooze_until)

    def transition(self, event: ModeEvent) -> ModeState:
        """Apply ``event``; the most recent mode-affecting event always wins."""

        previous = self.state
        updated = reduce(previous, event, now=self._clock())
        if updated is previous:
            logger.info(
                "mode event ignored",
                extra={"event": type(event).__name__, "mode": previous.mode.value, "override": previous.manual_override},
            )
            return previous

        self.state = updated
        changed = updated.mode != previous.mode
        if changed or isinstance(event, (MoodLogged, OverrideSet, OverrideCleared)):
            self._enter(updated)
        if changed:
            logger.info(
                "mode transition",
                extra={"from": previous.mode.value, "to": updated.mode.value, "event": type(event).__name__},
            )
            self._bus.emit(
                SignalKind.MODE_CHANGED,
                previous=previous.mode.value,
                mode=updated.mode.value,
                manual_override=updated.manual_override,
            )
        return updated

    def record_sample(self, sample: MoodSample, streak_days: int = 0) -> ModeState:
        self.latest_sample = sample
        self.streak_days = streak_days
        return self.transition(MoodLogged(sample=sample, streak_days=streak_days))

    def apply_override(self, mode: Mode) -> ModeState:
        return self.transition(OverrideSet(mode=Mode(mode)))

    def clear_override(self) -> ModeState:
        return self.transition(OverrideCleared(latest=self.latest_sample, streak_days=self.streak_days))

    def snooze(self, until: datetime) -> ModeState:
        state = self.transition(Snoozed(until=until))
        delay = max(0.0, (until - self._clock()).total_seconds())
        self._scheduler.arm(SNOOZE_TIMER, delay, self._snooze_expired)
        return state

    def record_activity(self) -> None:
        """Input while in a transitional mode restarts that mode's inactivity window."""

        if self.state.manual_override:
            return
        if self.state.mode == Mode.RECOVERY:
            self._arm_recheck()
        elif self.state.mode == Mode.WARMING_UP:
            self._arm_dwell()

    def close(self) -> None:
        self._scheduler.cancel_prefix("mode.")

    def _enter(self, state: ModeState) -> None:
        for key in _MODE_OWNED_TIMERS:
            self._scheduler.cancel(key)
        if state.manual_override:
            return
        if state.mode == Mode.RECOVERY:
            self._arm_recheck()
        elif state.mode == Mode.WARMING_UP:
            self._arm_dwell()

    def _arm_recheck(self) -> None:
        self._scheduler.arm(RECHECK_TIMER, self._policy.recovery_recheck, self._recheck_due)

    def _arm_dwell(self) -> None:
        self._scheduler.arm(DWELL_TIMER, self._policy.warmup_dwell, self._dwell_elapsed)

    def _recheck_due(self) -> None:
        if self.state.mode != Mode.RECOVERY:
            return
        logger.info("recovery re-check due")
        self._bus.emit(SignalKind.RECHECK_DUE, mode=self.state.mode.value)

    def _dwell_elapsed(self) -> None:
        self.transition(DwellElapsed())

    def _snooze_expired(self) -> None:
        self.transition(SnoozeExpired(latest=self.latest_sample, streak_days=self.streak_days))


__all__ = ["DWELL_TIMER", "ModeEngine", "RECHECK_TIMER", "SNOOZE_TIMER"]
