"""Per-user session context.

One ``Session`` holds every collaborator the engines share (store, advice
service, timer scheduler, signal bus, timing policy, clock) and is threaded
explicitly through the orchestration. Nothing session-scoped lives at module
level.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

from pacer.apps.core.signals import SignalBus
from pacer.apps.core.store import BaseStore, InMemoryStore
from pacer.apps.core.timers import TimerScheduler
from pacer.apps.core.timing import Clock, TimingPolicy, system_clock
from pacer.apps.engine.focus_session import FocusSessionMonitor
from pacer.apps.engine.mode import ModeEngine, compute_streak
from pacer.apps.engine.pipeline import EntryRequest, PipelineController
from pacer.apps.services.advice import BaseAdviceService, build_advice_service
from pacer.libs.errors import PersistenceError, ValidationError
from pacer.libs.schemas.drafts import SessionDraft, Stage
from pacer.libs.schemas.focus import EnergyLevel, ModeState, MoodSample, TaskPlan
from pacer.libs.schemas.settings import AppSettings, get_settings

logger = logging.getLogger(__name__)


@dataclass
class Session:
    user_id: str
    store: BaseStore
    advice: BaseAdviceService
    policy: TimingPolicy = field(default_factory=TimingPolicy)
    clock: Clock = system_clock
    recent_mood_limit: int = 14
    advice_timeout: float | None = None
    scheduler: TimerScheduler = field(init=False)
    bus: SignalBus = field(init=False)
    mode: ModeEngine = field(init=False)
    pipeline: PipelineController = field(init=False)
    focus: FocusSessionMonitor = field(init=False)

    def __post_init__(self) -> None:
        self.scheduler = TimerScheduler(owner=f"session:{self.user_id}")
        self.bus = SignalBus()
        self.mode = ModeEngine(self.scheduler, self.bus, policy=self.policy, clock=self.clock)
        self.pipeline = PipelineController(
            self.store,
            self.advice,
            self.scheduler,
            self.bus,
            user_id=self.user_id,
            policy=self.policy,
            clock=self.clock,
            advice_timeout=self.advice_timeout,
        )
        self.focus = FocusSessionMonitor(
            self.store,
            self.scheduler,
            self.bus,
            user_id=self.user_id,
            policy=self.policy,
            clock=self.clock,
            on_activity=self.mode.record_activity,
        )
        self.pipeline.on_restart(self.focus.rearm_on_restart)

    @classmethod
    def from_settings(
        cls,
        user_id: str,
        *,
        store: BaseStore | None = None,
        advice: BaseAdviceService | None = None,
        settings: AppSettings | None = None,
    ) -> "Session":
        settings = settings or get_settings()
        return cls(
            user_id=user_id,
            store=store or InMemoryStore(),
            advice=advice or build_advice_service(settings),
            policy=TimingPolicy.from_settings(settings),
            recent_mood_limit=settings.recent_mood_limit,
            advice_timeout=settings.advice_timeout_seconds,
        )

    async def open(self, request: EntryRequest | None = None) -> SessionDraft:
        """Restore mode from recent check-ins, load plans, and route into the pipeline."""

        try:
            samples = await self.store.recent_mood_samples(self.user_id, limit=self.recent_mood_limit)
        except PersistenceError as exc:
            logger.warning("mood history unavailable: %s", exc)
            samples = []
        if samples:
            self.mode.record_sample(samples[0], compute_streak(samples, self.policy.timezone))

        await self.focus.refresh()
        draft = await self.pipeline.enter(request)
        logger.info(
            "session opened",
            extra={"user_id": self.user_id, "mode": self.mode.mode.value, "stage": draft.stage.value},
        )
        return draft

    async def log_mood(
        self,
        mood_score: int,
        *,
        energy_level: EnergyLevel | None = None,
        note: str | None = None,
    ) -> ModeState:
        """Record a check-in and reclassify. The sample counts even if the write fails."""

        if not 0 <= mood_score <= 10:
            raise ValidationError("mood score must be between 0 and 10", code="out_of_range")
        sample = MoodSample(mood_score=mood_score, energy_level=energy_level, note=note, created_at=self.clock())
        samples = [sample]
        try:
            await self.store.insert_mood_sample(self.user_id, sample)
            samples = await self.store.recent_mood_samples(self.user_id, limit=self.recent_mood_limit)
        except PersistenceError as exc:
            logger.warning("mood sample not saved: %s", exc)
        if sample.id not in {s.id for s in samples}:
            samples = [sample, *samples]
        return self.mode.record_sample(sample, compute_streak(samples, self.policy.timezone))

    def snooze(self, until: datetime) -> ModeState:
        return self.mode.snooze(until)

    async def start_focusing(self) -> list[TaskPlan]:
        """Finish the pipeline and hand the new plans to the focus monitor."""

        plans = await self.pipeline.start_focusing()
        self.focus.load(plans)
        return self.focus.visible_plans()

    @property
    def stage(self) -> Stage | None:
        return self.pipeline.stage

    async def close(self) -> None:
        await self.focus.close()
        self.pipeline.close()
        self.mode.close()
        self.scheduler.cancel_all()


__all__ = ["Session"]
