from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import List

import pytest

from pacer.apps.core.signals import SignalBus
from pacer.apps.core.store import InMemoryStore
from pacer.apps.core.timers import TimerScheduler
from pacer.apps.core.timing import TimingPolicy
from pacer.apps.services.advice import BaseAdviceService, BreakdownResult, ParseResult
from pacer.libs.errors import FallbackReason, TransientServiceError
from pacer.libs.schemas.focus import CandidateTask, MicroStep

USER = "user-1"


class FixedClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeAdvice(BaseAdviceService):
    """Scriptable advice service; set ``parse_error`` / ``breakdown_error`` to simulate outages."""

    def __init__(self) -> None:
        self.tasks: List[str] = ["Buy milk", "Call mom"]
        self.steps: List[str] = ["Open the laptop", "Write one line", "Send it"]
        self.parse_error: FallbackReason | None = None
        self.breakdown_error: FallbackReason | None = None
        self.parse_calls: List[str] = []
        self.breakdown_calls: List[tuple] = []

    async def parse(self, raw_text: str) -> ParseResult:
        self.parse_calls.append(raw_text)
        if self.parse_error is not None:
            raise TransientServiceError(self.parse_error)
        return ParseResult(
            tasks=[CandidateTask(id=f"task_{i}", text=text) for i, text in enumerate(self.tasks, start=1)]
        )

    async def breakdown(self, task_name, due_date, energy_level) -> BreakdownResult:
        self.breakdown_calls.append((task_name, due_date, energy_level))
        if self.breakdown_error is not None:
            raise TransientServiceError(self.breakdown_error)
        return BreakdownResult(
            steps=[
                MicroStep(id=f"step_{i}", text=text, due_by="Now", time_estimate="5 min")
                for i, text in enumerate(self.steps, start=1)
            ]
        )


@pytest.fixture
def clock():
    # Monday noon UTC: nine hours before the default 21:00 cutoff.
    return FixedClock(datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def advice():
    return FakeAdvice()


@pytest.fixture
def bus():
    return SignalBus()


@pytest.fixture
def scheduler():
    return TimerScheduler(owner="test")


@pytest.fixture
def fast_policy():
    return TimingPolicy(
        recovery_recheck=0.2,
        warmup_dwell=0.05,
        idle=0.05,
        short_burst=0.1,
        stagnation=0.1,
        deletion_undo=0.05,
        draft_save_debounce=0.01,
    )


@pytest.fixture
def slow_policy():
    """Timers that never fire within a test."""

    return TimingPolicy(
        recovery_recheck=60,
        warmup_dwell=60,
        idle=60,
        short_burst=60,
        stagnation=60,
        deletion_undo=60,
        draft_save_debounce=60,
    )
