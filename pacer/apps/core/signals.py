"""UI-facing signals emitted by the engines.

Rendering is somebody else's job; the engines only announce what a surface
should show (a nudge, a prompt, a reward) and the surface subscribes.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Deque, Dict, List

from pacer.libs.schemas.focus import utcnow

logger = logging.getLogger(__name__)


class SignalKind(str, Enum):
    MODE_CHANGED = "mode_changed"
    RECHECK_DUE = "recheck_due"
    STAGE_CHANGED = "stage_changed"
    DEGRADED = "degraded"
    OVERCAPACITY = "overcapacity"
    IDLE_NUDGE = "idle_nudge"
    DRIFT_PROMPT = "drift_prompt"
    BURST_EXPIRED = "burst_expired"
    STAGNATION_PROMPT = "stagnation_prompt"
    REWARD = "reward"
    GOAL_SYNC_OFFER = "goal_sync_offer"
    DELETION_PENDING = "deletion_pending"
    DELETION_COMMITTED = "deletion_committed"
    CAPTURED = "captured"
    SYNC_FAILED = "sync_failed"


@dataclass(frozen=True)
class Signal:
    kind: SignalKind
    payload: Dict[str, Any] = field(default_factory=dict)
    at: datetime = field(default_factory=utcnow)


Subscriber = Callable[[Signal], None]


class SignalBus:
    def __init__(self, *, history: int = 200) -> None:
        self._subscribers: List[Subscriber] = []
        self.history: Deque[Signal] = deque(maxlen=history)

    def subscribe(self, subscriber: Subscriber) -> Callable[[], None]:
        self._subscribers.append(subscriber)

        def _unsubscribe() -> None:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

        return _unsubscribe

    def emit(self, kind: SignalKind, /, **payload: Any) -> Signal:
        signal = Signal(kind=kind, payload=payload)
        self.history.append(signal)
        logger.debug("signal %s", kind.value, extra={"signal": kind.value})
        for subscriber in list(self._subscribers):
            try:
                subscriber(signal)
            except Exception:
                logger.exception("signal subscriber failed", extra={"signal": kind.value})
        return signal

    def of_kind(self, kind: SignalKind) -> List[Signal]:
        return [signal for signal in self.history if signal.kind == kind]

    def last(self, kind: SignalKind) -> Signal | None:
        for signal in reversed(self.history):
            if signal.kind == kind:
                return signal
        return None


__all__ = ["Signal", "SignalBus", "SignalKind"]
