"""Keyed, cancellable timers on the running event loop.

Every session owns one ``TimerScheduler``. Timers are addressed by name
(``mode.recheck``, ``focus.idle``, ``focus.burst:<plan_id>`` ...) and arming a
name that is already armed replaces it, so re-arming is always idempotent.
Owners clear their own timers with ``cancel_prefix``.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Union

logger = logging.getLogger(__name__)

TimerCallback = Callable[[], Union[None, Awaitable[None]]]


@dataclass
class _Timer:
    key: str
    delay: float
    deadline: float
    task: asyncio.Task


class TimerScheduler:
    def __init__(self, *, owner: str = "session") -> None:
        self._owner = owner
        self._timers: dict[str, _Timer] = {}

    def arm(self, key: str, delay: float, callback: TimerCallback) -> None:
        """Arm ``key`` to run ``callback`` after ``delay`` seconds, replacing any armed timer."""

        self.cancel(key)
        loop = asyncio.get_running_loop()
        task = loop.create_task(self._run(key, delay, callback), name=f"{self._owner}:{key}")
        self._timers[key] = _Timer(key=key, delay=delay, deadline=loop.time() + delay, task=task)
        logger.debug("timer armed", extra={"timer": key, "delay": delay, "owner": self._owner})

    def cancel(self, key: str) -> bool:
        timer = self._timers.pop(key, None)
        if timer is None:
            return False
        timer.task.cancel()
        logger.debug("timer cancelled", extra={"timer": key, "owner": self._owner})
        return True

    def cancel_prefix(self, prefix: str) -> int:
        keys = [key for key in self._timers if key.startswith(prefix)]
        for key in keys:
            self.cancel(key)
        return len(keys)

    def cancel_all(self) -> None:
        self.cancel_prefix("")

    def is_armed(self, key: str) -> bool:
        return key in self._timers

    def armed(self, prefix: str = "") -> list[str]:
        return sorted(key for key in self._timers if key.startswith(prefix))

    def remaining(self, key: str) -> float | None:
        timer = self._timers.get(key)
        if timer is None:
            return None
        return max(0.0, timer.deadline - asyncio.get_running_loop().time())

    async def _run(self, key: str, delay: float, callback: TimerCallback) -> None:
        await asyncio.sleep(delay)
        timer = self._timers.get(key)
        if timer is None or timer.task is not asyncio.current_task():
            return
        # A fired timer is no longer armed; the callback is free to re-arm its key.
        del self._timers[key]
        logger.debug("timer fired", extra={"timer": key, "owner": self._owner})
        try:
            result = callback()
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("timer callback failed", extra={"timer": key, "owner": self._owner})


__all__ = ["TimerCallback", "TimerScheduler"]
