"""Triage capacity check and the low-energy "too big" heuristic."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Sequence
from zoneinfo import ZoneInfo

QUICK_KEYWORDS = ("call", "email", "text", "buy", "pay", "reply")
BIG_TASK_KEYWORDS = (
    "project",
    "finish",
    "complete",
    "refactor",
    "redesign",
    "migrate",
    "overhaul",
    "organize",
    "plan",
    "build",
)
TOO_BIG_LENGTH = 50

QUICK_MINUTES = 10
DEFAULT_MINUTES = 15
LONG_TEXT_MINUTES = 30
BIG_TASK_MINUTES = 45

_QUICK_RE = re.compile(r"\b(" + "|".join(QUICK_KEYWORDS) + r")\b", re.IGNORECASE)


def _has_big_keyword(text: str) -> bool:
    lower = text.lower()
    return any(keyword in lower for keyword in BIG_TASK_KEYWORDS)


def is_task_too_big(text: str) -> bool:
    return len(text) > TOO_BIG_LENGTH or _has_big_keyword(text)


def estimate_task_minutes(text: str) -> int:
    text = text.strip()
    if _QUICK_RE.search(text):
        return QUICK_MINUTES
    if _has_big_keyword(text):
        return BIG_TASK_MINUTES
    if len(text) > TOO_BIG_LENGTH:
        return LONG_TEXT_MINUTES
    return DEFAULT_MINUTES


def remaining_minutes(
    now: datetime,
    *,
    cutoff_hour: int,
    fallback_budget: int,
    timezone: str = "UTC",
) -> int:
    """Whole minutes left before today's cutoff, or ``fallback_budget`` once past it."""

    local = now.astimezone(ZoneInfo(timezone))
    cutoff = local.replace(hour=cutoff_hour, minute=0, second=0, microsecond=0)
    if local >= cutoff:
        return fallback_budget
    return int((cutoff - local).total_seconds() // 60)


@dataclass(frozen=True)
class CapacityReport:
    total_minutes: int
    budget_minutes: int
    overcapacity: bool
    overflow_minutes: int
    can_defer: bool
    estimates: tuple[int, ...] = ()


def check_capacity(texts: Sequence[str] | Iterable[str], budget_minutes: int) -> CapacityReport:
    estimates = tuple(estimate_task_minutes(text) for text in texts)
    total = sum(estimates)
    overflow = max(0, total - budget_minutes)
    return CapacityReport(
        total_minutes=total,
        budget_minutes=budget_minutes,
        overcapacity=overflow > 0,
        overflow_minutes=overflow,
        # Deferring the only task would leave nothing to confirm.
        can_defer=overflow > 0 and len(estimates) > 1,
        estimates=estimates,
    )


__all__ = [
    "BIG_TASK_KEYWORDS",
    "CapacityReport",
    "QUICK_KEYWORDS",
    "check_capacity",
    "estimate_task_minutes",
    "is_task_too_big",
    "remaining_minutes",
]
