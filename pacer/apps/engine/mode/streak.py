"""Check-in streak over recent mood samples."""

from __future__ import annotations

from datetime import date, tzinfo
from typing import Sequence
from zoneinfo import ZoneInfo

from pacer.libs.schemas.focus import MoodSample


def _day(sample: MoodSample, tz: tzinfo) -> date:
    return sample.created_at.astimezone(tz).date()


def compute_streak(samples: Sequence[MoodSample], timezone: str = "UTC") -> int:
    """Number of consecutive local days with at least one check-in.

    Counting starts at the newest sample; several samples on one day count
    once and the first gap of more than a day ends the streak.
    """

    if not samples:
        return 0

    tz = ZoneInfo(timezone)
    ordered = sorted(samples, key=lambda s: s.created_at, reverse=True)
    streak = 1
    for newer, older in zip(ordered, ordered[1:]):
        gap = (_day(newer, tz) - _day(older, tz)).days
        if gap == 1:
            streak += 1
        elif gap > 1:
            break
    return streak


__all__ = ["compute_streak"]
