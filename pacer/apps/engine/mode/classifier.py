"""Pure mood-to-mode classification."""

from __future__ import annotations

import re
from datetime import datetime

from pacer.libs.schemas.focus import Mode, MoodSample

RECOVERY_MAX_SCORE = 3
GROWTH_MIN_SCORE = 8
GROWTH_MIN_STREAK = 2

OVERWHELMED_RE = re.compile(r"overwhelm|too much|swamp|buried", re.IGNORECASE)


def is_overwhelmed(note: str | None) -> bool:
    return bool(note and OVERWHELMED_RE.search(note))


def classify(
    sample: MoodSample | None,
    streak_days: int = 0,
    *,
    now: datetime | None = None,
    snooze_until: datetime | None = None,
) -> Mode:
    """Map a check-in to a mode, first matching rule wins.

    1. score <= 3 or an overwhelmed note -> recovery (maintenance while snoozed)
    2. score >= 8 with a streak longer than two days -> growth
    3. anything else, including no sample at all -> maintenance
    """

    if sample is None:
        return Mode.MAINTENANCE

    if sample.mood_score <= RECOVERY_MAX_SCORE or is_overwhelmed(sample.note):
        if snooze_until is not None and now is not None and now < snooze_until:
            return Mode.MAINTENANCE
        return Mode.RECOVERY

    if sample.mood_score >= GROWTH_MIN_SCORE and streak_days > GROWTH_MIN_STREAK:
        return Mode.GROWTH

    return Mode.MAINTENANCE


__all__ = ["OVERWHELMED_RE", "classify", "is_overwhelmed"]
