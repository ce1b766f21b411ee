"""Pydantic models and schema utilities."""

from .db import execute, fetch_all, fetch_one, get_async_pool
from .drafts import SessionDraft, Stage
from .focus import Goal, MicroStep, Mode, ModeState, MoodSample, TaskPlan
from .settings import AppSettings, get_settings

__all__ = [
    "AppSettings",
    "Goal",
    "MicroStep",
    "Mode",
    "ModeState",
    "MoodSample",
    "SessionDraft",
    "Stage",
    "TaskPlan",
    "execute",
    "fetch_all",
    "fetch_one",
    "get_async_pool",
    "get_settings",
]
