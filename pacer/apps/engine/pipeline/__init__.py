"""Brain dump to micro-step pipeline."""

from .capacity import (
    CapacityReport,
    check_capacity,
    estimate_task_minutes,
    is_task_too_big,
    remaining_minutes,
)
from .controller import DRAFT_SAVE_TIMER, EnergyGuardBlocked, PipelineController
from .fallback import breakdown_with_fallback, fallback_steps, parse_with_fallback
from .routing import GENTLE_TASK, EntryRequest, Route, route_entry

__all__ = [
    "CapacityReport",
    "DRAFT_SAVE_TIMER",
    "EnergyGuardBlocked",
    "EntryRequest",
    "GENTLE_TASK",
    "PipelineController",
    "Route",
    "breakdown_with_fallback",
    "check_capacity",
    "estimate_task_minutes",
    "fallback_steps",
    "is_task_too_big",
    "parse_with_fallback",
    "remaining_minutes",
    "route_entry",
]
