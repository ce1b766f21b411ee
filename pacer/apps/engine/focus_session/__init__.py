"""Focus session monitoring and optimistic plan mutations."""

from .commands import CompleteAll, Deprioritize, PlanCommand, RenamePlan, RenameStep, ToggleStep
from .deletion import PendingDeletion
from .monitor import (
    DELETION_TIMER,
    IDLE_TIMER,
    PLAN_REWARD,
    STAGNATION_TIMER,
    STEP_REWARD,
    FocusSessionMonitor,
    burst_timer,
)

__all__ = [
    "CompleteAll",
    "DELETION_TIMER",
    "Deprioritize",
    "FocusSessionMonitor",
    "IDLE_TIMER",
    "PLAN_REWARD",
    "PendingDeletion",
    "PlanCommand",
    "RenamePlan",
    "RenameStep",
    "STAGNATION_TIMER",
    "STEP_REWARD",
    "ToggleStep",
    "burst_timer",
]
