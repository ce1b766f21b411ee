"""Timers, signals, timing policy and the persistence adapter."""

from .signals import Signal, SignalBus, SignalKind
from .store import BaseStore, InMemoryStore
from .timers import TimerScheduler
from .timing import Clock, TimingPolicy, system_clock

__all__ = [
    "BaseStore",
    "Clock",
    "InMemoryStore",
    "Signal",
    "SignalBus",
    "SignalKind",
    "TimerScheduler",
    "TimingPolicy",
    "system_clock",
]
