"""Advice service contract."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List

from pacer.libs.errors import FallbackReason
from pacer.libs.schemas.focus import CandidateTask, DueDate, EnergyLevel, MicroStep


@dataclass
class ParseResult:
    tasks: List[CandidateTask] = field(default_factory=list)
    ai_used: bool = True
    fallback_reason: FallbackReason | None = None


@dataclass
class BreakdownResult:
    steps: List[MicroStep] = field(default_factory=list)


class BaseAdviceService(ABC):
    """Turns free text into candidate tasks and tasks into micro-steps.

    Implementations raise ``TransientServiceError`` for every failure the
    caller is expected to absorb with a local fallback.
    """

    @abstractmethod
    async def parse(self, raw_text: str) -> ParseResult: ...

    @abstractmethod
    async def breakdown(
        self,
        task_name: str,
        due_date: DueDate,
        energy_level: EnergyLevel,
    ) -> BreakdownResult: ...


__all__ = ["BaseAdviceService", "BreakdownResult", "ParseResult"]
