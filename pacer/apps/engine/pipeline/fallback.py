"""Advice calls wrapped with the deterministic local fallbacks."""

from __future__ import annotations

import asyncio
import logging
from typing import List, Tuple

from pacer.apps.services.advice import BaseAdviceService
from pacer.libs.errors import FallbackReason, TransientServiceError
from pacer.libs.schemas.focus import (
    CandidateTask,
    ContextualizedTask,
    Degradation,
    MicroStep,
    TaskBreakdown,
    new_id,
)

logger = logging.getLogger(__name__)

FALLBACK_STEPS = (
    ("Note the first tiny action", "Now", "2 min"),
    ("Gather what's needed", "Next", "5 min"),
    ("Set a timer and start", "After that", "10 min"),
)


def fallback_candidates(raw_text: str) -> List[CandidateTask]:
    return [CandidateTask(id=new_id("task"), text=raw_text.strip())]


def fallback_steps() -> List[MicroStep]:
    return [
        MicroStep(id=new_id("step"), text=text, due_by=due_by, time_estimate=estimate)
        for text, due_by, estimate in FALLBACK_STEPS
    ]


async def parse_with_fallback(
    advice: BaseAdviceService,
    raw_text: str,
    *,
    timeout: float,
) -> Tuple[List[CandidateTask], Degradation]:
    try:
        result = await asyncio.wait_for(advice.parse(raw_text), timeout=timeout)
    except asyncio.TimeoutError:
        reason = FallbackReason.API_ERROR
        logger.warning("parse timed out after %ss; using fallback", timeout)
    except TransientServiceError as exc:
        reason = exc.reason
        logger.warning("parse unavailable (%s); using fallback", reason.value)
    except Exception:
        reason = FallbackReason.API_ERROR
        logger.exception("parse failed unexpectedly; using fallback")
    else:
        tasks = [task for task in result.tasks if task.text.strip()]
        if tasks and result.ai_used:
            return tasks, Degradation()
        reason = result.fallback_reason or FallbackReason.PARSE_ERROR
        logger.warning("parse returned nothing usable (%s); using fallback", reason.value)
    return fallback_candidates(raw_text), Degradation.fallback(reason)


async def breakdown_with_fallback(
    advice: BaseAdviceService,
    task: ContextualizedTask,
    *,
    timeout: float,
) -> Tuple[TaskBreakdown, Degradation]:
    degradation = Degradation()
    try:
        result = await asyncio.wait_for(
            advice.breakdown(task.text, task.due_date, task.energy_level),
            timeout=timeout,
        )
        steps = [step for step in result.steps if step.text.strip()]
        if not steps:
            raise TransientServiceError(FallbackReason.PARSE_ERROR, "no steps returned")
    except asyncio.TimeoutError:
        logger.warning("breakdown timed out after %ss; using fallback", timeout)
        degradation = Degradation.fallback(FallbackReason.API_ERROR)
    except TransientServiceError as exc:
        logger.warning("breakdown unavailable (%s); using fallback", exc.reason.value)
        degradation = Degradation.fallback(exc.reason)
    except Exception:
        logger.exception("breakdown failed unexpectedly; using fallback")
        degradation = Degradation.fallback(FallbackReason.API_ERROR)

    if degradation.degraded:
        steps = fallback_steps()
    breakdown = TaskBreakdown(
        task_name=task.text,
        due_date=task.due_date,
        energy_level=task.energy_level,
        steps=[step.model_copy(update={"completed": False}) for step in steps],
    )
    return breakdown, degradation


__all__ = [
    "FALLBACK_STEPS",
    "breakdown_with_fallback",
    "fallback_candidates",
    "fallback_steps",
    "parse_with_fallback",
]
