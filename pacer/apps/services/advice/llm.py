"""Advice service backed by the LLM router."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Callable, List, Sequence

from jsonschema import Draft7Validator
from jsonschema import ValidationError as SchemaValidationError

from pacer.libs.errors import FallbackReason, TransientServiceError
from pacer.libs.json_utils import loads_llm_json
from pacer.libs.llm_router import LLMRouter, OpenRouterProvider, ProviderError
from pacer.libs.schemas.focus import CandidateTask, DueDate, EnergyLevel, MicroStep, new_id, utcnow
from pacer.libs.schemas.settings import AppSettings

from .base import BaseAdviceService, BreakdownResult, ParseResult
from .prompts import SYSTEM_PROMPT, breakdown_prompt, parse_prompt
from .rate_limit import RateLimiter

logger = logging.getLogger(__name__)

MAX_INPUT_CHARS = 2000
MAX_TASK_NAME_CHARS = 500
MAX_TASKS = 8

PARSE_SCHEMA = {
    "type": "array",
    "items": {
        "type": "object",
        "properties": {
            "id": {"type": ["string", "integer"]},
            "text": {"type": "string", "minLength": 1},
        },
        "required": ["text"],
    },
}

BREAKDOWN_SCHEMA = {
    "type": "array",
    "items": {
        "type": "object",
        "properties": {
            "id": {"type": ["string", "integer"]},
            "text": {"type": "string", "minLength": 1},
            "dueBy": {"type": ["string", "null"]},
            "timeEstimate": {"type": ["string", "null"]},
        },
        "required": ["text"],
    },
}

_PARSE_VALIDATOR = Draft7Validator(PARSE_SCHEMA)
_BREAKDOWN_VALIDATOR = Draft7Validator(BREAKDOWN_SCHEMA)


class LLMAdviceService(BaseAdviceService):
    """Prompts the model, validates its JSON and maps failures to reason codes."""

    def __init__(
        self,
        router: LLMRouter,
        *,
        model: str,
        rate_limiter: RateLimiter | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._router = router
        self._model = model
        self._rate_limiter = rate_limiter or RateLimiter()
        self._clock = clock

    async def parse(self, raw_text: str) -> ParseResult:
        text = raw_text.strip()[:MAX_INPUT_CHARS]
        items = await self._complete(parse_prompt(text), _PARSE_VALIDATOR, temperature=0.7, max_tokens=400)
        tasks = [
            CandidateTask(id=new_id("task"), text=str(item["text"]).strip())
            for item in items
            if str(item["text"]).strip()
        ][:MAX_TASKS]
        if not tasks:
            raise TransientServiceError(FallbackReason.PARSE_ERROR, "advice returned no tasks")
        return ParseResult(tasks=tasks, ai_used=True)

    async def breakdown(
        self,
        task_name: str,
        due_date: DueDate,
        energy_level: EnergyLevel,
    ) -> BreakdownResult:
        prompt = breakdown_prompt(
            task_name.strip()[:MAX_TASK_NAME_CHARS],
            DueDate(due_date),
            energy_level,
            now=self._clock(),
        )
        items = await self._complete(prompt, _BREAKDOWN_VALIDATOR, temperature=0.8, max_tokens=500)
        steps = [
            MicroStep(
                id=new_id("step"),
                text=str(item["text"]).strip(),
                due_by=item.get("dueBy"),
                time_estimate=item.get("timeEstimate"),
            )
            for item in items
            if str(item["text"]).strip()
        ]
        if not steps:
            raise TransientServiceError(FallbackReason.PARSE_ERROR, "advice returned no steps")
        return BreakdownResult(steps=steps)

    async def _complete(
        self,
        prompt: str,
        validator: Draft7Validator,
        **kwargs: Any,
    ) -> List[dict[str, Any]]:
        if not self._router.configured:
            raise TransientServiceError(FallbackReason.NO_API_KEY)
        if not self._rate_limiter.try_acquire():
            logger.warning("advice rate limit reached", extra={"limit": self._rate_limiter.max_calls})
            raise TransientServiceError(FallbackReason.RATE_LIMITED)

        messages: Sequence[dict[str, str]] = (
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        )
        try:
            response = await self._router.chat(messages=messages, model=self._model, **kwargs)
        except ProviderError as exc:
            reason = FallbackReason.RATE_LIMITED if exc.rate_limited else FallbackReason.API_ERROR
            raise TransientServiceError(reason, str(exc)) from exc

        try:
            data = loads_llm_json(response.text or "")
            validator.validate(data)
        except (json.JSONDecodeError, SchemaValidationError) as exc:
            logger.warning("advice response rejected: %s", exc)
            raise TransientServiceError(FallbackReason.PARSE_ERROR, str(exc)) from exc
        return data


def build_advice_service(settings: AppSettings) -> LLMAdviceService:
    """Wire the OpenRouter provider when a key is configured.

    Without a key the router stays empty and every call reports ``no_api_key``.
    """

    router = LLMRouter()
    if settings.openrouter_api_key:
        router.register_provider(
            "openrouter",
            OpenRouterProvider(
                settings.openrouter_api_key,
                base_url=settings.openrouter_base_url,
                timeout=settings.advice_timeout_seconds,
            ),
        )
    else:
        logger.info("no advice provider configured; pipeline will use local fallbacks")
    return LLMAdviceService(
        router,
        model=settings.advice_model,
        rate_limiter=RateLimiter(max_calls=settings.advice_rate_limit_per_minute),
    )


__all__ = ["BREAKDOWN_SCHEMA", "LLMAdviceService", "PARSE_SCHEMA", "build_advice_service"]
