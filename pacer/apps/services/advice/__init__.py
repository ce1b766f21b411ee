"""Advice service: brain-dump parsing and micro-step breakdowns."""

from .base import BaseAdviceService, BreakdownResult, ParseResult
from .llm import LLMAdviceService, build_advice_service
from .rate_limit import RateLimiter

__all__ = [
    "BaseAdviceService",
    "BreakdownResult",
    "LLMAdviceService",
    "ParseResult",
    "RateLimiter",
    "build_advice_service",
]
