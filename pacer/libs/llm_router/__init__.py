"""Model-agnostic LLM routing utilities."""

from .base import BaseProvider
from .openrouter import OPENROUTER_DEFAULT_BASE_URL, OpenRouterProvider
from .router import LLMRouter
from .types import LLMResponse, ProviderError

__all__ = [
    "BaseProvider",
    "LLMResponse",
    "LLMRouter",
    "OPENROUTER_DEFAULT_BASE_URL",
    "OpenRouterProvider",
    "ProviderError",
]
