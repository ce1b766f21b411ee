"""LLM router with ordered provider failover."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Sequence

from .base import BaseProvider
from .types import LLMResponse, ProviderError


class LLMRouter:
    """Try registered providers in policy order until one answers."""

    def __init__(self, *, logger: logging.Logger | None = None) -> None:
        self._providers: dict[str, BaseProvider] = {}
        self._policy: list[str] = []
        self._logger = logger or logging.getLogger(__name__)

    @property
    def configured(self) -> bool:
        return any(key in self._providers for key in self._policy)

    def register_provider(self, key: str, provider: BaseProvider) -> None:
        self._providers[key] = provider
        if key not in self._policy:
            self._policy.append(key)

    def set_policy(self, providers: Sequence[str]) -> None:
        """Assign the ordered list of provider keys to try."""

        if not providers:
            raise ValueError("Provider policy requires at least one provider key")
        self._policy = list(dict.fromkeys(providers))

    async def chat(
        self,
        *,
        messages: Sequence[Mapping[str, Any]],
        model: str,
        **kwargs: Any,
    ) -> LLMResponse:
        """Execute a chat request with automatic provider failover.

        The last provider error is re-raised unchanged so callers can still
        see its HTTP status (e.g. 429).
        """

        candidates = [key for key in self._policy if key in self._providers]
        if not candidates:
            raise ProviderError("No LLM providers registered")

        last_error: ProviderError | None = None
        for key in candidates:
            provider = self._providers[key]
            try:
                response = await provider.chat(messages=messages, model=model, **kwargs)
            except ProviderError as exc:
                self._logger.warning("Provider %s failed: %s", key, exc)
                last_error = exc
                continue
            if response.provider is None:
                response.provider = key
            self._log_usage(key, response)
            return response
        raise last_error or ProviderError("All providers failed")

    def _log_usage(self, provider_key: str, response: LLMResponse) -> None:
        usage = response.usage or {}
        self._logger.info(
            "provider=%s model=%s prompt_tokens=%s completion_tokens=%s",
            provider_key,
            response.model,
            usage.get("prompt_tokens"),
            usage.get("completion_tokens"),
        )


__all__ = ["LLMRouter"]
