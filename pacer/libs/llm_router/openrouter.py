"""OpenRouter provider used by the advice service."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Sequence

import httpx

from .base import BaseProvider
from .types import LLMResponse, ProviderError

OPENROUTER_DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"


class OpenRouterProvider(BaseProvider):
    """Provider that proxies chat completions through OpenRouter."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("OpenRouter API key is required")

        super().__init__(name="openrouter")
        self._api_key = api_key
        self._base_url = base_url or OPENROUTER_DEFAULT_BASE_URL
        self._timeout = timeout
        self._transport = transport
        self._logger = logging.getLogger(__name__)

    async def chat(
        self,
        *,
        messages: Sequence[Mapping[str, Any]],
        model: str,
        **kwargs: Any,
    ) -> LLMResponse:
        payload = {
            "model": model,
            "messages": [self._serialise_message(message) for message in messages],
            **kwargs,
        }
        response_json = await self._post("/chat/completions", payload)
        choice = (response_json.get("choices") or [{}])[0]
        message = choice.get("message") or {}

        return LLMResponse(
            model=response_json.get("model") or model,
            text=message.get("content"),
            usage=response_json.get("usage") or {},
            provider=self.name,
            raw=response_json,
        )

    async def _post(self, path: str, payload: Mapping[str, Any]) -> dict[str, Any]:
        url = f"{self._base_url.rstrip('/')}{path}"
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
            "X-Title": "Pacer",
        }

        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            try:
                response = await client.post(url, headers=headers, json=payload)
            except httpx.TimeoutException as exc:
                raise ProviderError(f"OpenRouter timed out on {url}", timeout=True) from exc
            except httpx.RequestError as exc:
                raise ProviderError(f"OpenRouter network error: {exc}") from exc
            content_type = response.headers.get("content-type", "")
            if not response.is_success:
                raise ProviderError(
                    f"OpenRouter {response.status_code} on {url}. Body: {response.text[:400]}",
                    status=response.status_code,
                )
            if "application/json" not in content_type.lower():
                raise ProviderError(
                    f"OpenRouter returned non-JSON (CT={content_type}) on {url}",
                    status=response.status_code,
                )
            return response.json()

    def _serialise_message(self, message: Mapping[str, Any]) -> dict[str, Any]:
        role = message.get("role")
        content = message.get("content")
        if role is None or content is None:
            raise ValueError("Chat messages must include 'role' and 'content'")
        return {"role": role, "content": content}


__all__ = ["OpenRouterProvider", "OPENROUTER_DEFAULT_BASE_URL"]
