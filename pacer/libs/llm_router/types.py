"""Shared type utilities for the LLM router."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping


class ProviderError(RuntimeError):
    """A provider call failed; ``status`` carries the HTTP status when known."""

    def __init__(self, message: str, *, status: int | None = None, timeout: bool = False) -> None:
        super().__init__(message)
        self.status = status
        self.timeout = timeout

    @property
    def rate_limited(self) -> bool:
        return self.status == 429


@dataclass(slots=True)
class LLMResponse:
    """Normalised completion payload returned by providers."""

    model: str
    text: str | None = None
    usage: Mapping[str, Any] | None = None
    provider: str | None = None
    raw: Mapping[str, Any] | None = None


__all__ = ["LLMResponse", "ProviderError"]
