"""Error taxonomy shared by the engines.

None of these are allowed to end the user's flow: callers translate
``TransientServiceError`` into a local fallback, ``ValidationError`` into a
blocked stage advance, and ``PersistenceError`` into a logged warning.
"""

from __future__ import annotations

from enum import Enum


class FallbackReason(str, Enum):
    """Why a stage was completed with local fallback logic."""

    NO_API_KEY = "no_api_key"
    API_ERROR = "api_error"
    PARSE_ERROR = "parse_error"
    RATE_LIMITED = "rate_limited"


class PacerError(Exception):
    """Base class for engine errors."""


class TransientServiceError(PacerError):
    """The advice service was unreachable, slow, or returned nothing usable."""

    def __init__(self, reason: FallbackReason, message: str | None = None) -> None:
        self.reason = FallbackReason(reason)
        super().__init__(message or self.reason.value)


class ValidationError(PacerError):
    """User input or a stage operation was rejected; nothing was persisted."""

    def __init__(self, message: str, *, code: str = "invalid") -> None:
        self.code = code
        super().__init__(message)


class PersistenceError(PacerError):
    """A store write or read failed."""


__all__ = [
    "FallbackReason",
    "PacerError",
    "PersistenceError",
    "TransientServiceError",
    "ValidationError",
]
