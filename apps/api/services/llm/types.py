"""LLM provider contracts."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional


class ProviderError(RuntimeError):
    """Raised by an adapter when one upstream call fails (transport, timeout, non-2xx, bad body)."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    @property
    def is_auth_error(self) -> bool:
        return self.status_code in (401, 403)


@dataclass(frozen=True)
class ProviderFailure:
    provider: str
    display_name: str
    message: str
    status_code: Optional[int] = None


class AiServiceUnavailableError(RuntimeError):
    """Raised when no provider is enabled or every enabled provider failed."""

    code = "AI_SERVICE_UNAVAILABLE"

    def __init__(self, message: str, failures: Optional[List[ProviderFailure]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.failures: List[ProviderFailure] = list(failures or [])


@dataclass(frozen=True)
class GenerationResult:
    text: str
    processing_ms: int
    model: str
    provider: str


@dataclass(frozen=True)
class ProviderSpec:
    key: str
    display_name: str
    model: str
    api_key: str = field(default="", repr=False)
    timeout_seconds: float = 30.0

    @property
    def enabled(self) -> bool:
        return bool((self.api_key or "").strip())
