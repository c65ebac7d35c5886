"""Public LLM provider utilities."""

from config import Settings
from services.llm.adapters import ProviderAdapter, build_adapters
from services.llm.orchestrator import FallbackOrchestrator
from services.llm.registry import PROVIDER_ORDER, ProviderRegistry, build_provider_registry
from services.llm.types import (
    AiServiceUnavailableError,
    GenerationResult,
    ProviderError,
    ProviderFailure,
    ProviderSpec,
)


def build_orchestrator(settings: Settings) -> FallbackOrchestrator:
    """Wire the registry and adapters from process configuration."""
    registry = build_provider_registry(settings)
    return FallbackOrchestrator(registry, build_adapters(registry, settings))


__all__ = [
    "AiServiceUnavailableError",
    "FallbackOrchestrator",
    "GenerationResult",
    "PROVIDER_ORDER",
    "ProviderAdapter",
    "ProviderError",
    "ProviderFailure",
    "ProviderRegistry",
    "ProviderSpec",
    "build_adapters",
    "build_orchestrator",
    "build_provider_registry",
]
