"""Provider registry: which upstream LLMs exist, in what order, and which are configured."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Mapping, Sequence, Tuple

from config import Settings
from services.llm.types import ProviderSpec

# First enabled provider is tried first.
PROVIDER_ORDER: Tuple[str, ...] = ("groq", "gemini", "cohere", "huggingface")


@dataclass(frozen=True)
class ProviderRegistry:
    providers: Mapping[str, ProviderSpec]
    order: Sequence[str] = PROVIDER_ORDER

    def __post_init__(self) -> None:
        unknown = [key for key in self.order if key not in self.providers]
        if unknown:
            raise ValueError(f"Provider order references unknown providers: {', '.join(unknown)}")

    def get(self, key: str) -> ProviderSpec:
        return self.providers[key]

    def enabled_providers(self) -> List[ProviderSpec]:
        return [self.providers[key] for key in self.order if self.providers[key].enabled]

    def status(self) -> List[Dict[str, object]]:
        return [
            {
                "key": key,
                "name": self.providers[key].display_name,
                "enabled": self.providers[key].enabled,
                "timeout_seconds": self.providers[key].timeout_seconds,
            }
            for key in self.order
        ]


def build_provider_registry(settings: Settings) -> ProviderRegistry:
    """Read provider credentials once from settings."""
    providers = {
        "groq": ProviderSpec(
            key="groq",
            display_name=f"Groq ({settings.GROQ_MODEL})",
            model=settings.GROQ_MODEL,
            api_key=settings.GROQ_API_KEY,
            timeout_seconds=settings.GROQ_TIMEOUT_SECONDS,
        ),
        "gemini": ProviderSpec(
            key="gemini",
            display_name=f"Google Gemini ({settings.GEMINI_MODEL})",
            model=settings.GEMINI_MODEL,
            api_key=settings.GEMINI_API_KEY,
            timeout_seconds=settings.GEMINI_TIMEOUT_SECONDS,
        ),
        "cohere": ProviderSpec(
            key="cohere",
            display_name=f"Cohere ({settings.COHERE_MODEL})",
            model=settings.COHERE_MODEL,
            api_key=settings.COHERE_API_KEY,
            timeout_seconds=settings.COHERE_TIMEOUT_SECONDS,
        ),
        "huggingface": ProviderSpec(
            key="huggingface",
            display_name=f"HuggingFace ({settings.HF_MODEL.rsplit('/', 1)[-1]})",
            model=settings.HF_MODEL,
            api_key=settings.HF_API_KEY,
            timeout_seconds=settings.HF_TIMEOUT_SECONDS,
        ),
    }
    return ProviderRegistry(providers=providers, order=PROVIDER_ORDER)
