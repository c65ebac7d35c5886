"""Deterministic multi-provider fallback for text generation."""

from __future__ import annotations

import logging
import time
from typing import List, Mapping

from services.llm.adapters import ProviderAdapter
from services.llm.registry import ProviderRegistry
from services.llm.types import (
    AiServiceUnavailableError,
    GenerationResult,
    ProviderError,
    ProviderFailure,
)

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = "You are a professional career document writer."
DEFAULT_MAX_TOKENS = 1000


class FallbackOrchestrator:
    """Tries enabled providers in registry order until one returns text.

    The first healthy provider always wins; later providers are only reached
    when every earlier one failed for this call. There is no outer timeout:
    each adapter enforces its own.
    """

    def __init__(self, registry: ProviderRegistry, adapters: Mapping[str, ProviderAdapter]) -> None:
        missing = [spec.key for spec in registry.enabled_providers() if spec.key not in adapters]
        if missing:
            raise ValueError(f"No adapter registered for enabled providers: {', '.join(missing)}")
        self.registry = registry
        self.adapters = adapters

    async def generate_with_fallback(
        self,
        prompt: str,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        max_tokens: int = DEFAULT_MAX_TOKENS,
    ) -> GenerationResult:
        enabled = self.registry.enabled_providers()
        if not enabled:
            raise AiServiceUnavailableError(
                "No LLM providers configured. Please add at least one API key "
                "(GROQ_API_KEY, GEMINI_API_KEY, COHERE_API_KEY, or HF_API_KEY)."
            )

        failures: List[ProviderFailure] = []
        for spec in enabled:
            adapter = self.adapters[spec.key]
            logger.info("Trying LLM provider: %s", spec.display_name)
            started = time.perf_counter()
            try:
                text = await adapter.invoke(prompt, system_prompt, max_tokens)
            except ProviderError as exc:
                failures.append(
                    ProviderFailure(
                        provider=spec.key,
                        display_name=spec.display_name,
                        message=exc.message,
                        status_code=exc.status_code,
                    )
                )
                logger.warning("LLM provider %s failed: %s; trying next provider", spec.display_name, exc.message)
                if exc.is_auth_error:
                    logger.error("LLM provider %s rejected its credentials; check its API key", spec.display_name)
                continue

            processing_ms = int((time.perf_counter() - started) * 1000)
            logger.info("LLM provider %s responded in %sms", spec.display_name, processing_ms)
            return GenerationResult(
                text=text.strip(),
                processing_ms=processing_ms,
                model=spec.display_name,
                provider=spec.key,
            )

        summary = " | ".join(f"{failure.display_name}: {failure.message}" for failure in failures)
        raise AiServiceUnavailableError(f"All AI providers failed. Errors: {summary}", failures=failures)
