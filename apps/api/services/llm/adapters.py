"""Per-provider adapters translating (prompt, system prompt, max tokens) into one upstream call.

Each adapter owns its wire format, auth and timeout. Adapters never retry;
moving on to the next provider is the orchestrator's job.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping, Optional, Tuple, Type

import httpx
import openai
from openai import AsyncOpenAI

from config import Settings
from services.llm.registry import ProviderRegistry
from services.llm.types import ProviderError, ProviderSpec


MAX_ERROR_BODY_CHARS = 500


class ProviderAdapter(ABC):
    """One upstream LLM behind a uniform text-in/text-out call."""

    def __init__(
        self,
        spec: ProviderSpec,
        *,
        base_url: str,
        temperature: float = 0.7,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.spec = spec
        self.base_url = base_url.rstrip("/")
        self.temperature = temperature
        self._transport = transport

    @property
    def key(self) -> str:
        return self.spec.key

    @property
    def timeout_seconds(self) -> float:
        return float(self.spec.timeout_seconds)

    @abstractmethod
    async def invoke(self, prompt: str, system_prompt: str, max_tokens: int) -> str:
        raise NotImplementedError


def _error_message(response: httpx.Response) -> str:
    detail: Any = None
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            detail = error.get("message")
        elif isinstance(error, str):
            detail = error
        if not detail:
            detail = body.get("message")
    if not detail:
        detail = response.text[:MAX_ERROR_BODY_CHARS] or response.reason_phrase
    return f"HTTP {response.status_code}: {detail}"


class HttpProviderAdapter(ProviderAdapter):
    """Adapter for providers called with a plain JSON POST over httpx."""

    @abstractmethod
    def build_request(
        self, prompt: str, system_prompt: str, max_tokens: int
    ) -> Tuple[str, Dict[str, Any], Dict[str, str]]:
        """Return (url, json body, headers)."""

    @abstractmethod
    def extract_text(self, data: Any) -> str:
        """Unwrap the provider's response envelope."""

    async def invoke(self, prompt: str, system_prompt: str, max_tokens: int) -> str:
        url, payload, headers = self.build_request(prompt, system_prompt, max_tokens)
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
                response = await client.post(url, json=payload, headers=headers)
        except httpx.TimeoutException as exc:
            raise ProviderError(f"Request timed out after {self.timeout_seconds:g}s") from exc
        except httpx.HTTPError as exc:
            raise ProviderError(f"Transport error: {exc}") from exc

        if response.status_code >= 400:
            raise ProviderError(_error_message(response), status_code=response.status_code)

        try:
            data = response.json()
        except ValueError as exc:
            raise ProviderError("Invalid JSON in provider response", status_code=response.status_code) from exc

        try:
            text = self.extract_text(data)
        except (KeyError, IndexError, TypeError) as exc:
            raise ProviderError(f"Unexpected response shape: {exc!r}", status_code=response.status_code) from exc

        if not isinstance(text, str) or not text.strip():
            raise ProviderError("Provider returned an empty response", status_code=response.status_code)
        return text


class GroqAdapter(ProviderAdapter):
    """Groq through its OpenAI-compatible chat completions endpoint."""

    def _client(self) -> AsyncOpenAI:
        http_client = None
        if self._transport is not None:
            http_client = httpx.AsyncClient(transport=self._transport, timeout=self.timeout_seconds)
        return AsyncOpenAI(
            api_key=self.spec.api_key,
            base_url=self.base_url,
            timeout=self.timeout_seconds,
            max_retries=0,
            http_client=http_client,
        )

    async def invoke(self, prompt: str, system_prompt: str, max_tokens: int) -> str:
        try:
            async with self._client() as client:
                response = await client.chat.completions.create(
                    model=self.spec.model,
                    messages=[
                        {"role": "system", "content": system_prompt},
                        {"role": "user", "content": prompt},
                    ],
                    max_tokens=int(max_tokens),
                    temperature=self.temperature,
                )
        except openai.APITimeoutError as exc:
            raise ProviderError(f"Request timed out after {self.timeout_seconds:g}s") from exc
        except openai.APIStatusError as exc:
            raise ProviderError(f"HTTP {exc.status_code}: {exc.message}", status_code=exc.status_code) from exc
        except openai.APIError as exc:
            raise ProviderError(f"Transport error: {exc}") from exc

        choices = response.choices or []
        content = choices[0].message.content if choices else None
        if not content or not content.strip():
            raise ProviderError("Provider returned an empty response")
        return content


class GeminiAdapter(HttpProviderAdapter):
    """Google Gemini generateContent; the system prompt is folded into the user turn."""

    def build_request(self, prompt: str, system_prompt: str, max_tokens: int):
        url = f"{self.base_url}/models/{self.spec.model}:generateContent"
        payload = {
            "contents": [{"parts": [{"text": f"{system_prompt}\n\n{prompt}"}]}],
            "generationConfig": {
                "maxOutputTokens": int(max_tokens),
                "temperature": self.temperature,
            },
        }
        headers = {"x-goog-api-key": self.spec.api_key, "Content-Type": "application/json"}
        return url, payload, headers

    def extract_text(self, data: Any) -> str:
        return data["candidates"][0]["content"]["parts"][0]["text"]


class CohereAdapter(HttpProviderAdapter):
    def build_request(self, prompt: str, system_prompt: str, max_tokens: int):
        url = f"{self.base_url}/chat"
        payload = {
            "model": self.spec.model,
            "message": prompt,
            "preamble": system_prompt,
            "max_tokens": int(max_tokens),
            "temperature": self.temperature,
        }
        headers = {"Authorization": f"Bearer {self.spec.api_key}", "Content-Type": "application/json"}
        return url, payload, headers

    def extract_text(self, data: Any) -> str:
        return data["text"]


class HuggingFaceAdapter(HttpProviderAdapter):
    """HF Inference API with a Mistral-style instruction wrapper."""

    def build_request(self, prompt: str, system_prompt: str, max_tokens: int):
        url = f"{self.base_url}/{self.spec.model}"
        payload = {
            "inputs": f"<s>[INST] {system_prompt}\n\n{prompt} [/INST]",
            "parameters": {
                "max_new_tokens": int(max_tokens),
                "temperature": self.temperature,
                "return_full_text": False,
            },
        }
        headers = {"Authorization": f"Bearer {self.spec.api_key}", "Content-Type": "application/json"}
        return url, payload, headers

    def extract_text(self, data: Any) -> str:
        # Text generation returns a list of candidates; some deployments return one object.
        if isinstance(data, list):
            return data[0]["generated_text"]
        return data["generated_text"]


ADAPTER_CLASSES: Mapping[str, Type[ProviderAdapter]] = {
    "groq": GroqAdapter,
    "gemini": GeminiAdapter,
    "cohere": CohereAdapter,
    "huggingface": HuggingFaceAdapter,
}


def _base_url_for(key: str, settings: Settings) -> str:
    return {
        "groq": settings.GROQ_BASE_URL,
        "gemini": settings.GEMINI_BASE_URL,
        "cohere": settings.COHERE_BASE_URL,
        "huggingface": settings.HF_BASE_URL,
    }[key]


def build_adapters(
    registry: ProviderRegistry,
    settings: Settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[str, ProviderAdapter]:
    """Instantiate one adapter per registered provider."""
    adapters: Dict[str, ProviderAdapter] = {}
    for key in registry.order:
        adapter_cls = ADAPTER_CLASSES[key]
        adapters[key] = adapter_cls(
            registry.get(key),
            base_url=_base_url_for(key, settings),
            temperature=settings.LLM_TEMPERATURE,
            transport=transport,
        )
    return adapters
