import json

import httpx
import pytest

from services.llm import ProviderError, ProviderSpec
from services.llm.adapters import CohereAdapter, GeminiAdapter, GroqAdapter, HuggingFaceAdapter


def _spec(key: str, model: str = "test-model", timeout: float = 5.0) -> ProviderSpec:
    return ProviderSpec(key=key, display_name=key, model=model, api_key=f"{key}-secret", timeout_seconds=timeout)


def _adapter(cls, key, handler, base_url="https://provider.test/v1", **spec_kwargs):
    return cls(_spec(key, **spec_kwargs), base_url=base_url, temperature=0.7, transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_gemini_posts_generate_content_and_unwraps_candidate():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["key"] = request.headers.get("x-goog-api-key")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": "Gemini says hi"}]}}]})

    adapter = _adapter(GeminiAdapter, "gemini", handler, model="gemini-1.5-flash")
    text = await adapter.invoke("Write a resume", "You are a writer", 900)

    assert text == "Gemini says hi"
    assert seen["url"] == "https://provider.test/v1/models/gemini-1.5-flash:generateContent"
    assert seen["key"] == "gemini-secret"
    assert seen["body"]["contents"][0]["parts"][0]["text"] == "You are a writer\n\nWrite a resume"
    assert seen["body"]["generationConfig"]["maxOutputTokens"] == 900


@pytest.mark.asyncio
async def test_cohere_auth_failure_carries_status_and_upstream_message():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["authorization"] == "Bearer cohere-secret"
        assert json.loads(request.content)["preamble"] == "system"
        return httpx.Response(401, json={"message": "invalid api token"})

    adapter = _adapter(CohereAdapter, "cohere", handler)

    with pytest.raises(ProviderError) as excinfo:
        await adapter.invoke("prompt", "system", 100)

    assert excinfo.value.status_code == 401
    assert excinfo.value.is_auth_error
    assert excinfo.value.message == "HTTP 401: invalid api token"


@pytest.mark.asyncio
async def test_huggingface_accepts_list_envelope_and_wraps_instruction():
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        assert request.url.path == "/models/mistralai/Mistral-7B-Instruct-v0.2"
        assert body["inputs"] == "<s>[INST] sys\n\nuser prompt [/INST]"
        assert body["parameters"]["max_new_tokens"] == 50
        return httpx.Response(200, json=[{"generated_text": "HF output"}])

    adapter = _adapter(
        HuggingFaceAdapter,
        "huggingface",
        handler,
        base_url="https://hf.test/models",
        model="mistralai/Mistral-7B-Instruct-v0.2",
    )

    assert await adapter.invoke("user prompt", "sys", 50) == "HF output"


@pytest.mark.asyncio
async def test_timeout_and_empty_and_malformed_responses_become_provider_errors():
    def timeout_handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(ProviderError, match="timed out after 5s"):
        await _adapter(GeminiAdapter, "gemini", timeout_handler).invoke("p", "s", 10)

    def empty_handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"text": "   "})

    with pytest.raises(ProviderError, match="empty response"):
        await _adapter(CohereAdapter, "cohere", empty_handler).invoke("p", "s", 10)

    def malformed_handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"candidates": []})

    with pytest.raises(ProviderError, match="Unexpected response shape"):
        await _adapter(GeminiAdapter, "gemini", malformed_handler).invoke("p", "s", 10)


@pytest.mark.asyncio
async def test_groq_uses_openai_compatible_chat_completions():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["auth"] = request.headers.get("authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "id": "chatcmpl-1",
                "object": "chat.completion",
                "created": 0,
                "model": "llama-3.1-8b-instant",
                "choices": [
                    {
                        "index": 0,
                        "message": {"role": "assistant", "content": "Groq resume"},
                        "finish_reason": "stop",
                    }
                ],
            },
        )

    adapter = _adapter(GroqAdapter, "groq", handler, base_url="https://groq.test/openai/v1", model="llama-3.1-8b-instant")
    text = await adapter.invoke("prompt", "system", 77)

    assert text == "Groq resume"
    assert seen["path"] == "/openai/v1/chat/completions"
    assert seen["auth"] == "Bearer groq-secret"
    assert seen["body"]["messages"][0] == {"role": "system", "content": "system"}
    assert seen["body"]["max_tokens"] == 77


@pytest.mark.asyncio
async def test_groq_server_error_is_not_retried():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(500, json={"error": {"message": "overloaded"}})

    adapter = _adapter(GroqAdapter, "groq", handler, base_url="https://groq.test/openai/v1")

    with pytest.raises(ProviderError) as excinfo:
        await adapter.invoke("prompt", "system", 10)

    assert excinfo.value.status_code == 500
    assert len(calls) == 1
