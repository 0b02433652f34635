"""Unit tests for the LLM provider cascade."""

from dataclasses import replace

import pytest

from tutorapi.core.exceptions import LLMError
from tutorapi.llm.client import LLMClient, LLMResult, estimate_tokens


def _client_with_providers() -> LLMClient:
    client = LLMClient(sleep=lambda _: None)
    client.settings = replace(client.settings, groq_api_key="gk", google_api_key="gg")
    client.groq_client = object()
    return client


def test_estimate_tokens() -> None:
    assert estimate_tokens("") == 0
    assert estimate_tokens("abc") == 1
    assert estimate_tokens("a" * 40) == 10


def test_no_provider_configured_raises() -> None:
    client = LLMClient(sleep=lambda _: None)

    with pytest.raises(LLMError):
        client.generate("2+2?", "system")


def test_cascade_order_and_requested_model_first() -> None:
    client = _client_with_providers()
    settings = client.settings

    assert client._cascade(None) == [
        {"provider": "groq", "model": settings.llm_model_smart},
        {"provider": "google", "model": settings.llm_model_fallback},
        {"provider": "groq", "model": settings.llm_model_fast},
    ]
    assert client._cascade("gemini-1.5-pro")[0] == {"provider": "google", "model": "gemini-1.5-pro"}


def test_falls_back_to_google_when_groq_fails(monkeypatch) -> None:
    client = _client_with_providers()
    sleeps = []
    client._sleep = sleeps.append

    def failing_groq(*args):
        raise RuntimeError("429 rate limit")

    def google(user_message, system_prompt, history, model):
        return LLMResult(content="Delta = b^2 - 4ac", model=model, usage={"total_tokens": 33})

    monkeypatch.setattr(client, "_generate_groq", failing_groq)
    monkeypatch.setattr(client, "_generate_google", google)

    result = client.generate("Co to delta?", "system")

    assert result.content == "Delta = b^2 - 4ac"
    assert result.total_tokens == 33
    assert sleeps == [1]


def test_all_providers_failing_raises_llm_error(monkeypatch) -> None:
    client = _client_with_providers()

    def failing(*args):
        raise RuntimeError("down")

    monkeypatch.setattr(client, "_generate_groq", failing)
    monkeypatch.setattr(client, "_generate_google", failing)

    with pytest.raises(LLMError) as excinfo:
        client.generate("Co to delta?", "system")

    assert "down" in excinfo.value.message


def test_usage_estimate_counts_prompt_and_completion() -> None:
    usage = LLMClient._estimate_usage([{"content": "a" * 40}, {"content": "b" * 8}], "c" * 20)

    assert usage == {"prompt_tokens": 12, "completion_tokens": 5, "total_tokens": 17}
