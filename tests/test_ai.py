"""Summary: Tests for AI abstraction layer.

Importance: Ensures AI providers return expected outputs and fail with AiProviderError.
Alternatives: Skip AI testing and rely on manual verification.
"""

from __future__ import annotations

import io
import json
import urllib.error
from typing import Any

import pytest

from mailient.ai import (
    AiProviderError,
    AiProviderFactory,
    MockAiProvider,
    OllamaProvider,
    OpenAiProvider,
    OpenRouterProvider,
    estimate_tokens,
)
from mailient.config import AppConfig


class FakeResponse:
    def __init__(self, payload: dict[str, Any] | bytes) -> None:
        raw = payload if isinstance(payload, bytes) else json.dumps(payload).encode("utf-8")
        self._body = io.BytesIO(raw)

    def read(self) -> bytes:
        return self._body.read()

    def __enter__(self) -> "FakeResponse":
        return self

    def __exit__(self, *args: object) -> None:
        return None


def _config(
    ai_provider: str, openai_api_key: str | None = None, openrouter_api_key: str | None = None
) -> AppConfig:
    return AppConfig(
        db_path="test.db",
        ai_provider=ai_provider,
        openai_api_key=openai_api_key,
        openai_model="gpt-4o-mini",
        openrouter_api_key=openrouter_api_key,
        openrouter_model="deepseek/deepseek-r1-0528:free",
        openrouter_fallback_models=("qwen/qwen3-next-80b-a3b-instruct:free",),
        ollama_url="http://localhost:11434",
        ollama_model="llama3",
        api_host="127.0.0.1",
        api_port=8000,
        api_key="",
        default_user_name="Local User",
        default_user_email="local@mailient",
        token_secret="secret",
        app_base_url="http://localhost:8000",
        search_provider="mock",
        search_fixture_path="data/mock_emails.json",
        gmail_api_base_url="https://gmail.googleapis.com/gmail/v1",
        google_calendar_base_url="https://www.googleapis.com/calendar/v3",
        cal_api_url="https://api.cal.com/v2",
        cal_api_key="",
    )


def test_mock_ai_provider_returns_response() -> None:
    """Summary: Verify mock AI provider returns deterministic text.

    Importance: Confirms basic AI abstraction behavior for tests.
    Alternatives: Use live providers in integration tests only.
    """

    provider = MockAiProvider()
    response, latency = provider.generate_text("Hello", "test")
    assert response == "[mock:test] Hello"
    assert latency >= 0


def test_factory_selects_provider() -> None:
    assert isinstance(AiProviderFactory(_config("mock")).build(), MockAiProvider)
    assert isinstance(AiProviderFactory(_config("ollama")).build(), OllamaProvider)
    assert isinstance(AiProviderFactory(_config("openai", "sk-test")).build(), OpenAiProvider)
    assert AiProviderFactory(_config("ollama")).model_name() == "llama3"
    assert AiProviderFactory(_config("mock")).model_name() == "mock"


def test_factory_requires_openai_key() -> None:
    with pytest.raises(ValueError):
        AiProviderFactory(_config("openai")).build()


def test_ollama_provider_parses_response(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, Any] = {}

    def fake_urlopen(request: Any, timeout: int = 0) -> FakeResponse:
        captured["url"] = request.full_url
        captured["body"] = json.loads(request.data.decode("utf-8"))
        return FakeResponse({"response": "Hi from llama"})

    monkeypatch.setattr("urllib.request.urlopen", fake_urlopen)
    text, _latency = OllamaProvider("http://localhost:11434/", "llama3").generate_text(
        "Hello", "chat"
    )
    assert text == "Hi from llama"
    assert captured["url"] == "http://localhost:11434/api/generate"
    assert captured["body"]["model"] == "llama3"
    assert "chat" in captured["body"]["system"]


def test_openai_provider_privacy_mode_disables_storage(monkeypatch: pytest.MonkeyPatch) -> None:
    """Summary: Privacy mode asks the provider not to retain the exchange.

    Importance: Users who enable privacy mode expect ephemeral processing.
    Alternatives: Drop privacy mode for cloud providers.
    """

    bodies: list[dict[str, Any]] = []

    def fake_urlopen(request: Any, timeout: int = 0) -> FakeResponse:
        bodies.append(json.loads(request.data.decode("utf-8")))
        return FakeResponse({"choices": [{"message": {"content": "Done"}}]})

    monkeypatch.setattr("urllib.request.urlopen", fake_urlopen)
    provider = OpenAiProvider("sk-test", "gpt-4o-mini")
    text, _latency = provider.generate_text("Hello", "chat", privacy_mode=True)
    assert text == "Done"
    assert bodies[0]["store"] is False
    provider.generate_text("Hello", "chat")
    assert "store" not in bodies[1]


def test_providers_raise_ai_provider_error(monkeypatch: pytest.MonkeyPatch) -> None:
    def failing_urlopen(request: Any, timeout: int = 0) -> FakeResponse:
        raise urllib.error.URLError("connection refused")

    monkeypatch.setattr("urllib.request.urlopen", failing_urlopen)
    with pytest.raises(AiProviderError):
        OllamaProvider("http://localhost:11434", "llama3").generate_text("Hello", "chat")
    with pytest.raises(AiProviderError):
        OpenAiProvider("sk-test", "gpt-4o-mini").generate_text("Hello", "chat")


@pytest.mark.parametrize(
    "outcome", [TimeoutError("The read operation timed out"), b"<html>Bad gateway</html>"]
)
def test_providers_wrap_timeouts_and_bad_bodies(
    monkeypatch: pytest.MonkeyPatch, outcome: Exception | bytes
) -> None:
    def fake_urlopen(request: Any, timeout: int = 0) -> FakeResponse:
        if isinstance(outcome, Exception):
            raise outcome
        return FakeResponse(outcome)

    monkeypatch.setattr("urllib.request.urlopen", fake_urlopen)
    with pytest.raises(AiProviderError, match="Ollama request failed"):
        OllamaProvider("http://localhost:11434", "llama3").generate_text("Hello", "chat")
    with pytest.raises(AiProviderError, match="OpenAI request failed"):
        OpenAiProvider("sk-test", "gpt-4o-mini").generate_text("Hello", "chat")


def test_openai_provider_without_choices(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        "urllib.request.urlopen", lambda request, timeout=0: FakeResponse({"choices": []})
    )
    with pytest.raises(AiProviderError, match="no choices"):
        OpenAiProvider("sk-test", "gpt-4o-mini").generate_text("Hello", "chat")


def test_estimate_tokens() -> None:
    assert estimate_tokens("") == 1
    assert estimate_tokens("a" * 400) == 100


def _openrouter_urlopen(replies: dict[str, Any], calls: list[Any]) -> Any:
    def fake_urlopen(request: Any, timeout: int = 0) -> FakeResponse:
        calls.append(request)
        model = json.loads(request.data.decode("utf-8"))["model"]
        reply = replies[model]
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, int):
            raise urllib.error.HTTPError(
                request.full_url, reply, "error", {}, io.BytesIO(b'{"error": "nope"}')
            )
        return FakeResponse({"choices": [{"message": {"content": reply}}]})

    return fake_urlopen


def test_factory_builds_openrouter() -> None:
    factory = AiProviderFactory(_config("openrouter", openrouter_api_key="or-key"))
    assert isinstance(factory.build(), OpenRouterProvider)
    assert factory.model_name() == "deepseek/deepseek-r1-0528:free"
    with pytest.raises(ValueError):
        AiProviderFactory(_config("openrouter")).build()


def test_openrouter_walks_fallback_models(monkeypatch: pytest.MonkeyPatch) -> None:
    """Summary: Rate limits and empty replies move on to the next model.

    Importance: Free-tier models fail often and chat must keep answering.
    Alternatives: Fail the turn on the first provider error.
    """

    calls: list[Any] = []
    monkeypatch.setattr(
        "urllib.request.urlopen",
        _openrouter_urlopen({"first": 429, "second": "  ", "third": "Hello"}, calls),
    )
    provider = OpenRouterProvider(
        "or-key",
        "first",
        fallback_models=("second", "third", "first"),
        referer="http://localhost:8000",
    )
    text, _latency = provider.generate_text("Hi", "chat", privacy_mode=True)
    assert text == "Hello"
    assert [json.loads(call.data.decode("utf-8"))["model"] for call in calls] == [
        "first",
        "second",
        "third",
    ]
    request = calls[-1]
    assert request.full_url == "https://openrouter.ai/api/v1/chat/completions"
    assert request.get_header("Authorization") == "Bearer or-key"
    assert request.get_header("X-title") == "Mailient Arcus"
    assert request.get_header("Http-referer") == "http://localhost:8000"
    assert request.get_header("X-openrouter-data-collection") == "opt-out"


def test_openrouter_stops_on_client_error(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[Any] = []
    monkeypatch.setattr(
        "urllib.request.urlopen", _openrouter_urlopen({"first": 401, "second": "Hi"}, calls)
    )
    provider = OpenRouterProvider("bad-key", "first", fallback_models=("second",))
    with pytest.raises(AiProviderError) as excinfo:
        provider.generate_text("Hi", "chat")
    assert excinfo.value.status == 401
    assert len(calls) == 1
    assert calls[0].get_header("X-openrouter-data-collection") is None


def test_openrouter_all_models_fail(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[Any] = []
    monkeypatch.setattr(
        "urllib.request.urlopen", _openrouter_urlopen({"first": 503, "second": 404}, calls)
    )
    provider = OpenRouterProvider("or-key", "first", fallback_models=("second",))
    with pytest.raises(AiProviderError, match="All OpenRouter models failed"):
        provider.generate_text("Hi", "chat")
    assert len(calls) == 2


def test_openrouter_moves_past_timeouts(monkeypatch: pytest.MonkeyPatch) -> None:
    """Summary: A read timeout on one model falls through to the next model.

    Importance: Slow free-tier models must not end the whole chain.
    Alternatives: Treat timeouts as fatal.
    """

    calls: list[Any] = []
    monkeypatch.setattr(
        "urllib.request.urlopen",
        _openrouter_urlopen(
            {"first": TimeoutError("The read operation timed out"), "second": "hello"}, calls
        ),
    )
    provider = OpenRouterProvider("or-key", "first", fallback_models=("second",))
    text, _latency = provider.generate_text("Hi", "chat")
    assert text == "hello"
    assert len(calls) == 2
