"""Summary: AI provider abstraction and implementations.

Importance: Centralizes LLM access for portability and auditability.
Alternatives: Call provider SDKs directly in each service.
"""

from __future__ import annotations

import json
import logging
import time
import urllib.error
import urllib.request
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from mailient.config import AppConfig


logger = logging.getLogger(__name__)

SYSTEM_PROMPT = "You are Arcus, the Mailient email assistant. Task: {purpose}."
OPENAI_BASE_URL = "https://api.openai.com/v1"
OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
RETRYABLE_STATUSES = frozenset({404, 429})


class AiProviderError(RuntimeError):
    """Summary: Raised when an AI provider request fails.

    Importance: Lets callers tell provider outages apart from programming errors.
    Alternatives: Propagate urllib errors to every caller.
    """

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class AiProvider(ABC):
    """Summary: Abstract interface for AI text generation.

    Importance: Allows switching between local and cloud LLMs without refactors.
    Alternatives: Use a single vendor SDK and accept lock-in risk.
    """

    @abstractmethod
    def generate_text(
        self, prompt: str, purpose: str, privacy_mode: bool = False
    ) -> tuple[str, int]:
        """Summary: Generate a response for a prompt, returning text and latency in ms.

        Importance: Standardizes AI outputs for downstream services.
        Alternatives: Return provider-specific response objects directly.
        """


class MockAiProvider(AiProvider):
    """Summary: Deterministic AI provider for local testing.

    Importance: Enables offline chat, drafting, and plan runs.
    Alternatives: Use a small local LLM for all development tasks.
    """

    def generate_text(
        self, prompt: str, purpose: str, privacy_mode: bool = False
    ) -> tuple[str, int]:
        # The tail of the prompt holds the user message.
        return f"[mock:{purpose}] {prompt[-240:]}", 0


class OllamaProvider(AiProvider):
    """Summary: AI provider that targets a local Ollama server.

    Importance: Keeps mailbox content on local hardware.
    Alternatives: Use llama.cpp directly with a Python binding.
    """

    def __init__(self, base_url: str, model: str) -> None:
        self._base_url = base_url.rstrip("/")
        self._model = model

    def generate_text(
        self, prompt: str, purpose: str, privacy_mode: bool = False
    ) -> tuple[str, int]:
        body = {
            "model": self._model,
            "system": SYSTEM_PROMPT.format(purpose=purpose),
            "prompt": prompt,
            "stream": False,
        }
        started = time.time()
        try:
            raw = _post_json(f"{self._base_url}/api/generate", body, {})
        except (OSError, ValueError) as exc:
            raise AiProviderError(f"Ollama request failed: {exc}") from exc
        return raw.get("response", ""), _elapsed_ms(started)


class ChatCompletionsProvider(AiProvider):
    """Summary: Base for providers speaking the OpenAI chat completions protocol.

    Importance: OpenAI and OpenRouter share one wire format and error handling.
    Alternatives: Duplicate the request code per vendor.
    """

    label = "Chat completions"
    temperature = 0.4

    def __init__(self, api_key: str, model: str, base_url: str) -> None:
        self._api_key = api_key
        self._model = model
        self._base_url = base_url.rstrip("/")

    def generate_text(
        self, prompt: str, purpose: str, privacy_mode: bool = False
    ) -> tuple[str, int]:
        started = time.time()
        content = self.complete(self._model, _messages(prompt, purpose), privacy_mode)
        return content, _elapsed_ms(started)

    def complete(self, model: str, messages: list[dict[str, str]], privacy_mode: bool) -> str:
        """Summary: Send one chat completion request and return the first choice text.

        Importance: HTTP failures carry their status so callers can decide to retry; timeouts
        and unreadable bodies surface as AiProviderError without a status.
        Alternatives: Return an empty string on every failure.
        """

        body: dict[str, Any] = {
            "model": model,
            "messages": messages,
            "temperature": self.temperature,
        }
        body.update(self.extra_body(privacy_mode))
        headers = {"Authorization": f"Bearer {self._api_key}", **self.extra_headers(privacy_mode)}
        try:
            raw = _post_json(f"{self._base_url}/chat/completions", body, headers)
        except urllib.error.HTTPError as exc:
            detail = exc.read().decode("utf-8", errors="ignore")
            raise AiProviderError(
                f"{self.label} request failed ({exc.code}): {detail[:200]}", status=exc.code
            ) from exc
        except (OSError, ValueError) as exc:
            raise AiProviderError(f"{self.label} request failed: {exc}") from exc
        choices = raw.get("choices") or []
        if not choices:
            raise AiProviderError(f"{self.label} returned no choices")
        return (choices[0].get("message") or {}).get("content") or ""

    def extra_body(self, privacy_mode: bool) -> dict[str, Any]:
        return {}

    def extra_headers(self, privacy_mode: bool) -> dict[str, str]:
        return {}


class OpenAiProvider(ChatCompletionsProvider):
    """Summary: AI provider using OpenAI's chat completion API."""

    label = "OpenAI"

    def __init__(self, api_key: str, model: str, base_url: str = OPENAI_BASE_URL) -> None:
        super().__init__(api_key, model, base_url)

    def extra_body(self, privacy_mode: bool) -> dict[str, Any]:
        return {"store": False} if privacy_mode else {}


class OpenRouterProvider(ChatCompletionsProvider):
    """Summary: OpenRouter provider that walks a chain of fallback models.

    Importance: Free-tier models are often rate limited; the next model keeps chat working.
    Alternatives: Pin a single paid model.
    """

    label = "OpenRouter"

    def __init__(
        self,
        api_key: str,
        model: str,
        fallback_models: tuple[str, ...] = (),
        referer: str = "",
        base_url: str = OPENROUTER_BASE_URL,
    ) -> None:
        super().__init__(api_key, model, base_url)
        self._models = tuple(dict.fromkeys((model, *fallback_models)))
        self._referer = referer

    def generate_text(
        self, prompt: str, purpose: str, privacy_mode: bool = False
    ) -> tuple[str, int]:
        """Summary: Try each model in order until one returns non-empty text.

        Importance: Rate limits, missing models, server errors, and empty replies move on
        to the next model; any other client error stops immediately.
        Alternatives: Retry the same model with backoff.
        """

        started = time.time()
        messages = _messages(prompt, purpose)
        last_error = "no models configured"
        for model in self._models:
            try:
                content = self.complete(model, messages, privacy_mode)
            except AiProviderError as exc:
                if exc.status is not None and not _retryable(exc.status):
                    raise
                logger.warning("OpenRouter model %s failed: %s", model, exc)
                last_error = str(exc)
                continue
            if content.strip():
                return content, _elapsed_ms(started)
            logger.warning("OpenRouter model %s returned an empty response", model)
            last_error = f"{model} returned an empty response"
        raise AiProviderError(f"All OpenRouter models failed: {last_error}")

    def extra_headers(self, privacy_mode: bool) -> dict[str, str]:
        headers = {"X-Title": "Mailient Arcus"}
        if self._referer:
            headers["HTTP-Referer"] = self._referer
        if privacy_mode:
            headers["X-OpenRouter-Data-Collection"] = "opt-out"
        return headers


@dataclass(frozen=True)
class AiProviderFactory:
    """Summary: Factory for selecting AI providers from configuration.

    Importance: Keeps provider selection logic centralized.
    Alternatives: Wire providers manually at the application entrypoint.
    """

    config: AppConfig

    def build(self) -> AiProvider:
        """Summary: Construct the configured AI provider, defaulting to the mock."""

        provider = self.config.ai_provider
        if provider == "ollama":
            return OllamaProvider(self.config.ollama_url, self.config.ollama_model)
        if provider == "openai":
            if not self.config.openai_api_key:
                raise ValueError("OPENAI_API_KEY is required for openai provider")
            return OpenAiProvider(self.config.openai_api_key, self.config.openai_model)
        if provider == "openrouter":
            if not self.config.openrouter_api_key:
                raise ValueError("OPENROUTER_API_KEY is required for openrouter provider")
            return OpenRouterProvider(
                self.config.openrouter_api_key,
                self.config.openrouter_model,
                fallback_models=self.config.openrouter_fallback_models,
                referer=self.config.app_base_url,
            )
        return MockAiProvider()

    def model_name(self) -> str:
        """Summary: Return the model name recorded in AI audit rows."""

        return {
            "openai": self.config.openai_model,
            "openrouter": self.config.openrouter_model,
            "ollama": self.config.ollama_model,
        }.get(self.config.ai_provider, "mock")


def estimate_tokens(text: str) -> int:
    """Summary: Estimate tokens from text length.

    Importance: Provides a rough metric for AI usage auditing.
    Alternatives: Use provider token counters or tiktoken.
    """

    return max(1, len(text) // 4)


def _messages(prompt: str, purpose: str) -> list[dict[str, str]]:
    return [
        {"role": "system", "content": SYSTEM_PROMPT.format(purpose=purpose)},
        {"role": "user", "content": prompt},
    ]


def _retryable(status: int) -> bool:
    return status in RETRYABLE_STATUSES or status >= 500


def _elapsed_ms(started: float) -> int:
    return int((time.time() - started) * 1000)


def _post_json(url: str, body: dict[str, Any], headers: dict[str, str]) -> dict[str, Any]:
    request = urllib.request.Request(
        url=url,
        data=json.dumps(body).encode("utf-8"),
        headers={"Content-Type": "application/json", **headers},
        method="POST",
    )
    with urllib.request.urlopen(request, timeout=60) as response:
        return json.loads(response.read().decode("utf-8"))
