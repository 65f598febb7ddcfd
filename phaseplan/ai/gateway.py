"""
Phase Planning Platform
LLM Gateway.

One entry point for every LLM call made by the insight texts:
    - routes a model name to its provider by prefix ("claude-" → Anthropic)
    - retries transient failures with capped exponential backoff (1s, 2s, 4s)
    - logs latency and token usage per call

Without ANTHROPIC_API_KEY no provider is registered; callers check
``is_available`` and fall back to rule-based texts.

Usage:
    gw = LLMGateway()
    if gw.is_available(model):
        reply = gw.chat(messages, model, purpose="phase_insight", max_tokens=500)
        reply["content"]
"""

import logging
import os
import threading
import time
from abc import ABC, abstractmethod

import anthropic

logger = logging.getLogger(__name__)

DEFAULT_CHAT_MODEL = "claude-3-haiku-20240307"
DEFAULT_MAX_TOKENS = 1024
DEFAULT_TEMPERATURE = 0.3
MAX_BACKOFF_SECONDS = 4


class LLMUnavailableError(RuntimeError):
    """No provider is configured for the requested model."""


class LLMProvider(ABC):
    """A chat-completion backend."""

    @abstractmethod
    def chat(self, messages: list, model: str, **kwargs) -> dict:
        """
        Args:
            messages: ``[{"role": "system"|"user"|"assistant", "content": str}, ...]``
            model: Provider model id.
            **kwargs: max_tokens, temperature.

        Returns:
            ``{"content", "prompt_tokens", "completion_tokens", "model"}``
        """


class AnthropicProvider(LLMProvider):
    """Claude via the Anthropic Messages API."""

    def __init__(self, api_key: str | None = None):
        self.api_key = api_key or os.getenv("ANTHROPIC_API_KEY", "")
        self._client = None

    @property
    def client(self):
        if self._client is None:
            self._client = anthropic.Anthropic(api_key=self.api_key)
        return self._client

    def chat(self, messages: list, model: str = DEFAULT_CHAT_MODEL, **kwargs) -> dict:
        # The Messages API takes the system prompt as a separate field
        system = "\n\n".join(m["content"] for m in messages if m["role"] == "system")
        params = {
            "model": model,
            "messages": [m for m in messages if m["role"] != "system"],
            "max_tokens": kwargs.get("max_tokens", DEFAULT_MAX_TOKENS),
            "temperature": kwargs.get("temperature", DEFAULT_TEMPERATURE),
        }
        if system:
            params["system"] = system

        response = self.client.messages.create(**params)
        return {
            "content": response.content[0].text,
            "prompt_tokens": response.usage.input_tokens,
            "completion_tokens": response.usage.output_tokens,
            "model": model,
        }


class LLMGateway:
    """Routes chat calls to the configured provider, with retry."""

    PROVIDER_PREFIXES = {"claude-": "anthropic"}

    def __init__(self, providers: dict[str, LLMProvider] | None = None):
        if providers is None:
            providers = {"anthropic": AnthropicProvider()} if os.getenv("ANTHROPIC_API_KEY") else {}
        self._providers = dict(providers)

    def _route(self, model: str) -> tuple[str | None, LLMProvider | None]:
        name = next(
            (n for prefix, n in self.PROVIDER_PREFIXES.items() if model.startswith(prefix)),
            None,
        )
        return name, self._providers.get(name)

    def is_available(self, model: str = DEFAULT_CHAT_MODEL) -> bool:
        return self._route(model)[1] is not None

    def chat(self, messages: list, model: str = DEFAULT_CHAT_MODEL, *,
             purpose: str = "", max_retries: int = 3, **kwargs) -> dict:
        """
        Returns:
            Provider reply plus ``latency_ms`` and ``provider``.

        Raises:
            LLMUnavailableError: no provider configured for ``model``.
            RuntimeError: all ``max_retries`` attempts failed.
        """
        name, provider = self._route(model)
        if provider is None:
            raise LLMUnavailableError(f"No LLM provider configured for model '{model}'")

        last_error = None
        for attempt in range(1, max_retries + 1):
            started = time.monotonic()
            try:
                reply = provider.chat(messages, model, **kwargs)
            except Exception as exc:
                last_error = exc
                logger.warning("LLM %s attempt %d/%d failed: %s",
                               purpose or "call", attempt, max_retries, exc)
                if attempt < max_retries:
                    threading.Event().wait(min(2 ** (attempt - 1), MAX_BACKOFF_SECONDS))
                continue

            reply["latency_ms"] = int((time.monotonic() - started) * 1000)
            reply["provider"] = name
            logger.info("LLM %s ok: model=%s tokens=%d+%d",
                        purpose or "call", model,
                        reply["prompt_tokens"], reply["completion_tokens"],
                        extra={"duration_ms": reply["latency_ms"]})
            return reply

        raise RuntimeError(f"LLM call failed after {max_retries} retries: {last_error}")
