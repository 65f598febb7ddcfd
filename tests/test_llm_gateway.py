"""
Tests — LLM gateway routing, retry and the Anthropic provider adapter.
"""

from unittest.mock import MagicMock, patch

import pytest

from phaseplan.ai.gateway import (
    DEFAULT_CHAT_MODEL,
    AnthropicProvider,
    LLMGateway,
    LLMProvider,
    LLMUnavailableError,
)


class StubProvider(LLMProvider):
    def __init__(self, failures=0):
        self.failures = failures
        self.calls = 0

    def chat(self, messages, model, **kwargs):
        self.calls += 1
        if self.calls <= self.failures:
            raise ConnectionError("overloaded")
        return {"content": "{}", "prompt_tokens": 12, "completion_tokens": 3, "model": model}


class TestGateway:

    def test_unavailable_without_provider(self):
        gw = LLMGateway(providers={})
        assert gw.is_available(DEFAULT_CHAT_MODEL) is False
        with pytest.raises(LLMUnavailableError):
            gw.chat([{"role": "user", "content": "hi"}])

    def test_unknown_model_prefix(self):
        gw = LLMGateway(providers={"anthropic": StubProvider()})
        assert gw.is_available("gpt-4o") is False

    def test_env_key_registers_anthropic(self, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-test")
        gw = LLMGateway()
        assert gw.is_available(DEFAULT_CHAT_MODEL) is True

    def test_env_without_key(self, monkeypatch):
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
        assert LLMGateway().is_available() is False

    def test_chat_success_adds_metadata(self):
        gw = LLMGateway(providers={"anthropic": StubProvider()})
        result = gw.chat([{"role": "user", "content": "hi"}], purpose="test")
        assert result["provider"] == "anthropic"
        assert "latency_ms" in result
        assert result["prompt_tokens"] == 12

    @patch("phaseplan.ai.gateway.threading")
    def test_retry_then_success(self, mock_threading):
        provider = StubProvider(failures=2)
        gw = LLMGateway(providers={"anthropic": provider})
        result = gw.chat([{"role": "user", "content": "hi"}])
        assert provider.calls == 3
        assert result["content"] == "{}"
        waits = [c.args[0] for c in mock_threading.Event.return_value.wait.call_args_list]
        assert waits == [1, 2]

    @patch("phaseplan.ai.gateway.threading")
    def test_retries_exhausted(self, mock_threading):
        provider = StubProvider(failures=5)
        gw = LLMGateway(providers={"anthropic": provider})
        with pytest.raises(RuntimeError, match="after 3 retries"):
            gw.chat([{"role": "user", "content": "hi"}])
        assert provider.calls == 3


class TestAnthropicProvider:

    def test_system_message_split(self):
        provider = AnthropicProvider(api_key="sk-test")
        client = MagicMock()
        client.messages.create.return_value = MagicMock(
            content=[MagicMock(text="hello")],
            usage=MagicMock(input_tokens=10, output_tokens=2),
        )
        provider._client = client

        result = provider.chat(
            [{"role": "system", "content": "be brief"}, {"role": "user", "content": "hi"}],
            DEFAULT_CHAT_MODEL, max_tokens=500,
        )

        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["system"] == "be brief"
        assert kwargs["messages"] == [{"role": "user", "content": "hi"}]
        assert kwargs["max_tokens"] == 500
        assert kwargs["temperature"] == 0.3
        assert result == {
            "content": "hello", "prompt_tokens": 10, "completion_tokens": 2,
            "model": DEFAULT_CHAT_MODEL,
        }
