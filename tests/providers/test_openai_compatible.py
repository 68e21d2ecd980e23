"""Tests for the OpenAI-compatible completion adapter and the static provider."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from study_orchestrator.config import ProviderConfig, ProviderKind
from study_orchestrator.exceptions import (
    ProviderError,
    ProviderInvalidResponse,
    ProviderRateLimited,
    ProviderTimeout,
)
from study_orchestrator.providers.base import CompletionParams
from study_orchestrator.providers.openai_compatible import OpenAICompatibleProvider
from study_orchestrator.providers.static import StaticProvider

PROMPT = [
    {"role": "system", "content": "You are a tutor."},
    {"role": "user", "content": "What is a derivative?"},
]

_REQUEST = httpx.Request("POST", "https://api.example.com/v1/chat/completions")


def make_response(content="A derivative measures change.", usage=True, model="llama-3.1-8b"):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=SimpleNamespace(prompt_tokens=21, completion_tokens=7) if usage else None,
        model=model,
    )


@pytest.fixture
def config():
    return ProviderConfig(
        name="groq",
        tier=1,
        models=("llama-3.1-8b", "llama-3.1-70b"),
        base_url="https://api.example.com/v1",
        api_key="test-key",
    )


@pytest.fixture
def client():
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=make_response())
    client.close = AsyncMock()
    return client


@pytest.fixture
def provider(config, client):
    return OpenAICompatibleProvider(config, client=client)


# ---------------------------------------------------------------------------
# Successful calls
# ---------------------------------------------------------------------------


class TestSend:
    async def test_returns_text_and_usage(self, provider):
        result = await provider.send(PROMPT, CompletionParams(), timeout_seconds=5)
        assert result.text == "A derivative measures change."
        assert result.model == "llama-3.1-8b"
        assert (result.input_tokens, result.output_tokens) == (21, 7)

    async def test_forwards_params(self, provider, client):
        params = CompletionParams(model="llama-3.1-70b", temperature=0.2, max_tokens=64)
        await provider.send(PROMPT, params, timeout_seconds=5)
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "llama-3.1-70b"
        assert kwargs["temperature"] == 0.2
        assert kwargs["max_tokens"] == 64
        assert kwargs["timeout"] == 5
        assert kwargs["messages"] == PROMPT

    async def test_unknown_model_falls_back_to_default(self, provider, client):
        await provider.send(PROMPT, CompletionParams(model="gpt-4o"), timeout_seconds=5)
        assert client.chat.completions.create.call_args.kwargs["model"] == "llama-3.1-8b"

    async def test_missing_usage_is_estimated(self, provider, client):
        client.chat.completions.create.return_value = make_response(usage=False)
        result = await provider.send(PROMPT, CompletionParams(), timeout_seconds=5)
        assert result.input_tokens > 0
        assert result.output_tokens > 0

    async def test_close(self, provider, client):
        await provider.close()
        client.close.assert_awaited_once()


# ---------------------------------------------------------------------------
# Client construction
# ---------------------------------------------------------------------------


class TestClientConstruction:
    @pytest.fixture(autouse=True)
    def no_keys(self, monkeypatch):
        monkeypatch.delenv("GROQ_API_KEY", raising=False)
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    def test_keyless_provider_constructs(self):
        provider = OpenAICompatibleProvider(ProviderConfig(name="groq", models=("m",)))
        assert provider.name == "groq"

    async def test_keyless_send_is_a_provider_error(self):
        provider = OpenAICompatibleProvider(ProviderConfig(name="groq", models=("m",)))
        with pytest.raises(ProviderError):
            await provider.send(PROMPT, CompletionParams(), timeout_seconds=5)

    async def test_close_without_client_is_noop(self):
        provider = OpenAICompatibleProvider(ProviderConfig(name="groq", models=("m",)))
        await provider.close()

    async def test_client_built_lazily_with_key(self):
        provider = OpenAICompatibleProvider(
            ProviderConfig(name="groq", models=("m",), api_key="k",
                           base_url="https://api.example.com/v1")
        )
        assert provider._client is None
        client = provider._get_client()
        assert isinstance(client, openai.AsyncOpenAI)
        assert provider._get_client() is client
        await provider.close()


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


class TestErrorMapping:
    async def test_rate_limit(self, provider, client):
        client.chat.completions.create.side_effect = openai.RateLimitError(
            "slow down", response=httpx.Response(429, request=_REQUEST), body=None
        )
        with pytest.raises(ProviderRateLimited):
            await provider.send(PROMPT, CompletionParams(), timeout_seconds=5)

    async def test_timeout(self, provider, client):
        client.chat.completions.create.side_effect = openai.APITimeoutError(_REQUEST)
        with pytest.raises(ProviderTimeout):
            await provider.send(PROMPT, CompletionParams(), timeout_seconds=5)

    async def test_server_error(self, provider, client):
        client.chat.completions.create.side_effect = openai.InternalServerError(
            "upstream broke", response=httpx.Response(503, request=_REQUEST), body=None
        )
        with pytest.raises(ProviderError) as exc_info:
            await provider.send(PROMPT, CompletionParams(), timeout_seconds=5)
        assert exc_info.value.outcome == "error"
        assert "503" in str(exc_info.value)

    async def test_connection_error(self, provider, client):
        client.chat.completions.create.side_effect = openai.APIConnectionError(
            request=_REQUEST
        )
        with pytest.raises(ProviderError):
            await provider.send(PROMPT, CompletionParams(), timeout_seconds=5)

    @pytest.mark.parametrize("content", [None, "", "   "])
    async def test_empty_completion_is_invalid(self, provider, client, content):
        client.chat.completions.create.return_value = make_response(content=content)
        with pytest.raises(ProviderInvalidResponse):
            await provider.send(PROMPT, CompletionParams(), timeout_seconds=5)

    async def test_no_choices_is_invalid(self, provider, client):
        response = make_response()
        response.choices = []
        client.chat.completions.create.return_value = response
        with pytest.raises(ProviderInvalidResponse):
            await provider.send(PROMPT, CompletionParams(), timeout_seconds=5)


# ---------------------------------------------------------------------------
# Static provider
# ---------------------------------------------------------------------------


class TestStaticProvider:
    @pytest.fixture
    def static_config(self):
        return ProviderConfig(name="offline", kind=ProviderKind.STATIC, models=("echo",))

    async def test_echoes_last_user_message(self, static_config):
        provider = StaticProvider(static_config)
        result = await provider.send(PROMPT, CompletionParams(), timeout_seconds=1)
        assert result.text == "Echo: What is a derivative?"
        assert result.model == "echo"

    async def test_fixed_reply(self, static_config):
        provider = StaticProvider(static_config, reply="Try again later.")
        result = await provider.send(PROMPT, CompletionParams(), timeout_seconds=1)
        assert result.text == "Try again later."

    async def test_no_user_message_is_an_error(self, static_config):
        provider = StaticProvider(static_config)
        with pytest.raises(ProviderError):
            await provider.send(PROMPT[:1], CompletionParams(), timeout_seconds=1)
