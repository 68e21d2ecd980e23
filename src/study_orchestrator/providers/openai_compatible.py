"""Completion adapter for any OpenAI-compatible chat endpoint.

Groq, Cerebras, Mistral, OpenRouter and Gemini's compatibility layer all
speak the same ``/chat/completions`` protocol, so one adapter serves every
configured tier.
"""

from __future__ import annotations

import openai
from loguru import logger
from openai import AsyncOpenAI

from ..config import ProviderConfig
from ..exceptions import (
    ProviderError,
    ProviderInvalidResponse,
    ProviderRateLimited,
    ProviderTimeout,
)
from ..token_counter import get_token_counter
from .base import CompletionParams, CompletionResult


class OpenAICompatibleProvider:
    """Sends chat completions through ``AsyncOpenAI``.

    SDK errors are translated into the orchestrator's provider taxonomy so
    the fallback loop can classify each attempt.
    """

    def __init__(self, config: ProviderConfig, client: AsyncOpenAI | None = None):
        self.name = config.name
        self._config = config
        self._client = client

    @property
    def config(self) -> ProviderConfig:
        return self._config

    def _get_client(self) -> AsyncOpenAI:
        # Built on first use; the SDK refuses to construct without a key
        if self._client is None:
            self._client = AsyncOpenAI(
                base_url=self._config.base_url,
                api_key=self._config.resolved_api_key(),
                timeout=self._config.timeout_seconds,
                max_retries=0,
            )
        return self._client

    def resolve_model(self, requested: str | None) -> str:
        """Requested model if this provider serves it, else its default."""
        if requested and requested in self._config.models:
            return requested
        if self._config.default_model is None:
            raise ProviderError(self.name, f"Provider '{self.name}' has no models")
        return self._config.default_model

    async def send(
        self,
        prompt: list[dict],
        params: CompletionParams,
        timeout_seconds: float,
    ) -> CompletionResult:
        model = self.resolve_model(params.model)
        try:
            response = await self._get_client().chat.completions.create(
                model=model,
                messages=prompt,
                temperature=params.temperature,
                max_tokens=params.max_tokens,
                timeout=timeout_seconds,
                **params.extra,
            )
        except openai.RateLimitError as e:
            raise ProviderRateLimited(self.name, f"{self.name}: {e}") from e
        except openai.APITimeoutError as e:
            raise ProviderTimeout(self.name, timeout_seconds) from e
        except openai.APIStatusError as e:
            if e.status_code == 429:
                raise ProviderRateLimited(self.name, f"{self.name}: {e}") from e
            raise ProviderError(
                self.name, f"{self.name} returned HTTP {e.status_code}: {e.message}"
            ) from e
        except openai.APIError as e:
            raise ProviderError(self.name, f"{self.name}: {e}") from e
        except openai.OpenAIError as e:
            raise ProviderError(self.name, f"{self.name}: {e}") from e

        choices = getattr(response, "choices", None) or []
        text = choices[0].message.content if choices else None
        if not text or not text.strip():
            raise ProviderInvalidResponse(
                self.name, f"{self.name} returned an empty completion"
            )

        usage = getattr(response, "usage", None)
        if usage is not None and usage.prompt_tokens is not None:
            input_tokens = usage.prompt_tokens
            output_tokens = usage.completion_tokens or 0
        else:
            input_tokens, output_tokens = get_token_counter().usage(prompt, text)

        logger.debug(
            f"{self.name}/{model}: {input_tokens} in, {output_tokens} out"
        )
        return CompletionResult(
            text=text,
            model=getattr(response, "model", None) or model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
        )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
