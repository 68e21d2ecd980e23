"""Offline provider that answers without a network call.

Useful for local development and as a deterministic last tier.
"""

from __future__ import annotations

from ..config import ProviderConfig
from ..exceptions import ProviderError
from ..token_counter import get_token_counter
from .base import CompletionParams, CompletionResult


class StaticProvider:
    """Returns a fixed reply, or echoes the last user message."""

    def __init__(self, config: ProviderConfig, reply: str | None = None):
        self.name = config.name
        self._config = config
        self._reply = reply

    @property
    def config(self) -> ProviderConfig:
        return self._config

    async def send(
        self,
        prompt: list[dict],
        params: CompletionParams,
        timeout_seconds: float,
    ) -> CompletionResult:
        if self._reply is not None:
            text = self._reply
        else:
            user_turns = [m for m in prompt if m.get("role") == "user"]
            if not user_turns:
                raise ProviderError(self.name, "No user message to echo")
            text = f"Echo: {user_turns[-1].get('content', '')}"

        input_tokens, output_tokens = get_token_counter().usage(prompt, text)
        return CompletionResult(
            text=text,
            model=params.model if params.model in self._config.models else (
                self._config.default_model or "static"
            ),
            input_tokens=input_tokens,
            output_tokens=output_tokens,
        )

    async def close(self) -> None:
        return None
