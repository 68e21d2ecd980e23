"""Boundary contracts for upstream language-model and embedding providers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable


@dataclass
class CompletionParams:
    """Per-call generation parameters."""

    model: str | None = None
    temperature: float = 0.7
    max_tokens: int = 1024
    extra: dict = field(default_factory=dict)


@dataclass
class CompletionResult:
    """A completion as returned by a provider adapter."""

    text: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0


@runtime_checkable
class CompletionProvider(Protocol):
    """One configured chat-completion provider.

    ``send`` raises a :class:`~study_orchestrator.exceptions.ProviderError`
    subclass (or any exception) on failure. The orchestrator enforces the
    timeout itself; ``timeout_seconds`` is forwarded so adapters can set
    their own socket deadlines.
    """

    name: str

    async def send(
        self,
        prompt: list[dict],
        params: CompletionParams,
        timeout_seconds: float,
    ) -> CompletionResult:
        ...


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Turns texts into vectors, one vector per input text."""

    name: str

    async def embed(self, texts: list[str]) -> list[list[float]]:
        ...
