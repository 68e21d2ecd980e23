"""Result types threaded through each orchestration stage."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar, Union

from ..exceptions import OrchestratorError, ProviderError
from ..providers.base import CompletionParams

T = TypeVar("T")


class AttemptOutcome(str, Enum):
    SUCCESS = "success"
    TIMEOUT = "timeout"
    RATE_LIMITED = "rate_limited"
    INVALID_RESPONSE = "invalid_response"
    ERROR = "error"

    @classmethod
    def from_error(cls, error: BaseException) -> "AttemptOutcome":
        if isinstance(error, ProviderError):
            return cls(error.outcome)
        return cls.ERROR


@dataclass
class FallbackAttempt:
    """One provider call within a single orchestration pass. Not persisted."""

    tier: int
    provider: str
    started_at: float
    outcome: AttemptOutcome
    latency_ms: float
    model: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "tier": self.tier,
            "provider": self.provider,
            "startedAt": self.started_at,
            "outcome": self.outcome.value,
            "latencyMs": round(self.latency_ms, 1),
        }
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class Success(Generic[T]):
    value: T


@dataclass
class RecoverableFailure:
    """The stage failed; the pass continues with the next candidate."""

    error: ProviderError

    @property
    def outcome(self) -> AttemptOutcome:
        return AttemptOutcome.from_error(self.error)


@dataclass
class FatalFailure:
    """The whole pass must stop (e.g. the overall deadline elapsed)."""

    error: OrchestratorError
    reason: str = ""


StageResult = Union[Success[T], RecoverableFailure, FatalFailure]


@dataclass
class OrchestrationRequest:
    """Input to one orchestration pass.

    ``messages`` is the fully assembled chat prompt. ``provider`` names a
    preferred provider that is tried first when eligible.
    """

    messages: list[dict]
    params: CompletionParams = field(default_factory=CompletionParams)
    provider: str | None = None
    request_id: str | None = None


@dataclass
class OrchestrationResult:
    content: str
    provider_used: str
    model_used: str
    latency_ms: float
    fallback_used: bool
    tier_reached: int
    input_tokens: int = 0
    output_tokens: int = 0
    attempts: list[FallbackAttempt] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "content": self.content,
            "providerUsed": self.provider_used,
            "modelUsed": self.model_used,
            "latencyMs": round(self.latency_ms, 1),
            "fallbackUsed": self.fallback_used,
            "tierReached": self.tier_reached,
            "tokensUsed": {"input": self.input_tokens, "output": self.output_tokens},
            "attempts": [a.to_dict() for a in self.attempts],
        }
