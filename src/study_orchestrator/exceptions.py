"""
Orchestrator exception classes.

Provider-level failures are recoverable and drive fallback; only
``AllProvidersExhausted`` reaches the caller of a chat turn.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .orchestration.results import FallbackAttempt


class OrchestratorError(Exception):
    """Base exception for the orchestration core."""

    pass


class ConfigurationError(OrchestratorError):
    """Invalid or incomplete configuration."""

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(f"Configuration error for '{field}': {message}")


class StorageError(OrchestratorError):
    """Persistent store failure."""

    def __init__(self, message: str, path: str | None = None):
        self.path = path
        super().__init__(message)


class ProviderError(OrchestratorError):
    """A single provider attempt failed. Recoverable by fallback."""

    outcome: str = "error"

    def __init__(self, provider: str, message: str = ""):
        self.provider = provider
        super().__init__(message or f"Provider '{provider}' failed")


class ProviderTimeout(ProviderError):
    """The provider exceeded its per-call timeout."""

    outcome = "timeout"

    def __init__(self, provider: str, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(
            provider, f"Provider '{provider}' timed out after {timeout_seconds:.1f}s"
        )


class ProviderRateLimited(ProviderError):
    """The provider was over budget or answered with a rate-limit signal."""

    outcome = "rate_limited"


class ProviderInvalidResponse(ProviderError):
    """The provider answered, but the response did not match the contract."""

    outcome = "invalid_response"


class AllProvidersExhausted(OrchestratorError):
    """Every eligible candidate failed, or none were eligible.

    ``skipped`` lists providers left out of the pass before any call, each
    as ``{"provider", "tier", "reason"}``.
    """

    def __init__(
        self,
        attempts: list[FallbackAttempt],
        message: str = "",
        retry_after: float = 30.0,
        skipped: list[dict[str, Any]] | None = None,
    ):
        self.attempts = list(attempts)
        self.skipped = list(skipped or [])
        self.retry_after = retry_after
        if not message:
            if self.attempts:
                tried = ", ".join(
                    f"{a.provider}(tier {a.tier}): {a.outcome.value}"
                    for a in self.attempts
                )
                message = f"All providers exhausted: {tried}"
            elif self.skipped:
                reasons = ", ".join(
                    f"{s['provider']}(tier {s['tier']}): {s['reason']}"
                    for s in self.skipped
                )
                message = f"No eligible providers: {reasons}"
            else:
                message = "No providers configured"
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "retryAfterSeconds": self.retry_after,
            "attempts": [a.to_dict() for a in self.attempts],
            "skipped": list(self.skipped),
        }


class MemoryRetrievalDegraded(OrchestratorError):
    """Session or universal lookup failed. Never fatal to a chat turn."""

    def __init__(self, layer: str, reason: str):
        self.layer = layer
        self.reason = reason
        super().__init__(f"{layer} memory retrieval degraded: {reason}")


class MemoryPersistenceFailed(OrchestratorError):
    """Classification or storage of a finished turn failed."""

    def __init__(self, user_id: str, reason: str):
        self.user_id = user_id
        self.reason = reason
        super().__init__(f"Failed to persist memory for user {user_id}: {reason}")
