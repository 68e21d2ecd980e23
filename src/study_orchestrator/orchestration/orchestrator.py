"""Tiered provider fallback orchestrator.

One pass walks a snapshot of eligible candidates in tier order, calling
each provider at most once under a per-provider timeout and an overall
request deadline. Provider failures advance the pass; only total
exhaustion reaches the caller, with the full attempt trace.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from typing import Any, Callable, Protocol

from loguru import logger

from ..config import OrchestratorConfig
from ..exceptions import (
    AllProvidersExhausted,
    OrchestratorError,
    ProviderError,
    ProviderTimeout,
)
from ..providers.base import CompletionResult
from ..providers.registry import ProviderRegistry, RegisteredProvider
from .health import HealthTracker
from .results import (
    AttemptOutcome,
    FallbackAttempt,
    FatalFailure,
    OrchestrationRequest,
    OrchestrationResult,
    RecoverableFailure,
    StageResult,
    Success,
)


class UsageStore(Protocol):
    async def save_provider_usage(self, row: dict[str, Any]) -> None:
        ...


class DeadlineExceeded(OrchestratorError):
    def __init__(self, deadline_seconds: float):
        self.deadline_seconds = deadline_seconds
        super().__init__(f"Request deadline of {deadline_seconds:.1f}s exceeded")


def _discard_late_result(task: asyncio.Task) -> None:
    # Retrieve the outcome so a late failure is not reported as unhandled
    if not task.cancelled():
        task.exception()


class FallbackOrchestrator:
    """Executes a completion request with tiered fallback.

    Args:
        registry: Provider lookup table built at startup
        health: Shared per-provider health records
        config: Deadline, thresholds and retry guidance
        usage_store: Optional sink for usage counters after each success
        clock: Monotonic clock in seconds (injectable for tests)
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        health: HealthTracker,
        config: OrchestratorConfig | None = None,
        usage_store: UsageStore | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._registry = registry
        self._health = health
        self._config = config or OrchestratorConfig()
        self._usage_store = usage_store
        self._clock = clock
        self._background: set[asyncio.Task] = set()

    @property
    def health(self) -> HealthTracker:
        return self._health

    @property
    def registry(self) -> ProviderRegistry:
        return self._registry

    def ordered_candidates(self, preferred: str | None = None) -> list[RegisteredProvider]:
        """Enabled providers by tier, then fewest consecutive failures, then weight."""
        candidates = sorted(
            self._registry.enabled(),
            key=lambda p: (
                p.config.tier,
                self._health.consecutive_failures(p.config.name),
                -p.config.priority_weight,
            ),
        )
        if preferred:
            for i, entry in enumerate(candidates):
                if entry.config.name == preferred:
                    candidates.insert(0, candidates.pop(i))
                    break
            else:
                logger.debug(f"Preferred provider '{preferred}' not available")
        return candidates

    def candidate_snapshot(
        self, preferred: str | None = None, request_id: str = "-"
    ) -> tuple[list[RegisteredProvider], list[RegisteredProvider], list[dict[str, Any]]]:
        """Split the pass into ordered, eligible and skipped providers.

        Returns:
            ``(ordered, eligible, skipped)``. ``skipped`` holds one
            ``{"provider", "tier", "reason"}`` entry per provider that is
            disabled or fails the budget or circuit checks.
        """
        ordered = self.ordered_candidates(preferred)
        eligible: list[RegisteredProvider] = []
        skipped: list[dict[str, Any]] = [
            {
                "provider": p.config.name,
                "tier": p.config.tier,
                "reason": p.disabled_reason or "disabled",
            }
            for p in self._registry.all()
            if not p.enabled
        ]
        for entry in ordered:
            reason = self._health.ineligibility_reason(entry.config)
            if reason is None:
                eligible.append(entry)
            else:
                logger.debug(f"[{request_id}] skip {entry.config.name}: {reason}")
                skipped.append(
                    {"provider": entry.config.name, "tier": entry.config.tier, "reason": reason}
                )
        return ordered, eligible, skipped

    def eligible_candidates(
        self, preferred: str | None = None, request_id: str = "-"
    ) -> list[RegisteredProvider]:
        """Snapshot of candidates that pass the budget and circuit checks."""
        return self.candidate_snapshot(preferred, request_id)[1]

    async def execute(
        self, request: OrchestrationRequest
    ) -> OrchestrationResult | AllProvidersExhausted:
        """Run one orchestration pass.

        Returns:
            The first successful result, or an ``AllProvidersExhausted``
            value carrying every attempt in the order tried.
        """
        request_id = request.request_id or uuid.uuid4().hex[:8]
        started = self._clock()
        deadline = started + self._config.request_deadline_seconds
        retry_after = self._config.retry_after_seconds

        ordered, candidates, skipped = self.candidate_snapshot(request.provider, request_id)
        if not candidates:
            failure = AllProvidersExhausted([], retry_after=retry_after, skipped=skipped)
            logger.error(f"[{request_id}] failing fast: {failure.message}")
            return failure
        # Head of the pass: the preferred provider, else the lowest enabled tier
        first_choice = ordered[0]

        attempts: list[FallbackAttempt] = []
        for entry in candidates:
            remaining = deadline - self._clock()
            stage = await self._attempt(entry, request, remaining, attempts, request_id)

            if isinstance(stage, Success):
                completion: CompletionResult = stage.value
                attempt = attempts[-1]
                fallback_used = entry is not first_choice or len(attempts) > 1
                total_ms = (self._clock() - started) * 1000.0
                logger.info(
                    f"[{request_id}] {entry.config.name}/{completion.model} "
                    f"succeeded in {attempt.latency_ms:.0f}ms"
                    + (f" after {len(attempts) - 1} failed attempts" if fallback_used else "")
                )
                return OrchestrationResult(
                    content=completion.text,
                    provider_used=entry.config.name,
                    model_used=completion.model,
                    latency_ms=total_ms,
                    fallback_used=fallback_used,
                    tier_reached=entry.config.tier,
                    input_tokens=completion.input_tokens,
                    output_tokens=completion.output_tokens,
                    attempts=attempts,
                )

            if isinstance(stage, FatalFailure):
                logger.warning(f"[{request_id}] aborting pass: {stage.reason}")
                break

            logger.warning(
                f"[{request_id}] {entry.config.name} (tier {entry.config.tier}) "
                f"{stage.outcome.value}: {stage.error}; falling back"
            )

        failure = AllProvidersExhausted(attempts, retry_after=retry_after, skipped=skipped)
        logger.error(f"[{request_id}] {failure.message}")
        return failure

    async def execute_or_raise(self, request: OrchestrationRequest) -> OrchestrationResult:
        result = await self.execute(request)
        if isinstance(result, AllProvidersExhausted):
            raise result
        return result

    async def _attempt(
        self,
        entry: RegisteredProvider,
        request: OrchestrationRequest,
        remaining: float,
        attempts: list[FallbackAttempt],
        request_id: str,
    ) -> StageResult[CompletionResult]:
        provider = entry.config
        if remaining <= 0:
            return FatalFailure(
                DeadlineExceeded(self._config.request_deadline_seconds),
                reason="request deadline exceeded",
            )

        timeout = min(provider.timeout_seconds, remaining)
        started_at = time.time()
        t0 = self._clock()
        logger.debug(
            f"[{request_id}] trying {provider.name} (tier {provider.tier}, "
            f"timeout {timeout:.1f}s)"
        )
        try:
            completion = await self._call_with_timeout(entry, request, timeout)
        except ProviderError as e:
            error: ProviderError = e
        except Exception as e:
            error = ProviderError(provider.name, f"{type(e).__name__}: {e}")
        else:
            latency_ms = (self._clock() - t0) * 1000.0
            attempts.append(
                FallbackAttempt(
                    tier=provider.tier,
                    provider=provider.name,
                    started_at=started_at,
                    outcome=AttemptOutcome.SUCCESS,
                    latency_ms=latency_ms,
                    model=completion.model,
                )
            )
            self._health.record_success(provider, latency_ms)
            self._persist_usage(provider.name)
            return Success(completion)

        latency_ms = (self._clock() - t0) * 1000.0
        failure = RecoverableFailure(error)
        attempts.append(
            FallbackAttempt(
                tier=provider.tier,
                provider=provider.name,
                started_at=started_at,
                outcome=failure.outcome,
                latency_ms=latency_ms,
                error=str(error),
            )
        )
        self._health.record_failure(provider, latency_ms, str(error))
        return failure

    async def _call_with_timeout(
        self,
        entry: RegisteredProvider,
        request: OrchestrationRequest,
        timeout: float,
    ) -> CompletionResult:
        """Race the call against a timer. A late result is discarded."""
        task = asyncio.ensure_future(
            entry.adapter.send(request.messages, request.params, timeout)
        )
        try:
            done, _ = await asyncio.wait({task}, timeout=timeout)
        except asyncio.CancelledError:
            task.cancel()
            raise
        if not done:
            task.cancel()
            task.add_done_callback(_discard_late_result)
            raise ProviderTimeout(entry.config.name, timeout)
        return task.result()

    def _persist_usage(self, provider: str) -> None:
        if self._usage_store is None:
            return
        row = self._health.export_usage(provider)
        task = asyncio.create_task(self._save_usage(row))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _save_usage(self, row: dict[str, Any]) -> None:
        try:
            await self._usage_store.save_provider_usage(row)
        except Exception as e:
            logger.warning(f"Failed to persist usage for {row['provider']}: {e}")

    async def drain(self) -> None:
        """Wait for pending usage writes."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
