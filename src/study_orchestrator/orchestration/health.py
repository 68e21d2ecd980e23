"""Per-provider health and usage tracking.

Each provider owns one :class:`ProviderHealthRecord` guarded by its own
lock, so concurrent requests against different providers never contend and
concurrent updates to the same provider never lose increments.

Status transitions::

    healthy --(failure_threshold consecutive failures)--> degraded
    degraded --(circuit_breaker_threshold)--> unavailable
    unavailable --(cooldown elapsed)--> degraded (one trial call allowed)
    any --(success)--> healthy
"""

from __future__ import annotations

import threading
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable

from loguru import logger

from ..config import OrchestratorConfig, ProviderConfig

MINUTE_WINDOW_SECONDS = 60.0


class ProviderStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNAVAILABLE = "unavailable"


class UsageLevel(str, Enum):
    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"
    BLOCKED = "blocked"

    @classmethod
    def for_percentage(cls, percentage: float) -> "UsageLevel":
        if percentage >= 100:
            return cls.BLOCKED
        if percentage >= 95:
            return cls.CRITICAL
        if percentage >= 80:
            return cls.WARNING
        return cls.HEALTHY


@dataclass
class UsageStatus:
    provider: str
    requests_last_minute: int
    requests_today: int
    requests_this_month: int
    percentage: float
    level: UsageLevel

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider": self.provider,
            "requests_last_minute": self.requests_last_minute,
            "requests_today": self.requests_today,
            "requests_this_month": self.requests_this_month,
            "percentage": round(self.percentage, 1),
            "level": self.level.value,
        }


@dataclass
class ProviderHealthRecord:
    provider: str
    minute_window: deque = field(default_factory=deque)
    day_key: str = ""
    month_key: str = ""
    requests_today: int = 0
    requests_this_month: int = 0
    consecutive_failures: int = 0
    last_failure_at: float | None = None
    last_latency_ms: float | None = None
    status: ProviderStatus = ProviderStatus.HEALTHY
    unavailable_until: float | None = None
    usage_level: UsageLevel = UsageLevel.HEALTHY
    total_successes: int = 0
    total_failures: int = 0
    last_error: str | None = None
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)


def _period_keys(ts: float) -> tuple[str, str]:
    dt = datetime.fromtimestamp(ts, tz=timezone.utc)
    return dt.strftime("%Y-%m-%d"), dt.strftime("%Y-%m")


class HealthTracker:
    """Tracks consecutive failures, latency and request budgets per provider.

    Budgets use a rolling one-minute window and calendar UTC day/month
    counters. Only successful calls count against budgets.
    """

    def __init__(
        self,
        config: OrchestratorConfig | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self._config = config or OrchestratorConfig()
        self._clock = clock
        self._records: dict[str, ProviderHealthRecord] = {}
        self._records_lock = threading.Lock()
        for pc in self._config.providers:
            self._record(pc.name)

    def _record(self, provider: str) -> ProviderHealthRecord:
        record = self._records.get(provider)
        if record is None:
            with self._records_lock:
                record = self._records.setdefault(
                    provider, ProviderHealthRecord(provider=provider)
                )
        return record

    def get_record(self, provider: str) -> ProviderHealthRecord:
        return self._record(provider)

    # ------------------------------------------------------------------
    # Period bookkeeping (caller holds record.lock)
    # ------------------------------------------------------------------

    def _roll_periods(self, record: ProviderHealthRecord, now: float) -> None:
        day_key, month_key = _period_keys(now)
        if record.day_key != day_key:
            if record.day_key:
                logger.debug(f"{record.provider}: daily usage reset ({day_key})")
            record.day_key = day_key
            record.requests_today = 0
        if record.month_key != month_key:
            if record.month_key:
                logger.debug(f"{record.provider}: monthly usage reset ({month_key})")
            record.month_key = month_key
            record.requests_this_month = 0

        cutoff = now - MINUTE_WINDOW_SECONDS
        window = record.minute_window
        while window and window[0] <= cutoff:
            window.popleft()

    @staticmethod
    def _usage_percentage(
        record: ProviderHealthRecord, provider: ProviderConfig
    ) -> float:
        ratios = []
        if provider.requests_per_minute:
            ratios.append(len(record.minute_window) / provider.requests_per_minute)
        if provider.requests_per_day:
            ratios.append(record.requests_today / provider.requests_per_day)
        if provider.requests_per_month:
            ratios.append(record.requests_this_month / provider.requests_per_month)
        return max(ratios, default=0.0) * 100.0

    # ------------------------------------------------------------------
    # Eligibility
    # ------------------------------------------------------------------

    def ineligibility_reason(self, provider: ProviderConfig) -> str | None:
        """Return why ``provider`` must be skipped, or None if eligible."""
        record = self._record(provider.name)
        now = self._clock()
        with record.lock:
            self._roll_periods(record, now)

            if record.status == ProviderStatus.UNAVAILABLE:
                if record.unavailable_until is not None and now < record.unavailable_until:
                    remaining = record.unavailable_until - now
                    return f"circuit open ({remaining:.0f}s remaining)"
                record.status = ProviderStatus.DEGRADED
                record.unavailable_until = None
                # A failed trial call reopens the circuit immediately
                record.consecutive_failures = self._config.circuit_breaker_threshold - 1
                record.last_failure_at = now
                logger.info(f"{provider.name}: cooldown elapsed, allowing a trial call")

            if (
                provider.requests_per_minute
                and len(record.minute_window) >= provider.requests_per_minute
            ):
                return "per-minute budget reached"
            if (
                provider.requests_per_day
                and record.requests_today >= provider.requests_per_day
            ):
                return "daily budget reached"
            if (
                provider.requests_per_month
                and record.requests_this_month >= provider.requests_per_month
            ):
                return "monthly budget reached"
        return None

    def is_eligible(self, provider: ProviderConfig) -> bool:
        return self.ineligibility_reason(provider) is None

    def consecutive_failures(self, provider: str) -> int:
        return self._record(provider).consecutive_failures

    # ------------------------------------------------------------------
    # Outcome recording
    # ------------------------------------------------------------------

    def record_success(self, provider: ProviderConfig, latency_ms: float) -> None:
        record = self._record(provider.name)
        now = self._clock()
        with record.lock:
            self._roll_periods(record, now)
            record.consecutive_failures = 0
            record.last_latency_ms = latency_ms
            record.status = ProviderStatus.HEALTHY
            record.unavailable_until = None
            record.last_error = None
            record.total_successes += 1
            record.minute_window.append(now)
            record.requests_today += 1
            record.requests_this_month += 1

            level = UsageLevel.for_percentage(self._usage_percentage(record, provider))
            previous = record.usage_level
            record.usage_level = level

        if level != previous:
            log = logger.warning if level != UsageLevel.HEALTHY else logger.info
            log(f"{provider.name}: usage level {previous.value} -> {level.value}")

    def record_failure(
        self,
        provider: ProviderConfig,
        latency_ms: float | None = None,
        error: str | None = None,
    ) -> ProviderStatus:
        """Count a failed attempt and return the resulting status."""
        record = self._record(provider.name)
        now = self._clock()
        cooldown = self._config.circuit_cooldown_seconds
        with record.lock:
            # Failures older than the cooldown window no longer count as consecutive
            if (
                record.last_failure_at is not None
                and now - record.last_failure_at > cooldown
            ):
                record.consecutive_failures = 0
            record.consecutive_failures += 1
            record.last_failure_at = now
            record.total_failures += 1
            record.last_error = error
            if latency_ms is not None:
                record.last_latency_ms = latency_ms

            previous = record.status
            if record.consecutive_failures >= self._config.circuit_breaker_threshold:
                record.status = ProviderStatus.UNAVAILABLE
                record.unavailable_until = now + cooldown
            elif record.consecutive_failures >= self._config.failure_threshold:
                record.status = ProviderStatus.DEGRADED
            status = record.status
            failures = record.consecutive_failures

        if status != previous:
            logger.warning(
                f"{provider.name}: {previous.value} -> {status.value} "
                f"after {failures} consecutive failures"
            )
        return status

    # ------------------------------------------------------------------
    # Reporting and persistence
    # ------------------------------------------------------------------

    def usage_status(self, provider: ProviderConfig) -> UsageStatus:
        record = self._record(provider.name)
        with record.lock:
            self._roll_periods(record, self._clock())
            percentage = self._usage_percentage(record, provider)
            return UsageStatus(
                provider=provider.name,
                requests_last_minute=len(record.minute_window),
                requests_today=record.requests_today,
                requests_this_month=record.requests_this_month,
                percentage=percentage,
                level=UsageLevel.for_percentage(percentage),
            )

    def snapshot(
        self, providers: list[ProviderConfig] | None = None
    ) -> dict[str, dict[str, Any]]:
        """Per-provider health for status endpoints."""
        result: dict[str, dict[str, Any]] = {}
        for pc in providers if providers is not None else self._config.providers:
            record = self._record(pc.name)
            usage = self.usage_status(pc)
            result[pc.name] = {
                "tier": pc.tier,
                "status": record.status.value,
                "consecutive_failures": record.consecutive_failures,
                "last_latency_ms": record.last_latency_ms,
                "total_successes": record.total_successes,
                "total_failures": record.total_failures,
                "last_error": record.last_error,
                "usage": usage.to_dict(),
            }
        return result

    def export_usage(self, provider: str) -> dict[str, Any]:
        record = self._record(provider)
        with record.lock:
            return {
                "provider": provider,
                "day_key": record.day_key,
                "requests_today": record.requests_today,
                "month_key": record.month_key,
                "requests_this_month": record.requests_this_month,
            }

    def restore_usage(self, rows: list[dict[str, Any]]) -> int:
        """Load persisted counters. Counters from a past period are ignored.

        Returns:
            Number of providers whose counters were restored.
        """
        day_key, month_key = _period_keys(self._clock())
        restored = 0
        for row in rows:
            record = self._record(row["provider"])
            with record.lock:
                record.day_key = day_key
                record.month_key = month_key
                if row.get("day_key") == day_key:
                    record.requests_today = int(row.get("requests_today") or 0)
                if row.get("month_key") == month_key:
                    record.requests_this_month = int(
                        row.get("requests_this_month") or 0
                    )
            restored += 1
        if restored:
            logger.info(f"Restored usage counters for {restored} providers")
        return restored
