from .health import (
    HealthTracker,
    ProviderHealthRecord,
    ProviderStatus,
    UsageLevel,
    UsageStatus,
)
from .orchestrator import FallbackOrchestrator
from .results import (
    AttemptOutcome,
    FallbackAttempt,
    FatalFailure,
    OrchestrationRequest,
    OrchestrationResult,
    RecoverableFailure,
    Success,
)

__all__ = [
    "AttemptOutcome",
    "FallbackAttempt",
    "FallbackOrchestrator",
    "FatalFailure",
    "HealthTracker",
    "OrchestrationRequest",
    "OrchestrationResult",
    "ProviderHealthRecord",
    "ProviderStatus",
    "RecoverableFailure",
    "Success",
    "UsageLevel",
    "UsageStatus",
]
