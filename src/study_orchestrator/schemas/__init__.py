from .api import (
    ChatTurnRequest,
    ChatTurnResponse,
    ErrorResponse,
    HealthResponse,
    MemoryOptions,
    MemoryReference,
    MemoryToggle,
    TokenUsage,
)

__all__ = [
    "ChatTurnRequest",
    "ChatTurnResponse",
    "ErrorResponse",
    "HealthResponse",
    "MemoryOptions",
    "MemoryReference",
    "MemoryToggle",
    "TokenUsage",
]
