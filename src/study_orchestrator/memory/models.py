"""Memory record models for the dual-layer memory subsystem."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field, model_validator

from ..config import RetentionConfig


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _uuid() -> str:
    return str(uuid4())


class MemoryScope(str, Enum):
    SESSION = "session"
    UNIVERSAL = "universal"


class MemoryPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class RetentionClass(str, Enum):
    SHORT = "short"
    LONG_TERM = "long_term"
    PERMANENT = "permanent"

    def expires_at(
        self, created_at: datetime, retention: RetentionConfig | None = None
    ) -> datetime | None:
        """Expiry timestamp for a record of this class; None never expires."""
        retention = retention or RetentionConfig()
        if self is RetentionClass.PERMANENT:
            return None
        days = (
            retention.short_days
            if self is RetentionClass.SHORT
            else retention.long_term_days
        )
        return created_at + timedelta(days=days)


class MemoryRecord(BaseModel):
    """One stored conversational memory.

    Session records always carry a conversation id; universal records are
    never tied to a single conversation.
    """

    id: str = Field(default_factory=_uuid)
    user_id: str
    scope: MemoryScope
    conversation_id: str | None = None
    content: str
    embedding: list[float] | None = None
    priority: MemoryPriority = MemoryPriority.MEDIUM
    retention: RetentionClass = RetentionClass.LONG_TERM
    tags: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)
    expires_at: datetime | None = None

    @model_validator(mode="after")
    def _check_scope(self) -> "MemoryRecord":
        if self.scope == MemoryScope.SESSION and not self.conversation_id:
            raise ValueError("session memories require a conversation_id")
        if self.scope == MemoryScope.UNIVERSAL and self.conversation_id is not None:
            raise ValueError("universal memories must not carry a conversation_id")
        if self.retention == RetentionClass.PERMANENT and self.expires_at is not None:
            raise ValueError("permanent memories cannot expire")
        return self

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at <= (now or _utcnow())


class ClassificationResult(BaseModel):
    """Outcome of classifying one finished turn."""

    scope: MemoryScope
    priority: MemoryPriority
    retention: RetentionClass
    marker: str = "default"


class RetrievedMemory(BaseModel):
    """A memory returned by retrieval, with its similarity to the query.

    Session memories come from a scoped lookup and have no similarity.
    """

    record: MemoryRecord
    similarity: float | None = None

    def to_reference(self) -> dict[str, Any]:
        return {
            "content": self.record.content,
            "similarity": self.similarity,
            "createdAt": self.record.created_at.isoformat(),
        }
