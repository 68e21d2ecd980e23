"""Lexical memory classifier.

Decides scope, priority and retention for a finished turn with zero I/O.
Rules are evaluated in order and the first match wins, so markers of
durable cross-session value beat the conversational default even when a
conversation id is present.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from .models import (
    ClassificationResult,
    MemoryPriority,
    MemoryScope,
    RetentionClass,
)


@dataclass(frozen=True, slots=True)
class _MarkerRule:
    """One ordered classification rule."""

    marker: str
    message_pattern: re.Pattern[str] | None
    response_pattern: re.Pattern[str] | None
    scope: MemoryScope
    priority: MemoryPriority
    retention: RetentionClass

    def matches(self, user_message: str, ai_response: str) -> bool:
        if self.message_pattern is not None and self.message_pattern.search(user_message):
            return True
        if self.response_pattern is not None and self.response_pattern.search(ai_response):
            return True
        return False


def _alternation(phrases: list[str], *raw: str) -> re.Pattern[str]:
    body = "|".join(
        [re.escape(p).replace(r"\ ", r"\s+") for p in phrases] + list(raw)
    )
    return re.compile(rf"\b(?:{body})\b", re.IGNORECASE)


# "I'm a/an <role>", but not "I'm a bit confused"
_SELF_DESCRIPTION = r"i(?:'m|\s+am)\s+an?\s+(?!(?:bit|little|lot|tad)\b)[a-z][\w-]*"

# Response-side corrections must be explicit
_RESPONSE_CORRECTION = re.compile(
    r"\bcorrection\s*:"
    r"|\b(?:that's|that\s+is|this\s+is)\s+a\s+common\s+misconception\b"
    r"|\bcommon\s+misconception\s+is\b"
    r"|\bimportant\s+distinction\b",
    re.IGNORECASE,
)


def _build_rules() -> tuple[_MarkerRule, ...]:
    return (
        # Self-correction or a corrected misconception
        _MarkerRule(
            marker="correction",
            message_pattern=_alternation(
                ["correction", "actually", "mistake", "mistaken", "i was wrong"]
            ),
            response_pattern=_RESPONSE_CORRECTION,
            scope=MemoryScope.UNIVERSAL,
            priority=MemoryPriority.CRITICAL,
            retention=RetentionClass.PERMANENT,
        ),
        # First-person identity or preference
        _MarkerRule(
            marker="personal",
            message_pattern=_alternation(
                ["my name is", "call me", "i prefer", "i learn best", "i'd rather"],
                _SELF_DESCRIPTION,
            ),
            response_pattern=None,
            scope=MemoryScope.UNIVERSAL,
            priority=MemoryPriority.HIGH,
            retention=RetentionClass.PERMANENT,
        ),
        # Explicit importance
        _MarkerRule(
            marker="important",
            message_pattern=_alternation(
                ["remember", "important", "key concept", "always", "never forget"]
            ),
            response_pattern=_alternation(
                ["key point", "important to note", "remember that"]
            ),
            scope=MemoryScope.UNIVERSAL,
            priority=MemoryPriority.HIGH,
            retention=RetentionClass.PERMANENT,
        ),
    )


_RULES: tuple[_MarkerRule, ...] = _build_rules()


class MemoryClassifier:
    """Pure classification of a user message and the response to it."""

    def __init__(self, rules: tuple[_MarkerRule, ...] = _RULES):
        self._rules = rules

    def classify(
        self,
        user_message: str,
        ai_response: str,
        has_conversation_id: bool,
    ) -> ClassificationResult:
        """Classify one turn.

        Args:
            user_message: The user's message
            ai_response: The provider's answer
            has_conversation_id: Whether the turn belongs to a conversation

        Returns:
            ClassificationResult with the matched rule name as ``marker``
        """
        for rule in self._rules:
            if rule.matches(user_message or "", ai_response or ""):
                return ClassificationResult(
                    scope=rule.scope,
                    priority=rule.priority,
                    retention=rule.retention,
                    marker=rule.marker,
                )

        if has_conversation_id:
            return ClassificationResult(
                scope=MemoryScope.SESSION,
                priority=MemoryPriority.MEDIUM,
                retention=RetentionClass.LONG_TERM,
                marker="conversation",
            )
        return ClassificationResult(
            scope=MemoryScope.SESSION,
            priority=MemoryPriority.LOW,
            retention=RetentionClass.SHORT,
            marker="default",
        )
