"""
MemoryClassifier 테스트

턴 분류 규칙(scope/priority/retention) 검증
"""

import pytest

from study_orchestrator.memory.classifier import MemoryClassifier
from study_orchestrator.memory.models import (
    MemoryPriority,
    MemoryScope,
    RetentionClass,
)


@pytest.fixture
def classifier():
    return MemoryClassifier()


class TestPersonalMarkers:
    """개인 정보/선호 표현"""

    def test_name_and_preference_is_universal(self, classifier):
        result = classifier.classify(
            "My name is Alex and I prefer visual examples",
            "Nice to meet you, Alex!",
            has_conversation_id=True,
        )
        assert result.scope == MemoryScope.UNIVERSAL
        assert result.priority == MemoryPriority.HIGH
        assert result.retention == RetentionClass.PERMANENT
        assert result.marker == "personal"

    @pytest.mark.parametrize(
        "message",
        [
            "I'm a second-year biology student",
            "Call me Sam",
            "I learn best with diagrams",
            "I am an engineering major",
            "i'd rather have short answers",
        ],
    )
    def test_personal_variants(self, classifier, message):
        result = classifier.classify(message, "Got it.", has_conversation_id=False)
        assert result.marker == "personal"
        assert result.scope == MemoryScope.UNIVERSAL

    def test_word_boundaries(self, classifier):
        result = classifier.classify(
            "Is this factually accurate?", "Yes.", has_conversation_id=True
        )
        assert result.scope == MemoryScope.SESSION

    @pytest.mark.parametrize(
        "message",
        [
            "I'm confused, can you simplify that?",
            "I'm a bit lost on this step",
            "I am not sure what a derivative is",
            "I like this explanation",
        ],
    )
    def test_ordinary_first_person_stays_in_session(self, classifier, message):
        result = classifier.classify(message, "Sure.", has_conversation_id=True)
        assert result.scope == MemoryScope.SESSION
        assert result.priority == MemoryPriority.MEDIUM
        assert result.retention == RetentionClass.LONG_TERM


class TestCorrectionMarkers:
    """교정 표현은 다른 규칙보다 우선"""

    def test_correction_wins_over_personal(self, classifier):
        result = classifier.classify(
            "Actually, my name is Sam not Alex",
            "Thanks for the correction.",
            has_conversation_id=True,
        )
        assert result.marker == "correction"
        assert result.priority == MemoryPriority.CRITICAL
        assert result.retention == RetentionClass.PERMANENT

    def test_correction_in_response(self, classifier):
        result = classifier.classify(
            "Mitochondria make glucose, right?",
            "That's a common misconception: mitochondria produce ATP.",
            has_conversation_id=True,
        )
        assert result.marker == "correction"
        assert result.scope == MemoryScope.UNIVERSAL

    @pytest.mark.parametrize(
        "response",
        [
            "Correction: the derivative of x squared is 2x.",
            "There is an important distinction between speed and velocity.",
        ],
    )
    def test_explicit_response_corrections(self, classifier, response):
        result = classifier.classify("Explain it again", response, has_conversation_id=True)
        assert result.marker == "correction"

    def test_actually_in_response_is_not_a_correction(self, classifier):
        result = classifier.classify(
            "Can you simplify that?",
            "Actually, it is simpler than it looks.",
            has_conversation_id=True,
        )
        assert result.scope == MemoryScope.SESSION
        assert result.priority == MemoryPriority.MEDIUM
        assert result.retention == RetentionClass.LONG_TERM


class TestImportanceMarkers:
    def test_remember_request(self, classifier):
        result = classifier.classify(
            "Please remember the quadratic formula for my exam",
            "Sure.",
            has_conversation_id=True,
        )
        assert result.marker == "important"
        assert result.priority == MemoryPriority.HIGH

    def test_key_point_in_response(self, classifier):
        result = classifier.classify(
            "What is entropy?",
            "The key point is that entropy measures disorder.",
            has_conversation_id=False,
        )
        assert result.marker == "important"


class TestDefaults:
    """마커가 없는 경우"""

    def test_conversation_default(self, classifier):
        result = classifier.classify(
            "Can you simplify that?", "Sure, here's a simpler version.", True
        )
        assert result.scope == MemoryScope.SESSION
        assert result.priority == MemoryPriority.MEDIUM
        assert result.retention == RetentionClass.LONG_TERM
        assert result.marker == "conversation"

    def test_no_conversation_default(self, classifier):
        result = classifier.classify(
            "Can you simplify that?", "Sure, here's a simpler version.", False
        )
        assert result.scope == MemoryScope.SESSION
        assert result.priority == MemoryPriority.LOW
        assert result.retention == RetentionClass.SHORT

    def test_empty_inputs(self, classifier):
        result = classifier.classify("", "", False)
        assert result.marker == "default"

    def test_classification_is_deterministic(self, classifier):
        args = ("I prefer examples", "ok", True)
        assert classifier.classify(*args) == classifier.classify(*args)
