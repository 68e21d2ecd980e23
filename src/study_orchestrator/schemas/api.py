"""
채팅 턴 API 스키마 정의.

FastAPI OpenAPI 문서화를 위한 Pydantic 스키마 모델.
JSON 필드는 camelCase 별칭을 사용하며, 파이썬 코드에서는 snake_case
이름으로도 생성할 수 있습니다.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class _ApiModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())


# =============================================================================
# 요청 스키마
# =============================================================================

class MemoryToggle(_ApiModel):
    """메모리 계층 사용 여부."""

    include_session: bool = Field(
        True,
        alias="includeSession",
        description="현재 대화의 세션 메모리 포함 여부",
    )
    include_universal: bool = Field(
        True,
        alias="includeUniversal",
        description="대화 간 공유되는 유니버설 메모리 포함 여부",
    )


class MemoryOptions(_ApiModel):
    """메모리 검색 옵션."""

    limit: Optional[int] = Field(
        None, gt=0, le=50, description="계층별 최대 메모리 수"
    )
    min_similarity: Optional[float] = Field(
        None,
        ge=-1.0,
        le=1.0,
        alias="minSimilarity",
        description="유니버설 메모리 최소 코사인 유사도",
    )
    context_level: Optional[str] = Field(
        None,
        alias="contextLevel",
        pattern="^(light|balanced|comprehensive)$",
        description="컨텍스트 수준 (light, balanced, comprehensive)",
    )


class ChatTurnRequest(_ApiModel):
    """채팅 턴 요청 스키마."""

    user_id: str = Field(
        ...,
        min_length=1,
        alias="userId",
        description="사용자 ID",
        json_schema_extra={"example": "user-123"},
    )
    conversation_id: Optional[str] = Field(
        None,
        alias="conversationId",
        description="대화 ID (세션 메모리 범위)",
    )
    message: str = Field(
        ...,
        min_length=1,
        description="사용자 메시지",
        json_schema_extra={"example": "Can you explain photosynthesis?"},
    )
    memory: MemoryToggle = Field(default_factory=MemoryToggle)
    memory_options: MemoryOptions = Field(
        default_factory=MemoryOptions, alias="memoryOptions"
    )
    provider: Optional[str] = Field(None, description="우선 시도할 프로바이더")
    model: Optional[str] = Field(None, description="요청 모델")
    files: list[str] = Field(
        default_factory=list,
        description="참고 자료로 첨부할 원격 파일 경로",
    )


# =============================================================================
# 응답 스키마
# =============================================================================

class TokenUsage(_ApiModel):
    input: int = Field(0, description="입력 토큰 수")
    output: int = Field(0, description="출력 토큰 수")


class MemoryReference(_ApiModel):
    """응답에 사용된 메모리 참조."""

    content: str
    similarity: Optional[float] = Field(
        None, description="쿼리와의 유사도 (세션 메모리는 null)"
    )
    created_at: str = Field(..., alias="createdAt")


class ChatTurnResponse(_ApiModel):
    """채팅 턴 성공 응답 스키마."""

    content: str = Field(..., description="모델 응답")
    provider_used: str = Field(..., alias="providerUsed")
    model_used: str = Field(..., alias="modelUsed")
    tokens_used: TokenUsage = Field(default_factory=TokenUsage, alias="tokensUsed")
    latency_ms: float = Field(..., alias="latencyMs")
    fallback_used: bool = Field(..., alias="fallbackUsed")
    tier_reached: int = Field(1, alias="tierReached")
    cached: bool = Field(False, description="응답 캐시 사용 여부")
    memories_found: int = Field(0, alias="memoriesFound")
    memory_references: list[MemoryReference] = Field(
        default_factory=list, alias="memoryReferences"
    )

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "content": "Photosynthesis converts light energy...",
                "providerUsed": "groq",
                "modelUsed": "llama-3.1-8b-instant",
                "tokensUsed": {"input": 120, "output": 85},
                "latencyMs": 842.5,
                "fallbackUsed": False,
                "tierReached": 1,
                "cached": False,
                "memoriesFound": 2,
                "memoryReferences": [],
            }
        },
    )


class AttemptInfo(_ApiModel):
    tier: int
    provider: str
    started_at: float = Field(..., alias="startedAt")
    outcome: str
    latency_ms: float = Field(..., alias="latencyMs")
    error: Optional[str] = None


class SkippedInfo(_ApiModel):
    provider: str
    tier: int
    reason: str


class ErrorResponse(_ApiModel):
    """API 오류 응답 스키마."""

    error: str = Field(
        ...,
        description="오류 코드",
        json_schema_extra={"example": "temporarily_unavailable"},
    )
    message: str = Field(..., description="오류 메시지")
    retry_after_seconds: Optional[float] = Field(
        None, alias="retryAfterSeconds", description="재시도 권장 대기 시간 (초)"
    )
    attempts: list[AttemptInfo] = Field(
        default_factory=list, description="시도한 프로바이더 기록"
    )
    skipped: list[SkippedInfo] = Field(
        default_factory=list, description="시도 전에 제외된 프로바이더와 사유"
    )

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "error": "temporarily_unavailable",
                "message": "All providers exhausted: groq(tier 1): timeout",
                "retryAfterSeconds": 30,
                "attempts": [
                    {
                        "tier": 1,
                        "provider": "groq",
                        "startedAt": 1760000000.0,
                        "outcome": "timeout",
                        "latencyMs": 30000.0,
                    }
                ],
                "skipped": [
                    {"provider": "gemini", "tier": 2, "reason": "daily budget reached"}
                ],
            }
        },
    )


class HealthResponse(_ApiModel):
    status: str = Field(..., description="전체 상태 (ok, degraded, unavailable)")
    providers: dict[str, Any] = Field(default_factory=dict)
    scheduler: list[dict[str, Any]] = Field(default_factory=list)
