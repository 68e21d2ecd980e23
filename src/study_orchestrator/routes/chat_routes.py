"""Chat turn, health and cache statistics API routes."""

from fastapi import APIRouter
from loguru import logger
from starlette.responses import JSONResponse

from ..app_context import AppContext
from ..exceptions import AllProvidersExhausted
from ..schemas.api import (
    ChatTurnRequest,
    ChatTurnResponse,
    ErrorResponse,
    HealthResponse,
)


def init_chat_routes(ctx: AppContext) -> APIRouter:
    """
    Create routes for the chat-turn API.

    Args:
        ctx: Application context owning the chat service and caches.

    Returns:
        APIRouter: Router with chat, health and cache endpoints.
    """
    router = APIRouter()

    @router.post(
        "/api/chat",
        response_model=ChatTurnResponse,
        responses={503: {"model": ErrorResponse}},
    )
    async def chat_turn(request: ChatTurnRequest):
        """
        채팅 턴을 처리합니다.

        모든 프로바이더가 실패하면 503과 함께 시도 기록과 재시도 대기 시간을
        반환합니다. 메모리 오류는 응답에 영향을 주지 않습니다.
        """
        try:
            response = await ctx.chat.handle_turn(request)
        except AllProvidersExhausted as e:
            body = ErrorResponse(
                error="temporarily_unavailable",
                message=e.message,
                retry_after_seconds=e.retry_after,
                attempts=[a.to_dict() for a in e.attempts],
                skipped=e.skipped,
            )
            return JSONResponse(
                body.model_dump(by_alias=True, exclude_none=True),
                status_code=503,
                headers={"Retry-After": str(int(e.retry_after))},
            )
        return JSONResponse(response.model_dump(by_alias=True), status_code=200)

    @router.get("/api/health", response_model=HealthResponse)
    async def get_health():
        """
        프로바이더 상태와 사용량을 조회합니다.

        Returns:
            JSON response with:
                - status: ok / degraded / unavailable
                - providers: 프로바이더별 상태, 연속 실패 수, 사용량
                - scheduler: 주기 작업 실행 기록
        """
        providers = ctx.provider_health()
        for entry in ctx.registry.all():
            providers[entry.config.name]["enabled"] = entry.enabled
            if entry.disabled_reason:
                providers[entry.config.name]["disabled_reason"] = entry.disabled_reason

        usable = [
            name
            for name, info in providers.items()
            if info.get("enabled") and info["status"] != "unavailable"
        ]
        if not usable:
            status = "unavailable"
        elif any(
            info["status"] != "healthy"
            for info in providers.values()
            if info.get("enabled")
        ):
            status = "degraded"
        else:
            status = "ok"

        body = HealthResponse(
            status=status,
            providers=providers,
            scheduler=[t.to_dict() for t in ctx.scheduler.tasks()],
        )
        return JSONResponse(body.model_dump(), status_code=200)

    @router.get("/api/cache/stats")
    async def get_cache_stats():
        """임베딩 캐시와 콘텐츠 캐시의 통계를 조회합니다."""
        try:
            return JSONResponse(ctx.cache_stats(), status_code=200)
        except Exception as e:
            logger.error(f"Failed to collect cache stats: {e}")
            return JSONResponse(
                {"error": "cache_stats_unavailable", "message": str(e)},
                status_code=500,
            )

    return router
