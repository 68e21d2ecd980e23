"""HTTP-level tests for the chat, health and cache routes."""

import httpx
import pytest

from study_orchestrator.server import create_app


@pytest.fixture
async def client(app_context):
    app = create_app(app_context)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


def adapter(ctx, name):
    return ctx.registry.get(name).adapter


class TestChatEndpoint:
    async def test_success_uses_camel_case(self, client):
        resp = await client.post(
            "/api/chat",
            json={"userId": "u1", "conversationId": "c1", "message": "Explain osmosis"},
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["content"] == "answer from groq"
        assert data["providerUsed"] == "groq"
        assert data["modelUsed"] == "groq-model"
        assert data["fallbackUsed"] is False
        assert data["tierReached"] == 1
        assert data["cached"] is False
        assert data["tokensUsed"] == {"input": 10, "output": 5}
        assert data["memoriesFound"] == 0
        assert data["memoryReferences"] == []
        assert "latencyMs" in data

    async def test_preferred_provider(self, client):
        resp = await client.post(
            "/api/chat",
            json={"userId": "u1", "message": "hi", "provider": "gemini"},
        )
        assert resp.json()["providerUsed"] == "gemini"

    async def test_exhaustion_returns_503(self, client, app_context):
        adapter(app_context, "groq").behavior = "error"
        adapter(app_context, "gemini").behavior = "empty"

        resp = await client.post("/api/chat", json={"userId": "u1", "message": "hi"})

        assert resp.status_code == 503
        assert resp.headers["Retry-After"] == "15"
        data = resp.json()
        assert data["error"] == "temporarily_unavailable"
        assert data["retryAfterSeconds"] == 15
        assert [a["provider"] for a in data["attempts"]] == ["groq", "gemini"]
        assert [a["outcome"] for a in data["attempts"]] == ["error", "invalid_response"]
        assert data["skipped"] == []

    async def test_no_eligible_provider_lists_skip_reasons(self, client, app_context):
        app_context.registry.disable("groq", "missing API key")
        app_context.registry.disable("gemini", "missing API key")

        resp = await client.post("/api/chat", json={"userId": "u1", "message": "hi"})

        assert resp.status_code == 503
        data = resp.json()
        assert data["attempts"] == []
        assert data["skipped"] == [
            {"provider": "groq", "tier": 1, "reason": "missing API key"},
            {"provider": "gemini", "tier": 2, "reason": "missing API key"},
        ]
        assert "groq(tier 1): missing API key" in data["message"]

    @pytest.mark.parametrize(
        "payload",
        [
            {"message": "missing user"},
            {"userId": "u1"},
            {"userId": "u1", "message": ""},
            {"userId": "u1", "message": "hi", "memoryOptions": {"contextLevel": "all"}},
            {"userId": "u1", "message": "hi", "memoryOptions": {"minSimilarity": 2}},
        ],
    )
    async def test_invalid_request_is_422(self, client, payload):
        resp = await client.post("/api/chat", json=payload)
        assert resp.status_code == 422


class TestHealthEndpoint:
    async def test_all_healthy(self, client):
        resp = await client.get("/api/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "ok"
        assert set(data["providers"]) == {"groq", "gemini"}
        assert data["providers"]["groq"]["enabled"] is True
        assert data["providers"]["groq"]["usage"]["level"] == "healthy"
        assert {t["name"] for t in data["scheduler"]} >= {
            "embedding-cache-sweep",
            "memory-expiry-sweep",
        }

    async def test_degraded_after_failures(self, client, app_context):
        groq = app_context.registry.get("groq").config
        for _ in range(3):
            app_context.health.record_failure(groq, error="boom")
        data = (await client.get("/api/health")).json()
        assert data["status"] == "degraded"
        assert data["providers"]["groq"]["status"] == "degraded"

    async def test_unavailable_when_every_circuit_is_open(self, client, app_context):
        for entry in app_context.registry.all():
            for _ in range(5):
                app_context.health.record_failure(entry.config, error="boom")
        data = (await client.get("/api/health")).json()
        assert data["status"] == "unavailable"

    async def test_usage_counts_after_chat(self, client):
        await client.post("/api/chat", json={"userId": "u1", "message": "hi"})
        data = (await client.get("/api/health")).json()
        assert data["providers"]["groq"]["usage"]["requests_today"] == 1


class TestCacheStatsEndpoint:
    async def test_reports_both_caches(self, client):
        await client.post(
            "/api/chat",
            json={"userId": "u1", "message": "hi", "files": ["notes/bio.md"]},
        )
        data = (await client.get("/api/cache/stats")).json()
        assert data["embedding"]["name"] == "embedding-cache"
        assert data["embedding"]["size"] >= 1
        assert data["content"]["size"] == 1
        assert data["content"]["max_bytes"] == 50 * 1024 * 1024
