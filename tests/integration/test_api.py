"""HTTP surface: auth, error mapping and the main read/write endpoints."""

from __future__ import annotations

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from careerxp.auth.jwt import create_access_token
from careerxp.main import create_app


def auth(developer_id: str = "dev-1") -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(developer_id)}"}


@pytest_asyncio.fixture
async def client(services) -> AsyncGenerator[AsyncClient, None]:
    """App wired to the in-memory services; lifespan is bypassed."""
    app = create_app()
    app.state.services = services
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


class TestHealth:
    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}
        assert "X-Request-Id" in response.headers


class TestEvents:
    @pytest.mark.asyncio
    async def test_requires_token(self, client):
        response = await client.post(
            "/api/v1/gamification/events",
            json={"event_type": "DAILY_LOGIN", "event_data": {"user_id": "dev-1"}},
        )
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_rejects_bad_token(self, client):
        response = await client.post(
            "/api/v1/gamification/events",
            json={"event_type": "DAILY_LOGIN", "event_data": {"user_id": "dev-1"}},
            headers={"Authorization": "Bearer not-a-jwt"},
        )
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_daily_login(self, client):
        response = await client.post(
            "/api/v1/gamification/events",
            json={"event_type": "DAILY_LOGIN", "event_data": {"user_id": "dev-1"}},
            headers=auth(),
        )
        assert response.status_code == 200
        body = response.json()
        assert body["xp_awarded"] == 5
        assert body["streak"] == 1

    @pytest.mark.asyncio
    async def test_other_developer_forbidden(self, client):
        response = await client.post(
            "/api/v1/gamification/events",
            json={"event_type": "DAILY_LOGIN", "event_data": {"user_id": "dev-2"}},
            headers=auth(),
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_missing_field_is_422(self, client):
        response = await client.post(
            "/api/v1/gamification/events",
            json={"event_type": "CV_UPLOADED", "event_data": {"user_id": "dev-1"}},
            headers=auth(),
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_rate_limited_is_429_with_retry_after(self, client):
        payload = {"event_type": "DAILY_LOGIN", "event_data": {"user_id": "dev-1"}}
        await client.post("/api/v1/gamification/events", json=payload, headers=auth())
        response = await client.post("/api/v1/gamification/events", json=payload, headers=auth())
        assert response.status_code == 429
        assert int(response.headers["Retry-After"]) > 0


class TestReads:
    @pytest.mark.asyncio
    async def test_profile_unknown_developer(self, client):
        response = await client.get("/api/v1/gamification/profile", headers=auth("ghost"))
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_profile_after_event(self, client):
        await client.post(
            "/api/v1/gamification/events",
            json={"event_type": "DAILY_LOGIN", "event_data": {"user_id": "dev-1"}},
            headers=auth(),
        )
        response = await client.get("/api/v1/gamification/profile", headers=auth())
        assert response.status_code == 200
        body = response.json()
        assert body["total_xp"] == 5
        assert body["level"] == 1
        assert body["title"] == "Newcomer"

    @pytest.mark.asyncio
    async def test_leaderboard(self, client, make_developer):
        await make_developer("dev-1", total_xp=300)
        await make_developer("dev-2", total_xp=900)
        response = await client.get("/api/v1/gamification/leaderboard?kind=xp&limit=5")
        assert response.status_code == 200
        entries = response.json()["entries"]
        assert [e["developer_id"] for e in entries] == ["dev-2", "dev-1"]

    @pytest.mark.asyncio
    async def test_leaderboard_rejects_unknown_kind(self, client):
        response = await client.get("/api/v1/gamification/leaderboard?kind=karma")
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_badges(self, client, make_developer):
        await make_developer()
        response = await client.get("/api/v1/gamification/badges", headers=auth())
        assert response.status_code == 200
        body = response.json()
        assert body["total_earned"] == 0
        assert body["total_available"] == len(body["badges"])


class TestPoints:
    @pytest.mark.asyncio
    async def test_balance(self, client, make_developer):
        await make_developer()
        response = await client.get("/api/v1/points/balance", headers=auth())
        assert response.status_code == 200
        assert response.json()["available"] == 10

    @pytest.mark.asyncio
    async def test_spend_until_declined(self, client, make_developer):
        await make_developer()
        first = await client.post("/api/v1/points/spend", json={"spend_type": "PREMIUM_ANALYSIS"}, headers=auth())
        assert first.status_code == 200
        assert first.json()["balance"] == 5

        second = await client.post("/api/v1/points/spend", json={"spend_type": "PREMIUM_ANALYSIS"}, headers=auth())
        assert second.json()["balance"] == 0

        declined = await client.post("/api/v1/points/spend", json={"spend_type": "JOB_QUERY"}, headers=auth())
        assert declined.status_code == 402
        assert declined.json()["detail"]["reason"] == "INSUFFICIENT_BALANCE"

    @pytest.mark.asyncio
    async def test_spend_missing_source_id(self, client, make_developer):
        await make_developer()
        response = await client.post("/api/v1/points/spend", json={"spend_type": "COVER_LETTER"}, headers=auth())
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_streak_recover_not_eligible(self, client, make_developer):
        await make_developer()
        response = await client.post("/api/v1/gamification/streak/recover", headers=auth())
        assert response.status_code == 200
        assert response.json()["success"] is False
