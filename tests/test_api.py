"""Tests for TrackingEngine wiring and the HTTP routes."""

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI

from conftest import FakeGateway, FakeProvider, live_match, summary_payload
from goalwatch.config import Settings
from goalwatch.engine import TrackingEngine
from goalwatch.etl.leagues import DEFAULT_LEAGUES, LeagueRegistry
from goalwatch.routes.api import router
from goalwatch.security import limiter


@pytest_asyncio.fixture
async def engine(db_engine):
    settings = Settings(_env_file=None, NOTIFY_PACING_SECONDS=0)
    tracking = TrackingEngine.build(
        db_engine,
        LeagueRegistry(DEFAULT_LEAGUES),
        FakeProvider(),
        FakeGateway(),
        settings,
    )
    yield tracking
    await tracking.orchestrator.stop()
    await tracking.queue.stop()


@pytest_asyncio.fixture
async def client(engine):
    app = FastAPI()
    app.state.limiter = limiter
    app.state.engine = engine
    app.include_router(router, prefix="/api")
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http


class TestEngine:
    """Composition and operations."""

    @pytest.mark.asyncio
    async def test_health_before_first_cycle(self, engine):
        health = await engine.health()
        assert health["tracker_running"] is False
        assert health["last_cycle"] is None
        assert health["last_poll_success_at"] is None
        assert health["database"]["type"] == "sqlite"
        assert health["target_leagues"][23114]["target_line"] == 2.5

    @pytest.mark.asyncio
    async def test_health_after_cycle(self, engine):
        await engine.orchestrator.run_cycle()
        health = await engine.health()
        assert health["last_cycle"]["status"] == "ok"
        assert health["last_poll_success_at"] is not None

    @pytest.mark.asyncio
    async def test_send_test_message(self, engine):
        assert engine.send_test_message()
        await engine.queue.drain()
        assert "online" in engine.gateway.sent[0][1]

    @pytest.mark.asyncio
    async def test_stop_closes_clients(self, engine):
        await engine.start(start_tracker=False)
        await engine.stop()
        assert engine.provider.closed


class TestRoutes:
    """HTTP surface over the engine."""

    @pytest.mark.asyncio
    async def test_tracked_and_history(self, client, engine):
        engine.provider.live = [live_match("1001")]
        engine.provider.summaries["1001"] = summary_payload("2.5")
        await engine.orchestrator.run_cycle()

        tracked = (await client.get("/api/tracked")).json()
        assert tracked["count"] == 1
        assert tracked["matches"][0]["touched_target"] is True

        history = (await client.get("/api/history", params={"status": "live", "limit": 10})).json()
        assert history["total"] == 1

        odds = await client.get("/api/odds-history/1001")
        assert odds.status_code == 200
        assert odds.json()["odds_history"][0]["line"] == 2.5

    @pytest.mark.asyncio
    async def test_unknown_match_is_404(self, client):
        assert (await client.get("/api/odds-history/nope")).status_code == 404

    @pytest.mark.asyncio
    async def test_invalid_status_is_400(self, client):
        assert (await client.get("/api/history", params={"status": "bogus"})).status_code == 400

    @pytest.mark.asyncio
    async def test_leagues_and_stats(self, client):
        leagues = (await client.get("/api/leagues")).json()["leagues"]
        assert {league["id"] for league in leagues} == set(DEFAULT_LEAGUES)

        stats = (await client.get("/api/stats")).json()["stats"]
        assert stats["total_matches"] == 0

        league_stats = (await client.get("/api/league-stats/23114")).json()
        assert league_stats["target_line"] == 2.5
        assert league_stats["goal_line_stats"] == []

    @pytest.mark.asyncio
    async def test_tracker_start_stop(self, client):
        started = (await client.post("/api/tracker/start")).json()
        assert started["message"] == "Tracker started"
        again = (await client.post("/api/tracker/start")).json()
        assert again["message"] == "Tracker already running"
        stopped = (await client.post("/api/tracker/stop")).json()
        assert stopped["message"] == "Tracker stopped"

    @pytest.mark.asyncio
    async def test_backfills(self, client):
        scores = (await client.post("/api/backfill-scores")).json()
        lines = (await client.post("/api/backfill-goallines")).json()
        assert scores["processed"] == 0
        assert lines["processed"] == 0

    @pytest.mark.asyncio
    async def test_metrics(self, client):
        response = await client.get("/api/metrics")
        assert response.status_code == 200
        assert "goalwatch_" in response.text
