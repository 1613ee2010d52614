"""Tests for BetsAPIProvider using httpx.MockTransport."""

import httpx
import pytest
from sqlalchemy import select

from goalwatch.etl.betsapi import EVENT_VIEW, INPLAY, ODDS_SUMMARY, PREMATCH_ODDS, BetsAPIProvider
from goalwatch.etl.leagues import DEFAULT_LEAGUES, LeagueRegistry
from goalwatch.models import ApiLog

INPLAY_RESULTS = [
    {
        "id": "9001",
        "league": {"id": "23114", "name": "Esoccer GT Leagues - 12 mins play"},
        "home": {"name": "Arsenal (Boom)"},
        "away": {"name": "Chelsea (Kray)"},
        "ss": "1-0",
        "bet365_id": "130001",
    },
    {
        # Tracked by name pattern, not id
        "id": "9002",
        "league": {"id": "99999", "name": "Esoccer Battle Volta - 6 mins play"},
        "home": {"name": "Team A"},
        "away": {},
    },
    {"id": "9003", "league": {"id": "1", "name": "Premier League"}, "home": {"name": "X"}, "away": {"name": "Y"}},
    {"id": "9001", "league": {"id": "23114"}, "home": {"name": "dup"}, "away": {"name": "dup"}},
    {"league": {"id": "23114"}},
]


def make_provider(handler, session_factory=None, cache_ttl=10.0) -> BetsAPIProvider:
    return BetsAPIProvider(
        token="tok",
        registry=LeagueRegistry(DEFAULT_LEAGUES),
        base_url="https://api.test",
        cache_ttl=cache_ttl,
        session_factory=session_factory,
        transport=httpx.MockTransport(handler),
    )


class TestInplay:
    """In-play list filtering and parsing."""

    @pytest.mark.asyncio
    async def test_filters_and_dedupes(self):
        seen = []

        def handler(request: httpx.Request):
            seen.append(request)
            return httpx.Response(200, json={"success": 1, "results": INPLAY_RESULTS})

        provider = make_provider(handler)
        matches = await provider.get_live_matches()
        await provider.close()

        assert [m.match_id for m in matches] == ["9001", "9002"]
        first, second = matches
        assert first.league_id == 23114
        assert first.bet365_id == "130001"
        assert first.score == "1-0"
        assert second.league_id == 38439
        assert second.bet365_id == "9002"
        assert second.away_team == "Unknown"
        assert second.score == "0-0"

        assert seen[0].url.path == INPLAY
        assert seen[0].url.params["token"] == "tok"
        assert seen[0].url.params["sport_id"] == "1"

    @pytest.mark.asyncio
    async def test_cached_within_ttl(self):
        calls = []

        def handler(request):
            calls.append(1)
            return httpx.Response(200, json={"success": 1, "results": []})

        provider = make_provider(handler)
        assert await provider.get_live_matches() == []
        assert await provider.get_live_matches() == []
        assert len(calls) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(500, json={"error": "boom"}),
            httpx.Response(200, json={"success": 0, "error": "TOKEN_INVALID"}),
            httpx.Response(200, content=b"<html>not json</html>"),
            httpx.Response(200, json={"success": 1, "results": {"not": "a list"}}),
        ],
    )
    async def test_failures_return_none(self, response):
        provider = make_provider(lambda r: response)
        assert await provider.get_live_matches() is None

    @pytest.mark.asyncio
    async def test_timeout_returns_none(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        provider = make_provider(handler)
        assert await provider.get_live_matches() is None


class TestOdds:
    """Odds summary, prematch odds and result view."""

    @pytest.mark.asyncio
    async def test_odds_summary(self):
        def handler(request):
            assert request.url.path == ODDS_SUMMARY
            assert request.url.params["event_id"] == "9001"
            return httpx.Response(
                200,
                json={
                    "success": 1,
                    "results": {"Bet365": {"odds": {"end": {"1_3": {"handicap": "2.5", "over_od": "1.8"}}}}},
                },
            )

        provider = make_provider(handler)
        payload = await provider.get_odds_summary("9001")
        assert payload.quote("end").handicap == "2.5"

    @pytest.mark.asyncio
    async def test_historical_summary_not_cached(self):
        calls = []

        def handler(request):
            calls.append(1)
            return httpx.Response(200, json={"success": 1, "results": {}})

        provider = make_provider(handler)
        await provider.get_historical_odds_summary("1")
        await provider.get_historical_odds_summary("1")
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_prematch_unwraps_list(self):
        def handler(request):
            assert request.url.path == PREMATCH_ODDS
            assert request.url.params["FI"] == "130001"
            return httpx.Response(
                200,
                json={
                    "success": 1,
                    "results": [{"odds": {"1": {"market_name": "Asian Total Goals", "odds": []}}}],
                },
            )

        provider = make_provider(handler)
        payload = await provider.get_prematch_odds("130001")
        assert payload.markets()[0].market_name == "Asian Total Goals"

    @pytest.mark.asyncio
    async def test_prematch_empty_list(self):
        provider = make_provider(lambda r: httpx.Response(200, json={"success": 1, "results": []}))
        assert await provider.get_prematch_odds("1") is None

    @pytest.mark.asyncio
    async def test_match_result(self):
        def handler(request):
            assert request.url.path == EVENT_VIEW
            return httpx.Response(
                200, json={"success": 1, "results": [{"id": 9001, "ss": "3-2", "time_status": 3}]}
            )

        provider = make_provider(handler)
        result = await provider.get_match_result("130001")
        assert result.ss == "3-2"
        assert result.time_status == "3"


class TestApiLog:
    """Every upstream call is logged."""

    @pytest.mark.asyncio
    async def test_calls_written_to_api_logs(self, session_factory):
        responses = iter([
            httpx.Response(200, json={"success": 1, "results": []}),
            httpx.Response(503, text="unavailable"),
        ])
        provider = make_provider(lambda r: next(responses), session_factory=session_factory, cache_ttl=0)

        await provider.get_live_matches()
        await provider.get_live_matches()

        async with session_factory() as session:
            rows = (await session.execute(select(ApiLog).order_by(ApiLog.id))).scalars().all()
        assert [(r.endpoint, r.response_status) for r in rows] == [(INPLAY, 200), (INPLAY, 503)]
        assert rows[0].error_message is None
        assert rows[1].error_message == "HTTP 503"
