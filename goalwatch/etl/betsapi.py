"""BetsAPI (b365api) live feed provider."""

import json
import logging
import time
from typing import Any, Optional

import httpx
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from goalwatch.etl.base import LiveFeedProvider, LiveMatch
from goalwatch.etl.leagues import LeagueRegistry
from goalwatch.etl.payloads import (
    Envelope,
    EventResultPayload,
    InplayEventPayload,
    OddsSummaryPayload,
    PrematchOddsPayload,
)
from goalwatch.models import ApiLog
from goalwatch.telemetry import record_provider_error, record_provider_request
from goalwatch.utils.cache import TTLCache

logger = logging.getLogger(__name__)

SOCCER_SPORT_ID = 1

# Endpoint paths double as low-cardinality metric labels
INPLAY = "/v3/events/inplay"
ODDS_SUMMARY = "/v2/event/odds/summary"
PREMATCH_ODDS = "/v3/bet365/prematch_odds"
EVENT_VIEW = "/v1/event/view"


class BetsAPIProvider(LiveFeedProvider):
    """
    BetsAPI Soccer API client.

    One request per call, no retries: the next poll cycle is the retry.
    Every request is timed, counted in Prometheus and written to api_logs.
    """

    def __init__(
        self,
        token: str,
        registry: LeagueRegistry,
        base_url: str = "https://api.b365api.com",
        timeout: float = 30.0,
        cache_ttl: float = 10.0,
        session_factory: Optional[async_sessionmaker] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.registry = registry
        self.client = httpx.AsyncClient(
            base_url=base_url,
            params={"token": token},
            timeout=timeout,
            transport=transport,
        )
        self._session_factory = session_factory
        self._inplay_cache = TTLCache(ttl=cache_ttl)
        self._summary_cache = TTLCache(ttl=cache_ttl)
        self._prematch_cache = TTLCache(ttl=cache_ttl)

    async def _request(self, endpoint: str, params: dict) -> Optional[Any]:
        """
        GET an endpoint and return the envelope's `results`.

        Returns None on timeout, transport error, non-2xx status, invalid JSON
        or success != 1.
        """
        start_time = time.time()
        status_code = 0
        error = None
        error_code = None
        results = None

        try:
            response = await self.client.get(endpoint, params=params)
            status_code = response.status_code
            response.raise_for_status()
            envelope = Envelope.model_validate(response.json())
            if envelope.ok:
                results = envelope.results
            else:
                error, error_code = f"success={envelope.success}", "api_failure"

        except httpx.TimeoutException as e:
            error, error_code = f"Timeout: {e}", "timeout"
        except httpx.HTTPStatusError:
            error, error_code = f"HTTP {status_code}", f"http_{status_code // 100}xx"
        except httpx.RequestError as e:
            error, error_code = f"Request error: {e}", "request_error"
        except (json.JSONDecodeError, ValidationError) as e:
            error, error_code = f"Invalid response: {e}", "invalid_json"

        latency_ms = (time.time() - start_time) * 1000
        record_provider_request(endpoint, status_code, latency_ms)
        if error_code:
            record_provider_error(endpoint, error_code)
            logger.warning(f"[BETSAPI] {endpoint} failed: {error}")

        await self._log_call(endpoint, status_code, latency_ms, error)
        return results

    async def _log_call(self, endpoint: str, status: int, latency_ms: float, error: Optional[str]) -> None:
        """Best-effort api_logs write; never affects the caller."""
        if self._session_factory is None:
            return
        try:
            async with self._session_factory() as session:
                session.add(
                    ApiLog(
                        endpoint=endpoint,
                        response_status=status,
                        response_time_ms=int(latency_ms),
                        error_message=error[:1000] if error else None,
                    )
                )
                await session.commit()
        except SQLAlchemyError as e:
            logger.debug(f"[BETSAPI] api_logs write failed: {e}")

    # =========================================================================
    # LIVE FEED
    # =========================================================================

    async def get_live_matches(self) -> Optional[list[LiveMatch]]:
        hit, cached = self._inplay_cache.get("inplay")
        if hit:
            return cached

        results = await self._request(INPLAY, {"sport_id": SOCCER_SPORT_ID})
        if results is None or not isinstance(results, list):
            return None

        matches = self._parse_inplay(results)
        self._inplay_cache.set("inplay", matches)
        logger.info(f"[BETSAPI] Inplay returned {len(results)} events, {len(matches)} in tracked leagues")
        return matches

    def _parse_inplay(self, results: list) -> list[LiveMatch]:
        matches: dict[str, LiveMatch] = {}
        for raw in results:
            try:
                event = InplayEventPayload.model_validate(raw)
            except ValidationError:
                continue

            league = self.registry.match(event.league_id, event.league.name or "")
            if league is None or event.id in matches:
                continue

            matches[event.id] = LiveMatch(
                match_id=event.id,
                bet365_id=event.bet365_id or event.id,
                league_id=league.league_id,
                league_name=league.name,
                home_team=event.home.name or "Unknown",
                away_team=event.away.name or "Unknown",
                score=event.ss or "0-0",
            )
        return list(matches.values())

    async def get_odds_summary(self, event_id: str) -> Optional[OddsSummaryPayload]:
        hit, cached = self._summary_cache.get(event_id)
        if hit:
            return cached

        payload = await self._fetch_summary(event_id)
        if payload is not None:
            self._summary_cache.set(event_id, payload)
        return payload

    async def get_historical_odds_summary(self, event_id: str) -> Optional[OddsSummaryPayload]:
        return await self._fetch_summary(event_id)

    async def _fetch_summary(self, event_id: str) -> Optional[OddsSummaryPayload]:
        results = await self._request(ODDS_SUMMARY, {"event_id": event_id})
        if results is None:
            return None
        try:
            return OddsSummaryPayload.model_validate(results)
        except ValidationError as e:
            record_provider_error(ODDS_SUMMARY, "invalid_payload")
            logger.debug(f"[BETSAPI] Invalid odds summary for {event_id}: {e.error_count()} errors")
            return None

    async def get_prematch_odds(self, bet365_id: str) -> Optional[PrematchOddsPayload]:
        hit, cached = self._prematch_cache.get(bet365_id)
        if hit:
            return cached

        results = await self._request(PREMATCH_ODDS, {"FI": bet365_id})
        if results is None:
            return None
        # prematch_odds wraps its single result in a list
        if isinstance(results, list):
            if not results:
                return None
            results = results[0]
        try:
            payload = PrematchOddsPayload.model_validate(results)
        except ValidationError:
            record_provider_error(PREMATCH_ODDS, "invalid_payload")
            return None

        self._prematch_cache.set(bet365_id, payload)
        return payload

    async def get_match_result(self, event_id: str) -> Optional[EventResultPayload]:
        results = await self._request(EVENT_VIEW, {"event_id": event_id})
        if not results or not isinstance(results, list):
            return None
        try:
            return EventResultPayload.model_validate(results[0])
        except ValidationError:
            record_provider_error(EVENT_VIEW, "invalid_payload")
            return None

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()
