"""Shared fixtures: in-memory database, fake feed provider and fake gateway."""

from typing import Optional

import pytest
import pytest_asyncio

from goalwatch.alerting.telegram import GatewayError, NotificationGateway
from goalwatch.database import close_db, create_engine, create_session_factory, init_db
from goalwatch.etl.base import LiveFeedProvider, LiveMatch
from goalwatch.etl.leagues import DEFAULT_LEAGUES, LeagueRegistry
from goalwatch.etl.payloads import EventResultPayload, OddsSummaryPayload, PrematchOddsPayload


def summary_payload(handicap, over="1.85", under="1.95", snapshot="end", ss=None) -> OddsSummaryPayload:
    """Odds summary with one Bet365 1_3 quote in the given snapshot."""
    quote = {"handicap": handicap, "over_od": over, "under_od": under}
    if ss is not None:
        quote["ss"] = ss
    return OddsSummaryPayload.model_validate({"Bet365": {"odds": {snapshot: {"1_3": quote}}}})


def live_match(match_id="1001", league_id=23114, score="0-0", bet365_id=None) -> LiveMatch:
    return LiveMatch(
        match_id=match_id,
        bet365_id=bet365_id or f"b{match_id}",
        league_id=league_id,
        league_name=DEFAULT_LEAGUES[league_id].name if league_id in DEFAULT_LEAGUES else "Other",
        home_team="Arsenal (Boom)",
        away_team="Chelsea (Kray)",
        score=score,
    )


class FakeProvider(LiveFeedProvider):
    """In-memory feed: set `live` to a list (or None for an outage) and per-event payloads."""

    def __init__(self):
        self.live: Optional[list[LiveMatch]] = []
        self.summaries: dict[str, OddsSummaryPayload] = {}
        self.prematch: dict[str, PrematchOddsPayload] = {}
        self.results: dict[str, EventResultPayload] = {}
        self.historical: dict[str, OddsSummaryPayload] = {}
        self.summary_calls: list[str] = []
        self.prematch_calls: list[str] = []
        self.result_calls: list[str] = []
        self.raise_on_summary = False
        self.closed = False

    async def get_live_matches(self):
        return None if self.live is None else list(self.live)

    async def get_odds_summary(self, event_id):
        self.summary_calls.append(event_id)
        if self.raise_on_summary:
            raise RuntimeError("upstream exploded")
        return self.summaries.get(event_id)

    async def get_prematch_odds(self, bet365_id):
        self.prematch_calls.append(bet365_id)
        return self.prematch.get(bet365_id)

    async def get_match_result(self, event_id):
        self.result_calls.append(event_id)
        return self.results.get(event_id)

    async def get_historical_odds_summary(self, event_id):
        return self.historical.get(event_id)

    async def close(self):
        self.closed = True


class FakeGateway(NotificationGateway):
    """Records sent messages; fails the first `fail_times` sends."""

    def __init__(self, configured: bool = True, fail_times: int = 0):
        self._configured = configured
        self.fail_times = fail_times
        self.attempts = 0
        self.sent: list[tuple[str, str]] = []

    @property
    def configured(self) -> bool:
        return self._configured

    @property
    def default_chat_id(self) -> str:
        return "-100123" if self._configured else ""

    async def send(self, chat_id, text):
        self.attempts += 1
        if self.attempts <= self.fail_times:
            raise GatewayError("Too Many Requests: retry after 1", status_code=429, retry_after=1)
        self.sent.append((chat_id, text))


async def no_sleep(_seconds: float) -> None:
    return None


@pytest_asyncio.fixture
async def db_engine():
    engine = create_engine("sqlite:///:memory:")
    await init_db(engine)
    yield engine
    await close_db(engine)


@pytest.fixture
def session_factory(db_engine):
    return create_session_factory(db_engine)


@pytest.fixture
def registry():
    return LeagueRegistry(DEFAULT_LEAGUES)


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def gateway():
    return FakeGateway()
