"""Abstract base class for the live odds feed."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from goalwatch.etl.payloads import EventResultPayload, OddsSummaryPayload, PrematchOddsPayload


@dataclass
class LiveMatch:
    """Data transfer object for one in-play match from a tracked league."""

    match_id: str
    bet365_id: Optional[str]
    league_id: int
    league_name: str
    home_team: str
    away_team: str
    score: str


class LiveFeedProvider(ABC):
    """
    Upstream feed contract.

    Every read returns None when the upstream is unavailable or the payload
    does not validate; implementations never raise to callers.
    """

    @abstractmethod
    async def get_live_matches(self) -> Optional[list[LiveMatch]]:
        """
        Fetch in-play matches from tracked leagues.

        Returns:
            List of LiveMatch (possibly empty), or None if the feed could not be read.
        """
        pass

    @abstractmethod
    async def get_odds_summary(self, event_id: str) -> Optional[OddsSummaryPayload]:
        """Current odds snapshot (start/kickoff/end) for an event. Cached briefly."""
        pass

    @abstractmethod
    async def get_prematch_odds(self, bet365_id: str) -> Optional[PrematchOddsPayload]:
        """Bet365 prematch odds by fixture ID. Cached briefly."""
        pass

    @abstractmethod
    async def get_match_result(self, event_id: str) -> Optional[EventResultPayload]:
        """Result view for a finished event."""
        pass

    @abstractmethod
    async def get_historical_odds_summary(self, event_id: str) -> Optional[OddsSummaryPayload]:
        """Uncached odds summary, used by backfills for finished matches."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close any open connections."""
        pass
