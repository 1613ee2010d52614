"""Goal line resolution: odds summary first, Bet365 prematch odds as fallback."""

import logging
from typing import Optional

from goalwatch.etl.base import LiveFeedProvider
from goalwatch.etl.payloads import GoalLineQuote, extract_prematch_line, extract_summary_line
from goalwatch.telemetry import record_resolution
from goalwatch.tracking.observations import (
    SOURCE_FALLBACK,
    SOURCE_PRIMARY,
    UNAVAILABLE,
    LineObservation,
    Resolution,
)

logger = logging.getLogger(__name__)


class LineResolver:
    """
    Resolve the current Asian goal line of a live match.

    Caching lives in the provider (short TTL per event), so repeated
    resolutions within one poll cycle do not hit the upstream twice.
    """

    def __init__(self, provider: LiveFeedProvider):
        self.provider = provider

    async def resolve(self, match_id: str, bet365_id: Optional[str] = None) -> Resolution:
        """Return a LineObservation, or UNAVAILABLE when neither source yields a line."""
        quote = await self._primary(match_id)
        source = SOURCE_PRIMARY

        if quote is None and bet365_id:
            quote = await self._fallback(bet365_id)
            source = SOURCE_FALLBACK
            if quote is not None:
                logger.info(f"[RESOLVER] Got goal line from prematch odds for {match_id}: {quote.line}")

        if quote is None:
            record_resolution("unavailable")
            return UNAVAILABLE

        record_resolution(source)
        return LineObservation(
            line=quote.line,
            over_odds=quote.over_odds,
            under_odds=quote.under_odds,
            score=quote.score,
            source=source,
        )

    async def _primary(self, match_id: str) -> Optional[GoalLineQuote]:
        try:
            payload = await self.provider.get_odds_summary(match_id)
        except Exception as e:
            logger.error(f"[RESOLVER] Odds summary lookup failed for {match_id}: {e}", exc_info=True)
            return None
        if payload is None:
            logger.debug(f"[RESOLVER] No odds summary for event {match_id}")
            return None

        quote = extract_summary_line(payload)
        if quote is None:
            markets = payload.available_markets()
            if markets:
                logger.debug(f"[RESOLVER] No 1_3 market for event {match_id}. Available: {', '.join(markets)}")
            else:
                logger.debug(f"[RESOLVER] No Bet365 odds data for event {match_id}")
        return quote

    async def _fallback(self, bet365_id: str) -> Optional[GoalLineQuote]:
        try:
            payload = await self.provider.get_prematch_odds(bet365_id)
        except Exception as e:
            logger.error(f"[RESOLVER] Prematch lookup failed for {bet365_id}: {e}", exc_info=True)
            return None
        if payload is None:
            return None
        return extract_prematch_line(payload)
