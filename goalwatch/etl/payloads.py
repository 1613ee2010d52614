"""
Typed payloads for the BetsAPI responses the tracker reads.

Each upstream shape has one model. Fields are validated explicitly; a
response that does not validate is treated as absent (fail closed), so a
partially parsed payload never reaches the tracker.

Shapes:
- /v3/events/inplay            -> InplayEventPayload (one per result)
- /v2/event/odds/summary       -> OddsSummaryPayload (Bet365 start/kickoff/end markets)
- /v3/bet365/prematch_odds     -> PrematchOddsPayload (markets keyed by name)
- /v1/event/view               -> EventResultPayload
"""

import logging
from dataclasses import dataclass
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from goalwatch.tracking.observations import NOT_AVAILABLE, normalize_line

logger = logging.getLogger(__name__)

# Bet365 "Asian goal line" (over/under total goals) market in odds summary
GOAL_LINE_MARKET = "1_3"
SNAPSHOT_ORDER_LATEST = ("end", "kickoff", "start")
PREMATCH_MARKET_KEYWORDS = ("asian total", "over/under")


def _coerce_str(value):
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError("boolean is not an identifier")
    if isinstance(value, (int, float)):
        return str(int(value)) if float(value).is_integer() else str(value)
    return value


class FeedModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class Envelope(FeedModel):
    """Common BetsAPI wrapper: {"success": 1, "results": ...}."""

    success: int
    results: Any = None

    @property
    def ok(self) -> bool:
        return self.success == 1 and self.results is not None


class NamedRef(FeedModel):
    id: Optional[str] = None
    name: Optional[str] = None

    _coerce_id = field_validator("id", mode="before")(_coerce_str)


class InplayEventPayload(FeedModel):
    id: str
    league: NamedRef = NamedRef()
    home: NamedRef = NamedRef()
    away: NamedRef = NamedRef()
    ss: Optional[str] = None
    bet365_id: Optional[str] = None

    _coerce_ids = field_validator("id", "bet365_id", mode="before")(_coerce_str)

    @field_validator("id")
    @classmethod
    def _non_empty_id(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("empty event id")
        return v.strip()

    @property
    def league_id(self) -> Optional[int]:
        try:
            return int(self.league.id) if self.league.id is not None else None
        except ValueError:
            return None


class MarketQuote(FeedModel):
    """Odds summary market 1_3 entry."""

    handicap: str
    over_od: Optional[str] = None
    under_od: Optional[str] = None
    ss: Optional[str] = None

    _coerce = field_validator("handicap", "over_od", "under_od", mode="before")(_coerce_str)

    @field_validator("handicap")
    @classmethod
    def _numeric_handicap(cls, v: str) -> str:
        if normalize_line(v) is None:
            raise ValueError(f"non-numeric handicap {v!r}")
        return v


class BookmakerSnapshots(FeedModel):
    start: Optional[dict[str, Any]] = None
    kickoff: Optional[dict[str, Any]] = None
    end: Optional[dict[str, Any]] = None


class BookmakerOdds(FeedModel):
    odds: Optional[BookmakerSnapshots] = None


class OddsSummaryPayload(FeedModel):
    Bet365: Optional[BookmakerOdds] = None

    def snapshot(self, name: str) -> Optional[dict[str, Any]]:
        if self.Bet365 is None or self.Bet365.odds is None:
            return None
        return getattr(self.Bet365.odds, name)

    def quote(self, snapshot_name: str) -> Optional[MarketQuote]:
        """Validated goal line quote from one snapshot, or None."""
        snapshot = self.snapshot(snapshot_name)
        if not snapshot:
            return None
        raw = snapshot.get(GOAL_LINE_MARKET)
        if not raw:
            return None
        try:
            return MarketQuote.model_validate(raw)
        except ValidationError as e:
            logger.debug(f"[PAYLOAD] Invalid {GOAL_LINE_MARKET} quote in {snapshot_name}: {e.error_count()} errors")
            return None

    def available_markets(self) -> list[str]:
        for name in SNAPSHOT_ORDER_LATEST:
            snapshot = self.snapshot(name)
            if snapshot:
                return list(snapshot.keys())
        return []


class PrematchOddsEntry(FeedModel):
    handicap: Optional[str] = None
    over_od: Optional[str] = None
    under_od: Optional[str] = None

    _coerce = field_validator("handicap", "over_od", "under_od", mode="before")(_coerce_str)


class PrematchMarket(FeedModel):
    market_name: str = ""
    odds: list[PrematchOddsEntry] = []


class PrematchOddsPayload(FeedModel):
    odds: Optional[dict[str, Any]] = None

    def markets(self) -> list[PrematchMarket]:
        """Markets that validate; malformed ones are skipped."""
        result = []
        for raw in (self.odds or {}).values():
            try:
                result.append(PrematchMarket.model_validate(raw))
            except ValidationError:
                continue
        return result


class EventResultPayload(FeedModel):
    id: Optional[str] = None
    ss: Optional[str] = None
    time_status: Optional[str] = None

    _coerce = field_validator("id", "time_status", mode="before")(_coerce_str)


# =============================================================================
# GOAL LINE EXTRACTION
# =============================================================================


@dataclass(frozen=True)
class GoalLineQuote:
    """Goal line extracted from one of the two payload variants."""

    kind: Literal["odds_summary", "prematch"]
    line: float
    over_odds: str
    under_odds: str
    score: Optional[str] = None


@dataclass(frozen=True)
class HistoricalGoalLine:
    """Goal line summary for a finished match (backfill)."""

    line: float
    over_odds: str
    under_odds: str
    touched_target: bool


def extract_summary_line(payload: OddsSummaryPayload) -> Optional[GoalLineQuote]:
    """Latest goal line from an odds summary: end, then kickoff, then start."""
    for name in SNAPSHOT_ORDER_LATEST:
        quote = payload.quote(name)
        if quote is None:
            continue
        return GoalLineQuote(
            kind="odds_summary",
            line=normalize_line(quote.handicap),
            over_odds=quote.over_od or NOT_AVAILABLE,
            under_odds=quote.under_od or NOT_AVAILABLE,
            score=quote.ss,
        )
    return None


def extract_prematch_line(payload: PrematchOddsPayload) -> Optional[GoalLineQuote]:
    """First asian total / over-under entry with a numeric line and an over price."""
    for market in payload.markets():
        name = market.market_name.lower()
        if not any(keyword in name for keyword in PREMATCH_MARKET_KEYWORDS):
            continue
        for entry in market.odds:
            if not entry.handicap or not entry.over_od:
                continue
            line = normalize_line(entry.handicap)
            if line is None:
                continue
            return GoalLineQuote(
                kind="prematch",
                line=line,
                over_odds=entry.over_od,
                under_odds=entry.under_od or NOT_AVAILABLE,
            )
    return None


def extract_historical_line(
    payload: OddsSummaryPayload,
    target_line: float,
) -> Optional[HistoricalGoalLine]:
    """
    Summarize a finished match's goal line.

    The reported line is the start line (kickoff when start is missing);
    touched_target is True when any of start/kickoff/end equals the target.
    """
    base: Optional[MarketQuote] = None
    touched = False
    for name in ("start", "kickoff", "end"):
        quote = payload.quote(name)
        if quote is None:
            continue
        if normalize_line(quote.handicap) == target_line:
            touched = True
        if base is None and name != "end":
            base = quote

    if base is None:
        return None

    return HistoricalGoalLine(
        line=normalize_line(base.handicap),
        over_odds=base.over_od or NOT_AVAILABLE,
        under_odds=base.under_od or NOT_AVAILABLE,
        touched_target=touched,
    )
