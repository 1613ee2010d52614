"""
Per-match goal line state machine.

Pure decision logic: given the stored state of a match (or None) and the
latest resolution, return the next state and the side effects to run.
Nothing here touches the database, the feed or the notification queue.

Observation rules (existing = stored state, line = resolved goal line):

    existing  resolution   line == target   result
    --------  -----------  ---------------  ------------------------------------------
    None      UNAVAILABLE  -                new state, detected_line None, untouched
    None      line         yes              new state, touched, notify detection
    None      line         no               new state, detected_line = line
    untouched line         yes              detected_line = line, touched, notify detection
    untouched line         no               detected_line = current_line = line
    touched   line         any              current_line = line (detected_line frozen)
    any       UNAVAILABLE  -                score only

Every usable line also appends a history row (deduplicated by the ledger).
A score that does not parse as "H-A" is ignored and the previous one kept.
A touched match whose detection alert was never handed off is retried the
next time the line is observed at target.

Completion runs once per cycle for live matches missing from the feed.
"""

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional, Union

from goalwatch.models import STATUS_FINISHED, STATUS_LIVE, TrackedMatch
from goalwatch.tracking.observations import LineObservation, Resolution, Unavailable, parse_score


@dataclass(frozen=True)
class MatchState:
    """Immutable snapshot of a TrackedMatch row."""

    match_id: str
    league_id: int
    home_team: str
    away_team: str
    detection_time: datetime
    bet365_id: Optional[str] = None
    detected_line: Optional[float] = None
    current_line: Optional[float] = None
    current_score: Optional[str] = None
    status: str = STATUS_LIVE
    final_score_home: Optional[int] = None
    final_score_away: Optional[int] = None
    finished_at: Optional[datetime] = None
    alert_sent: bool = False
    result_alert_sent: bool = False
    touched_target: bool = False

    @property
    def is_finished(self) -> bool:
        return self.status == STATUS_FINISHED

    @classmethod
    def from_row(cls, row: TrackedMatch) -> "MatchState":
        return cls(
            match_id=row.match_id,
            league_id=row.league_id,
            home_team=row.home_team,
            away_team=row.away_team,
            detection_time=row.detection_time,
            bet365_id=row.bet365_id,
            detected_line=row.detected_line,
            current_line=row.current_line,
            current_score=row.current_score,
            status=row.status,
            final_score_home=row.final_score_home,
            final_score_away=row.final_score_away,
            finished_at=row.finished_at,
            alert_sent=row.alert_sent,
            result_alert_sent=row.result_alert_sent,
            touched_target=row.touched_target,
        )


@dataclass(frozen=True)
class MatchIdentity:
    """Feed fields needed to create a new match."""

    match_id: str
    league_id: int
    home_team: str
    away_team: str
    bet365_id: Optional[str] = None


# =============================================================================
# EFFECTS
# =============================================================================


@dataclass(frozen=True)
class AppendHistory:
    match_id: str
    line: float
    over_odds: float


@dataclass(frozen=True)
class NotifyDetection:
    match_id: str
    observation: LineObservation
    target_line: float
    score: Optional[str]


@dataclass(frozen=True)
class NotifyResult:
    match_id: str


Effect = Union[AppendHistory, NotifyDetection, NotifyResult]


@dataclass(frozen=True)
class Transition:
    state: MatchState
    effects: tuple = ()
    created: bool = False

    @property
    def detected(self) -> bool:
        return any(isinstance(e, NotifyDetection) for e in self.effects)


# =============================================================================
# TRANSITIONS
# =============================================================================


def transition(
    existing: Optional[MatchState],
    resolution: Resolution,
    target_line: float,
    score: Optional[str],
    now: datetime,
    identity: Optional[MatchIdentity] = None,
) -> Transition:
    """
    Decide the next state of a live match from one resolution.

    `identity` is required when `existing` is None. A finished match is
    returned unchanged: observations never reopen it.
    """
    if existing is None:
        if identity is None:
            raise ValueError("identity is required to create a match")
        base = MatchState(
            match_id=identity.match_id,
            league_id=identity.league_id,
            home_team=identity.home_team,
            away_team=identity.away_team,
            bet365_id=identity.bet365_id,
            detection_time=now,
            current_score=_valid_score(score),
        )
        return _observe(base, resolution, target_line, score, created=True)

    if existing.is_finished:
        return Transition(state=existing)

    return _observe(existing, resolution, target_line, score, created=False)


def _observe(
    state: MatchState,
    resolution: Resolution,
    target_line: float,
    score: Optional[str],
    created: bool,
) -> Transition:
    if _valid_score(score) is not None:
        state = replace(state, current_score=score)

    if isinstance(resolution, Unavailable):
        return Transition(state=state, created=created)

    line = resolution.line
    at_target = line == target_line
    effects: list = []

    if state.touched_target:
        state = replace(state, current_line=line)
    elif at_target:
        state = replace(state, detected_line=line, current_line=line, touched_target=True)
    else:
        state = replace(state, detected_line=line, current_line=line)

    if at_target and state.touched_target and not state.alert_sent:
        effects.append(
            NotifyDetection(
                match_id=state.match_id,
                observation=resolution,
                target_line=target_line,
                score=_valid_score(resolution.score) or state.current_score,
            )
        )

    effects.append(
        AppendHistory(
            match_id=state.match_id,
            line=line,
            over_odds=resolution.over_odds_value,
        )
    )
    return Transition(state=state, effects=tuple(effects), created=created)


def complete(
    state: MatchState,
    final_score: Optional[tuple[int, int]],
    now: datetime,
) -> Transition:
    """
    Mark a live match finished with its final score (None when unknown).

    Emits NotifyResult unless the result alert was already handed off.
    Already finished matches are returned unchanged.
    """
    if state.is_finished:
        return Transition(state=state)

    home, away = final_score if final_score is not None else (None, None)
    current_score = state.current_score
    if final_score is not None and parse_score(current_score) is None:
        current_score = f"{home}-{away}"

    finished = replace(
        state,
        status=STATUS_FINISHED,
        final_score_home=home,
        final_score_away=away,
        current_score=current_score,
        finished_at=now,
    )
    effects = () if finished.result_alert_sent else (NotifyResult(match_id=state.match_id),)
    return Transition(state=finished, effects=effects)


def _valid_score(score: Optional[str]) -> Optional[str]:
    return score if parse_score(score) is not None else None
