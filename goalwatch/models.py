"""Database models using SQLModel."""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import JSON, Column, DateTime, TypeDecorator, UniqueConstraint
from sqlmodel import Field, SQLModel

STATUS_LIVE = "live"
STATUS_FINISHED = "finished"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """
    Timestamps are stored as naive UTC and read back timezone-aware.

    SQLite drops offsets, so normalizing here keeps reads identical on
    SQLite and PostgreSQL. Naive inputs are taken as UTC.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return value.replace(tzinfo=timezone.utc)


class TrackedMatch(SQLModel, table=True):
    """
    One row per live match seen in the in-play feed.

    Monotonic fields: status (live -> finished), touched_target, alert_sent
    and result_alert_sent (False -> True). detected_line is frozen once
    touched_target is True; current_line follows every observation.
    """

    __tablename__ = "matches"

    id: Optional[int] = Field(default=None, primary_key=True)
    match_id: str = Field(unique=True, index=True, max_length=64, description="BetsAPI event ID")
    bet365_id: Optional[str] = Field(
        default=None, max_length=64, description="Bet365 fixture ID (FI), used for result lookups"
    )
    league_id: int = Field(index=True)
    home_team: str = Field(max_length=255)
    away_team: str = Field(max_length=255)

    detection_time: datetime = Field(
        sa_type=UTCDateTime, index=True, description="First time the match was seen"
    )
    detected_line: Optional[float] = Field(
        default=None, description="Goal line at detection (stays at target once touched)"
    )
    current_line: Optional[float] = Field(default=None, description="Latest observed goal line")
    current_score: Optional[str] = Field(default=None, max_length=20, description="e.g. '2-1'")

    status: str = Field(default=STATUS_LIVE, max_length=20, index=True, description="live | finished")
    final_score_home: Optional[int] = Field(default=None)
    final_score_away: Optional[int] = Field(default=None)
    finished_at: Optional[datetime] = Field(
        default=None, sa_type=UTCDateTime, description="When the match left the feed"
    )

    alert_sent: bool = Field(default=False, description="Detection alert handed to the queue")
    result_alert_sent: bool = Field(default=False, description="Result alert handed to the queue")
    touched_target: bool = Field(default=False, description="Goal line ever equal to league target")

    created_at: datetime = Field(default_factory=utc_now, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utc_now, sa_type=UTCDateTime)

    @property
    def is_finished(self) -> bool:
        return self.status == STATUS_FINISHED

    def to_dict(self) -> dict:
        return {
            "match_id": self.match_id,
            "bet365_id": self.bet365_id,
            "league_id": self.league_id,
            "home_team": self.home_team,
            "away_team": self.away_team,
            "detection_time": self.detection_time.isoformat() if self.detection_time else None,
            "detected_line": self.detected_line,
            "current_line": self.current_line,
            "current_score": self.current_score,
            "status": self.status,
            "final_score_home": self.final_score_home,
            "final_score_away": self.final_score_away,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "alert_sent": self.alert_sent,
            "result_alert_sent": self.result_alert_sent,
            "touched_target": self.touched_target,
        }


class LineHistory(SQLModel, table=True):
    """
    Goal line movements per match.

    One row per distinct (match_id, line, over_odds); repeated observations
    are absorbed by the unique constraint. Rows are never updated and are
    removed only together with their match.
    """

    __tablename__ = "odds_history"
    __table_args__ = (
        UniqueConstraint("match_id", "line", "over_odds", name="uq_odds_history_match_line_odds"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    match_id: str = Field(foreign_key="matches.match_id", index=True, max_length=64)
    line: float = Field(description="Asian goal line handicap")
    over_odds: float = Field(default=0.0, description="Over price paired with the line")
    recorded_at: datetime = Field(default_factory=utc_now, sa_type=UTCDateTime, index=True)

    def to_dict(self) -> dict:
        return {
            "match_id": self.match_id,
            "line": self.line,
            "over_odds": self.over_odds,
            "recorded_at": self.recorded_at.isoformat() if self.recorded_at else None,
        }


class ApiLog(SQLModel, table=True):
    """Upstream call log (observability only)."""

    __tablename__ = "api_logs"

    id: Optional[int] = Field(default=None, primary_key=True)
    endpoint: str = Field(max_length=255, index=True)
    response_status: Optional[int] = Field(default=None)
    response_time_ms: Optional[int] = Field(default=None)
    error_message: Optional[str] = Field(default=None, max_length=1000)
    created_at: datetime = Field(default_factory=utc_now, sa_type=UTCDateTime, index=True)


class JobRun(SQLModel, table=True):
    """Job execution record (poll cycles, backfills) for ops fallback."""

    __tablename__ = "job_runs"

    id: Optional[int] = Field(default=None, primary_key=True)
    job_name: str = Field(max_length=50, index=True)
    status: str = Field(max_length=20, description="ok, error, partial")
    started_at: datetime = Field(sa_type=UTCDateTime)
    finished_at: datetime = Field(sa_type=UTCDateTime)
    duration_ms: int = Field(default=0)
    error_message: Optional[str] = Field(default=None, max_length=1000)
    metrics: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=utc_now, sa_type=UTCDateTime, index=True)
