"""Authoritative reads and writes of TrackedMatch rows."""

import logging
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from goalwatch.models import STATUS_FINISHED, STATUS_LIVE, TrackedMatch, utc_now
from goalwatch.tracking.state_machine import MatchState

logger = logging.getLogger(__name__)


class MatchStore:
    """
    TrackedMatch persistence.

    Methods take the caller's session and never commit; the caller owns the
    transaction (one per match in a poll cycle).
    """

    async def get(self, session: AsyncSession, match_id: str) -> Optional[TrackedMatch]:
        result = await session.execute(select(TrackedMatch).where(TrackedMatch.match_id == match_id))
        return result.scalar_one_or_none()

    async def get_state(self, session: AsyncSession, match_id: str) -> Optional[MatchState]:
        row = await self.get(session, match_id)
        return MatchState.from_row(row) if row else None

    async def list_live(self, session: AsyncSession) -> list[TrackedMatch]:
        result = await session.execute(select(TrackedMatch).where(TrackedMatch.status == STATUS_LIVE))
        return list(result.scalars().all())

    async def count(self, session: AsyncSession) -> int:
        result = await session.execute(select(func.count(TrackedMatch.id)))
        return result.scalar() or 0

    async def save(self, session: AsyncSession, state: MatchState) -> TrackedMatch:
        """
        Insert or update the row for `state`.

        Monotonic fields are merged, never reverted: a finished row stays
        finished, a True flag stays True and the detected line of a touched
        row is never rewritten. A stale state cannot clear a known score.
        """
        row = await self.get(session, state.match_id)
        if row is None:
            row = TrackedMatch(
                match_id=state.match_id,
                bet365_id=state.bet365_id,
                league_id=state.league_id,
                home_team=state.home_team,
                away_team=state.away_team,
                detection_time=state.detection_time,
            )
            session.add(row)
        elif row.bet365_id is None and state.bet365_id:
            row.bet365_id = state.bet365_id

        # Frozen once the stored row is touched, whoever touched it
        if not row.touched_target:
            row.detected_line = state.detected_line
        row.current_line = state.current_line
        row.current_score = state.current_score or row.current_score
        if state.final_score_home is not None:
            row.final_score_home = state.final_score_home
            row.final_score_away = state.final_score_away
        row.finished_at = state.finished_at or row.finished_at
        row.status = STATUS_FINISHED if row.status == STATUS_FINISHED else state.status
        row.touched_target = bool(row.touched_target or state.touched_target)
        row.alert_sent = bool(row.alert_sent or state.alert_sent)
        row.result_alert_sent = bool(row.result_alert_sent or state.result_alert_sent)
        row.updated_at = utc_now()

        await session.flush()
        return row

    async def mark_alert_sent(self, session: AsyncSession, match_id: str) -> None:
        """Detection alert handed off; only valid once the match touched its target."""
        await session.execute(
            update(TrackedMatch)
            .where(TrackedMatch.match_id == match_id)
            .where(TrackedMatch.touched_target.is_(True))
            .values(alert_sent=True, updated_at=utc_now())
        )

    async def mark_result_alert_sent(self, session: AsyncSession, match_id: str) -> None:
        """Result alert handed off; only valid for finished matches."""
        await session.execute(
            update(TrackedMatch)
            .where(TrackedMatch.match_id == match_id)
            .where(TrackedMatch.status == STATUS_FINISHED)
            .values(result_alert_sent=True, updated_at=utc_now())
        )

    async def set_final_score(
        self,
        session: AsyncSession,
        match_id: str,
        home: int,
        away: int,
    ) -> None:
        """Fill a missing final score (backfill); current_score is kept if present."""
        row = await self.get(session, match_id)
        if row is None:
            return
        row.final_score_home = home
        row.final_score_away = away
        if row.current_score is None:
            row.current_score = f"{home}-{away}"
        row.updated_at = utc_now()
        await session.flush()

    async def set_goal_line(
        self,
        session: AsyncSession,
        match_id: str,
        line: float,
        touched_target: bool,
    ) -> bool:
        """
        Fill a missing goal line (backfill).

        The touched flag is only ever raised. A row whose line is already
        frozen by a touch is left alone. Returns True when the row changed.
        """
        row = await self.get(session, match_id)
        if row is None or row.touched_target:
            return False
        row.detected_line = line
        if row.current_line is None:
            row.current_line = line
        row.touched_target = bool(touched_target)
        row.updated_at = utc_now()
        await session.flush()
        return True
