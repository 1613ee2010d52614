"""Read-only queries over tracked matches and their goal line history."""

from typing import Optional

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import async_sessionmaker

from goalwatch.etl.leagues import LeagueRegistry
from goalwatch.models import STATUS_FINISHED, STATUS_LIVE, LineHistory, TrackedMatch
from goalwatch.tracking.ledger import HistoryLedger

# Flat price used for the over ROI estimate
FLAT_OVER_PRICE = 1.9


def _pct(part: int, total: int) -> float:
    return round(part / total * 100, 1) if total > 0 else 0.0


class TrackerQueries:
    """Query surface for the API layer."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        registry: LeagueRegistry,
        ledger: Optional[HistoryLedger] = None,
    ):
        self._session_factory = session_factory
        self.registry = registry
        self.ledger = ledger or HistoryLedger()

    async def list_matches(
        self,
        status: Optional[str] = None,
        league_id: Optional[int] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[TrackedMatch]:
        """Matches newest first (by detection_time)."""
        query = select(TrackedMatch)
        if status:
            query = query.where(TrackedMatch.status == status)
        if league_id:
            query = query.where(TrackedMatch.league_id == league_id)
        query = query.order_by(TrackedMatch.detection_time.desc(), TrackedMatch.id.desc())
        if limit:
            query = query.limit(limit)
        if offset:
            query = query.offset(offset)

        async with self._session_factory() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def count_matches(self, status: Optional[str] = None, league_id: Optional[int] = None) -> int:
        query = select(func.count(TrackedMatch.id))
        if status:
            query = query.where(TrackedMatch.status == status)
        if league_id:
            query = query.where(TrackedMatch.league_id == league_id)
        async with self._session_factory() as session:
            return (await session.execute(query)).scalar() or 0

    async def get_match(self, match_id: str) -> Optional[tuple[TrackedMatch, list[LineHistory]]]:
        """One match with its history ordered by recorded_at, or None."""
        async with self._session_factory() as session:
            result = await session.execute(select(TrackedMatch).where(TrackedMatch.match_id == match_id))
            match = result.scalar_one_or_none()
            if match is None:
                return None
            history = await self.ledger.read_all(session, match_id)
            return match, history

    async def get_history(self, match_id: str) -> list[LineHistory]:
        async with self._session_factory() as session:
            return await self.ledger.read_all(session, match_id)

    async def get_stats(self) -> dict:
        """Totals plus per-league counts and touched-target ratios (percent, 1 decimal)."""
        touched = func.sum(case((TrackedMatch.touched_target.is_(True), 1), else_=0))
        async with self._session_factory() as session:
            total = (await session.execute(select(func.count(TrackedMatch.id)))).scalar() or 0
            live = (
                await session.execute(
                    select(func.count(TrackedMatch.id)).where(TrackedMatch.status == STATUS_LIVE)
                )
            ).scalar() or 0
            finished = (
                await session.execute(
                    select(func.count(TrackedMatch.id)).where(TrackedMatch.status == STATUS_FINISHED)
                )
            ).scalar() or 0
            rows = (
                await session.execute(
                    select(TrackedMatch.league_id, func.count(TrackedMatch.id), touched)
                    .group_by(TrackedMatch.league_id)
                )
            ).all()

        by_league = {}
        touched_by_league = {}
        touched_total = 0
        for league_id, count, touched_count in rows:
            touched_count = int(touched_count or 0)
            touched_total += touched_count
            by_league[league_id] = count
            touched_by_league[league_id] = {
                "name": self.registry.name(league_id),
                "target_line": self.registry.target_line(league_id),
                "total": count,
                "touched": touched_count,
                "ratio": _pct(touched_count, count),
            }

        return {
            "total_matches": total,
            "live_matches": live,
            "finished_matches": finished,
            "touched_target_total": touched_total,
            "by_league": by_league,
            "touched_target_by_league": touched_by_league,
        }

    async def get_league_line_stats(self, league_id: int) -> dict:
        """
        Over hit rates per goal line for a league's finished matches.

        Each distinct line seen in a match's history counts once for that
        match. ROI assumes a flat over price of 1.90.
        """
        scored = (
            TrackedMatch.league_id == league_id,
            TrackedMatch.status == STATUS_FINISHED,
            TrackedMatch.final_score_home.is_not(None),
            TrackedMatch.final_score_away.is_not(None),
        )
        async with self._session_factory() as session:
            total = (await session.execute(select(func.count(TrackedMatch.id)).where(*scored))).scalar() or 0
            rows = (
                await session.execute(
                    select(
                        LineHistory.match_id,
                        LineHistory.line,
                        TrackedMatch.final_score_home,
                        TrackedMatch.final_score_away,
                    )
                    .join(TrackedMatch, LineHistory.match_id == TrackedMatch.match_id)
                    .where(*scored)
                    .group_by(
                        LineHistory.match_id,
                        LineHistory.line,
                        TrackedMatch.final_score_home,
                        TrackedMatch.final_score_away,
                    )
                )
            ).all()

        by_line: dict[float, dict] = {}
        for _, line, home, away in rows:
            bucket = by_line.setdefault(line, {"total": 0, "hits": 0})
            bucket["total"] += 1
            if home + away > line:
                bucket["hits"] += 1

        line_stats = []
        for line in sorted(by_line):
            data = by_line[line]
            hit_rate = data["hits"] / data["total"] * 100 if data["total"] else 0.0
            line_stats.append({
                "goal_line": line,
                "times_available": data["total"],
                "over_hits": data["hits"],
                "hit_rate": round(hit_rate, 1),
                "roi": round(hit_rate * FLAT_OVER_PRICE - 100, 1),
            })

        return {
            "league_id": league_id,
            "league_name": self.registry.name(league_id),
            "total_matches": total,
            "goal_line_stats": line_stats,
        }
