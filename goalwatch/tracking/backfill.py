"""
Backfill passes for matches the live tracker could not complete.

- backfill_scores: finished matches without a final score get a result lookup
- backfill_goal_lines: matches without a detected line get the historical
  odds summary (start/kickoff/end snapshots)

Backfills never send notifications and never lower a monotonic flag.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Optional

from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from goalwatch.etl.base import LiveFeedProvider
from goalwatch.etl.leagues import LeagueRegistry
from goalwatch.etl.payloads import extract_historical_line
from goalwatch.jobs.tracking import record_job_run
from goalwatch.models import STATUS_FINISHED, TrackedMatch, utc_now
from goalwatch.tracking.observations import parse_score
from goalwatch.tracking.store import MatchStore

logger = logging.getLogger(__name__)


@dataclass
class BackfillReport:
    processed: int = 0
    updated: int = 0
    failed: int = 0
    touched_found: int = 0
    details: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "processed": self.processed,
            "updated": self.updated,
            "failed": self.failed,
            "touched_found": self.touched_found,
            "details": self.details,
        }


class Backfiller:
    def __init__(
        self,
        provider: LiveFeedProvider,
        store: MatchStore,
        registry: LeagueRegistry,
        session_factory: async_sessionmaker,
        delay_seconds: float = 0.1,
        goal_line_limit: int = 200,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.provider = provider
        self.store = store
        self.registry = registry
        self._session_factory = session_factory
        self.delay_seconds = delay_seconds
        self.goal_line_limit = goal_line_limit
        self._sleep = sleep

    async def backfill_scores(self) -> BackfillReport:
        started_at = utc_now()
        async with self._session_factory() as session:
            result = await session.execute(
                select(TrackedMatch).where(
                    TrackedMatch.status == STATUS_FINISHED,
                    or_(TrackedMatch.final_score_home.is_(None), TrackedMatch.final_score_away.is_(None)),
                )
            )
            matches = list(result.scalars().all())

        logger.info(f"[BACKFILL] Found {len(matches)} matches with missing scores")
        report = BackfillReport(processed=len(matches))

        for match in matches:
            teams = f"{match.home_team} vs {match.away_team}"
            try:
                score = await self._lookup_score(match.bet365_id)
                if score is None:
                    report.failed += 1
                    report.details.append({"match_id": match.match_id, "teams": teams, "result": "NOT_FOUND"})
                else:
                    async with self._session_factory() as session:
                        await self.store.set_final_score(session, match.match_id, *score)
                        await session.commit()
                    report.updated += 1
                    report.details.append({"match_id": match.match_id, "teams": teams, "result": f"{score[0]}-{score[1]}"})
                    logger.info(f"[BACKFILL] Updated {teams}: {score[0]}-{score[1]}")
            except Exception as e:
                report.failed += 1
                report.details.append({"match_id": match.match_id, "teams": teams, "result": "ERROR"})
                logger.error(f"[BACKFILL] Error backfilling score for {match.match_id}: {e}", exc_info=True)

            await self._sleep(self.delay_seconds)

        logger.info(f"[BACKFILL] Completed: {report.updated} updated, {report.failed} failed")
        await self._record("backfill_scores", started_at, report)
        return report

    async def _lookup_score(self, bet365_id: Optional[str]) -> Optional[tuple[int, int]]:
        if not bet365_id:
            return None
        result = await self.provider.get_match_result(bet365_id)
        return parse_score(result.ss) if result else None

    async def backfill_goal_lines(self) -> BackfillReport:
        started_at = utc_now()
        async with self._session_factory() as session:
            result = await session.execute(
                select(TrackedMatch)
                .where(TrackedMatch.detected_line.is_(None))
                .order_by(TrackedMatch.id.desc())
                .limit(self.goal_line_limit)
            )
            matches = list(result.scalars().all())

        logger.info(f"[BACKFILL] Found {len(matches)} matches with missing goal line")
        report = BackfillReport(processed=len(matches))

        for match in matches:
            teams = f"{match.home_team} vs {match.away_team}"
            target_line = self.registry.target_line(match.league_id)
            try:
                summary = await self.provider.get_historical_odds_summary(match.match_id)
                historical = extract_historical_line(summary, target_line) if summary else None
                if historical is None:
                    report.failed += 1
                    report.details.append({"match_id": match.match_id, "teams": teams, "result": "NOT_FOUND"})
                else:
                    async with self._session_factory() as session:
                        changed = await self.store.set_goal_line(
                            session, match.match_id, historical.line, historical.touched_target
                        )
                        await session.commit()
                    if changed:
                        report.updated += 1
                        if historical.touched_target:
                            report.touched_found += 1
                    report.details.append({
                        "match_id": match.match_id,
                        "teams": teams,
                        "result": "UPDATED" if changed else "SKIPPED",
                        "goal_line": historical.line,
                        "touched_target": historical.touched_target,
                    })
                    logger.info(
                        f"[BACKFILL] Goal line {historical.line} for {teams}"
                        f"{f' (touched {target_line})' if historical.touched_target else ''}"
                    )
            except Exception as e:
                report.failed += 1
                report.details.append({"match_id": match.match_id, "teams": teams, "result": "ERROR"})
                logger.error(f"[BACKFILL] Error backfilling goal line for {match.match_id}: {e}", exc_info=True)

            await self._sleep(self.delay_seconds)

        logger.info(
            f"[BACKFILL] Goal lines completed: {report.updated} updated "
            f"({report.touched_found} touched target), {report.failed} failed"
        )
        await self._record("backfill_goal_lines", started_at, report)
        return report

    async def _record(self, job_name: str, started_at: datetime, report: BackfillReport) -> None:
        status = "ok" if report.failed == 0 else ("partial" if report.updated else "error")
        metrics = {k: v for k, v in report.to_dict().items() if k != "details"}
        try:
            async with self._session_factory() as session:
                await record_job_run(session, job_name, status, started_at, metrics=metrics)
        except SQLAlchemyError as e:
            logger.warning(f"[BACKFILL] Failed to record job run: {e}")
