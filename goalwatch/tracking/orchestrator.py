"""
Poll orchestrator.

One cycle:
1. Fetch the in-play list (tracked leagues only)
2. Resolve the goal line of each match and apply the state machine
3. Mark live matches missing from the feed as finished
4. Enforce the rolling database cap
5. Log a summary, record metrics and a job_runs row

Cycles are driven by APScheduler (IntervalTrigger). With single_flight the
next cycle waits for the previous one (max_instances=1 plus a lock); without
it a slow cycle can overlap the next one.
"""

import asyncio
import logging
import time
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from goalwatch.alerting.messages import format_detection, format_result
from goalwatch.alerting.queue import KIND_DETECTION, KIND_RESULT, NotificationQueue
from goalwatch.database import get_session_with_retry
from goalwatch.etl.base import LiveFeedProvider, LiveMatch
from goalwatch.etl.leagues import LeagueRegistry
from goalwatch.jobs.tracking import cleanup_old_runs, record_job_run
from goalwatch.models import utc_now
from goalwatch.telemetry import record_poll_cycle
from goalwatch.telemetry.sentry import capture_exception
from goalwatch.tracking.ledger import HistoryLedger
from goalwatch.tracking.observations import parse_score
from goalwatch.tracking.resolver import LineResolver
from goalwatch.tracking.retention import RetentionEnforcer
from goalwatch.tracking.state_machine import (
    AppendHistory,
    MatchIdentity,
    MatchState,
    NotifyDetection,
    NotifyResult,
    complete,
    transition,
)
from goalwatch.tracking.store import MatchStore

logger = logging.getLogger(__name__)

POLL_JOB_ID = "goalwatch_poll"
CLEANUP_JOB_ID = "goalwatch_job_runs_cleanup"
JOB_NAME = "poll_cycle"


@dataclass
class CycleReport:
    """Outcome of one poll cycle."""

    started_at: datetime
    status: str = "ok"  # ok, partial, error
    feed_available: bool = True
    active: int = 0
    processed: int = 0
    created: int = 0
    detections: int = 0
    finished: int = 0
    evicted: int = 0
    errors: int = 0
    duration_ms: int = 0

    def to_dict(self) -> dict:
        data = asdict(self)
        data["started_at"] = self.started_at.isoformat()
        return data


class PollOrchestrator:
    """Owns the poll schedule and runs cycles against the injected components."""

    def __init__(
        self,
        provider: LiveFeedProvider,
        resolver: LineResolver,
        store: MatchStore,
        ledger: HistoryLedger,
        retention: RetentionEnforcer,
        queue: NotificationQueue,
        registry: LeagueRegistry,
        session_factory: async_sessionmaker,
        interval_seconds: int = 30,
        max_matches: int = 3200,
        single_flight: bool = True,
        job_runs_retention_days: int = 7,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.provider = provider
        self.resolver = resolver
        self.store = store
        self.ledger = ledger
        self.retention = retention
        self.queue = queue
        self.registry = registry
        self._session_factory = session_factory
        self.interval_seconds = interval_seconds
        self.max_matches = max_matches
        self.single_flight = single_flight
        self.job_runs_retention_days = job_runs_retention_days
        self._clock = clock

        self._scheduler: Optional[AsyncIOScheduler] = None
        self._lock = asyncio.Lock()
        self._inflight: set[asyncio.Task] = set()
        self.last_report: Optional[CycleReport] = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def start(self) -> bool:
        """Schedule cycles: one immediately, then every interval. Returns False if already running."""
        if self.running:
            logger.info("[TRACKER] Already running")
            return False

        scheduler = AsyncIOScheduler(timezone=timezone.utc)
        scheduler.add_job(
            self._scheduled_cycle,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id=POLL_JOB_ID,
            name=f"Goal line poll (every {self.interval_seconds}s)",
            replace_existing=True,
            next_run_time=datetime.now(timezone.utc),
            max_instances=1 if self.single_flight else 3,
            coalesce=self.single_flight,
        )
        scheduler.add_job(
            self._cleanup_job_runs,
            trigger=IntervalTrigger(hours=6),
            id=CLEANUP_JOB_ID,
            name="job_runs cleanup (every 6h)",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        scheduler.start()
        self._scheduler = scheduler

        logger.info(
            f"[TRACKER] Started: interval={self.interval_seconds}s, single_flight={self.single_flight}, "
            f"leagues={self.registry.league_ids}"
        )
        return True

    async def stop(self) -> bool:
        """Cancel the schedule and wait for in-flight cycles. Returns False if not running."""
        if not self.running:
            return False

        scheduler = self._scheduler
        self._scheduler = None
        scheduler.remove_all_jobs()
        if self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)
        scheduler.shutdown(wait=False)
        logger.info("[TRACKER] Stopped")
        return True

    async def _scheduled_cycle(self) -> None:
        task = asyncio.current_task()
        self._inflight.add(task)
        try:
            await self.run_cycle()
        except Exception as e:
            logger.error(f"[TRACKER] Poll error: {e}", exc_info=True)
            capture_exception(e, job_id=JOB_NAME)
        finally:
            self._inflight.discard(task)

    async def _cleanup_job_runs(self) -> None:
        try:
            async with self._session_factory() as session:
                await cleanup_old_runs(session, days_to_keep=self.job_runs_retention_days)
        except SQLAlchemyError as e:
            logger.error(f"[TRACKER] job_runs cleanup failed: {e}")

    # =========================================================================
    # CYCLE
    # =========================================================================

    async def run_cycle(self) -> CycleReport:
        if self.single_flight:
            async with self._lock:
                return await self._run_cycle()
        return await self._run_cycle()

    async def _run_cycle(self) -> CycleReport:
        start = time.time()
        report = CycleReport(started_at=self._clock())

        live = await self._fetch_live()
        if live is None:
            # An empty active set here would finish every live match
            report.feed_available = False
            logger.warning("[TRACKER] In-play feed unavailable; skipping completion detection")
        else:
            report.active = len(live)
            for match in live:
                await self._process_match(match, report)
            await self._detect_completions({m.match_id for m in live}, report)

        enforcement = await self.retention.enforce(self.max_matches)
        report.evicted = enforcement.matches_deleted
        if not enforcement.ok:
            report.errors += 1

        if not report.feed_available:
            report.status = "error"
        elif report.errors:
            report.status = "partial"
        report.duration_ms = int((time.time() - start) * 1000)

        record_poll_cycle(
            report.status,
            report.duration_ms,
            active=report.active,
            detections=report.detections,
            completions=report.finished,
            evictions=report.evicted,
        )
        await self._record_run(report)

        logger.info(
            f"[TRACKER] Poll cycle completed: status={report.status} active={report.active} "
            f"processed={report.processed} created={report.created} detections={report.detections} "
            f"finished={report.finished} evicted={report.evicted} errors={report.errors} "
            f"duration={report.duration_ms}ms"
        )
        self.last_report = report
        return report

    async def _fetch_live(self) -> Optional[list[LiveMatch]]:
        try:
            return await self.provider.get_live_matches()
        except Exception as e:
            logger.error(f"[TRACKER] Error fetching in-play matches: {e}", exc_info=True)
            return None

    async def _record_run(self, report: CycleReport) -> None:
        try:
            async with self._session_factory() as session:
                await record_job_run(
                    session,
                    JOB_NAME,
                    report.status,
                    report.started_at,
                    error=None if report.feed_available else "in-play feed unavailable",
                    metrics=report.to_dict(),
                )
        except SQLAlchemyError as e:
            logger.warning(f"[TRACKER] Failed to record job run: {e}")

    async def _process_match(self, match: LiveMatch, report: CycleReport) -> None:
        try:
            async with self._session_factory() as session:
                existing = await self.store.get_state(session, match.match_id)

            if existing is not None and existing.is_finished:
                return

            target_line = self.registry.target_line(match.league_id)
            resolution = await self.resolver.resolve(match.match_id, match.bet365_id)
            if not resolution:
                logger.debug(
                    f"[TRACKER] No Asian Goal Line data for match {match.match_id} "
                    f"({match.home_team} vs {match.away_team})"
                )

            now = self._clock()
            result = transition(
                existing,
                resolution,
                target_line,
                match.score,
                now,
                identity=MatchIdentity(
                    match_id=match.match_id,
                    league_id=match.league_id,
                    home_team=match.home_team,
                    away_team=match.away_team,
                    bet365_id=match.bet365_id,
                ),
            )

            async with self._session_factory() as session:
                row = await self.store.save(session, result.state)
                for effect in result.effects:
                    if isinstance(effect, AppendHistory):
                        await self.ledger.append(session, effect.match_id, effect.line, effect.over_odds, now)
                await session.commit()

                for effect in result.effects:
                    if isinstance(effect, NotifyDetection):
                        text = format_detection(
                            row,
                            self.registry.name(match.league_id),
                            effect.observation,
                            effect.target_line,
                            effect.score,
                        )
                        if self.queue.push(text, kind=KIND_DETECTION):
                            await self.store.mark_alert_sent(session, match.match_id)
                            await session.commit()

            report.processed += 1
            if result.created:
                report.created += 1
                logger.info(
                    f"[TRACKER] Match tracked: {match.home_team} vs {match.away_team} ({match.league_name}) "
                    f"| Goal Line: {result.state.current_line if result.state.current_line is not None else 'N/A'} "
                    f"| Score: {match.score}"
                )
            if result.state.touched_target and not (existing and existing.touched_target):
                report.detections += 1
                logger.info(
                    f"[TRACKER] Target goal line {target_line} detected: {match.home_team} vs {match.away_team} "
                    f"({match.league_name}) score {match.score}"
                )

        except Exception as e:
            report.errors += 1
            logger.error(f"[TRACKER] Error processing match {match.match_id}: {e}", exc_info=True)
            capture_exception(e, job_id=JOB_NAME, match_id=match.match_id)

    # =========================================================================
    # COMPLETION
    # =========================================================================

    async def _detect_completions(self, active_ids: set[str], report: CycleReport) -> None:
        try:
            async with get_session_with_retry(self._session_factory) as session:
                live_rows = await self.store.list_live(session)
                states = [MatchState.from_row(row) for row in live_rows]
        except SQLAlchemyError as e:
            report.errors += 1
            logger.error(f"[TRACKER] Error loading live matches: {e}", exc_info=True)
            return

        for state in states:
            if state.match_id in active_ids:
                continue
            await self._finish_match(state, report)

        if report.finished:
            logger.info(f"[TRACKER] Marked {report.finished} matches as finished")

    async def _finish_match(self, state: MatchState, report: CycleReport) -> None:
        try:
            final_score = parse_score(state.current_score)
            source = "current_score"
            if final_score is None and state.bet365_id:
                final_score = await self._lookup_result(state.bet365_id)
                source = "BetsAPI result"

            result = complete(state, final_score, self._clock())

            async with self._session_factory() as session:
                row = await self.store.save(session, result.state)
                await session.commit()

                for effect in result.effects:
                    if isinstance(effect, NotifyResult):
                        text = format_result(row, self.registry.name(row.league_id))
                        if self.queue.push(text, kind=KIND_RESULT):
                            await self.store.mark_result_alert_sent(session, row.match_id)
                            await session.commit()

            report.finished += 1
            home = "?" if result.state.final_score_home is None else result.state.final_score_home
            away = "?" if result.state.final_score_away is None else result.state.final_score_away
            logger.info(
                f"[TRACKER] Match finished: {state.home_team} {home}-{away} {state.away_team} "
                f"({source if final_score else 'no score'})"
            )

        except Exception as e:
            report.errors += 1
            logger.error(f"[TRACKER] Error finishing match {state.match_id}: {e}", exc_info=True)
            capture_exception(e, job_id=JOB_NAME, match_id=state.match_id)

    async def _lookup_result(self, bet365_id: str) -> Optional[tuple[int, int]]:
        try:
            result = await self.provider.get_match_result(bet365_id)
        except Exception as e:
            logger.error(f"[TRACKER] Failed to fetch result for {bet365_id}: {e}")
            return None
        if result is None:
            return None
        return parse_score(result.ss)
