"""
TrackingEngine: the owned composition of every tracker component.

Lifecycle:
    engine = TrackingEngine.from_settings(get_settings())
    await engine.init()     # create tables
    await engine.start()    # delivery queue + poll schedule
    ...
    await engine.stop()     # stop polling, drain queue, close clients
"""

import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from goalwatch.alerting.messages import TEST_MESSAGE
from goalwatch.alerting.queue import KIND_TEST, NotificationQueue
from goalwatch.alerting.telegram import NotificationGateway, TelegramGateway
from goalwatch.config import Settings, parse_league_ids, parse_league_lines
from goalwatch.database import close_db, create_engine, create_session_factory, get_pool_status, init_db
from goalwatch.etl.base import LiveFeedProvider
from goalwatch.etl.betsapi import BetsAPIProvider
from goalwatch.etl.leagues import LeagueRegistry
from goalwatch.telemetry.sentry import is_sentry_enabled
from goalwatch.tracking.backfill import BackfillReport, Backfiller
from goalwatch.tracking.ledger import HistoryLedger
from goalwatch.jobs.tracking import get_last_success_at
from goalwatch.tracking.orchestrator import JOB_NAME as POLL_JOB_NAME
from goalwatch.tracking.orchestrator import PollOrchestrator
from goalwatch.tracking.queries import TrackerQueries
from goalwatch.tracking.resolver import LineResolver
from goalwatch.tracking.retention import RetentionEnforcer
from goalwatch.tracking.store import MatchStore

logger = logging.getLogger(__name__)


class TrackingEngine:
    def __init__(
        self,
        db_engine: AsyncEngine,
        session_factory: async_sessionmaker,
        registry: LeagueRegistry,
        provider: LiveFeedProvider,
        gateway: NotificationGateway,
        queue: NotificationQueue,
        orchestrator: PollOrchestrator,
        queries: TrackerQueries,
        backfiller: Backfiller,
    ):
        self.db_engine = db_engine
        self.session_factory = session_factory
        self.registry = registry
        self.provider = provider
        self.gateway = gateway
        self.queue = queue
        self.orchestrator = orchestrator
        self.queries = queries
        self.backfiller = backfiller

    @classmethod
    def build(
        cls,
        db_engine: AsyncEngine,
        registry: LeagueRegistry,
        provider: LiveFeedProvider,
        gateway: NotificationGateway,
        settings: Optional[Settings] = None,
        session_factory: Optional[async_sessionmaker] = None,
    ) -> "TrackingEngine":
        """Wire the components around an engine, provider and gateway."""
        settings = settings or Settings()
        session_factory = session_factory or create_session_factory(db_engine)
        store = MatchStore()
        ledger = HistoryLedger()

        queue = NotificationQueue(
            gateway,
            max_retries=settings.NOTIFY_MAX_RETRIES,
            retry_delay=settings.NOTIFY_RETRY_DELAY_SECONDS,
            pacing=settings.NOTIFY_PACING_SECONDS,
        )
        orchestrator = PollOrchestrator(
            provider=provider,
            resolver=LineResolver(provider),
            store=store,
            ledger=ledger,
            retention=RetentionEnforcer(session_factory, ledger),
            queue=queue,
            registry=registry,
            session_factory=session_factory,
            interval_seconds=settings.POLL_INTERVAL_SECONDS,
            max_matches=settings.MAX_TRACKED_MATCHES,
            single_flight=settings.POLL_SINGLE_FLIGHT,
            job_runs_retention_days=settings.JOB_RUNS_RETENTION_DAYS,
        )
        backfiller = Backfiller(
            provider=provider,
            store=store,
            registry=registry,
            session_factory=session_factory,
            delay_seconds=settings.BACKFILL_DELAY_SECONDS,
            goal_line_limit=settings.BACKFILL_GOAL_LINE_LIMIT,
        )
        return cls(
            db_engine=db_engine,
            session_factory=session_factory,
            registry=registry,
            provider=provider,
            gateway=gateway,
            queue=queue,
            orchestrator=orchestrator,
            queries=TrackerQueries(session_factory, registry, ledger),
            backfiller=backfiller,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "TrackingEngine":
        """Production wiring: BetsAPI provider and Telegram gateway."""
        db_engine = create_engine(settings.DATABASE_URL)
        session_factory = create_session_factory(db_engine)
        registry = LeagueRegistry.from_config(
            parse_league_ids(settings.TARGET_LEAGUES),
            parse_league_lines(settings.LEAGUE_TARGET_LINES),
            default_target_line=settings.DEFAULT_TARGET_LINE,
        )
        provider = BetsAPIProvider(
            token=settings.BETSAPI_TOKEN,
            registry=registry,
            base_url=settings.BETSAPI_BASE_URL,
            timeout=settings.BETSAPI_TIMEOUT_SECONDS,
            cache_ttl=settings.BETSAPI_CACHE_TTL_SECONDS,
            session_factory=session_factory,
        )
        gateway = TelegramGateway(
            bot_token=settings.TELEGRAM_BOT_TOKEN,
            chat_id=settings.TELEGRAM_CHAT_ID,
            api_base=settings.TELEGRAM_API_BASE,
        )
        return cls.build(db_engine, registry, provider, gateway, settings, session_factory)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def init(self) -> None:
        """Create tables. Failures propagate: the store must be reachable at startup."""
        await init_db(self.db_engine)

    async def start(self, start_tracker: bool = True) -> None:
        await self.queue.start()
        if start_tracker:
            self.orchestrator.start()

    async def stop(self) -> None:
        await self.orchestrator.stop()
        await self.queue.stop()
        await self.provider.close()
        await self.gateway.close()
        await close_db(self.db_engine)

    # =========================================================================
    # OPERATIONS
    # =========================================================================

    def start_tracker(self) -> bool:
        return self.orchestrator.start()

    async def stop_tracker(self) -> bool:
        return await self.orchestrator.stop()

    def send_test_message(self) -> bool:
        return self.queue.push(TEST_MESSAGE, kind=KIND_TEST)

    async def backfill_scores(self) -> BackfillReport:
        return await self.backfiller.backfill_scores()

    async def backfill_goal_lines(self) -> BackfillReport:
        return await self.backfiller.backfill_goal_lines()

    async def health(self) -> dict:
        last = self.orchestrator.last_report
        last_success = {}
        try:
            async with self.session_factory() as session:
                last_success = await get_last_success_at(session)
        except SQLAlchemyError as e:
            logger.warning(f"[HEALTH] Could not read job_runs: {e}")
        poll_success = last_success.get(POLL_JOB_NAME)

        return {
            "status": "ok",
            "tracker_running": self.orchestrator.running,
            "last_poll_success_at": poll_success.isoformat() if poll_success else None,
            "last_success": {job: ts.isoformat() if ts else None for job, ts in last_success.items()},
            "telegram_configured": self.gateway.configured,
            "sentry_enabled": is_sentry_enabled(),
            "notification_queue": {
                "running": self.queue.running,
                "depth": self.queue.depth,
                "delivered": self.queue.delivered_count,
                "dropped": self.queue.dropped_count,
            },
            "last_cycle": last.to_dict() if last else None,
            "database": get_pool_status(self.db_engine),
            "target_leagues": {
                league.league_id: {"name": league.name, "target_line": league.target_line}
                for league in self.registry.all()
            },
        }
