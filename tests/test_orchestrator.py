"""Tests for PollOrchestrator cycles against in-memory SQLite and fakes."""

import asyncio

import pytest
from sqlalchemy import select

from conftest import FakeGateway, FakeProvider, live_match, no_sleep, summary_payload
from goalwatch.alerting.queue import NotificationQueue
from goalwatch.etl.payloads import EventResultPayload
from goalwatch.models import STATUS_FINISHED, STATUS_LIVE, JobRun
from goalwatch.tracking.ledger import HistoryLedger
from goalwatch.tracking.orchestrator import PollOrchestrator
from goalwatch.tracking.resolver import LineResolver
from goalwatch.tracking.retention import RetentionEnforcer
from goalwatch.tracking.store import MatchStore


def build_orchestrator(session_factory, registry, provider, gateway, **kwargs):
    ledger = HistoryLedger()
    queue = NotificationQueue(gateway, sleep=no_sleep, pacing=0)
    orchestrator = PollOrchestrator(
        provider=provider,
        resolver=LineResolver(provider),
        store=MatchStore(),
        ledger=ledger,
        retention=RetentionEnforcer(session_factory, ledger),
        queue=queue,
        registry=registry,
        session_factory=session_factory,
        **kwargs,
    )
    return orchestrator, queue


async def load(session_factory, match_id):
    async with session_factory() as session:
        return await MatchStore().get(session, match_id)


class TestMatchLifecycle:
    """A match from first sighting to result."""

    @pytest.mark.asyncio
    async def test_detect_then_finish(self, session_factory, registry, provider, gateway):
        orchestrator, queue = build_orchestrator(session_factory, registry, provider, gateway)

        # Cycle 1: off target
        provider.live = [live_match("1001", score="1-0")]
        provider.summaries["1001"] = summary_payload("3.0", over="1.85")
        report = await orchestrator.run_cycle()
        assert (report.active, report.created, report.detections) == (1, 1, 0)
        row = await load(session_factory, "1001")
        assert row.detected_line == 3.0
        assert not row.touched_target

        # Cycle 2: line moves to the GT League target (2.5)
        provider.live = [live_match("1001", score="2-1")]
        provider.summaries["1001"] = summary_payload("2.5", over="1.70")
        report = await orchestrator.run_cycle()
        assert report.detections == 1
        row = await load(session_factory, "1001")
        assert row.touched_target
        assert row.alert_sent
        assert row.detected_line == 2.5

        # Cycle 3: gone from the feed
        provider.live = []
        report = await orchestrator.run_cycle()
        assert report.finished == 1
        row = await load(session_factory, "1001")
        assert row.status == STATUS_FINISHED
        assert (row.final_score_home, row.final_score_away) == (2, 1)
        assert row.result_alert_sent
        assert provider.result_calls == []

        # Cycle 4: nothing new
        report = await orchestrator.run_cycle()
        assert report.finished == 0

        await queue.drain()
        texts = [text for _, text in gateway.sent]
        assert len(texts) == 2
        assert "DETECTED" in texts[0]
        assert "RESULT" in texts[1]
        assert "2 - 1" in texts[1]

        async with session_factory() as session:
            history = await HistoryLedger().read_all(session, "1001")
        assert [(h.line, h.over_odds) for h in history] == [(3.0, 1.85), (2.5, 1.70)]

    @pytest.mark.asyncio
    async def test_detected_line_frozen_across_cycles(self, session_factory, registry, provider, gateway):
        orchestrator, queue = build_orchestrator(session_factory, registry, provider, gateway)
        provider.live = [live_match("1001")]

        for handicap in ("2.5", "3.5", "2.5", "4.0"):
            provider.summaries["1001"] = summary_payload(handicap)
            await orchestrator.run_cycle()

        row = await load(session_factory, "1001")
        assert row.detected_line == 2.5
        assert row.current_line == 4.0
        assert queue.depth == 1

    @pytest.mark.asyncio
    async def test_result_lookup_when_score_unknown(self, session_factory, registry, provider, gateway):
        orchestrator, _ = build_orchestrator(session_factory, registry, provider, gateway)
        match = live_match("1001", bet365_id="130001")
        match.score = "bad"
        provider.live = [match]
        await orchestrator.run_cycle()

        provider.live = []
        provider.results["130001"] = EventResultPayload(ss="4-3")
        await orchestrator.run_cycle()

        row = await load(session_factory, "1001")
        assert provider.result_calls == ["130001"]
        assert (row.final_score_home, row.final_score_away) == (4, 3)

    @pytest.mark.asyncio
    async def test_malformed_score_does_not_erase_last_valid(self, session_factory, registry, provider, gateway):
        orchestrator, _ = build_orchestrator(session_factory, registry, provider, gateway)
        provider.summaries["1001"] = summary_payload("3.0")

        provider.live = [live_match("1001", score="2-1")]
        await orchestrator.run_cycle()
        provider.live = [live_match("1001", score="garbage")]
        await orchestrator.run_cycle()
        assert (await load(session_factory, "1001")).current_score == "2-1"

        provider.live = []
        await orchestrator.run_cycle()

        row = await load(session_factory, "1001")
        assert row.status == STATUS_FINISHED
        assert (row.final_score_home, row.final_score_away) == (2, 1)
        assert provider.result_calls == []

    @pytest.mark.asyncio
    async def test_unavailable_line_still_tracks(self, session_factory, registry, provider, gateway):
        orchestrator, queue = build_orchestrator(session_factory, registry, provider, gateway)
        provider.live = [live_match("1001")]

        report = await orchestrator.run_cycle()

        row = await load(session_factory, "1001")
        assert report.created == 1
        assert row.detected_line is None
        assert queue.depth == 0


class TestFailureModes:
    """Feed outages, gateway refusals and errors."""

    @pytest.mark.asyncio
    async def test_feed_outage_skips_completion(self, session_factory, registry, provider, gateway):
        orchestrator, _ = build_orchestrator(session_factory, registry, provider, gateway)
        provider.live = [live_match("1001")]
        await orchestrator.run_cycle()

        provider.live = None
        report = await orchestrator.run_cycle()

        assert not report.feed_available
        assert report.status == "error"
        assert report.finished == 0
        assert (await load(session_factory, "1001")).status == STATUS_LIVE

    @pytest.mark.asyncio
    async def test_detection_retried_until_queued(self, session_factory, registry, provider):
        gateway = FakeGateway(configured=False)
        orchestrator, queue = build_orchestrator(session_factory, registry, provider, gateway)
        provider.live = [live_match("1001")]
        provider.summaries["1001"] = summary_payload("2.5")

        await orchestrator.run_cycle()
        row = await load(session_factory, "1001")
        assert row.touched_target
        assert not row.alert_sent

        gateway._configured = True
        await orchestrator.run_cycle()
        assert (await load(session_factory, "1001")).alert_sent
        assert queue.depth == 1

        await orchestrator.run_cycle()
        assert queue.depth == 1

    @pytest.mark.asyncio
    async def test_match_error_does_not_abort_cycle(self, session_factory, registry, gateway):
        provider = FakeProvider()
        orchestrator, _ = build_orchestrator(session_factory, registry, provider, gateway)
        provider.live = [live_match("1"), live_match("2")]

        original = orchestrator.resolver.resolve

        async def flaky(match_id, bet365_id=None):
            if match_id == "1":
                raise RuntimeError("boom")
            return await original(match_id, bet365_id)

        orchestrator.resolver.resolve = flaky
        report = await orchestrator.run_cycle()

        assert report.errors == 1
        assert report.processed == 1
        assert report.status == "partial"
        assert await load(session_factory, "2") is not None

    @pytest.mark.asyncio
    async def test_cycle_recorded_in_job_runs(self, session_factory, registry, provider, gateway):
        orchestrator, _ = build_orchestrator(session_factory, registry, provider, gateway)
        await orchestrator.run_cycle()

        async with session_factory() as session:
            runs = (await session.execute(select(JobRun))).scalars().all()
        assert len(runs) == 1
        assert runs[0].job_name == "poll_cycle"
        assert runs[0].status == "ok"
        assert runs[0].metrics["active"] == 0


class TestScheduling:
    """Scheduler lifecycle and single-flight."""

    @pytest.mark.asyncio
    async def test_single_flight_serializes_cycles(self, session_factory, registry, provider, gateway):
        orchestrator, _ = build_orchestrator(session_factory, registry, provider, gateway)
        provider.live = [live_match("1001")]

        reports = await asyncio.gather(orchestrator.run_cycle(), orchestrator.run_cycle())

        assert sum(r.created for r in reports) == 1

    @pytest.mark.asyncio
    async def test_start_and_stop(self, session_factory, registry, provider, gateway):
        orchestrator, _ = build_orchestrator(session_factory, registry, provider, gateway, interval_seconds=60)

        assert orchestrator.start()
        assert orchestrator.running
        assert not orchestrator.start()

        for _ in range(100):
            if orchestrator.last_report is not None:
                break
            await asyncio.sleep(0.01)

        assert await orchestrator.stop()
        assert not orchestrator.running
        assert not await orchestrator.stop()
        assert orchestrator.last_report is not None
