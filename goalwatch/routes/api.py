"""Tracker routes: read-only views over tracked matches plus admin triggers.

- Reads: /health, /tracked, /history, /stats, /leagues, /league-stats, /odds-history
- Triggers: /tracker/start, /tracker/stop, /telegram/test, /backfill-*
- /metrics: Bearer token (METRICS_BEARER_TOKEN)
"""

import logging
from typing import Optional

from fastapi import APIRouter, Header, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse

from goalwatch.config import get_settings
from goalwatch.engine import TrackingEngine
from goalwatch.models import STATUS_FINISHED, STATUS_LIVE, utc_now
from goalwatch.security import check_bearer, limiter
from goalwatch.telemetry import get_metrics_text

logger = logging.getLogger(__name__)

router = APIRouter(tags=["tracker"])


def _engine(request: Request) -> TrackingEngine:
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail="Tracker not initialized")
    return engine


@router.get("/health")
@limiter.limit("120/minute")
async def health_check(request: Request):
    """Liveness plus tracker, queue and pool status."""
    data = await _engine(request).health()
    data["timestamp"] = utc_now().isoformat()
    return data


@router.get("/tracked")
async def get_tracked(request: Request):
    """Matches currently live."""
    matches = await _engine(request).queries.list_matches(status=STATUS_LIVE)
    return {"success": True, "count": len(matches), "matches": [m.to_dict() for m in matches]}


@router.get("/history")
async def get_history(
    request: Request,
    status: Optional[str] = Query(default=None),
    league_id: Optional[int] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
):
    if status is not None and status not in (STATUS_LIVE, STATUS_FINISHED):
        raise HTTPException(status_code=400, detail=f"Invalid status: {status}")

    queries = _engine(request).queries
    matches = await queries.list_matches(status=status, league_id=league_id, limit=limit, offset=offset)
    total = await queries.count_matches(status=status, league_id=league_id)
    return {
        "success": True,
        "count": len(matches),
        "total": total,
        "matches": [m.to_dict() for m in matches],
    }


@router.get("/stats")
async def get_stats(request: Request):
    engine = _engine(request)
    stats = await engine.queries.get_stats()
    stats["league_stats"] = [
        {"league_id": league_id, "league_name": engine.registry.name(league_id), "count": count}
        for league_id, count in stats["by_league"].items()
    ]
    return {"success": True, "stats": stats}


@router.get("/leagues")
async def get_leagues(request: Request):
    registry = _engine(request).registry
    return {
        "success": True,
        "leagues": [
            {"id": league.league_id, "name": league.name, "target_line": league.target_line}
            for league in registry.all()
        ],
    }


@router.get("/league-stats/{league_id}")
async def get_league_stats(request: Request, league_id: int):
    engine = _engine(request)
    stats = await engine.queries.get_league_line_stats(league_id)
    return {"success": True, "target_line": engine.registry.target_line(league_id), **stats}


@router.get("/odds-history/{match_id}")
async def get_odds_history(request: Request, match_id: str):
    found = await _engine(request).queries.get_match(match_id)
    if found is None:
        raise HTTPException(status_code=404, detail="Match not found")
    match, history = found
    return {
        "success": True,
        "match": match.to_dict(),
        "odds_history": [h.to_dict() for h in history],
    }


# =============================================================================
# ADMIN TRIGGERS
# =============================================================================


@router.post("/tracker/start")
@limiter.limit("10/minute")
async def start_tracker(request: Request):
    started = _engine(request).start_tracker()
    return {
        "success": True,
        "message": "Tracker started" if started else "Tracker already running",
    }


@router.post("/tracker/stop")
@limiter.limit("10/minute")
async def stop_tracker(request: Request):
    stopped = await _engine(request).stop_tracker()
    return {
        "success": True,
        "message": "Tracker stopped" if stopped else "Tracker not running",
    }


@router.post("/telegram/test")
@limiter.limit("5/minute")
async def send_test_message(request: Request):
    queued = _engine(request).send_test_message()
    return {
        "success": queued,
        "message": "Test message queued" if queued else "Telegram not configured or queue stopped",
    }


@router.post("/backfill-scores")
@limiter.limit("2/minute")
async def backfill_scores(request: Request):
    report = await _engine(request).backfill_scores()
    return {"success": True, **report.to_dict()}


@router.post("/backfill-goallines")
@limiter.limit("2/minute")
async def backfill_goal_lines(request: Request):
    report = await _engine(request).backfill_goal_lines()
    return {"success": True, **report.to_dict()}


@router.get("/metrics")
async def prometheus_metrics(
    authorization: str = Header(None, alias="Authorization"),
):
    """
    Prometheus metrics: provider calls, poll cycles, resolutions, notifications.

    Requires Bearer token authentication when METRICS_BEARER_TOKEN is set.
    """
    denied = check_bearer(authorization, get_settings().METRICS_BEARER_TOKEN)
    if denied:
        return PlainTextResponse(
            content=f"# Unauthorized: {denied}\n",
            status_code=401,
            media_type="text/plain",
        )

    content, content_type = get_metrics_text()
    return PlainTextResponse(content=content, media_type=content_type)
