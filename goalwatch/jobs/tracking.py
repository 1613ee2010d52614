"""Persistent record of tracker jobs (poll cycles and backfills).

Prometheus counters reset on restart; job_runs keeps the last successful
poll visible to /health across deploys.
"""

import logging
from datetime import datetime, timedelta
from typing import Iterable, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from goalwatch.models import JobRun, utc_now
from goalwatch.telemetry import record_job_metric

logger = logging.getLogger(__name__)

TRACKER_JOBS = ("poll_cycle", "backfill_scores", "backfill_goal_lines")


async def record_job_run(
    session: AsyncSession,
    job_name: str,
    status: str,
    started_at: datetime,
    error: Optional[str] = None,
    metrics: Optional[dict] = None,
) -> JobRun:
    """Store one run (status ok, partial or error) and update the job metrics."""
    now = utc_now()
    run = JobRun(
        job_name=job_name,
        status=status,
        started_at=started_at,
        finished_at=now,
        duration_ms=max(0, int((now - started_at).total_seconds() * 1000)),
        error_message=error[:1000] if error else None,
        metrics=metrics,
    )
    session.add(run)
    await session.commit()

    record_job_metric(job_name, status)
    logger.debug(f"[JOBS] {job_name} {status} ({run.duration_ms}ms)")
    return run


async def get_last_success_at(
    session: AsyncSession,
    jobs: Iterable[str] = TRACKER_JOBS,
) -> dict[str, Optional[datetime]]:
    """Latest finished_at of an "ok" run per job; None for jobs that never succeeded."""
    names = list(jobs)
    rows = await session.execute(
        select(JobRun.job_name, func.max(JobRun.finished_at))
        .where(JobRun.job_name.in_(names), JobRun.status == "ok")
        .group_by(JobRun.job_name)
    )
    found = {name: last for name, last in rows.all()}
    return {name: found.get(name) for name in names}


async def cleanup_old_runs(session: AsyncSession, days_to_keep: int = 7) -> int:
    """Drop runs created more than `days_to_keep` days ago. Returns rows removed."""
    cutoff = utc_now() - timedelta(days=days_to_keep)
    result = await session.execute(delete(JobRun).where(JobRun.created_at < cutoff))
    await session.commit()

    removed = result.rowcount or 0
    if removed:
        logger.info(f"[JOBS] Removed {removed} job_runs older than {days_to_keep} days")
    return removed
