"""
Prometheus metrics for the goal line tracker.

Every label below takes values from a small fixed set:

    endpoint      BetsAPI path ("/v3/events/inplay", "/v2/event/odds/summary",
                  "/v3/bet365/prematch_odds", "/v1/event/view")
    status_code   HTTP status as text, "0" when no response arrived
    error_code    timeout, http_4xx, http_5xx, request_error, invalid_json,
                  api_failure, invalid_payload
    source        primary, fallback, unavailable (goal line resolution)
    status        ok, error, partial, skipped
    kind/outcome  notification kind (detection, result, test) and
                  delivery outcome (delivered, retried, dropped, rejected)
    job           poll_cycle, backfill_scores, backfill_goal_lines

Match ids, team names and league names stay in the logs.
"""

import functools
import logging
import time

from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, Counter, Gauge, Histogram, generate_latest

logger = logging.getLogger(__name__)

# =============================================================================
# PROVIDER METRICS
# =============================================================================

provider_requests_total = Counter(
    "goalwatch_provider_requests_total",
    "BetsAPI requests by endpoint and HTTP status",
    ["endpoint", "status_code"],
)

provider_errors_total = Counter(
    "goalwatch_provider_errors_total",
    "BetsAPI request failures by error class",
    ["endpoint", "error_code"],
)

provider_latency_ms = Histogram(
    "goalwatch_provider_latency_ms",
    "BetsAPI request latency in milliseconds",
    ["endpoint"],
    buckets=[10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000, 30000],
)

resolver_outcomes_total = Counter(
    "goalwatch_resolver_outcomes_total",
    "Goal line resolutions by source",
    ["source"],
)

# =============================================================================
# TRACKER METRICS
# =============================================================================

poll_cycles_total = Counter(
    "goalwatch_poll_cycles_total",
    "Poll cycles by status",
    ["status"],
)

poll_cycle_duration_ms = Histogram(
    "goalwatch_poll_cycle_duration_ms",
    "Poll cycle duration in milliseconds",
    buckets=[100, 250, 500, 1000, 2500, 5000, 10000, 30000, 60000, 120000],
)

live_matches = Gauge(
    "goalwatch_live_matches",
    "Matches in the in-play feed during the last cycle",
)

detections_total = Counter(
    "goalwatch_detections_total",
    "Matches whose goal line touched the league target",
)

completions_total = Counter(
    "goalwatch_completions_total",
    "Matches transitioned to finished",
)

evictions_total = Counter(
    "goalwatch_evictions_total",
    "Finished matches evicted by retention",
)

# =============================================================================
# NOTIFICATION METRICS
# =============================================================================

notifications_total = Counter(
    "goalwatch_notifications_total",
    "Notification delivery attempts by kind and outcome",
    ["kind", "outcome"],
)

notification_queue_depth = Gauge(
    "goalwatch_notification_queue_depth",
    "Notifications waiting in the delivery queue",
)

# =============================================================================
# JOB HEALTH METRICS
# =============================================================================

job_runs_total = Counter(
    "goalwatch_job_runs_total",
    "Job runs by job and status",
    ["job", "status"],
)

job_last_success_timestamp = Gauge(
    "goalwatch_job_last_success_timestamp",
    "Unix timestamp of the last successful run",
    ["job"],
)


# =============================================================================
# RECORDING HELPERS
# =============================================================================


def _best_effort(fn):
    """Metric updates must never break a poll cycle or a delivery."""

    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            fn(*args, **kwargs)
        except Exception as e:
            logger.warning(f"[METRICS] {fn.__name__} failed: {e}")

    return wrapper


@_best_effort
def record_provider_request(endpoint: str, status_code: int, latency_ms: float) -> None:
    provider_requests_total.labels(endpoint=endpoint, status_code=str(status_code)).inc()
    provider_latency_ms.labels(endpoint=endpoint).observe(latency_ms)


@_best_effort
def record_provider_error(endpoint: str, error_code: str) -> None:
    provider_errors_total.labels(endpoint=endpoint, error_code=error_code).inc()


@_best_effort
def record_resolution(source: str) -> None:
    resolver_outcomes_total.labels(source=source).inc()


@_best_effort
def record_poll_cycle(
    status: str,
    duration_ms: float,
    active: int = 0,
    detections: int = 0,
    completions: int = 0,
    evictions: int = 0,
) -> None:
    poll_cycles_total.labels(status=status).inc()
    poll_cycle_duration_ms.observe(duration_ms)
    live_matches.set(active)
    for counter, amount in (
        (detections_total, detections),
        (completions_total, completions),
        (evictions_total, evictions),
    ):
        if amount:
            counter.inc(amount)


@_best_effort
def record_notification(kind: str, outcome: str) -> None:
    notifications_total.labels(kind=kind, outcome=outcome).inc()


@_best_effort
def set_queue_depth(depth: int) -> None:
    notification_queue_depth.set(depth)


@_best_effort
def record_job_metric(job: str, status: str) -> None:
    job_runs_total.labels(job=job, status=status).inc()
    if status == "ok":
        job_last_success_timestamp.labels(job=job).set(time.time())


def get_metrics_text() -> tuple[str, str]:
    """Exposition body and content type for GET /api/metrics."""
    return generate_latest(REGISTRY).decode("utf-8"), CONTENT_TYPE_LATEST
