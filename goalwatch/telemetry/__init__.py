"""
Tracker telemetry.

Provides Prometheus metrics for:
- BetsAPI requests (count, errors, latency)
- Goal line resolution sources
- Poll cycles, detections, completions, evictions
- Notification delivery
- Job health
"""

from goalwatch.telemetry.metrics import (
    record_provider_request,
    record_provider_error,
    record_resolution,
    record_poll_cycle,
    record_notification,
    set_queue_depth,
    record_job_metric,
    get_metrics_text,
)

__all__ = [
    "record_provider_request",
    "record_provider_error",
    "record_resolution",
    "record_poll_cycle",
    "record_notification",
    "set_queue_depth",
    "record_job_metric",
    "get_metrics_text",
]
