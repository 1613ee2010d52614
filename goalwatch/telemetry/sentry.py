"""
Optional Sentry error tracking.

Enabled only when SENTRY_DSN is set. Two secrets can leak into events and
are redacted before sending:
- the BetsAPI token, sent as ?token= on every upstream request
- the Telegram bot token, embedded in the /bot<token>/sendMessage path
Request bodies and auth headers are dropped as well.
"""

import logging
import re
from typing import Optional

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

logger = logging.getLogger(__name__)

_enabled = False

_SECRET_PARAM = re.compile(r"(?i)\b(token|api_key|key|secret|password)=([^&\s]*)")
_BOT_PATH = re.compile(r"/bot[^/\s]+/")
_DROPPED_HEADERS = {"authorization", "cookie", "set-cookie", "x-forwarded-for"}


def redact(text: str) -> str:
    """Mask token query params and Telegram bot paths in a URL or message."""
    text = _SECRET_PARAM.sub(r"\1=[REDACTED]", text)
    return _BOT_PATH.sub("/bot[REDACTED]/", text)


def scrub_sensitive_data(event: dict, hint: dict) -> Optional[dict]:
    """before_send hook: redact secrets from the request and exception messages."""
    request = event.get("request")
    if isinstance(request, dict):
        headers = request.get("headers")
        if isinstance(headers, dict):
            request["headers"] = {
                k: ("[REDACTED]" if k.lower() in _DROPPED_HEADERS else v) for k, v in headers.items()
            }
        for field in ("url", "query_string"):
            if isinstance(request.get(field), str):
                request[field] = redact(request[field])
        request.pop("data", None)

    for exc in (event.get("exception") or {}).get("values") or []:
        if isinstance(exc.get("value"), str):
            exc["value"] = redact(exc["value"])

    return event


def init_sentry(dsn: str, environment: str = "development", traces_sample_rate: float = 0.0) -> bool:
    """Initialize the SDK once. Returns whether Sentry is active."""
    global _enabled

    if _enabled:
        return True
    if not dsn:
        logger.info("[SENTRY] Disabled (SENTRY_DSN not set)")
        return False

    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        traces_sample_rate=traces_sample_rate,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
            LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
        ],
        send_default_pii=False,
        before_send=scrub_sensitive_data,
    )
    _enabled = True
    logger.info(f"[SENTRY] Enabled (env={environment}, traces={traces_sample_rate})")
    return True


def is_sentry_enabled() -> bool:
    return _enabled


def capture_exception(exception: Exception, job_id: Optional[str] = None, **extra_context) -> None:
    """Report an exception tagged with the tracker job (poll_cycle, backfill_*) and extras such as match_id."""
    if not _enabled:
        return

    with sentry_sdk.new_scope() as scope:
        if job_id:
            scope.set_tag("job", job_id)
        if "match_id" in extra_context:
            scope.set_tag("match_id", str(extra_context.pop("match_id")))
        for key, value in extra_context.items():
            scope.set_extra(key, value)
        sentry_sdk.capture_exception(exception)
