"""Rate limiting and the /metrics bearer check."""

import logging
from typing import Optional

from slowapi import Limiter
from slowapi.util import get_remote_address

logger = logging.getLogger(__name__)

# Rate limiter using client IP
limiter = Limiter(key_func=get_remote_address)


def check_bearer(authorization: Optional[str], expected_token: str) -> Optional[str]:
    """
    Validate an "Authorization: Bearer <token>" header.

    Returns None when access is allowed (or no token is configured),
    otherwise a short reason for the 401 body.
    """
    if not expected_token:
        return None
    if not authorization:
        return "Missing Authorization header"
    parts = authorization.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return "Invalid Authorization format"
    if parts[1] != expected_token:
        logger.warning("[SECURITY] Rejected /metrics request with invalid token")
        return "Invalid token"
    return None
