import logging
import time
from datetime import datetime, timezone

import requests

logger = logging.getLogger(__name__)


def log_ratelimit(response, *args, **kwargs):
    headers = response.headers
    if "X-RateLimit-Remaining" not in headers:
        return
    remain = int(headers["X-RateLimit-Remaining"])
    reset = int(headers.get("X-RateLimit-Reset", time.time()))
    message = "ratelimit status: used %s of %s. next reset in %s minutes" % (
        headers.get("X-RateLimit-Used", "?"),
        headers.get("X-RateLimit-Limit", "?"),
        datetime.fromtimestamp(max(reset - time.time(), 0), tz=timezone.utc).strftime("%M:%S"),
    )
    if remain < 20:
        logger.warning(message)
    else:
        logger.debug(message)


def build_session(token=None, token_type="Bearer", accept=None):
    """
    A requests session which sends the access token with every request
    and logs the github rate limit of every response.
    """
    session = requests.Session()
    if token:
        session.headers["Authorization"] = f"{token_type} {token}"
    if accept:
        session.headers["Accept"] = accept
    session.hooks["response"].append(log_ratelimit)
    return session
