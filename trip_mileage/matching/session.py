"""HTTP session for map-matching calls.

Only gateway failures (502/503/504) are retried here, with a short backoff:
they come from a proxy in front of a busy or restarting matcher and usually
clear within a second. Every other response, including the last gateway
error once retries run out, is handed back to the client unchanged so the
trip gets a ``failed`` outcome carrying the service's own error text and the
attempt counts against the trip's retry budget.
"""

from __future__ import annotations

import requests
from requests import Session
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..config import HTTP_MAX_RETRIES, HTTP_POOL_CONNECTIONS, HTTP_POOL_MAXSIZE

__all__ = ["GATEWAY_RETRY_STATUSES", "create_default_session", "get_default_session"]

GATEWAY_RETRY_STATUSES = (502, 503, 504)


def _build_retry() -> Retry:
    # /match is a read-only GET, so a retried request cannot double-apply.
    # raise_on_status=False returns the final response instead of raising,
    # leaving error extraction to the client.
    return Retry(
        total=HTTP_MAX_RETRIES,
        backoff_factor=0.5,
        status_forcelist=list(GATEWAY_RETRY_STATUSES),
        allowed_methods=["GET"],
        raise_on_status=False,
    )


def create_default_session() -> Session:
    """Build a session for the matcher with gateway retries and JSON headers.

    Matching is sequential, so the pool only needs a handful of connections
    per host; it is sized from ``HTTP_POOL_CONNECTIONS`` and
    ``HTTP_POOL_MAXSIZE`` so regional endpoints each keep a warm connection.
    """

    session = requests.Session()
    adapter = HTTPAdapter(
        pool_connections=HTTP_POOL_CONNECTIONS,
        pool_maxsize=HTTP_POOL_MAXSIZE,
        max_retries=_build_retry(),
    )
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    session.headers.update({"Accept": "application/json"})
    return session


_DEFAULT_SESSION: Session | None = None


def get_default_session() -> Session:
    """Return the shared matcher session, creating it on first use."""

    global _DEFAULT_SESSION
    if _DEFAULT_SESSION is None:
        _DEFAULT_SESSION = create_default_session()
    return _DEFAULT_SESSION
