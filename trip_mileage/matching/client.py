"""HTTP client for the external ``/match`` map-matching service."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence, Type
from urllib.parse import urlencode

import requests

from ..config import (
    MATCH_RADIUS_DEFAULT_M,
    MATCH_RADIUS_MAX_M,
    MATCH_RADIUS_MIN_M,
    MATCH_SERVICE_PROFILE,
    REQUEST_TIMEOUT,
)
from ..errors import MatchServiceError
from ..models import GpsFix
from .session import get_default_session

LOGGER = logging.getLogger(__name__)

RequestsJSONDecodeError: Type[Exception]
if hasattr(requests.exceptions, "JSONDecodeError"):
    RequestsJSONDecodeError = requests.exceptions.JSONDecodeError
else:  # pragma: no cover - fallback for old requests versions
    RequestsJSONDecodeError = ValueError


__all__ = [
    "build_match_url",
    "search_radius_m",
    "request_match",
    "extract_error",
]


def search_radius_m(accuracy_m: Optional[float]) -> float:
    """Per-point search radius: GPS accuracy clamped to the allowed band."""

    if accuracy_m is None:
        return MATCH_RADIUS_DEFAULT_M
    return max(MATCH_RADIUS_MIN_M, min(MATCH_RADIUS_MAX_M, float(accuracy_m)))


def build_match_url(
    base_url: str,
    trace: Sequence[GpsFix],
    *,
    profile: str = MATCH_SERVICE_PROFILE,
) -> str:
    """Return the full GET URL for matching ``trace``.

    Coordinates are sent as ``lon,lat`` pairs, timestamps as integer Unix
    seconds and radii in metres, each list separated by ``;``.
    """

    coordinates = ";".join(f"{fix.longitude:.6f},{fix.latitude:.6f}" for fix in trace)
    params = {
        "timestamps": ";".join(str(int(fix.captured_at.timestamp())) for fix in trace),
        "radiuses": ";".join(
            _format_radius(search_radius_m(fix.accuracy_m)) for fix in trace
        ),
        "geometries": "polyline6",
        "overview": "full",
        "gaps": "ignore",
    }
    query = urlencode(params, safe=";,")
    return f"{base_url.rstrip('/')}/match/v1/{profile}/{coordinates}?{query}"


def request_match(
    base_url: str,
    trace: Sequence[GpsFix],
    *,
    session: Optional[requests.Session] = None,
    timeout: float = REQUEST_TIMEOUT,
) -> Dict[str, Any]:
    """Call the matcher and return the decoded JSON body.

    Raises:
        MatchServiceError: On network errors, non-2xx statuses or a body that
            is not a JSON object.
    """

    http = session or get_default_session()
    url = build_match_url(base_url, trace)
    LOGGER.debug("GET %s (%d points)", base_url, len(trace))
    try:
        response = http.get(url, timeout=timeout)
    except requests.RequestException as exc:
        raise MatchServiceError(f"Map matching request failed: {exc}") from exc

    status = response.status_code
    if not 200 <= status < 300:
        detail = extract_error(response)
        message = f"Map matching service returned HTTP {status}"
        if detail:
            message = f"{message} | {detail}"
        raise MatchServiceError(message, status_code=status)

    data = _safe_json(response)
    if not isinstance(data, dict):
        raise MatchServiceError("Map matching service returned a non-JSON body")
    return data


def extract_error(resp: Optional[requests.Response]) -> Optional[str]:
    """Return compact error info (code + message) if the body carries any."""

    if resp is None:
        return None
    data = _safe_json(resp)
    if data is None:
        return _extract_error_text(resp)
    if not isinstance(data, dict):
        return None
    parts: List[str] = []
    code = data.get("code")
    if code:
        parts.append(str(code))
    message = data.get("message")
    if message:
        parts.append(str(message))
    return ": ".join(parts) if parts else None


def _safe_json(resp: requests.Response) -> Optional[Any]:
    """Safely parse JSON; return None if parsing fails."""

    try:
        return resp.json()
    except (
        ValueError,
        RequestsJSONDecodeError,
    ) as exc:  # pragma: no cover - logging path
        LOGGER.debug(
            "Failed to decode JSON from %s: %s", getattr(resp, "url", "?"), exc
        )
        return None


def _extract_error_text(resp: requests.Response) -> Optional[str]:
    """Best-effort plain-text extraction when JSON parsing fails."""

    text = getattr(resp, "text", "")
    if not isinstance(text, str):
        return None
    trimmed = text.strip()
    if not trimmed:
        return None
    return (trimmed[:197] + "...") if len(trimmed) > 200 else trimmed


def _format_radius(radius: float) -> str:
    return f"{radius:g}"
