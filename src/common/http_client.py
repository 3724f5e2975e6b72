"""HTTP access for the crate registry.

Every request goes through :func:`robust_get`: a fixed timeout, exponential
backoff on server errors and network failures, and a process-wide response
cache so the sparse index is read once per crate. Failures come back as
status code 0 instead of raising; the registry layer turns them into
``FetchError``.
"""
from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict, Optional, Tuple

import requests

from constants import Constants
from common.logging_utils import extra_context, is_debug_enabled, safe_url, Timer

logger = logging.getLogger(__name__)

Response = Tuple[int, Dict[str, str], str]

# (url, sorted request headers) -> (response, stored at)
_responses: Dict[Tuple[str, Tuple[Tuple[str, str], ...]], Tuple[Response, float]] = {}


def _trace(message: str, url: str, **fields: Any) -> None:
    if is_debug_enabled(logger):
        logger.debug(
            message,
            extra=extra_context(component="http_client", action="GET", target=safe_url(url), **fields)
        )


def _cached(key) -> Optional[Response]:
    entry = _responses.get(key)
    if entry is None:
        return None
    response, stored_at = entry
    if time.time() - stored_at >= Constants.HTTP_CACHE_TTL_SEC:
        del _responses[key]
        return None
    return response


def clear_cache() -> None:
    """Forget every cached response."""
    _responses.clear()


def robust_get(url: str, *, headers: Optional[Dict[str, str]] = None, **kwargs: Any) -> Response:
    """GET ``url`` with retries and caching.

    Client errors (4xx) are final and returned as-is; 5xx responses, timeouts
    and connection errors are retried up to ``Constants.HTTP_RETRY_MAX``
    attempts.

    Returns:
        ``(status_code, headers, body)``; status 0 when every attempt failed,
        with the last failure in the body.
    """
    request_headers = {"User-Agent": Constants.USER_AGENT}
    request_headers.update(headers or {})
    key = (url, tuple(sorted(request_headers.items())))

    hit = _cached(key)
    if hit is not None:
        _trace("HTTP cache hit", url, event="cache_hit")
        return hit

    failure = "no attempt made"
    for attempt in range(1, Constants.HTTP_RETRY_MAX + 1):
        if attempt > 1:
            time.sleep(Constants.HTTP_RETRY_BASE_DELAY_SEC * 2 ** (attempt - 2))
        _trace("HTTP request", url, event="http_request", attempt=attempt)
        with Timer() as t:
            try:
                response = requests.get(url, timeout=Constants.REQUEST_TIMEOUT, headers=request_headers, **kwargs)
            except requests.Timeout:
                failure = "timeout"
                _trace("HTTP timeout", url, event="http_exception", outcome="timeout", attempt=attempt)
                continue
            except requests.RequestException as exc:
                failure = str(exc)
                _trace("HTTP request failed", url, event="http_exception", outcome="request_exception", attempt=attempt)
                continue

        if response.status_code >= 500:
            failure = f"HTTP {response.status_code}"
            _trace("HTTP server error", url, event="http_response", outcome="retry",
                   status_code=response.status_code, attempt=attempt)
            continue

        result = (response.status_code, dict(response.headers), response.text)
        _responses[key] = (result, time.time())
        _trace("HTTP response", url, event="http_response", outcome="success",
               status_code=response.status_code, duration_ms=t.duration_ms())
        return result

    logger.warning("GET %s failed after %s attempts: %s", safe_url(url), Constants.HTTP_RETRY_MAX, failure)
    return 0, {}, f"Request failed after {Constants.HTTP_RETRY_MAX} attempts: {failure}"


def get_json(
    url: str,
    *,
    headers: Optional[Dict[str, str]] = None,
    **kwargs: Any
) -> Tuple[int, Dict[str, str], Optional[Any]]:
    """GET ``url`` as JSON; the payload is None unless the body parsed on a 200."""
    merged = {"Accept": "application/json"}
    merged.update(headers or {})
    status_code, response_headers, text = robust_get(url, headers=merged, **kwargs)
    if status_code != 200 or not text:
        return status_code, response_headers, None
    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        _trace("JSON decode error", url, event="parse", outcome="json_decode_error", status_code=status_code)
        return status_code, response_headers, None
    return status_code, response_headers, payload
