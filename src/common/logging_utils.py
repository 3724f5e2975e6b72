"""Centralized logging helpers.

Provides a single place to configure the root logger, build structured
``extra=`` payloads, and time operations for DEBUG traces.
"""
from __future__ import annotations

import logging
import os
import re
import time
from typing import Any, Dict, Optional
from urllib.parse import urlsplit, urlunsplit

from constants import Constants

_SENSITIVE_QUERY = re.compile(r"(?i)(token|key|secret|password|auth)=([^&]+)")

# Keys that may be passed through extra_context; unknown keys are kept too
_CONTEXT_KEYS = (
    "event",
    "component",
    "action",
    "outcome",
    "target",
    "crate",
    "version",
    "count",
    "duration_ms",
    "status_code",
    "attempt",
)


def configure_logging(level: Optional[str] = None) -> None:
    """Configure the root logger once.

    The level is taken from the argument, then DEBCRATE_LOG_LEVEL, then INFO.
    Calling this repeatedly only adjusts the level.
    """
    level_name = (level or os.environ.get(Constants.ENV_LOG_LEVEL) or "INFO").upper()
    level_value = getattr(logging, level_name, logging.INFO)
    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(Constants.LOG_FORMAT))
        root.addHandler(handler)
    root.setLevel(level_value)


def extra_context(**kwargs: Any) -> Dict[str, Any]:
    """Build an ``extra=`` mapping for structured log records.

    None values are dropped so formatters never see empty fields.
    """
    context = {k: v for k, v in kwargs.items() if v is not None}
    ordered = {k: context.pop(k) for k in _CONTEXT_KEYS if k in context}
    ordered.update(context)
    return ordered


def is_debug_enabled(logger: logging.Logger) -> bool:
    """Return True when DEBUG records would be emitted by the logger."""
    return logger.isEnabledFor(logging.DEBUG)


def redact(value: str) -> str:
    """Mask credential-looking query parameters in a string."""
    return _SENSITIVE_QUERY.sub(lambda m: f"{m.group(1)}=***", value)


def safe_url(url: str) -> str:
    """Return the URL without userinfo and with sensitive parameters masked."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return redact(url)
    netloc = parts.hostname or ""
    if parts.port:
        netloc = f"{netloc}:{parts.port}"
    return urlunsplit((parts.scheme, netloc, parts.path, redact(parts.query), ""))


class Timer:
    """Context manager measuring wall-clock duration."""

    def __init__(self) -> None:
        self._start = 0.0
        self._end: Optional[float] = None

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        self._end = None
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self._end = time.perf_counter()

    def duration_ms(self) -> float:
        """Elapsed milliseconds, measured up to now while still running."""
        end = self._end if self._end is not None else time.perf_counter()
        return round((end - self._start) * 1000.0, 3)
