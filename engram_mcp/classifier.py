"""
Map backend responses and transport failures onto error outcomes.
"""

from __future__ import annotations

import asyncio
import math
from email.utils import parsedate_to_datetime
from datetime import datetime, timezone
from typing import Mapping, Optional

import httpx

from engram_mcp.outcomes import (
    Auth,
    ErrorOutcome,
    NotFound,
    Offline,
    RemoteRateLimited,
    Timeout,
    Unexpected,
)

MAX_ERROR_BODY_CHARS = 200


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Seconds from a Retry-After header (delta-seconds or HTTP-date)."""
    if value is None or not value.strip():
        return None
    value = value.strip()
    try:
        seconds = float(value)
    except ValueError:
        try:
            when = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            return None
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        seconds = (when - datetime.now(timezone.utc)).total_seconds()
    if not math.isfinite(seconds):
        return None
    return max(0.0, seconds)


def is_server_error(status_code: int) -> bool:
    return 500 <= status_code <= 599


def is_retriable(outcome: ErrorOutcome) -> bool:
    """Timeouts and 5xx responses are worth another attempt; nothing else is."""
    if isinstance(outcome, Timeout):
        return True
    if isinstance(outcome, Unexpected) and outcome.status_code is not None:
        return is_server_error(outcome.status_code)
    return False


def classify_response(
    status_code: int,
    headers: Optional[Mapping[str, str]] = None,
    body_text: str = "",
    reason: str = "",
) -> ErrorOutcome:
    """Classify a non-success HTTP response."""
    if status_code in (401, 403):
        return Auth()
    if status_code == 404:
        return NotFound()
    if status_code == 429:
        retry_after = None
        if headers is not None:
            retry_after = parse_retry_after(headers.get("retry-after"))
        return RemoteRateLimited(retry_after_seconds=retry_after)

    detail = reason or ""
    snippet = (body_text or "")[:MAX_ERROR_BODY_CHARS]
    if snippet:
        detail = f"{detail} - {snippet}" if detail else snippet
    return Unexpected(detail=detail, status_code=status_code)


def is_timeout(exc: BaseException) -> bool:
    return isinstance(exc, (httpx.TimeoutException, asyncio.TimeoutError, TimeoutError))


def classify_exception(
    exc: BaseException,
    last_healthy: Optional[str] = None,
    attempts: int = 1,
) -> ErrorOutcome:
    """Classify a failure that produced no HTTP response."""
    if is_timeout(exc):
        return Timeout(attempts=attempts)
    if isinstance(exc, (httpx.TransportError, OSError)):
        return Offline(last_healthy=last_healthy, detail=str(exc) or type(exc).__name__)
    return Unexpected(detail=f"{type(exc).__name__}: {exc}")
