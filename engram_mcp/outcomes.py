"""
Result and error outcome types for proxied operations.

Every proxied operation ends in exactly one of these values. Failures are
returned, not raised, so callers have to look at ``kind`` and decide.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Union

UNSET = "unset"


@dataclass(frozen=True)
class Success:
    value: Any = None
    ok = True


@dataclass(frozen=True)
class Auth:
    kind = "auth"
    ok = False

    @property
    def message(self) -> str:
        return "API key invalid or expired"


@dataclass(frozen=True)
class NotFound:
    kind = "not_found"
    ok = False

    @property
    def message(self) -> str:
        return "Resource not found"


@dataclass(frozen=True)
class RemoteRateLimited:
    retry_after_seconds: Optional[float] = None
    kind = "remote_rate_limited"
    ok = False

    @property
    def message(self) -> str:
        if self.retry_after_seconds is None:
            return "Rate limited by Engram backend"
        return f"Rate limited by Engram backend. Retry after {self.retry_after_seconds:g}s"


@dataclass(frozen=True)
class Timeout:
    attempts: int = 1
    kind = "timeout"
    ok = False

    @property
    def message(self) -> str:
        return f"Request timed out after {self.attempts} attempt(s)"


@dataclass(frozen=True)
class Offline:
    last_healthy: Optional[str] = None
    detail: str = ""
    kind = "offline"
    ok = False

    @property
    def message(self) -> str:
        return f"Cannot reach Engram backend. Last seen: {self.last_healthy or UNSET}"

    def degraded_message(self, action: str) -> str:
        return (
            f"Memory {action} unavailable - cannot reach Engram backend. "
            f"Last seen: {self.last_healthy or UNSET}"
        )


@dataclass(frozen=True)
class Validation:
    detail: str
    field: str = "unknown"
    kind = "validation"
    ok = False

    @property
    def message(self) -> str:
        return f"Validation error: {self.detail}"


@dataclass(frozen=True)
class RateLimited:
    operation: str
    retry_after_seconds: int
    max_requests: int = 0
    window_seconds: int = 60
    kind = "rate_limited"
    ok = False

    @property
    def message(self) -> str:
        return (
            f"Rate limit exceeded for {self.operation}. "
            f"Max {self.max_requests} requests per {self.window_seconds}s. "
            f"Retry after {self.retry_after_seconds}s."
        )


@dataclass(frozen=True)
class Unexpected:
    detail: str
    status_code: Optional[int] = None
    kind = "unexpected"
    ok = False

    @property
    def message(self) -> str:
        if self.status_code is None:
            return f"Unexpected error: {self.detail}"
        return f"Engram API error: {self.status_code} {self.detail}".rstrip()


ErrorOutcome = Union[
    Auth,
    NotFound,
    RemoteRateLimited,
    Timeout,
    Offline,
    Validation,
    RateLimited,
    Unexpected,
]

ExecutionResult = Union[Success, ErrorOutcome]
