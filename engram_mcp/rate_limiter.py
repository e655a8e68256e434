"""
Per-operation sliding window rate limiter.
"""

from __future__ import annotations

import math
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Mapping, Optional

from engram_mcp.config import logger
from engram_mcp.models import OperationKey
from engram_mcp.outcomes import RateLimited


@dataclass(frozen=True)
class RateLimitRule:
    max_requests: int
    window_seconds: float = 60.0


DEFAULT_RATE_LIMITS: dict[str, RateLimitRule] = {
    OperationKey.REMEMBER.value: RateLimitRule(max_requests=30),
    OperationKey.RECALL.value: RateLimitRule(max_requests=60),
    OperationKey.SEARCH.value: RateLimitRule(max_requests=60),
    OperationKey.FORGET.value: RateLimitRule(max_requests=10),
    OperationKey.CONTEXT.value: RateLimitRule(max_requests=20),
    OperationKey.OBSERVE.value: RateLimitRule(max_requests=30),
    OperationKey.HEALTH.value: RateLimitRule(max_requests=60),
}


class SlidingWindowRateLimiter:
    """Counts admitted requests per operation over a moving window ending now.

    Operations without a rule are never limited. Each operation has its own
    lock, so a check only ever holds one lock.
    """

    def __init__(
        self,
        rules: Optional[Mapping[str, RateLimitRule]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._rules = dict(DEFAULT_RATE_LIMITS if rules is None else rules)
        self._clock = clock
        self._windows: dict[str, deque[float]] = {key: deque() for key in self._rules}
        self._locks: dict[str, threading.Lock] = {key: threading.Lock() for key in self._rules}

    def rule_for(self, operation: str) -> Optional[RateLimitRule]:
        """Budget for an operation, or None when it is never limited."""
        return self._rules.get(_key(operation))

    def check_and_record(self, operation: str) -> Optional[RateLimited]:
        """Admit and record one request, or return RateLimited without recording."""
        key = _key(operation)
        rule = self.rule_for(key)
        if rule is None:
            return None

        with self._locks[key]:
            now = self._clock()
            window = self._windows[key]
            while window and now - window[0] >= rule.window_seconds:
                window.popleft()

            if len(window) >= rule.max_requests:
                retry_after = math.ceil(rule.window_seconds - (now - window[0]))
                outcome = RateLimited(
                    operation=key,
                    retry_after_seconds=max(1, retry_after),
                    max_requests=rule.max_requests,
                    window_seconds=int(rule.window_seconds),
                )
                logger.warning(
                    "rate_limit_exceeded",
                    extra={"operation": key, "retry_after_seconds": outcome.retry_after_seconds},
                )
                return outcome

            window.append(now)
            return None

    def in_window(self, operation: str) -> int:
        key = _key(operation)
        if key not in self._locks:
            return 0
        with self._locks[key]:
            return len(self._windows[key])

    def reset(self) -> None:
        for key, lock in self._locks.items():
            with lock:
                self._windows[key].clear()


def _key(operation: str) -> str:
    if isinstance(operation, OperationKey):
        return operation.value
    return str(operation)
