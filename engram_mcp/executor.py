"""
Request executor for the Engram backend API.

Runs one logical operation: builds the HTTP call from the route table, bounds
every attempt with a timeout, retries server failures and timeouts after a
fixed delay, and returns either Success or a classified error outcome.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional
from urllib.parse import quote

import httpx

from engram_mcp.classifier import classify_exception, classify_response, is_retriable
from engram_mcp.config import RETRY_DELAY_SECONDS, BackendConfig, logger
from engram_mcp.models import OperationKey, ValidatedArgs, describe_args
from engram_mcp.outcomes import ExecutionResult, Success, Unexpected

API_KEY_HEADER = "X-AM-API-Key"
USER_ID_HEADER = "X-AM-User-ID"


@dataclass(frozen=True)
class Route:
    method: str
    path: str


ROUTES: dict[OperationKey, Route] = {
    OperationKey.REMEMBER: Route("POST", "/v1/memories"),
    OperationKey.RECALL: Route("POST", "/v1/memories/query"),
    OperationKey.SEARCH: Route("POST", "/v1/hierarchy/search"),
    OperationKey.FORGET: Route("DELETE", "/v1/memories/{id}"),
    OperationKey.CONTEXT: Route("POST", "/v1/context"),
    OperationKey.OBSERVE: Route("POST", "/v1/auto/observe"),
    OperationKey.HEALTH: Route("GET", "/v1/health"),
    OperationKey.STATS: Route("GET", "/v1/memories/stats"),
}


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class BackendHealth:
    """Timestamp of the last successful backend response; never cleared."""

    def __init__(self, clock: Callable[[], str] = _utc_now_iso):
        self._clock = clock
        self._last_healthy: Optional[str] = None

    @property
    def last_healthy(self) -> Optional[str]:
        return self._last_healthy

    def mark_healthy(self) -> str:
        stamp = self._clock()
        self._last_healthy = stamp
        return stamp


def build_http_client(config: BackendConfig) -> httpx.AsyncClient:
    """Pooled client for backend calls; per-attempt timeouts are applied by the executor."""
    return httpx.AsyncClient(
        timeout=httpx.Timeout(config.timeout_seconds),
        limits=httpx.Limits(max_keepalive_connections=10, max_connections=100),
        verify=not config.tls_skip_verify,
    )


def decode_body(response: httpx.Response) -> Any:
    if not response.content.strip():
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


class RequestExecutor:
    def __init__(
        self,
        config: BackendConfig,
        client: Optional[httpx.AsyncClient] = None,
        health: Optional[BackendHealth] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        retry_delay_seconds: float = RETRY_DELAY_SECONDS,
    ):
        self._config = config
        self._owns_client = client is None
        self._client = client if client is not None else build_http_client(config)
        self.health = health if health is not None else BackendHealth()
        self._sleep = sleep
        self._retry_delay_seconds = retry_delay_seconds

    @property
    def max_retries(self) -> int:
        return self._config.max_retries

    def _headers(self) -> dict:
        return {
            "Content-Type": "application/json",
            API_KEY_HEADER: self._config.api_key,
            USER_ID_HEADER: self._config.user_id,
        }

    def build_request(self, operation: OperationKey, args: ValidatedArgs) -> httpx.Request:
        route = ROUTES[operation]
        params = {key: quote(str(value), safe="") for key, value in args.path_params().items()}
        url = f"{self._config.base_url}{route.path.format(**params)}"
        body = args.body()
        if body is None:
            return self._client.build_request(route.method, url, headers=self._headers())
        return self._client.build_request(route.method, url, headers=self._headers(), json=body)

    async def execute(self, operation: OperationKey | str, args: ValidatedArgs) -> ExecutionResult:
        """Run the operation with up to ``max_retries`` retries; never raises for backend failures."""
        key = OperationKey(operation)
        route = ROUTES[key]
        total_attempts = self.max_retries + 1
        last_outcome = None

        for attempt in range(1, total_attempts + 1):
            logger.debug(
                "backend_request",
                extra={
                    "operation": key.value,
                    "method": route.method,
                    "path": route.path,
                    "attempt": attempt,
                    **describe_args(args),
                },
            )
            request = self.build_request(key, args)
            try:
                response = await asyncio.wait_for(
                    self._client.send(request),
                    timeout=self._config.timeout_seconds,
                )
            except Exception as exc:
                outcome = classify_exception(exc, self.health.last_healthy, attempts=attempt)
                if not is_retriable(outcome):
                    if isinstance(outcome, Unexpected):
                        logger.error(
                            "backend_request_failed",
                            extra={"operation": key.value, "error_type": type(exc).__name__},
                            exc_info=exc,
                        )
                    else:
                        logger.warning(
                            "backend_unreachable",
                            extra={"operation": key.value, "detail": str(exc)},
                        )
                    return outcome
                last_outcome = outcome
                retry_reason = "timeout"
            else:
                if response.is_success:
                    self.health.mark_healthy()
                    return Success(decode_body(response))
                outcome = classify_response(
                    response.status_code,
                    response.headers,
                    response.text,
                    response.reason_phrase,
                )
                if not is_retriable(outcome):
                    logger.info(
                        "backend_request_rejected",
                        extra={"operation": key.value, "status": response.status_code, "kind": outcome.kind},
                    )
                    return outcome
                last_outcome = outcome
                retry_reason = f"status {response.status_code}"

            if attempt < total_attempts:
                logger.warning(
                    "backend_retry",
                    extra={
                        "operation": key.value,
                        "reason": retry_reason,
                        "retries_left": total_attempts - attempt - 1,
                    },
                )
                await self._sleep(self._retry_delay_seconds)

        logger.warning(
            "backend_retries_exhausted",
            extra={"operation": key.value, "attempts": total_attempts, "kind": last_outcome.kind},
        )
        return last_outcome

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
