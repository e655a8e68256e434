"""
Memory operations proxied to the Engram backend.

Each operation validates its arguments, checks the local rate budget and only
then calls the backend. Results and failures are shaped into plain dicts for
MCP callers.
"""

from __future__ import annotations

from typing import Any, Callable, Optional

import httpx

from engram_mcp.config import DEFAULT_MAX_TOKENS, BackendConfig, logger
from engram_mcp.errors import ValidationIssue
from engram_mcp.executor import RequestExecutor
from engram_mcp.models import ContextArgs, OperationKey, RememberArgs, ValidatedArgs
from engram_mcp.outcomes import ExecutionResult, Offline, RateLimited, RemoteRateLimited, Success, Validation
from engram_mcp.rate_limiter import SlidingWindowRateLimiter
from engram_mcp.validators import (
    build_context_args,
    build_empty_args,
    build_forget_args,
    build_observe_args,
    build_recall_args,
    build_remember_args,
    build_search_args,
)

# Verb used in degraded-mode messages per operation
OPERATION_ACTIONS = {
    OperationKey.REMEMBER: "storage",
    OperationKey.RECALL: "recall",
    OperationKey.SEARCH: "search",
    OperationKey.FORGET: "deletion",
    OperationKey.CONTEXT: "context generation",
    OperationKey.OBSERVE: "observation",
    OperationKey.HEALTH: "health check",
    OperationKey.STATS: "statistics",
}


def _log_validation_issue(operation: OperationKey, exc: ValidationIssue) -> None:
    logger.info(
        "tool_validation_error",
        extra={
            "operation": operation.value,
            "field": exc.field,
            "error_type": exc.error_type,
            "detail": str(exc),
        },
    )


def error_payload(operation: OperationKey, outcome) -> dict:
    """Shape an error outcome for an MCP caller."""
    if isinstance(outcome, Offline):
        return {
            "status": "unavailable",
            "error_type": outcome.kind,
            "operation": operation.value,
            "message": outcome.degraded_message(OPERATION_ACTIONS[operation]),
            "last_healthy": outcome.last_healthy,
        }
    payload = {
        "status": "error",
        "error_type": outcome.kind,
        "operation": operation.value,
        "message": outcome.message,
    }
    if isinstance(outcome, Validation):
        payload["field"] = outcome.field
    if isinstance(outcome, (RateLimited, RemoteRateLimited)):
        payload["retry_after_seconds"] = outcome.retry_after_seconds
    return payload


def context_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        return str(value.get("context") or "")
    return str(value)


class MemoryProxy:
    def __init__(
        self,
        config: BackendConfig,
        executor: Optional[RequestExecutor] = None,
        rate_limiter: Optional[SlidingWindowRateLimiter] = None,
    ):
        self.config = config
        self.executor = executor if executor is not None else RequestExecutor(config)
        self.rate_limiter = rate_limiter if rate_limiter is not None else SlidingWindowRateLimiter()

    @property
    def last_healthy(self) -> Optional[str]:
        return self.executor.health.last_healthy

    async def run(
        self,
        operation: OperationKey,
        build_args: Callable[[], ValidatedArgs],
        rate_limited: bool = True,
    ) -> ExecutionResult:
        """Validate, rate limit and execute one operation, returning its outcome."""
        try:
            args = build_args()
        except ValidationIssue as exc:
            _log_validation_issue(operation, exc)
            return Validation(detail=str(exc), field=exc.field)

        if rate_limited:
            limited = self.rate_limiter.check_and_record(operation)
            if limited is not None:
                return limited

        return await self.executor.execute(operation, args)

    # --- Tool operations ---

    async def remember(
        self,
        content: Any,
        layer: Any = None,
        importance: Any = None,
        tags: Any = None,
        source: Any = None,
        metadata: Any = None,
    ) -> dict:
        def build() -> RememberArgs:
            args = build_remember_args(content, layer, importance, tags, source, metadata)
            if args.layer is None and self.config.default_layer:
                args = RememberArgs(
                    raw=args.raw,
                    layer=self.config.default_layer,
                    importance=args.importance,
                    tags=args.tags,
                    source=args.source,
                    metadata=args.metadata,
                )
            return args

        outcome = await self.run(OperationKey.REMEMBER, build)
        if not isinstance(outcome, Success):
            return error_payload(OperationKey.REMEMBER, outcome)
        result = outcome.value if isinstance(outcome.value, dict) else {}
        return {"status": "stored", "id": result.get("id"), "layer": result.get("layer")}

    async def recall(
        self,
        query: Any,
        layers: Any = None,
        limit: Any = None,
        tags: Any = None,
        min_importance: Any = None,
    ) -> dict:
        outcome = await self.run(
            OperationKey.RECALL,
            lambda: build_recall_args(query, layers, limit, tags, min_importance),
        )
        if not isinstance(outcome, Success):
            return error_payload(OperationKey.RECALL, outcome)

        results = outcome.value if isinstance(outcome.value, list) else []
        if not results:
            return {"status": "empty", "count": 0, "memories": [], "message": "No matching memories found."}
        memories = [
            {
                "id": item.get("id"),
                "content": item.get("processed") or item.get("raw"),
                "layer": item.get("layer"),
                "score": item.get("score"),
                "tags": item.get("tags") or [],
                "created": item.get("createdAt"),
            }
            for item in results
            if isinstance(item, dict)
        ]
        return {"status": "found", "count": len(memories), "memories": memories}

    async def search(self, query: Any, entity_type: Any = None) -> dict:
        outcome = await self.run(OperationKey.SEARCH, lambda: build_search_args(query, entity_type))
        if not isinstance(outcome, Success):
            return error_payload(OperationKey.SEARCH, outcome)
        return {"status": "found", "results": outcome.value}

    async def forget(self, memory_id: Any) -> dict:
        outcome = await self.run(OperationKey.FORGET, lambda: build_forget_args(memory_id))
        if not isinstance(outcome, Success):
            return error_payload(OperationKey.FORGET, outcome)
        return {"status": "deleted", "memory_id": memory_id}

    async def context(self, max_tokens: Any = None, focus: Any = None, project_id: Any = None) -> dict:
        def build() -> ContextArgs:
            args = build_context_args(max_tokens, focus, project_id)
            if args.project_id is None and self.config.default_project_id:
                args = ContextArgs(
                    max_tokens=args.max_tokens,
                    focus=args.focus,
                    project_id=self.config.default_project_id,
                )
            return args

        outcome = await self.run(OperationKey.CONTEXT, build)
        if not isinstance(outcome, Success):
            return error_payload(OperationKey.CONTEXT, outcome)
        return {"status": "ok", "context": context_text(outcome.value)}

    async def observe(self, content: Any, source: Any = None, metadata: Any = None) -> dict:
        outcome = await self.run(OperationKey.OBSERVE, lambda: build_observe_args(content, source, metadata))
        if not isinstance(outcome, Success):
            return error_payload(OperationKey.OBSERVE, outcome)
        result = outcome.value if isinstance(outcome.value, dict) else {}
        memories = [
            {"id": item.get("id"), "content": item.get("raw")}
            for item in (result.get("memories") or [])
            if isinstance(item, dict)
        ]
        return {"status": "extracted", "extracted": len(memories), "memories": memories}

    async def health(self, rate_limited: bool = True) -> dict:
        outcome = await self.run(OperationKey.HEALTH, build_empty_args, rate_limited=rate_limited)
        if not isinstance(outcome, Success):
            return error_payload(OperationKey.HEALTH, outcome)
        return {"status": "ok", "backend": outcome.value, "last_healthy": self.last_healthy}

    async def stats(self) -> dict:
        outcome = await self.run(OperationKey.STATS, build_empty_args)
        if not isinstance(outcome, Success):
            return error_payload(OperationKey.STATS, outcome)
        return {"status": "ok", "stats": outcome.value}

    # --- Resource and prompt helpers (not rate limited) ---

    async def load_context(self, focus: Optional[str] = None) -> ExecutionResult:
        return await self.run(
            OperationKey.CONTEXT,
            lambda: build_context_args(DEFAULT_MAX_TOKENS, focus, self.config.default_project_id),
            rate_limited=False,
        )

    async def load_stats(self) -> ExecutionResult:
        return await self.run(OperationKey.STATS, build_empty_args, rate_limited=False)

    async def aclose(self) -> None:
        await self.executor.aclose()


_memory_proxy: Optional[MemoryProxy] = None


def init_memory_proxy(
    config: BackendConfig,
    client: Optional[httpx.AsyncClient] = None,
) -> MemoryProxy:
    """Create the process-wide proxy used by the MCP tools and HTTP routes."""
    global _memory_proxy
    executor = RequestExecutor(config, client=client)
    _memory_proxy = MemoryProxy(config, executor=executor)
    logger.info(
        "memory_proxy_initialized",
        extra={"base_url": config.base_url, "user_id": config.user_id},
    )
    return _memory_proxy


def set_memory_proxy(proxy: Optional[MemoryProxy]) -> None:
    global _memory_proxy
    _memory_proxy = proxy


def get_memory_proxy() -> MemoryProxy:
    if _memory_proxy is None:
        raise RuntimeError("Memory proxy not initialized - call init_memory_proxy() first")
    return _memory_proxy


async def close_memory_proxy() -> None:
    global _memory_proxy
    if _memory_proxy is not None:
        await _memory_proxy.aclose()
        logger.info("memory_proxy_closed")
    _memory_proxy = None
