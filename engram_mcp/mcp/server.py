"""
MCP server wiring: tools, resources and prompts backed by the memory proxy.
"""

from __future__ import annotations

import json
from typing import Any, Callable, Optional

from fastmcp import FastMCP

from engram_mcp.outcomes import Offline, Success
from engram_mcp.services.memory_proxy import context_text, get_memory_proxy

READ_ONLY_TOOL_ANNOTATIONS = {"readOnlyHint": True}
DESTRUCTIVE_TOOL_ANNOTATIONS = {"destructiveHint": True}

mcp = FastMCP("engram")

REGISTERED_TOOLS: list[str] = []


def mcp_tool(*args, **kwargs):
    """Register a tool with FastMCP and return the plain coroutine function."""
    def decorator(fn: Callable[..., Any]):
        REGISTERED_TOOLS.append(kwargs.get("name") or fn.__name__)
        mcp.tool(*args, **kwargs)(fn)
        return fn
    return decorator


# =============================================================================
# Tools
# =============================================================================

@mcp_tool()
async def engram_remember(
    content: Any,
    layer: Any = None,
    importance: Any = None,
    tags: Any = None,
    source: Any = None,
    metadata: Any = None,
) -> dict:
    """Store a memory in Engram for long-term recall.

    Use this to save important facts, preferences, decisions, or context that
    should persist across conversations. ``layer`` is one of SESSION, SEMANTIC,
    CORE or META; ``importance`` is a score between 0 and 1 or one of LOW,
    MEDIUM, HIGH, CRITICAL. Arguments are checked by the proxy so a bad value
    comes back as a validation error payload.
    """
    return await get_memory_proxy().remember(
        content=content,
        layer=layer,
        importance=importance,
        tags=tags,
        source=source,
        metadata=metadata,
    )


@mcp_tool(annotations=READ_ONLY_TOOL_ANNOTATIONS)
async def engram_recall(
    query: Any,
    layers: Any = None,
    limit: Any = None,
    tags: Any = None,
    min_importance: Any = None,
) -> dict:
    """Retrieve memories relevant to a query using semantic search.

    Returns the most relevant stored memories with relevance scores
    (``limit`` defaults to 10, at most 50; a non-numeric limit uses the default).
    """
    return await get_memory_proxy().recall(
        query=query,
        layers=layers,
        limit=limit,
        tags=tags,
        min_importance=min_importance,
    )


@mcp_tool(annotations=READ_ONLY_TOOL_ANNOTATIONS)
async def engram_search(query: Any, entity_type: Any = None) -> dict:
    """Search memories with entity/graph awareness.

    Finds memories related to specific entities, people, projects, or concepts.
    """
    return await get_memory_proxy().search(query=query, entity_type=entity_type)


@mcp_tool(annotations=DESTRUCTIVE_TOOL_ANNOTATIONS)
async def engram_forget(memory_id: Any) -> dict:
    """Delete a specific memory by ID. This is permanent."""
    return await get_memory_proxy().forget(memory_id=memory_id)


@mcp_tool(annotations=READ_ONLY_TOOL_ANNOTATIONS)
async def engram_context(
    max_tokens: Any = None,
    focus: Any = None,
    project_id: Any = None,
) -> dict:
    """Generate a context window from stored memories, optimized for LLM consumption.

    ``max_tokens`` is the token budget (default 4000, between 100 and 32000).
    """
    return await get_memory_proxy().context(
        max_tokens=max_tokens,
        focus=focus,
        project_id=project_id,
    )


@mcp_tool()
async def engram_observe(
    content: Any,
    source: Any = None,
    metadata: Any = None,
) -> dict:
    """Auto-extract and store memories from a block of text.

    Engram identifies key facts, entities, and relationships to remember.
    """
    return await get_memory_proxy().observe(content=content, source=source, metadata=metadata)


@mcp_tool(annotations=READ_ONLY_TOOL_ANNOTATIONS)
async def engram_health() -> dict:
    """Check whether the Engram backend is reachable."""
    return await get_memory_proxy().health()


# =============================================================================
# Resources
# =============================================================================

async def memory_stats_resource() -> str:
    outcome = await get_memory_proxy().load_stats()
    if isinstance(outcome, Success):
        return json.dumps(outcome.value, indent=2)
    if isinstance(outcome, Offline):
        return json.dumps({"error": "Engram backend offline"})
    return json.dumps({"error": outcome.message})


async def memory_context_resource() -> str:
    outcome = await get_memory_proxy().load_context()
    if isinstance(outcome, Success):
        return context_text(outcome.value)
    if isinstance(outcome, Offline):
        return "Engram backend offline - context unavailable"
    return f"Error: {outcome.message}"


# =============================================================================
# Prompts
# =============================================================================

async def memory_aware_chat(topic: Optional[str] = None) -> str:
    outcome = await get_memory_proxy().load_context(focus=topic)
    if isinstance(outcome, Success):
        loaded = context_text(outcome.value)
    else:
        loaded = "Note: Memory context could not be loaded (Engram may be offline)."

    closing = (
        f"Let's discuss: {topic}"
        if topic
        else "How can I help you today? I have your memory context loaded above."
    )
    return "\n".join(["## Memory Context", "", loaded, "", "---", "", closing])


mcp.resource(
    "engram://stats",
    name="memory-stats",
    description="Current memory statistics - total count, breakdown by layer and source.",
    mime_type="application/json",
)(memory_stats_resource)

mcp.resource(
    "engram://context",
    name="memory-context",
    description="Auto-generated context window from stored memories.",
    mime_type="text/plain",
)(memory_context_resource)

mcp.prompt(
    name="memory-aware-chat",
    description=(
        "Start a conversation with full memory context loaded. "
        "Retrieves relevant memories and provides them as system context."
    ),
)(memory_aware_chat)


mcp_stream_app = mcp.http_app(
    path="/",
    transport="streamable-http",
    stateless_http=True,
    json_response=True,
)


class MCPRouteNormalizerASGI:
    """Pure ASGI middleware - no response buffering, SSE-safe."""
    def __init__(self, wrapped_app):
        self.wrapped_app = wrapped_app

    async def __call__(self, scope, receive, send):
        if scope["type"] == "http" and scope.get("path") == "/mcp":
            scope = dict(scope)
            scope["path"] = "/mcp/"
        await self.wrapped_app(scope, receive, send)
