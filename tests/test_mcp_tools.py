import asyncio
import json

import httpx
import pytest
from fastmcp import Client

from conftest import RecordingBackend
from engram_mcp.mcp import mcp
from engram_mcp.services import memory_proxy


@pytest.fixture
def backend_for_tools(make_proxy):
    def _install(*responses):
        backend = RecordingBackend(*responses)
        memory_proxy.set_memory_proxy(make_proxy(backend))
        return backend

    yield _install
    memory_proxy.set_memory_proxy(None)


def call_tool(name, arguments):
    async def _call():
        async with Client(mcp) as client:
            return await client.call_tool(name, arguments)

    result = asyncio.run(_call())
    content = getattr(result, "content", result)
    return json.loads(content[0].text)


def test_importance_level_reaches_backend(backend_for_tools):
    backend = backend_for_tools(httpx.Response(201, json={"id": "m1", "layer": "SESSION"}))

    result = call_tool("engram_remember", {"content": "x", "importance": "high"})

    assert result["status"] == "stored"
    assert json.loads(backend.requests[0].content)["importance"] == "HIGH"


def test_numeric_importance_passes_through(backend_for_tools):
    backend = backend_for_tools(httpx.Response(201, json={"id": "m1", "layer": "SESSION"}))

    call_tool("engram_remember", {"content": "x", "importance": 0.25})

    assert json.loads(backend.requests[0].content)["importance"] == 0.25


def test_non_numeric_limit_uses_default(backend_for_tools):
    backend = backend_for_tools(httpx.Response(200, json=[]))

    result = call_tool("engram_recall", {"query": "x", "limit": "abc"})

    assert result["status"] == "empty"
    assert json.loads(backend.requests[0].content)["limit"] == 10


def test_string_max_tokens_is_coerced(backend_for_tools):
    backend = backend_for_tools(httpx.Response(200, json={"context": "ctx"}))

    call_tool("engram_context", {"max_tokens": "2000"})

    assert json.loads(backend.requests[0].content)["maxTokens"] == 2000


@pytest.mark.parametrize(
    "name, arguments, field",
    [
        ("engram_remember", {"content": 42}, "content"),
        ("engram_remember", {"content": "x", "tags": "not-a-list"}, "tags"),
        ("engram_recall", {"query": ["x"]}, "query"),
        ("engram_forget", {"memory_id": 7}, "memory_id"),
        ("engram_observe", {"content": {"text": "x"}}, "content"),
    ],
)
def test_wrong_types_come_back_as_validation_payload(backend_for_tools, name, arguments, field):
    backend = backend_for_tools(httpx.Response(200, json={}))

    result = call_tool(name, arguments)

    assert result["status"] == "error"
    assert result["error_type"] == "validation"
    assert result["field"] == field
    assert backend.calls == 0
