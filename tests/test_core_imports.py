import asyncio
import json

import httpx
import pytest

from conftest import RecordingBackend


def test_core_imports():
    import engram_mcp.classifier  # noqa: F401
    import engram_mcp.executor  # noqa: F401
    import engram_mcp.mcp  # noqa: F401
    import engram_mcp.rate_limiter  # noqa: F401
    import engram_mcp.services  # noqa: F401
    import engram_mcp.validators  # noqa: F401


def test_tool_registry():
    from engram_mcp.mcp import REGISTERED_TOOLS, mcp

    expected = {
        "engram_remember",
        "engram_recall",
        "engram_search",
        "engram_forget",
        "engram_context",
        "engram_observe",
        "engram_health",
    }
    assert set(REGISTERED_TOOLS) == expected
    assert set(asyncio.run(mcp.get_tools())) == expected


def test_resources_and_prompt_registered():
    from engram_mcp.mcp import mcp

    resources = {str(uri) for uri in asyncio.run(mcp.get_resources())}
    prompts = set(asyncio.run(mcp.get_prompts()))

    assert {"engram://stats", "engram://context"} <= resources
    assert "memory-aware-chat" in prompts


@pytest.fixture
def installed_proxy(make_proxy):
    from engram_mcp.services import memory_proxy

    def _install(backend):
        proxy = make_proxy(backend)
        memory_proxy.set_memory_proxy(proxy)
        return proxy

    yield _install
    memory_proxy.set_memory_proxy(None)


def test_tool_functions_delegate_to_proxy(installed_proxy):
    from engram_mcp.mcp.server import engram_forget, engram_remember

    backend = RecordingBackend(
        httpx.Response(201, json={"id": "m1", "layer": "SESSION"}),
        httpx.Response(204),
    )
    installed_proxy(backend)

    stored = asyncio.run(engram_remember(content="tool smoke"))
    deleted = asyncio.run(engram_forget(memory_id="m1"))

    assert stored == {"status": "stored", "id": "m1", "layer": "SESSION"}
    assert deleted == {"status": "deleted", "memory_id": "m1"}
    assert [r.method for r in backend.requests] == ["POST", "DELETE"]


def test_stats_resource_renders_json(installed_proxy):
    from engram_mcp.mcp.server import memory_stats_resource

    installed_proxy(RecordingBackend(httpx.Response(200, json={"total": 7, "byLayer": {"CORE": 7}})))

    assert json.loads(asyncio.run(memory_stats_resource())) == {"total": 7, "byLayer": {"CORE": 7}}


def test_stats_resource_offline(installed_proxy):
    from engram_mcp.mcp.server import memory_stats_resource

    installed_proxy(RecordingBackend(httpx.ConnectError("connection refused")))

    assert json.loads(asyncio.run(memory_stats_resource())) == {"error": "Engram backend offline"}


def test_context_resource(installed_proxy):
    from engram_mcp.mcp.server import memory_context_resource

    installed_proxy(RecordingBackend(httpx.Response(200, json={"context": "- likes tea"})))

    assert asyncio.run(memory_context_resource()) == "- likes tea"


def test_memory_aware_chat_prompt(installed_proxy):
    from engram_mcp.mcp.server import memory_aware_chat

    backend = RecordingBackend(httpx.Response(200, json={"context": "- likes tea"}))
    installed_proxy(backend)

    text = asyncio.run(memory_aware_chat(topic="breakfast"))

    assert text.startswith("## Memory Context")
    assert "- likes tea" in text
    assert text.endswith("Let's discuss: breakfast")
    assert json.loads(backend.requests[0].content)["focus"] == "breakfast"


def test_memory_aware_chat_prompt_offline(installed_proxy):
    from engram_mcp.mcp.server import memory_aware_chat

    installed_proxy(RecordingBackend(httpx.ConnectError("connection refused")))

    text = asyncio.run(memory_aware_chat())

    assert "could not be loaded" in text
    assert text.endswith("I have your memory context loaded above.")
