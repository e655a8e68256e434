"""Exercise a running Engram MCP server over streamable HTTP."""
import os

import pytest
import requests

BASE_URL = os.getenv("ENGRAM_MCP_BASE_URL")

if not BASE_URL:
    pytest.skip(
        "Set ENGRAM_MCP_BASE_URL to run MCP integration tests",
        allow_module_level=True,
    )

HEADERS = {"Accept": "application/json, text/event-stream"}


def mcp_request(method, params=None):
    payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params or {}}
    resp = requests.post(f"{BASE_URL}/mcp", json=payload, headers=HEADERS, timeout=10)
    resp.raise_for_status()
    return resp.json()


def mcp_call(tool, arguments=None):
    return mcp_request("tools/call", {"name": tool, "arguments": arguments or {}})


def test_health_endpoint():
    resp = requests.get(f"{BASE_URL}/health", timeout=10)
    assert resp.status_code in (200, 503)


def test_tools_list():
    result = mcp_request("tools/list")
    names = {tool["name"] for tool in result["result"]["tools"]}
    assert "engram_remember" in names
    assert "engram_health" in names


def test_mcp_protocol():
    result = mcp_call("engram_health")
    assert result["jsonrpc"] == "2.0"

    result = mcp_call("engram_recall", {"query": "integration test", "limit": 5})
    assert result["jsonrpc"] == "2.0"

    result = mcp_call("engram_remember", {"content": ""})
    assert result["jsonrpc"] == "2.0"
