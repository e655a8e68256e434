from engram_mcp.mcp.server import (
    mcp,
    mcp_stream_app,
    MCPRouteNormalizerASGI,
    REGISTERED_TOOLS,
)

__all__ = [
    "mcp",
    "mcp_stream_app",
    "MCPRouteNormalizerASGI",
    "REGISTERED_TOOLS",
]
