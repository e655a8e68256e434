"""
Standalone FastAPI app wiring for the HTTP transport.
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

import engram_mcp
from engram_mcp.config import load_config
from engram_mcp.mcp import mcp_stream_app, MCPRouteNormalizerASGI
from engram_mcp.services import memory_proxy
from app.routes.health import router as health_router
from app.routes.root import router as root_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize on startup, cleanup on shutdown."""
    owns_proxy = False
    try:
        memory_proxy.get_memory_proxy()
    except RuntimeError:
        memory_proxy.init_memory_proxy(load_config())
        owns_proxy = True
    try:
        async with mcp_stream_app.lifespan(mcp_stream_app):
            yield
    finally:
        if owns_proxy:
            await memory_proxy.close_memory_proxy()


def create_app(with_lifespan: bool = True) -> FastAPI:
    app = FastAPI(
        title="Engram MCP",
        version=engram_mcp.__version__,
        redirect_slashes=False,
        lifespan=lifespan if with_lifespan else None,
    )
    app.include_router(health_router)
    app.include_router(root_router)
    app.mount("/mcp/", mcp_stream_app)
    return app


app = create_app()


# =============================================================================
# ASGI Application (module-level for production deployment)
# =============================================================================

asgi_app = MCPRouteNormalizerASGI(app)
