"""
Root endpoint with service metadata.
"""

from __future__ import annotations

from fastapi import APIRouter

import engram_mcp
from engram_mcp.mcp import REGISTERED_TOOLS


router = APIRouter()


@router.get("/")
async def root():
    """Root endpoint with service info."""
    return {
        "service": "engram-mcp",
        "version": engram_mcp.__version__,
        "description": "MCP server exposing the Engram memory API",
        "tools": sorted(REGISTERED_TOOLS),
        "endpoints": {
            "health": "/health",
            "mcp": "/mcp",
        },
    }
