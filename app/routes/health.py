"""
Health endpoint reporting backend reachability.
"""

from __future__ import annotations

from fastapi import APIRouter, HTTPException

from engram_mcp.services.memory_proxy import get_memory_proxy


router = APIRouter()


@router.get("/health")
async def health():
    """Probe the Engram backend; 503 when it cannot be reached.

    Load-balancer probes do not draw on the MCP health tool budget.
    """
    proxy = get_memory_proxy()
    backend = await proxy.health(rate_limited=False)
    if backend["status"] == "unavailable":
        raise HTTPException(
            status_code=503,
            detail={"backend": backend, "last_healthy": proxy.last_healthy},
        )

    return {
        "status": "healthy" if backend["status"] == "ok" else "degraded",
        "service": "engram-mcp",
        "backend": backend,
        "last_healthy": proxy.last_healthy,
    }
