from engram_mcp.services.memory_proxy import (
    MemoryProxy,
    close_memory_proxy,
    get_memory_proxy,
    init_memory_proxy,
    set_memory_proxy,
)

__all__ = [
    "MemoryProxy",
    "close_memory_proxy",
    "get_memory_proxy",
    "init_memory_proxy",
    "set_memory_proxy",
]
