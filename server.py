"""
Engram MCP - MCP server exposing the Engram memory API as tools.

Transport: stdio (primary, for desktop MCP clients) or streamable HTTP.
All configuration comes from environment variables.
"""

import sys

from engram_mcp.config import configure_logging, load_config, logger
from engram_mcp.errors import ConfigError


def main() -> int:
    try:
        config = load_config()
    except ConfigError as exc:
        configure_logging("error")
        logger.error("startup_config_invalid", extra={"detail": str(exc)})
        return 1

    configure_logging(config.log_level)

    from engram_mcp.mcp import mcp
    from engram_mcp.services.memory_proxy import init_memory_proxy

    init_memory_proxy(config)
    logger.info(
        "engram_mcp_starting",
        extra={"base_url": config.base_url, "user_id": config.user_id, "transport": config.transport},
    )

    if config.transport == "http":
        import uvicorn

        from app.main import asgi_app

        uvicorn.run(
            asgi_app,
            host=config.http_host,
            port=config.http_port,
            log_level="warning" if config.log_level == "warn" else config.log_level,
        )
    else:
        mcp.run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
