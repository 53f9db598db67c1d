"""Main entry point for the AnyCrawl MCP server."""

from __future__ import annotations

import logging
import sys

from anycrawl_mcp.config import configure_logging, load_config
from anycrawl_mcp.server import run_server

logger = logging.getLogger("anycrawl_mcp")


def main() -> None:
    """Main entry point."""
    try:
        config = load_config()
    except ValueError as e:
        configure_logging()
        logger.error(str(e))
        sys.exit(1)

    # Command line arguments override the environment: [mode] [host] [port]
    if len(sys.argv) > 1:
        config.mode = sys.argv[1].upper()
    if len(sys.argv) > 2:
        config.host = sys.argv[2]
    if len(sys.argv) > 3:
        config.port = int(sys.argv[3])

    configure_logging(config.log_level)

    try:
        config.validate()
    except ValueError as e:
        logger.error(str(e))
        sys.exit(1)

    logger.info(f"Starting AnyCrawl MCP server in {config.mode} mode")
    try:
        run_server(config)
    except KeyboardInterrupt:
        logger.info("Shutting down")
    except Exception:
        logger.exception("Fatal error running AnyCrawl MCP server")
        sys.exit(1)


if __name__ == "__main__":
    main()
