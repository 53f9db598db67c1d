"""Environment configuration for the AnyCrawl MCP server."""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass

DEFAULT_BASE_URL = "https://api.anycrawl.dev"

MODES = (
    "STDIO",
    "CLOUD_SERVICE",
    "HTTP_STREAMABLE_SERVER",
    "SSE_SERVER",
    "COMBINED",
)


@dataclass
class ServerConfig:
    """Runtime configuration resolved from the environment."""

    api_key: str | None = None
    base_url: str = DEFAULT_BASE_URL
    mode: str = "STDIO"
    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "info"
    session_grace_seconds: float = 300.0
    cleanup_interval_seconds: float = 30.0
    request_timeout: float = 300.0

    def validate(self) -> None:
        """Check cross-field constraints.

        Raises:
            ValueError: If the mode is unknown or a required credential is missing
        """
        if self.mode not in MODES:
            raise ValueError(f"ANYCRAWL_MODE must be one of {', '.join(MODES)}, got {self.mode!r}")

        # COMBINED takes the credential from each request path instead
        if self.mode != "COMBINED" and not self.api_key:
            raise ValueError("ANYCRAWL_API_KEY environment variable is required")


def _env_number(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


def load_config() -> ServerConfig:
    """Build a ServerConfig from environment variables.

    Returns:
        ServerConfig populated from ANYCRAWL_* and LOG_LEVEL variables

    Raises:
        ValueError: If a numeric variable cannot be parsed
    """
    return ServerConfig(
        api_key=os.getenv("ANYCRAWL_API_KEY") or None,
        base_url=os.getenv("ANYCRAWL_BASE_URL") or DEFAULT_BASE_URL,
        mode=(os.getenv("ANYCRAWL_MODE") or "STDIO").upper(),
        host=os.getenv("ANYCRAWL_HOST") or "0.0.0.0",
        port=int(_env_number("ANYCRAWL_PORT", 3000)),
        log_level=(os.getenv("LOG_LEVEL") or "info").lower(),
        session_grace_seconds=_env_number("ANYCRAWL_SESSION_GRACE_SECONDS", 300.0),
        cleanup_interval_seconds=_env_number("ANYCRAWL_CLEANUP_INTERVAL_SECONDS", 30.0),
        request_timeout=_env_number("ANYCRAWL_REQUEST_TIMEOUT", 300.0),
    )


def configure_logging(level: str = "info") -> None:
    """Configure root logging.

    Logs go to stderr so the stdio transport keeps stdout for protocol traffic.

    Args:
        level: Level name (debug, info, warn, warning, error)
    """
    name = level.upper()
    if name == "WARN":
        name = "WARNING"
    logging.basicConfig(
        level=getattr(logging, name, logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )
