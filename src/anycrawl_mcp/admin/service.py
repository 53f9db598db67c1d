"""Admin service layer for health and stats."""

from __future__ import annotations

from typing import Any

from anycrawl_mcp import __version__
from anycrawl_mcp.metrics import get_metrics
from anycrawl_mcp.sessions.registry import SessionRegistry


def get_health(mode: str) -> dict[str, Any]:
    """Liveness payload naming the active mode."""
    return {"status": "ok", "mode": mode}


def get_stats(mode: str, registry: SessionRegistry | None = None) -> dict[str, Any]:
    """Get server statistics and metrics.

    Args:
        mode: Active server mode
        registry: Session registry, absent for stateless modes

    Returns:
        Dictionary with tool call metrics and session counts
    """
    stats = get_metrics().to_dict()
    stats["mode"] = mode
    stats["version"] = __version__
    stats["sessions"] = registry.stats() if registry is not None else None
    return stats
