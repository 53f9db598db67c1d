"""Admin API functionality for monitoring.

This module provides administrative endpoints for:
- Health checks reporting the server mode
- Tool call metrics and session registry counts

The admin module follows a router -> service pattern:
- router.py: HTTP endpoint handlers
- service.py: Health and stats payloads
"""

from anycrawl_mcp.admin.router import api_stats, health_check, routes
from anycrawl_mcp.admin.service import get_health, get_stats

__all__ = [
    # Router functions
    "api_stats",
    "health_check",
    "routes",
    # Service functions
    "get_health",
    "get_stats",
]
