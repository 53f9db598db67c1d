"""Transport bindings for the protocol engine.

- stdio.py: pipe binding, one engine for the process
- streamable_http.py: stateless and stateful streaming HTTP bindings
- sse.py: legacy event-stream binding
- tenants.py: multi-tenant router over the stateful bindings
"""

from anycrawl_mcp.transports.sse import SSEBinding
from anycrawl_mcp.transports.streamable_http import StatelessHTTPBinding, StreamableHTTPBinding
from anycrawl_mcp.transports.tenants import TenantRouter

__all__ = [
    "SSEBinding",
    "StatelessHTTPBinding",
    "StreamableHTTPBinding",
    "TenantRouter",
]
