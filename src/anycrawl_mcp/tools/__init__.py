"""MCP tools for the AnyCrawl API.

The tools module follows a router -> service pattern:
- catalog.py: tool names, descriptions and input contracts
- router.py: ToolInvoker, dispatching calls through the handler map
- service.py: per-tool validation, request shaping and result mapping
"""

from anycrawl_mcp.tools.catalog import ToolCatalog, ToolSpec, default_catalog
from anycrawl_mcp.tools.router import ToolInvoker
from anycrawl_mcp.tools.service import ToolArgumentError, error_result, text_result

__all__ = [
    "ToolArgumentError",
    "ToolCatalog",
    "ToolInvoker",
    "ToolSpec",
    "default_catalog",
    "error_result",
    "text_result",
]
