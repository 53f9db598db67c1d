"""ToolInvoker: the seam between protocol-level tool calls and tool handlers."""

from __future__ import annotations

import logging
import time
from typing import Any

from mcp.types import CallToolResult, Tool

from anycrawl_mcp.errors import UnknownToolError
from anycrawl_mcp.metrics import record_tool_call
from anycrawl_mcp.providers.base import CrawlProvider, ProgressCallback
from anycrawl_mcp.tools.catalog import ToolCatalog, ToolHandler, default_catalog
from anycrawl_mcp.tools.service import ToolArgumentError, error_result

logger = logging.getLogger(__name__)


class ToolInvoker:
    """Dispatch tool calls to registered handlers bound to one provider.

    Handlers are looked up in a map populated once from the catalog, so adding
    a tool means adding a catalog entry and nothing else.
    """

    def __init__(self, provider: CrawlProvider, catalog: ToolCatalog | None = None) -> None:
        self.provider = provider
        self.catalog = catalog if catalog is not None else default_catalog()
        self._handlers: dict[str, ToolHandler] = {spec.name: spec.handler for spec in self.catalog}

    def has_tool(self, name: str) -> bool:
        return name in self._handlers

    def list_tools(self) -> list[Tool]:
        return self.catalog.list_tools()

    async def dispatch(
        self,
        name: str,
        arguments: dict[str, Any],
        on_progress: ProgressCallback | None = None,
    ) -> CallToolResult:
        """Run a tool.

        Argument validation failures and remote-reported failures come back as
        results with ``isError`` set; anything else propagates.

        Raises:
            UnknownToolError: If ``name`` is not registered
        """
        handler = self._handlers.get(name)
        if handler is None:
            raise UnknownToolError(name)

        start = time.perf_counter()
        try:
            result = await handler(self.provider, arguments, on_progress)
        except ToolArgumentError as e:
            logger.warning(str(e))
            record_tool_call(name, False, (time.perf_counter() - start) * 1000, str(e))
            return error_result(str(e))
        except Exception as e:
            record_tool_call(name, False, (time.perf_counter() - start) * 1000, f"{type(e).__name__}: {e}")
            raise

        elapsed_ms = (time.perf_counter() - start) * 1000
        error = None
        if result.isError and result.content:
            error = getattr(result.content[0], "text", None)
        record_tool_call(name, not result.isError, elapsed_ms, error)
        return result

    async def invoke(self, name: str, arguments: Any) -> CallToolResult:
        """Run a tool and always return a result, never raise.

        Used where no protocol channel exists to carry a structured error.
        """
        if not isinstance(arguments, dict):
            return error_result(f"Invalid arguments: expected object, got {type(arguments).__name__}")
        if not self.has_tool(name):
            return error_result(f"Unknown tool: {name}")

        try:
            return await self.dispatch(name, arguments)
        except Exception as e:
            logger.error(f"Tool {name} failed: {e}")
            return error_result(f"Tool execution failed: {e}")

    def close(self) -> None:
        self.provider.close()
