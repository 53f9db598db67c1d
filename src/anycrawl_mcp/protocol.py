"""ProtocolEngine: MCP message handling, independent of the transport."""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any

from mcp.shared.exceptions import McpError
from mcp.shared.version import SUPPORTED_PROTOCOL_VERSIONS
from mcp.types import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    LATEST_PROTOCOL_VERSION,
    METHOD_NOT_FOUND,
    ErrorData,
    Implementation,
    InitializeResult,
    ListToolsResult,
    ServerCapabilities,
    ToolsCapability,
)
from pydantic import BaseModel

from anycrawl_mcp import __version__
from anycrawl_mcp.errors import UnknownToolError
from anycrawl_mcp.providers.base import CrawlStatus, ProgressCallback
from anycrawl_mcp.tools.router import ToolInvoker

logger = logging.getLogger(__name__)

SERVER_NAME = "anycrawl-mcp-server"
JSONRPC_VERSION = "2.0"

Notifier = Callable[[dict[str, Any]], Awaitable[None]]
# Builds an engine for (tenant_id, stateless)
EngineFactory = Callable[[str, bool], "ProtocolEngine"]


def error_response(request_id: Any, code: int, message: str) -> dict[str, Any]:
    """Build a JSON-RPC error envelope. ``request_id`` may be None."""
    error = ErrorData(code=code, message=message)
    return {
        "jsonrpc": JSONRPC_VERSION,
        "id": request_id,
        "error": error.model_dump(exclude_none=True),
    }


def success_response(request_id: Any, result: BaseModel | dict[str, Any]) -> dict[str, Any]:
    """Build a JSON-RPC result envelope."""
    if isinstance(result, BaseModel):
        result = result.model_dump(by_alias=True, exclude_none=True, mode="json")
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "result": result}


def is_initialize_request(message: Any) -> bool:
    """Whether ``message`` is a single JSON-RPC ``initialize`` request."""
    return (
        isinstance(message, dict)
        and message.get("jsonrpc") == JSONRPC_VERSION
        and message.get("method") == "initialize"
        and "id" in message
    )


def _protocol_error(code: int, message: str) -> McpError:
    return McpError(ErrorData(code=code, message=message))


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class ProtocolEngine:
    """Handle decoded JSON-RPC messages for one logical session.

    An engine is bound to exactly one session (or one pipe, or one stateless
    request) and is never shared. Methods are dispatched through a map, so
    transports only ever call :meth:`handle_message`.
    """

    def __init__(
        self,
        invoker: ToolInvoker,
        stateless: bool = False,
        notify: Notifier | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            invoker: Tool invoker bound to this session's remote client
            stateless: Skip the initialize-first check (one-shot HTTP requests)
            notify: Awaited with server-to-client notifications, e.g. progress
        """
        self.invoker = invoker
        self.stateless = stateless
        self.notify = notify
        self.initialized = False
        self.protocol_version: str | None = None
        self.client_info: dict[str, Any] | None = None
        self._methods: dict[str, Callable[[dict[str, Any]], Awaitable[BaseModel | dict[str, Any]]]] = {
            "initialize": self._initialize,
            "ping": self._ping,
            "tools/list": self._list_tools,
            "tools/call": self._call_tool,
        }

    async def handle_message(self, message: Any) -> dict[str, Any] | list[dict[str, Any]] | None:
        """Handle one JSON-RPC message or a batch.

        Args:
            message: Decoded JSON payload

        Returns:
            The response envelope(s), or None when nothing needs answering
            (notifications and client responses)
        """
        if isinstance(message, list):
            if not message:
                return error_response(None, INVALID_REQUEST, "Invalid Request: empty batch")
            responses = []
            for item in message:
                response = await self._handle_single(item)
                if response is not None:
                    responses.append(response)
            return responses or None
        return await self._handle_single(message)

    async def _handle_single(self, message: Any) -> dict[str, Any] | None:
        if not isinstance(message, dict) or message.get("jsonrpc") != JSONRPC_VERSION:
            request_id = message.get("id") if isinstance(message, dict) else None
            return error_response(request_id, INVALID_REQUEST, "Invalid Request")

        method = message.get("method")
        if not isinstance(method, str):
            # Responses from the client to server-initiated requests; none are sent
            if "id" in message and ("result" in message or "error" in message):
                return None
            return error_response(message.get("id"), INVALID_REQUEST, "Invalid Request")

        if "id" not in message:
            logger.debug(f"Received notification {method}")
            return None

        request_id = message["id"]
        handler = self._methods.get(method)
        if handler is None:
            return error_response(request_id, METHOD_NOT_FOUND, f"Method not found: {method}")

        params = message.get("params")
        if params is None:
            params = {}
        if not isinstance(params, dict):
            return error_response(request_id, INVALID_PARAMS, "Invalid params: expected object")

        try:
            result = await handler(params)
        except McpError as e:
            return error_response(request_id, e.error.code, e.error.message)
        return success_response(request_id, result)

    def _require_initialized(self) -> None:
        if not self.stateless and not self.initialized:
            raise _protocol_error(INVALID_REQUEST, "Session not initialized")

    async def _initialize(self, params: dict[str, Any]) -> InitializeResult:
        if self.initialized:
            raise _protocol_error(INVALID_REQUEST, "Session already initialized")

        requested = params.get("protocolVersion")
        version = requested if requested in SUPPORTED_PROTOCOL_VERSIONS else LATEST_PROTOCOL_VERSION

        self.initialized = True
        self.protocol_version = version
        client_info = params.get("clientInfo")
        self.client_info = client_info if isinstance(client_info, dict) else None
        logger.info(f"Session initialized (protocol {version}, client {self.client_info or 'unknown'})")

        return InitializeResult(
            protocolVersion=version,
            capabilities=ServerCapabilities(tools=ToolsCapability(listChanged=False)),
            serverInfo=Implementation(name=SERVER_NAME, version=__version__),
        )

    async def _ping(self, params: dict[str, Any]) -> dict[str, Any]:
        return {}

    async def _list_tools(self, params: dict[str, Any]) -> ListToolsResult:
        self._require_initialized()
        return ListToolsResult(tools=self.invoker.list_tools())

    async def _call_tool(self, params: dict[str, Any]) -> BaseModel:
        self._require_initialized()

        name = params.get("name")
        if not isinstance(name, str) or not name:
            raise _protocol_error(INVALID_PARAMS, "Invalid params: tool name is required")
        arguments = params.get("arguments")
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            raise _protocol_error(INVALID_PARAMS, "Invalid params: arguments must be an object")
        if not self.invoker.has_tool(name):
            raise _protocol_error(METHOD_NOT_FOUND, f"Unknown tool: {name}")

        logger.info(f"Tool call started: {name} params={json.dumps(arguments, default=str)} at {_timestamp()}")
        try:
            result = await self.invoker.dispatch(name, arguments, self._progress_reporter(params))
        except McpError as e:
            logger.warning(f"Tool call failed: {name} at {_timestamp()}: {e.error.message}")
            raise
        except UnknownToolError as e:
            raise _protocol_error(METHOD_NOT_FOUND, str(e)) from e
        except Exception as e:
            logger.error(f"Tool call failed: {name} at {_timestamp()}: {e}")
            raise _protocol_error(INTERNAL_ERROR, f"Tool execution failed: {e}") from e

        outcome = "returned an error result" if result.isError else "completed"
        logger.info(f"Tool call {outcome}: {name} at {_timestamp()}")
        return result

    def _progress_reporter(self, params: dict[str, Any]) -> ProgressCallback | None:
        meta = params.get("_meta")
        token = meta.get("progressToken") if isinstance(meta, dict) else None
        if token is None or self.notify is None:
            return None
        notify = self.notify

        async def report(status: CrawlStatus) -> None:
            progress: dict[str, Any] = {"progressToken": token, "progress": status.completed or 0}
            if status.total is not None:
                progress["total"] = status.total
            progress["message"] = f"Crawl job {status.job_id} is {status.status}"
            await notify({"jsonrpc": JSONRPC_VERSION, "method": "notifications/progress", "params": progress})

        return report

    def close(self) -> None:
        """Release the remote client owned by this engine."""
        self.invoker.close()
