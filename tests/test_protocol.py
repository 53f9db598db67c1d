"""Tests for ProtocolEngine."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, patch

import pytest
from mcp.shared.exceptions import McpError
from mcp.types import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    LATEST_PROTOCOL_VERSION,
    METHOD_NOT_FOUND,
    ErrorData,
)

from anycrawl_mcp import __version__
from anycrawl_mcp.protocol import ProtocolEngine, is_initialize_request
from anycrawl_mcp.tools import ToolInvoker
from conftest import FakeProvider, initialize_request, jsonrpc


async def initialized(engine: ProtocolEngine) -> ProtocolEngine:
    response = await engine.handle_message(initialize_request())
    assert "result" in response
    return engine


class TestInitialize:
    """Tests for the initialize handshake."""

    @pytest.mark.asyncio
    async def test_initialize_result(self, engine: ProtocolEngine) -> None:
        response = await engine.handle_message(initialize_request(request_id=7))

        assert response["id"] == 7
        result = response["result"]
        assert result["protocolVersion"] == "2025-03-26"
        assert result["serverInfo"] == {"name": "anycrawl-mcp-server", "version": __version__}
        assert "tools" in result["capabilities"]
        assert engine.initialized is True
        assert engine.client_info == {"name": "test-client", "version": "1.0"}

    @pytest.mark.asyncio
    async def test_unsupported_version_negotiates_latest(self, engine: ProtocolEngine) -> None:
        message = jsonrpc("initialize", {"protocolVersion": "1999-01-01", "capabilities": {}})

        response = await engine.handle_message(message)

        assert response["result"]["protocolVersion"] == LATEST_PROTOCOL_VERSION

    @pytest.mark.asyncio
    async def test_second_initialize_rejected(self, engine: ProtocolEngine) -> None:
        """Test that an engine accepts initialize only once."""
        await initialized(engine)

        response = await engine.handle_message(initialize_request(request_id=2))

        assert response["error"]["code"] == INVALID_REQUEST
        assert response["error"]["message"] == "Session already initialized"

    @pytest.mark.asyncio
    async def test_tools_require_initialize(self, engine: ProtocolEngine) -> None:
        response = await engine.handle_message(jsonrpc("tools/list"))

        assert response["error"]["code"] == INVALID_REQUEST

    @pytest.mark.asyncio
    async def test_stateless_engine_skips_initialize(self, invoker: ToolInvoker) -> None:
        engine = ProtocolEngine(invoker, stateless=True)

        response = await engine.handle_message(jsonrpc("tools/list"))

        assert len(response["result"]["tools"]) == 6

    def test_is_initialize_request(self) -> None:
        assert is_initialize_request(initialize_request())
        assert not is_initialize_request(jsonrpc("initialize", request_id=None))
        assert not is_initialize_request(jsonrpc("tools/list"))
        assert not is_initialize_request([initialize_request()])


class TestMessageHandling:
    """Tests for generic JSON-RPC handling."""

    @pytest.mark.asyncio
    async def test_ping(self, engine: ProtocolEngine) -> None:
        response = await engine.handle_message(jsonrpc("ping", request_id="abc"))

        assert response == {"jsonrpc": "2.0", "id": "abc", "result": {}}

    @pytest.mark.asyncio
    async def test_notification_has_no_response(self, engine: ProtocolEngine) -> None:
        assert await engine.handle_message(jsonrpc("notifications/initialized", request_id=None)) is None

    @pytest.mark.asyncio
    async def test_unknown_method(self, engine: ProtocolEngine) -> None:
        response = await engine.handle_message(jsonrpc("resources/list"))

        assert response["error"]["code"] == METHOD_NOT_FOUND

    @pytest.mark.asyncio
    async def test_invalid_envelope(self, engine: ProtocolEngine) -> None:
        response = await engine.handle_message({"id": 1, "method": "ping"})

        assert response["error"]["code"] == INVALID_REQUEST
        assert response["id"] == 1

    @pytest.mark.asyncio
    async def test_client_response_ignored(self, engine: ProtocolEngine) -> None:
        assert await engine.handle_message({"jsonrpc": "2.0", "id": 3, "result": {}}) is None

    @pytest.mark.asyncio
    async def test_batch(self, engine: ProtocolEngine) -> None:
        """Test that a batch yields one response per request, in order."""
        batch = [
            initialize_request(request_id=1),
            jsonrpc("notifications/initialized", request_id=None),
            jsonrpc("tools/list", request_id=2),
        ]

        responses = await engine.handle_message(batch)

        assert [response["id"] for response in responses] == [1, 2]

    @pytest.mark.asyncio
    async def test_empty_batch(self, engine: ProtocolEngine) -> None:
        response = await engine.handle_message([])

        assert response["error"]["code"] == INVALID_REQUEST


class TestToolsCall:
    """Tests for tools/list and tools/call."""

    @pytest.mark.asyncio
    async def test_list_tools(self, engine: ProtocolEngine) -> None:
        await initialized(engine)

        response = await engine.handle_message(jsonrpc("tools/list", request_id=2))

        tools = response["result"]["tools"]
        assert "anycrawl_scrape" in [tool["name"] for tool in tools]
        assert all("inputSchema" in tool for tool in tools)

    @pytest.mark.asyncio
    async def test_call_tool(self, engine: ProtocolEngine) -> None:
        await initialized(engine)

        response = await engine.handle_message(
            jsonrpc(
                "tools/call",
                {"name": "anycrawl_scrape", "arguments": {"url": "https://example.com", "engine": "cheerio"}},
                request_id=2,
            )
        )

        result = response["result"]
        assert result["isError"] is False
        payload = json.loads(result["content"][0]["text"])
        assert payload["url"] == "https://example.com"
        assert payload["status"] == "completed"

    @pytest.mark.asyncio
    async def test_unknown_tool_is_method_not_found(self, engine: ProtocolEngine) -> None:
        await initialized(engine)

        response = await engine.handle_message(jsonrpc("tools/call", {"name": "nope", "arguments": {}}, 2))

        assert response["error"]["code"] == METHOD_NOT_FOUND
        assert response["error"]["message"] == "Unknown tool: nope"

    @pytest.mark.asyncio
    async def test_validation_error_is_tool_result(self, engine: ProtocolEngine) -> None:
        """Test that bad arguments stay a tool result, not a protocol fault."""
        await initialized(engine)

        response = await engine.handle_message(
            jsonrpc("tools/call", {"name": "anycrawl_scrape", "arguments": {"url": "nope"}}, 2)
        )

        assert response["result"]["isError"] is True
        assert "Invalid arguments for anycrawl_scrape" in response["result"]["content"][0]["text"]

    @pytest.mark.asyncio
    async def test_arguments_must_be_object(self, engine: ProtocolEngine) -> None:
        await initialized(engine)

        response = await engine.handle_message(
            jsonrpc("tools/call", {"name": "anycrawl_scrape", "arguments": "https://example.com"}, 2)
        )

        assert response["error"]["code"] == INVALID_PARAMS

    @pytest.mark.asyncio
    async def test_uncaught_exception_is_internal_error(
        self, engine: ProtocolEngine, fake_provider: FakeProvider
    ) -> None:
        """Test that tool exceptions keep their message but not their traceback."""
        await initialized(engine)

        with patch.object(fake_provider, "scrape", new=AsyncMock(side_effect=ValueError("unexpected payload"))):
            response = await engine.handle_message(
                jsonrpc("tools/call", {"name": "anycrawl_scrape", "arguments": {"url": "https://example.com"}}, 2)
            )

        assert response["error"]["code"] == INTERNAL_ERROR
        assert response["error"]["message"] == "Tool execution failed: unexpected payload"
        assert "Traceback" not in json.dumps(response)

    @pytest.mark.asyncio
    async def test_protocol_error_passes_through(self, engine: ProtocolEngine, fake_provider: FakeProvider) -> None:
        await initialized(engine)
        error = McpError(ErrorData(code=INVALID_PARAMS, message="Bad cursor"))

        with patch.object(fake_provider, "scrape", new=AsyncMock(side_effect=error)):
            response = await engine.handle_message(
                jsonrpc("tools/call", {"name": "anycrawl_scrape", "arguments": {"url": "https://example.com"}}, 2)
            )

        assert response["error"] == {"code": INVALID_PARAMS, "message": "Bad cursor"}

    @pytest.mark.asyncio
    async def test_crawl_progress_notifications(self, engine: ProtocolEngine, fake_provider: FakeProvider) -> None:
        """Test that a progress token yields one notification per status poll."""
        fake_provider.statuses = ["pending", "completed"]
        notify = AsyncMock()
        engine.notify = notify
        await initialized(engine)

        response = await engine.handle_message(
            jsonrpc(
                "tools/call",
                {
                    "name": "anycrawl_crawl",
                    "arguments": {"url": "https://example.com", "poll_interval_ms": 100},
                    "_meta": {"progressToken": "tok"},
                },
                2,
            )
        )

        assert response["result"]["isError"] is False
        assert notify.await_count == 2
        first = notify.await_args_list[0].args[0]
        assert first["method"] == "notifications/progress"
        assert first["params"]["progressToken"] == "tok"
        assert first["params"]["total"] == 2
        assert "pending" in first["params"]["message"]

    @pytest.mark.asyncio
    async def test_no_progress_without_token(self, engine: ProtocolEngine) -> None:
        notify = AsyncMock()
        engine.notify = notify
        await initialized(engine)

        arguments = {"url": "https://example.com"}

        await engine.handle_message(jsonrpc("tools/call", {"name": "anycrawl_crawl", "arguments": arguments}, 2))

        notify.assert_not_awaited()

    def test_close_releases_provider(self, engine: ProtocolEngine, fake_provider: FakeProvider) -> None:
        engine.close()
        assert fake_provider.closed is True
