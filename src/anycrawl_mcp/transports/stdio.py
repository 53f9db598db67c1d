"""Pipe binding: one engine on stdin/stdout for the life of the process."""

from __future__ import annotations

import logging
from typing import Any

from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream
from mcp.server.stdio import stdio_server
from mcp.shared.message import SessionMessage
from mcp.types import JSONRPCMessage

from anycrawl_mcp.protocol import ProtocolEngine

logger = logging.getLogger(__name__)


async def serve(
    engine: ProtocolEngine,
    read_stream: MemoryObjectReceiveStream[SessionMessage | Exception],
    write_stream: MemoryObjectSendStream[SessionMessage],
) -> None:
    """Feed every inbound message to ``engine`` and write its responses back in order.

    Returns when the read stream is exhausted.
    """

    async def send(message: dict[str, Any]) -> None:
        await write_stream.send(SessionMessage(JSONRPCMessage.model_validate(message)))

    engine.notify = send

    async with read_stream:
        async for item in read_stream:
            if isinstance(item, Exception):
                logger.warning(f"Discarding malformed input: {item}")
                continue

            payload = item.message.model_dump(by_alias=True, mode="json", exclude_unset=True)
            response = await engine.handle_message(payload)
            if response is None:
                continue
            for message in response if isinstance(response, list) else [response]:
                await send(message)


async def run_stdio(engine: ProtocolEngine) -> None:
    """Serve ``engine`` over the process's stdin and stdout."""
    logger.info("AnyCrawl MCP server running on stdio")
    async with stdio_server() as (read_stream, write_stream):
        await serve(engine, read_stream, write_stream)
    engine.close()
