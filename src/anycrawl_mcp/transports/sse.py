"""Legacy event-stream binding: one ``GET`` stream plus a ``POST`` messages endpoint."""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator

from sse_starlette import EventSourceResponse
from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response

from anycrawl_mcp.errors import InvalidSessionError
from anycrawl_mcp.protocol import JSONRPC_VERSION, EngineFactory
from anycrawl_mcp.sessions.models import DEFAULT_TENANT, Session, TransportKind
from anycrawl_mcp.sessions.registry import SessionRegistry
from anycrawl_mcp.transports.common import (
    MalformedBodyError,
    parse_error_response,
    plain_bad_request,
    process,
    read_json,
    release_stream,
    to_event,
)

logger = logging.getLogger(__name__)

CONNECTION_MESSAGE = {
    "jsonrpc": JSONRPC_VERSION,
    "method": "sse/connection",
    "params": {"message": "SSE Connection established"},
}


class SSEBinding:
    """Each ``GET`` opens a new session whose responses flow back on that stream.

    The first event (``endpoint``) tells the client where to POST messages;
    POSTed messages are answered with 202 and their responses are delivered on
    the stream. ``GET ?sessionId=`` re-attaches to a session whose stream dropped.
    """

    kind = TransportKind.SSE

    def __init__(
        self,
        registry: SessionRegistry,
        engine_factory: EngineFactory,
        delayed_cleanup: bool = False,
    ) -> None:
        self.registry = registry
        self.engine_factory = engine_factory
        self.delayed_cleanup = delayed_cleanup

    def open_stream(
        self,
        tenant_id: str = DEFAULT_TENANT,
        messages_path: str = "/messages",
        token: str | None = None,
    ) -> Response:
        """Return an event stream for a new session, or for an existing one.

        A client whose stream dropped may reconnect with its session token
        within the grace period; responses queued meanwhile are delivered on
        the new stream.

        Args:
            tenant_id: Tenant partition for the session
            messages_path: Path the client must POST messages to
            token: Existing session to re-attach to

        Raises:
            InvalidSessionError: If ``token`` names no live session
        """
        if token is None:
            session = self.registry.create(tenant_id, self.kind, self.engine_factory(tenant_id, False))
            logger.info(f"SSE connection established for session {session.session_token}")
        else:
            session = self.registry.resolve(tenant_id, token, self.kind)
            logger.info(f"SSE stream resumed for session {token}")

        generation = session.attach_stream()
        endpoint = f"{messages_path}?sessionId={session.session_token}"
        return EventSourceResponse(self._stream(session, generation, endpoint))

    async def handle_stream(self, request: Request) -> Response:
        """``GET /sse`` on a single-tenant server."""
        token = request.query_params.get("sessionId")
        try:
            return self.open_stream(DEFAULT_TENANT, "/messages", token)
        except InvalidSessionError:
            return plain_bad_request("No transport found for sessionId")

    async def handle_message(self, request: Request) -> Response:
        """``POST /messages?sessionId=`` on a single-tenant server."""
        token = request.query_params.get("sessionId")
        try:
            session = self.registry.resolve(DEFAULT_TENANT, token, self.kind)
        except InvalidSessionError:
            logger.warning(f"No transport found for sessionId {token}")
            return plain_bad_request("No transport found for sessionId")
        return await self.post_message(request, session)

    async def post_message(self, request: Request, session: Session) -> Response:
        """Process one POSTed message and queue its response on the session stream.

        A session whose stream is gone stays on its grace period: the post is
        processed and its response kept for a resumed stream.
        """
        try:
            return await self._deliver(request, session)
        finally:
            self.registry.reschedule_if_detached(session)

    async def _deliver(self, request: Request, session: Session) -> Response:
        try:
            payload = await read_json(request)
        except MalformedBodyError:
            return parse_error_response()

        response = await process(session, payload)
        if response is not None:
            await session.send(response)
        return PlainTextResponse("Accepted", status_code=202)

    async def _stream(self, session: Session, generation: int, endpoint: str) -> AsyncIterator[dict[str, str]]:
        try:
            yield {"event": "endpoint", "data": endpoint}
            yield {"event": "message", "data": json.dumps(CONNECTION_MESSAGE)}
            while True:
                message = await session.next_message(generation)
                if message is None:
                    break
                yield to_event(message)
        finally:
            release_stream(self.registry, session, generation, self.delayed_cleanup)
