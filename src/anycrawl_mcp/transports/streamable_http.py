"""Streamable HTTP bindings: stateless one-shot and stateful session-based."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator

from sse_starlette import EventSourceResponse
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from anycrawl_mcp.errors import InvalidSessionError
from anycrawl_mcp.protocol import EngineFactory, error_response, is_initialize_request
from anycrawl_mcp.sessions.models import DEFAULT_TENANT, Session, TransportKind
from anycrawl_mcp.sessions.registry import SessionRegistry
from anycrawl_mcp.transports.common import (
    BAD_REQUEST_CODE,
    SESSION_HEADER,
    MalformedBodyError,
    bad_request_response,
    parse_error_response,
    plain_bad_request,
    process,
    read_json,
    release_stream,
    to_event,
)

logger = logging.getLogger(__name__)


class StatelessHTTPBinding:
    """Every POST gets a fresh engine; no session is issued or required."""

    def __init__(self, engine_factory: EngineFactory) -> None:
        self.engine_factory = engine_factory

    async def handle(self, request: Request) -> Response:
        """Handle any request to the MCP endpoint. Only POST is supported."""
        if request.method != "POST":
            return JSONResponse(
                error_response(None, BAD_REQUEST_CODE, "Method not allowed."),
                status_code=405,
                headers={"Allow": "POST"},
            )

        try:
            payload = await read_json(request)
        except MalformedBodyError:
            return parse_error_response()

        engine = self.engine_factory(DEFAULT_TENANT, True)
        try:
            response = await engine.handle_message(payload)
        finally:
            engine.close()

        if response is None:
            return Response(status_code=202)
        return JSONResponse(response)


class StreamableHTTPBinding:
    """Stateful streaming HTTP binding.

    An ``initialize`` POST without a session header creates a session and
    returns its token in ``Mcp-Session-Id``. Later POSTs must carry that
    header. GET opens an event stream for server-to-client messages and
    DELETE tears the session down.

    The same binding serves a single-tenant server (tenant ``default``) and
    each tenant partition of the multi-tenant router.
    """

    kind = TransportKind.STREAMABLE_HTTP

    def __init__(
        self,
        registry: SessionRegistry,
        engine_factory: EngineFactory,
        delayed_cleanup: bool = False,
    ) -> None:
        """Initialize the binding.

        Args:
            registry: Registry that owns the sessions
            engine_factory: Builds a new engine for a tenant
            delayed_cleanup: When an event stream drops, keep the session for
                the registry's grace period instead of closing it at once
        """
        self.registry = registry
        self.engine_factory = engine_factory
        self.delayed_cleanup = delayed_cleanup

    async def handle(self, request: Request, tenant_id: str = DEFAULT_TENANT) -> Response:
        """Dispatch on the HTTP method."""
        if request.method == "POST":
            return await self.handle_post(request, tenant_id)
        if request.method == "GET":
            return await self.handle_get(request, tenant_id)
        if request.method == "DELETE":
            return await self.handle_delete(request, tenant_id)
        return Response(status_code=405, headers={"Allow": "GET, POST, DELETE"})

    async def handle_post(self, request: Request, tenant_id: str = DEFAULT_TENANT) -> Response:
        try:
            payload = await read_json(request)
        except MalformedBodyError:
            return parse_error_response()

        token = request.headers.get(SESSION_HEADER)
        created = False
        if token:
            try:
                session = self.registry.resolve(tenant_id, token, self.kind)
            except InvalidSessionError as e:
                logger.warning(f"Rejected POST for unknown session {token}")
                return bad_request_response(str(e))
        elif is_initialize_request(payload):
            session = self.registry.create(tenant_id, self.kind, self.engine_factory(tenant_id, False))
            created = True
        else:
            return bad_request_response()

        response = await process(session, payload)

        if created and isinstance(response, dict) and "error" in response:
            # A failed initialize leaves nothing worth keeping
            self.registry.close(tenant_id, session.session_token, self.kind)
            return JSONResponse(response)

        headers = {SESSION_HEADER: session.session_token}
        if response is None:
            return Response(status_code=202, headers=headers)
        return JSONResponse(response, headers=headers)

    async def handle_get(self, request: Request, tenant_id: str = DEFAULT_TENANT) -> Response:
        session = self._session_from_header(request, tenant_id)
        if session is None:
            return plain_bad_request("Invalid or missing session ID")

        generation = session.attach_stream()
        logger.info(f"Opened event stream for session {session.session_token}")
        return EventSourceResponse(
            self._stream(session, generation),
            headers={SESSION_HEADER: session.session_token},
        )

    async def handle_delete(self, request: Request, tenant_id: str = DEFAULT_TENANT) -> Response:
        session = self._session_from_header(request, tenant_id)
        if session is None:
            return plain_bad_request("Invalid or missing session ID")

        self.registry.close(tenant_id, session.session_token, self.kind)
        return Response(status_code=200)

    def _session_from_header(self, request: Request, tenant_id: str) -> Session | None:
        try:
            return self.registry.resolve(tenant_id, request.headers.get(SESSION_HEADER), self.kind)
        except InvalidSessionError:
            return None

    async def _stream(self, session: Session, generation: int) -> AsyncIterator[dict[str, str]]:
        try:
            while True:
                message = await session.next_message(generation)
                if message is None:
                    break
                yield to_event(message)
        finally:
            release_stream(self.registry, session, generation, self.delayed_cleanup)
