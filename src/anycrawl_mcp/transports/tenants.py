"""TenantRouter: multi-tenant routing keyed by the caller's API key."""

from __future__ import annotations

import logging

from starlette.requests import Request
from starlette.responses import Response
from starlette.routing import Route

from anycrawl_mcp.errors import InvalidSessionError, TenantRequiredError
from anycrawl_mcp.protocol import EngineFactory
from anycrawl_mcp.sessions.models import TransportKind
from anycrawl_mcp.sessions.registry import SessionRegistry, mask_tenant
from anycrawl_mcp.transports.common import bad_request_response, plain_bad_request
from anycrawl_mcp.transports.sse import SSEBinding
from anycrawl_mcp.transports.streamable_http import StreamableHTTPBinding

logger = logging.getLogger(__name__)

TENANT_REQUIRED_MESSAGE = "API key is required"


def tenant_from_path(request: Request) -> str:
    """Return the API key path segment.

    Raises:
        TenantRequiredError: If the segment is missing or blank
    """
    api_key = (request.path_params.get("api_key") or "").strip()
    if not api_key:
        raise TenantRequiredError(TENANT_REQUIRED_MESSAGE)
    return api_key


def tenant_from_headers(request: Request) -> str | None:
    """Return the API key from ``Authorization: Bearer`` or ``X-API-Key``, if any."""
    authorization = request.headers.get("authorization", "")
    scheme, _, credential = authorization.partition(" ")
    if scheme.lower() == "bearer" and credential.strip():
        return credential.strip()
    api_key = request.headers.get("x-api-key", "").strip()
    return api_key or None


class TenantRouter:
    """Route requests to per-tenant session partitions.

    The tenant credential comes from the path (``/{api_key}/mcp``,
    ``/{api_key}/sse``, ``/{api_key}/messages``). Each session gets an engine
    and remote client bound to that key. A dropped stream only schedules
    deletion; the client may come back within the grace period.
    """

    def __init__(self, registry: SessionRegistry, engine_factory: EngineFactory) -> None:
        self.registry = registry
        self.streamable_http = StreamableHTTPBinding(registry, engine_factory, delayed_cleanup=True)
        self.sse = SSEBinding(registry, engine_factory, delayed_cleanup=True)

    async def handle_mcp(self, request: Request) -> Response:
        """``POST|GET|DELETE /{api_key}/mcp``."""
        try:
            tenant_id = tenant_from_path(request)
        except TenantRequiredError:
            return bad_request_response(f"Bad Request: {TENANT_REQUIRED_MESSAGE}")
        return await self.streamable_http.handle(request, tenant_id)

    async def handle_missing_tenant(self, request: Request) -> Response:
        """``/mcp`` without a credential segment."""
        return bad_request_response(f"Bad Request: {TENANT_REQUIRED_MESSAGE}")

    async def handle_sse(self, request: Request) -> Response:
        """``GET /{api_key}/sse``, or ``GET /sse`` with the key in a header.

        With ``?sessionId=`` the stream re-attaches to that session.
        """
        if "api_key" in request.path_params:
            try:
                tenant_id = tenant_from_path(request)
            except TenantRequiredError:
                return plain_bad_request(TENANT_REQUIRED_MESSAGE)
            messages_path = f"/{tenant_id}/messages"
        else:
            tenant_id = tenant_from_headers(request)
            if tenant_id is None:
                return plain_bad_request(TENANT_REQUIRED_MESSAGE)
            messages_path = "/messages"

        token = request.query_params.get("sessionId")
        logger.info(f"Opening SSE stream for tenant {mask_tenant(tenant_id)}")
        try:
            return self.sse.open_stream(tenant_id, messages_path, token)
        except InvalidSessionError:
            logger.warning(f"No transport found for sessionId {token} with API key {mask_tenant(tenant_id)}")
            return plain_bad_request("No transport found for sessionId")

    async def handle_tenant_messages(self, request: Request) -> Response:
        """``POST /{api_key}/messages?sessionId=``."""
        try:
            tenant_id = tenant_from_path(request)
        except TenantRequiredError:
            return plain_bad_request(TENANT_REQUIRED_MESSAGE)

        token = request.query_params.get("sessionId")
        try:
            session = self.registry.resolve(tenant_id, token, TransportKind.SSE)
        except InvalidSessionError:
            logger.warning(f"No transport found for sessionId {token} with API key {mask_tenant(tenant_id)}")
            return plain_bad_request("No transport found for sessionId")
        return await self.sse.post_message(request, session)

    async def handle_messages(self, request: Request) -> Response:
        """``POST /messages?sessionId=``: find the session in any tenant partition."""
        token = request.query_params.get("sessionId")
        if not token:
            return plain_bad_request("sessionId is required")

        try:
            session = self.registry.find_by_token(token, TransportKind.SSE)
        except InvalidSessionError:
            logger.warning(f"No transport found for sessionId {token} across all API keys")
            return plain_bad_request("No transport found for sessionId")
        return await self.sse.post_message(request, session)

    def routes(self) -> list[Route]:
        return [
            Route("/mcp", self.handle_missing_tenant, methods=["GET", "POST", "DELETE"]),
            Route("/sse", self.handle_sse, methods=["GET"]),
            Route("/messages", self.handle_messages, methods=["POST"]),
            Route("/{api_key}/mcp", self.handle_mcp, methods=["GET", "POST", "DELETE"]),
            Route("/{api_key}/sse", self.handle_sse, methods=["GET"]),
            Route("/{api_key}/messages", self.handle_tenant_messages, methods=["POST"]),
        ]
