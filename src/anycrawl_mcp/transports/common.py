"""Helpers shared by the HTTP transport bindings."""

from __future__ import annotations

import json
import logging
from typing import Any

from mcp.types import PARSE_ERROR
from starlette.requests import Request
from starlette.responses import JSONResponse, PlainTextResponse

from anycrawl_mcp.protocol import error_response
from anycrawl_mcp.sessions.models import Session, SessionState
from anycrawl_mcp.sessions.registry import INVALID_SESSION_MESSAGE, SessionRegistry

logger = logging.getLogger(__name__)

SESSION_HEADER = "Mcp-Session-Id"

# Transport-level JSON-RPC error code used for bad requests
BAD_REQUEST_CODE = -32000


class MalformedBodyError(ValueError):
    """The request body is not valid JSON."""


async def read_json(request: Request) -> Any:
    """Decode a request body as JSON.

    Raises:
        MalformedBodyError: If the body is empty or not valid JSON
    """
    body = await request.body()
    try:
        return json.loads(body)
    except (ValueError, UnicodeDecodeError) as e:
        raise MalformedBodyError(str(e)) from e


def parse_error_response() -> JSONResponse:
    return JSONResponse(error_response(None, PARSE_ERROR, "Parse error: invalid JSON"), status_code=400)


def bad_request_response(message: str = INVALID_SESSION_MESSAGE) -> JSONResponse:
    """400 with a JSON-RPC error body, for requests rejected before the engine."""
    return JSONResponse(error_response(None, BAD_REQUEST_CODE, message), status_code=400)


def plain_bad_request(message: str) -> PlainTextResponse:
    return PlainTextResponse(message, status_code=400)


async def process(session: Session, payload: Any) -> dict[str, Any] | list[dict[str, Any]] | None:
    """Run a payload through the session's engine, one request at a time per session."""
    async with session.lock:
        return await session.engine.handle_message(payload)


def to_event(message: Any) -> dict[str, str]:
    """Frame a JSON-RPC payload as a server-sent ``message`` event."""
    return {"event": "message", "data": json.dumps(message)}


def release_stream(
    registry: SessionRegistry,
    session: Session,
    generation: int,
    delayed_cleanup: bool,
) -> None:
    """Report that a session's event stream went away.

    Args:
        registry: Registry owning the session
        session: Session whose stream closed
        generation: Generation returned by ``attach_stream`` for that stream
        delayed_cleanup: Keep the session for the grace period instead of
            purging it now
    """
    if not session.detach_stream(generation) or session.state is not SessionState.ACTIVE:
        return

    logger.debug(f"Event stream closed for {session.kind.value} session {session.session_token}")
    if delayed_cleanup:
        registry.mark_closed(session.tenant_id, session.session_token, session.kind)
    else:
        registry.close(session.tenant_id, session.session_token, session.kind)
