"""Admin API routes for health and stats."""

from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from anycrawl_mcp.admin.service import get_health, get_stats


async def health_check(request: Request) -> JSONResponse:
    """Health check endpoint for container orchestration.

    Returns:
        JSONResponse with status ok and the server mode
    """
    return JSONResponse(get_health(request.app.state.mode))


async def api_stats(request: Request) -> JSONResponse:
    """Get server statistics and metrics as JSON.

    Returns:
        JSONResponse with tool call metrics and session registry counts
    """
    state = request.app.state
    return JSONResponse(get_stats(state.mode, getattr(state, "registry", None)))


routes = [
    Route("/health", health_check, methods=["GET"]),
    Route("/api/stats", api_stats, methods=["GET"]),
]
