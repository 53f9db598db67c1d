"""MCP server for the AnyCrawl API: mode selection and app assembly."""

from __future__ import annotations

import contextlib
import logging
from collections.abc import AsyncIterator

import anyio
import uvicorn
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.routing import Route

from anycrawl_mcp.admin import routes as admin_routes
from anycrawl_mcp.config import ServerConfig
from anycrawl_mcp.protocol import EngineFactory, ProtocolEngine
from anycrawl_mcp.providers import AnyCrawlClient
from anycrawl_mcp.sessions import DEFAULT_TENANT, SessionRegistry
from anycrawl_mcp.tools import ToolInvoker
from anycrawl_mcp.transports import SSEBinding, StatelessHTTPBinding, StreamableHTTPBinding, TenantRouter
from anycrawl_mcp.transports.common import SESSION_HEADER
from anycrawl_mcp.transports.stdio import run_stdio

logger = logging.getLogger(__name__)

MCP_METHODS = ["GET", "POST", "DELETE"]


def build_engine_factory(config: ServerConfig, per_tenant: bool = False) -> EngineFactory:
    """Return a factory building one engine and one remote client per call.

    Args:
        config: Server configuration
        per_tenant: Use the tenant id as the API key instead of the configured key
    """

    def build(tenant_id: str, stateless: bool = False) -> ProtocolEngine:
        api_key = tenant_id if per_tenant else config.api_key
        client = AnyCrawlClient(api_key, base_url=config.base_url, timeout=config.request_timeout)
        return ProtocolEngine(ToolInvoker(client), stateless=stateless)

    return build


def build_app(
    config: ServerConfig,
    engine_factory: EngineFactory | None = None,
    registry: SessionRegistry | None = None,
) -> Starlette:
    """Assemble the Starlette app for an HTTP mode.

    Args:
        config: Server configuration; ``mode`` selects the binding
        engine_factory: Engine factory override (default: remote client per engine)
        registry: Session registry override for stateful modes

    Returns:
        Starlette application whose lifespan runs the registry cleanup sweep

    Raises:
        ValueError: If the mode does not serve HTTP
    """
    mode = config.mode
    if engine_factory is None:
        engine_factory = build_engine_factory(config, per_tenant=mode == "COMBINED")

    routes: list[Route] = list(admin_routes)
    if mode == "CLOUD_SERVICE":
        registry = None
        stateless = StatelessHTTPBinding(engine_factory)
        routes.append(Route("/mcp", stateless.handle, methods=MCP_METHODS))
    else:
        if registry is None:
            registry = SessionRegistry(
                grace_period=config.session_grace_seconds,
                cleanup_interval=config.cleanup_interval_seconds,
            )
        if mode == "HTTP_STREAMABLE_SERVER":
            streamable = StreamableHTTPBinding(registry, engine_factory)
            routes.append(Route("/mcp", streamable.handle, methods=MCP_METHODS))
        elif mode == "SSE_SERVER":
            sse = SSEBinding(registry, engine_factory)
            routes.append(Route("/sse", sse.handle_stream, methods=["GET"]))
            routes.append(Route("/messages", sse.handle_message, methods=["POST"]))
        elif mode == "COMBINED":
            routes.extend(TenantRouter(registry, engine_factory).routes())
        else:
            raise ValueError(f"Mode {mode} does not serve HTTP")

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        if registry is None:
            yield
        else:
            async with registry:
                yield

    middleware = [
        Middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_methods=["*"],
            allow_headers=["*"],
            expose_headers=[SESSION_HEADER],
        )
    ]

    app = Starlette(routes=routes, middleware=middleware, lifespan=lifespan)
    app.state.mode = mode
    app.state.registry = registry
    return app


def _uvicorn_log_level(level: str) -> str:
    level = level.lower()
    if level == "warn":
        return "warning"
    if level not in ("critical", "error", "warning", "info", "debug", "trace"):
        return "info"
    return level


def run_server(config: ServerConfig) -> None:
    """Run the MCP server in the configured mode.

    Args:
        config: Validated server configuration
    """
    if config.mode == "STDIO":
        engine = build_engine_factory(config)(DEFAULT_TENANT, False)
        anyio.run(run_stdio, engine)
        return

    app = build_app(config)
    logger.info(f"AnyCrawl MCP server ({config.mode}) listening on http://{config.host}:{config.port}")
    uvicorn.run(app, host=config.host, port=config.port, log_level=_uvicorn_log_level(config.log_level))
