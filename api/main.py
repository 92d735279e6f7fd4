"""MCP Hub API — FastAPI entry point.

Registers middleware, routers, error handling and lifecycle hooks. The two
protocol dialects live side by side:
- /gateway: REST, one endpoint per MCP operation
- /mcp: JSON-RPC 2.0
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from api.deps import Services, build_sql_services
from api.middleware import RequestContextMiddleware
from api.routes.gateway import router as gateway_router
from api.routes.mcp import router as mcp_router
from api.routes.oauth import router as oauth_router
from hub.config import GatewayConfig
from hub.errors import GatewayError, UpstreamError
from hub.mcp.jsonrpc import PROTOCOL_VERSION, SERVER_VERSION
from hub.observability.logging_setup import configure_logging
from hub.observability.otel_setup import setup_otel

logger = logging.getLogger(__name__)


async def gateway_error_handler(request: Request, exc: GatewayError) -> PlainTextResponse:
    """Plain-text body with the error's own status; upstream errors pass their body through."""
    if isinstance(exc, UpstreamError):
        logger.warning("%s %s: integration answered HTTP %d", request.method, request.url.path, exc.status_code)
    return PlainTextResponse(exc.message, status_code=exc.status_code)


def create_app(
    config: Optional[GatewayConfig] = None,
    services: Optional[Services] = None,
) -> FastAPI:
    """Build the app. A pre-built ``services`` container is used as-is and
    left open at shutdown; otherwise the lifespan owns a SQL-backed one."""
    config = config or (services.config if services else GatewayConfig.from_env())
    configure_logging(config.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = getattr(app.state, "services", None) is None
        if owned:
            app.state.services = await build_sql_services(config)
        setup_otel(endpoint=config.otlp_endpoint)
        logger.info("MCP Hub started (protocol %s)", PROTOCOL_VERSION)
        yield
        logger.info("MCP Hub shutting down")
        if owned:
            await app.state.services.aclose()
            app.state.services = None

    app = FastAPI(
        title="MCP Hub",
        description="Authenticated gateway to third-party integration tools over REST and JSON-RPC",
        version=SERVER_VERSION,
        lifespan=lifespan,
    )
    if services is not None:
        app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestContextMiddleware)
    app.add_exception_handler(GatewayError, gateway_error_handler)

    app.include_router(gateway_router, prefix="/gateway", tags=["Gateway"])
    app.include_router(mcp_router, prefix="/mcp", tags=["MCP"])
    app.include_router(oauth_router, prefix="/api/oauth", tags=["OAuth"])

    @app.get("/health")
    async def health():
        return {"status": "healthy", "version": SERVER_VERSION}

    return app


app = create_app()
