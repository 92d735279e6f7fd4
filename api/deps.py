"""Service container and FastAPI dependencies.

The container is built once per process in the app lifespan and stored on
``app.state.services``. Route handlers reach it through ``get_services``;
tests construct their own container around an InMemoryStore and hand it
to ``create_app``.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncEngine

from hub.auth import API_KEY_HEADER, authenticate
from hub.config import GatewayConfig
from hub.integrations.credential_vault import CredentialVault, TokenCipher
from hub.integrations.invoker import IntegrationInvoker
from hub.integrations.providers import ProviderRegistry
from hub.mcp.jsonrpc import McpDispatcher
from hub.models import User
from hub.store.database import create_engine, create_session_factory, init_db
from hub.store.sql import SqlStore
from hub.telemetry.detection import CallPatterns, WindowedCache
from hub.telemetry.emitter import TelemetryEmitter

logger = logging.getLogger(__name__)

OAUTH_STATE_TTL_SECONDS = 600


@dataclass
class Services:
    config: GatewayConfig
    store: Any  # implements every port in hub.store.ports
    http_client: httpx.AsyncClient
    vault: CredentialVault
    telemetry: TelemetryEmitter
    invoker: IntegrationInvoker
    dispatcher: McpDispatcher
    oauth_states: WindowedCache[tuple[str, str]]
    engine: Optional[AsyncEngine] = None

    @classmethod
    def build(
        cls,
        config: GatewayConfig,
        store: Any,
        http_client: Optional[httpx.AsyncClient] = None,
        providers: Optional[ProviderRegistry] = None,
        patterns: Optional[CallPatterns] = None,
        engine: Optional[AsyncEngine] = None,
    ) -> "Services":
        """Wire the gateway around a store that implements every port."""
        http_client = http_client or httpx.AsyncClient()
        providers = providers if providers is not None else ProviderRegistry.from_env(config.app_url)
        patterns = patterns or CallPatterns.create(
            coalesce_window_ms=config.telemetry.coalesce_window_ms,
            retry_window_seconds=config.telemetry.retry_window_seconds,
            max_entries=config.telemetry.detector_max_entries,
        )

        vault = CredentialVault(TokenCipher(config.encryption_key), providers, store, http_client)
        telemetry = TelemetryEmitter(usage_log=store, analytics=store)
        invoker = IntegrationInvoker(
            catalog=store,
            connections=store,
            vault=vault,
            http_client=http_client,
            telemetry=telemetry,
            patterns=patterns,
            base_url=config.upstream.base_url,
            timeout=config.upstream.timeout_seconds,
            telemetry_salt=config.telemetry.salt,
            geo_header=config.telemetry.geo_header,
        )
        return cls(
            config=config,
            store=store,
            http_client=http_client,
            vault=vault,
            telemetry=telemetry,
            invoker=invoker,
            dispatcher=McpDispatcher(invoker, store),
            oauth_states=WindowedCache(OAUTH_STATE_TTL_SECONDS),
            engine=engine,
        )

    async def aclose(self) -> None:
        """Join pending telemetry, then release the HTTP pool and the engine."""
        await self.telemetry.aclose()
        await self.http_client.aclose()
        if self.engine is not None:
            await self.engine.dispose()


async def build_sql_services(config: GatewayConfig) -> Services:
    engine = create_engine(config.database_url)
    await init_db(engine)
    store = SqlStore(create_session_factory(engine))
    logger.info("Connected store to %s", engine.url.render_as_string(hide_password=True))
    return Services.build(config, store, engine=engine)


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

def get_services(request: Request) -> Services:
    return request.app.state.services


async def require_user(
    request: Request,
    services: Services = Depends(get_services),
) -> User:
    """Resolve the X-Api-Key header to its owner; AuthenticationError → 401."""
    return await authenticate(services.store, request.headers.get(API_KEY_HEADER))
