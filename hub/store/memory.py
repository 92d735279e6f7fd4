"""In-memory store. Implements every collaborator port; for tests and local dev."""
from __future__ import annotations
from dataclasses import replace
from typing import Optional
import asyncio

from hub.auth import hash_api_key
from hub.models import (
    AnalyticsRecord,
    ConnectionPatch,
    IntegrationDescriptor,
    UsageEntry,
    User,
    UserIntegrationConnection,
)


class InMemoryStore:
    """Dict-backed users, integrations, connections, usage logs and analytics."""

    def __init__(self):
        self._users_by_key_hash: dict[str, User] = {}
        self._integrations: dict[str, IntegrationDescriptor] = {}  # slug -> descriptor
        self._connections: dict[tuple[str, str], UserIntegrationConnection] = {}  # (user, integration id)
        self._lock = asyncio.Lock()
        self.usage_logs: list[UsageEntry] = []
        self.analytics: list[AnalyticsRecord] = []

    # --- Seeding ---

    def add_user(self, user: User, api_key: str) -> None:
        self._users_by_key_hash[hash_api_key(api_key)] = user

    def add_integration(self, integration: IntegrationDescriptor) -> None:
        self._integrations[integration.slug] = integration

    def add_connection(self, connection: UserIntegrationConnection) -> None:
        self._connections[(connection.user_id, connection.integration_id)] = connection

    # --- UserDirectory ---

    async def get_user_by_api_key(self, key_hash: str) -> Optional[User]:
        return self._users_by_key_hash.get(key_hash)

    # --- IntegrationCatalog ---

    async def get_by_slug(self, slug: str) -> Optional[IntegrationDescriptor]:
        return self._integrations.get(slug)

    async def list_user_integrations(self, user_id: str) -> list[IntegrationDescriptor]:
        enabled_ids = {
            integration_id
            for (uid, integration_id), conn in self._connections.items()
            if uid == user_id and conn.enabled
        }
        return [i for i in self._integrations.values() if i.id in enabled_ids]

    # --- ConnectionStore ---

    async def get_user_connection(
        self, user_id: str, slug: str
    ) -> Optional[UserIntegrationConnection]:
        integration = self._integrations.get(slug)
        if integration is None:
            return None
        conn = self._connections.get((user_id, integration.id))
        # Copies, so callers never mutate stored state in place.
        return replace(conn) if conn else None

    async def enable_integration(
        self, user_id: str, integration_id: str, patch: ConnectionPatch
    ) -> None:
        async with self._lock:
            key = (user_id, integration_id)
            existing = self._connections.get(key)
            self._connections[key] = UserIntegrationConnection(
                user_id=user_id,
                integration_id=integration_id,
                enabled=True,
                oauth_token_encrypted=patch.oauth_token_encrypted,
                token_issued_at=patch.token_issued_at,
                config=patch.config if patch.config is not None else (existing.config if existing else None),
            )

    async def disable_integration(self, user_id: str, integration_id: str) -> None:
        conn = self._connections.get((user_id, integration_id))
        if conn:
            self._connections[(user_id, integration_id)] = replace(conn, enabled=False)

    # --- UsageLog / AnalyticsSink ---

    async def log(self, entry: UsageEntry) -> None:
        self.usage_logs.append(entry)

    async def log_tool_call(self, record: AnalyticsRecord) -> None:
        self.analytics.append(record)
