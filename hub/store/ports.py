"""Collaborator interfaces the gateway consumes.

The document store, identity provider and analytics sink live outside this
service. These protocols are the whole surface the gateway depends on;
``hub.store.memory`` and ``hub.store.sql`` provide implementations.
"""

from typing import Optional, Protocol

from hub.models import (
    AnalyticsRecord,
    ConnectionPatch,
    IntegrationDescriptor,
    UsageEntry,
    User,
    UserIntegrationConnection,
)


class UserDirectory(Protocol):
    async def get_user_by_api_key(self, key_hash: str) -> Optional[User]:
        """Resolve the SHA-256 hash of an API key to its owner."""
        ...


class IntegrationCatalog(Protocol):
    async def get_by_slug(self, slug: str) -> Optional[IntegrationDescriptor]: ...

    async def list_user_integrations(self, user_id: str) -> list[IntegrationDescriptor]:
        """Descriptors of every integration the user has enabled."""
        ...


class ConnectionStore(Protocol):
    async def get_user_connection(
        self, user_id: str, slug: str
    ) -> Optional[UserIntegrationConnection]: ...

    async def enable_integration(
        self, user_id: str, integration_id: str, patch: ConnectionPatch
    ) -> None:
        """Upsert the connection, enabled, replacing token fields atomically."""
        ...


class UsageLog(Protocol):
    async def log(self, entry: UsageEntry) -> None: ...


class AnalyticsSink(Protocol):
    async def log_tool_call(self, record: AnalyticsRecord) -> None: ...
