"""SQL-backed implementation of the gateway's collaborator ports."""

from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from hub.models import (
    AnalyticsRecord,
    ConnectionPatch,
    IntegrationDescriptor,
    Resource,
    Tool,
    UsageEntry,
    User,
    UserIntegrationConnection,
)
from hub.store.database import session_scope
from hub.store.tables import (
    AnonymousToolCallRow,
    IntegrationRow,
    UsageLogRow,
    UserIntegrationRow,
    UserRow,
)


def _descriptor(row: IntegrationRow) -> IntegrationDescriptor:
    return IntegrationDescriptor(
        id=row.id,
        slug=row.slug,
        name=row.name,
        function_path=row.function_path,
        tools=[Tool(**t) for t in row.tools or []],
        resources=[Resource(**r) for r in row.resources or []],
    )


def _connection(row: UserIntegrationRow) -> UserIntegrationConnection:
    return UserIntegrationConnection(
        user_id=row.user_id,
        integration_id=row.integration_id,
        enabled=row.enabled,
        oauth_token_encrypted=row.oauth_token_encrypted,
        token_issued_at=row.token_issued_at,
        config=row.config,
    )


class SqlStore:
    """Users, catalog, connections, usage logs and analytics over SQLAlchemy.

    Each port call is its own transaction, so ``enable_integration`` replaces
    the token and its issue time together or not at all.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._sessions = session_factory

    # -- Users --

    async def get_user_by_api_key(self, key_hash: str) -> Optional[User]:
        async with session_scope(self._sessions) as session:
            result = await session.execute(select(UserRow).where(UserRow.api_key_hash == key_hash))
            row = result.scalar_one_or_none()
            return User(id=row.id, email=row.email) if row else None

    async def create_user(self, email: str | None, api_key_hash: str) -> User:
        async with session_scope(self._sessions) as session:
            row = UserRow(email=email, api_key_hash=api_key_hash)
            session.add(row)
            await session.flush()
            return User(id=row.id, email=row.email)

    # -- Catalog --

    async def create_integration(
        self,
        slug: str,
        function_path: str,
        name: str = "",
        tools: list[dict[str, Any]] | None = None,
        resources: list[dict[str, Any]] | None = None,
    ) -> IntegrationDescriptor:
        async with session_scope(self._sessions) as session:
            row = IntegrationRow(
                slug=slug,
                name=name,
                function_path=function_path,
                tools=tools or [],
                resources=resources or [],
            )
            session.add(row)
            await session.flush()
            return _descriptor(row)

    async def get_by_slug(self, slug: str) -> Optional[IntegrationDescriptor]:
        async with session_scope(self._sessions) as session:
            result = await session.execute(select(IntegrationRow).where(IntegrationRow.slug == slug))
            row = result.scalar_one_or_none()
            return _descriptor(row) if row else None

    async def list_user_integrations(self, user_id: str) -> list[IntegrationDescriptor]:
        stmt = (
            select(IntegrationRow)
            .join(UserIntegrationRow, UserIntegrationRow.integration_id == IntegrationRow.id)
            .where(UserIntegrationRow.user_id == user_id, UserIntegrationRow.enabled.is_(True))
            .order_by(IntegrationRow.slug)
        )
        async with session_scope(self._sessions) as session:
            result = await session.execute(stmt)
            return [_descriptor(row) for row in result.scalars().all()]

    # -- Connections --

    async def get_user_connection(
        self, user_id: str, slug: str
    ) -> Optional[UserIntegrationConnection]:
        stmt = (
            select(UserIntegrationRow)
            .join(IntegrationRow, UserIntegrationRow.integration_id == IntegrationRow.id)
            .where(UserIntegrationRow.user_id == user_id, IntegrationRow.slug == slug)
        )
        async with session_scope(self._sessions) as session:
            result = await session.execute(stmt)
            row = result.scalar_one_or_none()
            return _connection(row) if row else None

    async def enable_integration(
        self, user_id: str, integration_id: str, patch: ConnectionPatch
    ) -> None:
        async with session_scope(self._sessions) as session:
            result = await session.execute(
                select(UserIntegrationRow).where(
                    UserIntegrationRow.user_id == user_id,
                    UserIntegrationRow.integration_id == integration_id,
                )
            )
            row = result.scalar_one_or_none()
            if row is None:
                row = UserIntegrationRow(user_id=user_id, integration_id=integration_id)
                session.add(row)
            row.enabled = True
            row.oauth_token_encrypted = patch.oauth_token_encrypted
            row.token_issued_at = patch.token_issued_at
            if patch.config is not None:
                row.config = patch.config

    async def disable_integration(self, user_id: str, integration_id: str) -> None:
        async with session_scope(self._sessions) as session:
            result = await session.execute(
                select(UserIntegrationRow).where(
                    UserIntegrationRow.user_id == user_id,
                    UserIntegrationRow.integration_id == integration_id,
                )
            )
            row = result.scalar_one_or_none()
            if row is not None:
                row.enabled = False

    # -- Usage & analytics --

    async def log(self, entry: UsageEntry) -> None:
        async with session_scope(self._sessions) as session:
            session.add(
                UsageLogRow(
                    user_id=entry.user_id,
                    integration_id=entry.integration_id,
                    tool_name=entry.tool_name,
                    latency_ms=entry.latency_ms,
                    status=entry.status,
                )
            )

    async def log_tool_call(self, record: AnalyticsRecord) -> None:
        async with session_scope(self._sessions) as session:
            session.add(
                AnonymousToolCallRow(
                    session_hash=record.session_hash,
                    integration_slug=record.integration_slug,
                    tool_name=record.tool_name,
                    timestamp=record.timestamp,
                    latency_ms=record.latency_ms,
                    status=record.status.value,
                    error_category=record.error_category,
                    execution_mode=record.execution_mode.value,
                    payload=record.to_dict(),
                )
            )
