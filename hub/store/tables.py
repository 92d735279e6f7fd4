"""SQLAlchemy models for the gateway's persisted state.

Every table carries a string UUID primary key and created/updated audit
columns through ``RecordMixin``. JSON columns hold tool/resource listings,
connection config and the anonymized parameter shape of analytics rows.
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _uuid() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """Declarative base for all MCP Hub models."""
    pass


class RecordMixin:
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class UserRow(RecordMixin, Base):
    __tablename__ = "users"

    email: Mapped[str | None] = mapped_column(String(320))
    api_key_hash: Mapped[str | None] = mapped_column(String(64), unique=True, index=True)


class IntegrationRow(RecordMixin, Base):
    __tablename__ = "integrations"

    slug: Mapped[str] = mapped_column(String(64), unique=True, index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), default="")
    function_path: Mapped[str] = mapped_column(String(500), nullable=False)
    tools: Mapped[list] = mapped_column(JSON, default=list)
    resources: Mapped[list] = mapped_column(JSON, default=list)


class UserIntegrationRow(RecordMixin, Base):
    __tablename__ = "user_integrations"
    __table_args__ = (
        UniqueConstraint("user_id", "integration_id", name="uq_user_integration"),
    )

    user_id: Mapped[str] = mapped_column(ForeignKey("users.id"), index=True, nullable=False)
    integration_id: Mapped[str] = mapped_column(ForeignKey("integrations.id"), nullable=False)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    oauth_token_encrypted: Mapped[str | None] = mapped_column(Text)
    token_issued_at: Mapped[int | None] = mapped_column(BigInteger)  # epoch ms
    config: Mapped[dict | None] = mapped_column(JSON)


class UsageLogRow(RecordMixin, Base):
    __tablename__ = "usage_logs"

    user_id: Mapped[str] = mapped_column(String(36), index=True, nullable=False)
    integration_id: Mapped[str] = mapped_column(String(36), index=True, nullable=False)
    tool_name: Mapped[str] = mapped_column(String(200), nullable=False)
    latency_ms: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)


class AnonymousToolCallRow(RecordMixin, Base):
    """Analytics row. No user id column exists, by construction."""
    __tablename__ = "anonymous_tool_calls"

    session_hash: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    integration_slug: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    tool_name: Mapped[str] = mapped_column(String(300), index=True, nullable=False)
    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    latency_ms: Mapped[float] = mapped_column(Float, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    error_category: Mapped[str | None] = mapped_column(String(32))
    execution_mode: Mapped[str] = mapped_column(String(16), nullable=False)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)
