"""
MCP Hub domain records.

Plain dataclasses shared by the vault, invoker, telemetry and stores.
Timestamps that cross the store boundary are epoch milliseconds.
"""
from __future__ import annotations
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Optional


class ToolStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    RATE_LIMITED = "rate_limited"


class ExecutionMode(str, Enum):
    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"


# ---------------------------------------------------------------------------
# Users & integrations
# ---------------------------------------------------------------------------

@dataclass
class User:
    id: str
    email: str | None = None


@dataclass
class Tool:
    name: str
    description: str = ""
    schema: dict[str, Any] = field(default_factory=dict)


@dataclass
class Resource:
    uri_template: str
    description: str = ""


@dataclass
class IntegrationDescriptor:
    """A third-party integration reachable through the tool-call interface."""
    id: str
    slug: str
    function_path: str
    name: str = ""
    tools: list[Tool] = field(default_factory=list)
    resources: list[Resource] = field(default_factory=list)


@dataclass
class UserIntegrationConnection:
    """A user's enablement of one integration, with its encrypted token."""
    user_id: str
    integration_id: str
    enabled: bool = True
    oauth_token_encrypted: str | None = None
    token_issued_at: int | None = None  # epoch ms
    config: dict[str, Any] | None = None


@dataclass(frozen=True)
class ConnectionPatch:
    """Fields replaced together when a connection is (re-)enabled."""
    oauth_token_encrypted: str | None = None
    token_issued_at: int | None = None
    config: dict[str, Any] | None = None


@dataclass
class OAuthToken:
    """Provider token response. Replaced wholesale on refresh."""
    access_token: str
    token_type: str = "Bearer"
    expires_in: int | None = None
    refresh_token: str | None = None
    scope: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    _FIELDS = ("access_token", "token_type", "expires_in", "refresh_token", "scope")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OAuthToken":
        if not data.get("access_token"):
            raise ValueError("token response has no access_token")
        expires_in = data.get("expires_in")
        return cls(
            access_token=data["access_token"],
            token_type=data.get("token_type") or "Bearer",
            expires_in=int(expires_in) if expires_in is not None else None,
            refresh_token=data.get("refresh_token"),
            scope=data.get("scope"),
            extra={k: v for k, v in data.items() if k not in cls._FIELDS},
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"access_token": self.access_token, "token_type": self.token_type}
        if self.expires_in is not None:
            data["expires_in"] = self.expires_in
        if self.refresh_token is not None:
            data["refresh_token"] = self.refresh_token
        if self.scope is not None:
            data["scope"] = self.scope
        data.update(self.extra)
        return data


# ---------------------------------------------------------------------------
# Invocation outcome & telemetry
# ---------------------------------------------------------------------------

@dataclass
class ToolResult:
    """Successful integration call. The body is passed through untouched."""
    integration_slug: str
    tool_name: str
    data: Any = None
    status: ToolStatus = ToolStatus.SUCCESS
    latency_ms: float = 0.0
    # Raw body as received; set when the integration did not answer with JSON
    raw_body: Optional[bytes] = None
    content_type: Optional[str] = None


@dataclass
class UsageEntry:
    user_id: str
    integration_id: str
    tool_name: str
    latency_ms: int
    status: str  # "success" | "error"


@dataclass
class AnalyticsRecord:
    """Anonymous per-attempt record. Never carries user id or API key."""
    session_hash: str
    tool_name: str
    integration_slug: str
    timestamp: int  # epoch ms
    latency_ms: int
    status: ToolStatus
    execution_mode: ExecutionMode
    is_retry: bool = False
    retry_count: int = 0
    session_call_index: int = 1
    error_category: str | None = None
    input_token_estimate: int = 0
    output_token_estimate: int = 0
    batch_id: str | None = None
    batch_size: int | None = None
    parameter_schema: Any = None
    param_depth: int = 0
    param_count: int = 0
    array_max_length: int = 0
    geo_region: str | None = None
    hit_rate_limit: bool = False
    rate_limit_type: str | None = None
    model_id: str | None = None
    client_id: str | None = None
    client_version: str | None = None
    day_of_week: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        data["execution_mode"] = self.execution_mode.value
        return data
