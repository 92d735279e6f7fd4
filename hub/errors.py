"""
MCP Hub error taxonomy.

Every failure the gateway reports to a client is a GatewayError subclass.
Each carries the HTTP status used by the REST gateway and the JSON-RPC
error code used by the /mcp endpoint, so front ends never re-classify.
"""
from __future__ import annotations


class GatewayError(Exception):
    """Base class for client-visible gateway failures."""

    status_code: int = 500
    jsonrpc_code: int = -32603

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AuthenticationError(GatewayError):
    """Missing or unknown API key."""

    status_code = 401
    jsonrpc_code = -32000


class InvalidToolName(GatewayError):
    status_code = 400
    jsonrpc_code = -32602

    def __init__(self, name: str):
        super().__init__(
            f"Invalid tool name format: {name!r}. Expected 'integration/tool'"
        )
        self.name = name


class InvalidParams(GatewayError):
    status_code = 400
    jsonrpc_code = -32602


class IntegrationDisabled(GatewayError):
    status_code = 403
    jsonrpc_code = -32000

    def __init__(self, slug: str):
        super().__init__(f"Integration '{slug}' is not enabled")
        self.slug = slug


class IntegrationNotFound(GatewayError):
    status_code = 404
    jsonrpc_code = -32000

    def __init__(self, slug: str):
        super().__init__(f"Integration '{slug}' not found")
        self.slug = slug


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------

class CredentialError(GatewayError):
    """OAuth credential could not be produced.

    Messages name the provider only. Token material never reaches them.
    """

    status_code = 401
    jsonrpc_code = -32000

    def __init__(self, provider: str, reason: str):
        super().__init__(f"OAuth token error ({provider}): {reason}")
        self.provider = provider
        self.reason = reason


class NoRefreshToken(CredentialError):
    def __init__(self, provider: str):
        super().__init__(provider, "token expired and no refresh token available")


class UnsupportedProvider(CredentialError):
    def __init__(self, provider: str):
        super().__init__(provider, "no OAuth provider configured")


class RefreshFailed(CredentialError):
    pass


# ---------------------------------------------------------------------------
# Upstream
# ---------------------------------------------------------------------------

class UpstreamError(GatewayError):
    """Non-2xx answer (or transport failure) from an integration endpoint."""

    jsonrpc_code = -32603

    def __init__(self, status_code: int, body_text: str):
        super().__init__(body_text or f"Integration returned HTTP {status_code}")
        self.status_code = status_code
        self.body_text = body_text


class RateLimited(UpstreamError):
    def __init__(self, body_text: str, rate_limit_type: str = "per_minute"):
        super().__init__(429, body_text)
        self.rate_limit_type = rate_limit_type
