"""
MCP Hub OAuth2 provider registry.

One small config struct per provider, registered by integration slug:
- Authorization URL generation with CSRF state
- Authorization code exchange
- Refresh-token grant
Client credentials come from the environment; only the provider's public
endpoint URLs are constants here.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Mapping
from urllib.parse import urlencode
import logging
import os
import secrets

import httpx

from hub.errors import RefreshFailed, UnsupportedProvider
from hub.models import OAuthToken

logger = logging.getLogger(__name__)

TOKEN_REQUEST_TIMEOUT = 15.0


@dataclass(frozen=True)
class OAuthProviderConfig:
    """OAuth2 provider configuration."""
    provider_name: str
    client_id: str
    client_secret: str
    authorization_url: str
    token_url: str
    redirect_uri: str
    scopes: tuple[str, ...] = ()

    def authorization_url_for(self, state: str) -> str:
        """Authorization code flow URL for this provider."""
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "scope": " ".join(self.scopes),
            "state": state,
            "response_type": "code",
        }
        return f"{self.authorization_url}?{urlencode(params)}"

    async def exchange_code(self, code: str, client: httpx.AsyncClient) -> OAuthToken:
        """Exchange an authorization code for a token."""
        return await self._token_request(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.redirect_uri,
            },
            client,
            action="code exchange",
        )

    async def refresh(self, refresh_token: str, client: httpx.AsyncClient) -> OAuthToken:
        """Run the refresh-token grant. Returns a complete new token."""
        token = await self._token_request(
            {"grant_type": "refresh_token", "refresh_token": refresh_token},
            client,
            action="refresh",
        )
        if token.refresh_token is None:
            # Some providers rotate refresh tokens, others keep the old one valid.
            token = OAuthToken.from_dict({**token.to_dict(), "refresh_token": refresh_token})
        return token

    async def _token_request(
        self,
        grant: dict[str, str],
        client: httpx.AsyncClient,
        action: str,
    ) -> OAuthToken:
        data = {"client_id": self.client_id, "client_secret": self.client_secret, **grant}
        try:
            resp = await client.post(
                self.token_url,
                data=data,
                headers={"Accept": "application/json"},
                timeout=TOKEN_REQUEST_TIMEOUT,
            )
        except httpx.HTTPError as exc:
            logger.warning("OAuth %s transport failure for %s: %s", action, self.provider_name, type(exc).__name__)
            raise RefreshFailed(self.provider_name, f"token {action} request failed") from exc

        if resp.status_code >= 400:
            logger.warning("OAuth %s rejected by %s with HTTP %d", action, self.provider_name, resp.status_code)
            raise RefreshFailed(self.provider_name, f"token {action} failed with HTTP {resp.status_code}")

        try:
            payload = resp.json()
        except ValueError as exc:
            raise RefreshFailed(self.provider_name, f"token {action} returned a non-JSON body") from exc

        # GitHub answers 200 with an error object.
        if isinstance(payload, dict) and payload.get("error"):
            raise RefreshFailed(self.provider_name, f"token {action} failed: {payload['error']}")
        try:
            return OAuthToken.from_dict(payload)
        except (TypeError, ValueError, AttributeError) as exc:
            raise RefreshFailed(self.provider_name, f"token {action} returned no access token") from exc


def generate_state() -> str:
    """Random CSRF state for the authorization redirect."""
    return secrets.token_hex(32)


# ---------------------------------------------------------------------------
# Provider endpoints
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ProviderEndpoints:
    authorization_url: str
    token_url: str
    scopes: tuple[str, ...] = ()


KNOWN_PROVIDERS: dict[str, ProviderEndpoints] = {
    "github": ProviderEndpoints(
        authorization_url="https://github.com/login/oauth/authorize",
        token_url="https://github.com/login/oauth/access_token",
        scopes=("repo", "read:user", "user:email"),
    ),
    "linear": ProviderEndpoints(
        authorization_url="https://linear.app/oauth/authorize",
        token_url="https://api.linear.app/oauth/token",
        scopes=("read", "write"),
    ),
    "notion": ProviderEndpoints(
        authorization_url="https://api.notion.com/v1/oauth/authorize",
        token_url="https://api.notion.com/v1/oauth/token",
    ),
    "slack": ProviderEndpoints(
        authorization_url="https://slack.com/oauth/v2/authorize",
        token_url="https://slack.com/api/oauth.v2.access",
        scopes=(
            "channels:read",
            "channels:write",
            "chat:write",
            "users:read",
            "search:read",
            "reactions:write",
            "groups:read",
            "groups:write",
        ),
    ),
}


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

@dataclass
class ProviderRegistry:
    """Slug → provider config. Open to extension via register()."""
    _providers: dict[str, OAuthProviderConfig] = field(default_factory=dict)

    def register(self, slug: str, config: OAuthProviderConfig) -> None:
        self._providers[slug] = config

    def require(self, slug: str) -> OAuthProviderConfig:
        config = self._providers.get(slug)
        if config is None:
            raise UnsupportedProvider(slug)
        return config

    @property
    def slugs(self) -> list[str]:
        return sorted(self._providers)

    @classmethod
    def from_env(
        cls,
        app_url: str,
        environ: Mapping[str, str] | None = None,
    ) -> "ProviderRegistry":
        """Register every known provider whose client credentials are set.

        Reads ``<SLUG>_CLIENT_ID``, ``<SLUG>_CLIENT_SECRET`` and optionally
        ``<SLUG>_REDIRECT_URI``.
        """
        env: Mapping[str, Any] = os.environ if environ is None else environ
        registry = cls()
        for slug, endpoints in KNOWN_PROVIDERS.items():
            prefix = slug.upper()
            client_id = env.get(f"{prefix}_CLIENT_ID")
            client_secret = env.get(f"{prefix}_CLIENT_SECRET")
            if not client_id or not client_secret:
                logger.debug("OAuth provider %s not configured", slug)
                continue
            registry.register(
                slug,
                OAuthProviderConfig(
                    provider_name=slug,
                    client_id=client_id,
                    client_secret=client_secret,
                    authorization_url=endpoints.authorization_url,
                    token_url=endpoints.token_url,
                    redirect_uri=env.get(f"{prefix}_REDIRECT_URI")
                    or f"{app_url.rstrip('/')}/api/oauth/{slug}/callback",
                    scopes=endpoints.scopes,
                ),
            )
        return registry
