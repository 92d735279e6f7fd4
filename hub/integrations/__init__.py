"""
MCP Hub Integrations — calling third-party tools on a user's behalf.

Provides:
- namespace: ``integration/tool`` name resolution
- ProviderRegistry / OAuthProviderConfig: OAuth2 endpoints per provider
- CredentialVault / TokenCipher: encrypted tokens, expiry, refresh-and-persist
- IntegrationInvoker: the end-to-end tool call
- listing: tools, resources and prompts visible to a user
"""
from hub.integrations.credential_vault import (
    CredentialVault,
    TokenCipher,
    is_expired,
)
from hub.integrations.invoker import IntegrationInvoker
from hub.integrations.namespace import ToolName, qualify, resolve
from hub.integrations.providers import (
    KNOWN_PROVIDERS,
    OAuthProviderConfig,
    ProviderRegistry,
    generate_state,
)

__all__ = [
    # Namespace
    "ToolName",
    "qualify",
    "resolve",
    # OAuth
    "KNOWN_PROVIDERS",
    "OAuthProviderConfig",
    "ProviderRegistry",
    "generate_state",
    # Vault
    "CredentialVault",
    "TokenCipher",
    "is_expired",
    # Invocation
    "IntegrationInvoker",
]
