"""
MCP Hub Credential Vault.

Owns the OAuth token lifecycle for user connections:
- Symmetric encryption at rest (Fernet: AES-CBC + HMAC, random IV per call)
- Expiry check with a 5-minute safety buffer
- Refresh-and-persist as one unit: the stored token is replaced wholesale
  or not at all, and an unsaved refreshed token is never handed out
"""
from __future__ import annotations
from typing import Callable, Optional
import base64
import binascii
import json
import logging
import time

import httpx
from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from hub.errors import CredentialError, NoRefreshToken, RefreshFailed
from hub.integrations.providers import ProviderRegistry
from hub.models import ConnectionPatch, OAuthToken, UserIntegrationConnection
from hub.store.ports import ConnectionStore

logger = logging.getLogger(__name__)

EXPIRY_BUFFER_MS = 5 * 60 * 1000
KDF_SALT = b"mcp-hub-token-vault"


def _now_ms() -> int:
    return int(time.time() * 1000)


def is_expired(token: OAuthToken, issued_at_ms: int, now_ms: Optional[int] = None) -> bool:
    """True once the token is within 5 minutes of expiry. No expires_in → never."""
    if not token.expires_in:
        return False
    now = _now_ms() if now_ms is None else now_ms
    expires_at = issued_at_ms + token.expires_in * 1000
    return now >= expires_at - EXPIRY_BUFFER_MS


# ---------------------------------------------------------------------------
# Encryption
# ---------------------------------------------------------------------------

class TokenCipher:
    """Encrypts OAuthToken JSON. Same plaintext never yields the same ciphertext."""

    def __init__(self, key: str):
        self._fernet = Fernet(self._derive_key(key))

    @staticmethod
    def _derive_key(key: str) -> bytes:
        raw = key.encode("utf-8")
        try:
            if len(base64.urlsafe_b64decode(raw)) == 32:
                return raw
        except (binascii.Error, ValueError):
            pass
        # Passphrase: stretch into a Fernet key.
        kdf = Scrypt(salt=KDF_SALT, length=32, n=2**14, r=8, p=1)
        return base64.urlsafe_b64encode(kdf.derive(raw))

    def encrypt_token(self, token: OAuthToken) -> str:
        plaintext = json.dumps(token.to_dict(), separators=(",", ":"))
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("ascii")

    def decrypt_token(self, ciphertext: str, provider: str = "unknown") -> OAuthToken:
        try:
            plaintext = self._fernet.decrypt(ciphertext.encode("ascii"))
            return OAuthToken.from_dict(json.loads(plaintext))
        except (InvalidToken, UnicodeError, ValueError, TypeError) as exc:
            raise CredentialError(provider, "stored token could not be decrypted") from exc


# ---------------------------------------------------------------------------
# Vault
# ---------------------------------------------------------------------------

class CredentialVault:
    """Hands out valid access tokens, refreshing and persisting when expired."""

    def __init__(
        self,
        cipher: TokenCipher,
        providers: ProviderRegistry,
        connections: ConnectionStore,
        http_client: httpx.AsyncClient,
        clock: Callable[[], float] = time.time,
    ):
        self.cipher = cipher
        self.providers = providers
        self._connections = connections
        self._http = http_client
        self._clock = clock

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    async def get_valid_access_token(
        self,
        connection: UserIntegrationConnection,
        slug: str,
    ) -> str:
        if not connection.oauth_token_encrypted:
            raise CredentialError(slug, "no OAuth token stored for this integration")

        token = self.cipher.decrypt_token(connection.oauth_token_encrypted, provider=slug)
        now = self._now_ms()
        issued_at = connection.token_issued_at or now

        if not is_expired(token, issued_at, now):
            return token.access_token

        if not token.refresh_token:
            raise NoRefreshToken(slug)

        provider = self.providers.require(slug)
        new_token = await provider.refresh(token.refresh_token, self._http)
        await self._persist(connection, slug, new_token)
        logger.info("Refreshed OAuth token for %s", slug)
        return new_token.access_token

    async def _persist(
        self,
        connection: UserIntegrationConnection,
        slug: str,
        token: OAuthToken,
    ) -> None:
        patch = ConnectionPatch(
            oauth_token_encrypted=self.cipher.encrypt_token(token),
            token_issued_at=self._now_ms(),
        )
        try:
            await self._connections.enable_integration(
                connection.user_id, connection.integration_id, patch
            )
        except Exception as exc:
            logger.error("Persisting refreshed %s token failed: %s", slug, type(exc).__name__)
            raise RefreshFailed(slug, "refreshed token could not be persisted") from exc

    async def connect(
        self,
        user_id: str,
        integration_id: str,
        slug: str,
        code: str,
    ) -> OAuthToken:
        """Finish the authorization code flow: exchange, encrypt, enable."""
        provider = self.providers.require(slug)
        token = await provider.exchange_code(code, self._http)
        await self._connections.enable_integration(
            user_id,
            integration_id,
            ConnectionPatch(
                oauth_token_encrypted=self.cipher.encrypt_token(token),
                token_issued_at=self._now_ms(),
            ),
        )
        logger.info("Connected %s for user %s", slug, user_id)
        return token
