"""API-key authentication.

Keys are never stored or looked up in clear text: the directory is queried
with the SHA-256 hex digest of the presented key.
"""
from __future__ import annotations
from typing import Optional
import hashlib
import secrets

from hub.errors import AuthenticationError
from hub.models import User
from hub.store.ports import UserDirectory

API_KEY_PREFIX = "mcp_sk_"
API_KEY_HEADER = "x-api-key"


def generate_api_key() -> str:
    return f"{API_KEY_PREFIX}{secrets.token_hex(32)}"


def hash_api_key(api_key: str) -> str:
    return hashlib.sha256(api_key.encode("utf-8")).hexdigest()


async def resolve_user(users: UserDirectory, api_key: Optional[str]) -> Optional[User]:
    """Owner of the key, or None when missing or unknown."""
    if not api_key:
        return None
    return await users.get_user_by_api_key(hash_api_key(api_key))


async def authenticate(users: UserDirectory, api_key: Optional[str]) -> User:
    if not api_key:
        raise AuthenticationError("Missing API key")
    user = await users.get_user_by_api_key(hash_api_key(api_key))
    if user is None:
        raise AuthenticationError("Invalid API key")
    return user
