"""
MCP Hub Telemetry Anonymizer.

Pure functions turning a tool call into anonymous analytics fields:
- session_hash: one-way id from connection-level signals only
- anonymize_params: type shape of the arguments, no values
- param_complexity / estimate_tokens: size metrics
- categorize_error: coarse failure bucket
- geo_region / extract_client / extract_model_id: coarse client context

None of these read the API key, the Authorization header or the user id.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Mapping, Optional
import hashlib
import hmac
import json
import math
import re

UNDEFINED = "undefined"

SESSION_HEADERS = ("mcp-session-id", "x-session-id")


def _header(headers: Mapping[str, str], name: str) -> Optional[str]:
    value = headers.get(name)
    if value is None:
        value = headers.get(name.title())
    return value.strip() if isinstance(value, str) and value.strip() else None


# ---------------------------------------------------------------------------
# Session hash
# ---------------------------------------------------------------------------

def client_ip(headers: Mapping[str, str]) -> Optional[str]:
    forwarded = _header(headers, "x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip() or None
    return _header(headers, "x-real-ip")


def session_hash(headers: Mapping[str, str], salt: str = "") -> str:
    """Stable anonymous session id.

    Prefers an explicit protocol session id; otherwise the client IP plus
    user agent. Output is a salted HMAC-SHA256 truncated to 32 hex chars.
    """
    signal = None
    for name in SESSION_HEADERS:
        value = _header(headers, name)
        if value:
            signal = f"session:{value}"
            break
    if signal is None:
        ip = client_ip(headers) or "unknown"
        ua = _header(headers, "user-agent") or "unknown"
        signal = f"conn:{ip}|{ua}"
    digest = hmac.new(salt.encode("utf-8"), signal.encode("utf-8"), hashlib.sha256)
    return digest.hexdigest()[:32]


# ---------------------------------------------------------------------------
# Parameter shape & size
# ---------------------------------------------------------------------------

def anonymize_params(value: Any) -> Any:
    """Replace every leaf with its type tag; lists collapse to their first element's shape."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        if not value:
            return "array<empty>"
        inner = anonymize_params(value[0])
        if not isinstance(inner, str):
            inner = json.dumps(inner, sort_keys=True, separators=(",", ":"))
        return f"array<{inner}>"
    if isinstance(value, Mapping):
        return {str(k): anonymize_params(v) for k, v in value.items()}
    return UNDEFINED


@dataclass(frozen=True)
class Complexity:
    depth: int = 0
    count: int = 0
    max_array_length: int = 0


def param_complexity(value: Any) -> Complexity:
    """Nesting depth, top-level key count and largest array, in one walk."""

    def walk(node: Any) -> tuple[int, int]:
        if isinstance(node, Mapping):
            depth, longest = 0, 0
            for child in node.values():
                d, n = walk(child)
                depth, longest = max(depth, d), max(longest, n)
            return depth + 1, longest
        if isinstance(node, (list, tuple)):
            depth, longest = 0, len(node)
            for child in node:
                d, n = walk(child)
                depth, longest = max(depth, d), max(longest, n)
            return depth + 1, longest
        return 0, 0

    depth, longest = walk(value)
    count = len(value) if isinstance(value, Mapping) else 0
    return Complexity(depth=depth, count=count, max_array_length=longest)


def estimate_tokens(value: Any) -> int:
    """~4 characters per token over the JSON form. 0 for None or unserializable."""
    if value is None:
        return 0
    try:
        text = json.dumps(value)
    except (TypeError, ValueError):
        return 0
    return math.ceil(len(text) / 4)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

ERROR_CATEGORIES: list[tuple[str, tuple[str, ...]]] = [
    ("timeout", ("timeout", "timed out", "etimedout", "deadline exceeded")),
    ("rate_limit", ("rate limit", "rate_limit", "too many requests", "429", "quota")),
    ("auth", ("unauthorized", "forbidden", "401", "403", "auth", "token", "credential", "permission")),
    ("validation", ("invalid", "validation", "required", "missing", "400", "bad request", "malformed")),
]


def categorize_error(error: BaseException | str | None) -> str:
    """First keyword bucket matching the error message, else 'unknown'."""
    if error is None:
        return "unknown"
    message = str(error).lower()
    for category, keywords in ERROR_CATEGORIES:
        if any(k in message for k in keywords):
            return category
    return "unknown"


# ---------------------------------------------------------------------------
# Client context
# ---------------------------------------------------------------------------

_COUNTRY_RE = re.compile(r"^[A-Za-z]{2}$")

REGION_BY_COUNTRY: dict[str, str] = {
    **dict.fromkeys(("US", "CA", "MX"), "north_america"),
    **dict.fromkeys(("BR", "AR", "CL", "CO", "PE", "UY", "VE", "EC", "BO", "PY"), "south_america"),
    **dict.fromkeys(
        ("GB", "IE", "FR", "DE", "NL", "BE", "LU", "ES", "PT", "IT", "CH", "AT", "SE", "NO",
         "DK", "FI", "IS", "PL", "CZ", "SK", "HU", "RO", "BG", "GR", "UA", "EE", "LV", "LT",
         "SI", "HR", "RS"),
        "europe",
    ),
    **dict.fromkeys(
        ("CN", "JP", "KR", "TW", "HK", "SG", "IN", "ID", "MY", "TH", "VN", "PH", "PK", "BD", "LK"),
        "asia",
    ),
    **dict.fromkeys(("AU", "NZ"), "oceania"),
    **dict.fromkeys(("AE", "SA", "IL", "TR", "QA", "KW", "EG", "JO", "IR", "IQ"), "middle_east"),
    **dict.fromkeys(("ZA", "NG", "KE", "MA", "GH", "ET", "TZ", "DZ", "TN", "UG"), "africa"),
}


def geo_region(headers: Mapping[str, str], header_name: str = "x-vercel-ip-country") -> Optional[str]:
    """Continent-level bucket from the trusted country header, or None."""
    country = _header(headers, header_name)
    if not country or not _COUNTRY_RE.match(country):
        return None
    return REGION_BY_COUNTRY.get(country.upper(), "other")


_PRODUCT_RE = re.compile(r"^([A-Za-z][A-Za-z0-9._-]*)(?:/([A-Za-z0-9._-]+))?")


def extract_client(headers: Mapping[str, str]) -> tuple[Optional[str], Optional[str]]:
    """(client_id, client_version) from explicit headers or the first User-Agent product."""
    name = _header(headers, "x-client-name")
    version = _header(headers, "x-client-version")
    if name:
        return name.lower()[:64], version
    ua = _header(headers, "user-agent")
    if not ua:
        return None, version
    match = _PRODUCT_RE.match(ua)
    if not match:
        return None, version
    return match.group(1).lower()[:64], version or match.group(2)


def extract_model_id(headers: Mapping[str, str]) -> Optional[str]:
    model = _header(headers, "x-model-id")
    return model[:128] if model else None
