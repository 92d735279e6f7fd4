"""
MCP Hub logging setup.

Stdlib logging with one handler on the root logger and a filter that:
- Scrubs credentials (bearer tokens, hub API keys, OAuth tokens, secrets)
  from the formatted message and exception text
- Stamps each record with the current request id
"""
from __future__ import annotations
from contextvars import ContextVar
import logging
import re

request_id_var: ContextVar[str] = ContextVar("request_id", default="-")

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] [req=%(request_id)s] %(message)s"

SENSITIVE_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"Bearer\s+[A-Za-z0-9\-_=.]+", re.I), "Bearer [REDACTED]"),
    (re.compile(r"mcp_sk_[A-Za-z0-9]+"), "[REDACTED_MCP_KEY]"),
    (re.compile(r"api[_-]?key[=:]\s*[\"']?[A-Za-z0-9\-_]+[\"']?", re.I), "api_key=[REDACTED]"),
    (re.compile(r"access[_-]?token[\"']?\s*[=:]\s*[\"']?[A-Za-z0-9\-_.]+[\"']?", re.I), "access_token=[REDACTED]"),
    (re.compile(r"refresh[_-]?token[\"']?\s*[=:]\s*[\"']?[A-Za-z0-9\-_.]+[\"']?", re.I), "refresh_token=[REDACTED]"),
    (re.compile(r"client[_-]?secret[=:]\s*[\"']?[^\s\"'&]+[\"']?", re.I), "client_secret=[REDACTED]"),
    (re.compile(r"password[=:]\s*[\"']?[^\s\"']+[\"']?", re.I), "password=[REDACTED]"),
    (re.compile(r"\b[A-Fa-f0-9]{64}\b"), "[REDACTED_HEX_KEY]"),
]


def redact(text: str) -> str:
    """Replace anything that looks like a credential."""
    for pattern, replacement in SENSITIVE_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


class RedactingFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get()
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            return True
        record.msg = redact(message)
        record.args = None
        if record.exc_info and not record.exc_text:
            record.exc_text = redact(logging.Formatter().formatException(record.exc_info))
        return True


def configure_logging(level: str = "INFO") -> None:
    """Install the redacting handler on the root logger (idempotent)."""
    root = logging.getLogger()
    root.setLevel(level)
    for handler in root.handlers:
        if getattr(handler, "_mcp_hub", False):
            return

    handler = logging.StreamHandler()
    handler._mcp_hub = True  # type: ignore[attr-defined]
    handler.addFilter(RedactingFilter())
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
