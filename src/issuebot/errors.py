"""Error taxonomy & redaction.

Nothing in the automation core lets these escape to the caller: the API
client converts failures into empty results and the decoders into ``None``.
The classes exist so the component that detects a failure can name it when
logging, and so tests can assert on it.

Public API:
- AuthError, TransportError, MalformedPayloadError, ConfigError
- classify_error(exc) -> ErrorInfo
- redact(text) -> str
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

import requests

_SENSITIVE_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"ghs_[A-Za-z0-9]{20,40}"),  # installation access tokens
    re.compile(r"ghp_[A-Za-z0-9]{20,40}"),
    re.compile(r"github_pat_\w{20,}"),
    re.compile(r"(?i)(authorization:\s*(?:token|bearer)\s+)\S+"),
    re.compile(r"eyJ[\w-]+\.[\w-]+\.[\w-]+"),  # signed JWT assertions
    re.compile(
        r"-----BEGIN (?:RSA )?PRIVATE KEY-----[\s\S]*?-----END (?:RSA )?PRIVATE KEY-----"
    ),
]

_REDACTION_PLACEHOLDER = "<redacted>"


class IssueBotError(Exception):
    """Base class for errors raised inside issuebot."""


class AuthError(IssueBotError):
    """Credential exchange or refresh failed."""


class TransportError(IssueBotError):
    """Network failure or timeout talking to GitHub."""


class MalformedPayloadError(IssueBotError):
    """A webhook payload or API response did not have the expected shape."""


class ConfigError(IssueBotError):
    pass


@dataclass
class ErrorInfo:
    category: str
    message: str
    original_type: str
    transient: bool = False
    details: dict[str, Any] | None = None


def redact(text: str) -> str:
    """Redact tokens, assertions and key material in arbitrary text."""
    if not text:
        return text
    redacted = text
    for pat in _SENSITIVE_PATTERNS:
        if pat.groups:
            redacted = pat.sub(lambda m: m.group(1) + _REDACTION_PLACEHOLDER, redacted)
        else:
            redacted = pat.sub(_REDACTION_PLACEHOLDER, redacted)
    return redacted


def classify_error(exc: BaseException) -> ErrorInfo:
    """Best-effort classification of an exception.

    - AuthError -> 'auth', transient (a later refresh may succeed)
    - requests timeouts / connection errors, TransportError -> 'network', transient
    - MalformedPayloadError / JSON decode errors -> 'parse'
    - rate limit wording -> 'github.rate_limit', transient
    - fallback -> 'generic'
    """
    msg = redact(str(exc) if exc else "")
    name = exc.__class__.__name__
    low = msg.lower()

    if isinstance(exc, AuthError):
        return ErrorInfo("auth", msg, name, transient=True)
    if isinstance(exc, (TransportError, requests.ConnectionError, requests.Timeout)):
        return ErrorInfo("network", msg, name, transient=True)
    if isinstance(exc, (MalformedPayloadError, ValueError)):
        return ErrorInfo("parse", msg, name)
    if "rate limit" in low or "secondary rate" in low:
        return ErrorInfo("github.rate_limit", msg, name, transient=True)
    if any(k in low for k in ("timeout", "connection reset", "temporarily unavailable")):
        return ErrorInfo("network", msg, name, transient=True)
    return ErrorInfo("generic", msg, name)


__all__ = [
    "AuthError",
    "ConfigError",
    "ErrorInfo",
    "IssueBotError",
    "MalformedPayloadError",
    "TransportError",
    "classify_error",
    "redact",
]
