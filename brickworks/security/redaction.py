"""brickworks.security.redaction

Secret redaction helpers.

Redact account secrets before anything hits logs. The factory authenticates with
an email + secret key pair sent as headers; the key must never be echoed.
"""

from __future__ import annotations

import copy
import re
from typing import Any

REDACTED = "[REDACTED]"

_REDACTION_PATTERNS: list[tuple[str, str]] = [
    # Header / key=value forms
    (r"(?i)(x-secret-key|secret[_-]?key|api[_-]?key|secret|password)(\s*[:=]\s*)[^\s\"',}]+", r"\1\2" + REDACTED),
    # JSON forms: "secret_key": "..."
    (r"(?i)(\"(?:x-secret-key|secret[_-]?key|api[_-]?key|secret|password)\"\s*:\s*)\"[^\"]*\"", r"\1\"" + REDACTED + "\""),
    # Bearer tokens
    (r"(?i)bearer\s+[a-z0-9._\-]+", "Bearer " + REDACTED),
]

_SENSITIVE_FIELD_NAMES = {
    "secret_key",
    "x-secret-key",
    "api_key",
    "apikey",
    "secret",
    "password",
    "token",
    "authorization",
}

_known_secrets: set[str] = set()


def register_secret(value: str) -> None:
    """Redact this exact value wherever it appears, regardless of context."""

    if value and len(value) >= 4:
        _known_secrets.add(value)


def redact_secrets(text: str) -> str:
    out = text
    for secret in _known_secrets:
        out = out.replace(secret, REDACTED)
    for pattern, repl in _REDACTION_PATTERNS:
        out = re.sub(pattern, repl, out)
    return out


def sanitize_for_log(data: dict[str, Any]) -> dict[str, Any]:
    """Deep-copy and redact sensitive fields + embedded secrets."""

    def _walk(obj: Any) -> Any:
        if isinstance(obj, dict):
            new: dict[str, Any] = {}
            for k, v in obj.items():
                if str(k).lower() in _SENSITIVE_FIELD_NAMES:
                    new[k] = REDACTED
                else:
                    new[k] = _walk(v)
            return new
        if isinstance(obj, (list, tuple)):
            return [_walk(v) for v in obj]
        if isinstance(obj, str):
            return redact_secrets(obj)
        return obj

    return _walk(copy.deepcopy(data))
