"""brickworks.core.logging_config

Log setup for the CLI and long-running callers.

Library modules only ever call ``logging.getLogger(__name__)``; this module decides
where records go. Every record is redacted before it is formatted.
"""

from __future__ import annotations

import json
import logging
import sys
from typing import Any

from brickworks.core.config import LoggingConfig
from brickworks.security.redaction import redact_secrets, sanitize_for_log

_STANDARD_ATTRS = {
    "name",
    "asctime",
    "msg",
    "args",
    "created",
    "filename",
    "funcName",
    "levelname",
    "levelno",
    "lineno",
    "module",
    "msecs",
    "message",
    "pathname",
    "process",
    "processName",
    "relativeCreated",
    "thread",
    "threadName",
    "taskName",
    "exc_info",
    "exc_text",
    "stack_info",
}


def _extras(record: logging.LogRecord) -> dict[str, Any]:
    return {k: v for k, v in record.__dict__.items() if k not in _STANDARD_ATTRS}


class RedactingFilter(logging.Filter):
    """Scrub secrets from the message and from ``extra`` fields in place."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = redact_secrets(record.getMessage())
        record.args = None
        extras = _extras(record)
        if extras:
            for k, v in sanitize_for_log(extras).items():
                setattr(record, k, v)
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        data: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)
        data.update(_extras(record))
        return json.dumps(data, default=str)


class TextFormatter(logging.Formatter):
    """Plain text with ``key=value`` extras appended."""

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        extras = _extras(record)
        if not extras:
            return base
        tail = " ".join(f"{k}={v}" for k, v in sorted(extras.items()))
        return f"{base} {tail}"


def configure_logging(cfg: LoggingConfig | None = None, *, stream: Any = None) -> logging.Handler:
    """Install a single redacting handler on the root logger and return it."""

    cfg = cfg or LoggingConfig()
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.addFilter(RedactingFilter())
    if cfg.json_output:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(TextFormatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))

    root = logging.getLogger()
    for existing in list(root.handlers):
        if getattr(existing, "_brickworks", False):
            root.removeHandler(existing)
    handler._brickworks = True  # type: ignore[attr-defined]
    root.addHandler(handler)
    root.setLevel(cfg.level.upper())
    return handler
